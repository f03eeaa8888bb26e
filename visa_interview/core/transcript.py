from typing import List

from visa_interview.core.exceptions import TranscriptEmptyError
from visa_interview.core.models import NO_RESPONSE, TranscriptEvent


class TranscriptBuffer:
    """Accumulated speech-to-text snapshot for the current answer window.

    Final segments are appended; the latest interim text replaces the previous
    interim text. Only the combined snapshot is ever read.
    """

    def __init__(self):
        self._segments: List[str] = []
        self._interim = ""
        self._confidences: List[float] = []

    def reset(self) -> None:
        self._segments = []
        self._interim = ""
        self._confidences = []

    def ingest(self, event: TranscriptEvent) -> bool:
        """Apply one STT event. Returns True when the snapshot changed."""
        before = self.snapshot()
        text = (event.get("text") or "").strip()
        confidence = event.get("confidence")
        if event.get("is_final"):
            if text:
                self._segments.append(text)
            self._interim = ""
            if isinstance(confidence, (int, float)) and confidence > 0:
                self._confidences.append(float(confidence))
        else:
            self._interim = text
        return self.snapshot() != before

    def snapshot(self) -> str:
        parts = self._segments + ([self._interim] if self._interim else [])
        return " ".join(parts)

    @property
    def confidence(self) -> float | None:
        if not self._confidences:
            return None
        return sum(self._confidences) / len(self._confidences)


def require_text(text: str | None) -> str:
    cleaned = (text or "").strip()
    if not cleaned:
        raise TranscriptEmptyError("No speech captured")
    return cleaned


def normalize_answer(text: str | None) -> str:
    try:
        return require_text(text)
    except TranscriptEmptyError:
        return NO_RESPONSE
