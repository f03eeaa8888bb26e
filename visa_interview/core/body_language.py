from typing import Protocol

from visa_interview.core.models import BodyLanguageSample


class BodyLanguageSampler(Protocol):
    def sample(self) -> BodyLanguageSample | None:
        """Reading captured at the moment of the call, or None when unavailable."""


class LatestBodySampler:
    """Holds the most recent reading pushed by the client-side tracker."""

    def __init__(self):
        self._latest: BodyLanguageSample | None = None

    def update(self, sample: BodyLanguageSample) -> None:
        self._latest = sample

    def sample(self) -> BodyLanguageSample | None:
        return self._latest
