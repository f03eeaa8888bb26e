"""Local answer heuristics.

Content is bucketed from question/answer word overlap and answer length,
speech from filler-word rate, phrase repetition and STT confidence, body
language from the captured sample. Overall uses 0.7 content, 0.2 speech and
0.1 body; when no body sample exists its weight moves to content.
"""
import re
from dataclasses import dataclass
from typing import List, Sequence

from visa_interview.core.models import NO_RESPONSE, Analysis, BodyLanguageSample, QuestionRecord

CONTENT_BUCKETS = (10, 40, 65, 85)
NEUTRAL_BODY_SCORE = 50
DEFAULT_STT_CONFIDENCE = 0.75

WEIGHTS = {"content": 0.7, "speech": 0.2, "body_language": 0.1}

FILLERS = (
    "uh", "um", "erm", "uhm", "mmm", "hmm", "ah", "er", "like", "you know", "i mean",
    "sort of", "kind of", "basically", "actually", "literally", "right", "okay", "ok", "well", "so"
)

STOPWORDS = frozenset({
    "what", "why", "how", "do", "did", "are", "is", "your", "you", "the", "in", "to", "of", "for", "on",
    "at", "this", "that", "it", "a", "an", "any", "have", "will", "can", "and", "or", "i", "my", "me",
    "be", "with", "from", "about", "there", "they", "we", "our", "was", "were", "if", "as", "by"
})


@dataclass
class TranscriptMetrics:
    words: int
    filler_rate: float
    repeated_bigram_rate: float


def normalize_text(text: str) -> str:
    text = text.lower().replace("’", "'")
    text = re.sub(r"[^a-z0-9'\s]+", " ", text)
    return re.sub(r"\s+", " ", text).strip()


def tokenize(text: str) -> List[str]:
    normalized = normalize_text(text)
    return normalized.split(" ") if normalized else []


def content_tokens(text: str) -> set:
    return {t for t in tokenize(text) if t not in STOPWORDS and len(t) > 2}


def count_fillers(text: str) -> int:
    normalized = f" {normalize_text(text)} "
    return sum(normalized.count(f" {filler} ") for filler in FILLERS)


def repeated_bigram_rate(words: Sequence[str]) -> float:
    if len(words) < 4:
        return 0.0
    bigrams = [f"{a} {b}" for a, b in zip(words, words[1:])]
    repeats = len(bigrams) - len(set(bigrams))
    return repeats / len(bigrams)


def analyze_transcript(transcript: str) -> TranscriptMetrics:
    words = tokenize(transcript)
    fillers = count_fillers(transcript)
    return TranscriptMetrics(
        words=len(words),
        filler_rate=fillers / len(words) if words else 0.0,
        repeated_bigram_rate=repeated_bigram_rate(words)
    )


def answer_overlap(question: QuestionRecord, transcript: str) -> float:
    expected = content_tokens(question.text) | {k.lower() for k in question.keywords}
    if not expected:
        return 0.0
    answer = content_tokens(transcript)
    return len(expected & answer) / len(expected)


def content_score(question: QuestionRecord, transcript: str, metrics: TranscriptMetrics) -> int:
    if transcript == NO_RESPONSE or metrics.words < 3:
        return CONTENT_BUCKETS[0]
    overlap = answer_overlap(question, transcript)
    if overlap < 0.1 or metrics.words < 12:
        return CONTENT_BUCKETS[1]
    if overlap < 0.3:
        return CONTENT_BUCKETS[2]
    return CONTENT_BUCKETS[3]


def speech_score(metrics: TranscriptMetrics, stt_confidence: float | None) -> int:
    if metrics.words == 0:
        return 0
    filler_penalty = min(60.0, metrics.filler_rate * 600)
    repetition_penalty = min(25.0, metrics.repeated_bigram_rate * 250)
    fluency = max(0.0, 95 - filler_penalty - repetition_penalty)
    confidence = DEFAULT_STT_CONFIDENCE if stt_confidence is None else max(0.0, min(1.0, stt_confidence))
    return round(0.6 * fluency + 0.4 * confidence * 100)


def body_score(sample: BodyLanguageSample | None) -> int:
    if sample is None:
        return NEUTRAL_BODY_SCORE
    return round(max(0.0, min(100.0, sample.overall_score)))


def overall_score(content: int, speech: int, body: int, body_available: bool) -> int:
    if not body_available:
        return round((WEIGHTS["content"] + WEIGHTS["body_language"]) * content + WEIGHTS["speech"] * speech)
    return round(WEIGHTS["content"] * content + WEIGHTS["speech"] * speech + WEIGHTS["body_language"] * body)


def suggestions_for(content: int, metrics: TranscriptMetrics, stt_confidence: float | None) -> List[str]:
    tips = []
    if content == CONTENT_BUCKETS[0]:
        tips.append("Give a spoken answer to every question, even a short one.")
    elif content <= CONTENT_BUCKETS[1]:
        tips.append("Address the question directly and add concrete details.")
    if metrics.filler_rate > 0.05:
        tips.append("Reduce filler words (um, uh, like).")
    if metrics.repeated_bigram_rate > 0.05:
        tips.append("Avoid repeating phrases; vary your wording.")
    if stt_confidence is not None and stt_confidence < 0.6:
        tips.append("Speak a little more clearly or reduce background noise.")
    return tips


def heuristic_analysis(
    question: QuestionRecord,
    transcript: str,
    body_sample: BodyLanguageSample | None,
    stt_confidence: float | None
) -> Analysis:
    if transcript == NO_RESPONSE:
        metrics = TranscriptMetrics(words=0, filler_rate=0.0, repeated_bigram_rate=0.0)
    else:
        metrics = analyze_transcript(transcript)
    content = content_score(question, transcript, metrics)
    speech = speech_score(metrics, stt_confidence)
    body = body_score(body_sample)
    return Analysis(
        overall=overall_score(content, speech, body, body_sample is not None),
        categories={"content": content, "speech": speech, "body_language": body},
        feedback="Automated heuristic scoring. Scores are approximate.",
        suggestions=suggestions_for(content, metrics, stt_confidence),
        source="heuristic"
    )
