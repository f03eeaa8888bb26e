from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, TypedDict


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class SessionStatus(str, Enum):
    PREPARING = "preparing"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


class Phase(str, Enum):
    PREP = "prep"
    ANSWER = "answer"


class DifficultyPolicy(str, Enum):
    PROGRESSIVE = "progressive"
    MODE = "mode"


class SessionEvent(str, Enum):
    QUESTION_POSTED = "question_posted"
    PHASE_CHANGED = "phase_changed"
    RESPONSE_SCORED = "response_scored"
    SESSION_COMPLETED = "session_completed"
    PERSISTENCE_FAILED = "persistence_failed"


class FinalizeReason(str, Enum):
    SUBMITTED = "submitted"
    MAX_DURATION = "max_duration"
    SILENCE = "silence"
    ANSWER_EXPIRED = "answer_expired"


NO_RESPONSE = "[No response]"
ALL_ROUTES = "*"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class QuestionRecord:
    id: str
    text: str
    category: str
    difficulty: Difficulty
    routes: Tuple[str, ...] = (ALL_ROUTES,)
    degree_levels: Tuple[str, ...] = ()
    keywords: Tuple[str, ...] = ()
    cluster: str | None = None
    requires_context: Tuple[str, ...] = ()
    follow_up: bool = False

    def applies_to(self, route: str, degree_level: str | None) -> bool:
        if ALL_ROUTES not in self.routes and route not in self.routes:
            return False
        if self.degree_levels and degree_level and degree_level not in self.degree_levels:
            return False
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "category": self.category,
            "difficulty": self.difficulty.value,
            "follow_up": self.follow_up,
        }


@dataclass(frozen=True)
class CategoryRequirement:
    category: str
    min_questions: int
    max_questions: int


@dataclass(frozen=True)
class ModeConfig:
    name: str
    question_count: int
    difficulty_distribution: Dict[Difficulty, int]
    category_requirements: Tuple[CategoryRequirement, ...]

    def requirement(self, category: str) -> CategoryRequirement | None:
        for req in self.category_requirements:
            if req.category == category:
                return req
        return None

    def max_for(self, category: str) -> int | None:
        req = self.requirement(category)
        return req.max_questions if req else None

    def min_for(self, category: str) -> int:
        req = self.requirement(category)
        return req.min_questions if req else 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "question_count": self.question_count,
            "difficulty_distribution": {d.value: pct for d, pct in self.difficulty_distribution.items()},
            "category_requirements": [asdict(req) for req in self.category_requirements],
        }


@dataclass(frozen=True)
class RouteConfig:
    name: str
    label: str
    two_phase: bool
    stage_plan: Tuple[str, ...] = ()

    def stage_category(self, index: int) -> str | None:
        if not self.stage_plan:
            return None
        return self.stage_plan[min(index, len(self.stage_plan) - 1)]


@dataclass
class SessionConfig:
    route: str | None = None
    mode: str | None = None
    degree_level: str | None = None
    target_difficulty: Difficulty | None = None
    topic_focus: str | None = None
    difficulty_policy: DifficultyPolicy = DifficultyPolicy.PROGRESSIVE
    allow_quota_overflow: bool = False
    follow_ups: bool | None = None
    seed: int | None = None
    candidate_name: str = ""


@dataclass
class SessionContext:
    mode: ModeConfig
    route: RouteConfig
    degree_level: str | None = None
    target_difficulty: Difficulty | None = None
    topic_focus: str | None = None
    difficulty_policy: DifficultyPolicy = DifficultyPolicy.PROGRESSIVE
    allow_quota_overflow: bool = False
    follow_ups: bool = False
    asked_question_ids: set = field(default_factory=set)
    asked_clusters: set = field(default_factory=set)
    context_flags: set = field(default_factory=set)
    category_counts: Dict[str, int] = field(default_factory=dict)
    current_index: int = 0

    def count(self, category: str) -> int:
        return self.category_counts.get(category, 0)

    def at_max(self, category: str) -> bool:
        limit = self.mode.max_for(category)
        return limit is not None and self.count(category) >= limit

    def below_min(self, category: str) -> bool:
        return self.count(category) < self.mode.min_for(category)

    def unmet_minimum(self) -> int:
        return sum(max(0, req.min_questions - self.count(req.category)) for req in self.mode.category_requirements)

    def record(self, question: QuestionRecord) -> None:
        """Follow-ups take a slot of the question count but never a category quota."""
        self.asked_question_ids.add(question.id)
        if question.cluster:
            self.asked_clusters.add(question.cluster)
        if not question.follow_up:
            self.category_counts[question.category] = self.count(question.category) + 1
        self.current_index += 1


@dataclass(frozen=True)
class ExhaustionSignal:
    asked: int
    target: int
    reason: str = "question pool exhausted"


@dataclass(frozen=True)
class BodyLanguageSample:
    posture_score: float
    gesture_score: float
    expression_score: float
    overall_score: float


class TranscriptEvent(TypedDict, total=False):
    text: str
    is_final: bool
    confidence: float


@dataclass
class Analysis:
    overall: int
    categories: Dict[str, int]
    feedback: str = ""
    suggestions: List[str] = field(default_factory=list)
    source: str = "heuristic"


@dataclass
class ResponseRecord:
    question: QuestionRecord
    transcript: str
    analysis: Optional[Analysis]
    body_sample: Optional[BodyLanguageSample] = None
    stt_confidence: Optional[float] = None
    finalize_reason: FinalizeReason = FinalizeReason.SUBMITTED
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "question": self.question.to_dict(),
            "transcript": self.transcript,
            "analysis": asdict(self.analysis) if self.analysis else None,
            "body_sample": asdict(self.body_sample) if self.body_sample else None,
            "stt_confidence": self.stt_confidence,
            "finalize_reason": self.finalize_reason.value,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class PhaseState:
    phase: Phase
    seconds_remaining: float


@dataclass
class FinalAggregate:
    overall: int
    categories: Dict[str, int]
    answered: int


@dataclass
class InterviewSession:
    id: str
    route: str
    mode: str
    candidate_name: str = ""
    status: SessionStatus = SessionStatus.PREPARING
    questions: List[QuestionRecord] = field(default_factory=list)
    responses: List[ResponseRecord] = field(default_factory=list)
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    score: Optional[FinalAggregate] = None
    end_reason: Optional[str] = None
    notices: List[str] = field(default_factory=list)

    @property
    def current_question(self) -> Optional[QuestionRecord]:
        if len(self.questions) > len(self.responses):
            return self.questions[-1]
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "route": self.route,
            "mode": self.mode,
            "candidate_name": self.candidate_name,
            "status": self.status.value,
            "questions": [q.to_dict() for q in self.questions],
            "responses": [r.to_dict() for r in self.responses],
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "score": asdict(self.score) if self.score else None,
            "end_reason": self.end_reason,
            "notices": list(self.notices),
        }
