from typing import Any, Dict, List

from pydantic import BaseModel, Field

from visa_interview.core.models import Difficulty, DifficultyPolicy, QuestionRecord


class StartInterviewRequest(BaseModel):
    session_id: str | None = None
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

    model_config = {
        "json_schema_extra": {
            "example": {
                "route": "usa_f1",
                "mode": "standard",
                "degree_level": "graduate",
                "topic_focus": "financial",
                "follow_ups": True,
                "candidate_name": "Jane Doe"
            }
        }
    }


class QuestionResponse(BaseModel):
    id: str
    text: str
    category: str
    difficulty: Difficulty
    follow_up: bool = False

    @classmethod
    def from_record(cls, question: QuestionRecord | None) -> "QuestionResponse | None":
        if question is None:
            return None
        return cls(id=question.id, text=question.text, category=question.category, difficulty=question.difficulty,
                   follow_up=question.follow_up)


class StartInterviewResponse(BaseModel):
    session_id: str
    route: str
    mode: str
    question_count: int
    two_phase: bool
    first_question: QuestionResponse | None = None


class AnswerRequest(BaseModel):
    text: str | None = None


class TranscriptEventRequest(BaseModel):
    text: str = ""
    is_final: bool = False
    confidence: float | None = Field(default=None, ge=0, le=1)


class BodySampleRequest(BaseModel):
    posture_score: float = Field(ge=0, le=100)
    gesture_score: float = Field(ge=0, le=100)
    expression_score: float = Field(ge=0, le=100)
    overall_score: float = Field(ge=0, le=100)


class PhaseStateResponse(BaseModel):
    phase: str
    seconds_remaining: float


class SessionStateResponse(BaseModel):
    session_id: str
    status: str
    state: Dict[str, Any]


class AnswerResponse(BaseModel):
    session_id: str
    status: str
    response: Dict[str, Any] | None = None
    next_question: QuestionResponse | None = None
    score: Dict[str, Any] | None = None
    notices: List[str] = []


class ModesResponse(BaseModel):
    default_mode: str
    default_route: str
    modes: List[Dict[str, Any]]
    routes: List[Dict[str, Any]]
