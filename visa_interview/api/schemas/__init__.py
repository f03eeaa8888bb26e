from visa_interview.api.schemas.interview import (
    AnswerRequest,
    AnswerResponse,
    BodySampleRequest,
    ModesResponse,
    PhaseStateResponse,
    QuestionResponse,
    SessionStateResponse,
    StartInterviewRequest,
    StartInterviewResponse,
    TranscriptEventRequest
)

__all__ = [
    "AnswerRequest",
    "AnswerResponse",
    "BodySampleRequest",
    "ModesResponse",
    "PhaseStateResponse",
    "QuestionResponse",
    "SessionStateResponse",
    "StartInterviewRequest",
    "StartInterviewResponse",
    "TranscriptEventRequest"
]
