import json
import logging
from contextlib import contextmanager
from typing import Any, Dict

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from visa_interview.api.deps import get_use_case
from visa_interview.api.schemas import (
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
from visa_interview.core.exceptions import InterviewError, InvalidTransitionError, SessionNotFoundError
from visa_interview.core.models import BodyLanguageSample, SessionConfig, SessionEvent
from visa_interview.core.modes import MODES, ROUTES
from visa_interview.core.use_case import InterviewUseCase
from visa_interview.system.exceptions import InvalidTransitionHTTPException, SessionNotFoundHTTPException

logger = logging.getLogger(__name__)
interview_router = APIRouter()


@contextmanager
def domain_errors():
    try:
        yield
    except SessionNotFoundError as e:
        raise SessionNotFoundHTTPException(str(e)) from e
    except InvalidTransitionError as e:
        raise InvalidTransitionHTTPException(str(e)) from e


def _state_response(use_case: InterviewUseCase, session_id: str) -> SessionStateResponse:
    state = use_case.get_state(session_id)
    return SessionStateResponse(session_id=session_id, status=state["status"], state=state)


@interview_router.get("/modes", response_model=ModesResponse)
async def list_modes(use_case: InterviewUseCase = Depends(get_use_case)):
    return ModesResponse(
        default_mode=use_case.settings.DEFAULT_MODE,
        default_route=use_case.settings.DEFAULT_ROUTE,
        modes=[mode.to_dict() for mode in MODES.values()],
        routes=[{"name": r.name, "label": r.label, "two_phase": r.two_phase} for r in ROUTES.values()]
    )


@interview_router.post("/start", response_model=StartInterviewResponse)
async def start_interview(request: StartInterviewRequest, use_case: InterviewUseCase = Depends(get_use_case)):
    config = SessionConfig(**request.model_dump(exclude={"session_id"}))
    engine = use_case.create_engine(config, request.session_id)
    first_question = await engine.start()
    session_id = engine.session.id
    logger.info(f"Started session {session_id} ({engine.route.name}/{engine.mode.name})")
    return StartInterviewResponse(
        session_id=session_id,
        route=engine.route.name,
        mode=engine.mode.name,
        question_count=engine.mode.question_count,
        two_phase=engine.route.two_phase,
        first_question=QuestionResponse.from_record(first_question)
    )


@interview_router.post("/{session_id}/begin", response_model=SessionStateResponse)
async def begin_interview(session_id: str, use_case: InterviewUseCase = Depends(get_use_case)):
    with domain_errors():
        await use_case.begin(session_id)
        return _state_response(use_case, session_id)


@interview_router.post("/{session_id}/answer", response_model=AnswerResponse)
async def submit_answer(session_id: str, request: AnswerRequest, use_case: InterviewUseCase = Depends(get_use_case)):
    with domain_errors():
        engine = use_case.get_engine(session_id)
        response = await engine.answer(request.text)
        session = engine.session
        return AnswerResponse(
            session_id=session_id,
            status=session.status.value,
            response=response.to_dict() if response else None,
            next_question=QuestionResponse.from_record(session.current_question),
            score=engine.get_state()["score"],
            notices=list(session.notices)
        )


@interview_router.post("/{session_id}/transcript")
async def ingest_transcript(session_id: str, request: TranscriptEventRequest,
                            use_case: InterviewUseCase = Depends(get_use_case)):
    with domain_errors():
        accepted = use_case.ingest_transcript(session_id, request.model_dump())
        return {"session_id": session_id, "accepted": accepted}


@interview_router.post("/{session_id}/body-sample")
async def push_body_sample(session_id: str, request: BodySampleRequest,
                           use_case: InterviewUseCase = Depends(get_use_case)):
    with domain_errors():
        use_case.update_body_sample(session_id, BodyLanguageSample(**request.model_dump()))
        return {"session_id": session_id, "accepted": True}


@interview_router.post("/{session_id}/start-answer", response_model=PhaseStateResponse)
async def start_answer_now(session_id: str, use_case: InterviewUseCase = Depends(get_use_case)):
    with domain_errors():
        state = await use_case.start_answer_now(session_id)
        return PhaseStateResponse(phase=state.phase.value, seconds_remaining=state.seconds_remaining)


@interview_router.post("/{session_id}/pause", response_model=SessionStateResponse)
async def pause_interview(session_id: str, use_case: InterviewUseCase = Depends(get_use_case)):
    with domain_errors():
        await use_case.pause(session_id)
        return _state_response(use_case, session_id)


@interview_router.post("/{session_id}/resume", response_model=SessionStateResponse)
async def resume_interview(session_id: str, use_case: InterviewUseCase = Depends(get_use_case)):
    with domain_errors():
        await use_case.resume(session_id)
        return _state_response(use_case, session_id)


@interview_router.post("/{session_id}/abort", response_model=SessionStateResponse)
async def abort_interview(session_id: str, use_case: InterviewUseCase = Depends(get_use_case)):
    with domain_errors():
        await use_case.abort(session_id)
        return _state_response(use_case, session_id)


@interview_router.get("/{session_id}", response_model=SessionStateResponse)
async def get_session_state(session_id: str, use_case: InterviewUseCase = Depends(get_use_case)):
    with domain_errors():
        return _state_response(use_case, session_id)


@interview_router.delete("/{session_id}")
async def delete_session(session_id: str, use_case: InterviewUseCase = Depends(get_use_case)):
    with domain_errors():
        use_case.delete_session(session_id)
        return {"session_id": session_id, "deleted": True}


@interview_router.websocket("/ws/{session_id}")
async def websocket_interview(websocket: WebSocket, session_id: str,
                              use_case: InterviewUseCase = Depends(get_use_case)):
    await websocket.accept()
    try:
        engine = use_case.get_engine(session_id)
    except SessionNotFoundError:
        await websocket.send_text(json.dumps({"type": "error", "message": "Session not found"}))
        await websocket.close()
        return
    except InvalidTransitionError as e:
        await websocket.send_text(json.dumps({"type": "error", "message": str(e)}))
        await websocket.close()
        return

    async def forward(event: SessionEvent, payload: Dict[str, Any]) -> None:
        await websocket.send_text(json.dumps({"type": event.value, **payload}, ensure_ascii=False, default=str))

    unsubscribe = engine.subscribe(forward)
    logger.info(f"WebSocket subscribed to session {session_id}")
    try:
        while True:
            try:
                message = json.loads(await websocket.receive_text())
            except json.JSONDecodeError:
                await websocket.send_text(json.dumps({"type": "error", "message": "Invalid JSON"}))
                continue
            if not isinstance(message, dict):
                await websocket.send_text(json.dumps({"type": "error", "message": "Expected a JSON object"}))
                continue
            action = message.get("action")
            try:
                if action == "begin":
                    await engine.begin()
                elif action == "transcript":
                    engine.ingest_transcript({
                        "text": message.get("text", ""),
                        "is_final": bool(message.get("is_final")),
                        "confidence": message.get("confidence")
                    })
                elif action == "answer":
                    await engine.answer(message.get("text"))
                elif action == "start_answer":
                    await engine.start_answer_now()
                elif action == "pause":
                    await engine.pause()
                elif action == "resume":
                    await engine.resume()
                elif action == "get_state":
                    await websocket.send_text(json.dumps({"type": "state", "state": engine.get_state()}, default=str))
                else:
                    await websocket.send_text(json.dumps({"type": "error", "message": f"Unknown action: {action}"}))
            except InterviewError as e:
                await websocket.send_text(json.dumps({"type": "error", "message": str(e)}))
    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected for session {session_id}, session preserved")
    finally:
        unsubscribe()
