import pytest

from visa_interview.config.settings import Settings
from visa_interview.core.exceptions import InvalidTransitionError, SessionNotFoundError
from visa_interview.core.models import SessionConfig, SessionStatus
from visa_interview.core.use_case import InterviewUseCase


@pytest.fixture
def use_case(catalog, storage):
    settings = Settings(MISTRAL_API_KEY=None, DEFAULT_MODE="practice", TICK_INTERVAL_SECONDS=None)
    return InterviewUseCase(settings, catalog, storage)


async def test_defaults_come_from_settings(use_case):
    session_id, first = await use_case.start_interview(SessionConfig(seed=1))
    engine = use_case.get_engine(session_id)
    assert session_id.startswith("session_")
    assert engine.mode.name == "practice"
    assert engine.route.name == "usa_f1"
    assert first is not None
    assert not engine.scorer.chain.has_remote


async def test_full_flow_through_use_case(use_case, storage):
    session_id, _ = await use_case.start_interview(SessionConfig(route="uk", seed=2), session_id="abc")
    assert session_id == "abc"
    await use_case.begin("abc")
    await use_case.start_answer_now("abc")
    assert use_case.ingest_transcript("abc", {"text": "My aunt in London is my guarantor.", "is_final": True})
    response = await use_case.answer("abc")
    assert response.transcript == "My aunt in London is my guarantor."

    await use_case.pause("abc")
    assert use_case.get_state("abc")["status"] == "paused"
    await use_case.resume("abc")
    await use_case.abort("abc")
    assert use_case.get_state("abc")["status"] == SessionStatus.COMPLETED.value
    assert storage.get("abc")["end_reason"] == "aborted"


async def test_restart_replaces_existing_engine(use_case):
    await use_case.start_interview(SessionConfig(seed=1), session_id="same")
    old = use_case.get_engine("same")
    await use_case.start_interview(SessionConfig(seed=2), session_id="same")
    assert use_case.get_engine("same") is not old
    assert use_case.list_sessions() == ["same"]


async def test_unknown_session(use_case):
    with pytest.raises(SessionNotFoundError):
        use_case.get_state("missing")
    with pytest.raises(SessionNotFoundError):
        await use_case.answer("missing", "text")
    with pytest.raises(SessionNotFoundError):
        use_case.delete_session("missing")


async def test_delete_session(use_case, storage):
    session_id, _ = await use_case.start_interview(SessionConfig(seed=3))
    use_case.delete_session(session_id)
    assert session_id not in use_case.list_sessions()
    assert not storage.exists(session_id)


async def test_completed_session_is_archived(use_case, storage):
    session_id, _ = await use_case.start_interview(SessionConfig(seed=5), session_id="done")
    engine = use_case.get_engine(session_id)
    await use_case.begin(session_id)
    for _ in range(engine.mode.question_count):
        await use_case.answer(session_id, "My parents will pay and I will return to my family firm.")

    assert session_id not in use_case.list_sessions()
    assert not engine.timing.armed
    state = use_case.get_state(session_id)
    assert state["status"] == "completed"
    assert state["score"]["answered"] == engine.mode.question_count
    with pytest.raises(InvalidTransitionError):
        await use_case.answer(session_id, "one more")

    use_case.delete_session(session_id)
    with pytest.raises(SessionNotFoundError):
        use_case.get_state(session_id)


async def test_follow_up_default_comes_from_settings(catalog, storage):
    settings = Settings(MISTRAL_API_KEY=None, ENABLE_FOLLOW_UPS=True, TICK_INTERVAL_SECONDS=None)
    use_case = InterviewUseCase(settings, catalog, storage)
    session_id, _ = await use_case.start_interview(SessionConfig(seed=1))
    assert use_case.get_engine(session_id).context.follow_ups
    session_id, _ = await use_case.start_interview(SessionConfig(seed=1, follow_ups=False))
    assert not use_case.get_engine(session_id).context.follow_ups


async def test_shutdown_closes_live_engines(use_case):
    session_id, _ = await use_case.start_interview(SessionConfig(seed=6))
    await use_case.begin(session_id)
    engine = use_case.get_engine(session_id)
    use_case.shutdown()
    assert use_case.list_sessions() == []
    assert not engine.timing.armed
