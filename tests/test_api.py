import json

import pytest
from fastapi.testclient import TestClient

from visa_interview.api import deps
from visa_interview.api.deps import get_use_case
from visa_interview.config.settings import Settings
from visa_interview.core.catalog import QuestionCatalog
from visa_interview.core.exceptions import ConfigurationError, FinalizationRaceViolation
from visa_interview.core.models import SessionConfig
from visa_interview.core.use_case import InterviewUseCase
from visa_interview.main import prepare_app
from visa_interview.storages.session_storage import SessionStorage

BASE = "/api/v1/interview"


@pytest.fixture
def client():
    use_case = InterviewUseCase(
        Settings(MISTRAL_API_KEY=None, TICK_INTERVAL_SECONDS=None),
        QuestionCatalog.default(),
        SessionStorage()
    )
    app = prepare_app()
    app.dependency_overrides[get_use_case] = lambda: use_case
    return TestClient(app)


def start(client, **body):
    response = client.post(f"{BASE}/start", json={"seed": 4, **body})
    assert response.status_code == 200
    return response.json()


def test_health(client):
    data = client.get("/api/v1/health").json()
    assert data["status"] == "ok"
    assert data["questions"] == 37


def test_list_modes(client):
    data = client.get(f"{BASE}/modes").json()
    assert data["default_mode"] == "standard"
    assert {m["name"] for m in data["modes"]} == {"practice", "standard", "comprehensive", "stress"}
    assert {r["name"]: r["two_phase"] for r in data["routes"]}["uk_student"] is True


def test_start_returns_briefing(client):
    data = start(client, route="usa_f1", mode="practice", session_id="api-1")
    assert data["session_id"] == "api-1"
    assert data["question_count"] == 8
    assert data["two_phase"] is False
    assert data["first_question"]["category"] == "academic"


def test_unknown_mode_falls_back(client):
    data = start(client, mode="marathon")
    assert data["mode"] == "standard"
    assert data["question_count"] == 12


def test_answer_flow(client):
    session_id = start(client, mode="practice")["session_id"]
    assert client.post(f"{BASE}/{session_id}/begin").json()["status"] == "active"

    accepted = client.post(f"{BASE}/{session_id}/transcript", json={"text": "I study physics", "is_final": True})
    assert accepted.json()["accepted"] is True

    response = client.post(f"{BASE}/{session_id}/answer", json={})
    assert response.status_code == 200
    data = response.json()
    assert data["response"]["transcript"] == "I study physics"
    assert data["next_question"] is not None
    assert data["status"] == "active"

    state = client.get(f"{BASE}/{session_id}").json()["state"]
    assert len(state["responses"]) == 1
    assert state["current_index"] == 2


def test_invalid_transition_is_409(client):
    session_id = start(client)["session_id"]
    response = client.post(f"{BASE}/{session_id}/answer", json={"text": "too early"})
    assert response.status_code == 409
    assert "preparing" in response.json()["detail"]


def test_unknown_session_is_404(client):
    assert client.get(f"{BASE}/nope").status_code == 404
    assert client.post(f"{BASE}/nope/begin").status_code == 404
    assert client.delete(f"{BASE}/nope").status_code == 404


def test_pause_resume_abort_delete(client):
    session_id = start(client, route="uk")["session_id"]
    client.post(f"{BASE}/{session_id}/begin")
    phase = client.post(f"{BASE}/{session_id}/start-answer").json()
    assert phase == {"phase": "answer", "seconds_remaining": 30.0}

    assert client.post(f"{BASE}/{session_id}/pause").json()["status"] == "paused"
    assert client.post(f"{BASE}/{session_id}/resume").json()["status"] == "active"
    aborted = client.post(f"{BASE}/{session_id}/abort").json()
    assert aborted["status"] == "completed"
    assert aborted["state"]["end_reason"] == "aborted"

    assert client.delete(f"{BASE}/{session_id}").json()["deleted"] is True
    assert client.get(f"{BASE}/{session_id}").status_code == 404


def test_body_sample_validation(client):
    session_id = start(client)["session_id"]
    bad = client.post(f"{BASE}/{session_id}/body-sample", json={
        "posture_score": 120, "gesture_score": 50, "expression_score": 50, "overall_score": 50
    })
    assert bad.status_code == 422
    ok = client.post(f"{BASE}/{session_id}/body-sample", json={
        "posture_score": 80, "gesture_score": 50, "expression_score": 50, "overall_score": 60
    })
    assert ok.json()["accepted"] is True


def test_websocket_actions(client):
    session_id = start(client, mode="practice")["session_id"]
    with client.websocket_connect(f"{BASE}/ws/{session_id}") as ws:
        ws.send_text(json.dumps({"action": "begin"}))
        posted = json.loads(ws.receive_text())
        assert posted["type"] == "question_posted"
        assert posted["index"] == 0

        ws.send_text(json.dumps({"action": "answer", "text": "My parents will pay my tuition."}))
        scored = json.loads(ws.receive_text())
        assert scored["type"] == "response_scored"
        assert scored["response"]["transcript"] == "My parents will pay my tuition."
        assert json.loads(ws.receive_text())["type"] == "question_posted"

        ws.send_text(json.dumps({"action": "start_answer"}))
        assert json.loads(ws.receive_text())["type"] == "error"

        ws.send_text(json.dumps({"action": "get_state"}))
        state = json.loads(ws.receive_text())
        assert state["type"] == "state"
        assert state["state"]["current_index"] == 2


def test_websocket_unknown_session(client):
    with client.websocket_connect(f"{BASE}/ws/missing") as ws:
        assert json.loads(ws.receive_text()) == {"type": "error", "message": "Session not found"}


def test_round_trip_reaches_completion(client):
    session_id = start(client, mode="practice")["session_id"]
    client.post(f"{BASE}/{session_id}/begin")
    data = {}
    for _ in range(8):
        data = client.post(f"{BASE}/{session_id}/answer", json={"text": "I will return home to join my family firm."}).json()
    assert data["status"] == "completed"
    assert data["next_question"] is None
    assert data["score"]["answered"] == 8
    assert client.post(f"{BASE}/{session_id}/answer", json={"text": "extra"}).status_code == 409


def test_unmapped_domain_errors_are_handled():
    app = prepare_app()

    @app.get("/boom/{kind}")
    async def boom(kind: str):
        if kind == "race":
            raise FinalizationRaceViolation("Question 0 already has a response")
        raise ConfigurationError("Unknown interview mode: 'x'")

    client = TestClient(app)
    bad = client.get("/boom/config")
    assert bad.status_code == 400
    assert bad.json()["error"] == "ConfigurationError"
    assert client.get("/boom/race").status_code == 500


def test_websocket_malformed_frame_keeps_connection(client):
    session_id = start(client, mode="practice")["session_id"]
    with client.websocket_connect(f"{BASE}/ws/{session_id}") as ws:
        ws.send_text("{not json")
        assert json.loads(ws.receive_text()) == {"type": "error", "message": "Invalid JSON"}
        ws.send_text("[1, 2]")
        assert json.loads(ws.receive_text())["type"] == "error"

        ws.send_text(json.dumps({"action": "get_state"}))
        assert json.loads(ws.receive_text())["state"]["status"] == "preparing"


def test_archived_session_stays_readable(client):
    session_id = start(client, mode="practice")["session_id"]
    client.post(f"{BASE}/{session_id}/begin")
    client.post(f"{BASE}/{session_id}/abort")

    state = client.get(f"{BASE}/{session_id}").json()
    assert state["status"] == "completed"
    assert state["state"]["end_reason"] == "aborted"
    assert client.post(f"{BASE}/{session_id}/pause").status_code == 409
    with client.websocket_connect(f"{BASE}/ws/{session_id}") as ws:
        assert "archived" in json.loads(ws.receive_text())["message"]


def test_follow_up_question_is_flagged(client):
    session_id = start(client, mode="practice", follow_ups=True)["session_id"]
    client.post(f"{BASE}/{session_id}/begin")
    data = client.post(f"{BASE}/{session_id}/answer", json={"text": "Maybe I will return, I am still thinking."}).json()
    assert data["next_question"]["follow_up"] is True
    assert data["next_question"]["category"] == "post_study"


def test_lifespan_does_not_build_an_unused_use_case(monkeypatch):
    monkeypatch.setattr(deps, "_use_case", None)
    with TestClient(prepare_app()):
        pass
    assert deps._use_case is None


async def test_lifespan_closes_existing_sessions(monkeypatch):
    use_case = InterviewUseCase(
        Settings(MISTRAL_API_KEY=None, TICK_INTERVAL_SECONDS=None),
        QuestionCatalog.default(),
        SessionStorage()
    )
    session_id, _ = await use_case.start_interview(SessionConfig(seed=2))
    await use_case.begin(session_id)
    engine = use_case.get_engine(session_id)
    monkeypatch.setattr(deps, "_use_case", use_case)

    deps.shutdown_use_case()
    assert use_case.list_sessions() == []
    assert not engine.timing.armed
