import asyncio
from typing import Any, Dict, List, Tuple

import pytest

from visa_interview.core.catalog import QuestionCatalog
from visa_interview.core.engine import InterviewEngine
from visa_interview.core.models import Analysis, SessionConfig, SessionEvent
from visa_interview.core.timing import TimingConfig
from visa_interview.storages.session_storage import SessionStorage


class FakeClock:
    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SlowScorer:
    """Scorer stub that yields to the loop before answering."""

    def __init__(self, delay: float = 0.05, overall: int = 70):
        self.delay = delay
        self.overall = overall
        self.calls = 0

    async def score(self, question, transcript, body_sample=None, stt_confidence=None, history=None) -> Analysis:
        self.calls += 1
        await asyncio.sleep(self.delay)
        return Analysis(
            overall=self.overall,
            categories={"content": self.overall, "speech": self.overall, "body_language": 50},
            source="stub"
        )


class EventRecorder:
    def __init__(self):
        self.events: List[Tuple[SessionEvent, Dict[str, Any]]] = []

    async def __call__(self, event: SessionEvent, payload: Dict[str, Any]) -> None:
        self.events.append((event, payload))

    def of(self, event: SessionEvent) -> List[Dict[str, Any]]:
        return [payload for name, payload in self.events if name == event]


@pytest.fixture(scope="session")
def catalog():
    return QuestionCatalog.default()


@pytest.fixture
def storage():
    return SessionStorage()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def recorder():
    return EventRecorder()


@pytest.fixture
def make_engine(catalog, storage, clock):
    def _make(route: str = "usa_f1", mode: str = "standard", seed: int = 7, scorer=None,
              repository=None, session_id: str = "test-session", **options) -> InterviewEngine:
        config = SessionConfig(route=route, mode=mode, seed=seed, **options)
        return InterviewEngine(
            session_id=session_id,
            config=config,
            catalog=catalog,
            repository=repository or storage,
            scorer=scorer,
            timing=TimingConfig(tick_interval=None),
            clock=clock
        )

    return _make


@pytest.fixture
def slow_scorer():
    return SlowScorer()
