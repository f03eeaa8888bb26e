import logging
import uuid
from typing import Any, Callable, Dict, List

from visa_interview.config.settings import Settings
from visa_interview.core.catalog import QuestionCatalog
from visa_interview.core.engine import InterviewEngine, Listener
from visa_interview.core.exceptions import InvalidTransitionError, SessionNotFoundError
from visa_interview.core.models import (
    BodyLanguageSample,
    PhaseState,
    QuestionRecord,
    ResponseRecord,
    SessionConfig,
    SessionEvent,
    TranscriptEvent,
)
from visa_interview.core.providers import ProviderChain
from visa_interview.core.scorer import ResponseScorer
from visa_interview.core.timing import TimingConfig
from visa_interview.storages.session_storage import SessionStorage
from visa_interview.utils.logger import SessionEventLogger

logger = logging.getLogger(__name__)

EngineFactory = Callable[[str, SessionConfig], InterviewEngine]


class InterviewUseCase:
    def __init__(self, settings: Settings, catalog: QuestionCatalog, storage: SessionStorage,
                 engine_factory: EngineFactory | None = None):
        self.settings = settings
        self.catalog = catalog
        self.storage = storage
        self.engine_factory = engine_factory or self._build_engine
        self.engines: Dict[str, InterviewEngine] = {}

    async def start_interview(self, config: SessionConfig, session_id: str | None = None) -> tuple:
        engine = self.create_engine(config, session_id)
        first_question = await engine.start()
        return engine.session.id, first_question

    def create_engine(self, config: SessionConfig, session_id: str | None = None) -> InterviewEngine:
        session_id = session_id or f"session_{uuid.uuid4().hex[:12]}"
        if config.mode is None:
            config.mode = self.settings.DEFAULT_MODE
        if config.route is None:
            config.route = self.settings.DEFAULT_ROUTE
        if config.follow_ups is None:
            config.follow_ups = self.settings.ENABLE_FOLLOW_UPS
        existing = self.engines.pop(session_id, None)
        if existing is not None:
            existing.close()
        engine = self.engine_factory(session_id, config)
        self._track(session_id, engine)
        return engine

    async def begin(self, session_id: str) -> QuestionRecord | None:
        return await self.get_engine(session_id).begin()

    async def answer(self, session_id: str, text: str | None = None) -> ResponseRecord | None:
        return await self.get_engine(session_id).answer(text)

    def ingest_transcript(self, session_id: str, event: TranscriptEvent) -> bool:
        return self.get_engine(session_id).ingest_transcript(event)

    def update_body_sample(self, session_id: str, sample: BodyLanguageSample) -> None:
        self.get_engine(session_id).update_body_sample(sample)

    async def start_answer_now(self, session_id: str) -> PhaseState:
        return await self.get_engine(session_id).start_answer_now()

    async def pause(self, session_id: str) -> None:
        await self.get_engine(session_id).pause()

    async def resume(self, session_id: str) -> None:
        await self.get_engine(session_id).resume()

    async def abort(self, session_id: str) -> None:
        await self.get_engine(session_id).abort()

    def subscribe(self, session_id: str, listener: Listener) -> Callable[[], None]:
        return self.get_engine(session_id).subscribe(listener)

    def get_state(self, session_id: str) -> Dict[str, Any]:
        engine = self.engines.get(session_id)
        if engine is not None:
            return engine.get_state()
        snapshot = self.storage.get(session_id)
        if snapshot is None:
            raise SessionNotFoundError(session_id)
        return dict(snapshot)

    def get_engine(self, session_id: str) -> InterviewEngine:
        engine = self.engines.get(session_id)
        if engine is not None:
            return engine
        snapshot = self.storage.get(session_id)
        if snapshot is not None:
            raise InvalidTransitionError(f"Session {session_id} is {snapshot['status']} and archived")
        raise SessionNotFoundError(session_id)

    def list_sessions(self) -> List[str]:
        return list(self.engines.keys())

    def delete_session(self, session_id: str) -> None:
        engine = self.engines.pop(session_id, None)
        if engine is None and not self.storage.exists(session_id):
            raise SessionNotFoundError(session_id)
        if engine is not None:
            engine.close()
        self.storage.delete(session_id)

    def shutdown(self) -> None:
        for engine in self.engines.values():
            engine.close()
        self.engines.clear()

    def _track(self, session_id: str, engine: InterviewEngine) -> None:
        """Keep an engine live until its session completes, then archive it."""
        self.engines[session_id] = engine

        async def archive(event: SessionEvent, payload: Dict[str, Any]) -> None:
            if event != SessionEvent.SESSION_COMPLETED:
                return
            if self.engines.get(session_id) is engine:
                del self.engines[session_id]
            engine.close()
            logger.info(f"Archived completed session {session_id} ({payload.get('reason')})")

        engine.subscribe(archive)

    def _build_engine(self, session_id: str, config: SessionConfig) -> InterviewEngine:
        events = SessionEventLogger(session_id, self.settings.LOG_DIR)
        scorer = ResponseScorer(
            ProviderChain.from_settings(self.settings, events),
            timeout=self.settings.SCORER_TIMEOUT_SECONDS,
            events=events
        )
        timing = TimingConfig(
            prep_seconds=self.settings.PREP_SECONDS,
            answer_seconds=self.settings.ANSWER_SECONDS,
            max_answer_seconds=self.settings.MAX_ANSWER_SECONDS,
            silence_seconds=self.settings.SILENCE_SECONDS,
            tick_interval=self.settings.TICK_INTERVAL_SECONDS
        )
        return InterviewEngine(
            session_id=session_id,
            config=config,
            catalog=self.catalog,
            repository=self.storage,
            scorer=scorer,
            timing=timing,
            events=events,
            max_persist_retries=self.settings.PERSIST_MAX_RETRIES
        )
