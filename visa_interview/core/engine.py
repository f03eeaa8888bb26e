import time
from dataclasses import asdict
from typing import Any, Awaitable, Callable, Dict, List

from visa_interview.core.aggregator import FinalAggregator
from visa_interview.core.answer_rules import detect_context_flags
from visa_interview.core.body_language import BodyLanguageSampler, LatestBodySampler
from visa_interview.core.catalog import QuestionCatalog
from visa_interview.core.exceptions import (
    FinalizationRaceViolation,
    InvalidTransitionError,
)
from visa_interview.core.models import (
    NO_RESPONSE,
    BodyLanguageSample,
    ExhaustionSignal,
    FinalizeReason,
    InterviewSession,
    Phase,
    PhaseState,
    QuestionRecord,
    ResponseRecord,
    SessionConfig,
    SessionContext,
    SessionEvent,
    SessionStatus,
    TranscriptEvent,
    utcnow,
)
from visa_interview.core.modes import resolve_mode, resolve_route
from visa_interview.core.providers import ProviderChain
from visa_interview.core.scorer import ResponseScorer
from visa_interview.core.selector import AdaptiveQuestionSelector, RandomSource, SeededRandom
from visa_interview.core.timing import Clock, TimingConfig, TimingSupervisor
from visa_interview.core.transcript import TranscriptBuffer, normalize_answer
from visa_interview.storages.session_storage import SessionRepository
from visa_interview.utils.logger import SessionEventLogger

Listener = Callable[[SessionEvent, Dict[str, Any]], Awaitable[None]]

SAVE_FAILED_NOTICE = "Could not save progress. Your interview continues, but recent answers may be missing."


class InterviewEngine:
    """State machine for one interview session.

    preparing -> active <-> paused -> completed. Every finalize path (explicit
    answer, max duration, silence, answer-window expiry) goes through
    ``_finalize``, which is guarded by a processing flag set before the first
    await so that one question yields exactly one response.
    """

    def __init__(
        self,
        session_id: str,
        config: SessionConfig,
        catalog: QuestionCatalog,
        repository: SessionRepository,
        scorer: ResponseScorer | None = None,
        sampler: BodyLanguageSampler | None = None,
        timing: TimingConfig | None = None,
        clock: Clock = time.monotonic,
        rng: RandomSource | None = None,
        events: SessionEventLogger | None = None,
        max_persist_retries: int = 3
    ):
        self.events = events or SessionEventLogger(session_id)
        self.catalog = catalog
        self.repository = repository
        self.route = resolve_route(config.route)
        self.mode = resolve_mode(config.mode)

        focus = config.topic_focus if config.topic_focus in catalog.categories() else None
        if config.topic_focus and focus is None:
            self.events.warning("Engine", f"Unknown topic focus {config.topic_focus!r} ignored")

        self.context = SessionContext(
            mode=self.mode,
            route=self.route,
            degree_level=config.degree_level,
            target_difficulty=config.target_difficulty,
            topic_focus=focus,
            difficulty_policy=config.difficulty_policy,
            allow_quota_overflow=config.allow_quota_overflow,
            follow_ups=bool(config.follow_ups)
        )
        self.session = InterviewSession(
            id=session_id,
            route=self.route.name,
            mode=self.mode.name,
            candidate_name=config.candidate_name
        )

        self.selector = AdaptiveQuestionSelector(rng or SeededRandom(config.seed), self.events)
        self.scorer = scorer or ResponseScorer(ProviderChain([], self.events), events=self.events)
        self.aggregator = FinalAggregator()
        self.sampler = sampler or LatestBodySampler()
        self.transcript = TranscriptBuffer()
        self.timing = TimingSupervisor(
            two_phase=self.route.two_phase,
            config=timing or TimingConfig(),
            on_deadline=self._on_deadline,
            on_phase_change=self._on_phase_change,
            clock=clock,
            events=self.events
        )
        self.max_persist_retries = max(1, max_persist_retries)

        self._listeners: List[Listener] = []
        self._pending_question: QuestionRecord | None = None
        self._started = False
        self._processing = False
        self._abort_requested = False
        self._closed = False

    @property
    def processing(self) -> bool:
        return self._processing

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def start(self) -> QuestionRecord | None:
        """Select the first question for the briefing; it is posted by ``begin``."""
        if self._started:
            raise InvalidTransitionError("Session already started")
        self._started = True
        result = self.selector.select_next(self.context, self.catalog)
        if isinstance(result, ExhaustionSignal):
            self.events.warning("Engine", f"No question available at start: {result.reason}")
        else:
            self._pending_question = result
        self.events.log("Engine", "Session created", {
            "route": self.route.name,
            "mode": self.mode.name,
            "question_count": self.mode.question_count
        })
        await self._persist("session", lambda: self.repository.save_session(self.session))
        return self._pending_question

    async def begin(self) -> QuestionRecord | None:
        self._require(SessionStatus.PREPARING, "begin")
        if not self._started:
            await self.start()
        self._set_status(SessionStatus.ACTIVE, "begin")
        self.session.started_at = utcnow()

        question, self._pending_question = self._pending_question, None
        if question is None:
            await self._complete("question pool exhausted")
            return None
        await self._post(question)
        return question

    async def answer(self, text: str | None = None) -> ResponseRecord | None:
        """Finalize the current question with ``text`` or the transcript snapshot."""
        self._require(SessionStatus.ACTIVE, "answer")
        return await self._finalize(FinalizeReason.SUBMITTED, text)

    def ingest_transcript(self, event: TranscriptEvent) -> bool:
        if self.session.status != SessionStatus.ACTIVE or self._processing:
            return False
        if not self.timing.accepts_transcript():
            return False
        changed = self.transcript.ingest(event)
        if changed:
            self.timing.record_activity()
        return changed

    def update_body_sample(self, sample: BodyLanguageSample) -> None:
        if not isinstance(self.sampler, LatestBodySampler):
            raise InvalidTransitionError("Body-language sampler does not accept pushed samples")
        self.sampler.update(sample)

    async def start_answer_now(self) -> PhaseState:
        self._require(SessionStatus.ACTIVE, "start answer")
        if not self.route.two_phase:
            raise InvalidTransitionError(f"Route {self.route.name} has no preparation phase")
        if self._processing or self.timing.phase != Phase.PREP:
            raise InvalidTransitionError("Early start is only possible during preparation")
        return await self.timing.start_answer_now()

    async def pause(self) -> None:
        self._require(SessionStatus.ACTIVE, "pause")
        if self._processing:
            raise InvalidTransitionError("Cannot pause while an answer is being processed")
        self.timing.suspend()
        self._set_status(SessionStatus.PAUSED, "operator pause")
        await self._persist("session", lambda: self.repository.save_session(self.session))

    async def resume(self) -> None:
        self._require(SessionStatus.PAUSED, "resume")
        self._set_status(SessionStatus.ACTIVE, "operator resume")
        self.timing.resume()
        await self._persist("session", lambda: self.repository.save_session(self.session))

    async def abort(self) -> None:
        if self.session.status == SessionStatus.COMPLETED:
            raise InvalidTransitionError("Session already completed")
        self.timing.cancel()
        if self._processing:
            self._abort_requested = True
            return
        await self._complete("aborted")

    def close(self) -> None:
        """Teardown without completing: cancel every pending timer."""
        self._closed = True
        self.timing.cancel()

    def get_state(self) -> Dict[str, Any]:
        state = self.session.to_dict()
        phase = self.timing.phase_state()
        state.update({
            "route_label": self.route.label,
            "two_phase": self.route.two_phase,
            "mode_config": self.mode.to_dict(),
            "current_index": self.context.current_index,
            "category_counts": dict(self.context.category_counts),
            "asked_question_ids": sorted(self.context.asked_question_ids),
            "asked_clusters": sorted(self.context.asked_clusters),
            "context_flags": sorted(self.context.context_flags),
            "follow_ups": self.context.follow_ups,
            "topic_focus": self.context.topic_focus,
            "target_difficulty": self.context.target_difficulty.value if self.context.target_difficulty else None,
            "current_question": self.session.current_question.to_dict() if self.session.current_question else None,
            "pending_question": self._pending_question.to_dict() if self._pending_question else None,
            "phase": {"phase": phase.phase.value, "seconds_remaining": phase.seconds_remaining} if phase else None,
            "seconds_remaining": self.timing.seconds_remaining(),
            "transcript": self.transcript.snapshot(),
            "processing": self._processing
        })
        return state

    async def _on_deadline(self, reason: FinalizeReason) -> None:
        await self._finalize(reason, None)

    async def _on_phase_change(self, state: PhaseState) -> None:
        if state.phase == Phase.ANSWER:
            self.transcript.reset()
        await self._notify(SessionEvent.PHASE_CHANGED, {
            "phase": state.phase.value,
            "seconds_remaining": state.seconds_remaining
        })

    async def _finalize(self, reason: FinalizeReason, text: str | None) -> ResponseRecord | None:
        if self._processing:
            self.events.log("Engine", "Finalize ignored, already processing", {"reason": reason.value})
            return None
        question = self.session.current_question
        if self.session.status != SessionStatus.ACTIVE or question is None:
            return None

        self._processing = True
        try:
            index = len(self.session.questions) - 1
            self.timing.cancel()
            body_sample = self.sampler.sample()
            transcript = normalize_answer(text if text is not None else self.transcript.snapshot())
            confidence = self.transcript.confidence
            self.events.log("Engine", f"Finalizing question {index + 1}", {
                "reason": reason.value,
                "words": len(transcript.split())
            })

            analysis = await self.scorer.score(question, transcript, body_sample, confidence, self._history())
            if len(self.session.responses) != index:
                raise FinalizationRaceViolation(f"Question {index} already has a response")

            response = ResponseRecord(
                question=question,
                transcript=transcript,
                analysis=analysis,
                body_sample=body_sample,
                stt_confidence=confidence,
                finalize_reason=reason
            )
            self.session.responses.append(response)
            if transcript != NO_RESPONSE:
                self.context.context_flags |= detect_context_flags([transcript])
            self.transcript.reset()
            await self._persist("response", lambda: self.repository.save_response(self.session.id, index, response))
            await self._notify(SessionEvent.RESPONSE_SCORED, {"index": index, "response": response.to_dict()})
        finally:
            self._processing = False

        await self._advance(response)
        return response

    async def _advance(self, last: ResponseRecord) -> None:
        if self._closed:
            return
        if self._abort_requested:
            await self._complete("aborted")
            return
        if self.context.current_index >= self.mode.question_count:
            await self._complete("question count reached")
            return
        follow_up = self.selector.select_follow_up(self.context, last.question, last.transcript)
        if follow_up is not None:
            await self._post(follow_up)
            return
        result = self.selector.select_next(self.context, self.catalog)
        if isinstance(result, ExhaustionSignal):
            self.events.log("Engine", f"Ending early: {result.reason}", {"asked": result.asked, "target": result.target})
            await self._complete(result.reason)
            return
        await self._post(result)

    async def _post(self, question: QuestionRecord) -> None:
        self.session.questions.append(question)
        self.transcript.reset()
        self.timing.arm()
        index = len(self.session.questions) - 1
        self.events.log("Engine", f"Posted question {index + 1}/{self.mode.question_count}", {"id": question.id})
        await self._persist("session", lambda: self.repository.save_session(self.session))
        phase = self.timing.phase_state()
        await self._notify(SessionEvent.QUESTION_POSTED, {
            "index": index,
            "question": question.to_dict(),
            "phase": phase.phase.value if phase else None,
            "seconds_remaining": self.timing.seconds_remaining()
        })

    async def _complete(self, reason: str) -> None:
        self.timing.cancel()
        self._set_status(SessionStatus.COMPLETED, reason)
        self.session.ended_at = utcnow()
        self.session.end_reason = reason
        self.session.score = self.aggregator.aggregate(self.session.responses)
        self.events.log("Aggregator", f"Final score {self.session.score.overall}", asdict(self.session.score))
        self.events.set_final_aggregate(asdict(self.session.score))
        await self._persist("session", lambda: self.repository.save_session(self.session))
        await self._notify(SessionEvent.SESSION_COMPLETED, {
            "score": asdict(self.session.score),
            "answered": len(self.session.responses),
            "reason": reason
        })

    async def _persist(self, what: str, operation: Callable[[], None]) -> bool:
        for attempt in range(1, self.max_persist_retries + 1):
            try:
                operation()
                return True
            except Exception as e:
                self.events.warning("Storage", f"Saving {what} failed (attempt {attempt}/{self.max_persist_retries}): {e}")
        if SAVE_FAILED_NOTICE not in self.session.notices:
            self.session.notices.append(SAVE_FAILED_NOTICE)
        await self._notify(SessionEvent.PERSISTENCE_FAILED, {"record": what, "message": SAVE_FAILED_NOTICE})
        return False

    async def _notify(self, event: SessionEvent, payload: Dict[str, Any]) -> None:
        for listener in list(self._listeners):
            try:
                await listener(event, payload)
            except Exception as e:
                self.events.warning("Engine", f"Listener failed on {event.value}: {e}")

    def _history(self) -> List[Dict[str, str]]:
        return [{"question": r.question.text, "answer": r.transcript} for r in self.session.responses]

    def _require(self, status: SessionStatus, operation: str) -> None:
        if self.session.status != status:
            raise InvalidTransitionError(
                f"Cannot {operation} while session is {self.session.status.value}"
            )

    def _set_status(self, status: SessionStatus, reason: str) -> None:
        previous = self.session.status
        self.session.status = status
        self.events.log_state_transition(previous.value, status.value, reason)
