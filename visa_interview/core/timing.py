"""Per-question timers.

A single recurring tick drives every deadline of the current question, so a
session never holds more than one timer task. Deadlines are one-shot: the
supervisor disarms itself before invoking the finalize hook, and every arm,
cancel or suspend bumps a generation counter that retires the previous tick
loop.
"""
import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable

from visa_interview.core.models import FinalizeReason, Phase, PhaseState
from visa_interview.utils.logger import SessionEventLogger

Clock = Callable[[], float]
DeadlineHandler = Callable[[FinalizeReason], Awaitable[None]]
PhaseHandler = Callable[[PhaseState], Awaitable[None]]


@dataclass(frozen=True)
class TimingConfig:
    prep_seconds: float = 30.0
    answer_seconds: float = 30.0
    max_answer_seconds: float = 15.0
    silence_seconds: float = 3.0
    tick_interval: float | None = 0.25


class TimingSupervisor:
    def __init__(
        self,
        two_phase: bool,
        config: TimingConfig,
        on_deadline: DeadlineHandler,
        on_phase_change: PhaseHandler,
        clock: Clock = time.monotonic,
        events: SessionEventLogger | None = None
    ):
        self.two_phase = two_phase
        self.config = config
        self._on_deadline = on_deadline
        self._on_phase_change = on_phase_change
        self._clock = clock
        self.events = events or SessionEventLogger()

        self._armed = False
        self._suspended = False
        self._phase: Phase | None = None
        self._deadline = 0.0
        self._last_activity_at = 0.0
        self._remaining_on_suspend = 0.0
        self._quiet_on_suspend = 0.0

        self._generation = 0
        self._task: asyncio.Task | None = None
        self._callback_task: asyncio.Task | None = None

    @property
    def armed(self) -> bool:
        return self._armed

    @property
    def suspended(self) -> bool:
        return self._suspended

    @property
    def phase(self) -> Phase | None:
        return self._phase

    @property
    def last_activity_at(self) -> float:
        return self._last_activity_at

    def seconds_remaining(self) -> float:
        if not self._armed:
            return 0.0
        if self._suspended:
            return self._remaining_on_suspend
        return max(0.0, self._deadline - self._clock())

    def phase_state(self) -> PhaseState | None:
        if not self.two_phase or self._phase is None:
            return None
        return PhaseState(phase=self._phase, seconds_remaining=self.seconds_remaining())

    def accepts_transcript(self) -> bool:
        if not self._armed or self._suspended:
            return False
        return not (self.two_phase and self._phase == Phase.PREP)

    def arm(self) -> None:
        """Start the timers of a freshly posted question."""
        now = self._clock()
        self._armed = True
        self._suspended = False
        if self.two_phase:
            self._phase = Phase.PREP
            self._deadline = now + self.config.prep_seconds
        else:
            self._phase = Phase.ANSWER
            self._deadline = now + self.config.max_answer_seconds
            self._last_activity_at = now
        self.events.log("Timing", "Timers armed", {
            "phase": self._phase.value,
            "seconds": round(self._deadline - now, 3)
        })
        self._start_runner()

    async def start_answer_now(self) -> PhaseState:
        """Cancel the remaining prep countdown and open a full answer window."""
        return await self._open_answer_window(early=True)

    def record_activity(self) -> None:
        if self._armed and not self._suspended:
            self._last_activity_at = self._clock()

    def cancel(self) -> None:
        self._armed = False
        self._suspended = False
        self._phase = None
        self._stop_runner()

    def suspend(self) -> None:
        if not self._armed or self._suspended:
            return
        now = self._clock()
        self._remaining_on_suspend = max(0.0, self._deadline - now)
        self._quiet_on_suspend = max(0.0, now - self._last_activity_at)
        self._suspended = True
        self._stop_runner()
        self.events.log("Timing", "Timers suspended", {"remaining": round(self._remaining_on_suspend, 3)})

    def resume(self) -> None:
        if not self._armed or not self._suspended:
            return
        now = self._clock()
        self._deadline = now + self._remaining_on_suspend
        self._last_activity_at = now - self._quiet_on_suspend
        self._suspended = False
        self.events.log("Timing", "Timers resumed", {"remaining": round(self._remaining_on_suspend, 3)})
        self._start_runner()

    async def tick(self) -> None:
        if not self._armed or self._suspended:
            return
        now = self._clock()
        if self.two_phase:
            if now < self._deadline:
                return
            if self._phase == Phase.PREP:
                await self._open_answer_window(early=False)
                return
            await self._fire(FinalizeReason.ANSWER_EXPIRED)
            return

        if now >= self._deadline:
            await self._fire(FinalizeReason.MAX_DURATION)
        elif now - self._last_activity_at >= self.config.silence_seconds:
            await self._fire(FinalizeReason.SILENCE)

    async def _open_answer_window(self, early: bool) -> PhaseState:
        now = self._clock()
        self._phase = Phase.ANSWER
        self._deadline = now + self.config.answer_seconds
        self._last_activity_at = now
        state = PhaseState(phase=Phase.ANSWER, seconds_remaining=self.config.answer_seconds)
        self.events.log("Timing", "Answer window opened", {"early": early, "seconds": self.config.answer_seconds})
        if early:
            self._start_runner()
        await self._on_phase_change(state)
        return state

    async def _fire(self, reason: FinalizeReason) -> None:
        self._armed = False
        self.events.log("Timing", f"Deadline reached: {reason.value}")
        self._callback_task = asyncio.current_task()
        try:
            await self._on_deadline(reason)
        finally:
            self._callback_task = None

    def _start_runner(self) -> None:
        self._stop_runner()
        if self.config.tick_interval is None:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(self._generation))

    def _stop_runner(self) -> None:
        self._generation += 1
        task, self._task = self._task, None
        if task is None or task.done():
            return
        # The tick loop may be the caller (finalize runs inside its callback).
        if task is asyncio.current_task() or task is self._callback_task:
            return
        task.cancel()

    async def _run(self, generation: int) -> None:
        while generation == self._generation:
            await asyncio.sleep(self.config.tick_interval)
            if generation != self._generation:
                return
            try:
                await self.tick()
            except Exception as e:
                self.events.warning("Timing", f"Tick failed: {e!r}")
