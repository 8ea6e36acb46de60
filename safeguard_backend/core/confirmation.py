"""
Countdown-to-auto-confirm workflow for one user.

Closed → Open → (Confirmed | Cancelled) → Closed

The countdown is never a decrementing counter: every wake recomputes the
remaining time from an absolute wall-clock deadline, and the next wake is
scheduled at min(poll interval, remaining). A loop that was suspended and
resumes late therefore fires immediately instead of drifting.

`has_fired` is set synchronously, before the first await, so an explicit
confirm and the countdown expiring in the same tick submit exactly once.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable

from core import config
from core.errors import LocationRequiredError
from schemas.emergency import Outcome, SessionSnapshot, SessionState, SubmissionResult, TriggerSource

logger = logging.getLogger(__name__)

SubmitCallback = Callable[[], Awaitable[SubmissionResult]]


class ConfirmationSession:
    def __init__(
        self,
        on_confirm: SubmitCallback,
        countdown: float = config.COUNTDOWN_SECONDS,
        poll_interval: float = config.COUNTDOWN_POLL_SEC,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._on_confirm = on_confirm
        self.default_countdown = countdown
        self.poll_interval = poll_interval
        self._clock = clock

        self.state = SessionState.CLOSED
        self.source: TriggerSource | None = None
        self.duration: float = countdown
        self.deadline: float | None = None
        self.has_fired = False
        self.is_loading = False
        self.last_result: SubmissionResult | None = None

        self._generation = 0
        self._countdown_task: asyncio.Task | None = None

    # --- state queries ---

    @property
    def is_open(self) -> bool:
        return self.state == SessionState.OPEN

    @property
    def can_confirm(self) -> bool:
        return self.is_open and not self.has_fired and not self.is_loading

    can_cancel = can_confirm

    def remaining(self) -> float:
        if not self.is_open or self.deadline is None:
            return 0.0
        return max(0.0, self.deadline - self._clock())

    def snapshot(self) -> SessionSnapshot:
        remaining = self.remaining()
        progress = 0.0
        if self.is_open and self.duration > 0:
            progress = min(100.0, (self.duration - remaining) / self.duration * 100)
        return SessionSnapshot(
            state=self.state,
            source=self.source,
            remaining=round(remaining, 3),
            progress=round(progress, 1),
            is_loading=self.is_loading,
            can_confirm=self.can_confirm,
            can_cancel=self.can_cancel,
            last_result=self.last_result,
        )

    # --- transitions ---

    def open(
        self,
        has_fix: bool,
        source: TriggerSource = TriggerSource.MANUAL,
        countdown: float | None = None,
    ) -> bool:
        """
        Closed → Open. Needs a current position fix.
        Returns False when a session is already open or still submitting.
        """
        if not has_fix:
            raise LocationRequiredError()
        if self.state != SessionState.CLOSED:
            logger.info("Trigger (%s) ignored, session is %s", source.value, self.state.value)
            return False

        self._cancel_countdown()
        self._generation += 1
        self.state = SessionState.OPEN
        self.source = source
        self.duration = countdown if countdown is not None else self.default_countdown
        self.deadline = self._clock() + self.duration
        self.has_fired = False
        self.is_loading = False
        self.last_result = None
        logger.info("Emergency session opened (%s), %.0fs countdown", source.value, self.duration)

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None  # driven manually through tick()
        if loop is not None:
            self._countdown_task = loop.create_task(self._run_countdown(self._generation))
        return True

    async def tick(self) -> float:
        """One poll step: recompute remaining time from the deadline, fire on expiry."""
        if not self.is_open:
            return 0.0
        remaining = self.remaining()
        if remaining <= 0:
            await self._fire("countdown expired")
        return remaining

    async def confirm(self) -> SubmissionResult | None:
        """Explicit confirm. None when the session is not open or already fired."""
        return await self._fire("confirmed by user")

    def cancel(self) -> bool:
        """Open → Cancelled → Closed. A no-op once confirmation has started."""
        if not self.is_open or self.has_fired:
            return False
        self.state = SessionState.CANCELLED
        self._cancel_countdown()
        self.deadline = None
        logger.info("Emergency alert cancelled")
        self.state = SessionState.CLOSED
        return True

    async def aclose(self) -> None:
        task = self._countdown_task
        if task is None:
            return
        if not self.is_loading:
            self._cancel_countdown()
        # an auto-confirm submission running inside the task is awaited, not cancelled
        await asyncio.gather(task, return_exceptions=True)

    # --- internals ---

    async def _run_countdown(self, generation: int) -> None:
        try:
            while self._generation == generation and self.is_open:
                remaining = await self.tick()
                if not self.is_open:
                    return
                await asyncio.sleep(min(self.poll_interval, remaining))
        finally:
            if self._countdown_task is _current_task_or_none():
                self._countdown_task = None

    async def _fire(self, reason: str) -> SubmissionResult | None:
        if not self.is_open or self.has_fired:
            return None
        self.has_fired = True
        self.state = SessionState.CONFIRMED
        self.is_loading = True
        logger.info("Emergency %s, submitting", reason)
        self._cancel_countdown()

        try:
            result = await self._on_confirm()
        except Exception:
            logger.exception("Emergency submission raised")
            result = SubmissionResult(outcome=Outcome.FAILURE, message="Failed to report emergency.")
        finally:
            # closes regardless of outcome; a failure never reopens the countdown
            self.is_loading = False
            self.deadline = None
            self.state = SessionState.CLOSED

        self.last_result = result
        return result

    def _cancel_countdown(self) -> None:
        task = self._countdown_task
        if task is None or task is _current_task_or_none():
            # the countdown itself is firing; _run_countdown drops the reference on exit
            return
        self._countdown_task = None
        if not task.done():
            task.cancel()


def _current_task_or_none() -> asyncio.Task | None:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
