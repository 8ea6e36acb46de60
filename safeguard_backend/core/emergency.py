from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable

from core import config
from core.confirmation import ConfirmationSession
from core.contacts import has_reachable_contact
from core.errors import LocationRequiredError, NoReachableContactError, SafeGuardError
from core.motion import MotionTriggerSource
from core.notifier import Notifier
from core.pipeline import IncidentSubmissionPipeline
from core.position import PositionSource
from core.record_store import RecordStore
from core.risk_classifier import RiskClassifier
from core.submission_guard import SubmissionGuard
from core.ttl_store import TTLStore
from schemas.emergency import Outcome, SessionSnapshot, SubmissionResult, TriggerSource
from schemas.sensor_payload import MotionEventType, MotionSample

logger = logging.getLogger(__name__)


@dataclass
class UserEmergencyContext:
    """Everything one user's device session owns."""

    user_id: str
    position: PositionSource
    motion: MotionTriggerSource
    pipeline: IncidentSubmissionPipeline
    session: ConfirmationSession
    pending_trigger: asyncio.Task | None = None


class EmergencyService:
    """
    Per-user registry wiring position → trigger → countdown → submission.

    The classifier, record store, notifier and the submission-marker store
    are shared by every user; sessions, pipelines and sensors are per user.
    """

    def __init__(
        self,
        store: RecordStore,
        classifier: RiskClassifier,
        notifier: Notifier,
        markers: TTLStore | None = None,
        countdown: float = config.COUNTDOWN_SECONDS,
        poll_interval: float = config.COUNTDOWN_POLL_SEC,
        cooldown: float = config.SUBMIT_COOLDOWN_SEC,
        require_contact: bool = config.REQUIRE_REACHABLE_CONTACT,
        movement_window: float = config.MOVEMENT_WINDOW_SEC,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.classifier = classifier
        self.notifier = notifier
        self.markers = markers if markers is not None else TTLStore(clock=clock)
        self.countdown = countdown
        self.poll_interval = poll_interval
        self.cooldown = cooldown
        self.require_contact = require_contact
        self.movement_window = movement_window
        self._clock = clock
        self._contexts: dict[str, UserEmergencyContext] = {}

    def context(self, user_id: str) -> UserEmergencyContext:
        ctx = self._contexts.get(user_id)
        if ctx is not None:
            return ctx

        pipeline = IncidentSubmissionPipeline(
            user_id=user_id,
            classifier=self.classifier,
            store=self.store,
            notifier=self.notifier,
            guard=SubmissionGuard(user_id, self.markers, cooldown=self.cooldown, clock=self._clock),
        )
        position = PositionSource()
        ctx = UserEmergencyContext(
            user_id=user_id,
            position=position,
            motion=MotionTriggerSource(clock=self._clock),
            pipeline=pipeline,
            session=ConfirmationSession(
                on_confirm=lambda: self._submit(user_id),
                countdown=self.countdown,
                poll_interval=self.poll_interval,
                clock=self._clock,
            ),
        )
        ctx.motion.set_callback(lambda event: self._on_motion(ctx, event))
        self._contexts[user_id] = ctx
        return ctx

    async def trigger(
        self,
        user_id: str,
        source: TriggerSource = TriggerSource.MANUAL,
        countdown: float | None = None,
    ) -> SessionSnapshot:
        """Open the confirmation countdown (manual button or motion event)."""
        ctx = self.context(user_id)
        if ctx.position.latest is None:
            raise LocationRequiredError()
        if self.require_contact and not await has_reachable_contact(self.store, user_id):
            raise NoReachableContactError()
        ctx.session.open(has_fix=True, source=source, countdown=countdown)
        return ctx.session.snapshot()

    async def confirm(self, user_id: str) -> SessionSnapshot:
        ctx = self.context(user_id)
        await ctx.session.confirm()
        return ctx.session.snapshot()

    def cancel(self, user_id: str) -> SessionSnapshot:
        ctx = self.context(user_id)
        ctx.session.cancel()
        return ctx.session.snapshot()

    def snapshot(self, user_id: str) -> SessionSnapshot:
        return self.context(user_id).session.snapshot()

    async def handle_motion(self, user_id: str, sample: MotionSample) -> MotionEventType | None:
        ctx = self.context(user_id)
        event = ctx.motion.process(sample)
        pending, ctx.pending_trigger = ctx.pending_trigger, None
        if pending is not None:
            await pending
        return event

    async def aclose(self) -> None:
        for ctx in self._contexts.values():
            await ctx.session.aclose()

    def _on_motion(self, ctx: UserEmergencyContext, event: MotionEventType) -> None:
        source = TriggerSource(event.value)
        ctx.pending_trigger = asyncio.get_running_loop().create_task(self._trigger_from_motion(ctx.user_id, source))

    async def _trigger_from_motion(self, user_id: str, source: TriggerSource) -> None:
        try:
            await self.trigger(user_id, source)
        except SafeGuardError as exc:
            logger.warning("Motion trigger (%s) for %s not opened: %s", source.value, user_id, exc)

    async def _submit(self, user_id: str) -> SubmissionResult:
        ctx = self.context(user_id)
        fix = ctx.position.latest
        if fix is None:
            return SubmissionResult(outcome=Outcome.FAILURE, message=str(LocationRequiredError()))
        prev = ctx.position.recent_previous(self.movement_window)
        return await ctx.pipeline.submit(
            latitude=fix.latitude,
            longitude=fix.longitude,
            speed=fix.speed_kmh,
            previous_latitude=prev.latitude if prev else None,
            previous_longitude=prev.longitude if prev else None,
        )
