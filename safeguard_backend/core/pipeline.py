from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum

from core.notifier import Notifier
from core.record_store import ACCIDENTS, RecordStore
from core.risk_classifier import RiskClassifier
from core.submission_guard import SubmissionGuard
from schemas.classification import ClassificationResult, ClassifyRequest
from schemas.emergency import Outcome, SubmissionResult
from schemas.incident import Incident, IncidentStatus, RiskLevel
from schemas.notification import NotificationRequest

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    IDLE = "idle"
    CLASSIFYING = "classifying"
    PERSISTING = "persisting"
    NOTIFYING = "notifying"
    DONE = "done"


def local_fallback_tier(speed: float) -> RiskLevel:
    """Speed-only tier used when the classifier itself blows up."""
    if speed > 50:
        return RiskLevel.HIGH
    if speed > 20:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


class IncidentSubmissionPipeline:
    """
    Classify → persist → notify for one user's confirmed emergency.

    Only a persistence failure fails the submission. A broken classifier
    degrades to a speed-based tier, a failed notification downgrades the
    outcome to partial success, and the incident stays saved either way.
    """

    def __init__(
        self,
        user_id: str,
        classifier: RiskClassifier,
        store: RecordStore,
        notifier: Notifier,
        guard: SubmissionGuard,
    ) -> None:
        self.user_id = user_id
        self.classifier = classifier
        self.store = store
        self.notifier = notifier
        self.guard = guard
        self.stage = Stage.IDLE
        self.in_flight = False

    async def submit(
        self,
        latitude: float,
        longitude: float,
        speed: float | None = None,
        previous_latitude: float | None = None,
        previous_longitude: float | None = None,
        detected_at: datetime | None = None,
    ) -> SubmissionResult:
        # Both guards are checked and the marker written before the first await.
        if self.guard.recently_submitted():
            logger.info("Emergency confirm ignored for %s (recently sent)", self.user_id)
            return SubmissionResult(outcome=Outcome.SUPPRESSED, message="Emergency already reported")
        if self.in_flight:
            logger.info("Emergency confirm ignored for %s (already reporting)", self.user_id)
            return SubmissionResult(outcome=Outcome.SUPPRESSED, message="Emergency report in progress")
        self.guard.mark()
        self.in_flight = True

        spd = max(speed or 0.0, 0.0)
        detected_at = detected_at or datetime.now().astimezone()
        try:
            self.stage = Stage.CLASSIFYING
            risk_level, classification = await self._classify(
                ClassifyRequest(
                    speed=spd,
                    latitude=latitude,
                    longitude=longitude,
                    timestamp=detected_at,
                    previous_latitude=previous_latitude,
                    previous_longitude=previous_longitude,
                )
            )
            if classification is not None:
                note = (
                    f"Risk classified as {risk_level.value.upper()} "
                    f"({round(classification.confidence * 100)}% confidence, {classification.source.value})"
                )
            else:
                note = f"Risk estimated as {risk_level.value.upper()} from speed (classifier unavailable)"

            self.stage = Stage.PERSISTING
            incident = Incident(
                user_id=self.user_id,
                latitude=latitude,
                longitude=longitude,
                speed=spd,
                risk_level=risk_level,
                status=IncidentStatus.PENDING,
                detected_at=detected_at,
            )
            try:
                row = await self.store.insert(ACCIDENTS, incident.model_dump())
            except Exception:
                logger.exception("Error reporting accident for %s", self.user_id)
                return SubmissionResult(
                    outcome=Outcome.FAILURE,
                    message="Failed to report emergency.",
                    risk_level=risk_level,
                    classification_note=note,
                )
            incident = Incident.model_validate(row)

            self.stage = Stage.NOTIFYING
            try:
                report = await self.notifier.dispatch(
                    NotificationRequest(
                        user_id=self.user_id,
                        message="Emergency Alert",
                        latitude=latitude,
                        longitude=longitude,
                        accident_id=incident.id,
                    )
                )
                notified, notification_note = report.success, report.message
            except Exception as exc:
                logger.warning("Email notification error: %s", exc)
                notified, notification_note = False, str(exc)

            if notified:
                return SubmissionResult(
                    outcome=Outcome.SUCCESS,
                    message=f"Emergency reported. {notification_note}",
                    incident=incident,
                    risk_level=risk_level,
                    classification_note=note,
                    notification_note=notification_note,
                )
            logger.warning("Notification failed for incident %s: %s", incident.id, notification_note)
            return SubmissionResult(
                outcome=Outcome.PARTIAL,
                message="Alert saved but notification failed.",
                incident=incident,
                risk_level=risk_level,
                classification_note=note,
                notification_note=notification_note,
            )
        finally:
            self.stage = Stage.DONE
            self.in_flight = False

    async def _classify(self, request: ClassifyRequest) -> tuple[RiskLevel, ClassificationResult | None]:
        try:
            result = await self.classifier.classify(request)
        except Exception as exc:
            logger.warning("AI classification failed, using fallback: %s", exc)
            return local_fallback_tier(request.speed or 0.0), None
        return RiskLevel(result.risk_level), result
