from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable

from core.errors import InvalidTransitionError, NotFoundError, PermissionDeniedError
from core.identity import Identity
from core.record_store import ACCIDENTS, RecordStore
from schemas.incident import Incident, IncidentStats, IncidentStatus, IncidentUpdate, RiskLevel


async def list_user_incidents(store: RecordStore, user_id: str) -> list[Incident]:
    rows = await store.query(ACCIDENTS, {"user_id": user_id}, order_by="detected_at", descending=True)
    return [Incident.model_validate(r) for r in rows]


async def list_all_incidents(store: RecordStore, status: IncidentStatus | None = None) -> list[Incident]:
    filters = {"status": status} if status is not None else None
    rows = await store.query(ACCIDENTS, filters, order_by="detected_at", descending=True)
    return [Incident.model_validate(r) for r in rows]


def incident_stats(incidents: Iterable[Incident]) -> IncidentStats:
    stats = IncidentStats()
    for it in incidents:
        stats.total += 1
        if it.status == IncidentStatus.PENDING:
            stats.pending += 1
        elif it.status == IncidentStatus.RESPONDED:
            stats.responded += 1
        else:
            stats.resolved += 1
        if it.risk_level == RiskLevel.HIGH:
            stats.high_risk += 1
        elif it.risk_level == RiskLevel.MEDIUM:
            stats.medium_risk += 1
        else:
            stats.low_risk += 1
    return stats


async def advance_status(
    store: RecordStore,
    identity: Identity,
    incident_id: str,
    update: IncidentUpdate,
    now: datetime | None = None,
) -> Incident:
    """
    Operator triage. Status only moves forward (pending → responded →
    resolved) and each step stamps its timestamp, so responded_at is set iff
    status >= responded and resolved_at iff status == resolved. A resolved
    incident is closed to further writes, notes included.
    """
    if not identity.is_admin:
        raise PermissionDeniedError("Only operators can update incidents")

    row = await store.get(ACCIDENTS, incident_id)
    if row is None:
        raise NotFoundError(f"Incident {incident_id} not found")
    incident = Incident.model_validate(row)

    if incident.status == IncidentStatus.RESOLVED:
        raise InvalidTransitionError("Incident is already resolved")

    patch: dict = {}
    if update.status is not None:
        if update.status.rank <= incident.status.rank:
            raise InvalidTransitionError(
                f"Cannot move incident from {incident.status.value} to {update.status.value}"
            )
        now = now or datetime.now(timezone.utc)
        patch["status"] = update.status
        if incident.responded_at is None:
            # pending → resolved counts as responded at the same moment
            patch["responded_at"] = now
        if update.status == IncidentStatus.RESOLVED:
            patch["resolved_at"] = now
    if update.notes is not None:
        patch["notes"] = update.notes.strip() or None

    if not patch:
        return incident
    return Incident.model_validate(await store.update(ACCIDENTS, incident_id, patch))
