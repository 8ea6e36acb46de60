"""
Emergency confirmation flow.

POST /emergency/trigger opens a countdown (default 15 s). The client polls
GET /emergency/session to render the remaining time; when it reaches zero the
alert is submitted automatically. /confirm submits immediately, /cancel
aborts while the countdown is still running.
"""

from typing import Optional

from fastapi import APIRouter, Depends

from core.emergency import EmergencyService
from core.identity import Identity, get_identity
from core.services import get_emergency_service
from schemas.emergency import SessionSnapshot, TriggerRequest, TriggerSource

router = APIRouter(prefix="/emergency", tags=["emergency"])


@router.post("/trigger", response_model=SessionSnapshot)
async def trigger_emergency(
    request: Optional[TriggerRequest] = None,
    identity: Identity = Depends(get_identity),
    service: EmergencyService = Depends(get_emergency_service),
) -> SessionSnapshot:
    countdown = request.countdown_seconds if request else None
    return await service.trigger(identity.user_id, TriggerSource.MANUAL, countdown)


@router.post("/confirm", response_model=SessionSnapshot)
async def confirm_emergency(
    identity: Identity = Depends(get_identity),
    service: EmergencyService = Depends(get_emergency_service),
) -> SessionSnapshot:
    return await service.confirm(identity.user_id)


@router.post("/cancel", response_model=SessionSnapshot)
async def cancel_emergency(
    identity: Identity = Depends(get_identity),
    service: EmergencyService = Depends(get_emergency_service),
) -> SessionSnapshot:
    return service.cancel(identity.user_id)


@router.get("/session", response_model=SessionSnapshot)
async def get_session(
    identity: Identity = Depends(get_identity),
    service: EmergencyService = Depends(get_emergency_service),
) -> SessionSnapshot:
    return service.snapshot(identity.user_id)
