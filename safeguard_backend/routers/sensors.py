"""
Device inputs: position fixes and motion samples.

The client forwards what the browser/phone reports (Geolocation API fixes,
devicemotion samples, motion-permission outcome). A motion sample that trips
the shake/drop rules opens the emergency countdown when a fix is available.
"""

from fastapi import APIRouter, Depends

from core.emergency import EmergencyService
from core.identity import Identity, get_identity
from core.services import get_emergency_service
from schemas.sensor_payload import MotionSample, PermissionReport, PositionFix, PositionState

router = APIRouter(tags=["sensors"])


@router.get("/position", response_model=PositionState)
async def get_position(
    identity: Identity = Depends(get_identity),
    service: EmergencyService = Depends(get_emergency_service),
) -> PositionState:
    return service.context(identity.user_id).position.state()


@router.post("/position", response_model=PositionState)
async def push_position(
    fix: PositionFix,
    identity: Identity = Depends(get_identity),
    service: EmergencyService = Depends(get_emergency_service),
) -> PositionState:
    position = service.context(identity.user_id).position
    position.update(fix)
    return position.state()


@router.post("/position/refresh", response_model=PositionState)
async def refresh_position(
    identity: Identity = Depends(get_identity),
    service: EmergencyService = Depends(get_emergency_service),
) -> PositionState:
    """
    Re-read the position. Fixes are pushed by the device, so without a
    server-side provider this returns the last pushed fix unchanged.
    """
    position = service.context(identity.user_id).position
    await position.refresh()
    return position.state()


@router.post("/motion/permission")
async def report_motion_permission(
    report: PermissionReport,
    identity: Identity = Depends(get_identity),
    service: EmergencyService = Depends(get_emergency_service),
) -> dict:
    motion = service.context(identity.user_id).motion
    permission = motion.report_permission(report.requires_consent, report.granted)
    return {"permission": permission.value, "enabled": motion.is_enabled}


@router.post("/motion/sample")
async def push_motion_sample(
    sample: MotionSample,
    identity: Identity = Depends(get_identity),
    service: EmergencyService = Depends(get_emergency_service),
) -> dict:
    event = await service.handle_motion(identity.user_id, sample)
    return {
        "event": event.value if event else None,
        "session": service.snapshot(identity.user_id).model_dump(mode="json"),
    }
