"""
Incident history for users and the triage view for operators.

Operators also get a WebSocket change feed (INSERT / UPDATE events on the
accidents table) so dashboards refresh without polling.
"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder

from core.identity import Identity, get_identity, require_admin
from core.incidents import advance_status, incident_stats, list_all_incidents, list_user_incidents
from core.record_store import ACCIDENTS, RecordStore
from core.services import get_store
from schemas.incident import Incident, IncidentStatus, IncidentUpdate

logger = logging.getLogger(__name__)

router = APIRouter(tags=["incidents"])


@router.get("/incidents", response_model=list[Incident])
async def my_incidents(
    identity: Identity = Depends(get_identity),
    store: RecordStore = Depends(get_store),
) -> list[Incident]:
    return await list_user_incidents(store, identity.user_id)


@router.get("/admin/incidents")
async def all_incidents(
    status: Optional[IncidentStatus] = None,
    identity: Identity = Depends(require_admin),
    store: RecordStore = Depends(get_store),
) -> dict:
    incidents = await list_all_incidents(store, status)
    everything = incidents if status is None else await list_all_incidents(store)
    return {
        "incidents": [i.model_dump(mode="json") for i in incidents],
        "stats": incident_stats(everything).model_dump(),
    }


@router.patch("/admin/incidents/{incident_id}", response_model=Incident)
async def update_incident(
    incident_id: str,
    update: IncidentUpdate,
    identity: Identity = Depends(require_admin),
    store: RecordStore = Depends(get_store),
) -> Incident:
    return await advance_status(store, identity, incident_id, update)


@router.websocket("/admin/incidents/ws")
async def incident_feed(websocket: WebSocket, store: RecordStore = Depends(get_store)) -> None:
    """Push accidents-table changes to an operator dashboard."""
    role = (websocket.headers.get("x-user-role") or websocket.query_params.get("role") or "").lower()
    if role != "admin":
        await websocket.close(code=4403)
        return
    await websocket.accept()

    queue: asyncio.Queue[dict] = asyncio.Queue()
    unsubscribe = store.subscribe(ACCIDENTS, queue.put_nowait)

    async def _push() -> None:
        while True:
            change = await queue.get()
            await websocket.send_json(jsonable_encoder(change))

    pusher = asyncio.create_task(_push())
    try:
        # the client only ever closes; reading is how the disconnect is noticed
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        pusher.cancel()
        unsubscribe()
