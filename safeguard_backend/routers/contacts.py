from fastapi import APIRouter, Depends, HTTPException

from core.contacts import add_contact, delete_contact, get_profile, list_contacts, save_profile
from core.identity import Identity, get_identity
from core.record_store import RecordStore
from core.services import get_store
from schemas.contact import ContactCreate, EmergencyContact, Profile, ProfileUpdate

router = APIRouter(tags=["contacts"])


@router.get("/contacts", response_model=list[EmergencyContact])
async def get_contacts(
    identity: Identity = Depends(get_identity),
    store: RecordStore = Depends(get_store),
) -> list[EmergencyContact]:
    return await list_contacts(store, identity.user_id)


@router.post("/contacts", response_model=EmergencyContact, status_code=201)
async def create_contact(
    data: ContactCreate,
    identity: Identity = Depends(get_identity),
    store: RecordStore = Depends(get_store),
) -> EmergencyContact:
    return await add_contact(store, identity.user_id, data)


@router.delete("/contacts/{contact_id}", status_code=204)
async def remove_contact(
    contact_id: str,
    identity: Identity = Depends(get_identity),
    store: RecordStore = Depends(get_store),
) -> None:
    await delete_contact(store, identity.user_id, contact_id)


@router.get("/profile", response_model=Profile)
async def read_profile(
    identity: Identity = Depends(get_identity),
    store: RecordStore = Depends(get_store),
) -> Profile:
    profile = await get_profile(store, identity.user_id)
    if profile is None:
        raise HTTPException(404, detail="Profile not set")
    return profile


@router.put("/profile", response_model=Profile)
async def update_profile(
    data: ProfileUpdate,
    identity: Identity = Depends(get_identity),
    store: RecordStore = Depends(get_store),
) -> Profile:
    return await save_profile(store, identity.user_id, data)
