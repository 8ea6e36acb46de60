from __future__ import annotations

from core.errors import NotFoundError
from core.record_store import EMERGENCY_CONTACTS, PROFILES, RecordStore
from schemas.contact import ContactCreate, EmergencyContact, Profile, ProfileUpdate


async def add_contact(store: RecordStore, user_id: str, data: ContactCreate) -> EmergencyContact:
    contact = EmergencyContact(user_id=user_id, **data.model_dump())
    row = await store.insert(EMERGENCY_CONTACTS, contact.model_dump(mode="json"))
    return EmergencyContact.model_validate(row)


async def list_contacts(store: RecordStore, user_id: str) -> list[EmergencyContact]:
    rows = await store.query(EMERGENCY_CONTACTS, {"user_id": user_id}, order_by="name")
    return [EmergencyContact.model_validate(r) for r in rows]


async def delete_contact(store: RecordStore, user_id: str, contact_id: str) -> None:
    """Contacts are replaced by delete + re-create; only the owner may delete."""
    row = await store.get(EMERGENCY_CONTACTS, contact_id)
    if row is None or row.get("user_id") != user_id:
        raise NotFoundError("Contact not found")
    await store.delete(EMERGENCY_CONTACTS, contact_id)


async def has_reachable_contact(store: RecordStore, user_id: str) -> bool:
    return any(c.reachable for c in await list_contacts(store, user_id))


async def get_profile(store: RecordStore, user_id: str) -> Profile | None:
    rows = await store.query(PROFILES, {"user_id": user_id})
    return Profile.model_validate(rows[0]) if rows else None


async def save_profile(store: RecordStore, user_id: str, data: ProfileUpdate) -> Profile:
    rows = await store.query(PROFILES, {"user_id": user_id})
    patch = {"full_name": data.full_name.strip(), "phone": (data.phone or "").strip() or None}
    if rows:
        row = await store.update(PROFILES, rows[0]["id"], patch)
    else:
        row = await store.insert(PROFILES, {"user_id": user_id, **patch})
    return Profile.model_validate(row)
