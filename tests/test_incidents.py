import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from core.contacts import add_contact, delete_contact, has_reachable_contact, list_contacts
from core.errors import InvalidTransitionError, NotFoundError, PermissionDeniedError
from core.identity import Identity
from core.incidents import advance_status, incident_stats, list_all_incidents, list_user_incidents
from core.record_store import ACCIDENTS
from schemas.contact import ContactCreate
from schemas.incident import Incident, IncidentStatus, IncidentUpdate, RiskLevel

ADMIN = Identity(user_id="op-1", is_admin=True)
T0 = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)


def _insert(store, **kwargs):
    fields = {"user_id": "user-1", "latitude": 12.0, "longitude": 77.0, "risk_level": RiskLevel.LOW, **kwargs}
    row = asyncio.run(store.insert(ACCIDENTS, Incident(**fields).model_dump()))
    return row["id"]


def _advance(store, incident_id, status=None, notes=None, identity=ADMIN, now=T0):
    return asyncio.run(advance_status(store, identity, incident_id, IncidentUpdate(status=status, notes=notes), now=now))


def _check_invariant(incident):
    assert (incident.responded_at is not None) == (incident.status.rank >= IncidentStatus.RESPONDED.rank)
    assert (incident.resolved_at is not None) == (incident.status == IncidentStatus.RESOLVED)


class TestAdvanceStatus:

    def test_pending_to_responded_to_resolved(self, store):
        incident_id = _insert(store)

        responded = _advance(store, incident_id, IncidentStatus.RESPONDED, now=T0)
        assert responded.responded_at == T0
        _check_invariant(responded)

        later = T0 + timedelta(minutes=20)
        resolved = _advance(store, incident_id, IncidentStatus.RESOLVED, now=later)
        assert resolved.responded_at == T0
        assert resolved.resolved_at == later
        _check_invariant(resolved)

    def test_pending_straight_to_resolved_stamps_both(self, store):
        incident_id = _insert(store)
        resolved = _advance(store, incident_id, IncidentStatus.RESOLVED)
        assert resolved.responded_at == resolved.resolved_at == T0
        _check_invariant(resolved)

    @pytest.mark.parametrize("target", [IncidentStatus.PENDING, IncidentStatus.RESPONDED])
    def test_no_backward_or_repeated_moves(self, store, target):
        incident_id = _insert(store)
        _advance(store, incident_id, IncidentStatus.RESPONDED)
        with pytest.raises(InvalidTransitionError):
            _advance(store, incident_id, target)

    def test_resolved_is_closed_to_notes(self, store):
        incident_id = _insert(store)
        _advance(store, incident_id, IncidentStatus.RESOLVED)
        with pytest.raises(InvalidTransitionError):
            _advance(store, incident_id, notes="late note")

    def test_notes_only_keeps_status(self, store):
        incident_id = _insert(store)
        updated = _advance(store, incident_id, notes="  ambulance dispatched  ")
        assert updated.notes == "ambulance dispatched"
        assert updated.status == IncidentStatus.PENDING
        _check_invariant(updated)

    def test_non_admin_denied(self, store):
        incident_id = _insert(store)
        with pytest.raises(PermissionDeniedError):
            _advance(store, incident_id, IncidentStatus.RESPONDED, identity=Identity(user_id="user-1"))
        row = asyncio.run(store.get(ACCIDENTS, incident_id))
        assert row["status"] == IncidentStatus.PENDING

    def test_unknown_incident(self, store):
        with pytest.raises(NotFoundError):
            _advance(store, "missing", IncidentStatus.RESPONDED)


class TestListing:

    def test_user_sees_own_incidents_newest_first(self, store):
        old = _insert(store, detected_at=T0)
        new = _insert(store, detected_at=T0 + timedelta(hours=1))
        _insert(store, user_id="someone-else")
        incidents = asyncio.run(list_user_incidents(store, "user-1"))
        assert [i.id for i in incidents] == [new, old]

    def test_filter_and_stats(self, store):
        _insert(store, risk_level=RiskLevel.HIGH, detected_at=T0)
        second = _insert(store, risk_level=RiskLevel.MEDIUM, detected_at=T0)
        third = _insert(store, risk_level=RiskLevel.HIGH, detected_at=T0)
        _advance(store, second, IncidentStatus.RESPONDED)
        _advance(store, third, IncidentStatus.RESOLVED)

        responded = asyncio.run(list_all_incidents(store, IncidentStatus.RESPONDED))
        assert [i.id for i in responded] == [second]

        stats = incident_stats(asyncio.run(list_all_incidents(store)))
        assert (stats.total, stats.pending, stats.responded, stats.resolved) == (3, 1, 1, 1)
        assert (stats.high_risk, stats.medium_risk, stats.low_risk) == (2, 1, 0)


class TestContacts:

    def test_contact_needs_phone_or_email(self):
        with pytest.raises(ValidationError):
            ContactCreate(name="Nobody", phone="  ", email="")

    def test_invalid_email_rejected(self):
        with pytest.raises(ValidationError):
            ContactCreate(name="Asha", email="not-an-email")

    def test_add_list_delete(self, store):
        asha = asyncio.run(add_contact(store, "user-1", ContactCreate(name="Asha", phone="9876543210")))
        asyncio.run(add_contact(store, "user-1", ContactCreate(name="Arjun", email="arjun@example.com")))
        assert [c.name for c in asyncio.run(list_contacts(store, "user-1"))] == ["Arjun", "Asha"]
        assert asyncio.run(has_reachable_contact(store, "user-1"))

        with pytest.raises(NotFoundError):
            asyncio.run(delete_contact(store, "intruder", asha.id))
        asyncio.run(delete_contact(store, "user-1", asha.id))
        assert [c.name for c in asyncio.run(list_contacts(store, "user-1"))] == ["Arjun"]

    def test_no_contacts_is_unreachable(self, store):
        assert not asyncio.run(has_reachable_contact(store, "user-1"))
