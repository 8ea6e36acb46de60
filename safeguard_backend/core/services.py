"""Process-wide service instances, created on first use and overridable in tests."""

from __future__ import annotations

from core.emergency import EmergencyService
from core.notifier import Notifier
from core.record_store import RecordStore
from core.risk_classifier import RiskClassifier

_store: RecordStore | None = None
_classifier: RiskClassifier | None = None
_notifier: Notifier | None = None
_emergency: EmergencyService | None = None


def get_store() -> RecordStore:
    global _store
    if _store is None:
        _store = RecordStore()
    return _store


def get_classifier() -> RiskClassifier:
    global _classifier
    if _classifier is None:
        _classifier = RiskClassifier()
    return _classifier


def get_notifier() -> Notifier:
    global _notifier
    if _notifier is None:
        _notifier = Notifier(get_store())
    return _notifier


def get_emergency_service() -> EmergencyService:
    global _emergency
    if _emergency is None:
        _emergency = EmergencyService(get_store(), get_classifier(), get_notifier())
    return _emergency


async def shutdown() -> None:
    if _emergency is not None:
        await _emergency.aclose()
