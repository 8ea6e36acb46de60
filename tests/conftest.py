"""Pytest fixtures and doubles for the SafeGuard backend tests."""

from types import SimpleNamespace

import pytest

from core.notifier import Notifier
from core.record_store import RecordStore
from core.risk_classifier import RiskClassifier
from core.ttl_store import TTLStore
from schemas.notification import NotificationReport, NotificationRequest


class FakeClock:
    """Manually advanced wall clock (epoch seconds)."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeCompletions:
    def __init__(self, replies):
        self.replies = list(replies)
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=reply))])


class FakeModelClient:
    """Stands in for AsyncOpenAI: replies are strings (message content) or exceptions to raise."""

    def __init__(self, *replies):
        self.completions = FakeCompletions(replies or ('{"risk_level": "low", "confidence": 0.9, "reasoning": "ok"}',))
        self.chat = SimpleNamespace(completions=self.completions)

    @property
    def calls(self):
        return self.completions.calls


class FakeNotifier(Notifier):
    def __init__(self, success: bool = True, message: str = "Emails sent to 1 of 1 contacts", raises: Exception | None = None):
        self.success = success
        self.message = message
        self.raises = raises
        self.requests: list[NotificationRequest] = []

    async def dispatch(self, request: NotificationRequest) -> NotificationReport:
        self.requests.append(request)
        if self.raises is not None:
            raise self.raises
        return NotificationReport(success=self.success, message=self.message)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return RecordStore()


@pytest.fixture
def offline_classifier(clock):
    """Classifier whose remote model is unreachable, so every answer is the fallback rule."""
    return RiskClassifier(client=FakeModelClient(ConnectionError("offline")), cache=TTLStore(clock=clock))


@pytest.fixture
def notifier():
    return FakeNotifier()
