from __future__ import annotations

import logging
from typing import Awaitable, Callable

from schemas.sensor_payload import PositionFix, PositionState

logger = logging.getLogger(__name__)

FixProvider = Callable[[], Awaitable["PositionFix | None"]]


class PositionSource:
    """
    Latest known location + speed fix for one user.

    Fixes are pushed in by the client as the device reports them. `refresh()`
    asks the optional provider for a fresh one; acquisition errors are kept
    as a message rather than raised, like the browser geolocation API does.
    """

    def __init__(self, provider: FixProvider | None = None) -> None:
        self._provider = provider
        self.latest: PositionFix | None = None
        self.previous: PositionFix | None = None
        self.error: str | None = None
        self.loading: bool = provider is not None

    def update(self, fix: PositionFix) -> None:
        if self.latest is not None:
            self.previous = self.latest
        self.latest = fix
        self.error = None
        self.loading = False

    def recent_previous(self, window: float) -> PositionFix | None:
        """
        The fix before the latest one, if both are timestamped and at most
        `window` seconds apart. An older fix says nothing about movement at
        the moment of the incident.
        """
        latest, prev = self.latest, self.previous
        if latest is None or prev is None or latest.timestamp is None or prev.timestamp is None:
            return None
        if not 0 <= latest.timestamp - prev.timestamp <= window:
            return None
        return prev

    def fail(self, message: str) -> None:
        self.error = message
        self.loading = False

    async def refresh(self) -> PositionFix | None:
        if self._provider is None:
            return self.latest
        self.loading = True
        try:
            fix = await self._provider()
        except Exception as exc:
            logger.warning("Position refresh failed: %s", exc)
            self.fail(str(exc) or "Location information unavailable")
            return self.latest
        if fix is None:
            self.fail("Location information unavailable")
        else:
            self.update(fix)
        return self.latest

    def state(self) -> PositionState:
        return PositionState(fix=self.latest, error=self.error, loading=self.loading)
