from __future__ import annotations

import logging
import time
from typing import Callable

from core import config
from core.ttl_store import TTLStore

logger = logging.getLogger(__name__)


def marker_key(user_id: str) -> str:
    return f"emergency_last_sent:{user_id}"


class SubmissionGuard:
    """
    Anti double-submit check for one pipeline instance.

    A submission is allowed only when neither this instance's own last
    timestamp nor the shared per-user marker (visible to every session of the
    same user) is younger than the cool-down. The marker is written by
    `mark()` before any network work starts and is never cleared early: it
    simply ages out. Last writer wins; there is no locking beyond the
    timestamp comparison.
    """

    def __init__(
        self,
        user_id: str,
        markers: TTLStore,
        cooldown: float = config.SUBMIT_COOLDOWN_SEC,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.user_id = user_id
        self.markers = markers
        self.cooldown = cooldown
        self._clock = clock
        self._last_local: float = 0.0

    def last_submitted(self) -> float:
        shared = self.markers.get(marker_key(self.user_id)) or 0.0
        return max(self._last_local, shared)

    def recently_submitted(self) -> bool:
        return self._clock() - self.last_submitted() < self.cooldown

    def mark(self) -> float:
        now = self._clock()
        self._last_local = now
        self.markers.set(marker_key(self.user_id), now, self.cooldown)
        return now
