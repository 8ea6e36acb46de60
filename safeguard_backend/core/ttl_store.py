from __future__ import annotations

import time
from typing import Any, Callable


class TTLStore:
    """
    In-process key/value store with per-entry expiry.

    Expired entries are dropped lazily when read; nothing sweeps in the
    background. Shared by every caller that holds the same instance, so the
    service wires one instance per concern (classification cache, submission
    markers) and tests get a fresh one each.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}  # key → (expires_at, value)

    def get(self, key: str) -> Any | None:
        rec = self._entries.get(key)
        if rec is None:
            return None
        expires_at, value = rec
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: Any, ttl: float) -> None:
        self._entries[key] = (self._clock() + ttl, value)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        return len(self._entries)
