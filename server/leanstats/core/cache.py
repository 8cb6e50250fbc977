"""In-process expiring key set, the fast tier of the dedup filter.

Thread-safe. Keys carry an absolute expiry on the injected clock and are
treated as absent once it passes. No framework dependencies.
"""

from __future__ import annotations

import threading
import time
from typing import Callable


class ExpiringStore:
    """A set of keys with per-key expiry."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._lock = threading.Lock()
        self._clock = clock
        self._expiries: dict[str, float] = {}

    def add(self, key: str, ttl: float) -> bool:
        """Set ``key`` if absent or expired. Returns True when this call set it."""
        now = self._clock()
        with self._lock:
            if self._expiries.get(key, 0) > now:
                return False
            self._expiries[key] = now + ttl
            return True

    def prune(self) -> int:
        """Drop expired keys. Returns how many were removed."""
        now = self._clock()
        with self._lock:
            stale = [k for k, expires_at in self._expiries.items() if expires_at <= now]
            for k in stale:
                del self._expiries[k]
            return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._expiries)
