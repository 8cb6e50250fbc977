"""Short-window deduplication of identical hit signatures.

Two tiers: a fast in-process store and a durable mark table that survives
restarts and cache eviction. A signature already held by either tier is a
duplicate. Near-simultaneous distinct views with the same signature are
merged as well; that over-deduplication is accepted.
"""

from __future__ import annotations

import hashlib
import time
from typing import TYPE_CHECKING, Callable

from leanstats.core.cache import ExpiringStore

if TYPE_CHECKING:
    from leanstats.core.models import Hit
    from leanstats.storage.base import DedupStorage

WINDOW_MIN_SECONDS = 10
WINDOW_MAX_SECONDS = 30
WINDOW_DEFAULT_SECONDS = 20


def clamp_window(seconds: int | None) -> int:
    if seconds is None:
        return WINDOW_DEFAULT_SECONDS
    return max(WINDOW_MIN_SECONDS, min(WINDOW_MAX_SECONDS, int(seconds)))


def signature(hit: Hit) -> str:
    """Stable hash of (page_path, referrer_domain, device_class)."""
    raw = "\x1f".join((hit.page_path, hit.referrer_domain or "", hit.device_class.value))
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


class DedupFilter:
    def __init__(
        self,
        durable: DedupStorage,
        window_seconds: int | None = WINDOW_DEFAULT_SECONDS,
        cache: ExpiringStore | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._durable = durable
        self._window = clamp_window(window_seconds)
        self._cache = cache if cache is not None else ExpiringStore()
        self._clock = clock

    @property
    def window_seconds(self) -> int:
        return self._window

    @property
    def cache(self) -> ExpiringStore:
        return self._cache

    def is_duplicate(self, hit: Hit) -> bool:
        """Check and mark the hit's signature as seen."""
        key = signature(hit)
        if not self._cache.add(key, self._window):
            return True
        now = self._clock()
        return not self._durable.mark_seen(key, now + self._window, now)
