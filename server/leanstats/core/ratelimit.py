"""Per-client fixed-window rate limiter.

Client IPs are only ever used as an HMAC digest; the raw address is never
stored or logged.
"""

from __future__ import annotations

import hashlib
import hmac
import ipaddress
import threading
from typing import TYPE_CHECKING

from limits.storage import MemoryStorage

if TYPE_CHECKING:
    from leanstats.core.models import RequestContext

WINDOW_MIN_SECONDS = 5
WINDOW_MAX_SECONDS = 60
WINDOW_DEFAULT_SECONDS = 10
MAX_HITS_DEFAULT = 30


def _valid_ip(value: str | None) -> str | None:
    if not value:
        return None
    value = value.strip()
    try:
        return str(ipaddress.ip_address(value))
    except ValueError:
        return None


def resolve_client_ip(context: RequestContext) -> str | None:
    """First valid X-Forwarded-For entry, then X-Real-IP, then the peer."""
    forwarded = context.header("X-Forwarded-For")
    if forwarded:
        for candidate in forwarded.split(","):
            ip = _valid_ip(candidate)
            if ip:
                return ip

    ip = _valid_ip(context.header("X-Real-IP"))
    if ip:
        return ip

    return _valid_ip(context.client_addr)


def hash_ip(ip: str, salt: str) -> str:
    return hmac.new(salt.encode("utf-8"), ip.encode("utf-8"), hashlib.sha256).hexdigest()


class RateLimiter:
    """Counts hits per hashed client IP in fixed windows.

    Counters live in a ``limits`` memory storage keyed by the HMAC digest.
    A window starts at the first hit and its counter expires with it.
    """

    def __init__(
        self,
        salt: str,
        window_seconds: int | None = WINDOW_DEFAULT_SECONDS,
        max_hits: int | None = MAX_HITS_DEFAULT,
        store: MemoryStorage | None = None,
    ) -> None:
        if not salt:
            raise ValueError("rate limiter salt must not be empty")
        self._salt = salt
        if window_seconds is None:
            window_seconds = WINDOW_DEFAULT_SECONDS
        self._window = max(WINDOW_MIN_SECONDS, min(WINDOW_MAX_SECONDS, int(window_seconds)))
        self._max_hits = max(1, int(max_hits if max_hits is not None else MAX_HITS_DEFAULT))
        self._store = store if store is not None else MemoryStorage()
        # check and increment happen under one lock
        self._lock = threading.Lock()

    @property
    def window_seconds(self) -> int:
        return self._window

    @property
    def max_hits(self) -> int:
        return self._max_hits

    @property
    def store(self) -> MemoryStorage:
        return self._store

    def key_for(self, client_ip: str) -> str:
        return "rl:" + hash_ip(client_ip, self._salt)

    def is_rate_limited(self, client_ip: str | None) -> bool:
        """Count this hit against the client. Fails open without an IP."""
        if not client_ip:
            return False
        key = self.key_for(client_ip)
        with self._lock:
            if self._store.get(key) >= self._max_hits:
                return True
            self._store.incr(key, self._window)
        return False
