"""Caller resolution and admin access control.

Callers are identified by bearer tokens listed in the process config.
Admin endpoints additionally require an anti-forgery nonce: an HMAC over
the user id and a time tick. A nonce stays valid for the current and the
previous half of its lifetime.
"""

from __future__ import annotations

import hashlib
import hmac
import math
import time
from typing import Callable, Iterable

from leanstats.core.errors import AccessDenied
from leanstats.core.models import Caller

NONCE_ACTION = "leanstats_admin"


class AccessControl:
    def __init__(
        self,
        tokens: dict[str, Caller],
        admin_roles: Iterable[str],
        nonce_secret: str,
        nonce_lifetime_seconds: int = 86400,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not nonce_secret:
            raise ValueError("nonce secret must not be empty")
        self._tokens = dict(tokens)
        self._admin_roles = frozenset(admin_roles)
        self._secret = nonce_secret.encode("utf-8")
        self._lifetime = max(2, int(nonce_lifetime_seconds))
        self._clock = clock

    def resolve_caller(self, authorization: str | None) -> Caller | None:
        """Map an ``Authorization: Bearer <token>`` header to a caller."""
        if not authorization:
            return None
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            return None
        return self._tokens.get(token.strip())

    def is_elevated(self, caller: Caller | None) -> bool:
        return caller is not None and bool(caller.roles & self._admin_roles)

    def _tick(self) -> int:
        return math.ceil(self._clock() / (self._lifetime / 2))

    def _digest(self, user_id: str, tick: int) -> str:
        msg = f"{tick}|{NONCE_ACTION}|{user_id}".encode("utf-8")
        return hmac.new(self._secret, msg, hashlib.sha256).hexdigest()[:20]

    def create_nonce(self, caller: Caller) -> str:
        return self._digest(caller.user_id, self._tick())

    def verify_nonce(self, caller: Caller, nonce: str | None) -> bool:
        if not nonce:
            return False
        # header values arrive latin-1 decoded, compare_digest only takes ASCII str
        supplied = nonce.encode("utf-8", "surrogateescape")
        tick = self._tick()
        for candidate in (tick, tick - 1):
            expected = self._digest(caller.user_id, candidate).encode("ascii")
            if hmac.compare_digest(expected, supplied):
                return True
        return False

    def require_elevated(self, caller: Caller | None) -> Caller:
        if not self.is_elevated(caller):
            raise AccessDenied("forbidden", "You are not allowed to access analytics data.")
        return caller

    def check(self, caller: Caller | None, nonce: str | None) -> Caller:
        """Raise ``AccessDenied`` unless the caller is an admin with a valid nonce."""
        caller = self.require_elevated(caller)
        if not self.verify_nonce(caller, nonce):
            raise AccessDenied("invalid_nonce", "Invalid REST API nonce.")
        return caller
