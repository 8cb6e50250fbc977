"""Lean Stats — core internal data models.

These are plain dataclasses with no framework dependencies.
HTTP requests are converted to/from these at the boundary.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Mapping


class DeviceClass(str, Enum):
    DESKTOP = "desktop"
    TABLET = "tablet"
    MOBILE = "mobile"
    BOT = "bot"


HOUR_FORMAT = "%Y-%m-%d %H:00:00"


@dataclass(frozen=True)
class Hit:
    """One sanitized page view, ready for aggregation."""
    page_path: str
    device_class: DeviceClass
    timestamp_bucket: int
    post_id: int | None = None
    referrer_domain: str | None = None

    @property
    def _dt(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp_bucket, tz=timezone.utc)

    @property
    def date_bucket(self) -> str:
        return self._dt.strftime("%Y-%m-%d")

    @property
    def hour_bucket(self) -> str:
        return self._dt.strftime(HOUR_FORMAT)

    def to_dict(self) -> dict:
        return {
            "page_path": self.page_path,
            "post_id": self.post_id,
            "referrer_domain": self.referrer_domain,
            "device_class": self.device_class.value,
            "timestamp_bucket": self.timestamp_bucket,
        }


@dataclass(frozen=True)
class Settings:
    """Admin-editable privacy and retention settings.

    Immutable: an update builds a new instance and swaps it in.
    """
    strict_mode: bool = False
    respect_dnt_gpc: bool = True
    url_strip_query: bool = True
    url_query_allowlist: tuple[str, ...] = ()
    raw_logs_retention_days: int = 30
    excluded_roles: tuple[str, ...] = ()
    raw_logs_enabled: bool = False

    def to_dict(self) -> dict:
        return {
            "strict_mode": self.strict_mode,
            "respect_dnt_gpc": self.respect_dnt_gpc,
            "url_strip_query": self.url_strip_query,
            "url_query_allowlist": list(self.url_query_allowlist),
            "raw_logs_retention_days": self.raw_logs_retention_days,
            "excluded_roles": list(self.excluded_roles),
            "raw_logs_enabled": self.raw_logs_enabled,
        }


@dataclass(frozen=True)
class Caller:
    user_id: str
    roles: frozenset[str] = frozenset()


@dataclass(frozen=True)
class RequestContext:
    """What the privacy gate and rate limiter need to know about a request.

    ``headers`` keys are lowercase.
    """
    headers: Mapping[str, str] = field(default_factory=dict)
    caller: Caller | None = None
    client_addr: str | None = None

    def header(self, name: str) -> str | None:
        return self.headers.get(name.lower())


@dataclass(frozen=True)
class RawLogEntry:
    id: int
    created_at: int
    hit: Hit

    def to_dict(self) -> dict:
        data = self.hit.to_dict()
        data["id"] = self.id
        data["created_at"] = self.created_at
        return data
