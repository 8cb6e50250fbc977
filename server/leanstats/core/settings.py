"""Admin settings: sanitizer and the read-mostly settings service.

``sanitize_settings`` is total: every input yields a valid ``Settings``.
``SettingsService`` hands out immutable snapshots from a short-lived cache
and replaces the whole object on update.
"""

from __future__ import annotations

import threading
import time
from typing import TYPE_CHECKING, Callable, Iterable

import structlog

from leanstats.core.models import Settings
from leanstats.core.sanitizer import coerce_int

if TYPE_CHECKING:
    from leanstats.storage.base import SettingsStorage

log = structlog.get_logger()

RETENTION_MIN_DAYS = 1
RETENTION_MAX_DAYS = 365

_FALSY_STRINGS = {"", "0", "false", "no", "off"}

DEFAULTS = Settings()


def _to_bool(value: object) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in _FALSY_STRINGS
    return bool(value)


def _to_string_list(value: object) -> list[str]:
    """Split, trim, drop empties and de-duplicate keeping first-seen order."""
    if isinstance(value, str):
        items: Iterable = value.split(",")
    elif isinstance(value, (list, tuple)):
        items = value
    else:
        return []

    seen: list[str] = []
    for item in items:
        if not isinstance(item, (str, int)) or isinstance(item, bool):
            continue
        item = str(item).strip()
        if item and item not in seen:
            seen.append(item)
    return seen


def _clamp_retention(value: object) -> int:
    days = coerce_int(value)
    if days is None and isinstance(value, (float, str)):
        try:
            days = int(float(value))
        except (TypeError, ValueError, OverflowError):
            days = None
    if days is None:
        days = DEFAULTS.raw_logs_retention_days
    return max(RETENTION_MIN_DAYS, min(RETENTION_MAX_DAYS, days))


def sanitize_settings(raw: dict, known_roles: Iterable[str]) -> Settings:
    """Normalize a raw settings mapping. Missing keys take defaults."""
    known = set(known_roles)

    def flag(name: str) -> bool:
        if name not in raw:
            return getattr(DEFAULTS, name)
        return _to_bool(raw[name])

    allowlist = _to_string_list(raw.get("url_query_allowlist", []))
    roles = [r for r in _to_string_list(raw.get("excluded_roles", [])) if r in known]
    retention = _clamp_retention(
        raw.get("raw_logs_retention_days", DEFAULTS.raw_logs_retention_days)
    )

    return Settings(
        strict_mode=flag("strict_mode"),
        respect_dnt_gpc=flag("respect_dnt_gpc"),
        url_strip_query=flag("url_strip_query"),
        url_query_allowlist=tuple(allowlist),
        raw_logs_retention_days=retention,
        excluded_roles=tuple(roles),
        raw_logs_enabled=flag("raw_logs_enabled"),
    )


class SettingsService:
    """Caches the settings row and swaps it atomically on update."""

    def __init__(
        self,
        storage: SettingsStorage,
        known_roles: Iterable[str],
        cache_ttl_seconds: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._storage = storage
        self._known_roles = tuple(known_roles)
        self._ttl = cache_ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._current: Settings | None = None
        self._loaded_at = 0.0

    def install(self) -> Settings:
        """Write defaults if no settings row exists yet."""
        stored = self._storage.load_settings()
        if stored is None:
            self._storage.save_settings(DEFAULTS.to_dict())
            log.info("settings_installed")
            settings = DEFAULTS
        else:
            settings = sanitize_settings(stored, self._known_roles)
        self._swap(settings)
        return settings

    def _swap(self, settings: Settings) -> None:
        with self._lock:
            self._current = settings
            self._loaded_at = self._clock()

    def current(self) -> Settings:
        """Return the current snapshot, reloading it when the cache is stale."""
        with self._lock:
            if self._current is not None and self._clock() - self._loaded_at < self._ttl:
                return self._current

        stored = self._storage.load_settings()
        settings = DEFAULTS if stored is None else sanitize_settings(stored, self._known_roles)
        self._swap(settings)
        return settings

    def update(self, raw: dict) -> Settings:
        """Merge a partial payload over the current settings and persist it."""
        merged = self.current().to_dict()
        merged.update(raw)
        settings = sanitize_settings(merged, self._known_roles)
        self._storage.save_settings(settings.to_dict())
        self._swap(settings)
        log.info("settings_updated", **settings.to_dict())
        return settings
