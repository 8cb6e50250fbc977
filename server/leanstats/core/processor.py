"""Hit processor — gates, sanitizes, filters and aggregates incoming hits.

This is the core business logic of the write path. It depends on storage
protocols, not concrete implementations.

Order: privacy gate → sanitizer → dedup → rate limit → aggregation (+ raw
log). Every rejection after validation looks the same to the caller: the
hit is simply not tracked.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Callable

import structlog

from leanstats.core.errors import StorageFailure, ValidationError
from leanstats.core.privacy import should_skip
from leanstats.core.ratelimit import resolve_client_ip
from leanstats.core.sanitizer import DEFAULT_BUCKET_SECONDS, clamp_bucket_seconds, sanitize_hit

if TYPE_CHECKING:
    from leanstats.core.aggregator import Aggregator
    from leanstats.core.dedup import DedupFilter
    from leanstats.core.models import Hit, RequestContext
    from leanstats.core.ratelimit import RateLimiter
    from leanstats.core.settings import SettingsService
    from leanstats.core.stats import ServerStats
    from leanstats.storage.base import RawLogStorage

log = structlog.get_logger()


class HitProcessor:
    """Runs one hit through the ingestion pipeline."""

    def __init__(
        self,
        settings: SettingsService,
        dedup: DedupFilter,
        limiter: RateLimiter,
        aggregator: Aggregator,
        raw_logs: RawLogStorage,
        stats: ServerStats,
        bucket_seconds: int = DEFAULT_BUCKET_SECONDS,
        raw_log_max_entries: int = 1000,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._settings = settings
        self._dedup = dedup
        self._limiter = limiter
        self._aggregator = aggregator
        self._raw_logs = raw_logs
        self._stats = stats
        self._bucket_seconds = clamp_bucket_seconds(bucket_seconds)
        self._raw_log_max_entries = raw_log_max_entries
        self._clock = clock

    def process(self, payload: dict, context: RequestContext) -> bool:
        """Process a hit payload. Returns True when the hit was tracked.

        Raises ``ValidationError`` for malformed payloads. Storage failures
        are logged and reported as an untracked hit.
        """
        self._stats.record_received()

        try:
            settings = self._settings.current()
        except StorageFailure:
            log.error("hit_storage_failed", stage="settings", exc_info=True)
            self._stats.record_storage_error()
            return False

        if should_skip(context, settings):
            self._stats.record_skipped()
            log.debug("hit_skipped", reason="privacy")
            return False

        try:
            hit = sanitize_hit(payload, settings, self._bucket_seconds)
        except ValidationError as exc:
            self._stats.record_invalid()
            log.info("hit_invalid", code=exc.code)
            raise

        try:
            return self._accept(hit, context, settings.raw_logs_enabled)
        except StorageFailure:
            log.error("hit_storage_failed", stage="write", page_path=hit.page_path,
                      exc_info=True)
            self._stats.record_storage_error()
            return False

    def _accept(self, hit: Hit, context: RequestContext, raw_logs_enabled: bool) -> bool:
        if self._dedup.is_duplicate(hit):
            self._stats.record_duplicate()
            log.debug("hit_skipped", reason="duplicate", page_path=hit.page_path)
            return False

        if self._limiter.is_rate_limited(resolve_client_ip(context)):
            self._stats.record_rate_limited()
            log.debug("hit_skipped", reason="rate_limited")
            return False

        self._aggregator.record(hit)
        self._stats.record_tracked()

        if raw_logs_enabled:
            self._append_raw_log(hit)

        return True

    def _append_raw_log(self, hit: Hit) -> None:
        """Append to the raw log. A failure is logged and leaves the hit tracked."""
        try:
            self._raw_logs.append_raw_log(hit, int(self._clock()), self._raw_log_max_entries)
        except StorageFailure:
            log.error("raw_log_write_failed", page_path=hit.page_path, exc_info=True)
            self._stats.record_storage_error()
            return
        self._stats.record_raw_log()
