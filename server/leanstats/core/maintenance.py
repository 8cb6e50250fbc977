"""Periodic maintenance sweep.

Prunes raw logs past the retention window, deletes expired durable dedup
marks and evicts expired in-memory entries. Rollups are never touched.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Callable, Iterable

import structlog

from leanstats.core.errors import StorageFailure

if TYPE_CHECKING:
    from leanstats.core.cache import ExpiringStore
    from leanstats.core.settings import SettingsService
    from leanstats.core.stats import ServerStats
    from leanstats.storage.base import DedupStorage, RawLogStorage

log = structlog.get_logger()

DAY_SECONDS = 86400


class MaintenanceSweeper:
    def __init__(
        self,
        settings: SettingsService,
        raw_logs: RawLogStorage,
        dedup_marks: DedupStorage,
        caches: Iterable[ExpiringStore],
        stats: ServerStats,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._settings = settings
        self._raw_logs = raw_logs
        self._dedup_marks = dedup_marks
        self._caches = tuple(caches)
        self._stats = stats
        self._clock = clock

    def sweep_once(self) -> dict:
        """Run one pass. Returns how many items each step removed."""
        now = self._clock()
        retention_days = self._settings.current().raw_logs_retention_days
        cutoff = int(now - retention_days * DAY_SECONDS)

        result = {
            "raw_logs": self._raw_logs.prune_raw_logs(cutoff),
            "dedup_marks": self._dedup_marks.prune_dedup_marks(now),
            "cache_entries": sum(cache.prune() for cache in self._caches),
        }
        self._stats.record_sweep()
        log.info("maintenance_sweep", retention_days=retention_days, **result)
        return result

    async def run(self, interval_seconds: float) -> None:
        """Sweep forever. Runs as a background task."""
        log.info("maintenance_started", interval_seconds=interval_seconds)
        while True:
            try:
                await asyncio.to_thread(self.sweep_once)
            except StorageFailure:
                log.error("maintenance_sweep_failed", exc_info=True)
                self._stats.record_storage_error()
            await asyncio.sleep(interval_seconds)
