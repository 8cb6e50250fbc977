"""Folds accepted hits into the daily and hourly rollup tables."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from leanstats.core.models import Hit
    from leanstats.storage.base import RollupStorage

log = structlog.get_logger()


class Aggregator:
    """Increments both rollups for a hit in one atomic storage call."""

    def __init__(self, storage: RollupStorage) -> None:
        self._storage = storage

    def record(self, hit: Hit) -> None:
        self._storage.increment_rollups(
            date_bucket=hit.date_bucket,
            hour_bucket=hit.hour_bucket,
            page_path=hit.page_path,
            referrer_domain=hit.referrer_domain or "",
            device_class=hit.device_class.value,
        )
        log.debug("hit_aggregated", page_path=hit.page_path,
                  device_class=hit.device_class.value, bucket=hit.hour_bucket)
