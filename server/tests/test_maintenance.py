"""Tests for the maintenance sweep."""

from __future__ import annotations

import asyncio

import pytest

from leanstats.core.cache import ExpiringStore
from leanstats.core.maintenance import DAY_SECONDS, MaintenanceSweeper
from leanstats.core.models import DeviceClass, Hit
from leanstats.core.settings import SettingsService
from leanstats.core.stats import ServerStats

HIT = Hit(page_path="/", device_class=DeviceClass.BOT, timestamp_bucket=1_700_000_100)


def _sweeper(storage, clock, cache=None):
    settings = SettingsService(storage, ["administrator"])
    settings.install()
    settings.update({"raw_logs_retention_days": 7})
    stats = ServerStats()
    return MaintenanceSweeper(settings, storage, storage, [cache or ExpiringStore(clock=clock)],
                              stats, clock=clock), stats


def test_sweep_prunes_old_raw_logs_and_marks(storage, clock):
    sweeper, stats = _sweeper(storage, clock)
    now = int(clock())
    storage.append_raw_log(HIT, created_at=now - 8 * DAY_SECONDS, max_entries=100)
    storage.append_raw_log(HIT, created_at=now - 6 * DAY_SECONDS, max_entries=100)
    storage.mark_seen("expired", now - 1, now - 30)
    storage.mark_seen("live", now + 10, now)
    storage.increment_rollups("2023-11-01", "2023-11-01 10:00:00", "/", "", "bot")

    result = sweeper.sweep_once()

    assert result["raw_logs"] == 1
    assert result["dedup_marks"] == 1
    assert storage.count_raw_logs() == 1
    assert storage.rollup_hits("daily", "2023-11-01", "/", "", "bot") == 1
    assert stats.snapshot()["sweeps"] == 1


def test_sweep_evicts_expired_cache_entries(storage, clock):
    cache = ExpiringStore(clock=clock)
    cache.add("a", 5)
    cache.add("b", 50)
    sweeper, _ = _sweeper(storage, clock, cache=cache)

    clock.advance(10)
    assert sweeper.sweep_once()["cache_entries"] == 1
    assert len(cache) == 1


@pytest.mark.asyncio
async def test_run_loop_can_be_cancelled(storage, clock):
    sweeper, stats = _sweeper(storage, clock)

    task = asyncio.create_task(sweeper.run(interval_seconds=3600))
    for _ in range(50):
        if stats.snapshot()["sweeps"]:
            break
        await asyncio.sleep(0.01)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert stats.snapshot()["sweeps"] == 1
