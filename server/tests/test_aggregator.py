"""Tests for rollup aggregation and the raw log buffer."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

from leanstats.core.aggregator import Aggregator
from leanstats.core.models import DeviceClass, Hit


def _hit(path="/blog", referrer=None, device=DeviceClass.DESKTOP, ts=1_700_000_100) -> Hit:
    return Hit(page_path=path, referrer_domain=referrer, device_class=device, timestamp_bucket=ts)


def test_record_creates_then_increments(storage):
    aggregator = Aggregator(storage)
    hit = _hit(referrer="example.com")

    aggregator.record(hit)
    assert storage.rollup_hits("daily", "2023-11-14", "/blog", "example.com", "desktop") == 1
    assert storage.rollup_hits("hourly", "2023-11-14 22:00:00", "/blog", "example.com", "desktop") == 1

    aggregator.record(hit)
    assert storage.rollup_hits("daily", "2023-11-14", "/blog", "example.com", "desktop") == 2


def test_missing_referrer_stored_as_empty_string(storage):
    Aggregator(storage).record(_hit())
    assert storage.rollup_hits("daily", "2023-11-14", "/blog", "", "desktop") == 1


def test_hours_roll_up_into_one_day(storage):
    aggregator = Aggregator(storage)
    aggregator.record(_hit(ts=1_700_000_100))  # 22:15 UTC
    aggregator.record(_hit(ts=1_700_003_400))  # 23:10 UTC

    assert storage.rollup_hits("daily", "2023-11-14", "/blog", "", "desktop") == 2
    assert storage.rollup_hits("hourly", "2023-11-14 22:00:00", "/blog", "", "desktop") == 1
    assert storage.rollup_hits("hourly", "2023-11-14 23:00:00", "/blog", "", "desktop") == 1


def test_concurrent_increments_are_not_lost(storage):
    aggregator = Aggregator(storage)
    hit = _hit(path="/hot", referrer="news.example.org", device=DeviceClass.MOBILE)
    n = 200

    with ThreadPoolExecutor(max_workers=16) as pool:
        list(pool.map(lambda _: aggregator.record(hit), range(n)))

    assert storage.rollup_hits("daily", "2023-11-14", "/hot", "news.example.org", "mobile") == n
    assert storage.rollup_hits("hourly", "2023-11-14 22:00:00", "/hot", "news.example.org", "mobile") == n


def test_raw_log_trimmed_to_max_entries(storage):
    for i in range(8):
        storage.append_raw_log(_hit(path=f"/p{i}"), created_at=1_700_000_000 + i, max_entries=5)

    assert storage.count_raw_logs() == 5
    recent = storage.recent_raw_logs(10)
    assert [e.hit.page_path for e in recent] == ["/p7", "/p6", "/p5", "/p4", "/p3"]


def test_raw_log_prune_by_age_keeps_rollups(storage):
    Aggregator(storage).record(_hit())
    storage.append_raw_log(_hit(), created_at=1_000, max_entries=100)
    storage.append_raw_log(_hit(), created_at=5_000, max_entries=100)

    assert storage.prune_raw_logs(older_than=2_000) == 1
    assert storage.count_raw_logs() == 1
    assert storage.rollup_hits("daily", "2023-11-14", "/blog", "", "desktop") == 1
