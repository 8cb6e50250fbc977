"""Read-side reports over the rollup tables.

All operations are pure reads over a resolved, inclusive date range and
return empty collections (or zeroed KPIs) when nothing matches.
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable

from leanstats.core.sanitizer import coerce_int

if TYPE_CHECKING:
    from leanstats.storage.base import RollupReader

DAY_FORMAT = "%Y-%m-%d"
DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"

_DAY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_DATETIME_RE = re.compile(r"^\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}$")

DEFAULT_DAYS = 30
DEFAULT_HOURS = 24
LIMIT_DEFAULT = 10
LIMIT_MIN = 1
LIMIT_MAX = 100


@dataclass(frozen=True)
class DateRange:
    start: str
    end: str

    def to_dict(self) -> dict:
        return {"start": self.start, "end": self.end}


def normalize_limit(limit: object) -> int:
    value = coerce_int(limit)
    if value is None:
        return LIMIT_DEFAULT
    return max(LIMIT_MIN, min(LIMIT_MAX, value))


def _parse(value: object, pattern: re.Pattern, fmt: str) -> datetime | None:
    if not isinstance(value, str) or not pattern.match(value):
        return None
    try:
        return datetime.strptime(value, fmt)
    except ValueError:
        return None


def _resolve(start: object, end: object, pattern: re.Pattern, fmt: str,
             default_start: datetime, default_end: datetime) -> DateRange:
    start_dt = _parse(start, pattern, fmt) or default_start
    end_dt = _parse(end, pattern, fmt) or default_end
    if start_dt > end_dt:
        start_dt, end_dt = default_start, default_end
    return DateRange(start=start_dt.strftime(fmt), end=end_dt.strftime(fmt))


def resolve_day_range(start: object, end: object, now: datetime) -> DateRange:
    """Explicit ``YYYY-MM-DD`` bounds, else the last 30 days ending today."""
    today = now.replace(hour=0, minute=0, second=0, microsecond=0, tzinfo=None)
    return _resolve(start, end, _DAY_RE, DAY_FORMAT,
                    today - timedelta(days=DEFAULT_DAYS - 1), today)


def resolve_hour_range(start: object, end: object, now: datetime) -> DateRange:
    """Explicit ``YYYY-MM-DD HH:MM:SS`` bounds, else the last 24 hours."""
    hour = now.replace(minute=0, second=0, microsecond=0, tzinfo=None)
    return _resolve(start, end, _DATETIME_RE, DATETIME_FORMAT,
                    hour - timedelta(hours=DEFAULT_HOURS - 1), hour)


class QueryService:
    def __init__(self, reader: RollupReader, clock: Callable[[], float] = time.time) -> None:
        self._reader = reader
        self._clock = clock

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc)

    def day_range(self, start: object = None, end: object = None) -> DateRange:
        return resolve_day_range(start, end, self._now())

    def hour_range(self, start: object = None, end: object = None) -> DateRange:
        return resolve_hour_range(start, end, self._now())

    def kpis(self, start: object = None, end: object = None) -> dict:
        rng = self.day_range(start, end)
        row = self._reader.kpis(rng.start, rng.end)
        return {
            "range": rng.to_dict(),
            "kpis": {
                "totalHits": row["total_hits"],
                "uniquePages": row["unique_pages"],
                "uniqueReferrers": row["unique_referrers"],
            },
        }

    def _top(self, dimension: str, start: object, end: object, limit: int | None) -> dict:
        rng = self.day_range(start, end)
        items = self._reader.top(dimension, rng.start, rng.end, limit)
        return {"range": rng.to_dict(), "items": items}

    def top_pages(self, start: object = None, end: object = None, limit: object = None) -> dict:
        return self._top("page_path", start, end, normalize_limit(limit))

    def top_referrers(self, start: object = None, end: object = None, limit: object = None) -> dict:
        return self._top("referrer_domain", start, end, normalize_limit(limit))

    def device_split(self, start: object = None, end: object = None) -> dict:
        return self._top("device_class", start, end, None)

    def timeseries_day(self, start: object = None, end: object = None) -> dict:
        rng = self.day_range(start, end)
        return {"range": rng.to_dict(), "items": self._reader.timeseries("daily", rng.start, rng.end)}

    def timeseries_hour(self, start: object = None, end: object = None) -> dict:
        rng = self.hour_range(start, end)
        return {"range": rng.to_dict(), "items": self._reader.timeseries("hourly", rng.start, rng.end)}
