"""Storage interfaces (ports) for rollups, settings, raw logs and dedup marks.

Implementations raise ``StorageFailure`` on any backend error.
"""

from __future__ import annotations

from typing import Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from leanstats.core.models import Hit, RawLogEntry


class RollupStorage(Protocol):
    """Port: atomic increment-or-insert of the daily and hourly counters."""

    def increment_rollups(
        self,
        date_bucket: str,
        hour_bucket: str,
        page_path: str,
        referrer_domain: str,
        device_class: str,
    ) -> None: ...


class RollupReader(Protocol):
    """Port: read-side queries over the rollup tables."""

    def kpis(self, start: str, end: str) -> dict: ...

    def top(self, dimension: str, start: str, end: str, limit: int | None) -> list[dict]: ...

    def timeseries(self, table: str, start: str, end: str) -> list[dict]: ...


class SettingsStorage(Protocol):
    def load_settings(self) -> dict | None: ...

    def save_settings(self, data: dict) -> None: ...


class RawLogStorage(Protocol):
    def append_raw_log(self, hit: Hit, created_at: int, max_entries: int) -> None: ...

    def prune_raw_logs(self, older_than: int) -> int: ...

    def recent_raw_logs(self, limit: int) -> list[RawLogEntry]: ...


class DedupStorage(Protocol):
    def mark_seen(self, key: str, expires_at: float, now: float) -> bool:
        """Store the mark unless a live one exists. True when newly marked."""
        ...

    def prune_dedup_marks(self, now: float) -> int: ...
