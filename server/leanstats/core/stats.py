"""Collector statistics.

Tracks in-memory counters for every pipeline outcome. These split the
opaque "not tracked" answer by reason, so they are only served to admins.
No framework dependencies.
"""

from __future__ import annotations

import threading
import time


class ServerStats:
    """Thread-safe pipeline counters."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._started_at = time.time()

        # Counters
        self.hits_received: int = 0
        self.hits_tracked: int = 0
        self.hits_skipped: int = 0
        self.hits_invalid: int = 0
        self.hits_deduplicated: int = 0
        self.hits_rate_limited: int = 0
        self.raw_logs_written: int = 0
        self.storage_errors: int = 0
        self.sweeps: int = 0

    def record_received(self) -> None:
        with self._lock:
            self.hits_received += 1

    def record_tracked(self) -> None:
        with self._lock:
            self.hits_tracked += 1

    def record_skipped(self) -> None:
        with self._lock:
            self.hits_skipped += 1

    def record_invalid(self) -> None:
        with self._lock:
            self.hits_invalid += 1

    def record_duplicate(self) -> None:
        with self._lock:
            self.hits_deduplicated += 1

    def record_rate_limited(self) -> None:
        with self._lock:
            self.hits_rate_limited += 1

    def record_raw_log(self) -> None:
        with self._lock:
            self.raw_logs_written += 1

    def record_storage_error(self) -> None:
        with self._lock:
            self.storage_errors += 1

    def record_sweep(self) -> None:
        with self._lock:
            self.sweeps += 1

    def snapshot(self) -> dict:
        """Return a JSON-serializable snapshot of all stats."""
        with self._lock:
            return {
                "uptime_seconds": round(time.time() - self._started_at, 1),
                "hits_received": self.hits_received,
                "hits_tracked": self.hits_tracked,
                "hits_skipped": self.hits_skipped,
                "hits_invalid": self.hits_invalid,
                "hits_deduplicated": self.hits_deduplicated,
                "hits_rate_limited": self.hits_rate_limited,
                "raw_logs_written": self.raw_logs_written,
                "storage_errors": self.storage_errors,
                "sweeps": self.sweeps,
            }
