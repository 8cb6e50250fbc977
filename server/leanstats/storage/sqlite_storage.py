"""SQLite storage implementation.

Tables:
- daily / hourly: rollup counters keyed by (bucket, page_path,
  referrer_domain, device_class); the single source of truth for reports
- raw_logs: bounded, rotating buffer of individual hits
- dedup_marks: durable tier of the dedup filter
- settings: singleton row holding the admin settings as JSON

Each thread gets its own connection. Writes run in ``BEGIN IMMEDIATE``
transactions and counters are bumped with an atomic upsert, so concurrent
increments of the same key are never lost.
"""

from __future__ import annotations

import json
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

import structlog

from leanstats.core.errors import StorageFailure
from leanstats.core.models import DeviceClass, Hit, RawLogEntry

log = structlog.get_logger()

_SCHEMA = """
CREATE TABLE IF NOT EXISTS daily (
    date_bucket TEXT NOT NULL,
    page_path TEXT NOT NULL,
    referrer_domain TEXT NOT NULL,
    device_class TEXT NOT NULL,
    hits INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (date_bucket, page_path, referrer_domain, device_class)
);
CREATE INDEX IF NOT EXISTS daily_page_path ON daily (page_path);
CREATE INDEX IF NOT EXISTS daily_referrer_domain ON daily (referrer_domain);

CREATE TABLE IF NOT EXISTS hourly (
    date_bucket TEXT NOT NULL,
    page_path TEXT NOT NULL,
    referrer_domain TEXT NOT NULL,
    device_class TEXT NOT NULL,
    hits INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (date_bucket, page_path, referrer_domain, device_class)
);

CREATE TABLE IF NOT EXISTS raw_logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    created_at INTEGER NOT NULL,
    page_path TEXT NOT NULL,
    post_id INTEGER,
    referrer_domain TEXT,
    device_class TEXT NOT NULL,
    timestamp_bucket INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS raw_logs_created_at ON raw_logs (created_at);

CREATE TABLE IF NOT EXISTS dedup_marks (
    key TEXT PRIMARY KEY,
    expires_at REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS settings (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    data TEXT NOT NULL
);
"""

_ROLLUP_UPSERT = (
    "INSERT INTO {table} (date_bucket, page_path, referrer_domain, device_class, hits) "
    "VALUES (?, ?, ?, ?, 1) "
    "ON CONFLICT (date_bucket, page_path, referrer_domain, device_class) "
    "DO UPDATE SET hits = {table}.hits + 1"
)

_TABLES = {"daily", "hourly"}
_DIMENSIONS = {"page_path", "referrer_domain", "device_class"}


class SQLiteStorage:
    """Implements every storage port on one SQLite database file."""

    def __init__(self, db_path: str | Path, busy_timeout_ms: int = 5000) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._busy_timeout_ms = busy_timeout_ms
        self._local = threading.local()
        self._connections: list[sqlite3.Connection] = []
        self._connections_lock = threading.Lock()

        with self._errors("init_schema"):
            conn = self._conn()
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(_SCHEMA)

    def _conn(self) -> sqlite3.Connection:
        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = sqlite3.connect(
                str(self._db_path),
                timeout=self._busy_timeout_ms / 1000,
                isolation_level=None,
                check_same_thread=False,
            )
            conn.execute(f"PRAGMA busy_timeout = {int(self._busy_timeout_ms)}")
            self._local.conn = conn
            with self._connections_lock:
                self._connections.append(conn)
        return conn

    @contextmanager
    def _errors(self, operation: str) -> Iterator[None]:
        try:
            yield
        except sqlite3.Error as exc:
            log.error("storage_error", operation=operation, error=str(exc))
            raise StorageFailure(f"{operation} failed: {exc}") from exc

    @contextmanager
    def _write(self, operation: str) -> Iterator[sqlite3.Connection]:
        """Run the block in an immediate transaction."""
        with self._errors(operation):
            conn = self._conn()
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    def close(self) -> None:
        with self._connections_lock:
            for conn in self._connections:
                conn.close()
            self._connections.clear()
        self._local = threading.local()

    def is_writable(self) -> bool:
        try:
            conn = self._conn()
            conn.execute("BEGIN IMMEDIATE")
            conn.execute("ROLLBACK")
            return True
        except sqlite3.Error:
            return False

    # Rollups

    def increment_rollups(
        self,
        date_bucket: str,
        hour_bucket: str,
        page_path: str,
        referrer_domain: str,
        device_class: str,
    ) -> None:
        with self._write("increment_rollups") as conn:
            conn.execute(_ROLLUP_UPSERT.format(table="daily"),
                         (date_bucket, page_path, referrer_domain, device_class))
            conn.execute(_ROLLUP_UPSERT.format(table="hourly"),
                         (hour_bucket, page_path, referrer_domain, device_class))

    def rollup_hits(self, table: str, bucket: str, page_path: str,
                    referrer_domain: str, device_class: str) -> int:
        """Counter of one rollup row, 0 when absent. Point lookup for tests and debugging."""
        if table not in _TABLES:
            raise ValueError(f"unknown rollup table {table!r}")
        with self._errors("rollup_hits"):
            row = self._conn().execute(
                f"SELECT hits FROM {table} WHERE date_bucket = ? AND page_path = ? "
                "AND referrer_domain = ? AND device_class = ?",
                (bucket, page_path, referrer_domain, device_class),
            ).fetchone()
        return int(row[0]) if row else 0

    def kpis(self, start: str, end: str) -> dict:
        with self._errors("kpis"):
            row = self._conn().execute(
                "SELECT COALESCE(SUM(hits), 0), COUNT(DISTINCT page_path), "
                "COUNT(DISTINCT referrer_domain) "
                "FROM daily WHERE date_bucket BETWEEN ? AND ?",
                (start, end),
            ).fetchone()
        return {
            "total_hits": int(row[0] or 0),
            "unique_pages": int(row[1] or 0),
            "unique_referrers": int(row[2] or 0),
        }

    def top(self, dimension: str, start: str, end: str, limit: int | None) -> list[dict]:
        """Sum hits per value of ``dimension`` on the daily table, largest first."""
        if dimension not in _DIMENSIONS:
            raise ValueError(f"unknown dimension {dimension!r}")
        with self._errors("top"):
            rows = self._conn().execute(
                f"SELECT {dimension} AS label, SUM(hits) AS total FROM daily "
                "WHERE date_bucket BETWEEN ? AND ? "
                f"GROUP BY {dimension} ORDER BY total DESC, label ASC LIMIT ?",
                (start, end, -1 if limit is None else limit),
            ).fetchall()
        return [{"label": r[0], "hits": int(r[1])} for r in rows]

    def timeseries(self, table: str, start: str, end: str) -> list[dict]:
        if table not in _TABLES:
            raise ValueError(f"unknown rollup table {table!r}")
        with self._errors("timeseries"):
            rows = self._conn().execute(
                f"SELECT date_bucket, SUM(hits) FROM {table} "
                "WHERE date_bucket BETWEEN ? AND ? "
                "GROUP BY date_bucket ORDER BY date_bucket ASC",
                (start, end),
            ).fetchall()
        return [{"bucket": r[0], "hits": int(r[1])} for r in rows]

    # Settings

    def load_settings(self) -> dict | None:
        with self._errors("load_settings"):
            row = self._conn().execute("SELECT data FROM settings WHERE id = 1").fetchone()
        if row is None:
            return None
        try:
            data = json.loads(row[0])
        except json.JSONDecodeError:
            log.warning("settings_row_corrupt")
            return None
        return data if isinstance(data, dict) else None

    def save_settings(self, data: dict) -> None:
        payload = json.dumps(data, separators=(",", ":"))
        with self._write("save_settings") as conn:
            conn.execute(
                "INSERT INTO settings (id, data) VALUES (1, ?) "
                "ON CONFLICT (id) DO UPDATE SET data = excluded.data",
                (payload,),
            )

    # Raw logs

    def append_raw_log(self, hit: Hit, created_at: int, max_entries: int) -> None:
        """Insert a hit and drop the oldest entries beyond ``max_entries``."""
        with self._write("append_raw_log") as conn:
            conn.execute(
                "INSERT INTO raw_logs (created_at, page_path, post_id, referrer_domain, "
                "device_class, timestamp_bucket) VALUES (?, ?, ?, ?, ?, ?)",
                (created_at, hit.page_path, hit.post_id, hit.referrer_domain,
                 hit.device_class.value, hit.timestamp_bucket),
            )
            conn.execute(
                "DELETE FROM raw_logs WHERE id <= "
                "(SELECT id FROM raw_logs ORDER BY id DESC LIMIT 1 OFFSET ?)",
                (max(1, max_entries),),
            )

    def prune_raw_logs(self, older_than: int) -> int:
        with self._write("prune_raw_logs") as conn:
            cur = conn.execute("DELETE FROM raw_logs WHERE created_at < ?", (older_than,))
            return cur.rowcount

    def recent_raw_logs(self, limit: int) -> list[RawLogEntry]:
        with self._errors("recent_raw_logs"):
            rows = self._conn().execute(
                "SELECT id, created_at, page_path, post_id, referrer_domain, device_class, "
                "timestamp_bucket FROM raw_logs ORDER BY id DESC LIMIT ?",
                (limit,),
            ).fetchall()
        return [
            RawLogEntry(
                id=r[0],
                created_at=r[1],
                hit=Hit(
                    page_path=r[2],
                    post_id=r[3],
                    referrer_domain=r[4],
                    device_class=DeviceClass(r[5]),
                    timestamp_bucket=r[6],
                ),
            )
            for r in rows
        ]

    def count_raw_logs(self) -> int:
        with self._errors("count_raw_logs"):
            return int(self._conn().execute("SELECT COUNT(*) FROM raw_logs").fetchone()[0])

    # Dedup marks

    def mark_seen(self, key: str, expires_at: float, now: float) -> bool:
        with self._write("mark_seen") as conn:
            cur = conn.execute(
                "INSERT INTO dedup_marks (key, expires_at) VALUES (?, ?) "
                "ON CONFLICT (key) DO UPDATE SET expires_at = excluded.expires_at "
                "WHERE dedup_marks.expires_at <= ?",
                (key, expires_at, now),
            )
            return cur.rowcount > 0

    def prune_dedup_marks(self, now: float) -> int:
        with self._write("prune_dedup_marks") as conn:
            cur = conn.execute("DELETE FROM dedup_marks WHERE expires_at <= ?", (now,))
            return cur.rowcount
