"""Health check endpoint.

Public and unauthenticated, so it reports liveness only. Pipeline counters
are under ``/api/v1/admin/stats``.
"""

from __future__ import annotations

import shutil
from pathlib import Path

from fastapi import APIRouter

router = APIRouter(prefix="/api/v1")

VERSION = "0.1.0"


def _disk_free_gb(db_path: str) -> float:
    directory = Path(db_path).parent
    try:
        return round(shutil.disk_usage(directory if directory.exists() else ".").free / (1024 ** 3), 1)
    except OSError:
        return -1


@router.get("/health")
def health() -> dict:
    """Liveness plus a write probe against the database."""
    from leanstats.main import get_config, get_stats, get_storage

    return {
        "status": "ok",
        "version": VERSION,
        "uptime_seconds": get_stats().snapshot()["uptime_seconds"],
        "storage_writable": get_storage().is_writable(),
        "disk_free_gb": _disk_free_gb(get_config().storage.db_path),
    }
