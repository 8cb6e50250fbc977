"""Admin endpoints: reports, settings, raw log export and nonces.

Every report and settings route requires an admin caller with a valid
anti-forgery nonce; denials are answered with 403 ``forbidden`` or
``invalid_nonce``.
"""

from __future__ import annotations

from fastapi import APIRouter, Body, Depends, Query

from leanstats.api.auth import require_admin, require_elevated
from leanstats.core.models import Caller

router = APIRouter(prefix="/api/v1/admin")


@router.get("/kpis", dependencies=[Depends(require_admin)])
def get_kpis(start: str | None = None, end: str | None = None) -> dict:
    from leanstats.main import get_query_service

    return get_query_service().kpis(start, end)


@router.get("/top-pages", dependencies=[Depends(require_admin)])
def get_top_pages(start: str | None = None, end: str | None = None,
                  limit: str | None = None) -> dict:
    from leanstats.main import get_query_service

    return get_query_service().top_pages(start, end, limit)


@router.get("/referrers", dependencies=[Depends(require_admin)])
def get_referrers(start: str | None = None, end: str | None = None,
                  limit: str | None = None) -> dict:
    from leanstats.main import get_query_service

    return get_query_service().top_referrers(start, end, limit)


@router.get("/timeseries/day", dependencies=[Depends(require_admin)])
def get_timeseries_day(start: str | None = None, end: str | None = None) -> dict:
    from leanstats.main import get_query_service

    return get_query_service().timeseries_day(start, end)


@router.get("/timeseries/hour", dependencies=[Depends(require_admin)])
def get_timeseries_hour(start: str | None = None, end: str | None = None) -> dict:
    from leanstats.main import get_query_service

    return get_query_service().timeseries_hour(start, end)


@router.get("/device-split", dependencies=[Depends(require_admin)])
def get_device_split(start: str | None = None, end: str | None = None) -> dict:
    from leanstats.main import get_query_service

    return get_query_service().device_split(start, end)


@router.get("/settings", dependencies=[Depends(require_admin)])
def get_settings() -> dict:
    from leanstats.main import get_settings_service

    return get_settings_service().current().to_dict()


@router.post("/settings", dependencies=[Depends(require_admin)])
def update_settings(payload: dict = Body(...)) -> dict:
    """Sanitize and persist a partial or full settings object."""
    from leanstats.main import get_settings_service

    return get_settings_service().update(payload).to_dict()


@router.get("/raw-logs", dependencies=[Depends(require_admin)])
def get_raw_logs(limit: int = Query(default=100, ge=1, le=1000)) -> dict:
    """Return the most recent raw hits, newest first, and how many are stored."""
    from leanstats.main import get_storage

    storage = get_storage()
    entries = storage.recent_raw_logs(limit)
    return {"items": [e.to_dict() for e in entries], "total": storage.count_raw_logs()}


@router.get("/stats", dependencies=[Depends(require_admin)])
def get_pipeline_stats() -> dict:
    """Pipeline counters, split by rejection reason."""
    from leanstats.main import get_stats

    return get_stats().snapshot()


@router.get("/nonce")
def get_nonce(caller: Caller = Depends(require_elevated)) -> dict:
    """Issue an anti-forgery nonce for the admin screen."""
    from leanstats.main import get_access

    return {"nonce": get_access().create_nonce(caller)}
