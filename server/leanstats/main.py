"""Lean Stats collector — main entry point.

This is the only file that knows about concrete implementations.
It wires together the core, storage, and API layers.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from contextlib import asynccontextmanager
from dataclasses import dataclass

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from leanstats.api.admin import router as admin_router
from leanstats.api.hits import router as hits_router
from leanstats.api.monitoring import router as monitoring_router
from leanstats.config import AppConfig, load_config
from leanstats.core.access import AccessControl
from leanstats.core.aggregator import Aggregator
from leanstats.core.dedup import DedupFilter
from leanstats.core.errors import AccessDenied, StorageFailure, ValidationError
from leanstats.core.maintenance import MaintenanceSweeper
from leanstats.core.models import Caller
from leanstats.core.processor import HitProcessor
from leanstats.core.query import QueryService
from leanstats.core.ratelimit import RateLimiter
from leanstats.core.settings import SettingsService
from leanstats.core.stats import ServerStats
from leanstats.storage.sqlite_storage import SQLiteStorage

log = structlog.get_logger()


@dataclass
class Components:
    config: AppConfig
    storage: SQLiteStorage
    stats: ServerStats
    settings: SettingsService
    processor: HitProcessor
    query: QueryService
    access: AccessControl
    sweeper: MaintenanceSweeper


# Module-level singleton (set during startup)
_components: Components | None = None


def _get() -> Components:
    assert _components is not None, "Server not initialized"
    return _components


def get_config() -> AppConfig:
    return _get().config


def get_storage() -> SQLiteStorage:
    return _get().storage


def get_stats() -> ServerStats:
    return _get().stats


def get_settings_service() -> SettingsService:
    return _get().settings


def get_processor() -> HitProcessor:
    return _get().processor


def get_query_service() -> QueryService:
    return _get().query


def get_access() -> AccessControl:
    return _get().access


def _setup_logging(config: AppConfig) -> None:
    """Configure structlog based on the logging config."""
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
    ]

    if config.logging.format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(config.logging.level.upper()),
        ),
    )


def _secret(value: str, name: str) -> str:
    if value:
        return value
    log.warning("secret_not_configured", name=name,
                detail="using a random per-process value")
    return secrets.token_hex(32)


def build_components(config: AppConfig) -> Components:
    """Create every component from the config."""
    storage = SQLiteStorage(config.storage.db_path,
                            busy_timeout_ms=config.storage.busy_timeout_ms)
    stats = ServerStats()
    settings = SettingsService(
        storage,
        known_roles=config.auth.known_roles,
        cache_ttl_seconds=config.settings.cache_ttl_seconds,
    )
    settings.install()

    dedup = DedupFilter(storage, window_seconds=config.dedup.window_seconds)
    limiter = RateLimiter(
        salt=_secret(config.rate_limit.salt, "rate_limit.salt"),
        window_seconds=config.rate_limit.window_seconds,
        max_hits=config.rate_limit.max_hits,
    )
    processor = HitProcessor(
        settings=settings,
        dedup=dedup,
        limiter=limiter,
        aggregator=Aggregator(storage),
        raw_logs=storage,
        stats=stats,
        bucket_seconds=config.ingest.bucket_seconds,
        raw_log_max_entries=config.raw_log.max_entries,
    )
    access = AccessControl(
        tokens={
            t.token: Caller(user_id=t.user_id, roles=frozenset(t.roles))
            for t in config.auth.tokens
        },
        admin_roles=config.auth.admin_roles,
        nonce_secret=_secret(config.auth.nonce_secret, "auth.nonce_secret"),
        nonce_lifetime_seconds=config.auth.nonce_lifetime_seconds,
    )
    sweeper = MaintenanceSweeper(
        settings=settings,
        raw_logs=storage,
        dedup_marks=storage,
        caches=(dedup.cache,),
        stats=stats,
    )
    return Components(
        config=config,
        storage=storage,
        stats=stats,
        settings=settings,
        processor=processor,
        query=QueryService(storage),
        access=access,
        sweeper=sweeper,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    global _components

    config = load_config()
    _setup_logging(config)

    log.info("server_starting",
             env=config.server.env,
             db_path=config.storage.db_path,
             dedup_window=config.dedup.window_seconds,
             rate_limit_window=config.rate_limit.window_seconds,
             rate_limit_max_hits=config.rate_limit.max_hits)

    _components = build_components(config)

    # Start background maintenance sweep
    sweep_task = asyncio.create_task(
        _components.sweeper.run(config.maintenance.interval_seconds)
    )

    log.info("server_started",
             host=config.server.host,
             port=config.server.port)

    yield

    # Shutdown
    sweep_task.cancel()
    try:
        await sweep_task
    except asyncio.CancelledError:
        pass
    _components.storage.close()
    log.info("server_stopped")


app = FastAPI(
    title="Lean Stats",
    description="Privacy-preserving web analytics collector",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(ValidationError)
async def _validation_error(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"code": exc.code, "message": exc.message})


@app.exception_handler(AccessDenied)
async def _access_denied(request: Request, exc: AccessDenied) -> JSONResponse:
    return JSONResponse(status_code=403, content={"code": exc.code, "message": exc.message})


@app.exception_handler(StorageFailure)
async def _storage_failure(request: Request, exc: StorageFailure) -> JSONResponse:
    log.error("request_storage_failed", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=503,
        content={"code": "storage_failure", "message": "Storage is unavailable, retry later."},
    )


app.include_router(hits_router)
app.include_router(admin_router)
app.include_router(monitoring_router)
