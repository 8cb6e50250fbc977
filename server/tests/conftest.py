"""Shared test fixtures."""

from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

import leanstats.main as main_module
from leanstats.config import AppConfig, AuthTokenConfig
from leanstats.main import build_components
from leanstats.storage.sqlite_storage import SQLiteStorage

ADMIN_TOKEN = "admin-token"
EDITOR_TOKEN = "editor-token"


class FakeClock:
    """Manually advanced clock, callable like ``time.time``."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage(tmp_path):
    store = SQLiteStorage(tmp_path / "test.sqlite3")
    yield store
    store.close()


@pytest.fixture
def config(tmp_path) -> AppConfig:
    config = AppConfig()
    config.storage.db_path = str(tmp_path / "data" / "leanstats.sqlite3")
    config.logging.level = "warning"
    config.rate_limit.salt = "test-salt"
    config.auth.nonce_secret = "test-secret"
    config.auth.tokens = [
        AuthTokenConfig(token=ADMIN_TOKEN, user_id="1", roles=["administrator"]),
        AuthTokenConfig(token=EDITOR_TOKEN, user_id="2", roles=["editor"]),
    ]
    return config


@pytest.fixture(autouse=True)
def _init_server(config):
    """Initialize server singletons for every test, using a temp directory."""
    components = build_components(config)

    # Patch module-level singleton
    main_module._components = components

    yield components

    # Cleanup
    components.storage.close()
    main_module._components = None


@pytest.fixture
async def client():
    from leanstats.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
def admin_headers(_init_server) -> dict:
    """Bearer token and a valid nonce for the administrator."""
    caller = _init_server.access.resolve_caller(f"Bearer {ADMIN_TOKEN}")
    return {
        "Authorization": f"Bearer {ADMIN_TOKEN}",
        "X-LS-Nonce": _init_server.access.create_nonce(caller),
    }
