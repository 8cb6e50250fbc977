"""Collector configuration.

Loads from config.yaml if present, with environment variable overrides.
Environment variables use the pattern: LEANSTATS_<SECTION>_<KEY> (uppercase).

This is static process configuration. The admin-editable privacy settings
live in storage and are handled by ``leanstats.core.settings``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 8000
    env: str = "dev"  # "dev" or "prod"


@dataclass
class StorageConfig:
    db_path: str = "data/leanstats.sqlite3"
    busy_timeout_ms: int = 5000


@dataclass
class IngestConfig:
    bucket_seconds: int = 300


@dataclass
class DedupConfig:
    window_seconds: int = 20


@dataclass
class RateLimitConfig:
    window_seconds: int = 10
    max_hits: int = 30
    salt: str = ""  # random per process when empty


@dataclass
class RawLogConfig:
    max_entries: int = 1000


@dataclass
class SettingsConfig:
    cache_ttl_seconds: float = 5.0


@dataclass
class MaintenanceConfig:
    interval_seconds: float = 3600.0


@dataclass
class AuthTokenConfig:
    token: str
    user_id: str
    roles: list[str] = field(default_factory=list)


@dataclass
class AuthConfig:
    tokens: list[AuthTokenConfig] = field(default_factory=list)
    known_roles: list[str] = field(default_factory=lambda: [
        "administrator", "editor", "author", "contributor", "subscriber",
    ])
    admin_roles: list[str] = field(default_factory=lambda: ["administrator"])
    nonce_secret: str = ""  # random per process when empty
    nonce_lifetime_seconds: int = 86400


@dataclass
class LoggingConfig:
    level: str = "info"
    format: str = "console"  # "console" or "json"


@dataclass
class AppConfig:
    server: ServerConfig = field(default_factory=ServerConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    ingest: IngestConfig = field(default_factory=IngestConfig)
    dedup: DedupConfig = field(default_factory=DedupConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    raw_log: RawLogConfig = field(default_factory=RawLogConfig)
    settings: SettingsConfig = field(default_factory=SettingsConfig)
    maintenance: MaintenanceConfig = field(default_factory=MaintenanceConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _split_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _parse_tokens(value: str) -> list[AuthTokenConfig]:
    """Parse ``token:user:role1|role2`` entries separated by commas."""
    tokens = []
    for entry in _split_list(value):
        parts = entry.split(":")
        if len(parts) < 2:
            continue
        roles = parts[2].split("|") if len(parts) > 2 and parts[2] else []
        tokens.append(AuthTokenConfig(token=parts[0], user_id=parts[1], roles=roles))
    return tokens


def _apply_env_overrides(config: AppConfig) -> None:
    """Override config values from environment variables."""
    mapping = {
        "LEANSTATS_SERVER_HOST": lambda v: setattr(config.server, "host", v),
        "LEANSTATS_SERVER_PORT": lambda v: setattr(config.server, "port", int(v)),
        "LEANSTATS_SERVER_ENV": lambda v: setattr(config.server, "env", v),
        "LEANSTATS_STORAGE_DB_PATH": lambda v: setattr(config.storage, "db_path", v),
        "LEANSTATS_INGEST_BUCKET_SECONDS": lambda v: setattr(config.ingest, "bucket_seconds", int(v)),
        "LEANSTATS_DEDUP_WINDOW_SECONDS": lambda v: setattr(config.dedup, "window_seconds", int(v)),
        "LEANSTATS_RATE_LIMIT_WINDOW_SECONDS": lambda v: setattr(config.rate_limit, "window_seconds", int(v)),
        "LEANSTATS_RATE_LIMIT_MAX_HITS": lambda v: setattr(config.rate_limit, "max_hits", int(v)),
        "LEANSTATS_RATE_LIMIT_SALT": lambda v: setattr(config.rate_limit, "salt", v),
        "LEANSTATS_RAW_LOG_MAX_ENTRIES": lambda v: setattr(config.raw_log, "max_entries", int(v)),
        "LEANSTATS_SETTINGS_CACHE_TTL": lambda v: setattr(config.settings, "cache_ttl_seconds", float(v)),
        "LEANSTATS_MAINTENANCE_INTERVAL": lambda v: setattr(config.maintenance, "interval_seconds", float(v)),
        "LEANSTATS_AUTH_TOKENS": lambda v: setattr(config.auth, "tokens", _parse_tokens(v)),
        "LEANSTATS_AUTH_KNOWN_ROLES": lambda v: setattr(config.auth, "known_roles", _split_list(v)),
        "LEANSTATS_AUTH_ADMIN_ROLES": lambda v: setattr(config.auth, "admin_roles", _split_list(v)),
        "LEANSTATS_AUTH_NONCE_SECRET": lambda v: setattr(config.auth, "nonce_secret", v),
        "LEANSTATS_LOG_LEVEL": lambda v: setattr(config.logging, "level", v),
        "LEANSTATS_LOG_FORMAT": lambda v: setattr(config.logging, "format", v),
    }
    for env_key, setter in mapping.items():
        val = os.environ.get(env_key)
        if val is not None:
            setter(val)


def _apply_section(section: object, values: dict) -> None:
    for k, v in values.items():
        if hasattr(section, k):
            setattr(section, k, v)


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load configuration from YAML file + environment overrides."""
    config = AppConfig()

    if config_path is None:
        config_path = Path(os.environ.get("LEANSTATS_CONFIG", "config.yaml"))
    else:
        config_path = Path(config_path)

    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}

        for name in ("server", "storage", "ingest", "dedup", "rate_limit",
                     "raw_log", "settings", "maintenance", "logging"):
            if name in raw:
                _apply_section(getattr(config, name), raw[name] or {})

        if "auth" in raw:
            auth = dict(raw["auth"] or {})
            tokens = auth.pop("tokens", None)
            _apply_section(config.auth, auth)
            if tokens:
                config.auth.tokens = [
                    AuthTokenConfig(
                        token=str(t["token"]),
                        user_id=str(t["user_id"]),
                        roles=[str(r) for r in t.get("roles", [])],
                    )
                    for t in tokens
                ]

    # Environment overrides always win
    _apply_env_overrides(config)
    return config
