"""Tests for config loading."""

from __future__ import annotations

from leanstats.config import load_config


def test_defaults_when_file_missing(tmp_path, monkeypatch):
    monkeypatch.delenv("LEANSTATS_RATE_LIMIT_MAX_HITS", raising=False)
    config = load_config(tmp_path / "missing.yaml")
    assert config.storage.db_path == "data/leanstats.sqlite3"
    assert config.dedup.window_seconds == 20
    assert config.rate_limit.max_hits == 30
    assert config.auth.tokens == []


def test_yaml_sections_and_tokens(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "storage:\n"
        "  db_path: /var/lib/leanstats/db.sqlite3\n"
        "rate_limit:\n"
        "  max_hits: 5\n"
        "auth:\n"
        "  nonce_secret: s3cret\n"
        "  tokens:\n"
        "    - token: abc\n"
        "      user_id: 7\n"
        "      roles: [administrator]\n"
    )

    config = load_config(path)

    assert config.storage.db_path == "/var/lib/leanstats/db.sqlite3"
    assert config.rate_limit.max_hits == 5
    assert config.auth.nonce_secret == "s3cret"
    assert len(config.auth.tokens) == 1
    assert config.auth.tokens[0].user_id == "7"
    assert config.auth.tokens[0].roles == ["administrator"]


def test_env_overrides_win(tmp_path, monkeypatch):
    path = tmp_path / "config.yaml"
    path.write_text("rate_limit:\n  max_hits: 5\n")
    monkeypatch.setenv("LEANSTATS_RATE_LIMIT_MAX_HITS", "12")
    monkeypatch.setenv("LEANSTATS_AUTH_TOKENS", "tok1:1:administrator|editor, tok2:2")

    config = load_config(path)

    assert config.rate_limit.max_hits == 12
    assert [(t.token, t.user_id, t.roles) for t in config.auth.tokens] == [
        ("tok1", "1", ["administrator", "editor"]),
        ("tok2", "2", []),
    ]
