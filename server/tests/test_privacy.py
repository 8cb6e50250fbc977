"""Tests for the privacy gate."""

from __future__ import annotations

import pytest

from leanstats.core.models import Caller, RequestContext, Settings
from leanstats.core.privacy import should_skip

EDITOR = Caller(user_id="2", roles=frozenset({"editor"}))


def _ctx(headers=None, caller=None) -> RequestContext:
    return RequestContext(headers={k.lower(): v for k, v in (headers or {}).items()},
                          caller=caller)


def test_anonymous_visitor_tracked_by_default():
    assert should_skip(_ctx(), Settings()) is False


def test_strict_mode_skips_authenticated_callers_only():
    settings = Settings(strict_mode=True)
    assert should_skip(_ctx(caller=EDITOR), settings) is True
    assert should_skip(_ctx(), settings) is False


def test_excluded_role_skipped():
    settings = Settings(excluded_roles=("editor",))
    assert should_skip(_ctx(caller=EDITOR), settings) is True

    author = Caller(user_id="3", roles=frozenset({"author"}))
    assert should_skip(_ctx(caller=author), settings) is False


@pytest.mark.parametrize("headers, expected", [
    ({"DNT": "1"}, True),
    ({"Sec-GPC": "1"}, True),
    ({"DNT": "0"}, False),
    ({"DNT": "yes"}, False),
    ({"Sec-GPC": " 1"}, False),
    ({}, False),
])
def test_dnt_gpc_respected(headers, expected):
    assert should_skip(_ctx(headers), Settings(respect_dnt_gpc=True)) is expected


def test_dnt_ignored_when_not_respected():
    assert should_skip(_ctx({"DNT": "1", "Sec-GPC": "1"}), Settings(respect_dnt_gpc=False)) is False
