"""Tests for hit payload sanitization."""

from __future__ import annotations

import pytest

from leanstats.core.errors import ValidationError
from leanstats.core.models import DeviceClass, Settings
from leanstats.core.sanitizer import (
    MAX_PAGE_PATH_LENGTH,
    MAX_TIMESTAMP,
    clean_page_path,
    clean_referrer_domain,
    sanitize_hit,
)

STRIP_ALL = Settings(url_strip_query=True, url_query_allowlist=())
KEEP_ALL = Settings(url_strip_query=False)


def _payload(**overrides) -> dict:
    payload = {
        "page_path": "/blog/hello",
        "device_class": "desktop",
        "timestamp_bucket": 1_700_000_100,
    }
    payload.update(overrides)
    return payload


@pytest.mark.parametrize("raw, expected", [
    ("/blog/", "/blog"),
    ("/blog/post///", "/blog/post"),
    ("/", "/"),
    ("///", "/"),
    ("blog/post", "/blog/post"),
    ("  /about/  ", "/about"),
])
def test_trailing_slash_stripped_except_root(raw, expected):
    assert clean_page_path(raw, STRIP_ALL) == expected


def test_scheme_host_and_fragment_discarded():
    assert clean_page_path("https://example.com/pricing/#plans", KEEP_ALL) == "/pricing"


def test_strip_query_with_empty_allowlist_drops_everything():
    for raw in ("/blog/?utm_source=test&ref=keep", "/a?x=1", "/b?=nokey&y="):
        assert "?" not in clean_page_path(raw, STRIP_ALL)


def test_allowlisted_query_kept():
    settings = Settings(url_strip_query=True, url_query_allowlist=("utm_source",))
    assert clean_page_path("/blog/?utm_source=test&ref=keep", settings) == "/blog?utm_source=test"


def test_query_preserved_in_stable_order_when_not_stripping():
    cleaned = clean_page_path("/blog/?utm_source=test&ref=keep", KEEP_ALL)
    assert cleaned == "/blog?ref=keep&utm_source=test"


def test_query_with_empty_key_dropped():
    assert clean_page_path("/p?=orphan&a=1", KEEP_ALL) == "/p?a=1"


def test_repeated_keys_keep_their_order():
    assert clean_page_path("/p?b=2&a=1&b=1", KEEP_ALL) == "/p?a=1&b=2&b=1"


@pytest.mark.parametrize("raw", [
    "", "   ", "?a=1", "https://example.com", None, 42,
    "/a\ud800",
    "/" + "a" * MAX_PAGE_PATH_LENGTH,
])
def test_invalid_page_path(raw):
    with pytest.raises(ValidationError) as excinfo:
        sanitize_hit(_payload(page_path=raw), STRIP_ALL)
    assert excinfo.value.code == "invalid_page_path"


@pytest.mark.parametrize("raw, expected", [
    ("example.com", "example.com"),
    ("https://news.example.org/story?id=1", "news.example.org"),
    ("http://Search.Example.COM", "search.example.com"),
    ("", None),
    ("   ", None),
    ("https://", None),
    (None, None),
    (123, None),
    ("news.example.org\ud800", None),
    ("https://" + "a" * 256 + ".example.com/", None),
])
def test_referrer_domain(raw, expected):
    assert clean_referrer_domain(raw) == expected


@pytest.mark.parametrize("raw, expected", [
    ("desktop", DeviceClass.DESKTOP),
    ("Mobile", DeviceClass.MOBILE),
    (" TABLET ", DeviceClass.TABLET),
    ("bot", DeviceClass.BOT),
])
def test_device_class_normalized(raw, expected):
    assert sanitize_hit(_payload(device_class=raw), STRIP_ALL).device_class is expected


@pytest.mark.parametrize("raw", ["phone", "", None, 3])
def test_invalid_device_class(raw):
    with pytest.raises(ValidationError) as excinfo:
        sanitize_hit(_payload(device_class=raw), STRIP_ALL)
    assert excinfo.value.code == "invalid_device_class"


@pytest.mark.parametrize("raw", [0, -300, "abc", None, True, 12.5, 299, MAX_TIMESTAMP + 1, 300 * 10 ** 12])
def test_invalid_timestamp_bucket(raw):
    with pytest.raises(ValidationError) as excinfo:
        sanitize_hit(_payload(timestamp_bucket=raw), STRIP_ALL)
    assert excinfo.value.code == "invalid_timestamp_bucket"


def test_timestamp_truncated_to_window():
    hit = sanitize_hit(_payload(timestamp_bucket="1700000123"), STRIP_ALL)
    assert hit.timestamp_bucket % 300 == 0
    assert hit.timestamp_bucket == 1_700_000_100


def test_post_id_zero_is_absent():
    assert sanitize_hit(_payload(post_id=0), STRIP_ALL).post_id is None
    assert sanitize_hit(_payload(post_id="42"), STRIP_ALL).post_id == 42
    assert sanitize_hit(_payload(), STRIP_ALL).post_id is None


@pytest.mark.parametrize("raw", [-1, "x", 1.5, 2 ** 63, "9" * 5000])
def test_invalid_post_id(raw):
    with pytest.raises(ValidationError) as excinfo:
        sanitize_hit(_payload(post_id=raw), STRIP_ALL)
    assert excinfo.value.code == "invalid_post_id"


def test_full_hit():
    hit = sanitize_hit(
        _payload(page_path="/shop/?utm_source=x", referrer_domain="www.example.net/path",
                 post_id=7, device_class="mobile"),
        STRIP_ALL,
    )
    assert hit.page_path == "/shop"
    assert hit.referrer_domain == "www.example.net"
    assert hit.post_id == 7
    assert hit.device_class is DeviceClass.MOBILE
    assert hit.date_bucket == "2023-11-14"
    assert hit.hour_bucket == "2023-11-14 22:00:00"


def test_latest_representable_timestamp_accepted():
    hit = sanitize_hit(_payload(timestamp_bucket=MAX_TIMESTAMP), STRIP_ALL)
    assert hit.date_bucket == "9999-12-31"


def test_long_path_within_limit_accepted():
    raw = "/" + "a" * (MAX_PAGE_PATH_LENGTH - 1)
    assert clean_page_path(raw, STRIP_ALL) == raw


@pytest.mark.parametrize("bucket_seconds", [0, -60])
def test_non_positive_bucket_window_leaves_timestamp_whole(bucket_seconds):
    hit = sanitize_hit(_payload(timestamp_bucket=1_700_000_123), STRIP_ALL, bucket_seconds)
    assert hit.timestamp_bucket == 1_700_000_123
