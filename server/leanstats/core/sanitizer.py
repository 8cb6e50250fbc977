"""Hit payload sanitizer.

Turns the raw JSON body sent by the tracker into a canonical ``Hit``.
Pure: depends only on the payload and a settings snapshot.
"""

from __future__ import annotations

import re
from urllib.parse import parse_qsl, urlencode, urlsplit

from leanstats.core.errors import (
    InvalidDeviceClass,
    InvalidPagePath,
    InvalidPostId,
    InvalidTimestampBucket,
)
from leanstats.core.models import DeviceClass, Hit, Settings

DEFAULT_BUCKET_SECONDS = 300
MAX_PAGE_PATH_LENGTH = 2048
MAX_REFERRER_LENGTH = 255
# 9999-12-31 23:59:59 UTC, the last second a datetime can hold
MAX_TIMESTAMP = 253402300799
# largest value a SQLite INTEGER column holds
MAX_POST_ID = 2 ** 63 - 1

_INT_RE = re.compile(r"^[+-]?\d+$")
_KEY_STRIP_RE = re.compile(r"[^a-z0-9_\-]")


def clamp_bucket_seconds(seconds: int | None) -> int:
    if seconds is None:
        return DEFAULT_BUCKET_SECONDS
    return max(1, int(seconds))


def _encodable(value: str) -> bool:
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


def coerce_int(value: object) -> int | None:
    """Best-effort integer coercion. Returns None when the value is not integral."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        value = value.strip()
        if _INT_RE.match(value):
            try:
                return int(value)
            except ValueError:
                # beyond the interpreter's digit limit
                return None
    return None


def minimize_query(query: str, settings: Settings) -> str:
    """Apply the query-string policy and re-encode what survives.

    Returns an empty string when no parameter is retained.
    """
    if not query:
        return ""

    params = []
    for key, value in parse_qsl(query, keep_blank_values=True):
        key = key.strip()
        if not key:
            continue
        params.append((key, value))

    if settings.url_strip_query:
        allowed = set(settings.url_query_allowlist)
        params = [(k, v) for k, v in params if k in allowed]

    if not params:
        return ""

    # sort is stable: repeated keys keep their original relative order
    params.sort(key=lambda kv: kv[0])
    return urlencode(params)


def clean_page_path(page_path: object, settings: Settings) -> str:
    """Normalize a page path, applying the query policy.

    Scheme, host and fragment are discarded. Trailing slashes are
    stripped except for the root path.
    """
    if not isinstance(page_path, str):
        raise InvalidPagePath()

    page_path = page_path.strip()
    if not page_path or len(page_path) > MAX_PAGE_PATH_LENGTH or not _encodable(page_path):
        raise InvalidPagePath()

    try:
        parts = urlsplit(page_path)
    except ValueError:
        raise InvalidPagePath() from None

    path = parts.path
    if not path:
        raise InvalidPagePath()

    path = "/" + path.lstrip("/")
    path = path.rstrip("/") or "/"

    query = minimize_query(parts.query, settings)
    if query:
        path = f"{path}?{query}"
    if len(path) > MAX_PAGE_PATH_LENGTH:
        raise InvalidPagePath()
    return path


def clean_post_id(post_id: object) -> int | None:
    if post_id is None:
        return None
    value = coerce_int(post_id)
    if value is None or value < 0 or value > MAX_POST_ID:
        raise InvalidPostId()
    return value or None


def clean_referrer_domain(referrer: object) -> str | None:
    """Extract the host of a referrer. Best effort: never raises."""
    if not isinstance(referrer, str):
        return None

    referrer = referrer.strip()
    if not referrer or not _encodable(referrer):
        return None

    candidate = referrer if "://" in referrer else "https://" + referrer
    try:
        host = urlsplit(candidate).hostname
    except ValueError:
        return None
    if not host or len(host) > MAX_REFERRER_LENGTH:
        return None
    return host


def clean_device_class(device_class: object) -> DeviceClass:
    if not isinstance(device_class, str):
        raise InvalidDeviceClass()
    key = _KEY_STRIP_RE.sub("", device_class.lower())
    try:
        return DeviceClass(key)
    except ValueError:
        raise InvalidDeviceClass() from None


def clean_timestamp_bucket(timestamp: object, bucket_seconds: int) -> int:
    value = coerce_int(timestamp)
    if value is None or value <= 0 or value > MAX_TIMESTAMP:
        raise InvalidTimestampBucket()
    value -= value % clamp_bucket_seconds(bucket_seconds)
    if value <= 0:
        raise InvalidTimestampBucket()
    return value


def sanitize_hit(
    payload: dict,
    settings: Settings,
    bucket_seconds: int = DEFAULT_BUCKET_SECONDS,
) -> Hit:
    """Validate a raw hit payload. Raises ``ValidationError`` subclasses."""
    page_path = clean_page_path(payload.get("page_path"), settings)
    post_id = clean_post_id(payload.get("post_id"))
    referrer_domain = clean_referrer_domain(payload.get("referrer_domain"))
    device_class = clean_device_class(payload.get("device_class"))
    timestamp_bucket = clean_timestamp_bucket(payload.get("timestamp_bucket"), bucket_seconds)

    return Hit(
        page_path=page_path,
        post_id=post_id,
        referrer_domain=referrer_domain,
        device_class=device_class,
        timestamp_bucket=timestamp_bucket,
    )
