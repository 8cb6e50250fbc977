"""Request-level helpers for caller identity and admin authorization."""

from __future__ import annotations

from fastapi import Request

from leanstats.core.models import Caller, RequestContext


def current_caller(request: Request) -> Caller | None:
    from leanstats.main import get_access

    return get_access().resolve_caller(request.headers.get("authorization"))


def request_context(request: Request) -> RequestContext:
    """Snapshot what the pipeline needs from the HTTP request."""
    return RequestContext(
        headers={k.lower(): v for k, v in request.headers.items()},
        caller=current_caller(request),
        client_addr=request.client.host if request.client else None,
    )


def require_elevated(request: Request) -> Caller:
    """Dependency: an admin caller, no nonce needed."""
    from leanstats.main import get_access

    return get_access().require_elevated(current_caller(request))


def require_admin(request: Request) -> Caller:
    """Dependency: an admin caller with a valid anti-forgery nonce.

    The nonce is read from the ``X-LS-Nonce`` header, then the ``_nonce``
    query parameter.
    """
    from leanstats.main import get_access

    nonce = request.headers.get("x-ls-nonce") or request.query_params.get("_nonce")
    return get_access().check(current_caller(request), nonce)
