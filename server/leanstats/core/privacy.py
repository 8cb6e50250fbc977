"""Privacy gate: decides whether a hit may be processed at all."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from leanstats.core.models import RequestContext, Settings


def should_skip(context: RequestContext, settings: Settings) -> bool:
    """Return True when the hit must be dropped without tracking.

    Rules, any of which skips:
    1. strict mode and an authenticated caller.
    2. the caller holds one of the excluded roles.
    3. DNT or Sec-GPC is exactly "1" while those signals are respected.
    """
    caller = context.caller

    if settings.strict_mode and caller is not None:
        return True

    if settings.excluded_roles and caller is not None:
        if caller.roles & set(settings.excluded_roles):
            return True

    if settings.respect_dnt_gpc:
        if context.header("DNT") == "1" or context.header("Sec-GPC") == "1":
            return True

    return False
