"""Cache-Control selection for artifact responses.

Three request shapes:

- state-scoped (``?m=<mutation count>``): the URL names one on-chain state,
  so the response never changes and may be cached forever
- manual refresh (``?v=<anything>``): bypass every cache
- bare: short-lived caching with stale-while-revalidate

A refresh parameter wins over a state parameter.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum

STATE_PARAM = "m"
REFRESH_PARAM = "v"

IMMUTABLE = "public, max-age=31536000, immutable"
NO_STORE = "no-store, no-cache, must-revalidate"


class RequestShape(str, Enum):
    STATE_SCOPED = "state_scoped"
    REFRESH = "refresh"
    BARE = "bare"


def classify_request(params: Mapping[str, str]) -> RequestShape:
    if REFRESH_PARAM in params:
        return RequestShape.REFRESH
    if STATE_PARAM in params:
        return RequestShape.STATE_SCOPED
    return RequestShape.BARE


def short_lived(max_age: int = 3600, stale_while_revalidate: int = 86400) -> str:
    return f"public, max-age={max_age}, stale-while-revalidate={stale_while_revalidate}"


def select_cache_control(
    params: Mapping[str, str],
    *,
    max_age: int = 3600,
    stale_while_revalidate: int = 86400,
) -> str:
    """Return the Cache-Control header value for a request's query params."""
    shape = classify_request(params)
    if shape is RequestShape.REFRESH:
        return NO_STORE
    if shape is RequestShape.STATE_SCOPED:
        return IMMUTABLE
    return short_lived(max_age, stale_while_revalidate)
