"""Render session state models (deterministic transitions)."""

from __future__ import annotations

from enum import Enum


class RenderState(str, Enum):
    """Lifecycle of a single sandboxed render."""

    INITIALIZING = "initializing"
    LOADING = "loading"
    AWAITING_COMPLETION = "awaiting_completion"
    EXTRACTING = "extracting"
    DONE = "done"
    FAILED = "failed"


# Valid state transitions, enforced by RenderSession.
# Terminal states (DONE, FAILED) have no outgoing transitions: a session is
# never reused, a retry always allocates a fresh one.
VALID_TRANSITIONS: dict[RenderState, set[RenderState]] = {
    RenderState.INITIALIZING: {RenderState.LOADING, RenderState.FAILED},
    RenderState.LOADING: {RenderState.AWAITING_COMPLETION, RenderState.FAILED},
    RenderState.AWAITING_COMPLETION: {RenderState.EXTRACTING, RenderState.FAILED},
    RenderState.EXTRACTING: {RenderState.DONE, RenderState.FAILED},
    RenderState.DONE: set(),
    RenderState.FAILED: set(),
}
