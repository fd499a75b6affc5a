"""Deterministic render session state machine.

Enforces:
- Valid state transitions only (VALID_TRANSITIONS table)
- One session per token render, never reused
- Every transition recorded for diagnostics
"""

from __future__ import annotations

import itertools
import logging
import time

from artifactforge.models.sessions import VALID_TRANSITIONS, RenderState

logger = logging.getLogger(__name__)

_session_ids = itertools.count(1)


class InvalidTransitionError(RuntimeError):
    """Raised when a requested state transition is not valid."""


class RenderSession:
    """Tracks one sandboxed render from allocation to teardown.

    Parameters
    ----------
    token_id:
        Token bound to this session (``None`` for previews).
    deadline_seconds:
        Hard budget for the AwaitingCompletion state.
    """

    def __init__(self, token_id: int | None, deadline_seconds: float) -> None:
        self.session_id = next(_session_ids)
        self.token_id = token_id
        self.deadline_seconds = deadline_seconds
        self.state = RenderState.INITIALIZING
        self.completed = False
        self.failure: str | None = None
        self.history: list[tuple[RenderState, RenderState]] = []
        self._started = time.monotonic()

    @property
    def is_terminal(self) -> bool:
        return not VALID_TRANSITIONS[self.state]

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self._started

    def transition(self, target: RenderState) -> None:
        """Move to ``target``, rejecting anything not in VALID_TRANSITIONS."""
        allowed = VALID_TRANSITIONS.get(self.state, set())
        if target not in allowed:
            raise InvalidTransitionError(
                f"Cannot transition render session {self.session_id} from "
                f"{self.state.value} to {target.value}. "
                f"Allowed: {sorted(s.value for s in allowed)}"
            )
        self.history.append((self.state, target))
        logger.debug(
            "Render session %d (token %s): %s -> %s",
            self.session_id, self.token_id, self.state.value, target.value,
        )
        self.state = target

    def fail(self, reason: str) -> None:
        """Transition to FAILED from any live state. No-op once terminal."""
        if self.is_terminal:
            return
        self.failure = reason
        self.transition(RenderState.FAILED)
