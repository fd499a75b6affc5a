"""Sandboxed rendering: protocols, the bounded pool, and the session driver.

The engine never talks to a browser directly. It drives a ``RenderSession``
through a ``SandboxBackend`` (Playwright in production, fakes in tests):

    Initializing -> Loading -> AwaitingCompletion -> Extracting -> Done
                                                               \\-> Failed

The hard deadline bounds AwaitingCompletion. When it expires the sandbox
context is torn down and no extraction is attempted. Context allocation and
extraction carry their own timeouts so no backend call can hold a pool slot
indefinitely.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
from collections.abc import AsyncIterator, Awaitable
from contextlib import asynccontextmanager
from typing import Any, Protocol, runtime_checkable

from artifactforge.core.errors import ExtractionValidationError, RenderTimeoutError
from artifactforge.core.render_session import RenderSession
from artifactforge.models.artifacts import RawRenderResult, RenderHarness
from artifactforge.models.sessions import RenderState

logger = logging.getLogger(__name__)

_PNG_DATA_URL_PREFIX = "data:image/png;base64,"

# Completion signal set by the harness bootstrap; a non-empty frame history
# is accepted as a fallback for scripts that never return from generate().
COMPLETION_CHECK = """() => {
  if (typeof generationComplete !== "undefined" && generationComplete === true) {
    return true;
  }
  return typeof canvasHistory !== "undefined"
    && Array.isArray(canvasHistory)
    && canvasHistory.length > 0;
}"""

# Reads only the canvas element, never a page screenshot.
EXTRACTION_SCRIPT = """(selector) => {
  const canvas = document.querySelector(selector);
  if (!canvas) {
    return null;
  }
  const history = typeof canvasHistory !== "undefined" ? canvasHistory : null;
  return {
    width: canvas.width,
    height: canvas.height,
    frames: history === null ? null : Array.from(history, (frame) => Array.from(frame)),
    raster: canvas.toDataURL("image/png"),
  };
}"""


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class SandboxContext(Protocol):
    """One isolated execution context. Never shared between sessions."""

    async def load(self, html: str, timeout: float) -> None:
        """Load the document and return once the network is idle."""
        ...

    async def evaluate(self, expression: str, arg: Any = None) -> Any: ...

    async def close(self) -> None: ...


@runtime_checkable
class SandboxBackend(Protocol):
    """Allocates isolated sandbox contexts."""

    async def new_context(self, canvas_width: int | None = None) -> SandboxContext:
        """Allocate a context whose surface is sized for ``canvas_width``.

        ``None`` keeps the backend default sizing.
        """
        ...

    async def close(self) -> None: ...


@runtime_checkable
class RenderEngine(Protocol):
    """Turns a harness document into raw canvas output."""

    async def render(self, harness: RenderHarness) -> RawRenderResult: ...


# ---------------------------------------------------------------------------
# Pool
# ---------------------------------------------------------------------------


class RenderPool:
    """Bounds the number of concurrently live sandbox contexts.

    The occupancy counter is the only shared mutable value in the pipeline
    and is only touched under ``_lock``.
    """

    def __init__(self, size: int) -> None:
        if size < 1:
            raise ValueError("render pool size must be at least 1")
        self._size = size
        self._semaphore = asyncio.Semaphore(size)
        self._lock = asyncio.Lock()
        self._occupied = 0
        self._peak = 0

    @property
    def size(self) -> int:
        return self._size

    @property
    def occupied(self) -> int:
        return self._occupied

    @property
    def peak(self) -> int:
        """Highest occupancy observed since construction."""
        return self._peak

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        async with self._semaphore:
            async with self._lock:
                self._occupied += 1
                self._peak = max(self._peak, self._occupied)
            try:
                yield
            finally:
                async with self._lock:
                    self._occupied -= 1


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def decode_png_data_url(data_url: Any) -> bytes:
    if not isinstance(data_url, str) or not data_url.startswith(_PNG_DATA_URL_PREFIX):
        raise ExtractionValidationError("Canvas did not produce a PNG data URL")
    try:
        return base64.b64decode(data_url[len(_PNG_DATA_URL_PREFIX):], validate=True)
    except binascii.Error as exc:
        raise ExtractionValidationError("Canvas PNG data URL is not valid base64") from exc


class SandboxRenderEngine:
    """Renders harness documents in isolated sandbox contexts.

    Parameters
    ----------
    backend:
        Source of isolated contexts.
    pool:
        Shared concurrency limiter.
    deadline_seconds:
        Hard limit on waiting for the completion signal.
    load_timeout_seconds:
        Limit on loading the document and its libraries. Also bounds context
        allocation.
    extraction_timeout_seconds:
        Limit on reading the canvas once completion is signalled.
    poll_interval_seconds:
        Delay between completion checks.
    canvas_selector:
        CSS selector of the element to extract.
    """

    def __init__(
        self,
        backend: SandboxBackend,
        pool: RenderPool,
        *,
        deadline_seconds: float = 300.0,
        load_timeout_seconds: float = 180.0,
        extraction_timeout_seconds: float = 60.0,
        poll_interval_seconds: float = 0.5,
        canvas_selector: str = "canvas",
    ) -> None:
        self._backend = backend
        self._pool = pool
        self._deadline = deadline_seconds
        self._load_timeout = load_timeout_seconds
        self._extraction_timeout = extraction_timeout_seconds
        self._poll_interval = poll_interval_seconds
        self._selector = canvas_selector
        self.last_session: RenderSession | None = None

    @property
    def pool(self) -> RenderPool:
        return self._pool

    async def aclose(self) -> None:
        await self._backend.close()

    async def render(self, harness: RenderHarness) -> RawRenderResult:
        async with self._pool.slot():
            session = RenderSession(harness.token_id, self._deadline)
            self.last_session = session
            context: SandboxContext | None = None
            try:
                context = await self._bounded(
                    self._backend.new_context(harness.canvas_width),
                    self._load_timeout,
                    f"Token {harness.token_id}: sandbox context not allocated",
                )
                session.transition(RenderState.LOADING)
                await context.load(harness.html, timeout=self._load_timeout)

                session.transition(RenderState.AWAITING_COMPLETION)
                await self._bounded(
                    self._await_completion(context, session),
                    self._deadline,
                    f"Token {harness.token_id}: no completion signal",
                )

                session.transition(RenderState.EXTRACTING)
                payload = await self._bounded(
                    context.evaluate(EXTRACTION_SCRIPT, self._selector),
                    self._extraction_timeout,
                    f"Token {harness.token_id}: canvas extraction did not finish",
                )
                result = self._to_raw_result(payload)
                session.transition(RenderState.DONE)
                logger.info(
                    "Rendered token %s in %.1fs (session %d)",
                    harness.token_id, session.elapsed, session.session_id,
                )
                return result
            except BaseException as exc:
                session.fail(str(exc) or type(exc).__name__)
                raise
            finally:
                if context is not None:
                    await self._close_context(context, session)

    @staticmethod
    async def _bounded(awaitable: Awaitable[Any], timeout: float, message: str) -> Any:
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise RenderTimeoutError(f"{message} within {timeout:g}s") from exc

    async def _await_completion(self, context: SandboxContext, session: RenderSession) -> None:
        while True:
            if await context.evaluate(COMPLETION_CHECK):
                session.completed = True
                return
            await asyncio.sleep(self._poll_interval)

    def _to_raw_result(self, payload: Any) -> RawRenderResult:
        if payload is None:
            raise ExtractionValidationError(
                f"No element matches canvas selector {self._selector!r}"
            )
        if not isinstance(payload, dict):
            raise ExtractionValidationError("Extraction returned an unexpected payload")
        return RawRenderResult(
            width=payload.get("width"),
            height=payload.get("height"),
            frames=payload.get("frames"),
            raster_png=decode_png_data_url(payload.get("raster")),
        )

    @staticmethod
    async def _close_context(context: SandboxContext, session: RenderSession) -> None:
        try:
            await context.close()
        except Exception:
            logger.warning(
                "Failed to close sandbox context for session %d", session.session_id,
                exc_info=True,
            )
