"""Headless Chromium sandbox backend built on Playwright.

One browser process is shared; every render gets a fresh browser context
(separate storage, cookies and JS heap), so sessions never share state.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from artifactforge.core.errors import RenderTimeoutError, SandboxError

logger = logging.getLogger(__name__)

CHROMIUM_ARGS = ["--no-sandbox", "--disable-dev-shm-usage", "--disable-gpu"]


class PlaywrightSandboxContext:
    """A single isolated browser context with one page."""

    def __init__(self, context: BrowserContext, page: Page) -> None:
        self._context = context
        self._page = page
        self._page.on("pageerror", self._on_page_error)

    @staticmethod
    def _on_page_error(error: Any) -> None:
        logger.warning("Harness script error: %s", error)

    async def load(self, html: str, timeout: float) -> None:
        try:
            await self._page.set_content(html, wait_until="networkidle", timeout=timeout * 1000)
        except PlaywrightTimeoutError as exc:
            raise RenderTimeoutError(f"Harness did not reach network idle within {timeout:.0f}s") from exc
        except PlaywrightError as exc:
            raise SandboxError(f"Harness failed to load: {exc}") from exc

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        try:
            return await self._page.evaluate(expression, arg)
        except PlaywrightError as exc:
            raise SandboxError(f"Sandbox evaluation failed: {exc}") from exc

    async def close(self) -> None:
        await self._context.close()


class PlaywrightSandboxBackend:
    """Launches Chromium lazily and hands out isolated contexts.

    Parameters
    ----------
    viewport_width, viewport_height:
        Page viewport for a canvas of ``canvas_width``. Large enough that the
        canvas is never clipped.
    canvas_width:
        Canvas width the default viewport is sized for. Contexts requested
        for another width get a viewport scaled by the same ratio.
    """

    def __init__(
        self,
        *,
        viewport_width: int = 2400,
        viewport_height: int = 1800,
        canvas_width: int = 1200,
    ) -> None:
        if min(viewport_width, viewport_height, canvas_width) <= 0:
            raise ValueError("viewport and canvas sizes must be positive")
        self._viewport = {"width": viewport_width, "height": viewport_height}
        self._canvas_width = canvas_width
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._lock = asyncio.Lock()

    async def _ensure_browser(self) -> Browser:
        async with self._lock:
            if self._browser is None or not self._browser.is_connected():
                if self._playwright is None:
                    self._playwright = await async_playwright().start()
                try:
                    self._browser = await self._playwright.chromium.launch(
                        headless=True, args=CHROMIUM_ARGS
                    )
                except PlaywrightError as exc:
                    raise SandboxError(f"Cannot launch Chromium: {exc}") from exc
                logger.info("Launched headless Chromium for rendering")
            return self._browser

    def viewport_for(self, canvas_width: int | None = None) -> dict[str, int]:
        """Viewport that fits a canvas ``canvas_width`` pixels wide."""
        if canvas_width is None or canvas_width == self._canvas_width:
            return dict(self._viewport)
        if canvas_width <= 0:
            raise ValueError("canvas_width must be positive")
        scale = canvas_width / self._canvas_width
        return {
            "width": max(1, round(self._viewport["width"] * scale)),
            "height": max(1, round(self._viewport["height"] * scale)),
        }

    async def new_context(self, canvas_width: int | None = None) -> PlaywrightSandboxContext:
        viewport = self.viewport_for(canvas_width)
        browser = await self._ensure_browser()
        try:
            context = await browser.new_context(viewport=viewport)
        except PlaywrightError as exc:
            raise SandboxError(f"Cannot allocate browser context: {exc}") from exc
        try:
            page = await context.new_page()
        except PlaywrightError as exc:
            await context.close()
            raise SandboxError(f"Cannot open sandbox page: {exc}") from exc
        except asyncio.CancelledError:
            await context.close()
            raise
        logger.debug(
            "Allocated sandbox context with viewport %dx%d", viewport["width"], viewport["height"]
        )
        return PlaywrightSandboxContext(context, page)

    async def close(self) -> None:
        async with self._lock:
            if self._browser is not None:
                await self._browser.close()
                self._browser = None
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None
