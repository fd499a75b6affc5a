"""Bounded retry with exponential backoff for async operations."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int,
    backoff: float,
    retry_on: type[BaseException] | tuple[type[BaseException], ...],
    description: str,
    sleep: Sleep = asyncio.sleep,
) -> T:
    """Run ``operation`` up to ``attempts`` times.

    Only exceptions matching ``retry_on`` are retried; the delay doubles
    after each failure starting at ``backoff`` seconds. The last error is
    re-raised once the budget is spent.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return await operation()
        except retry_on as exc:
            if attempt >= attempts:
                raise
            delay = backoff * (2 ** (attempt - 1))
            logger.warning(
                "%s failed (attempt %d/%d): %s; retrying in %.2fs",
                description, attempt, attempts, exc, delay,
            )
            await sleep(delay)
