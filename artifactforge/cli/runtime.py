"""Shared helpers for CLI commands: pipeline construction and event loop."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from artifactforge.config import ForgeConfig
from artifactforge.core.pipeline import MaterializationPipeline

T = TypeVar("T")


def build_pipeline(config: ForgeConfig) -> MaterializationPipeline:
    return MaterializationPipeline.from_config(config)


def run_with_pipeline(
    config: ForgeConfig,
    action: Callable[[MaterializationPipeline], Awaitable[T]],
) -> T:
    """Build a pipeline, run ``action`` on a fresh event loop, then close it."""

    async def _main() -> T:
        pipeline = build_pipeline(config)
        try:
            return await action(pipeline)
        finally:
            await pipeline.aclose()

    return asyncio.run(_main())
