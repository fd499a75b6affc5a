"""Materialization pipeline: wires every component for one token render.

The MaterializationPipeline is the central coordinator. It owns:
- the chain client and its caches (locators with a TTL, shards forever)
- the harness builder, render engine, extractor and tracer
- the storage publisher

and runs the flow

    token input + script (parallel) -> harness -> render -> extract
        -> trace -> publish

Retry policy per failure class:
- TransientFetchError: re-read with exponential backoff
- RenderTimeoutError / SandboxError: re-render in a fresh session
- VectorTraceError: re-trace the same raster, never re-render
- UploadError: re-publish only the artifacts that failed
- AssemblyError / ExtractionValidationError: fail immediately
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from datetime import datetime, timezone

from artifactforge.config import ForgeConfig
from artifactforge.core.cache import TTLCache
from artifactforge.core.chain import ChainClient
from artifactforge.core.errors import (
    RenderTimeoutError,
    SandboxError,
    TransientFetchError,
    UploadError,
    VectorTraceError,
)
from artifactforge.core.extractor import ArtifactExtractor
from artifactforge.core.harness import RenderHarnessBuilder
from artifactforge.core.publisher import StoragePublisher
from artifactforge.core.render_engine import RenderEngine, RenderPool, SandboxRenderEngine
from artifactforge.core.retry import Sleep, retry_async
from artifactforge.core.shard_reader import ShardReader
from artifactforge.core.token_inputs import TokenInputFetcher
from artifactforge.core.vector_tracer import VectorTracer
from artifactforge.models.artifacts import (
    GeneratedArtifact,
    PublishedRecord,
    RenderHarness,
    VectorArtifact,
)
from artifactforge.models.shards import ScriptShard, ShardLocator
from artifactforge.models.tokens import TokenGenerationInput
from artifactforge.storage import StorageBackend, build_storage_backend

logger = logging.getLogger(__name__)


class MaterializationPipeline:
    """Renders and publishes the artifacts of one token at a time.

    Safe to share between concurrent jobs: per-job state lives in locals and
    render sessions, and concurrency is bounded by the engine's pool.
    """

    def __init__(
        self,
        *,
        inputs: TokenInputFetcher,
        shards: ShardReader,
        harness_builder: RenderHarnessBuilder,
        engine: RenderEngine,
        publisher: StoragePublisher,
        extractor: ArtifactExtractor | None = None,
        tracer: VectorTracer | None = None,
        max_fetch_attempts: int = 3,
        max_render_attempts: int = 2,
        trace_attempts: int = 2,
        publish_rounds: int = 2,
        retry_backoff: float = 1.0,
        sleep: Sleep = asyncio.sleep,
        chain: ChainClient | None = None,
    ) -> None:
        self.inputs = inputs
        self.shards = shards
        self.harness_builder = harness_builder
        self.engine = engine
        self.publisher = publisher
        self.extractor = extractor or ArtifactExtractor()
        self.tracer = tracer or VectorTracer()
        self._max_fetch_attempts = max_fetch_attempts
        self._max_render_attempts = max_render_attempts
        self._trace_attempts = trace_attempts
        self._publish_rounds = publish_rounds
        self._backoff = retry_backoff
        self._sleep = sleep
        self._chain = chain

    @classmethod
    def from_config(
        cls,
        config: ForgeConfig,
        *,
        engine: RenderEngine | None = None,
        storage: StorageBackend | None = None,
        chain: ChainClient | None = None,
    ) -> MaterializationPipeline:
        """Build a pipeline from settings; any collaborator may be injected."""
        chain = chain or ChainClient(config.rpc_url, timeout=config.rpc_timeout_seconds)
        locator_cache: TTLCache[list[ShardLocator]] = TTLCache()
        shard_cache: TTLCache[ScriptShard] = TTLCache()
        if engine is None:
            from artifactforge.sandbox.playwright_backend import PlaywrightSandboxBackend

            engine = SandboxRenderEngine(
                PlaywrightSandboxBackend(
                    viewport_width=config.viewport_width,
                    viewport_height=config.viewport_height,
                    canvas_width=config.canvas_width,
                ),
                RenderPool(config.render_pool_size),
                deadline_seconds=config.render_deadline_seconds,
                load_timeout_seconds=config.load_timeout_seconds,
                extraction_timeout_seconds=config.extraction_timeout_seconds,
                poll_interval_seconds=config.completion_poll_interval_seconds,
                canvas_selector=config.canvas_selector,
            )
        return cls(
            inputs=TokenInputFetcher(
                chain,
                generator_address=config.generator_address,
                token_address=config.token_address,
                cache=locator_cache,
                locator_ttl=config.locator_cache_ttl_seconds,
            ),
            shards=ShardReader(chain, shard_cache),
            harness_builder=RenderHarnessBuilder(
                canvas_width=config.canvas_width, library_urls=config.library_urls
            ),
            engine=engine,
            publisher=StoragePublisher(
                storage or build_storage_backend(config),
                upload_attempts=config.upload_attempts,
                retry_backoff=config.retry_backoff_seconds,
            ),
            max_fetch_attempts=config.max_fetch_attempts,
            max_render_attempts=config.max_render_attempts,
            trace_attempts=config.trace_attempts,
            publish_rounds=config.publish_rounds,
            retry_backoff=config.retry_backoff_seconds,
            chain=chain,
        )

    async def aclose(self) -> None:
        """Release the browser, HTTP clients and storage connections."""
        aclose_engine = getattr(self.engine, "aclose", None)
        if aclose_engine is not None:
            await aclose_engine()
        aclose_backend = getattr(self.publisher.backend, "aclose", None)
        if aclose_backend is not None:
            await aclose_backend()
        if self._chain is not None:
            await self._chain.aclose()

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _fetch(self, operation, description: str):
        return await retry_async(
            operation,
            attempts=self._max_fetch_attempts,
            backoff=self._backoff,
            retry_on=TransientFetchError,
            description=description,
            sleep=self._sleep,
        )

    async def fetch_input(self, token_id: int) -> TokenGenerationInput:
        return await self._fetch(
            lambda: self.inputs.fetch_token_input(token_id), f"token {token_id} input fetch"
        )

    async def fetch_script(self) -> str:
        locators = await self._fetch(self.inputs.fetch_locators, "shard locator fetch")
        return await self._fetch(lambda: self.shards.read_script(locators), "script assembly")

    async def render(self, harness: RenderHarness) -> GeneratedArtifact:
        raw = await retry_async(
            lambda: self.engine.render(harness),
            attempts=self._max_render_attempts,
            backoff=self._backoff,
            retry_on=(RenderTimeoutError, SandboxError),
            description=f"token {harness.token_id} render",
            sleep=self._sleep,
        )
        return self.extractor.extract(raw)

    async def trace(self, artifact: GeneratedArtifact) -> VectorArtifact:
        return await retry_async(
            lambda: self.tracer.trace_async(artifact.raster_bytes),
            attempts=self._trace_attempts,
            backoff=self._backoff,
            retry_on=VectorTraceError,
            description="vector trace",
            sleep=self._sleep,
        )

    async def publish(
        self,
        token_id: int,
        artifact: GeneratedArtifact,
        vector: VectorArtifact,
        mutation_count: int,
    ) -> PublishedRecord:
        """Publish, resuming only failed uploads on later rounds."""
        generated_at = datetime.now(timezone.utc)
        completed: dict[str, str] = {}
        publish_round = 0
        while True:
            publish_round += 1
            try:
                return await self.publisher.publish(
                    token_id,
                    artifact,
                    vector,
                    mutation_count=mutation_count,
                    completed=completed,
                    generated_at=generated_at,
                )
            except UploadError as exc:
                if publish_round >= self._publish_rounds:
                    raise
                completed = exc.completed
                logger.warning(
                    "Token %d: publish round %d/%d incomplete (%s); resuming",
                    token_id, publish_round, self._publish_rounds, ", ".join(exc.failed) or "record",
                )
                await self._sleep(self._backoff)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def materialize(self, token_id: int) -> PublishedRecord:
        """Render and publish the current on-chain state of ``token_id``."""
        token_input, script = await asyncio.gather(
            self.fetch_input(token_id), self.fetch_script()
        )
        harness = self.harness_builder.build(script, token_input)
        artifact = await self.render(harness)
        vector = await self.trace(artifact)
        return await self.publish(token_id, artifact, vector, token_input.mutation_count)

    async def preview_harness(
        self, seed_hex: str, palette: Sequence[str] | None = None
    ) -> RenderHarness:
        """Harness document for an unminted seed and optional palette."""
        script = await self.fetch_script()
        return self.harness_builder.build_preview(script, seed_hex, palette)

    async def read_record(self, token_id: int) -> PublishedRecord | None:
        return await self.publisher.read_record(token_id)
