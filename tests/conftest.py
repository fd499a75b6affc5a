"""Shared test fixtures for artifactforge.

Nothing here touches the network or launches a browser: the chain, the
sandbox and the object store are in-process fakes with the same contracts
as the real collaborators.
"""

from __future__ import annotations

import asyncio
import base64
import io
from collections import Counter
from collections.abc import Callable
from typing import Any

import pytest
from PIL import Image

from artifactforge.core.errors import TransientFetchError
from artifactforge.core.extractor import ArtifactExtractor
from artifactforge.core.harness import RenderHarnessBuilder
from artifactforge.core.pipeline import MaterializationPipeline
from artifactforge.core.publisher import StoragePublisher
from artifactforge.core.render_engine import (
    COMPLETION_CHECK,
    EXTRACTION_SCRIPT,
    RenderPool,
    SandboxRenderEngine,
)
from artifactforge.core.shard_reader import ShardReader
from artifactforge.core.token_inputs import (
    GET_STORAGE_ADDRESSES,
    GET_TOKEN_DATA,
    GET_TOKEN_MUTATIONS,
    TOTAL_SUPPLY,
    TokenInputFetcher,
)
from artifactforge.core.vector_tracer import VectorTracer
from artifactforge.storage.base import StorageError
from artifactforge.storage.memory import InMemoryStorageBackend

GENERATOR = "0x00000000000000000000000000000000000000a1"
TOKEN = "0x00000000000000000000000000000000000000b2"

# Seed hash whose leading 16 hex digits parse to 1763114204158
SEED_HASH_HEX = "0x0000019a81cbbbfe" + "ab" * 24
SEED_INT = 1763114204158

SCRIPT_PARTS = [
    "function generate(seed, mutations, palette){",
    "canvasHistory = [[0,0,0,255]];",
    "}",
]


def seed_bytes(prefix_hex: str) -> bytes:
    """32-byte hash whose first bytes are ``prefix_hex``."""
    return bytes.fromhex(prefix_hex.ljust(64, "0"))


async def no_sleep(_seconds: float) -> None:
    return None


# ---------------------------------------------------------------------------
# Fake chain
# ---------------------------------------------------------------------------


class FakeChain:
    """Answers the contract calls and ``eth_getCode`` from in-memory data."""

    def __init__(self) -> None:
        self.code: dict[str, bytes] = {}
        self.storage_addresses: list[str] = []
        self.tokens: dict[int, dict[str, Any]] = {}
        self.calls: Counter[str] = Counter()
        self.failures: Counter[str] = Counter()
        self.code_delays: dict[str, float] = {}
        self.closed = False

    def add_shards(self, parts: list[bytes]) -> list[str]:
        for index, payload in enumerate(parts):
            address = f"0x{index + 1:040x}"
            self.code[address] = b"\x00" + payload
            self.storage_addresses.append(address)
        return list(self.storage_addresses)

    def add_token(
        self,
        token_id: int,
        seed: bytes,
        palette: list[str] | None = None,
    ) -> None:
        self.tokens[token_id] = {
            "seed": seed,
            "mutations": [],
            "palette": palette or [""] * 6,
        }

    def mutate(self, token_id: int, seed: bytes, label: str) -> None:
        self.tokens[token_id]["mutations"].append((seed, label))

    def fail_next(self, key: str, times: int = 1) -> None:
        self.failures[key] += times

    def _maybe_fail(self, key: str) -> None:
        if self.failures[key] > 0:
            self.failures[key] -= 1
            raise TransientFetchError(f"simulated RPC failure for {key}")

    async def get_code(self, address: str) -> bytes:
        self.calls["eth_getCode"] += 1
        delay = self.code_delays.get(address)
        if delay:
            await asyncio.sleep(delay)
        self._maybe_fail(address)
        return self.code.get(address, b"")

    async def aclose(self) -> None:
        self.closed = True

    async def call(self, to, signature, args=(), output_types=()):
        self.calls[signature] += 1
        self._maybe_fail(signature)
        if signature == GET_STORAGE_ADDRESSES:
            return (list(self.storage_addresses),)
        if signature == GET_TOKEN_DATA:
            token = self.tokens[args[0]]
            return (
                token["seed"],
                [seed for seed, _ in token["mutations"]],
                [label for _, label in token["mutations"]],
                tuple(token["palette"]),
            )
        if signature == GET_TOKEN_MUTATIONS:
            token = self.tokens[args[0]]
            return ([(label, seed, 1700000000) for seed, label in token["mutations"]],)
        if signature == TOTAL_SUPPLY:
            return (len(self.tokens),)
        raise AssertionError(f"unexpected call {signature}")


# ---------------------------------------------------------------------------
# Fake sandbox
# ---------------------------------------------------------------------------


def make_png(width: int = 8, height: int = 8) -> bytes:
    image = Image.new("RGB", (width, height), (235, 229, 217))
    for x in range(width // 2):
        for y in range(height):
            image.putpixel((x, y), (200, 30, 40))
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def canvas_payload(width: int = 2, height: int = 2, frames: int = 2) -> dict[str, Any]:
    frame = [10, 20, 30, 255] * (width * height)
    return {
        "width": width,
        "height": height,
        "frames": [list(frame) for _ in range(frames)],
        "raster": "data:image/png;base64," + base64.b64encode(make_png()).decode("ascii"),
    }


class FakeSandboxContext:
    def __init__(self, backend: FakeSandboxBackend) -> None:
        self._backend = backend
        self.html: str | None = None
        self.checks = 0
        self.closed = False

    async def load(self, html: str, timeout: float) -> None:
        self.html = html
        if self._backend.gate is not None:
            await self._backend.gate.wait()
        if self._backend.load_delay:
            await asyncio.sleep(self._backend.load_delay)
        if self._backend.load_errors:
            raise self._backend.load_errors.pop(0)

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        if expression == COMPLETION_CHECK:
            self.checks += 1
            after = self._backend.complete_after
            return after is not None and self.checks >= after
        if expression == EXTRACTION_SCRIPT:
            self._backend.extractions += 1
            if self._backend.extraction_delay:
                await asyncio.sleep(self._backend.extraction_delay)
            return self._backend.payload_factory(self.html or "")
        raise AssertionError(f"unexpected expression {expression[:40]!r}")

    async def close(self) -> None:
        self.closed = True
        self._backend.active -= 1


class FakeSandboxBackend:
    """Sandbox whose completion, payload and load behaviour tests control."""

    def __init__(
        self,
        *,
        complete_after: int | None = 1,
        payload_factory: Callable[[str], Any] | None = None,
        load_delay: float = 0.0,
        extraction_delay: float = 0.0,
        context_delay: float = 0.0,
    ) -> None:
        self.complete_after = complete_after
        self.payload_factory = payload_factory or (lambda html: canvas_payload())
        self.load_delay = load_delay
        self.extraction_delay = extraction_delay
        self.context_delay = context_delay
        self.canvas_widths: list[int | None] = []
        self.load_errors: list[BaseException] = []
        self.gate: asyncio.Event | None = None
        self.contexts: list[FakeSandboxContext] = []
        self.active = 0
        self.max_active = 0
        self.extractions = 0
        self.closed = False

    async def new_context(self, canvas_width: int | None = None) -> FakeSandboxContext:
        self.canvas_widths.append(canvas_width)
        if self.context_delay:
            await asyncio.sleep(self.context_delay)
        context = FakeSandboxContext(self)
        self.contexts.append(context)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        return context

    async def close(self) -> None:
        self.closed = True


# ---------------------------------------------------------------------------
# Flaky storage
# ---------------------------------------------------------------------------


class FlakyStorage(InMemoryStorageBackend):
    """Memory store whose uploads fail a set number of times per key."""

    def __init__(self) -> None:
        super().__init__(base_url="https://cdn.test/artifacts")
        self.failures: Counter[str] = Counter()

    async def upload(self, key, data, content_type, *, cache_control=None):
        if self.failures[key] > 0:
            self.failures[key] -= 1
            raise StorageError(f"simulated outage for {key}")
        return await super().upload(key, data, content_type, cache_control=cache_control)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def chain() -> FakeChain:
    """Provide a chain with three script shards and one unmutated token."""
    fake = FakeChain()
    fake.add_shards([part.encode("utf-8") for part in SCRIPT_PARTS])
    fake.add_token(1, seed_bytes(SEED_HASH_HEX[2:]))
    return fake


@pytest.fixture
def storage() -> InMemoryStorageBackend:
    """Provide an empty in-memory object store."""
    return InMemoryStorageBackend(base_url="https://cdn.test/artifacts")


@pytest.fixture
def sandbox() -> FakeSandboxBackend:
    """Provide a sandbox that completes on the first completion check."""
    return FakeSandboxBackend()


@pytest.fixture
def png_bytes() -> bytes:
    """Provide a small two-colour PNG."""
    return make_png()


@pytest.fixture
def make_engine() -> Callable[..., SandboxRenderEngine]:
    """Factory fixture: build a SandboxRenderEngine over a backend."""

    def _factory(backend: FakeSandboxBackend, **overrides: Any) -> SandboxRenderEngine:
        defaults: dict[str, Any] = {
            "deadline_seconds": 1.0,
            "load_timeout_seconds": 1.0,
            "extraction_timeout_seconds": 1.0,
            "poll_interval_seconds": 0.001,
        }
        pool = overrides.pop("pool", None) or RenderPool(overrides.pop("pool_size", 2))
        defaults.update(overrides)
        return SandboxRenderEngine(backend, pool, **defaults)

    return _factory


@pytest.fixture
def make_pipeline(
    chain: FakeChain,
    storage: InMemoryStorageBackend,
    sandbox: FakeSandboxBackend,
    make_engine: Callable[..., SandboxRenderEngine],
) -> Callable[..., MaterializationPipeline]:
    """Factory fixture: wire a MaterializationPipeline to the fakes."""

    def _factory(**overrides: Any) -> MaterializationPipeline:
        source = overrides.pop("chain", chain)
        backend = overrides.pop("storage", storage)
        engine = overrides.pop("engine", None) or make_engine(overrides.pop("sandbox", sandbox))
        defaults: dict[str, Any] = {
            "inputs": TokenInputFetcher(
                source, generator_address=GENERATOR, token_address=TOKEN
            ),
            "shards": ShardReader(source),
            "harness_builder": RenderHarnessBuilder(canvas_width=600),
            "engine": engine,
            "publisher": StoragePublisher(backend, retry_backoff=0.0, sleep=no_sleep),
            "extractor": ArtifactExtractor(),
            "tracer": VectorTracer(),
            "retry_backoff": 0.0,
            "sleep": no_sleep,
        }
        defaults.update(overrides)
        return MaterializationPipeline(**defaults)

    return _factory


@pytest.fixture
def pipeline(make_pipeline: Callable[..., MaterializationPipeline]) -> MaterializationPipeline:
    """Convenience: a ready-made pipeline over the default fakes."""
    return make_pipeline()
