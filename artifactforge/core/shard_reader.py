"""Reassemble the generative script from its on-chain storage shards.

Each shard is a storage contract whose bytecode is a single 0x00 STOP
marker followed by a slice of the script's UTF-8 bytes. Shards are fetched
concurrently, stripped of the marker, concatenated by index and decoded
once, so a multi-byte character may straddle a shard boundary.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Protocol

from artifactforge.core.cache import TTLCache
from artifactforge.core.errors import AssemblyError
from artifactforge.models.shards import ScriptShard, ShardLocator

logger = logging.getLogger(__name__)

SHARD_MARKER = b"\x00"


class CodeSource(Protocol):
    """Anything that can return raw contract bytecode."""

    async def get_code(self, address: str) -> bytes: ...


class ShardReader:
    """Fetches and reassembles script shards.

    Parameters
    ----------
    source:
        Bytecode source, normally a ``ChainClient``.
    cache:
        Shard cache owned by the pipeline. Shards are immutable once
        deployed and are stored without expiry.
    """

    def __init__(self, source: CodeSource, cache: TTLCache[ScriptShard] | None = None) -> None:
        self._source = source
        self._cache: TTLCache[ScriptShard] = cache if cache is not None else TTLCache()

    async def fetch_shard(self, locator: ShardLocator) -> ScriptShard:
        """Return one shard, from cache when already fetched."""
        key = locator.address.lower()
        cached = self._cache.get(key)
        if cached is not None and cached.index == locator.index:
            return cached
        code = await self._source.get_code(locator.address)
        shard = ScriptShard(index=locator.index, raw_address=locator.address, encoded_bytes=code)
        self._cache.set(key, shard, ttl=None)
        return shard

    async def read_script(self, locators: Sequence[ShardLocator]) -> str:
        """Fetch every shard and return the assembled script text.

        Raises
        ------
        AssemblyError
            Empty locator list, duplicate or missing indices, a shard without
            its marker byte, or bytes that are not valid UTF-8.
        TransientFetchError
            Any single shard fetch failed; the whole assembly is abandoned.
        """
        if not locators:
            raise AssemblyError("No shard locators to assemble")
        ordered = sorted(locators, key=lambda loc: loc.index)
        indices = [loc.index for loc in ordered]
        if indices != list(range(len(ordered))):
            raise AssemblyError(f"Shard indices must be contiguous from 0, got {indices}")

        shards = await asyncio.gather(*(self.fetch_shard(loc) for loc in ordered))
        return assemble(shards)


def strip_marker(shard: ScriptShard) -> bytes:
    """Return a shard's payload without its leading marker byte."""
    if not shard.encoded_bytes.startswith(SHARD_MARKER):
        raise AssemblyError(
            f"Shard {shard.index} at {shard.raw_address} has no storage marker byte"
        )
    return shard.encoded_bytes[len(SHARD_MARKER):]


def assemble(shards: Sequence[ScriptShard]) -> str:
    """Concatenate shard payloads in index order and decode as UTF-8."""
    ordered = sorted(shards, key=lambda shard: shard.index)
    payload = b"".join(strip_marker(shard) for shard in ordered)
    try:
        script = payload.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise AssemblyError(f"Assembled script is not valid UTF-8: {exc}") from exc
    logger.debug("Assembled script from %d shards (%d bytes)", len(ordered), len(payload))
    return script
