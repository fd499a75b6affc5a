"""Fetch per-token generation inputs from the generator and token contracts."""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from typing import Any, Protocol

from artifactforge.core.cache import TTLCache
from artifactforge.core.errors import AssemblyError
from artifactforge.models.shards import ShardLocator
from artifactforge.models.tokens import PALETTE_SIZE, MutationEvent, TokenGenerationInput

logger = logging.getLogger(__name__)

# Seeds are the leading 16 hex digits of a 32-byte hash, parsed base-16.
# The same rule serves minted tokens, mutations and previews.
SEED_HEX_DIGITS = 16

_SEED_HEX = re.compile(r"^0x[0-9A-Fa-f]{64}$")
_COLOUR_HEX = re.compile(r"^#[0-9A-Fa-f]{6}$")

_LOCATORS_KEY = "storage-addresses"

GET_STORAGE_ADDRESSES = "getStorageAddresses()"
GET_TOKEN_DATA = "getTokenData(uint256)"
GET_TOKEN_MUTATIONS = "getTokenMutations(uint256)"
TOTAL_SUPPLY = "totalSupply()"


class ContractReader(Protocol):
    async def call(
        self,
        to: str,
        signature: str,
        args: Sequence[Any] = (),
        output_types: Sequence[str] = (),
    ) -> tuple[Any, ...]: ...


def seed_from_hash(value: str | bytes) -> int:
    """Truncate a 32-byte hash to the integer seed the script consumes.

    >>> seed_from_hash("0x0000019a81cbbbfe" + "0" * 48)
    1763114204158
    """
    if isinstance(value, bytes):
        value = value.hex()
    digits = value[2:] if value.startswith(("0x", "0X")) else value
    if len(digits) < SEED_HEX_DIGITS:
        raise AssemblyError(f"Seed hash too short: {value!r}")
    try:
        return int(digits[:SEED_HEX_DIGITS], 16)
    except ValueError as exc:
        raise AssemblyError(f"Seed hash is not hexadecimal: {value!r}") from exc


def normalize_palette(colours: Sequence[str]) -> list[str]:
    """A palette of all-blank entries means "no override"."""
    cleaned = [colour.strip() for colour in colours]
    if not any(cleaned):
        return []
    if len(cleaned) != PALETTE_SIZE or not all(cleaned):
        raise AssemblyError(f"Palette override must be {PALETTE_SIZE} colours, got {cleaned}")
    return cleaned


def preview_input(seed_hex: str, palette: Sequence[str] | None = None) -> TokenGenerationInput:
    """Build generation input for an unminted seed.

    Raises ``ValueError`` on a malformed seed or palette; callers surface it
    as a user input error.
    """
    if not _SEED_HEX.match(seed_hex):
        raise ValueError("Seed must be 0x followed by 64 hex digits")
    colours = list(palette or [])
    if colours:
        if len(colours) != PALETTE_SIZE:
            raise ValueError(f"Palette must have exactly {PALETTE_SIZE} colours")
        invalid = [colour for colour in colours if not _COLOUR_HEX.match(colour)]
        if invalid:
            raise ValueError(f"Invalid colour(s): {', '.join(invalid)}")
    return TokenGenerationInput(
        token_id=0,
        mint_seed=seed_from_hash(seed_hex),
        mutation_events=[],
        palette_override=colours,
    )


class TokenInputFetcher:
    """Reads shard locators and per-token inputs from the contracts.

    Parameters
    ----------
    reader:
        Contract call interface, normally a ``ChainClient``.
    generator_address:
        Address of the generator contract (storage addresses, token data).
    token_address:
        Address of the token contract (mutation history, supply).
    cache:
        Pipeline-owned cache for the locator list.
    locator_ttl:
        Seconds before cached locators are re-read.
    """

    def __init__(
        self,
        reader: ContractReader,
        *,
        generator_address: str,
        token_address: str,
        cache: TTLCache[list[ShardLocator]] | None = None,
        locator_ttl: float | None = 86400.0,
    ) -> None:
        self._reader = reader
        self._generator = generator_address
        self._token = token_address
        self._cache: TTLCache[list[ShardLocator]] = cache if cache is not None else TTLCache()
        self._locator_ttl = locator_ttl

    # ------------------------------------------------------------------
    # Locators
    # ------------------------------------------------------------------

    async def fetch_locators(self) -> list[ShardLocator]:
        cached = self._cache.get(_LOCATORS_KEY)
        if cached is not None:
            return cached
        (addresses,) = await self._reader.call(
            self._generator, GET_STORAGE_ADDRESSES, output_types=["address[]"]
        )
        if not addresses:
            raise AssemblyError("Generator contract reports no storage addresses")
        locators = [
            ShardLocator(index=index, address=address)
            for index, address in enumerate(addresses)
        ]
        self._cache.set(_LOCATORS_KEY, locators, ttl=self._locator_ttl)
        logger.info("Loaded %d shard locators from %s", len(locators), self._generator)
        return locators

    def invalidate_locators(self) -> None:
        """Drop cached locators, e.g. after a generator redeploy."""
        self._cache.invalidate(_LOCATORS_KEY)

    # ------------------------------------------------------------------
    # Per-token reads (never cached)
    # ------------------------------------------------------------------

    async def fetch_token_input(self, token_id: int) -> TokenGenerationInput:
        mint_hash, mutation_hashes, mutation_types, palette = await self._reader.call(
            self._generator,
            GET_TOKEN_DATA,
            [token_id],
            ["bytes32", "bytes32[]", "string[]", f"string[{PALETTE_SIZE}]"],
        )
        if len(mutation_hashes) != len(mutation_types):
            raise AssemblyError(
                f"Token {token_id}: {len(mutation_hashes)} mutation seeds but "
                f"{len(mutation_types)} mutation types"
            )
        events = [
            MutationEvent(seed=seed_from_hash(seed), type_label=label)
            for seed, label in zip(mutation_hashes, mutation_types)
        ]
        return TokenGenerationInput(
            token_id=token_id,
            mint_seed=seed_from_hash(mint_hash),
            mutation_events=events,
            palette_override=normalize_palette(palette),
        )

    async def fetch_mutation_count(self, token_id: int) -> int:
        """Live on-chain mutation count, the authoritative freshness key."""
        (mutations,) = await self._reader.call(
            self._token,
            GET_TOKEN_MUTATIONS,
            [token_id],
            ["(string,bytes32,uint256)[]"],
        )
        return len(mutations)

    async def fetch_total_supply(self) -> int:
        (supply,) = await self._reader.call(self._token, TOTAL_SUPPLY, output_types=["uint256"])
        return int(supply)
