"""On-chain script shard models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ShardLocator(BaseModel):
    """Position and contract address of one script shard.

    ``index`` is the shard's position in the assembled script. Reassembly
    is ordered by this field alone, never by fetch completion order.
    """

    model_config = ConfigDict(frozen=True)

    index: int = Field(ge=0)
    address: str


class ScriptShard(BaseModel):
    """Raw bytecode of one shard, exactly as returned by the chain.

    ``encoded_bytes`` still carries the leading 0x00 marker byte that makes
    the storage contract non-executable.
    """

    model_config = ConfigDict(frozen=True)

    index: int = Field(ge=0)
    raw_address: str
    encoded_bytes: bytes
