"""Sweep all minted tokens for missing or outdated published artifacts."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum

from pydantic import BaseModel, ConfigDict

from artifactforge.core.errors import MaterializationError
from artifactforge.core.pipeline import MaterializationPipeline

logger = logging.getLogger(__name__)


class SyncState(str, Enum):
    MISSING = "missing"
    OUTDATED = "outdated"
    CURRENT = "current"


class TokenSyncState(BaseModel):
    model_config = ConfigDict(frozen=True)

    token_id: int
    state: SyncState
    live_mutation_count: int
    published_mutation_count: int | None = None


class SyncReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_supply: int
    tokens: list[TokenSyncState] = []

    def with_state(self, state: SyncState) -> list[int]:
        return [t.token_id for t in self.tokens if t.state is state]

    @property
    def stale(self) -> list[int]:
        """Missing tokens first, then outdated ones."""
        return self.with_state(SyncState.MISSING) + self.with_state(SyncState.OUTDATED)


def classify(live_count: int, published_count: int | None) -> SyncState:
    if published_count is None:
        return SyncState.MISSING
    if live_count > published_count:
        return SyncState.OUTDATED
    return SyncState.CURRENT


async def find_stale_tokens(pipeline: MaterializationPipeline) -> SyncReport:
    """Compare every token's live mutation count with its commit record."""
    supply = await pipeline.inputs.fetch_total_supply()
    states: list[TokenSyncState] = []
    for token_id in range(1, supply + 1):
        record, live = await asyncio.gather(
            pipeline.read_record(token_id),
            pipeline.inputs.fetch_mutation_count(token_id),
        )
        published = record.generated_at_mutation_count if record is not None else None
        states.append(
            TokenSyncState(
                token_id=token_id,
                state=classify(live, published),
                live_mutation_count=live,
                published_mutation_count=published,
            )
        )
    report = SyncReport(total_supply=supply, tokens=states)
    logger.info(
        "Sync scan: %d tokens, %d missing, %d outdated",
        supply, len(report.with_state(SyncState.MISSING)), len(report.with_state(SyncState.OUTDATED)),
    )
    return report


async def regenerate_stale(
    pipeline: MaterializationPipeline, report: SyncReport
) -> dict[int, str | None]:
    """Regenerate stale tokens one at a time.

    Returns token id -> error message (``None`` on success).
    """
    results: dict[int, str | None] = {}
    for token_id in report.stale:
        try:
            await pipeline.materialize(token_id)
        except MaterializationError as exc:
            logger.error("Sync: token %d failed: %s", token_id, exc)
            results[token_id] = str(exc)
        else:
            results[token_id] = None
    return results
