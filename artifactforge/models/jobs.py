"""Regeneration trigger, acknowledgement and status models.

Field names are camelCase on the wire and snake_case in Python.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class TriggerEvent(str, Enum):
    MINTED = "minted"
    MUTATED = "mutated"


class Disposition(str, Enum):
    """What the coordinator did with an accepted trigger."""

    QUEUED = "queued"
    COALESCED = "coalesced"


class TriggerRequest(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    token_id: int = Field(alias="tokenId", ge=1)
    event: TriggerEvent


class TriggerAck(BaseModel):
    """Job acceptance, not completion."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    accepted: bool = True
    token_id: int = Field(alias="tokenId")
    event: TriggerEvent
    disposition: Disposition


class GenerationStatus(BaseModel):
    """Published state of one token, as seen by freshness pollers."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    token_id: int = Field(alias="tokenId")
    exists: bool
    generated_at_mutation_count: int | None = Field(
        default=None, alias="generatedAtMutationCount"
    )
    last_modified: datetime | None = Field(default=None, alias="lastModified")


class JobOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class JobReport(BaseModel):
    """Outcome of one finished regeneration job."""

    model_config = ConfigDict(frozen=True)

    token_id: int
    outcome: JobOutcome
    duration_seconds: float
    mutation_count: int | None = None
    error: str | None = None
    finished_at: datetime
