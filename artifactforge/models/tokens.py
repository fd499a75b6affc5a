"""Per-token generation inputs read from the token contracts."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

PALETTE_SIZE = 6


class MutationEvent(BaseModel):
    """One applied mutation, in on-chain order."""

    model_config = ConfigDict(frozen=True)

    seed: int = Field(ge=0)
    type_label: str


class TokenGenerationInput(BaseModel):
    """Everything the generative script needs to reproduce one token.

    Always fetched fresh: mutations are appended on-chain at any time, so
    this model is never cached between jobs.
    """

    model_config = ConfigDict(frozen=True)

    token_id: int = Field(ge=0)
    mint_seed: int = Field(ge=0)
    mutation_events: list[MutationEvent] = []
    palette_override: list[str] = []

    @field_validator("palette_override")
    @classmethod
    def _palette_is_empty_or_complete(cls, value: list[str]) -> list[str]:
        if len(value) not in (0, PALETTE_SIZE):
            raise ValueError(
                f"palette override must have 0 or {PALETTE_SIZE} colours, got {len(value)}"
            )
        return value

    @property
    def mutation_count(self) -> int:
        """Number of mutation events this input applies."""
        return len(self.mutation_events)
