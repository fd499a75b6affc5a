"""artifactforge data models: all Pydantic v2, all frozen (immutable)."""

from artifactforge.models.artifacts import (
    ArtifactKind,
    GeneratedArtifact,
    PublishedRecord,
    RawRenderResult,
    RenderHarness,
    VectorArtifact,
)
from artifactforge.models.jobs import (
    Disposition,
    GenerationStatus,
    JobOutcome,
    JobReport,
    TriggerAck,
    TriggerEvent,
    TriggerRequest,
)
from artifactforge.models.sessions import VALID_TRANSITIONS, RenderState
from artifactforge.models.shards import ScriptShard, ShardLocator
from artifactforge.models.tokens import MutationEvent, TokenGenerationInput

__all__ = [
    # shards
    "ShardLocator",
    "ScriptShard",
    # tokens
    "MutationEvent",
    "TokenGenerationInput",
    # sessions
    "RenderState",
    "VALID_TRANSITIONS",
    # artifacts
    "ArtifactKind",
    "RenderHarness",
    "RawRenderResult",
    "GeneratedArtifact",
    "VectorArtifact",
    "PublishedRecord",
    # jobs
    "TriggerEvent",
    "TriggerRequest",
    "TriggerAck",
    "Disposition",
    "GenerationStatus",
    "JobOutcome",
    "JobReport",
]
