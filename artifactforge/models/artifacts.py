"""Rendered artifact models: raw sandbox output, validated artifacts, records."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict


class ArtifactKind(str, Enum):
    """The three published representations of a token."""

    PIXELS = "pixels"
    RASTER = "raster"
    VECTOR = "vector"


class RenderHarness(BaseModel):
    """A self-contained document ready to load into a sandbox."""

    model_config = ConfigDict(frozen=True)

    token_id: int | None
    html: str
    canvas_width: int


class RawRenderResult(BaseModel):
    """Unvalidated values read back from the sandbox canvas.

    ``frames`` is whatever the script left in its history global; the
    extractor decides whether it is usable.
    """

    model_config = ConfigDict(frozen=True)

    width: Any
    height: Any
    frames: Any
    raster_png: bytes


class GeneratedArtifact(BaseModel):
    """Validated render output: RGBA frame history plus a PNG snapshot."""

    model_config = ConfigDict(frozen=True)

    frame_history: list[bytes]
    raster_bytes: bytes
    width: int
    height: int

    @property
    def frame_count(self) -> int:
        return len(self.frame_history)


class VectorArtifact(BaseModel):
    """SVG trace derived from a raster. Never published without it."""

    model_config = ConfigDict(frozen=True)

    svg: str
    width: int
    height: int
    colour_count: int


class PublishedRecord(BaseModel):
    """Commit marker for one token's published artifacts.

    Written only after all three artifacts are uploaded, and overwritten
    in place on every regeneration.
    """

    model_config = ConfigDict(frozen=True)

    token_id: int
    pixel_history_url: str
    raster_url: str
    vector_url: str
    generated_at_mutation_count: int
    generated_at: datetime
    width: int
    height: int
    frame_count: int
    digests: dict[str, str] = {}

    def url_for(self, kind: ArtifactKind) -> str:
        """Public URL of one representation."""
        return {
            ArtifactKind.PIXELS: self.pixel_history_url,
            ArtifactKind.RASTER: self.raster_url,
            ArtifactKind.VECTOR: self.vector_url,
        }[kind]
