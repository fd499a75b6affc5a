"""Structural validation of raw render output.

A render that produces malformed output points at a bug in the generative
script or the harness, so nothing here is retried: the job fails loudly and
no partial artifact moves on to publishing.
"""

from __future__ import annotations

import logging
from typing import Any

from artifactforge.core.errors import ExtractionValidationError
from artifactforge.models.artifacts import GeneratedArtifact, RawRenderResult

logger = logging.getLogger(__name__)

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
CHANNELS = 4


def _positive_int(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ExtractionValidationError(f"Canvas {name} must be a positive integer, got {value!r}")
    return value


def _frame_bytes(index: int, frame: Any, expected: int) -> bytes:
    if isinstance(frame, (bytes, bytearray)):
        data = bytes(frame)
    elif isinstance(frame, list):
        try:
            data = bytes(frame)
        except (TypeError, ValueError) as exc:
            raise ExtractionValidationError(
                f"Frame {index} contains values outside 0..255"
            ) from exc
    else:
        raise ExtractionValidationError(
            f"Frame {index} is {type(frame).__name__}, expected a pixel array"
        )
    if len(data) != expected:
        raise ExtractionValidationError(
            f"Frame {index} has {len(data)} values, expected {expected} (width*height*4)"
        )
    return data


class ArtifactExtractor:
    """Validates ``RawRenderResult`` into a ``GeneratedArtifact``."""

    def extract(self, raw: RawRenderResult) -> GeneratedArtifact:
        try:
            return self._validate(raw)
        except ExtractionValidationError as exc:
            logger.error("Render output rejected: %s", exc)
            raise

    @staticmethod
    def _validate(raw: RawRenderResult) -> GeneratedArtifact:
        width = _positive_int("width", raw.width)
        height = _positive_int("height", raw.height)
        if not isinstance(raw.frames, list):
            raise ExtractionValidationError("Frame history is missing or not a list")
        if not raw.frames:
            raise ExtractionValidationError("Frame history is empty")
        expected = width * height * CHANNELS
        frames = [_frame_bytes(i, frame, expected) for i, frame in enumerate(raw.frames)]
        if not raw.raster_png.startswith(PNG_SIGNATURE):
            raise ExtractionValidationError("Raster snapshot is not a PNG")
        return GeneratedArtifact(
            frame_history=frames,
            raster_bytes=raw.raster_png,
            width=width,
            height=height,
        )
