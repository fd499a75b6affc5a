"""Tests for structural validation of render output."""

from __future__ import annotations

import pytest

from artifactforge.core.errors import ExtractionValidationError
from artifactforge.core.extractor import ArtifactExtractor
from artifactforge.models.artifacts import RawRenderResult


def raw(png_bytes, **overrides) -> RawRenderResult:
    defaults = {
        "width": 2,
        "height": 1,
        "frames": [[1, 2, 3, 255, 4, 5, 6, 255]],
        "raster_png": png_bytes,
    }
    defaults.update(overrides)
    return RawRenderResult(**defaults)


class TestArtifactExtractor:
    def test_valid_output(self, png_bytes):
        artifact = ArtifactExtractor().extract(raw(png_bytes))
        assert artifact.width == 2
        assert artifact.height == 1
        assert artifact.frame_history == [bytes([1, 2, 3, 255, 4, 5, 6, 255])]
        assert artifact.frame_count == 1
        assert artifact.raster_bytes == png_bytes

    def test_multiple_frames_kept_in_order(self, png_bytes):
        frames = [[i] * 8 for i in range(3)]
        artifact = ArtifactExtractor().extract(raw(png_bytes, frames=frames))
        assert [frame[0] for frame in artifact.frame_history] == [0, 1, 2]

    def test_empty_history(self, png_bytes):
        with pytest.raises(ExtractionValidationError, match="empty"):
            ArtifactExtractor().extract(raw(png_bytes, frames=[]))

    def test_missing_history(self, png_bytes):
        with pytest.raises(ExtractionValidationError):
            ArtifactExtractor().extract(raw(png_bytes, frames=None))

    def test_wrong_frame_length(self, png_bytes):
        with pytest.raises(ExtractionValidationError, match="width\\*height\\*4"):
            ArtifactExtractor().extract(raw(png_bytes, frames=[[0] * 7]))

    def test_one_bad_frame_rejects_all(self, png_bytes):
        frames = [[0] * 8, [0] * 4]
        with pytest.raises(ExtractionValidationError, match="Frame 1"):
            ArtifactExtractor().extract(raw(png_bytes, frames=frames))

    def test_out_of_range_values(self, png_bytes):
        with pytest.raises(ExtractionValidationError, match="0..255"):
            ArtifactExtractor().extract(raw(png_bytes, frames=[[0] * 7 + [256]]))

    def test_non_array_frame(self, png_bytes):
        with pytest.raises(ExtractionValidationError):
            ArtifactExtractor().extract(raw(png_bytes, frames=["pixels"]))

    @pytest.mark.parametrize("width", [0, -1, 1.5, "2", None, True])
    def test_invalid_width(self, png_bytes, width):
        with pytest.raises(ExtractionValidationError):
            ArtifactExtractor().extract(raw(png_bytes, width=width))

    def test_non_png_raster(self, png_bytes):
        with pytest.raises(ExtractionValidationError, match="PNG"):
            ArtifactExtractor().extract(raw(png_bytes, raster_png=b"GIF89a"))
