"""Raster to SVG tracing.

Pure and deterministic: the same PNG bytes always yield the same SVG. The
raster is downscaled by an integer factor, quantized to a small palette,
and each colour's pixels are merged into axis-aligned rectangles that are
emitted as one ``<path>`` per colour. The SVG keeps the raster's native
size through ``viewBox`` so it overlays the PNG exactly.
"""

from __future__ import annotations

import asyncio
import io
import logging
from collections import defaultdict

from PIL import Image, UnidentifiedImageError

from artifactforge.core.errors import VectorTraceError
from artifactforge.models.artifacts import VectorArtifact

logger = logging.getLogger(__name__)

MAX_TRACE_SIDE = 512
DEFAULT_COLOURS = 16


def _merge_runs(indexed: list[int], width: int, height: int) -> dict[int, list[tuple[int, int, int, int]]]:
    """Group same-colour pixels into rectangles ``(x, y, w, h)`` per colour.

    Horizontal runs are found per row; a run identical in span and colour to
    one directly above it extends that rectangle downward.
    """
    rects: dict[int, list[tuple[int, int, int, int]]] = defaultdict(list)
    # (x, w, colour) -> index into rects[colour] of the rectangle ending on the previous row
    open_runs: dict[tuple[int, int, int], int] = {}
    for y in range(height):
        row = indexed[y * width:(y + 1) * width]
        next_open: dict[tuple[int, int, int], int] = {}
        x = 0
        while x < width:
            colour = row[x]
            start = x
            while x < width and row[x] == colour:
                x += 1
            key = (start, x - start, colour)
            if key in open_runs:
                pos = open_runs[key]
                rx, ry, rw, rh = rects[colour][pos]
                rects[colour][pos] = (rx, ry, rw, rh + 1)
            else:
                rects[colour].append((start, y, x - start, 1))
                pos = len(rects[colour]) - 1
            next_open[key] = pos
        open_runs = next_open
    return rects


class VectorTracer:
    """Converts PNG bytes into a ``VectorArtifact``.

    Parameters
    ----------
    colours:
        Palette size after quantization.
    max_side:
        Longest side of the traced grid; larger rasters are downscaled by
        the smallest integer factor that fits.
    """

    def __init__(self, *, colours: int = DEFAULT_COLOURS, max_side: int = MAX_TRACE_SIDE) -> None:
        self._colours = colours
        self._max_side = max_side

    def trace(self, raster_bytes: bytes) -> VectorArtifact:
        try:
            with Image.open(io.BytesIO(raster_bytes)) as source:
                image = source.convert("RGB")
        except (UnidentifiedImageError, OSError) as exc:
            raise VectorTraceError(f"Cannot decode raster: {exc}") from exc

        width, height = image.size
        factor = max(1, -(-max(width, height) // self._max_side))
        grid_w, grid_h = max(1, width // factor), max(1, height // factor)
        if factor > 1:
            image = image.resize((grid_w, grid_h), Image.Resampling.NEAREST)

        quantized = image.quantize(
            colors=self._colours,
            method=Image.Quantize.MEDIANCUT,
            dither=Image.Dither.NONE,
        )
        palette = quantized.getpalette() or []
        indexed = list(quantized.tobytes())
        rects = _merge_runs(indexed, grid_w, grid_h)

        paths = []
        for colour in sorted(rects):
            r, g, b = palette[colour * 3:colour * 3 + 3]
            d = "".join(f"M{x} {y}h{w}v{h}h-{w}z" for x, y, w, h in rects[colour])
            paths.append(f'<path fill="#{r:02x}{g:02x}{b:02x}" d="{d}"/>')

        svg = (
            f'<svg xmlns="http://www.w3.org/2000/svg" width="{width}" height="{height}" '
            f'viewBox="0 0 {width} {height}" shape-rendering="crispEdges">'
            f'<g transform="scale({factor})">{"".join(paths)}</g></svg>'
        )
        logger.debug(
            "Traced %dx%d raster at factor %d into %d colours", width, height, factor, len(rects)
        )
        return VectorArtifact(svg=svg, width=width, height=height, colour_count=len(rects))

    async def trace_async(self, raster_bytes: bytes) -> VectorArtifact:
        """Run ``trace`` off the event loop; it is CPU-bound."""
        return await asyncio.to_thread(self.trace, raster_bytes)
