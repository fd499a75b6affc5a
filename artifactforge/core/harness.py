"""Compose the executable render harness for one token.

The harness is a self-contained HTML document rendered from a
``string.Template`` with named slots. Every injected value is JSON-encoded
and escaped for an inline ``<script>`` context, so seeds, mutation labels
and palette strings can never terminate the script block or break out of
their literal.

Harness contract seen by the generative script:

- ``MINT_SEED``: integer seed
- ``MUTATIONS``: ordered ``[seed, type]`` pairs
- ``CUSTOM_PALETTE``: empty or six colour strings
- ``CANVAS_WIDTH``: target canvas width in pixels
- ``generationComplete``: set to ``true`` once ``generate`` returns

The script must define ``generate(seed, mutations, palette)``, draw onto a
canvas element, and populate a ``canvasHistory`` global with one RGBA
pixel array per frame.
"""

from __future__ import annotations

import html
import json
import re
from collections.abc import Sequence
from string import Template
from typing import Any

from artifactforge.core.token_inputs import preview_input
from artifactforge.models.artifacts import RenderHarness
from artifactforge.models.tokens import TokenGenerationInput

_JS_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}
_JS_ESCAPE_RE = re.compile("[<>&\u2028\u2029]")
_SCRIPT_CLOSE_RE = re.compile(r"</(script)", re.IGNORECASE)

_DOCUMENT = Template(
    """<!DOCTYPE html>
<html>
<head>
<meta charset="UTF-8">
<title>$title</title>
<style>
html, body { margin: 0; padding: 0; background-color: #EBE5D9; }
canvas { display: block; margin: 0 auto; }
</style>
$library_tags
</head>
<body>
<script>
var MINT_SEED = $mint_seed;
var MUTATIONS = $mutations;
var CUSTOM_PALETTE = $palette;
var CANVAS_WIDTH = $canvas_width;
var generationComplete = false;
</script>
<script>
$script
</script>
<script>
function setup() {
  generate(MINT_SEED, MUTATIONS, CUSTOM_PALETTE);
  generationComplete = true;
}
if (typeof p5 === "undefined") {
  window.addEventListener("load", setup);
}
</script>
</body>
</html>
"""
)


def js_literal(value: Any) -> str:
    """Encode ``value`` as a JavaScript literal safe inside ``<script>``."""
    encoded = json.dumps(value, ensure_ascii=False, separators=(",", ":"))
    return _JS_ESCAPE_RE.sub(lambda match: _JS_ESCAPES[match.group(0)], encoded)


def neutralize_script(script: str) -> str:
    """Stop the script text from closing its own ``<script>`` element."""
    return _SCRIPT_CLOSE_RE.sub(r"<\\/\1", script)


class RenderHarnessBuilder:
    """Builds harness documents from an assembled script and token inputs.

    Parameters
    ----------
    canvas_width:
        Default canvas width handed to the script.
    library_urls:
        Script dependencies loaded before the harness (p5.js by default).
    """

    def __init__(self, *, canvas_width: int = 1200, library_urls: Sequence[str] = ()) -> None:
        if canvas_width <= 0:
            raise ValueError("canvas_width must be positive")
        self._canvas_width = canvas_width
        self._library_urls = list(library_urls)

    @property
    def canvas_width(self) -> int:
        return self._canvas_width

    def build(
        self,
        script: str,
        token_input: TokenGenerationInput,
        *,
        canvas_width: int | None = None,
        title: str | None = None,
    ) -> RenderHarness:
        width = canvas_width if canvas_width is not None else self._canvas_width
        if width <= 0:
            raise ValueError("canvas_width must be positive")
        library_tags = "\n".join(
            f'<script src="{html.escape(url, quote=True)}"></script>'
            for url in self._library_urls
        )
        mutations = [[event.seed, event.type_label] for event in token_input.mutation_events]
        document = _DOCUMENT.substitute(
            title=html.escape(title or f"Token {token_input.token_id}"),
            library_tags=library_tags,
            mint_seed=js_literal(token_input.mint_seed),
            mutations=js_literal(mutations),
            palette=js_literal(list(token_input.palette_override)),
            canvas_width=js_literal(width),
            script=neutralize_script(script),
        )
        return RenderHarness(token_id=token_input.token_id, html=document, canvas_width=width)

    def build_preview(
        self,
        script: str,
        seed_hex: str,
        palette: Sequence[str] | None = None,
        *,
        canvas_width: int | None = None,
    ) -> RenderHarness:
        """Harness for an unminted seed, using the same seed truncation as mint."""
        token_input = preview_input(seed_hex, palette)
        harness = self.build(script, token_input, canvas_width=canvas_width, title="Preview")
        return harness.model_copy(update={"token_id": None})
