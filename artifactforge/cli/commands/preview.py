"""``artifactforge preview``: write a harness document for an unminted seed."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from artifactforge.cli import runtime
from artifactforge.config import config
from artifactforge.core.pipeline import MaterializationPipeline
from artifactforge.core.token_inputs import preview_input
from artifactforge.models.artifacts import RenderHarness

console = Console()


def preview_cmd(
    seed: str = typer.Option(..., "--seed", help="0x-prefixed 32-byte seed hash."),
    palette: str = typer.Option(
        "", "--palette", help="Six comma-separated #RRGGBB colours (optional)."
    ),
    out: Path = typer.Option(Path("preview.html"), "--out", "-o", help="Output file."),
) -> None:
    """Build the preview harness a minter would see for ``seed``."""
    colours = [c.strip() for c in palette.split(",") if c.strip()]

    try:
        preview_input(seed, colours)
    except ValueError as exc:
        console.print(f"[bold red]Invalid preview input:[/bold red] {exc}")
        raise typer.Exit(code=2) from exc

    async def _preview(pipeline: MaterializationPipeline) -> RenderHarness:
        return await pipeline.preview_harness(seed, colours)

    harness = runtime.run_with_pipeline(config, _preview)

    out.write_text(harness.html, encoding="utf-8")
    console.print(f"[green]Preview harness written to[/green] {out}")
