"""``artifactforge generate --token 1,2``: one-shot materialization.

Renders and publishes each token in turn, then prints a summary table.
Exits non-zero if any token failed.
"""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from artifactforge.cli import runtime
from artifactforge.config import config
from artifactforge.core.errors import MaterializationError
from artifactforge.core.pipeline import MaterializationPipeline
from artifactforge.models.artifacts import PublishedRecord

console = Console()


def parse_token_ids(raw: str) -> list[int]:
    ids: list[int] = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        if not part.isdigit() or int(part) < 1:
            raise typer.BadParameter(f"Invalid token id: {part!r}")
        ids.append(int(part))
    if not ids:
        raise typer.BadParameter("At least one token id is required")
    return ids


def generate_cmd(
    tokens: str = typer.Option(
        ...,
        "--token",
        "-t",
        help="Comma-separated token ids, e.g. 1,2,3.",
    ),
) -> None:
    """Render and publish the current on-chain state of each token."""
    token_ids = parse_token_ids(tokens)

    async def _generate(
        pipeline: MaterializationPipeline,
    ) -> dict[int, PublishedRecord | str]:
        results: dict[int, PublishedRecord | str] = {}
        for token_id in token_ids:
            try:
                results[token_id] = await pipeline.materialize(token_id)
            except MaterializationError as exc:
                results[token_id] = f"{type(exc).__name__}: {exc}"
        return results

    results = runtime.run_with_pipeline(config, _generate)

    table = Table(title="Generation Results")
    table.add_column("Token", style="cyan", justify="right")
    table.add_column("Result")
    table.add_column("Mutations", justify="right")
    table.add_column("Frames", justify="right")
    table.add_column("Raster URL", overflow="fold")
    failures = 0
    for token_id, result in results.items():
        if isinstance(result, PublishedRecord):
            table.add_row(
                str(token_id),
                "[green]published[/green]",
                str(result.generated_at_mutation_count),
                str(result.frame_count),
                result.raster_url,
            )
        else:
            failures += 1
            table.add_row(str(token_id), f"[red]{result}[/red]", "-", "-", "-")
    console.print(table)
    if failures:
        raise typer.Exit(code=1)
