"""``artifactforge status`` and ``artifactforge wait``.

``status`` reads the commit record straight from storage. ``wait`` polls a
running service with the mutation-count freshness protocol.
"""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console
from rich.panel import Panel

from artifactforge.cli import runtime
from artifactforge.config import config
from artifactforge.core.freshness import (
    FreshnessOutcome,
    FreshnessPoller,
    PollResult,
    StatusClient,
    expected_mutation_count,
)
from artifactforge.core.pipeline import MaterializationPipeline
from artifactforge.models.artifacts import PublishedRecord

console = Console()

# Exit code for an exhausted poll budget: not an error, but not fresh either
STILL_PROCESSING_EXIT = 2


def status_cmd(
    token_id: int = typer.Argument(..., help="Token id to look up."),
) -> None:
    """Show the published record of a token."""

    async def _read(pipeline: MaterializationPipeline) -> PublishedRecord | None:
        return await pipeline.read_record(token_id)

    record = runtime.run_with_pipeline(config, _read)
    if record is None:
        console.print(f"[yellow]Token {token_id} has not been published.[/yellow]")
        raise typer.Exit(code=1)

    console.print(
        Panel(
            "\n".join([
                f"[bold]Mutation count:[/bold] {record.generated_at_mutation_count}",
                f"[bold]Generated at:[/bold]   {record.generated_at.isoformat()}",
                f"[bold]Size:[/bold]           {record.width}x{record.height}, "
                f"{record.frame_count} frames",
                f"[bold]Pixels:[/bold]         {record.pixel_history_url}",
                f"[bold]Raster:[/bold]         {record.raster_url}",
                f"[bold]Vector:[/bold]         {record.vector_url}",
            ]),
            title=f"Token {token_id}",
            border_style="green",
        )
    )


def wait_cmd(
    token_id: int = typer.Argument(..., help="Token id to wait for."),
    observed: int = typer.Option(
        ...,
        "--observed",
        help="Mutation count observed before the triggering transaction.",
    ),
    url: str = typer.Option(
        "http://localhost:8080", "--url", help="Base URL of the artifactforge service."
    ),
    interval: float = typer.Option(None, "--interval", help="Seconds between polls."),
    attempts: int = typer.Option(None, "--attempts", help="Maximum number of polls."),
) -> None:
    """Wait until the service has published the post-mutation state."""
    expected = expected_mutation_count(observed)

    async def _wait() -> PollResult:
        client = StatusClient(url)
        try:
            poller = FreshnessPoller(
                client.fetch_status,
                interval=interval if interval is not None else config.poll_interval_seconds,
                max_attempts=attempts if attempts is not None else config.poll_max_attempts,
            )
            return await poller.poll(token_id, expected)
        finally:
            await client.aclose()

    result = asyncio.run(_wait())
    if result.outcome is FreshnessOutcome.FRESH:
        console.print(
            f"[green]Token {token_id} is fresh[/green] "
            f"(mutation count {result.status.generated_at_mutation_count}, "
            f"{result.attempts} polls)"
        )
        return
    console.print(
        f"[yellow]Token {token_id} is still processing[/yellow] after {result.attempts} polls; "
        "try again later."
    )
    raise typer.Exit(code=STILL_PROCESSING_EXIT)
