"""``artifactforge sync``: regenerate tokens whose artifacts are missing or outdated."""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from artifactforge.cli import runtime
from artifactforge.config import config
from artifactforge.core.pipeline import MaterializationPipeline
from artifactforge.core.sync import SyncReport, SyncState, find_stale_tokens, regenerate_stale

console = Console()


def sync_cmd(
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Only report stale tokens, do not regenerate."
    ),
) -> None:
    """Scan every minted token and regenerate the stale ones."""

    async def _sync(
        pipeline: MaterializationPipeline,
    ) -> tuple[SyncReport, dict[int, str | None]]:
        report = await find_stale_tokens(pipeline)
        if dry_run:
            return report, {}
        return report, await regenerate_stale(pipeline, report)

    report, results = runtime.run_with_pipeline(config, _sync)

    table = Table(title=f"Sync ({report.total_supply} tokens)")
    table.add_column("Token", style="cyan", justify="right")
    table.add_column("State")
    table.add_column("Live", justify="right")
    table.add_column("Published", justify="right")
    table.add_column("Result")
    for token in report.tokens:
        if token.state is SyncState.CURRENT:
            continue
        if token.token_id not in results:
            outcome = "[dim]skipped[/dim]"
        elif results[token.token_id] is None:
            outcome = "[green]regenerated[/green]"
        else:
            outcome = f"[red]{results[token.token_id]}[/red]"
        published = token.published_mutation_count
        table.add_row(
            str(token.token_id),
            token.state.value,
            str(token.live_mutation_count),
            "-" if published is None else str(published),
            outcome,
        )

    if not report.stale:
        console.print("[green]All tokens are up to date.[/green]")
    else:
        console.print(table)
    if any(error is not None for error in results.values()):
        raise typer.Exit(code=1)
