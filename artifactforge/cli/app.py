"""Main Typer application: imports and registers all CLI commands.

Entry point: ``artifactforge`` (configured via pyproject.toml scripts).
"""

from __future__ import annotations

import logging

import typer

from artifactforge.cli.commands.generate import generate_cmd
from artifactforge.cli.commands.preview import preview_cmd
from artifactforge.cli.commands.serve import serve_cmd
from artifactforge.cli.commands.status import status_cmd, wait_cmd
from artifactforge.cli.commands.sync import sync_cmd
from artifactforge.config import config

app = typer.Typer(
    name="artifactforge",
    help="artifactforge: render and publish token artifacts from on-chain scripts.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)


@app.callback()
def main_callback(
    log_level: str = typer.Option(
        None, "--log-level", help="Override ARTIFACTFORGE_LOG_LEVEL for this run."
    ),
) -> None:
    """Configure logging before any command runs."""
    level = (log_level or config.log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# Register subcommands
app.command(name="serve", help="Run the regeneration and artifact API.")(serve_cmd)
app.command(name="generate", help="Render and publish one or more tokens now.")(generate_cmd)
app.command(name="sync", help="Find and regenerate missing or outdated tokens.")(sync_cmd)
app.command(name="status", help="Show the published record for a token.")(status_cmd)
app.command(name="wait", help="Poll a service until a token's artifacts are fresh.")(wait_cmd)
app.command(name="preview", help="Write a preview harness for an unminted seed.")(preview_cmd)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
