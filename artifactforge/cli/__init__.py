"""artifactforge CLI: Typer-based command-line interface.

Provides the ``artifactforge`` command with subcommands for serving the
regeneration API, one-shot generation, sync sweeps, status lookups,
freshness waits and preview harnesses.

All output uses Rich for formatted terminal display.
"""
