"""``artifactforge serve``: run the FastAPI service under uvicorn."""

from __future__ import annotations

import typer
import uvicorn

from artifactforge.api.app import create_app
from artifactforge.config import config


def serve_cmd(
    host: str = typer.Option(None, "--host", help="Bind address (default from config)."),
    port: int = typer.Option(None, "--port", help="Bind port (default from config)."),
) -> None:
    """Serve trigger, status and artifact endpoints."""
    app = create_app(config)
    uvicorn.run(
        app,
        host=host or config.host,
        port=port or config.port,
        log_level=config.log_level.lower(),
    )
