"""EMBuilder serve command - Capture config.json from the event-model app."""

from __future__ import annotations

from typing import Optional

import typer

from ..capture_server import run_capture_server
from . import resolve_config


def serve_command(
    host: Optional[str] = typer.Option(None, "--host", help="Interface to bind (default 127.0.0.1)"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port to listen on (default 3001)"),
):
    """Wait for one configuration submission, write config.json, then exit."""
    config = resolve_config(host=host, port=port)
    raise typer.Exit(run_capture_server(config))


if __name__ == "__main__":
    typer.run(serve_command)
