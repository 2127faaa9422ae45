"""EMBuilder ping command - Check whether a capture server is listening."""

from __future__ import annotations

from typing import Optional

import httpx
import typer

from ..logging_config import setup_logger
from . import console, resolve_config

logger = setup_logger("embuilder.commands.ping", "embuilder.log")


def ping_server(base_url: str, *, timeout: float = 2.0) -> bool:
    """True when `base_url` answers /api/ping with pong."""
    url = f"{base_url.rstrip('/')}/api/ping"
    try:
        response = httpx.get(url, timeout=timeout)
        response.raise_for_status()
        payload = response.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.debug(f"Ping to {url} failed: {e}")
        return False
    return isinstance(payload, dict) and payload.get("ok") is True and payload.get("message") == "pong"


def ping_command(
    url: Optional[str] = typer.Option(
        None, "--url", help="Server base URL (default http://<host>:<port> from config)"
    ),
    timeout: float = typer.Option(2.0, "--timeout", help="Seconds to wait for an answer"),
):
    """Probe a running capture server."""
    if url is None:
        config = resolve_config()
        url = f"http://{config.host}:{config.port}"

    if ping_server(url, timeout=timeout):
        console.print(f"[green]✓[/green] pong from [cyan]{url}[/cyan]")
        return
    console.print(f"[red]✗[/red] No capture server answering at [cyan]{url}[/cyan]")
    raise typer.Exit(1)


if __name__ == "__main__":
    typer.run(ping_command)
