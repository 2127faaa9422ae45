"""EMBuilder status command - Report where skills are installed and how."""

from __future__ import annotations

import json

import typer

from ..branding import BRANDING
from ..workspace_installer import WorkspaceInstaller
from . import console, resolve_config


def status_command(
    json_output: bool = typer.Option(False, "--json", help="Print the status as JSON"),
):
    """Check installation status."""
    status = WorkspaceInstaller(resolve_config()).status()

    if json_output:
        typer.echo(json.dumps(status.as_dict(), indent=2))
        return

    console.print(f"[bold]{BRANDING.status_title}[/bold]\n")
    console.print(f"Installation path: [cyan]{status.destination}[/cyan]", highlight=False)
    console.print(f"Installed: {'✅ Yes' if status.installed else '❌ No'}")
    if not status.installed:
        return

    console.print(f"Strategy: {status.strategy}")
    console.print(f"Source: [cyan]{status.source}[/cyan]", highlight=False)
    if status.record and status.record.installed_at:
        console.print(f"Installed at: {status.record.installed_at}", style="dim")
    if status.broken_link:
        console.print(
            "[yellow]![/yellow] The skills link points at a missing directory. "
            "Run [cyan]embuilder install[/cyan] to repair it."
        )


if __name__ == "__main__":
    typer.run(status_command)
