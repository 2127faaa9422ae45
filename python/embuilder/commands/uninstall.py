"""EMBuilder uninstall command."""

from __future__ import annotations

import typer

from ..branding import BRANDING
from ..workspace_installer import WorkspaceInstaller
from . import console, resolve_config


def uninstall_command():
    """Remove event-model skills from Claude Code."""
    installer = WorkspaceInstaller(resolve_config())
    try:
        removed = installer.uninstall()
    except OSError as e:
        console.print(f"[red]✗[/red] Failed to remove {installer.destination}: {e}")
        raise typer.Exit(1)

    if removed:
        console.print(f"[green]✓[/green] {BRANDING.skills_label} uninstalled")
    else:
        console.print("ℹ️  Skills not currently installed")


if __name__ == "__main__":
    typer.run(uninstall_command)
