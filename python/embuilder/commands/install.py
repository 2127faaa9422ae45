"""EMBuilder install command - Install skills (and optionally templates) into the workspace."""

from __future__ import annotations

from typing import Annotated, Optional

import typer

from ..branding import BRANDING
from ..logging_config import setup_logger
from ..workspace_installer import InstallError, InstallResult, WorkspaceInstaller
from . import console, resolve_config

logger = setup_logger("embuilder.commands.install", "embuilder.log")


def _print_failures(error: InstallError) -> None:
    if not error.failures:
        return
    console.print("\n[bold red]Copy errors:[/bold red]")
    for failure in error.failures:
        console.print(f"  • {failure.path}: {failure.error}", style="red")


def _print_result(result: InstallResult, installer: WorkspaceInstaller) -> None:
    verb = "linked" if result.strategy == "linked" else "copied"
    console.print(f"[green]✓[/green] Skills {verb} to: [cyan]{result.destination}[/cyan]")

    skills = installer.available_skills()
    if skills:
        console.print("\n[bold]Available commands:[/bold]")
        width = max(len(s.name) for s in skills) + 1
        for skill in skills:
            line = f"  /{skill.name.ljust(width)}"
            if skill.description:
                line += f" - {skill.description}"
            console.print(line, highlight=False)

    if not result.with_templates:
        console.print(
            "\n💡 Tip: Run with [cyan]--with-templates[/cyan] to copy all template files "
            "including the .claude directory",
            style="dim",
        )
        return

    console.print("\n📄 Templates copied to the current directory:")
    for name in result.templates_copied:
        console.print(f"  - {name}", style="dim", highlight=False)
    for script in result.executables:
        console.print(f"  [green]✓[/green] Executable: [cyan]{script.name}[/cyan]")

    if result.failures:
        console.print("\n[yellow]Some template entries could not be copied:[/yellow]")
        for failure in result.failures:
            console.print(f"  • {failure}", style="yellow")


def install_command(
    with_templates: Annotated[
        bool,
        typer.Option(
            "--with-templates",
            help="Also copy template files (ralph.sh, AGENTS.md, Claude.md, prompt.md, README.md) "
            "and generators to the current directory",
        ),
    ] = False,
    strategy: Optional[str] = typer.Option(
        None,
        "--strategy",
        "-s",
        help="Installation strategy: 'copied' (independent copy) or 'linked' (symlink to the package)",
    ),
):
    """Install event-model skills into Claude Code."""
    config = resolve_config(strategy=strategy)
    installer = WorkspaceInstaller(config)

    console.print(f"📦 Installing {BRANDING.skills_label}...\n")
    try:
        result = installer.install(with_templates=with_templates)
    except InstallError as e:
        logger.error(f"Install failed: {e}")
        console.print(f"[bold red]✗ Installation failed:[/bold red] {e}")
        _print_failures(e)
        raise typer.Exit(1)

    if result.replaced_existing:
        console.print("  Replaced existing installation", style="dim")
    _print_result(result, installer)
    console.print("\n🎉 Installation complete!")


if __name__ == "__main__":
    typer.run(install_command)
