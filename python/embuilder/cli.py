"""EMBuilder command-line entry point."""

from __future__ import annotations

import typer

from . import __version__
from .branding import BRANDING
from .commands.install import install_command
from .commands.ping import ping_command
from .commands.serve import serve_command
from .commands.status import status_command
from .commands.uninstall import uninstall_command

app = typer.Typer(
    name="embuilder",
    help=f"{BRANDING.product_name} - {BRANDING.tagline}",
    no_args_is_help=True,
    add_completion=False,
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"embuilder {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", "-V", help="Show version and exit", callback=_version_callback, is_eager=True
    ),
):
    """EMBuilder - Event-Model driven development toolkit for Claude Code."""


app.command("install")(install_command)
app.command("uninstall")(uninstall_command)
app.command("status")(status_command)
app.command("serve")(serve_command)
app.command("ping")(ping_command)


if __name__ == "__main__":
    app()
