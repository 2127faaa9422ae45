"""EMBuilder CLI subcommands."""

from __future__ import annotations

import typer
from rich.console import Console

from ..config import EMBuilderConfig

console = Console()


def resolve_config(**overrides) -> EMBuilderConfig:
    """Load EMBUILDER_* settings and apply CLI overrides; exit 2 on bad values."""
    try:
        return EMBuilderConfig.from_env().with_overrides(**overrides)
    except ValueError as e:
        console.print(f"[red]Invalid configuration:[/red] {e}")
        raise typer.Exit(2)
