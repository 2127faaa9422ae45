"""Runtime configuration for the installer and the config capture server."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Literal, Mapping, Optional, get_args

InstallStrategy = Literal["linked", "copied"]

VALID_STRATEGIES: tuple[str, ...] = get_args(InstallStrategy)

PACKAGE_ROOT = Path(__file__).resolve().parent

DEFAULT_STRATEGY: InstallStrategy = "copied"
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3001
DEFAULT_MAX_BODY_BYTES = 10 * 1024 * 1024
DEFAULT_RECEIVE_TIMEOUT = 30.0

SKILLS_RELATIVE_PATH = Path(".claude") / "skills"
INSTALL_RECORD_NAME = ".embuilder-install.json"
CONFIG_FILENAME = "config.json"


def packaged_skills_dir() -> Path:
    return PACKAGE_ROOT / "skills"


def packaged_templates_dir() -> Path:
    return PACKAGE_ROOT / "templates"


def normalize_strategy(value: str) -> InstallStrategy:
    """Map user input (including the `symlink`/`copy` spellings) to a strategy."""
    raw = (value or "").strip().lower()
    aliases = {"link": "linked", "symlink": "linked", "copy": "copied"}
    raw = aliases.get(raw, raw)
    if raw not in VALID_STRATEGIES:
        raise ValueError(
            f"Invalid install strategy: {value!r} (expected one of {', '.join(VALID_STRATEGIES)})"
        )
    return raw  # type: ignore[return-value]


@dataclass(frozen=True)
class EMBuilderConfig:
    """Explicit configuration handed to the installer and the capture server."""

    workspace_root: Path = field(default_factory=Path.cwd)
    skills_source: Path = field(default_factory=packaged_skills_dir)
    templates_source: Path = field(default_factory=packaged_templates_dir)
    strategy: InstallStrategy = DEFAULT_STRATEGY
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    max_body_bytes: int = DEFAULT_MAX_BODY_BYTES
    receive_timeout: Optional[float] = DEFAULT_RECEIVE_TIMEOUT

    @property
    def skills_destination(self) -> Path:
        return self.workspace_root / SKILLS_RELATIVE_PATH

    @property
    def install_record_path(self) -> Path:
        return self.skills_destination.parent / INSTALL_RECORD_NAME

    @property
    def config_path(self) -> Path:
        return self.workspace_root / CONFIG_FILENAME

    def with_overrides(self, **changes) -> "EMBuilderConfig":
        """Return a copy with the non-None overrides applied."""
        updates = {k: v for k, v in changes.items() if v is not None}
        if "strategy" in updates:
            updates["strategy"] = normalize_strategy(updates["strategy"])
        return replace(self, **updates)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "EMBuilderConfig":
        """Build a config from EMBUILDER_* environment variables.

        Raises:
            ValueError: when a variable is set to something unparseable
        """
        env = os.environ if environ is None else environ
        values: dict = {}

        workspace = (env.get("EMBUILDER_WORKSPACE") or "").strip()
        values["workspace_root"] = Path(workspace).expanduser().resolve() if workspace else Path.cwd()

        strategy = (env.get("EMBUILDER_INSTALL_STRATEGY") or "").strip()
        if strategy:
            try:
                values["strategy"] = normalize_strategy(strategy)
            except ValueError as e:
                raise ValueError(f"EMBUILDER_INSTALL_STRATEGY: {e}") from e

        host = (env.get("EMBUILDER_HOST") or "").strip()
        if host:
            values["host"] = host

        values.update(_int_from_env(env, "EMBUILDER_PORT", "port", minimum=0))
        values.update(_int_from_env(env, "EMBUILDER_MAX_BODY_BYTES", "max_body_bytes", minimum=1))

        timeout = (env.get("EMBUILDER_RECEIVE_TIMEOUT") or "").strip()
        if timeout:
            try:
                seconds = float(timeout)
            except ValueError as e:
                raise ValueError(f"EMBUILDER_RECEIVE_TIMEOUT must be a number, got {timeout!r}") from e
            # 0 disables the timeout.
            values["receive_timeout"] = seconds if seconds > 0 else None

        return cls(**values)


def _int_from_env(env: Mapping[str, str], var: str, key: str, *, minimum: int) -> dict:
    raw = (env.get(var) or "").strip()
    if not raw:
        return {}
    try:
        value = int(raw)
    except ValueError as e:
        raise ValueError(f"{var} must be an integer, got {raw!r}") from e
    if value < minimum:
        raise ValueError(f"{var} must be >= {minimum}, got {value}")
    return {key: value}
