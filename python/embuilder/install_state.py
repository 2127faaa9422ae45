"""Installation record kept beside the skills destination.

The record remembers which strategy produced the current installation so that
`status` and `uninstall` can branch on it instead of assuming one.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Literal, Optional

from . import __version__
from .config import VALID_STRATEGIES, InstallStrategy

DetectedStrategy = Literal["linked", "copied", "unknown"]


@dataclass(frozen=True)
class InstallRecord:
    strategy: InstallStrategy
    source: str
    destination: str
    with_templates: bool = False
    installed_at: str = ""
    version: str = __version__


def read_install_record(path: Path) -> Optional[InstallRecord]:
    """Read a persisted install record; None when missing or unreadable."""
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None
    if not isinstance(raw, dict):
        return None
    strategy = str(raw.get("strategy", "")).strip().lower()
    if strategy not in VALID_STRATEGIES:
        return None
    return InstallRecord(
        strategy=strategy,  # type: ignore[arg-type]
        source=str(raw.get("source", "")).strip(),
        destination=str(raw.get("destination", "")).strip(),
        with_templates=bool(raw.get("with_templates", False)),
        installed_at=str(raw.get("installed_at", "")).strip(),
        version=str(raw.get("version", "")).strip(),
    )


def write_install_record(
    path: Path,
    strategy: InstallStrategy,
    *,
    source: Path,
    destination: Path,
    with_templates: bool = False,
) -> InstallRecord:
    """Persist the install record and return it."""
    record = InstallRecord(
        strategy=strategy,
        source=str(source),
        destination=str(destination),
        with_templates=with_templates,
        installed_at=datetime.now(timezone.utc).isoformat(),
    )
    payload: dict[str, Any] = asdict(record)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
    return record


def clear_install_record(path: Path) -> None:
    path.unlink(missing_ok=True)


def detect_strategy_from_filesystem(destination: Path) -> DetectedStrategy:
    """Infer the strategy from what actually sits at the destination."""
    if destination.is_symlink():
        return "linked"
    if destination.is_dir():
        return "copied"
    return "unknown"

