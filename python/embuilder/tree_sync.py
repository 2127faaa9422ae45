"""File-tree primitives used by the workspace installer.

`copy_tree` is best-effort: every entry is attempted, and failures are returned
as `CopyFailure` records instead of aborting the pass.
"""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Callable, Optional

from .logging_config import setup_logger

logger = setup_logger("embuilder.tree_sync", "embuilder.log")

DEPENDENCY_CACHE_NAMES = frozenset({"node_modules", "__pycache__"})

ExcludePredicate = Callable[[PurePosixPath], bool]


@dataclass(frozen=True)
class CopyFailure:
    path: Path
    error: str

    def __str__(self) -> str:
        return f"{self.path}: {self.error}"


def is_dependency_cache(relative: PurePosixPath) -> bool:
    """True when any component of the relative path is a dependency-cache directory."""
    return any(part in DEPENDENCY_CACHE_NAMES for part in relative.parts)


def copy_tree(
    source: Path,
    destination: Path,
    *,
    exclude: Optional[ExcludePredicate] = is_dependency_cache,
    _relative: PurePosixPath = PurePosixPath("."),
) -> list[CopyFailure]:
    """Recursively copy `source` into `destination`, merging into existing dirs.

    `exclude` receives each entry's path relative to the original source root,
    at every depth, and skips the entry (and its subtree) when it returns True.
    Existing destination files are overwritten; symlinks are recreated as links.
    """
    failures: list[CopyFailure] = []

    try:
        destination.mkdir(parents=True, exist_ok=True)
        entries = sorted(os.scandir(source), key=lambda e: e.name)
    except OSError as e:
        logger.warning(f"Cannot copy directory {source} -> {destination}: {e}")
        return [CopyFailure(source, str(e))]

    for entry in entries:
        relative = _relative / entry.name
        if exclude is not None and exclude(relative):
            logger.debug(f"Skipping excluded entry: {relative}")
            continue

        src = Path(entry.path)
        dst = destination / entry.name
        if entry.is_dir(follow_symlinks=False):
            if dst.is_symlink():
                # A linked installation lives here; never write through it.
                failures.append(
                    CopyFailure(dst, "destination is a symbolic link; refusing to copy into it")
                )
                continue
            failures.extend(copy_tree(src, dst, exclude=exclude, _relative=relative))
            continue

        try:
            copy_entry(src, dst)
        except OSError as e:
            logger.warning(f"Failed to copy {src} -> {dst}: {e}")
            failures.append(CopyFailure(src, str(e)))

    return failures


def copy_entry(source: Path, destination: Path) -> None:
    """Copy a single file or symlink, replacing whatever sits at `destination`."""
    if destination.is_symlink() or destination.is_file():
        destination.unlink()
    elif destination.is_dir():
        raise IsADirectoryError(f"destination is a directory: {destination}")
    destination.parent.mkdir(parents=True, exist_ok=True)
    if source.is_symlink():
        os.symlink(os.readlink(source), destination)
    else:
        shutil.copy2(source, destination)


def link_tree(source: Path, destination: Path) -> None:
    """Materialize `destination` as a symlink to `source`."""
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.symlink_to(source.resolve(), target_is_directory=True)


def remove_path(path: Path) -> bool:
    """Remove a file, symlink (without following it) or directory tree.

    Returns:
        True if something was removed, False if nothing existed.
    """
    if path.is_symlink() or path.is_file():
        path.unlink()
        return True
    if path.is_dir():
        shutil.rmtree(path)
        return True
    return False


def ensure_executable(path: Path) -> None:
    path.chmod(path.stat().st_mode | 0o755)
