"""Workspace installer: materialize packaged skills/templates into a workspace.

`install` is destructive-replace: any previous skills installation (directory or
link) is removed before the new one is created, so repeated installs converge
on the same tree. Concurrent installer runs against the same workspace are not
supported; nothing here takes a lock.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Optional

from .config import PACKAGE_ROOT, EMBuilderConfig, InstallStrategy
from .install_state import (
    DetectedStrategy,
    InstallRecord,
    clear_install_record,
    detect_strategy_from_filesystem,
    read_install_record,
    write_install_record,
)
from .logging_config import setup_logger
from .tree_sync import (
    CopyFailure,
    copy_tree,
    ensure_executable,
    is_dependency_cache,
    link_tree,
    remove_path,
)

logger = setup_logger("embuilder.installer", "embuilder.log")

# Top-level file of the templates bundle that must exist after copying.
SENTINEL_FILENAME = "README.md"
SCRIPT_SUFFIXES = (".sh",)


class InstallError(RuntimeError):
    """Base class for installer failures that should end the command non-zero."""

    def __init__(self, message: str, failures: Optional[list[CopyFailure]] = None):
        super().__init__(message)
        self.failures: list[CopyFailure] = list(failures or [])


class MissingSourceError(InstallError):
    """A packaged source tree is absent (corrupted or stale distribution)."""

    def __init__(self, kind: str, expected: Path, lookup_root: Path):
        super().__init__(
            f"Packaged {kind} directory not found at {expected} "
            f"(looked up from {lookup_root}). Reinstall the package or point "
            f"the installer at a valid {kind} directory."
        )
        self.kind = kind
        self.expected = expected
        self.lookup_root = lookup_root


class VerificationError(InstallError):
    """Post-copy verification failed; `failures` holds every per-entry copy error."""


@dataclass(frozen=True)
class SkillSummary:
    name: str
    description: str = ""


@dataclass
class InstallResult:
    destination: Path
    strategy: InstallStrategy
    source: Path
    replaced_existing: bool = False
    with_templates: bool = False
    templates_copied: list[str] = field(default_factory=list)
    executables: list[Path] = field(default_factory=list)
    failures: list[CopyFailure] = field(default_factory=list)


@dataclass(frozen=True)
class InstallStatus:
    destination: Path
    installed: bool
    strategy: Optional[DetectedStrategy] = None
    source: Optional[Path] = None
    broken_link: bool = False
    record: Optional[InstallRecord] = None

    def as_dict(self) -> dict:
        return {
            "destination": str(self.destination),
            "installed": self.installed,
            "strategy": self.strategy,
            "source": str(self.source) if self.source else None,
            "broken_link": self.broken_link,
            "installed_at": self.record.installed_at if self.record else None,
            "with_templates": self.record.with_templates if self.record else None,
        }


class WorkspaceInstaller:
    """Install, remove and inspect the skills installation of one workspace."""

    def __init__(self, config: EMBuilderConfig):
        self.config = config

    @property
    def destination(self) -> Path:
        return self.config.skills_destination

    def install(self, with_templates: bool = False) -> InstallResult:
        """Replace any existing skills installation with a fresh one.

        Raises:
            MissingSourceError: packaged skills (or templates, when requested) missing
            VerificationError: skills could not be fully materialized, or the
                templates sentinel is absent or failed to copy
            InstallError: a filesystem operation on the workspace failed
        """
        strategy = self.config.strategy
        source = self.config.skills_source
        self._require_source("skills", source)
        if with_templates:
            self._require_source("templates", self.config.templates_source)

        destination = self.destination
        result = InstallResult(
            destination=destination,
            strategy=strategy,
            source=source,
            with_templates=with_templates,
        )

        try:
            self._install_skills(result)
            write_install_record(
                self.config.install_record_path,
                strategy,
                source=source,
                destination=destination,
                with_templates=with_templates,
            )
            if with_templates:
                self._install_templates(result)
        except OSError as e:
            logger.error(f"Install into {self.config.workspace_root} failed: {e}")
            raise InstallError(f"Cannot install into {self.config.workspace_root}: {e}") from e

        logger.info(
            f"Install complete: strategy={strategy} templates={with_templates} "
            f"failures={len(result.failures)}"
        )
        return result

    def _install_skills(self, result: InstallResult) -> None:
        destination = result.destination
        source = result.source
        destination.parent.mkdir(parents=True, exist_ok=True)

        if destination.exists() or destination.is_symlink():
            logger.info(f"Removing existing installation at {destination}")
            remove_path(destination)
            result.replaced_existing = True
        clear_install_record(self.config.install_record_path)

        if result.strategy == "linked":
            logger.info(f"Linking {destination} -> {source}")
            link_tree(source, destination)
            return

        logger.info(f"Copying {source} -> {destination}")
        skill_failures = copy_tree(source, destination, exclude=is_dependency_cache)
        if skill_failures:
            raise VerificationError(
                f"Skills copy into {destination} was incomplete "
                f"({len(skill_failures)} failed entr{'y' if len(skill_failures) == 1 else 'ies'})",
                skill_failures,
            )

    def _install_templates(self, result: InstallResult) -> None:
        bundle = self.config.templates_source
        target = self.config.workspace_root

        entries = [
            entry.name
            for entry in sorted(bundle.iterdir(), key=lambda p: p.name)
            if not is_dependency_cache(PurePosixPath(entry.name))
        ]
        logger.info(f"Copying templates {bundle} -> {target}")
        result.failures.extend(copy_tree(bundle, target, exclude=is_dependency_cache))
        failed = _failed_entries(result.failures, entries, bundle, target)
        result.templates_copied = [name for name in entries if name not in failed]

        for name in result.templates_copied:
            script = target / name
            if not _is_automation_script(bundle / name) or not script.is_file():
                continue
            try:
                ensure_executable(script)
                result.executables.append(script)
            except OSError as e:
                logger.warning(f"Failed to mark {script} executable: {e}")
                result.failures.append(CopyFailure(script, f"chmod failed: {e}"))

        sentinel = target / SENTINEL_FILENAME
        if SENTINEL_FILENAME in failed or not sentinel.is_file():
            logger.error(
                f"Sentinel {sentinel} missing after template copy "
                f"({len(result.failures)} copy errors)"
            )
            raise VerificationError(
                f"Template copy verification failed: {sentinel} was not copied",
                result.failures,
            )

    def uninstall(self) -> bool:
        """Remove the skills installation.

        Returns:
            True if something was removed, False if nothing was installed.
        """
        destination = self.destination
        removed = remove_path(destination)
        clear_install_record(self.config.install_record_path)
        if removed:
            logger.info(f"Removed installation at {destination}")
        return removed

    def status(self) -> InstallStatus:
        destination = self.destination
        if not (destination.exists() or destination.is_symlink()):
            return InstallStatus(destination=destination, installed=False)

        strategy = detect_strategy_from_filesystem(destination)
        record = read_install_record(self.config.install_record_path)
        broken = False
        if strategy == "linked":
            source = Path(os.readlink(destination))
            broken = not destination.exists()
        elif record and record.source:
            source = Path(record.source)
        else:
            source = self.config.skills_source

        return InstallStatus(
            destination=destination,
            installed=True,
            strategy=strategy,
            source=source,
            broken_link=broken,
            record=record,
        )

    def available_skills(self) -> list[SkillSummary]:
        """List skills in the installed tree (or the packaged source if not installed)."""
        root = self.destination if self.destination.is_dir() else self.config.skills_source
        if not root.is_dir():
            return []
        skills: list[SkillSummary] = []
        for child in sorted(root.iterdir(), key=lambda p: p.name):
            skill_file = child / "SKILL.md"
            if child.is_dir() and skill_file.is_file():
                skills.append(SkillSummary(child.name, read_skill_description(skill_file)))
        return skills

    def _require_source(self, kind: str, path: Path) -> None:
        if not path.is_dir():
            logger.error(f"Missing packaged {kind} directory: {path}")
            raise MissingSourceError(kind, path, PACKAGE_ROOT)


def _is_automation_script(path: Path) -> bool:
    if not path.is_file():
        return False
    return path.suffix in SCRIPT_SUFFIXES or os.access(path, os.X_OK)


def read_skill_description(skill_file: Path) -> str:
    """Pull `description` out of a SKILL.md front matter block (folded values included)."""
    try:
        lines = skill_file.read_text(encoding="utf-8").splitlines()
    except OSError:
        return ""
    if not lines or lines[0].strip() != "---":
        return ""

    for i, line in enumerate(lines[1:], start=1):
        if line.strip() == "---":
            break
        if not line.startswith("description:"):
            continue
        value = line.split(":", 1)[1].strip()
        if value not in (">", ">-", "|", "|-"):
            return value.strip("'\"")
        folded: list[str] = []
        for cont in lines[i + 1 :]:
            if not cont.startswith((" ", "\t")):
                break
            folded.append(cont.strip())
        return " ".join(folded)
    return ""


def _failed_entries(
    failures: list[CopyFailure], entries: list[str], bundle: Path, target: Path
) -> set[str]:
    """Top-level bundle entries with at least one copy failure at or beneath them."""
    names: set[str] = set()
    for failure in failures:
        for root in (bundle, target):
            try:
                relative = failure.path.relative_to(root)
            except ValueError:
                continue
            if relative.parts:
                names.add(relative.parts[0])
            else:
                # The root itself could not be read or created.
                names.update(entries)
            break
    return names
