"""Shared pytest fixtures for the EMBuilder test suite.

Provides:
- Temporary workspaces and packaged-style skills/templates bundles
- A config factory bound to those paths
- An in-thread capture server on an ephemeral port
"""

from __future__ import annotations

import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Callable

import pytest

# Keep test logs out of the user's home directory; loggers are created at import.
os.environ.setdefault("EMBUILDER_LOG_DIR", tempfile.mkdtemp(prefix="embuilder-test-logs-"))

from embuilder.capture_server import CaptureState, ConfigCaptureServer  # noqa: E402
from embuilder.config import EMBuilderConfig  # noqa: E402


# ---------------------------------------------------------------------------
# Bundles & Workspaces
# ---------------------------------------------------------------------------


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    root = tmp_path / "workspace"
    root.mkdir()
    return root


@pytest.fixture
def skills_bundle(tmp_path: Path) -> Path:
    """A skills tree with two skills and dependency caches at two depths."""
    root = tmp_path / "dist" / "skills"
    (root / "state-view-slice").mkdir(parents=True)
    (root / "state-view-slice" / "SKILL.md").write_text(
        "---\nname: state-view-slice\ndescription: Generate state-view slice\n---\n\n# View\n",
        encoding="utf-8",
    )
    (root / "gen-ui").mkdir()
    (root / "gen-ui" / "SKILL.md").write_text(
        "---\nname: gen-ui\ndescription: >-\n  Set up React UI\n  with shadcn/ui\n---\n",
        encoding="utf-8",
    )
    (root / "gen-ui" / "node_modules" / "left-pad").mkdir(parents=True)
    (root / "gen-ui" / "node_modules" / "left-pad" / "index.js").write_text("//", encoding="utf-8")
    (root / "node_modules").mkdir()
    (root / "node_modules" / "cache.txt").write_text("cache", encoding="utf-8")
    return root


@pytest.fixture
def templates_bundle(tmp_path: Path) -> Path:
    """A templates bundle shaped like the packaged one, plus dependency caches."""
    root = tmp_path / "dist" / "templates"
    root.mkdir(parents=True)
    (root / "README.md").write_text("# Project\n", encoding="utf-8")
    (root / "AGENTS.md").write_text("# Learnings\n", encoding="utf-8")
    script = root / "ralph.sh"
    script.write_text("#!/usr/bin/env bash\necho loop\n", encoding="utf-8")
    script.chmod(0o644)
    (root / ".claude" / "generators" / "skeleton").mkdir(parents=True)
    (root / ".claude" / "generators" / "skeleton" / "index.js").write_text("//", encoding="utf-8")
    (root / ".claude" / "generators" / "skeleton" / "node_modules").mkdir()
    (root / ".claude" / "generators" / "skeleton" / "node_modules" / "dep.js").write_text(
        "//", encoding="utf-8"
    )
    (root / "node_modules").mkdir()
    (root / "node_modules" / "big.bin").write_bytes(b"\0" * 16)
    return root


@pytest.fixture
def make_config(
    workspace: Path, skills_bundle: Path, templates_bundle: Path
) -> Callable[..., EMBuilderConfig]:
    def _make(**overrides: Any) -> EMBuilderConfig:
        values: dict[str, Any] = {
            "workspace_root": workspace,
            "skills_source": skills_bundle,
            "templates_source": templates_bundle,
            "port": 0,
            "receive_timeout": 5.0,
        }
        values.update(overrides)
        return EMBuilderConfig(**values)

    return _make


def snapshot_tree(root: Path) -> dict[str, Any]:
    """Map relative path -> file bytes / 'dir' / 'link:<target>' for equality checks."""
    out: dict[str, Any] = {}
    for path in sorted(root.rglob("*")):
        rel = path.relative_to(root).as_posix()
        if path.is_symlink():
            out[rel] = f"link:{os.readlink(path)}"
        elif path.is_dir():
            out[rel] = "dir"
        else:
            out[rel] = path.read_bytes()
    return out


# ---------------------------------------------------------------------------
# Capture server
# ---------------------------------------------------------------------------


class RunningServer:
    def __init__(self, server: ConfigCaptureServer):
        self.server = server
        self.url = server.url
        self.captured: dict[str, Any] = {}
        self.thread = threading.Thread(target=self._run, daemon=True)

    def _run(self) -> None:
        try:
            self.captured["path"] = self.server.serve_until_captured()
        except Exception as e:  # surfaced through the fixture assertions
            self.captured["error"] = e

    def wait_stopped(self, timeout: float = 5.0) -> bool:
        self.thread.join(timeout)
        return not self.thread.is_alive()


@pytest.fixture
def start_server(make_config) -> Callable[..., RunningServer]:
    started: list[RunningServer] = []

    def _start(**overrides: Any) -> RunningServer:
        running = RunningServer(ConfigCaptureServer(make_config(**overrides)))
        running.thread.start()
        started.append(running)
        return running

    yield _start

    for running in started:
        if running.thread.is_alive():
            import httpx

            running.server.state = CaptureState.TERMINATING
            try:
                httpx.get(f"{running.url}/api/ping", timeout=1.0)
            except httpx.HTTPError:
                pass
            running.wait_stopped()
