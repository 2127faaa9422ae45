"""End-to-end tests for the `embuilder` CLI using the packaged payload."""

from __future__ import annotations

import json
import os
import stat
from pathlib import Path

import pytest
from typer.testing import CliRunner

from embuilder import __version__
from embuilder.cli import app
from embuilder.commands.ping import ping_server
from embuilder.config import EMBuilderConfig, packaged_skills_dir

pytestmark = pytest.mark.unit

runner = CliRunner()


@pytest.fixture
def cli_workspace(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("EMBUILDER_WORKSPACE", str(tmp_path))
    monkeypatch.delenv("EMBUILDER_INSTALL_STRATEGY", raising=False)
    return tmp_path


def _status(workspace: Path) -> dict:
    result = runner.invoke(app, ["status", "--json"])
    assert result.exit_code == 0, result.output
    return json.loads(result.output)


def test_version():
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_install_status_uninstall_cycle(cli_workspace: Path):
    result = runner.invoke(app, ["install"])
    assert result.exit_code == 0, result.output
    assert "Installation complete" in result.output
    assert "/fetch-config" in result.output
    assert "--with-templates" in result.output

    skills = cli_workspace / ".claude" / "skills"
    assert (skills / "fetch-config" / "SKILL.md").is_file()

    status = _status(cli_workspace)
    assert status["installed"] is True
    assert status["strategy"] == "copied"
    assert status["destination"] == str(skills)

    result = runner.invoke(app, ["uninstall"])
    assert result.exit_code == 0
    assert "uninstalled" in result.output
    assert not os.path.lexists(skills)
    assert _status(cli_workspace)["installed"] is False


def test_uninstall_when_not_installed(cli_workspace: Path):
    result = runner.invoke(app, ["uninstall"])

    assert result.exit_code == 0
    assert "not currently installed" in result.output


def test_human_status_when_not_installed(cli_workspace: Path):
    result = runner.invoke(app, ["status"])

    assert result.exit_code == 0
    assert "Installed: ❌ No" in result.output


def test_install_linked_strategy(cli_workspace: Path):
    result = runner.invoke(app, ["install", "--strategy", "linked"])

    assert result.exit_code == 0, result.output
    skills = cli_workspace / ".claude" / "skills"
    assert skills.is_symlink()
    assert skills.resolve() == packaged_skills_dir().resolve()
    assert _status(cli_workspace)["strategy"] == "linked"


def test_install_strategy_from_environment(cli_workspace: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("EMBUILDER_INSTALL_STRATEGY", "linked")

    result = runner.invoke(app, ["install"])

    assert result.exit_code == 0, result.output
    assert (cli_workspace / ".claude" / "skills").is_symlink()


def test_install_with_templates(cli_workspace: Path):
    result = runner.invoke(app, ["install", "--with-templates"])

    assert result.exit_code == 0, result.output
    assert (cli_workspace / "README.md").is_file()
    assert (cli_workspace / "AGENTS.md").is_file()
    script = cli_workspace / "ralph.sh"
    assert script.stat().st_mode & stat.S_IXUSR
    assert (cli_workspace / ".claude" / "generators" / "README.md").is_file()
    assert _status(cli_workspace)["with_templates"] is True


def test_install_twice_is_idempotent(cli_workspace: Path):
    assert runner.invoke(app, ["install"]).exit_code == 0
    result = runner.invoke(app, ["install"])

    assert result.exit_code == 0, result.output
    assert "Replaced existing installation" in result.output
    assert (cli_workspace / ".claude" / "skills" / "gen-ui" / "SKILL.md").is_file()


def test_invalid_strategy_exits_2(cli_workspace: Path):
    result = runner.invoke(app, ["install", "--strategy", "hardlink"])

    assert result.exit_code == 2
    assert not (cli_workspace / ".claude").exists()


def test_install_fails_when_templates_verification_fails(
    cli_workspace: Path, monkeypatch: pytest.MonkeyPatch, tmp_path: Path
):
    bundle = tmp_path / "bundle"
    bundle.mkdir()
    (bundle / "AGENTS.md").write_text("x", encoding="utf-8")
    config = EMBuilderConfig(workspace_root=cli_workspace, templates_source=bundle)
    monkeypatch.setattr(
        "embuilder.commands.install.resolve_config", lambda **overrides: config
    )

    result = runner.invoke(app, ["install", "--with-templates"])

    assert result.exit_code == 1
    assert "Installation failed" in result.output


def test_install_reports_workspace_errors_without_traceback(cli_workspace: Path):
    (cli_workspace / ".claude").write_text("", encoding="utf-8")

    result = runner.invoke(app, ["install"])

    assert result.exit_code == 1
    assert isinstance(result.exception, SystemExit)
    assert "Installation failed" in result.output
    assert "Traceback" not in result.output


def test_ping_reports_missing_server():
    result = runner.invoke(app, ["ping", "--url", "http://127.0.0.1:9", "--timeout", "0.5"])

    assert result.exit_code == 1


@pytest.mark.integration
def test_ping_server_against_running_server(start_server):
    running = start_server()

    assert ping_server(running.url) is True
    assert running.thread.is_alive()
