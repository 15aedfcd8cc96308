"""
Smoke Tests for CLI Commands.

These tests verify that CLI commands run without errors and produce output.
They don't validate correctness deeply - just that commands work.

Usage:
    pytest tests/smoke/test_cli_commands.py -v
    pytest tests/smoke/test_cli_commands.py -v -m smoke
"""

import json
import subprocess
import sys
from pathlib import Path

import pytest
from typer.testing import CliRunner

from waypoint import cli
from waypoint.config import Settings

# Mark all tests in this module as smoke tests
pytestmark = pytest.mark.smoke

# Project root
PROJECT_ROOT = Path(__file__).parent.parent.parent

CATALOG = {
    "courses": [{"id": "net", "title": "Networking Fundamentals"}],
    "lessons": [
        {"id": "intro", "course_id": "net", "title": "IP Addressing", "assessment_id": "intro-quiz"},
        {"id": "subnets", "course_id": "net", "title": "Subnetting", "order_index": 1, "prerequisites": ["intro"]},
    ],
    "assessments": [
        {"id": "intro-quiz", "title": "IP Addressing Quiz", "lesson_id": "intro", "questions": [{"id": "q1"}]},
    ],
}


def run_cli_command(command: str, timeout: int = 30) -> tuple[int, str, str]:
    """
    Run a CLI command and return exit code, stdout, stderr.

    Args:
        command: The command to run (after 'python -m waypoint.cli')
        timeout: Maximum time to wait

    Returns:
        Tuple of (exit_code, stdout, stderr)
    """
    full_command = f"{sys.executable} -m waypoint.cli {command}"

    result = subprocess.run(
        full_command,
        shell=True,
        cwd=PROJECT_ROOT,
        capture_output=True,
        text=True,
        timeout=timeout,
    )

    return result.returncode, result.stdout, result.stderr


class TestCLIHelp:
    """Test that help commands work."""

    def test_main_help(self):
        """Main help should display without errors."""
        code, stdout, stderr = run_cli_command("--help")

        assert code == 0, f"Help failed: {stderr}"
        assert "Commands" in stdout

    @pytest.mark.parametrize("group", ["db", "content", "progress", "roadmap"])
    def test_group_help(self, group):
        """Every command group should show its help."""
        code, stdout, stderr = run_cli_command(f"{group} --help")

        assert code == 0, f"{group} help failed: {stderr}"


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def cli_context(tmp_path, monkeypatch):
    """Point every command at a throwaway SQLite file."""
    settings = Settings(_env_file=None, database_url=f"sqlite:///{tmp_path / 'waypoint.db'}")
    monkeypatch.setattr(cli, "_build_context", lambda: cli.CLIContext(settings))
    return settings


@pytest.fixture
def loaded(runner, cli_context, tmp_path):
    """Initialized database with the catalog loaded and one enrolled student."""
    catalog = tmp_path / "catalog.json"
    catalog.write_text(json.dumps(CATALOG), encoding="utf-8")

    assert runner.invoke(cli.app, ["db", "init"]).exit_code == 0
    result = runner.invoke(cli.app, ["content", "load", str(catalog)])
    assert result.exit_code == 0, result.output
    assert runner.invoke(cli.app, ["content", "enroll", "s-1", "net"]).exit_code == 0
    return catalog


class TestCLIFlow:
    """Test commands against a real SQLite database."""

    def test_version(self, runner):
        result = runner.invoke(cli.app, ["version"])

        assert result.exit_code == 0
        assert "waypoint" in result.output

    def test_enroll_unknown_course_fails(self, runner, loaded):
        result = runner.invoke(cli.app, ["content", "enroll", "s-1", "ghost"])

        assert result.exit_code == 1

    def test_access(self, runner, loaded):
        allowed = runner.invoke(cli.app, ["progress", "access", "s-1", "intro"])
        denied = runner.invoke(cli.app, ["progress", "access", "s-1", "subnets"])

        assert allowed.exit_code == 0, allowed.output
        assert denied.exit_code == 2
        assert "Prerequisites not met" in denied.output

    def test_overview(self, runner, loaded):
        result = runner.invoke(cli.app, ["progress", "overview", "s-1", "net"])

        assert result.exit_code == 0, result.output
        assert "0/2 lessons" in result.output

    def test_block_and_unblock(self, runner, loaded):
        blocked = runner.invoke(cli.app, ["progress", "block", "s-1", "subnets", "--reason", "review"])
        unblocked = runner.invoke(cli.app, ["progress", "unblock", "s-1", "subnets"])

        assert blocked.exit_code == 0, blocked.output
        assert unblocked.exit_code == 0, unblocked.output

    def test_roadmap_commands(self, runner, loaded):
        generated = runner.invoke(cli.app, ["roadmap", "generate", "s-1"])
        shown = runner.invoke(cli.app, ["roadmap", "show", "s-1"])
        monitored = runner.invoke(cli.app, ["roadmap", "monitor", "s-1"])
        paused = runner.invoke(cli.app, ["roadmap", "status", "s-1", "paused"])

        assert generated.exit_code == 0, generated.output
        assert "Subnetting" in generated.output
        assert shown.exit_code == 0, shown.output
        assert monitored.exit_code == 0, monitored.output
        assert paused.exit_code == 0, paused.output
        assert "paused" in paused.output

    def test_show_without_roadmap_fails(self, runner, loaded):
        result = runner.invoke(cli.app, ["roadmap", "show", "s-2"])

        assert result.exit_code == 1

    def test_cyclic_catalog_is_rejected(self, runner, cli_context, tmp_path):
        cyclic = {
            "courses": [{"id": "loop", "title": "Loop Course"}],
            "lessons": [
                {"id": "a", "course_id": "loop", "title": "A", "prerequisites": ["b"]},
                {"id": "b", "course_id": "loop", "title": "B", "order_index": 1, "prerequisites": ["a"]},
            ],
        }
        catalog = tmp_path / "cyclic.json"
        catalog.write_text(json.dumps(cyclic), encoding="utf-8")
        assert runner.invoke(cli.app, ["db", "init"]).exit_code == 0

        result = runner.invoke(cli.app, ["content", "load", str(catalog)])
        enrolled = runner.invoke(cli.app, ["content", "enroll", "s-1", "loop"])

        assert result.exit_code == 1
        assert "Prerequisite cycle detected" in result.output
        assert enrolled.exit_code == 1
