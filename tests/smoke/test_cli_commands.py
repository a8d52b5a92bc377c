"""
Smoke Tests for CLI Commands.

These tests verify that CLI commands run without errors and produce output.
They don't validate correctness deeply - just that commands work.

Usage:
    pytest tests/smoke/test_cli_commands.py -v
    pytest tests/smoke/test_cli_commands.py -v -m smoke
"""

import json

import pytest
from loguru import logger
from typer.testing import CliRunner

from config import get_settings
from src.cli.main import app
from src.db.database import reset_engine

# Mark all tests in this module as smoke tests
pytestmark = pytest.mark.smoke

runner = CliRunner()


@pytest.fixture(autouse=True)
def cli_env(tmp_path, monkeypatch):
    """Point the CLI at a private SQLite file and keep logging quiet."""
    monkeypatch.setenv("V2E_DATABASE_URL", f"sqlite:///{tmp_path / 'cli.db'}")
    monkeypatch.setenv("V2E_LOG_FILE", "")
    monkeypatch.setenv("V2E_LOG_LEVEL", "ERROR")
    get_settings.cache_clear()
    reset_engine()
    yield
    logger.remove()
    reset_engine()
    get_settings.cache_clear()


def run(*args):
    result = runner.invoke(app, list(args))
    return result.exit_code, result.output


@pytest.fixture
def initialized():
    code, output = run("db", "init")
    assert code == 0, output


@pytest.fixture
def bookmark(initialized):
    code, output = run(
        "bookmark", "add", "g-1", "CVE", "CVE-2024-0001",
        "--title", "Heap overflow", "--description", "Bounds check missing",
    )
    assert code == 0, output
    return 1


class TestCLIHelp:
    """Test that help commands work."""

    def test_main_help(self):
        code, output = run("--help")
        assert code == 0
        assert "v2e-notes" in output
        for group in ("db", "bookmark", "card", "note", "xref"):
            assert group in output

    @pytest.mark.parametrize("group", ["db", "bookmark", "card", "note", "xref"])
    def test_group_help(self, group):
        code, output = run(group, "--help")
        assert code == 0
        assert "Commands" in output


class TestDatabaseCommands:
    def test_init(self):
        code, output = run("db", "init")
        assert code == 0
        assert "Database initialized" in output

    def test_migrate(self):
        code, output = run("db", "migrate")
        assert code == 0
        assert "Migration Results" in output
        assert "0 rows updated" in output


class TestBookmarkCommands:
    def test_add_and_show(self, bookmark):
        code, output = run("bookmark", "show", "1")
        assert code == 0
        assert "Heap overflow" in output
        assert "to-review" in output
        assert "Card 1: new v1" in output

    def test_add_twice(self, bookmark):
        code, output = run("bookmark", "add", "g-1", "CVE", "CVE-2024-0001", "--title", "Again")
        assert code == 0
        assert "already exists" in output

    def test_list(self, bookmark):
        code, output = run("bookmark", "list", "--state", "to-review")
        assert code == 0
        assert "CVE-2024-0001" in output

    def test_state_history_and_revert(self, bookmark):
        assert run("bookmark", "state", "1", "learning")[0] == 0

        code, output = run("bookmark", "history", "1")
        assert code == 0
        assert "learning_state_changed" in output

        code, output = run("bookmark", "revert", "1")
        assert code == 0
        assert "reverted to to-review" in output

    def test_stats(self, bookmark):
        code, output = run("bookmark", "stats", "1", "--views", "2")
        assert code == 0
        assert "view_count" in output

    def test_delete(self, bookmark):
        assert run("bookmark", "delete", "1")[0] == 0
        code, output = run("bookmark", "show", "1")
        assert code == 1
        assert "not-found" in output

    def test_invalid_state(self, bookmark):
        code, output = run("bookmark", "state", "1", "forgotten")
        assert code == 1
        assert "parse-error" in output


class TestCardCommands:
    def test_review(self, bookmark):
        code, output = run("card", "review", "1", "good", "--version", "1")
        assert code == 0
        assert "learning" in output
        assert "v2" in output

    def test_stale_review(self, bookmark):
        run("card", "review", "1", "good")
        code, output = run("card", "review", "1", "good", "--version", "1")
        assert code == 1
        assert "concurrent-update" in output

    def test_invalid_status_transition(self, bookmark):
        code, output = run("card", "status", "1", "mastered")
        assert code == 1
        assert "invalid-transition" in output

    def test_list_and_due(self, bookmark):
        code, output = run("card", "list", "--bookmark", "1")
        assert code == 0
        assert "Memory cards (1 of 1)" in output

        assert run("bookmark", "state", "1", "learning")[0] == 0
        code, output = run("card", "due")
        assert code == 0
        assert "Due cards (1)" in output


class TestNoteAndXrefCommands:
    def test_note_round_trip(self, bookmark):
        code, output = run("note", "add", "1", "Patch to 2.4.1", "--author", "alice")
        assert code == 0
        assert "v2e::note::1" in output

        code, output = run("note", "list", "1")
        assert code == 0
        assert "Patch to 2.4.1" in output

        assert run("note", "delete", "1")[0] == 0

    def test_note_with_invalid_json(self, bookmark):
        body = json.dumps({"type": "doc", "content": [{"type": "iframe"}]})
        code, output = run("note", "add", "1", body, "--json")
        assert code == 1
        assert "invalid-argument" in output

    def test_xref(self, initialized):
        code, output = run(
            "xref", "add", "v2e::nvd::cve::CVE-2024-0001", "v2e::mitre::cwe::CWE-122",
            "--source-type", "CVE", "--target-type", "CWE", "--type", "caused-by",
        )
        assert code == 0

        code, output = run("xref", "list", "v2e::mitre::cwe::CWE-122", "--incoming")
        assert code == 0
        assert "Cross references (1)" in output
