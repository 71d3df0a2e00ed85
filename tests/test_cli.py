"""Smoke tests for the CLI."""

from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from fishbowl import __version__
from fishbowl.analysis import DailyAnalysisResult
from fishbowl.cli import app
from fishbowl.codec import encode_fenced
from fishbowl.errors import GatewayError, GatewayErrorKind
from fishbowl.gateway import ModelGateway

_ENV_VARS = (
    "FISHBOWL_DIR",
    "FISHBOWL_MODEL",
    "FISHBOWL_OLLAMA_URL",
    "FISHBOWL_LOG_LEVEL",
    "FISHBOWL_MAX_RETRIES",
)

DAILY_RESULT = DailyAnalysisResult(
    themes_today=["Career Transition"],
    key_insights=["You rehearse best out loud."],
    focus_areas=["Sleep before Monday."],
)


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def cli(runner: CliRunner, tmp_path, monkeypatch):
    """Invoke the app against an isolated journal directory."""
    for var in _ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    config_path = tmp_path / "fishbowl.toml"
    config_path.write_text("")
    journal = tmp_path / "journal"

    def invoke(*args: str):
        return runner.invoke(app, ["--config", str(config_path), "--dir", str(journal), *args])

    return invoke


class TestCLI:
    """Tests for the CLI entry point."""

    def test_main_help(self, runner: CliRunner) -> None:
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "analyze" in result.output
        assert "themes" in result.output

    def test_version(self, runner: CliRunner) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output


class TestWrite:
    def test_saves_entry(self, cli, tmp_path) -> None:
        result = cli("write", "I need to prep for my interview Monday")
        assert result.exit_code == 0
        assert "Saved entry" in result.output
        files = list((tmp_path / "journal" / "thoughts").glob("*.txt"))
        assert len(files) == 1
        assert "I need to prep for my interview Monday" in files[0].read_text()

    def test_unwritable_journal_fails_cleanly(self, cli, tmp_path) -> None:
        journal = tmp_path / "journal"
        journal.mkdir()
        (journal / "thoughts").write_text("not a directory")

        result = cli("write", "I need to prep for my interview Monday")

        assert result.exit_code == 1
        assert "Error:" in result.output
        assert "write_failed" in result.output
        assert "Traceback" not in result.output

    def test_empty_entry_fails(self, cli) -> None:
        result = cli("write", "   ")
        assert result.exit_code == 1
        assert "Entry is empty" in result.output


class TestAnalyze:
    def test_daily_runs_and_then_is_not_due(self, cli) -> None:
        cli("write", "Practiced answers again today")
        with patch.object(ModelGateway, "execute", return_value=encode_fenced(DAILY_RESULT)):
            result = cli("analyze", "daily")
            assert result.exit_code == 0
            assert "You rehearse best out loud." in result.output
            assert "Daily analysis complete." in result.output

            again = cli("analyze", "daily")
        assert again.exit_code == 0
        assert "not due" in again.output

    def test_json_output(self, cli) -> None:
        cli("write", "Practiced answers again today")
        with patch.object(ModelGateway, "execute", return_value=encode_fenced(DAILY_RESULT)):
            result = cli("analyze", "daily", "--json")
        assert result.exit_code == 0
        assert "```json" in result.output
        assert '"key_insights"' in result.output

    def test_nothing_to_analyze_is_skipped(self, cli) -> None:
        with patch.object(ModelGateway, "execute") as execute:
            result = cli("analyze", "daily", "--force")
        assert result.exit_code == 0
        assert "Skipped" in result.output
        execute.assert_not_called()

    def test_gateway_failure_exits_nonzero(self, cli) -> None:
        cli("write", "Practiced answers again today")
        error = GatewayError(GatewayErrorKind.NETWORK_ERROR, "Connection refused")
        with patch.object(ModelGateway, "execute", side_effect=error):
            result = cli("analyze", "daily")
        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_weekly_not_due_without_content(self, cli) -> None:
        result = cli("analyze", "weekly")
        assert result.exit_code == 0
        assert "Weekly analysis is not due." in result.output


class TestThemes:
    def test_empty(self, cli) -> None:
        result = cli("themes")
        assert result.exit_code == 0
        assert "No active themes yet." in result.output

    def test_add_list_remove(self, cli) -> None:
        added = cli("add-theme", "Gardening", "Growing tomatoes on the balcony")
        assert added.exit_code == 0
        assert "Tracking theme" in added.output

        listed = cli("themes")
        assert "Gardening" in listed.output

        duplicate = cli("add-theme", "gardening", "again")
        assert duplicate.exit_code == 1

        removed = cli("remove-theme", "GARDENING")
        assert removed.exit_code == 0
        assert "No active themes yet." in cli("themes").output

    def test_remove_unknown(self, cli) -> None:
        result = cli("remove-theme", "Nothing")
        assert result.exit_code == 1
        assert "No active theme named" in result.output

    def test_deep_analysis_of_unknown_theme(self, cli) -> None:
        with patch.object(ModelGateway, "execute") as execute:
            result = cli("theme", "Nothing")
        assert result.exit_code == 0
        assert "Skipped" in result.output
        execute.assert_not_called()


class TestReaders:
    def test_suggestions_empty(self, cli) -> None:
        result = cli("suggestions")
        assert result.exit_code == 0
        assert "No suggestions yet." in result.output

    def test_suggestions_after_daily(self, cli) -> None:
        cli("write", "Practiced answers again today")
        with patch.object(ModelGateway, "execute", return_value=encode_fenced(DAILY_RESULT)):
            cli("analyze", "daily")
        result = cli("suggestions")
        assert "You rehearse best out loud." in result.output

    def test_status(self, cli) -> None:
        result = cli("status")
        assert result.exit_code == 0
        assert "Analysis status" in result.output
        assert "Active themes: 0" in result.output
        assert "never" in result.output
