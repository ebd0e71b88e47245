"""
Tests for the stageplan CLI.

Output checks are kept loose for the rich-rendered views; the --json
output is parsed and checked exactly.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from stageplan import __version__
from stageplan.cli import app
from stageplan.config import reset_config

FIXTURES = Path(__file__).parent / "fixtures"

runner = CliRunner()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch):
    for key in (
        "STAGEPLAN_DEFAULT_PARALLELISM",
        "STAGEPLAN_MAX_PARALLELISM",
        "STAGEPLAN_TARGET_VOLUME_PER_INSTANCE",
        "STAGEPLAN_TARGET_ROWS_PER_INSTANCE",
        "STAGEPLAN_CONFIG_FILE",
    ):
        monkeypatch.delenv(key, raising=False)
    reset_config()
    yield
    reset_config()


class TestCLIBasics:
    """Top-level options."""

    def test_version_flag(self) -> None:
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_help_lists_commands(self) -> None:
        result = runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        assert "assign" in result.stdout
        assert "stages" in result.stdout


class TestStagesCommand:
    """stageplan stages PLAN"""

    def test_lists_stages(self) -> None:
        result = runner.invoke(app, ["stages", str(FIXTURES / "shuffle_aggregate.json")])

        assert result.exit_code == 0
        assert "Shuffle Stages (2)" in result.stdout
        assert "collect" in result.stdout

    def test_missing_file(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["stages", str(tmp_path / "missing.json")])

        assert result.exit_code == 1
        assert "PlanLoadError" in result.output


class TestAssignCommand:
    """stageplan assign PLAN"""

    def test_json_output(self) -> None:
        result = runner.invoke(
            app,
            ["assign", str(FIXTURES / "shuffle_aggregate.json"), "-p", "8", "--json"],
        )

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["parallelism"] == {"0": 8, "1": 8, "2": 1, "3": 1}
        assert data["roots"] == [3]
        assert len(data["stages"]) == 2

    def test_config_file(self, tmp_path: Path) -> None:
        config = tmp_path / "parallelism.yaml"
        config.write_text("default_parallelism: 8\ntarget_volume_per_instance: 100000000\n")

        result = runner.invoke(
            app,
            ["assign", str(FIXTURES / "shuffle_aggregate.json"), "-c", str(config), "--json"],
        )

        assert result.exit_code == 0
        # 6M rows * 100 bytes / 100MB per instance
        assert json.loads(result.stdout)["parallelism"]["0"] == 6

    def test_environment_parallelism(self) -> None:
        result = runner.invoke(
            app,
            [
                "assign",
                str(FIXTURES / "shuffle_aggregate.json"),
                "--env-parallelism",
                "5",
                "--json",
            ],
        )

        assert result.exit_code == 0
        assert json.loads(result.stdout)["parallelism"]["1"] == 5

    def test_environment_variables(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("STAGEPLAN_DEFAULT_PARALLELISM", "4")

        result = runner.invoke(
            app, ["assign", str(FIXTURES / "shuffle_aggregate.json"), "--json"]
        )

        assert result.exit_code == 0
        assert json.loads(result.stdout)["parallelism"]["0"] == 4

    def test_sink_stripped(self) -> None:
        result = runner.invoke(
            app, ["assign", str(FIXTURES / "fixed_source_forward.json"), "--json"]
        )

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["parallelism"] == {"2": 4, "1": 4, "0": 4}

    def test_table_output(self) -> None:
        result = runner.invoke(
            app, ["assign", str(FIXTURES / "broadcast_join.yaml"), "-p", "3"]
        )

        assert result.exit_code == 0
        assert "Parallelism Assignment" in result.stdout
        assert "join" in result.stdout

    def test_conflict_exits_nonzero(self) -> None:
        result = runner.invoke(app, ["assign", str(FIXTURES / "conflicting_forward.json")])

        assert result.exit_code == 1
        assert "ConstraintConflict" in result.output

    def test_conflict_as_json(self) -> None:
        result = runner.invoke(
            app, ["assign", str(FIXTURES / "conflicting_forward.json"), "--json"]
        )

        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["error_type"] == "ConstraintConflict"
        assert {data["first_value"], data["second_value"]} == {4, 6}

    def test_invalid_override(self) -> None:
        result = runner.invoke(
            app, ["assign", str(FIXTURES / "shuffle_aggregate.json"), "-m", "0"]
        )

        assert result.exit_code == 1
        assert "ConfigurationError" in result.output
