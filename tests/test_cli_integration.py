import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from traycer.cli import cli
from traycer.config import PROVIDER_ENV_VAR, load_config


@pytest.fixture(autouse=True)
def _isolate_provider_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(PROVIDER_ENV_VAR, raising=False)


def test_init_and_backend_commands_write_config(tmp_path: Path) -> None:
    runner = CliRunner()
    with runner.isolated_filesystem(temp_dir=tmp_path):
        init_result = runner.invoke(cli, ["init", "--provider", "codex"])
        assert init_result.exit_code == 0, init_result.output
        assert "Provider: Codex CLI" in init_result.output

        config_path = Path("traycer.toml")
        assert load_config(config_path).backend.provider == "codex"

        backend_result = runner.invoke(cli, ["backend", "claude"])
        assert backend_result.exit_code == 0, backend_result.output
        assert "Primary provider set to claude" in backend_result.output
        assert load_config(config_path).backend.provider == "claude"


def test_providers_command_lists_every_provider() -> None:
    result = CliRunner().invoke(cli, ["providers"])

    assert result.exit_code == 0
    for label in ("Local generator", "Claude Code CLI", "Codex CLI", "Codex SDK"):
        assert label in result.output


def test_plan_command_prints_local_plan(tmp_path: Path) -> None:
    runner = CliRunner()
    with runner.isolated_filesystem(temp_dir=tmp_path):
        result = runner.invoke(
            cli,
            ["plan", "Add logging", "--focus", "observability", "--tone", "succinct"],
        )

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["prompt"] == "Add logging"
    assert payload["provider"] == "local"
    assert len(payload["plan"]) == 4
    assert "observability" in payload["plan"][0]["detail"]


def test_run_command_executes_full_pipeline(tmp_path: Path) -> None:
    runner = CliRunner()
    with runner.isolated_filesystem(temp_dir=tmp_path):
        result = runner.invoke(
            cli,
            ["run", "Add logging", "--strictness", "paranoid", "--provider", "local"],
        )

    assert result.exit_code == 0, result.output
    snapshot = json.loads(result.stdout)
    task = snapshot["task"]
    assert task["prompt"] == "Add logging"
    assert len(task["plan"]) == 4
    assert len(task["changes"]) == 3
    assert {change["status"] for change in task["changes"]} == {"ready"}
    assert {review["severity"] for review in task["reviews"]} == {"error"}
    assert snapshot["status"]["review"]["status"] == "success"
    assert snapshot["telemetry"]["changes"]["ratio"] == 1.0


def test_run_without_mark_ready_reports_warnings(tmp_path: Path) -> None:
    runner = CliRunner()
    with runner.isolated_filesystem(temp_dir=tmp_path):
        result = runner.invoke(cli, ["run", "Add logging", "--no-mark-ready"])

    assert result.exit_code == 0, result.output
    snapshot = json.loads(result.stdout)
    severities = [review["severity"] for review in snapshot["task"]["reviews"]]
    assert severities.count("warning") == 3
    assert severities.count("info") == 3


def test_invalid_config_is_reported(tmp_path: Path) -> None:
    runner = CliRunner()
    with runner.isolated_filesystem(temp_dir=tmp_path):
        Path("traycer.toml").write_text('[backend]\nprovider = "gemini"\n', encoding="utf-8")
        result = runner.invoke(cli, ["plan", "Add logging"])

    assert result.exit_code != 0
    assert "Invalid configuration" in result.output


@pytest.mark.parametrize("args", [["backend", "claude"], ["init", "--provider", "codex"]])
def test_config_commands_report_invalid_config(tmp_path: Path, args: list[str]) -> None:
    runner = CliRunner()
    with runner.isolated_filesystem(temp_dir=tmp_path):
        config_path = Path("traycer.toml")
        config_path.write_text('[backend]\nprovider = "gemini"\n', encoding="utf-8")
        result = runner.invoke(cli, args)
        untouched = config_path.read_text(encoding="utf-8")

    assert result.exit_code == 1
    assert not isinstance(result.exception, ValueError)
    assert "Invalid configuration" in result.output
    assert "gemini" in result.output
    assert untouched == '[backend]\nprovider = "gemini"\n'


def test_backend_command_reports_unparsable_toml(tmp_path: Path) -> None:
    runner = CliRunner()
    with runner.isolated_filesystem(temp_dir=tmp_path):
        Path("traycer.toml").write_text("[backend\nprovider = ", encoding="utf-8")
        result = runner.invoke(cli, ["backend", "codex"])

    assert result.exit_code == 1
    assert "Invalid configuration" in result.output
