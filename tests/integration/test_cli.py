"""
Integration tests for the SupaSync command-line interface.
"""

import importlib
import json
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner

from supasync.cli.main import cli
from supasync.core.config import PASSWORD_ENV_VAR, LoggingConfig, ProjectConfiguration
from supasync.core.logging import setup_logging
from supasync.sync.engine import SyncEngine

from conftest import DB_PASSWORD, FakeRunner

# supasync.cli re-exports the main() entry point over the submodule name.
cli_main = importlib.import_module("supasync.cli.main")

pytestmark = pytest.mark.integration


@pytest.fixture(autouse=True)
def quiet_logging() -> None:
    setup_logging(LoggingConfig(console_enabled=False, file_enabled=False))


@pytest.fixture(autouse=True)
def wide_console(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli_main.console, "width", 200)


@pytest.fixture
def config_file(
    sample_config: ProjectConfiguration,
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> Path:
    path = tmp_path / "supasync.json"
    sample_config.save(path)
    monkeypatch.setenv(PASSWORD_ENV_VAR, DB_PASSWORD)
    return path


@pytest.fixture
def fake_engine(mocker: Any, runner: FakeRunner, sleeps: list[float]) -> FakeRunner:
    """Route every engine the CLI builds through the recording runner."""

    def build(config: ProjectConfiguration, session: Any, confirmer: Any, **kwargs: Any) -> SyncEngine:
        runner.dry_run = session.dry_run
        engine = SyncEngine(config, session, confirmer, runner=runner, sleep=sleeps.append, **kwargs)
        engine.monitor.api_probe = lambda url: True
        engine.monitor.port_probe = lambda port: False
        return engine

    mocker.patch.object(cli_main, "SyncEngine", side_effect=build)
    return runner


def invoke(*args: str, input: str | None = None) -> Any:
    return CliRunner().invoke(cli, list(args), obj={}, input=input, catch_exceptions=False)


class TestCliBasics:
    """Tests for help, setup and configuration commands."""

    def test_package_exports_entry_point(self) -> None:
        from supasync.cli import main

        assert main is cli_main.main
        assert cli_main.console.width == 200

    def test_help_lists_commands(self) -> None:
        result = invoke("--help")
        assert result.exit_code == 0
        for verb in ("push", "pull", "status", "backup", "restore", "reset", "config", "validate", "setup"):
            assert verb in result.output

    def test_setup_writes_template(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)

        result = invoke("--config", "supasync.json", "setup")

        assert result.exit_code == 0
        data = json.loads((tmp_path / "supasync.json").read_text(encoding="utf-8"))
        assert data["supabase"]["project_ref"] == "your-supabase-project-ref"
        assert (tmp_path / "backups" / "supabase").is_dir()

        again = invoke("--config", "supasync.json", "setup")
        assert again.exit_code == 0
        assert "already exists" in again.output

    def test_setup_dry_run(self, tmp_path: Path) -> None:
        path = tmp_path / "supasync.json"
        result = invoke("--config", str(path), "--dry-run", "setup")
        assert result.exit_code == 0
        assert not path.exists()

    def test_validate_reports_every_violation(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        invoke("--config", "supasync.json", "setup")

        result = invoke("--config", "supasync.json", "--json", "validate")

        assert result.exit_code == 1
        data = json.loads(result.output)
        assert data["valid"] is False
        assert len(data["violations"]) >= 2

    def test_validate_ok(self, config_file: Path) -> None:
        result = invoke("--config", str(config_file), "validate")
        assert result.exit_code == 0
        assert "Configuration is valid" in result.output

    def test_config_masks_credential(self, config_file: Path) -> None:
        result = invoke("--config", str(config_file), "--json", "config")

        assert result.exit_code == 0
        assert DB_PASSWORD not in result.output
        assert json.loads(result.output)["supabase"]["db_password"] == "**********"

    def test_missing_config_file(self, tmp_path: Path, fake_engine: FakeRunner) -> None:
        result = invoke("--config", str(tmp_path / "nope.json"), "push")
        assert result.exit_code == 1
        assert "not found" in result.output
        assert fake_engine.calls == []

    def test_config_from_environment(self, config_file: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SUPASYNC_CONFIG", str(config_file))
        assert invoke("validate").exit_code == 0


class TestCliOperations:
    """Tests for the sync commands."""

    def test_push(self, config_file: Path, fake_engine: FakeRunner) -> None:
        result = invoke("--config", str(config_file), "push")

        assert result.exit_code == 0, result.output
        assert "Push completed successfully" in result.output
        assert fake_engine.ran("git", "push")

    def test_push_failure_names_step_and_backup(self, config_file: Path, fake_engine: FakeRunner) -> None:
        fake_engine.script("git", "push", returncode=1, stderr="rejected")

        result = invoke("--config", str(config_file), "push")

        assert result.exit_code == 1
        assert "PushVCS" in result.output
        assert "Most recent backup" in result.output
        assert "supabase_backup_" in result.output

    def test_push_json(self, config_file: Path, fake_engine: FakeRunner) -> None:
        result = invoke("--config", str(config_file), "--json", "push")

        assert result.exit_code == 0
        report = json.loads(result.output)
        assert report["command"] == "push"
        assert report["result"]["success"] is True
        assert report["rollback_point"] is not None

    def test_dry_run_push(self, config_file: Path, fake_engine: FakeRunner) -> None:
        result = invoke("--config", str(config_file), "--dry-run", "push")

        assert result.exit_code == 0
        assert "DRY RUN" in result.output
        assert "EXECUTION STEPS" in result.output
        assert not fake_engine.ran("git", "push")

    def test_reset_declined_exits_zero(self, config_file: Path, fake_engine: FakeRunner) -> None:
        result = invoke("--config", str(config_file), "reset", input="n\n")

        assert result.exit_code == 0
        assert "cancelled" in result.output
        assert not fake_engine.ran("supabase", "stop")

    def test_reset_forced(self, config_file: Path, fake_engine: FakeRunner) -> None:
        result = invoke("--config", str(config_file), "--force", "reset")

        assert result.exit_code == 0, result.output
        assert fake_engine.ran("supabase", "stop", "--no-backup")
        assert fake_engine.ran("supabase", "db", "pull")

    def test_restore_missing_file(self, config_file: Path, fake_engine: FakeRunner, tmp_path: Path) -> None:
        result = invoke("--config", str(config_file), "restore", str(tmp_path / "missing.sql"))

        assert result.exit_code == 1
        assert "CheckBackupFile" in result.output
        assert fake_engine.commands("psql") == []

    def test_backup_saves_session_report(
        self,
        config_file: Path,
        fake_engine: FakeRunner,
        sample_config: ProjectConfiguration,
    ) -> None:
        result = invoke("--config", str(config_file), "backup")

        assert result.exit_code == 0, result.output
        reports = list(sample_config.logging.log_directory.glob("session_*.json"))
        assert len(reports) == 1
        assert json.loads(reports[0].read_text(encoding="utf-8"))["command"] == "backup"

    def test_status_json(self, config_file: Path, fake_engine: FakeRunner) -> None:
        result = invoke("--config", str(config_file), "--json", "status")

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["health"]["healthy"] is True
        assert data["backups"] == []

    def test_status_missing_tool(self, config_file: Path, fake_engine: FakeRunner) -> None:
        fake_engine.missing_tools.add("docker")

        result = invoke("--config", str(config_file), "status")

        assert result.exit_code == 1
        assert "docker" in result.output
