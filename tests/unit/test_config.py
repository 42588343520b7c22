"""
Tests for supasync.core.config module.
"""

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from supasync.core.config import (
    PASSWORD_ENV_VAR,
    PLACEHOLDER_PASSWORD,
    BackupConfig,
    ConflictConfig,
    LoggingConfig,
    ProjectConfiguration,
    example_config,
    load_config,
)
from supasync.core.errors import ConfigError

from conftest import DB_PASSWORD, PROJECT_REF, make_config


class TestLoggingConfig:
    """Tests for LoggingConfig."""

    def test_default_values(self) -> None:
        config = LoggingConfig()
        assert config.level == "INFO"
        assert config.file_enabled is True
        assert config.console_enabled is True
        assert config.json_format is False
        assert config.log_file.name == "supasync.log"

    def test_path_expansion(self) -> None:
        config = LoggingConfig(log_file="~/logs/supasync.log")
        assert "~" not in str(config.log_file)
        assert config.log_directory == config.log_file.parent

    def test_invalid_level(self) -> None:
        with pytest.raises(ValidationError):
            LoggingConfig(level="LOUD")


class TestBackupConfig:
    """Tests for BackupConfig."""

    def test_default_values(self) -> None:
        config = BackupConfig()
        assert config.retention_days == 30
        assert config.strategy == "full"
        assert config.directory.is_absolute()

    def test_unknown_strategy_rejected(self) -> None:
        with pytest.raises(ValidationError):
            BackupConfig(strategy="differential")

    def test_negative_retention_rejected(self) -> None:
        with pytest.raises(ValidationError):
            BackupConfig(retention_days=-1)


class TestConflictConfig:
    """Tests for ConflictConfig."""

    def test_default_rules_keep_declared_order(self) -> None:
        config = ConflictConfig()
        patterns = [rule.pattern for rule in config.rules]
        assert patterns[0] == "supabase/config.toml"
        assert "supabase/migrations/*" in patterns

    def test_mapping_becomes_ordered_rules(self) -> None:
        config = ConflictConfig(rules={"docs/*": "manual", "*.md": "remote"})
        assert [(r.pattern, r.policy) for r in config.rules] == [
            ("docs/*", "manual"),
            ("*.md", "remote"),
        ]

    def test_smart_defaults_to_local(self) -> None:
        assert ConflictConfig(strategy="smart").default_policy == "local"
        assert ConflictConfig(strategy="remote").default_policy == "remote"

    def test_unknown_policy_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ConflictConfig(rules={"*.md": "theirs"})


class TestProjectConfiguration:
    """Tests for ProjectConfiguration."""

    def test_immutable(self, sample_config: ProjectConfiguration) -> None:
        with pytest.raises(ValidationError):
            sample_config.name = "Other"  # type: ignore[misc]

    def test_credential(self, sample_config: ProjectConfiguration) -> None:
        assert sample_config.credential == DB_PASSWORD
        assert DB_PASSWORD not in repr(sample_config)

    def test_missing_credential(self) -> None:
        assert ProjectConfiguration().credential is None

    def test_backend_dir(self, sample_config: ProjectConfiguration, project_dir: Path) -> None:
        assert sample_config.backend_dir == project_dir / "supabase"

    def test_valid_project_has_no_violations(self, sample_config: ProjectConfiguration) -> None:
        assert sample_config.validate_project() == []

    def test_violations_are_aggregated(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        violations = example_config().validate_project()
        assert any("git.remote_url" in v for v in violations)
        assert any("supabase.project_ref" in v for v in violations)
        assert any("supabase.project_dir" in v for v in violations)

    def test_placeholder_password_is_violation(self, project_dir: Path) -> None:
        config = make_config(project_dir, supabase={"db_password": PLACEHOLDER_PASSWORD})
        assert any("placeholder" in v for v in config.validate_project())

    def test_missing_working_dir(self, tmp_path: Path) -> None:
        config = make_config(tmp_path / "nope")
        assert any("git.working_dir" in v for v in config.validate_project())


class TestLoadConfig:
    """Tests for loading configuration files."""

    @pytest.fixture(autouse=True)
    def clear_password_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv(PASSWORD_ENV_VAR, raising=False)

    def write(self, path: Path, data: object) -> Path:
        path.write_text(json.dumps(data), encoding="utf-8")
        return path

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="not found"):
            ProjectConfiguration.load(tmp_path / "missing.json")

    def test_invalid_json(self, tmp_path: Path) -> None:
        path = tmp_path / "supasync.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigError, match="Could not read"):
            ProjectConfiguration.load(path)

    def test_not_an_object(self, tmp_path: Path) -> None:
        path = self.write(tmp_path / "supasync.json", ["a", "b"])
        with pytest.raises(ConfigError, match="JSON object"):
            ProjectConfiguration.load(path)

    def test_schema_errors_listed(self, tmp_path: Path) -> None:
        path = self.write(
            tmp_path / "supasync.json",
            {"backup": {"strategy": "weekly"}, "migration_strategy": "yolo"},
        )
        with pytest.raises(ConfigError) as exc_info:
            ProjectConfiguration.load(path)
        violations = exc_info.value.violations
        assert any(v.startswith("backup.strategy") for v in violations)
        assert any(v.startswith("migration_strategy") for v in violations)

    def test_env_password_overrides_file(
        self,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        path = self.write(
            tmp_path / "supasync.json",
            {"supabase": {"project_ref": PROJECT_REF, "db_password": "from-file"}},
        )
        assert ProjectConfiguration.load(path).credential == "from-file"

        monkeypatch.setenv(PASSWORD_ENV_VAR, "from-env")
        assert ProjectConfiguration.load(path).credential == "from-env"

    def test_save_never_writes_credential(
        self,
        sample_config: ProjectConfiguration,
        tmp_path: Path,
    ) -> None:
        path = tmp_path / "out" / "supasync.json"
        sample_config.save(path)

        text = path.read_text(encoding="utf-8")
        assert DB_PASSWORD not in text
        assert json.loads(text)["supabase"]["db_password"] == PLACEHOLDER_PASSWORD

    def test_round_trip_preserves_settings(
        self,
        sample_config: ProjectConfiguration,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        path = tmp_path / "supasync.json"
        sample_config.save(path)
        monkeypatch.setenv(PASSWORD_ENV_VAR, DB_PASSWORD)

        loaded = load_config(path)
        assert loaded.supabase.project_ref == PROJECT_REF
        assert loaded.git.working_dir == sample_config.git.working_dir
        assert loaded.conflicts.rules == sample_config.conflicts.rules

    def test_load_config_rejects_violations(self, tmp_path: Path) -> None:
        path = self.write(tmp_path / "supasync.json", {"name": "Placeholder"})
        with pytest.raises(ConfigError) as exc_info:
            load_config(path)
        assert len(exc_info.value.violations) >= 2
