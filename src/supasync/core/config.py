"""
SupaSync configuration management.

Provides the immutable project configuration with validation using Pydantic.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_validator

from supasync.core.errors import ConfigError

DEFAULT_CONFIG_FILE = "supasync.json"
PASSWORD_ENV_VAR = "SUPABASE_DB_PASSWORD"

PLACEHOLDER_REMOTE_URL = "https://github.com/your-username/your-repo.git"
PLACEHOLDER_PROJECT_REF = "your-supabase-project-ref"
PLACEHOLDER_PASSWORD = "your-supabase-password"

ConflictPolicy = Literal["local", "remote", "manual"]


def _expand(v: str | Path) -> Path:
    return Path(v).expanduser().resolve()


class FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", validate_default=True)


class LoggingConfig(FrozenModel):
    """Configuration for structured logging."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    file_enabled: bool = True
    console_enabled: bool = True
    json_format: bool = False
    log_file: Path = Path("logs/supasync.log")

    @field_validator("log_file", mode="before")
    @classmethod
    def expand_path(cls, v: str | Path) -> Path:
        return _expand(v)

    @property
    def log_directory(self) -> Path:
        return self.log_file.parent


class GitConfig(FrozenModel):
    """Version control settings."""

    remote_url: str = PLACEHOLDER_REMOTE_URL
    remote_name: str = "origin"
    branch: str = "main"
    working_dir: Path = Path(".")

    @field_validator("working_dir", mode="before")
    @classmethod
    def expand_path(cls, v: str | Path) -> Path:
        return _expand(v)


class SupabaseConfig(FrozenModel):
    """Backend project settings."""

    project_ref: str = PLACEHOLDER_PROJECT_REF
    db_password: SecretStr | None = None
    project_dir: Path = Path("supabase")


class BackupConfig(FrozenModel):
    """Configuration for backup operations."""

    directory: Path = Path("backups/supabase")
    retention_days: int = Field(default=30, ge=0)
    strategy: Literal["full", "incremental", "schema-only", "data-only"] = "full"
    git_log_entries: int = Field(default=10, ge=1)

    @field_validator("directory", mode="before")
    @classmethod
    def expand_path(cls, v: str | Path) -> Path:
        return _expand(v)


class DockerConfig(FrozenModel):
    """Container runtime settings."""

    auto_start: bool = True
    cleanup_on_failure: bool = True


class PortConfig(FrozenModel):
    """Local backend service ports (Supabase defaults)."""

    api: int = Field(default=54321, gt=0, lt=65536)
    db: int = Field(default=54322, gt=0, lt=65536)
    studio: int = Field(default=54323, gt=0, lt=65536)
    inbucket: int = Field(default=54324, gt=0, lt=65536)

    def as_dict(self) -> dict[str, int]:
        return {"API": self.api, "Database": self.db, "Studio": self.studio, "Inbucket": self.inbucket}


class HealthConfig(FrozenModel):
    """Health check and readiness polling settings."""

    timeout_seconds: float = Field(default=30, gt=0)
    retries: int = Field(default=3, ge=1)
    poll_interval_seconds: float = Field(default=2.0, ge=0)
    max_attempts: int = Field(default=30, ge=1)
    port_recheck_delay_seconds: float = Field(default=2.0, ge=0)
    settle_delay_seconds: float = Field(default=3.0, ge=0)


class ConflictRule(FrozenModel):
    """Glob pattern mapped to a resolution policy."""

    pattern: str
    policy: ConflictPolicy


DEFAULT_CONFLICT_RULES: tuple[ConflictRule, ...] = (
    ConflictRule(pattern="supabase/config.toml", policy="local"),
    ConflictRule(pattern=".env", policy="local"),
    ConflictRule(pattern="supabase/migrations/*", policy="remote"),
    ConflictRule(pattern="package.json", policy="local"),
    ConflictRule(pattern="package-lock.json", policy="local"),
    ConflictRule(pattern="yarn.lock", policy="local"),
    ConflictRule(pattern="*.md", policy="local"),
)


class ConflictConfig(FrozenModel):
    """Merge conflict resolution settings."""

    strategy: Literal["smart", "local", "remote", "manual"] = "smart"
    rules: tuple[ConflictRule, ...] = DEFAULT_CONFLICT_RULES

    @field_validator("rules", mode="before")
    @classmethod
    def accept_mapping(cls, v: Any) -> Any:
        # A JSON object keeps declaration order, so it reads as an ordered rule list.
        if isinstance(v, dict):
            return [{"pattern": pattern, "policy": policy} for pattern, policy in v.items()]
        return v

    @property
    def default_policy(self) -> ConflictPolicy:
        # "smart" is a label for the static rule set; unmatched paths keep the local side.
        if self.strategy == "smart":
            return "local"
        return self.strategy


class ProjectConfiguration(FrozenModel):
    """Main SupaSync configuration for one project."""

    name: str = "Your Project Name"
    description: str = ""
    git: GitConfig = Field(default_factory=GitConfig)
    supabase: SupabaseConfig = Field(default_factory=SupabaseConfig)
    backup: BackupConfig = Field(default_factory=BackupConfig)
    docker: DockerConfig = Field(default_factory=DockerConfig)
    ports: PortConfig = Field(default_factory=PortConfig)
    health: HealthConfig = Field(default_factory=HealthConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    conflicts: ConflictConfig = Field(default_factory=ConflictConfig)
    migration_strategy: Literal["safe", "force", "interactive"] = "safe"
    data_sync_strategy: Literal[
        "bidirectional", "local-to-remote", "remote-to-local", "none"
    ] = "bidirectional"

    @property
    def working_dir(self) -> Path:
        return self.git.working_dir

    @property
    def backend_dir(self) -> Path:
        return self.git.working_dir / self.supabase.project_dir

    @property
    def credential(self) -> str | None:
        if self.supabase.db_password is None:
            return None
        return self.supabase.db_password.get_secret_value() or None

    @classmethod
    def load(cls, config_path: Path | None = None) -> ProjectConfiguration:
        """Parse a configuration file without semantic validation."""
        if config_path is None:
            config_path = Path(DEFAULT_CONFIG_FILE)

        if not config_path.exists():
            raise ConfigError(f"Configuration file not found: {config_path}")

        try:
            with open(config_path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Could not read configuration file {config_path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Configuration file {config_path} must contain a JSON object")

        env_password = os.environ.get(PASSWORD_ENV_VAR)
        if env_password:
            data.setdefault("supabase", {})["db_password"] = env_password

        try:
            return cls.model_validate(data)
        except ValidationError as e:
            violations = [
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            ]
            raise ConfigError(f"Invalid configuration in {config_path}", violations) from e

    def save(self, config_path: Path | None = None) -> None:
        """Save configuration to file."""
        if config_path is None:
            config_path = Path(DEFAULT_CONFIG_FILE)

        data = self.model_dump(mode="json")
        data["supabase"]["db_password"] = PLACEHOLDER_PASSWORD
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)

    def validate_project(self) -> list[str]:
        """Return every configuration violation instead of stopping at the first."""
        violations: list[str] = []

        if not self.git.remote_url or self.git.remote_url == PLACEHOLDER_REMOTE_URL:
            violations.append("git.remote_url must be set to your actual Git repository URL")

        if not self.supabase.project_ref or self.supabase.project_ref == PLACEHOLDER_PROJECT_REF:
            violations.append(
                "supabase.project_ref must be set to your actual Supabase project reference"
            )

        if self.credential == PLACEHOLDER_PASSWORD:
            violations.append(
                f"supabase.db_password is still the placeholder; set {PASSWORD_ENV_VAR}"
            )

        if not self.working_dir.is_dir():
            violations.append(f"git.working_dir '{self.working_dir}' does not exist")
        elif not self.backend_dir.is_dir():
            violations.append(f"supabase.project_dir '{self.backend_dir}' does not exist")

        return violations

    def ensure_directories(self) -> None:
        """Create backup and log directories."""
        self.backup.directory.mkdir(parents=True, exist_ok=True)
        self.logging.log_directory.mkdir(parents=True, exist_ok=True)


def example_config() -> ProjectConfiguration:
    """Get the placeholder configuration written by ``setup``."""
    return ProjectConfiguration()


def load_config(config_path: Path | None = None) -> ProjectConfiguration:
    """Load and validate configuration, failing with every violation at once."""
    config = ProjectConfiguration.load(config_path)
    violations = config.validate_project()
    if violations:
        raise ConfigError("Configuration validation failed", violations)
    return config
