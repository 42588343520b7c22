"""
SupaSync sync engine.

Sequences Git, schema, data, backup and health operations into the push,
pull and reset workflows. Each workflow is fail-stop after the failing step
and reports exactly which steps completed; nothing is rolled back.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from supasync.backup.manager import BackupKind, BackupManager, BackupRecord, BackupSource
from supasync.core.errors import (
    BackupFileNotFound,
    BackupUnavailable,
    CommandFailed,
    ConsentRefused,
    OperationCancelled,
    RestoreTargetMissing,
    RuntimeUnavailable,
    SyncError,
)
from supasync.core.logging import get_logger
from supasync.core.pipeline import Pipeline, PipelineResult, Step, StepResult, StepSkipped
from supasync.core.retry import RetryPolicy, Sleeper
from supasync.core.safety import (
    ExecutionPlan,
    PreflightChecker,
    create_standard_preflight_checker,
)
from supasync.health.monitor import HealthMonitor, ServiceHealthStatus
from supasync.sync.conflicts import ConflictResolver
from supasync.tools import REQUIRED_TOOLS
from supasync.tools.base import CommandRunner
from supasync.tools.docker import DockerClient
from supasync.tools.git import GitClient
from supasync.tools.postgres import PostgresClient
from supasync.tools.supabase import SupabaseCli

if TYPE_CHECKING:
    from collections.abc import Callable

    from supasync.core.config import ProjectConfiguration
    from supasync.core.safety import Confirmer
    from supasync.core.session import SyncSession

logger = get_logger(__name__)

PUSH_DATA_STRATEGIES = ("bidirectional", "local-to-remote")
PULL_DATA_STRATEGIES = ("bidirectional", "remote-to-local")
STASH_MESSAGE = "Auto-stash before pull"


@dataclass
class StatusReport:
    """Read-only snapshot of Git, backend and backup state."""

    git_status: str = ""
    backend_status: str = ""
    migrations: str = ""
    database_size: str | None = None
    table_rows: dict[str, int | None] = field(default_factory=dict)
    health: ServiceHealthStatus | None = None
    backups: list[BackupRecord] = field(default_factory=list)


class SyncEngine:
    """Runs sync workflows for one project and one session."""

    def __init__(
        self,
        config: ProjectConfiguration,
        session: SyncSession,
        confirmer: Confirmer,
        runner: CommandRunner | None = None,
        sleep: Sleeper = time.sleep,
        monitor: HealthMonitor | None = None,
        preflight: PreflightChecker | None = None,
        on_step: Callable[[StepResult], None] | None = None,
    ) -> None:
        self.config = config
        self.session = session
        self.confirmer = confirmer
        self.sleep = sleep
        self.on_step = on_step
        self.runner = runner or CommandRunner(dry_run=session.dry_run, secrets=[config.credential])

        self.git = GitClient(self.runner, config.working_dir, config.git.remote_name)
        self.supabase = SupabaseCli(
            self.runner,
            config.backend_dir,
            config.supabase.project_ref,
            config.credential,
        )
        self.postgres = PostgresClient(self.runner, timeout=config.health.timeout_seconds)
        self.docker = DockerClient(self.runner)
        self.monitor = monitor or HealthMonitor(
            config,
            self.supabase,
            self.docker,
            self.postgres,
            sleep=sleep,
        )
        self.backups = BackupManager(
            config.backup,
            self.postgres,
            self.git,
            self._resolve_connection,
            dry_run=session.dry_run,
        )
        self.resolver = ConflictResolver(config.conflicts, self.git)
        self.preflight = preflight or create_standard_preflight_checker()
        self._exported: BackupRecord | None = None

    # ==================== Shared steps ====================

    def _resolve_connection(self, source: BackupSource) -> str | None:
        if source == BackupSource.REMOTE:
            return self.supabase.remote_db_url()
        return self.supabase.local_db_url()

    def _run(self, operation: str, steps: list[Step]) -> PipelineResult:
        self._exported = None
        result = Pipeline(operation, on_step=self.on_step).run(steps)
        self.session.result = result
        return result

    def check_prerequisites(self) -> str:
        """Pre-flight: tools, credential, configuration, container runtime."""
        report = self.preflight.run_checks(
            {"config": self.config, "runner": self.runner, "tools": REQUIRED_TOOLS}
        )
        report.raise_for_errors()
        if self.config.docker.auto_start:
            self.monitor.ensure_running()
        return "All prerequisites met"

    def _backup_local(self, prefix: str) -> str:
        """Snapshot the local database and Git state before anything is touched.

        A failed database snapshot still records the Git state, then raises so the
        best-effort step is reported as warned and the run has no rollback point.
        """
        self.session.backup_attempted = True
        failure: BackupUnavailable | None = None
        message = ""

        try:
            record = self.backups.snapshot_for_strategy(BackupSource.LOCAL, prefix)
            self.session.record_backup(record, rollback=not self.session.dry_run)
            message = f"Backup created: {record.path}"
        except BackupUnavailable as e:
            self.session.warn(f"Could not create local backup, no clean rollback point: {e}")
            failure = e

        try:
            git_record = self.backups.create_snapshot(BackupKind.GIT_STATE, BackupSource.GIT)
            self.session.record_backup(git_record)
        except BackupUnavailable as e:
            self.session.warn(f"Could not record Git state: {e}")

        if failure is not None:
            raise failure
        return message

    def _confirm(self, prompt: str) -> bool:
        if self.session.force:
            return True
        return self.confirmer.confirm(prompt)

    def _export_data(self, source: BackupSource, prefix: str, strategies: tuple[str, ...]) -> str:
        if self.config.data_sync_strategy not in strategies:
            raise StepSkipped(f"Data sync strategy is '{self.config.data_sync_strategy}'")
        record = self.backups.create_snapshot(BackupKind.DATA_ONLY, source, prefix)
        self.session.record_backup(record)
        self._exported = record
        return f"Data exported: {record.path}"

    def _import_data(self, target: BackupSource, strategies: tuple[str, ...]) -> str:
        if self.config.data_sync_strategy not in strategies:
            raise StepSkipped(f"Data sync strategy is '{self.config.data_sync_strategy}'")
        if self._exported is None:
            raise StepSkipped("No exported data to import")
        if self.session.dry_run:
            return f"Would import {self._exported.path.name} into the {target.value} database"

        db_url = self._resolve_connection(target)
        if not db_url:
            raise RestoreTargetMissing(f"Could not resolve the {target.value} database URL")
        self.backups.restore_snapshot(self._exported, db_url)
        return f"Data imported into the {target.value} database"

    def _start_backend(self) -> str:
        if self.monitor.is_backend_running():
            raise StepSkipped("Local backend already running")
        for port in self.monitor.resolve_ports():
            self.session.warn(f"Port {port} is still in use; the backend may not start cleanly")
        self.monitor.start_backend()
        return "Local backend started"

    def _verify_health(self) -> str:
        status = self.monitor.check_health()
        if status.healthy:
            return "Local backend is healthy"
        if self.session.dry_run:
            return "Local backend is not healthy (dry run, no restart attempted)"

        self.session.health_failures += 1
        self.sleep(self.config.health.poll_interval_seconds)
        if self.monitor.check_health().healthy:
            return "Local backend is healthy after retry"
        self.session.health_failures += 1

        logger.warning("Health checks failed twice, forcing a restart")
        for port in self.monitor.force_restart():
            self.session.warn(f"Port {port} is still in use after restart")

        policy = RetryPolicy(
            max_attempts=self.config.health.retries,
            delay=self.config.health.poll_interval_seconds,
        )
        if not policy.wait_until(
            lambda: self.monitor.check_health().healthy,
            sleep=self.sleep,
            description="backend healthy",
        ):
            raise RuntimeUnavailable("Local backend is unhealthy after a forced restart")
        return "Local backend is healthy after a forced restart"

    def _report_status(self) -> str:
        logger.info("Migration status", output=self.supabase.migration_list())
        logger.info("Project status", output=self.supabase.status_text())
        return "Status reported"

    # ==================== Push ====================

    def _commit_local_changes(self) -> str:
        if not self.git.is_dirty():
            raise StepSkipped("No changes to commit")
        self.git.add_all()
        message = f"Deploy to {self.config.git.branch} - {datetime.now():%Y-%m-%d %H:%M:%S}"
        self.git.commit(message)
        return message

    def _push_vcs(self) -> str:
        self.git.push(self.config.git.branch)
        return f"Pushed to {self.config.git.remote_name}/{self.config.git.branch}"

    def _push_schema(self) -> str:
        self.supabase.ensure_linked()
        strategy = self.config.migration_strategy
        if strategy == "interactive" and not self._confirm("Push database migrations to the remote project?"):
            raise ConsentRefused("Migration push declined")
        self.supabase.db_push(include_all=strategy == "force")
        return "Migrations pushed"

    def push_steps(self) -> list[Step]:
        return [
            Step("CheckPrereqs", self.check_prerequisites),
            Step("Backup", lambda: self._backup_local("supabase_backup"), best_effort=True),
            Step("CommitLocalChanges", self._commit_local_changes, mutating=True),
            Step("PushVCS", self._push_vcs, mutating=True),
            Step("PushBackendSchema", self._push_schema, mutating=True),
            Step(
                "ExportLocalData",
                lambda: self._export_data(BackupSource.LOCAL, "supabase_data", PUSH_DATA_STRATEGIES),
                best_effort=True,
            ),
            Step(
                "ImportDataToRemote",
                lambda: self._import_data(BackupSource.REMOTE, PUSH_DATA_STRATEGIES),
                best_effort=True,
                mutating=True,
            ),
            Step("ReportStatus", self._report_status, best_effort=True),
        ]

    def push(self) -> PipelineResult:
        """Push local commits, migrations and data to the remote."""
        return self._run("push", self.push_steps())

    # ==================== Pull ====================

    def _stash_if_dirty(self) -> str:
        if not self.git.is_dirty():
            raise StepSkipped("Working tree clean")
        if not self.session.dry_run and not self._confirm(
            "Working tree has uncommitted changes. Stash them before pulling?"
        ):
            raise ConsentRefused("Please commit or stash your changes before pulling")

        message = f"{STASH_MESSAGE} - {self.session.stamp}"
        self.git.stash_push(message)
        self.session.stash_message = message
        if not self.session.dry_run:
            self.session.stash_ref = self.git.find_stash(message)
        return f"Changes stashed ({message})"

    def _pull_vcs(self) -> str:
        result = self.git.pull(self.config.git.branch)
        if result.success:
            return f"Pulled {self.config.git.remote_name}/{self.config.git.branch}"

        conflicts = self.git.conflicted_paths()
        if not conflicts:
            raise CommandFailed(result)

        resolution = self.resolver.resolve(conflicts)
        return f"Pulled with {len(resolution.resolved)} conflicts resolved"

    def _reset_local_backend(self) -> str:
        self.monitor.stop_backend(no_backup=True, ignore_errors=True)
        return "Local backend stopped and its data discarded"

    def _pull_schema(self) -> str:
        self.supabase.ensure_linked()
        self.supabase.db_pull()
        return "Migrations pulled"

    def _import_to_local(self) -> str:
        if (
            self._exported is not None
            and not self.session.dry_run
            and not self.monitor.is_backend_running()
        ):
            self.monitor.start_backend()
        return self._import_data(BackupSource.LOCAL, PULL_DATA_STRATEGIES)

    def _offer_stash_restore(self) -> str:
        if not self.session.stash_message:
            raise StepSkipped("Nothing was stashed")
        if self.session.dry_run:
            return "Would offer to restore stashed changes"
        if not self._confirm("Do you want to restore your stashed changes?"):
            return "Stashed changes kept in stash"

        ref = self.git.find_stash(self.session.stash_message) or self.session.stash_ref
        if ref is None:
            raise SyncError(f"Stash '{self.session.stash_message}' not found")
        self.git.stash_pop(ref)
        return "Stashed changes restored"

    def pull_steps(self) -> list[Step]:
        return [
            Step("CheckPrereqs", self.check_prerequisites),
            Step("Backup", lambda: self._backup_local("local_backup"), best_effort=True),
            Step("StashIfDirty", self._stash_if_dirty, mutating=True),
            Step("PullVCS", self._pull_vcs, mutating=True),
            Step("ResetLocalBackend", self._reset_local_backend, mutating=True),
            Step("PullBackendSchema", self._pull_schema, mutating=True),
            Step(
                "ExportRemoteData",
                lambda: self._export_data(BackupSource.REMOTE, "remote_data", PULL_DATA_STRATEGIES),
                best_effort=True,
            ),
            Step("ImportDataToLocal", self._import_to_local, best_effort=True, mutating=True),
            Step("StartBackend", self._start_backend, mutating=True),
            Step("VerifyHealth", self._verify_health),
            Step("OfferStashRestore", self._offer_stash_restore, best_effort=True),
        ]

    def pull(self) -> PipelineResult:
        """Pull commits, migrations and data from the remote into the local setup."""
        return self._run("pull", self.pull_steps())

    # ==================== Reset ====================

    def _confirm_reset(self) -> str:
        if self.session.dry_run or self.session.force:
            return "Confirmation not required"
        if not self.confirmer.confirm("This will reset your local Supabase database. Continue?"):
            raise OperationCancelled("Reset cancelled")
        return "Confirmed"

    def _stop_backend(self) -> str:
        self.monitor.stop_backend(no_backup=True, ignore_errors=True)
        return "Local backend stopped"

    def reset_steps(self) -> list[Step]:
        return [
            Step("ConfirmUnlessForced", self._confirm_reset),
            Step("CheckPrereqs", self.check_prerequisites),
            Step("Backup", lambda: self._backup_local("local_backup"), best_effort=True),
            Step("StopBackend", self._stop_backend, mutating=True),
            Step("ResetBackendToRemote", self._pull_schema, mutating=True),
            Step("StartBackend", self._start_backend, mutating=True),
        ]

    def reset(self) -> PipelineResult:
        """Discard local backend state and rebuild it from the remote schema."""
        return self._run("reset", self.reset_steps())

    # ==================== Backup / restore ====================

    def _snapshot_database(self) -> str:
        record = self.backups.snapshot_for_strategy(BackupSource.LOCAL, "full_backup")
        self.session.record_backup(record, rollback=not self.session.dry_run)
        return f"Backup completed: {record.path}"

    def _snapshot_git(self) -> str:
        record = self.backups.create_snapshot(BackupKind.GIT_STATE, BackupSource.GIT)
        self.session.record_backup(record)
        return f"Git state recorded: {record.path}"

    def backup_steps(self) -> list[Step]:
        return [
            Step("CheckPrereqs", self.check_prerequisites),
            Step("SnapshotDatabase", self._snapshot_database, best_effort=True),
            Step("SnapshotGitState", self._snapshot_git, best_effort=True),
        ]

    def backup(self) -> PipelineResult:
        """Snapshot the local database and the Git state."""
        self.session.backup_attempted = True
        return self._run("backup", self.backup_steps())

    def restore_steps(self, path: Path) -> list[Step]:
        def check_file() -> str:
            if not path.is_file():
                raise BackupFileNotFound(f"Backup file not found: {path}")
            return f"Restoring from {path}"

        def confirm() -> str:
            if self.session.dry_run or self.session.force:
                return "Confirmation not required"
            if not self.confirmer.confirm(f"This will replay {path.name} into your local database. Continue?"):
                raise OperationCancelled("Restore cancelled")
            return "Confirmed"

        def restore() -> str:
            if self.session.dry_run:
                return f"Would restore {path}"
            self.backups.restore_snapshot(path, self.supabase.local_db_url())
            return f"Restore completed from {path}"

        return [
            Step("CheckBackupFile", check_file),
            Step("CheckPrereqs", self.check_prerequisites),
            Step("ConfirmUnlessForced", confirm),
            Step("Backup", lambda: self._backup_local("pre_restore"), best_effort=True),
            Step("RestoreDatabase", restore, mutating=True),
        ]

    def restore(self, path: Path) -> PipelineResult:
        """Replay a backup file into the local database."""
        return self._run("restore", self.restore_steps(path))

    # ==================== Status ====================

    def status(self) -> StatusReport:
        """Collect Git, backend, migration, database and backup status (read-only)."""
        report = StatusReport(
            git_status=self.git.status(short=True),
            backend_status=self.supabase.status_text(),
            migrations=self.supabase.migration_list(),
            backups=self.backups.list_records(),
        )
        db_url = self.supabase.local_db_url()
        if db_url:
            report.database_size = self.postgres.database_size(db_url)
            for table in self.postgres.list_tables(db_url):
                report.table_rows[table] = self.postgres.row_count(db_url, table)
        report.health = self.monitor.check_health()
        return report

    # ==================== Reporting ====================

    def plan(self, operation: str) -> ExecutionPlan:
        """Describe the steps an operation would run."""
        steps = {
            "push": self.push_steps,
            "pull": self.pull_steps,
            "reset": self.reset_steps,
            "backup": self.backup_steps,
        }[operation]()
        warnings = []
        if operation in ("pull", "reset"):
            warnings.append("Local backend data is discarded and rebuilt from the remote schema")
        return ExecutionPlan(
            operation=operation,
            target=f"{self.config.git.branch} / {self.config.supabase.project_ref}",
            steps=[s.name for s in steps],
            warnings=warnings,
            destructive=operation in ("pull", "reset"),
        )

    def recovery_backup(self) -> BackupRecord | None:
        """Most recent backup usable for manual recovery."""
        return self.session.rollback_point or self.backups.latest()
