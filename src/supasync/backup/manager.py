"""
SupaSync backup manager.

Creates and restores point-in-time snapshots of backend and Git state.
Snapshots are never deleted here; retention is reported, not enforced.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from supasync.core.errors import (
    BackupFileNotFound,
    BackupUnavailable,
    RestoreFailed,
    RestoreTargetMissing,
)
from supasync.core.logging import OperationLogger, get_logger

if TYPE_CHECKING:
    from supasync.core.config import BackupConfig
    from supasync.tools.git import GitClient
    from supasync.tools.postgres import PostgresClient

logger = get_logger(__name__)

TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
BACKUP_NAME = re.compile(
    r"^(?P<prefix>.+?)_(?P<timestamp>\d{8}_\d{6})(?:_(?P<counter>\d+))?\.(?P<ext>sql|txt)$"
)


class BackupKind(Enum):
    FULL = "full"
    DATA_ONLY = "data-only"
    SCHEMA_ONLY = "schema-only"
    GIT_STATE = "git-state"


class BackupSource(Enum):
    LOCAL = "local"
    REMOTE = "remote"
    GIT = "git"


STRATEGY_KINDS = {
    "full": BackupKind.FULL,
    "incremental": BackupKind.FULL,
    "schema-only": BackupKind.SCHEMA_ONLY,
    "data-only": BackupKind.DATA_ONLY,
}


@dataclass(frozen=True)
class BackupRecord:
    """A restorable snapshot on disk."""

    kind: BackupKind
    source: BackupSource
    timestamp: datetime
    path: Path

    @property
    def size_bytes(self) -> int:
        return self.path.stat().st_size if self.path.exists() else 0

    def to_dict(self) -> dict[str, str]:
        return {
            "kind": self.kind.value,
            "source": self.source.value,
            "timestamp": self.timestamp.isoformat(),
            "path": str(self.path),
        }


ConnectionResolver = Callable[[BackupSource], str | None]


class BackupManager:
    """Creates and restores snapshots in the configured backup directory."""

    DEFAULT_PREFIXES = {
        BackupKind.FULL: "full_backup",
        BackupKind.DATA_ONLY: "data_backup",
        BackupKind.SCHEMA_ONLY: "schema_backup",
        BackupKind.GIT_STATE: "git_state",
    }

    def __init__(
        self,
        config: BackupConfig,
        postgres: PostgresClient,
        git: GitClient,
        resolve_connection: ConnectionResolver,
        clock: Callable[[], datetime] = datetime.now,
        dry_run: bool = False,
    ) -> None:
        self.config = config
        self.directory = config.directory
        self.postgres = postgres
        self.git = git
        self.resolve_connection = resolve_connection
        self.clock = clock
        self.dry_run = dry_run
        self._issued: set[Path] = set()

    def _reserve_path(self, prefix: str, timestamp: datetime, extension: str) -> Path:
        """Claim a file name that no other snapshot uses, even within one clock tick."""
        if not self.dry_run:
            self.directory.mkdir(parents=True, exist_ok=True)
        stamp = timestamp.strftime(TIMESTAMP_FORMAT)
        counter = 1
        while True:
            suffix = "" if counter == 1 else f"_{counter}"
            path = self.directory / f"{prefix}_{stamp}{suffix}.{extension}"
            counter += 1
            if path in self._issued:
                continue
            if not self.dry_run:
                try:
                    with open(path, "x", encoding="utf-8"):
                        pass
                except FileExistsError:
                    continue
            self._issued.add(path)
            return path

    def strategy_kind(self) -> BackupKind:
        """Snapshot kind for the configured backup strategy."""
        return STRATEGY_KINDS[self.config.strategy]

    def snapshot_for_strategy(self, source: BackupSource, prefix: str | None = None) -> BackupRecord:
        return self.create_snapshot(self.strategy_kind(), source, prefix)

    def create_snapshot(
        self,
        kind: BackupKind,
        source: BackupSource,
        prefix: str | None = None,
    ) -> BackupRecord:
        """Create a snapshot or raise BackupUnavailable."""
        prefix = prefix or self.DEFAULT_PREFIXES[kind]
        timestamp = self.clock()

        if kind == BackupKind.GIT_STATE:
            return self._snapshot_git(prefix, timestamp)

        db_url = self.resolve_connection(source)
        if not db_url:
            raise BackupUnavailable(f"Could not resolve the {source.value} database URL")

        path = self._reserve_path(prefix, timestamp, "sql")
        with OperationLogger("database snapshot", logger, kind=kind.value, path=str(path)):
            result = self.postgres.dump(
                db_url,
                path,
                data_only=kind == BackupKind.DATA_ONLY,
                schema_only=kind == BackupKind.SCHEMA_ONLY,
            )
            if not result.success:
                path.unlink(missing_ok=True)
                raise BackupUnavailable(
                    f"Failed to create {kind.value} backup: {result.stderr.strip() or 'pg_dump failed'}"
                )

        return BackupRecord(kind=kind, source=source, timestamp=timestamp, path=path)

    def _snapshot_git(self, prefix: str, timestamp: datetime) -> BackupRecord:
        path = self._reserve_path(prefix, timestamp, "txt")
        log = self.git.log_summary(self.config.git_log_entries)
        status = self.git.status()
        content = f"# Recent commits\n{log}\n# Working tree status\n{status}"
        if not self.dry_run:
            try:
                path.write_text(content, encoding="utf-8")
            except OSError as e:
                raise BackupUnavailable(f"Failed to write Git state backup: {e}") from e
        logger.info("Git state recorded", path=str(path))
        return BackupRecord(
            kind=BackupKind.GIT_STATE,
            source=BackupSource.GIT,
            timestamp=timestamp,
            path=path,
        )

    def restore_snapshot(self, record: BackupRecord | Path, target_connection: str | None) -> None:
        """
        Replay a SQL snapshot into the target database.

        Not transactional: a failed replay can leave the target partially restored.
        """
        path = record.path if isinstance(record, BackupRecord) else Path(record)

        if not path.is_file():
            raise BackupFileNotFound(f"Backup file not found: {path}")
        if not target_connection:
            raise RestoreTargetMissing("Could not resolve a database URL for the restore")

        with OperationLogger("restore", logger, path=str(path)):
            result = self.postgres.replay(target_connection, path)
            if not result.success:
                raise RestoreFailed(
                    f"Failed to restore {path}: {result.stderr.strip() or 'psql failed'}"
                )

    def list_records(self) -> list[BackupRecord]:
        """Snapshots in the backup directory, newest first."""
        if not self.directory.is_dir():
            return []

        records = []
        for path in self.directory.iterdir():
            match = BACKUP_NAME.match(path.name)
            if not match or not path.is_file():
                continue
            timestamp = datetime.strptime(match["timestamp"], TIMESTAMP_FORMAT)
            kind, source = self._classify(match["prefix"], match["ext"])
            records.append(BackupRecord(kind=kind, source=source, timestamp=timestamp, path=path))

        return sorted(records, key=lambda r: (r.timestamp, r.path.name), reverse=True)

    def _classify(self, prefix: str, extension: str) -> tuple[BackupKind, BackupSource]:
        if extension == "txt" or prefix.startswith("git"):
            return BackupKind.GIT_STATE, BackupSource.GIT
        source = BackupSource.REMOTE if prefix.startswith("remote") else BackupSource.LOCAL
        if "data" in prefix:
            return BackupKind.DATA_ONLY, source
        if "schema" in prefix:
            return BackupKind.SCHEMA_ONLY, source
        return BackupKind.FULL, source

    def latest(self, restorable_only: bool = True) -> BackupRecord | None:
        for record in self.list_records():
            if not restorable_only or record.kind != BackupKind.GIT_STATE:
                return record
        return None

    def is_expired(self, record: BackupRecord, now: datetime | None = None) -> bool:
        """Advisory only: nothing is deleted based on this."""
        if self.config.retention_days <= 0:
            return False
        now = now or self.clock()
        return now - record.timestamp > timedelta(days=self.config.retention_days)
