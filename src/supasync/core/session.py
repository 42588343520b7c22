"""
SupaSync Session Management.

A SyncSession describes one CLI invocation and keeps the ledger of what the
run did: backups taken, warnings raised and step results.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from supasync.core.logging import get_logger

if TYPE_CHECKING:
    from supasync.backup.manager import BackupRecord
    from supasync.core.pipeline import PipelineResult

logger = get_logger(__name__)


class CommandVerb(Enum):
    """CLI verbs understood by the dispatcher."""

    PUSH = "push"
    PULL = "pull"
    STATUS = "status"
    BACKUP = "backup"
    RESTORE = "restore"
    RESET = "reset"
    CONFIG = "config"
    VALIDATE = "validate"
    SETUP = "setup"


@dataclass
class SyncSession:
    """One invocation of the tool; discarded after the run."""

    command: CommandVerb
    dry_run: bool = False
    force: bool = False
    restore_target: Path | None = None
    timestamp: datetime = field(default_factory=datetime.now)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    backups: list[BackupRecord] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    backup_attempted: bool = False
    rollback_point: BackupRecord | None = None
    health_failures: int = 0
    stash_ref: str | None = None
    stash_message: str | None = None
    result: PipelineResult | None = None

    @property
    def no_rollback_point(self) -> bool:
        """True when a real run attempted a backup but no database snapshot exists."""
        return self.backup_attempted and not self.dry_run and self.rollback_point is None

    @property
    def stamp(self) -> str:
        return self.timestamp.strftime("%Y%m%d_%H%M%S")

    def warn(self, message: str, **context: Any) -> None:
        self.warnings.append(message)
        logger.warning(message, session_id=self.id[:8], **context)

    def record_backup(self, record: BackupRecord, rollback: bool = False) -> None:
        self.backups.append(record)
        if rollback:
            self.rollback_point = record

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.id,
            "command": self.command.value,
            "dry_run": self.dry_run,
            "force": self.force,
            "restore_target": str(self.restore_target) if self.restore_target else None,
            "started_at": self.timestamp.isoformat(),
            "ended_at": datetime.now().isoformat(),
            "backups": [record.to_dict() for record in self.backups],
            "rollback_point": str(self.rollback_point.path) if self.rollback_point else None,
            "no_rollback_point": self.no_rollback_point,
            "warnings": self.warnings,
            "health_failures": self.health_failures,
            "result": self.result.to_dict() if self.result else None,
        }

    def save_report(self, directory: Path) -> Path:
        """Save the session report as JSON."""
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / f"session_{self.stamp}_{self.id[:8]}.json"
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2, default=str)
        logger.debug("Session report saved", path=str(path))
        return path
