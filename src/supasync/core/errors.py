"""
SupaSync error taxonomy.

Pre-flight errors abort before any side effect, step errors abort the
remaining pipeline, and best-effort steps downgrade errors to warnings.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from supasync.tools.base import CommandResult


class SyncError(Exception):
    """Base class for all SupaSync errors."""


class PreconditionError(SyncError):
    """A required tool or credential is missing."""


class ConfigError(SyncError):
    """The project configuration is unreadable or invalid."""

    def __init__(self, message: str, violations: Sequence[str] | None = None) -> None:
        self.violations = list(violations or [])
        if self.violations:
            message = message + ":\n" + "\n".join(f"  - {v}" for v in self.violations)
        super().__init__(message)


class RuntimeUnavailable(SyncError):
    """The container runtime or local backend did not become ready."""


class BackupUnavailable(SyncError):
    """A snapshot could not be created."""


class RestoreError(SyncError):
    """Base class for restore failures."""


class RestoreTargetMissing(RestoreError):
    """No database connection could be resolved for the restore."""


class BackupFileNotFound(RestoreError):
    """The backup file to restore does not exist."""


class RestoreFailed(RestoreError):
    """The replay command exited non-zero."""


class UnresolvedConflict(SyncError):
    """Merge conflicts tagged ``manual`` need human action."""

    def __init__(self, paths: Sequence[str]) -> None:
        self.paths = list(paths)
        super().__init__(
            "Unresolved merge conflicts require manual resolution: " + ", ".join(self.paths)
        )


class CommandFailed(SyncError):
    """An external command exited non-zero."""

    def __init__(self, result: CommandResult, message: str | None = None) -> None:
        self.result = result
        detail = (result.stderr or result.stdout or "").strip().splitlines()
        reason = detail[-1] if detail else f"exit code {result.returncode}"
        super().__init__(message or f"{result.display} failed: {reason}")


class ConsentRefused(SyncError):
    """The user declined a prompt that gates a required step."""


class OperationCancelled(SyncError):
    """The user cancelled an operation; not treated as a failure."""


class PartialSyncFailure(SyncError):
    """A pipeline step failed after earlier steps already changed state."""

    def __init__(
        self,
        completed_steps: Sequence[str],
        failed_step: str,
        cause: BaseException,
    ) -> None:
        self.completed_steps = list(completed_steps)
        self.failed_step = failed_step
        self.cause = cause
        completed = ", ".join(self.completed_steps) or "none"
        super().__init__(
            f"Step '{failed_step}' failed after completing: {completed}. Cause: {cause}"
        )
