"""
SupaSync backup module.

Provides point-in-time snapshots of backend and Git state.
"""

from supasync.backup.manager import (
    BackupKind,
    BackupManager,
    BackupRecord,
    BackupSource,
)

__all__ = ["BackupKind", "BackupManager", "BackupRecord", "BackupSource"]
