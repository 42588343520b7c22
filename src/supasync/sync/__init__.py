"""
SupaSync sync module.

Provides the push/pull/reset workflows and merge conflict resolution.
"""

from supasync.sync.conflicts import ConflictResolution, ConflictResolver, SyncConflict
from supasync.sync.engine import StatusReport, SyncEngine

__all__ = [
    "ConflictResolution",
    "ConflictResolver",
    "StatusReport",
    "SyncConflict",
    "SyncEngine",
]
