"""
SupaSync - keep a Git repository and a Supabase project in sync.

Sequences Git operations, schema migrations, data export/import, conflict
resolution, backups and local backend health checks into push, pull and
reset workflows.
"""

__version__ = "1.0.0"
__author__ = "SupaSync Team"

from supasync.core.config import ProjectConfiguration
from supasync.core.session import SyncSession

__all__ = ["ProjectConfiguration", "SyncSession", "__version__"]
