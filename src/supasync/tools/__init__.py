"""
SupaSync external tool layer.

Provides subprocess wrappers for git, the Supabase CLI, the PostgreSQL
client tools and docker.
"""

from supasync.tools.base import CommandResult, CommandRunner
from supasync.tools.docker import DockerClient
from supasync.tools.git import GitClient
from supasync.tools.postgres import PostgresClient
from supasync.tools.supabase import SupabaseCli

REQUIRED_TOOLS = ("git", "supabase", "psql", "pg_dump", "docker")

__all__ = [
    "CommandResult",
    "CommandRunner",
    "DockerClient",
    "GitClient",
    "PostgresClient",
    "SupabaseCli",
    "REQUIRED_TOOLS",
]
