"""
SupaSync CLI Module.

Provides the command-line interface for SupaSync operations.
"""

from supasync.cli.main import main, cli

__all__ = ["main", "cli"]
