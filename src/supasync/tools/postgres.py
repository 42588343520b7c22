"""
PostgreSQL client operations (pg_dump / psql).
"""

from __future__ import annotations

import re
from pathlib import Path

from supasync.tools.base import CommandResult, CommandRunner

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_$]*$")


class PostgresClient:
    """Dump, replay and query a database by connection string."""

    PG_DUMP = "pg_dump"
    PSQL = "psql"

    def __init__(self, runner: CommandRunner, timeout: float | None = None) -> None:
        self.runner = runner
        self.timeout = timeout

    def dump(
        self,
        db_url: str,
        output: Path,
        data_only: bool = False,
        schema_only: bool = False,
    ) -> CommandResult:
        command = [self.PG_DUMP]
        if data_only:
            command += ["--data-only", "--inserts"]
        elif schema_only:
            command.append("--schema-only")
        command.append(db_url)
        return self.runner.run(command, mutating=True, stdout_path=output)

    def replay(self, db_url: str, sql_file: Path) -> CommandResult:
        return self.runner.run(
            [self.PSQL, db_url, "-v", "ON_ERROR_STOP=1", "-f", str(sql_file)],
            mutating=True,
        )

    def query(self, db_url: str, sql: str) -> CommandResult:
        return self.runner.run(
            [self.PSQL, db_url, "-t", "-A", "-c", sql],
            timeout=self.timeout,
        )

    def ping(self, db_url: str) -> bool:
        return self.query(db_url, "SELECT 1;").success

    def database_size(self, db_url: str) -> str:
        result = self.query(db_url, "SELECT pg_size_pretty(pg_database_size(current_database()));")
        return result.stdout.strip() if result.success else "Unknown"

    def list_tables(self, db_url: str) -> list[str]:
        result = self.query(
            db_url,
            "SELECT tablename FROM pg_tables WHERE schemaname = 'public' ORDER BY tablename;",
        )
        if not result.success:
            return []
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def row_count(self, db_url: str, table: str) -> int | None:
        if not _IDENTIFIER.match(table):
            return None
        result = self.query(db_url, f'SELECT COUNT(*) FROM public."{table}";')
        try:
            return int(result.stdout.strip()) if result.success else None
        except ValueError:
            return None
