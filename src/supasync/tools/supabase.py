"""
Supabase CLI operations used by the sync workflow.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any
from urllib.parse import quote

from supasync.core.logging import get_logger
from supasync.tools.base import CommandResult, CommandRunner

logger = get_logger(__name__)


_decoder = json.JSONDecoder()


def _parse_json(text: str, expected: type = object) -> Any:
    # The CLI may print progress lines, some holding brackets, before the JSON document.
    fallback = None
    for index, char in enumerate(text):
        if char not in "{[":
            continue
        try:
            data, end = _decoder.raw_decode(text, index)
        except json.JSONDecodeError:
            continue
        if not isinstance(data, expected):
            continue
        if not text[end:].strip():
            return data
        if fallback is None:
            fallback = data
    return fallback


class SupabaseCli:
    """Wrapper over the ``supabase`` CLI run from the backend project directory."""

    SUPABASE = "supabase"

    def __init__(
        self,
        runner: CommandRunner,
        project_dir: Path,
        project_ref: str,
        password: str | None,
    ) -> None:
        self.runner = runner
        self.project_dir = project_dir
        self.project_ref = project_ref
        self.password = password

    def _supabase(
        self,
        *args: str,
        mutating: bool = False,
        check: bool = False,
        timeout: float | None = None,
    ) -> CommandResult:
        return self.runner.run(
            [self.SUPABASE, *args],
            cwd=self.project_dir,
            mutating=mutating,
            check=check,
            timeout=timeout,
        )

    def _password_args(self) -> list[str]:
        return ["--password", self.password] if self.password else []

    # ==================== Local stack ====================

    def status_json(self) -> dict[str, Any] | None:
        result = self._supabase("status", "--output", "json")
        if not result.success:
            return None
        return _parse_json(result.stdout, dict)

    def status_text(self) -> str:
        result = self._supabase("status")
        return result.stdout if result.success else result.stderr

    def is_running(self) -> bool:
        return self._supabase("status").success

    def start(self) -> CommandResult:
        return self._supabase("start", mutating=True)

    def stop(self, no_backup: bool = False) -> CommandResult:
        args = ["stop", "--no-backup"] if no_backup else ["stop"]
        return self._supabase(*args, mutating=True)

    def local_db_url(self) -> str | None:
        status = self.status_json()
        return (status or {}).get("DB_URL") or None

    # ==================== Remote project ====================

    def linked_refs(self) -> list[str]:
        result = self._supabase("projects", "list", "--output", "json")
        data = _parse_json(result.stdout, list) if result.success else None
        if not isinstance(data, list):
            return []
        refs = []
        for item in data:
            if isinstance(item, dict):
                ref = item.get("ref") or item.get("id")
                if ref:
                    refs.append(str(ref))
        return refs

    def is_linked(self) -> bool:
        return self.project_ref in self.linked_refs()

    def ensure_linked(self) -> None:
        if self.is_linked():
            logger.debug("Project already linked", project_ref=self.project_ref)
            return
        logger.info("Linking Supabase project", project_ref=self.project_ref)
        self._supabase(
            "link",
            "--project-ref",
            self.project_ref,
            *self._password_args(),
            mutating=True,
            check=True,
        )

    def remote_db_url(self) -> str | None:
        """Resolve the remote connection string from the project listing."""
        result = self._supabase("projects", "list", "--output", "json")
        data = _parse_json(result.stdout, list) if result.success else None
        if isinstance(data, list):
            for item in data:
                if isinstance(item, dict) and self.project_ref in (item.get("ref"), item.get("id")):
                    url = item.get("database_url")
                    if url:
                        return str(url)
        if self.password:
            return (
                f"postgresql://postgres:{quote(self.password, safe='')}"
                f"@db.{self.project_ref}.supabase.co:5432/postgres"
            )
        return None

    # ==================== Migrations ====================

    def db_push(self, include_all: bool = False) -> CommandResult:
        args = ["db", "push", *self._password_args()]
        if include_all:
            args.append("--include-all")
        return self._supabase(*args, mutating=True, check=True)

    def db_pull(self) -> CommandResult:
        return self._supabase("db", "pull", *self._password_args(), mutating=True, check=True)

    def migration_list(self) -> str:
        result = self._supabase("migration", "list")
        return result.stdout if result.success else result.stderr
