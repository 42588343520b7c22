"""
SupaSync command execution base.

Wraps the external CLIs (git, supabase, pg_dump, psql, docker) behind a
single runner that logs, redacts secrets and honours dry-run mode.
"""

from __future__ import annotations

import shutil
import subprocess
import time
from collections.abc import Iterable, Sequence
from pathlib import Path
from urllib.parse import quote

from supasync.core.errors import CommandFailed
from supasync.core.logging import get_logger

logger = get_logger(__name__)

REDACTED = "********"


class CommandResult:
    """Result of a command execution."""

    def __init__(
        self,
        returncode: int,
        stdout: str,
        stderr: str,
        command: Sequence[str],
        duration_seconds: float = 0.0,
        dry_run: bool = False,
    ) -> None:
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.command = list(command)
        self.duration_seconds = duration_seconds
        self.dry_run = dry_run
        self.display = " ".join(self.command)

    @property
    def success(self) -> bool:
        return self.returncode == 0

    def __repr__(self) -> str:
        return f"CommandResult(rc={self.returncode}, cmd='{self.display[:50]}...')"


def redact(command: Sequence[str], secrets: Iterable[str | None]) -> list[str]:
    """Replace secret values (and URLs containing them) in a command line."""
    values: list[str] = []
    for secret in secrets:
        if secret:
            values.extend({secret, quote(secret, safe="")})
    redacted = []
    for part in command:
        for secret in values:
            if secret in part:
                part = part.replace(secret, REDACTED)
        redacted.append(part)
    return redacted


class CommandRunner:
    """Runs external commands synchronously."""

    def __init__(
        self,
        dry_run: bool = False,
        secrets: Iterable[str | None] = (),
        default_timeout: int = 1800,
    ) -> None:
        self.dry_run = dry_run
        self.secrets = [s for s in secrets if s]
        self.default_timeout = default_timeout

    def which(self, tool: str) -> str | None:
        """Locate a tool on PATH."""
        return shutil.which(tool)

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        mutating: bool = False,
        check: bool = False,
        stdin_path: Path | None = None,
        stdout_path: Path | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        """
        Run a command and return its result.

        Mutating commands are only reported in dry-run mode. With ``check`` a
        non-zero exit raises CommandFailed.
        """
        shown = redact(command, self.secrets)

        if mutating and self.dry_run:
            logger.info("[DRY RUN] Would execute", command=" ".join(shown), cwd=str(cwd or "."))
            return CommandResult(0, "", "", shown, dry_run=True)

        logger.debug("Running command", command=" ".join(shown), cwd=str(cwd or "."))
        start_time = time.time()
        result = self._execute(
            list(command),
            cwd=cwd,
            stdin_path=stdin_path,
            stdout_path=stdout_path,
            timeout=timeout or self.default_timeout,
        )
        result.duration_seconds = result.duration_seconds or time.time() - start_time
        result.command = shown
        result.display = " ".join(shown)
        result.stderr = " ".join(redact([result.stderr], self.secrets)) if result.stderr else ""

        if not result.success:
            logger.debug(
                "Command failed",
                command=result.display,
                returncode=result.returncode,
                stderr=result.stderr[:500],
            )
            if check:
                raise CommandFailed(result)

        return result

    def _execute(
        self,
        command: list[str],
        cwd: Path | None,
        stdin_path: Path | None,
        stdout_path: Path | None,
        timeout: float,
    ) -> CommandResult:
        stdin = open(stdin_path, "rb") if stdin_path else None
        stdout = open(stdout_path, "wb") if stdout_path else None
        try:
            completed = subprocess.run(
                command,
                cwd=cwd,
                stdin=stdin if stdin else subprocess.DEVNULL,
                stdout=stdout if stdout else subprocess.PIPE,
                stderr=subprocess.PIPE,
                timeout=timeout,
            )
            return CommandResult(
                returncode=completed.returncode,
                stdout="" if stdout else completed.stdout.decode("utf-8", errors="replace"),
                stderr=completed.stderr.decode("utf-8", errors="replace"),
                command=command,
            )
        except subprocess.TimeoutExpired:
            return CommandResult(
                returncode=-1,
                stdout="",
                stderr=f"Command timed out after {timeout}s",
                command=command,
                duration_seconds=timeout,
            )
        except OSError as e:
            return CommandResult(returncode=-1, stdout="", stderr=str(e), command=command)
        finally:
            if stdin:
                stdin.close()
            if stdout:
                stdout.close()
