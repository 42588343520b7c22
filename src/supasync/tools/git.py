"""
Git operations used by the sync workflow.
"""

from __future__ import annotations

from pathlib import Path

from supasync.tools.base import CommandResult, CommandRunner


class GitClient:
    """Thin wrapper over the git CLI bound to one working tree."""

    GIT = "git"

    def __init__(self, runner: CommandRunner, working_dir: Path, remote: str = "origin") -> None:
        self.runner = runner
        self.working_dir = working_dir
        self.remote = remote

    def _git(self, *args: str, mutating: bool = False, check: bool = False) -> CommandResult:
        return self.runner.run(
            [self.GIT, *args],
            cwd=self.working_dir,
            mutating=mutating,
            check=check,
        )

    def is_dirty(self) -> bool:
        """True when there are staged or unstaged changes to tracked files."""
        unstaged = self._git("diff", "--quiet")
        staged = self._git("diff", "--cached", "--quiet")
        return not (unstaged.success and staged.success)

    def status(self, short: bool = False) -> str:
        args = ["status", "--short"] if short else ["status"]
        return self._git(*args).stdout

    def log_summary(self, count: int = 10) -> str:
        return self._git("log", "--oneline", f"-{count}").stdout

    def add_all(self) -> CommandResult:
        return self._git("add", ".", mutating=True, check=True)

    def add(self, *paths: str) -> CommandResult:
        return self._git("add", "--", *paths, mutating=True, check=True)

    def commit(self, message: str) -> CommandResult:
        return self._git("commit", "-m", message, mutating=True, check=True)

    def push(self, branch: str) -> CommandResult:
        return self._git("push", self.remote, branch, mutating=True, check=True)

    def pull(self, branch: str) -> CommandResult:
        """Merge the remote branch; conflicts are reported, not raised."""
        return self._git("pull", "--no-rebase", self.remote, branch, mutating=True)

    def conflicted_paths(self) -> list[str]:
        result = self._git("diff", "--name-only", "--diff-filter=U")
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def checkout_ours(self, path: str) -> CommandResult:
        return self._git("checkout", "--ours", "--", path, mutating=True, check=True)

    def checkout_theirs(self, path: str) -> CommandResult:
        return self._git("checkout", "--theirs", "--", path, mutating=True, check=True)

    def stash_push(self, message: str) -> CommandResult:
        return self._git("stash", "push", "-m", message, mutating=True, check=True)

    def find_stash(self, message: str) -> str | None:
        """Return the stash ref (``stash@{n}``) whose message contains ``message``."""
        result = self._git("stash", "list")
        for line in result.stdout.splitlines():
            ref, _, description = line.partition(":")
            if message in description:
                return ref.strip()
        return None

    def stash_pop(self, ref: str) -> CommandResult:
        return self._git("stash", "pop", ref, mutating=True, check=True)
