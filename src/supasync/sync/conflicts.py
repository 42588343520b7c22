"""
SupaSync conflict resolver.

Resolves merge conflicts non-interactively against ordered glob rules.
"""

from __future__ import annotations

import fnmatch
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime

from supasync.core.config import ConflictConfig, ConflictPolicy, ConflictRule
from supasync.core.errors import UnresolvedConflict
from supasync.core.logging import get_logger
from supasync.tools.git import GitClient

logger = get_logger(__name__)


@dataclass
class SyncConflict:
    path: str
    policy: ConflictPolicy
    rule: str | None = None


@dataclass
class ConflictResolution:
    resolved: list[SyncConflict] = field(default_factory=list)
    manual: list[SyncConflict] = field(default_factory=list)
    committed: bool = False

    @property
    def manual_paths(self) -> list[str]:
        return [c.path for c in self.manual]

    def summary(self) -> str:
        return "\n".join(f"{c.path}: {c.policy}" for c in self.resolved + self.manual)


class ConflictResolver:
    """Applies local/remote/manual policies to conflicted paths."""

    def __init__(self, config: ConflictConfig, git: GitClient) -> None:
        self.rules: Sequence[ConflictRule] = tuple(config.rules)
        self.default_policy: ConflictPolicy = config.default_policy
        self.git = git

    def classify(self, path: str) -> SyncConflict:
        """First matching rule in declaration order wins."""
        for rule in self.rules:
            if fnmatch.fnmatchcase(path, rule.pattern):
                return SyncConflict(path=path, policy=rule.policy, rule=rule.pattern)
        return SyncConflict(path=path, policy=self.default_policy)

    def resolve(self, paths: Iterable[str]) -> ConflictResolution:
        """
        Resolve every conflicted path.

        Commits only when no ``manual`` conflict remains; otherwise raises
        UnresolvedConflict and leaves the tree partially resolved.
        """
        resolution = ConflictResolution()

        for path in paths:
            conflict = self.classify(path)
            if conflict.policy == "manual":
                resolution.manual.append(conflict)
                logger.warning("Conflict needs manual resolution", path=path, rule=conflict.rule)
                continue

            if conflict.policy == "local":
                self.git.checkout_ours(path)
            else:
                self.git.checkout_theirs(path)
            resolution.resolved.append(conflict)
            logger.info(
                "Resolved conflict",
                path=path,
                policy=conflict.policy,
                rule=conflict.rule,
            )

        if resolution.manual:
            raise UnresolvedConflict(resolution.manual_paths)

        if resolution.resolved:
            self.git.add(*[c.path for c in resolution.resolved])
            timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
            message = f"Resolve merge conflicts - {timestamp}\n\n{resolution.summary()}"
            self.git.commit(message)
            resolution.committed = True
            logger.info("Merge conflicts resolved", count=len(resolution.resolved))

        return resolution
