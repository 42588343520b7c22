"""
SupaSync Safety.

Implements the confirmation capability, preflight checks and execution
plans used before destructive sync operations.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol

from supasync.core.config import PASSWORD_ENV_VAR
from supasync.core.errors import PreconditionError
from supasync.core.logging import get_logger

if TYPE_CHECKING:
    from supasync.core.config import ProjectConfiguration
    from supasync.tools.base import CommandRunner

logger = get_logger(__name__)


class Confirmer(Protocol):
    """Capability to ask the user a yes/no question."""

    def confirm(self, prompt: str) -> bool: ...


class AutoConfirmer:
    """Answers every prompt without asking (``--force``)."""

    def __init__(self, answer: bool = True) -> None:
        self.answer = answer

    def confirm(self, prompt: str) -> bool:
        logger.info("Confirmation suppressed", prompt=prompt, answer=self.answer)
        return self.answer


class CallbackConfirmer:
    """Adapts a plain ``prompt -> bool`` callable."""

    def __init__(self, callback: Callable[[str], bool]) -> None:
        self.callback = callback

    def confirm(self, prompt: str) -> bool:
        return bool(self.callback(prompt))


@dataclass
class PreflightCheck:
    """Result of a single preflight check."""

    name: str
    passed: bool
    message: str
    severity: str = "info"  # info, warning, error
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class PreflightReport:
    """Complete preflight check report."""

    checks: list[PreflightCheck] = field(default_factory=list)
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def all_passed(self) -> bool:
        return all(c.passed for c in self.checks)

    @property
    def has_errors(self) -> bool:
        return any(c.severity == "error" and not c.passed for c in self.checks)

    @property
    def failures(self) -> list[PreflightCheck]:
        return [c for c in self.checks if not c.passed and c.severity == "error"]

    def get_summary(self) -> str:
        """Get human-readable summary."""
        passed = sum(1 for c in self.checks if c.passed)
        lines = [f"Preflight: {passed}/{len(self.checks)} checks passed"]
        for check in self.checks:
            status = "✓" if check.passed else "✗"
            lines.append(f"[{status}] {check.name}: {check.message}")
        return "\n".join(lines)

    def raise_for_errors(self) -> None:
        if self.has_errors:
            raise PreconditionError(
                "Prerequisites not met: " + "; ".join(c.message for c in self.failures)
            )


PreflightFunc = Callable[[dict[str, Any]], PreflightCheck]


class PreflightChecker:
    """Performs preflight checks before operations."""

    def __init__(self) -> None:
        self._checks: list[tuple[str, PreflightFunc]] = []

    def add_check(self, name: str, check_func: PreflightFunc) -> None:
        """Add a preflight check function."""
        self._checks.append((name, check_func))

    def run_checks(self, context: dict[str, Any]) -> PreflightReport:
        """Run all preflight checks and return report."""
        report = PreflightReport()
        for _name, check_func in self._checks:
            report.checks.append(check_func(context))

        if report.has_errors:
            logger.error("Preflight checks failed", failures=[c.name for c in report.failures])
        else:
            logger.info("All prerequisites met", checks=len(report.checks))
        return report


def check_tools(context: dict[str, Any]) -> PreflightCheck:
    """Check that every required command is on PATH."""
    runner: CommandRunner = context["runner"]
    tools: Iterable[str] = context.get("tools", ())
    missing = [tool for tool in tools if runner.which(tool) is None]
    if missing:
        return PreflightCheck(
            name="Required Tools",
            passed=False,
            message=f"Missing required commands: {', '.join(missing)}",
            severity="error",
            details={"missing": missing},
        )
    return PreflightCheck(name="Required Tools", passed=True, message="All required commands found")


def check_credential(context: dict[str, Any]) -> PreflightCheck:
    """Check that the database credential was supplied."""
    config: ProjectConfiguration = context["config"]
    if not config.credential:
        return PreflightCheck(
            name="Credential",
            passed=False,
            message=f"{PASSWORD_ENV_VAR} environment variable is required",
            severity="error",
        )
    return PreflightCheck(name="Credential", passed=True, message="Database credential supplied")


def check_configuration(context: dict[str, Any]) -> PreflightCheck:
    """Check that the configuration has no violations."""
    config: ProjectConfiguration = context["config"]
    violations = config.validate_project()
    if violations:
        return PreflightCheck(
            name="Configuration",
            passed=False,
            message="Configuration validation failed: " + "; ".join(violations),
            severity="error",
            details={"violations": violations},
        )
    return PreflightCheck(name="Configuration", passed=True, message="Configuration is valid")


def create_standard_preflight_checker() -> PreflightChecker:
    """Create a preflight checker with standard checks."""
    checker = PreflightChecker()
    checker.add_check("Required Tools", check_tools)
    checker.add_check("Credential", check_credential)
    checker.add_check("Configuration", check_configuration)
    return checker


@dataclass
class ExecutionPlan:
    """Human-readable execution plan for a sync operation."""

    operation: str
    target: str
    steps: list[str]
    warnings: list[str] = field(default_factory=list)
    destructive: bool = False

    def get_plan_text(self) -> str:
        """Get human-readable plan text."""
        lines = [f"OPERATION: {self.operation}", f"TARGET: {self.target}"]

        if self.warnings:
            lines.append("")
            lines.append("WARNINGS:")
            for warning in self.warnings:
                lines.append(f"   • {warning}")

        lines.append("")
        lines.append("EXECUTION STEPS:")
        for i, step in enumerate(self.steps, 1):
            lines.append(f"   {i}. {step}")

        return "\n".join(lines)
