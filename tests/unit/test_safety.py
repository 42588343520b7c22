"""
Tests for supasync.core.safety module.
"""

from pathlib import Path

import pytest

from supasync.core.config import ProjectConfiguration
from supasync.core.errors import PreconditionError
from supasync.core.safety import (
    AutoConfirmer,
    CallbackConfirmer,
    ExecutionPlan,
    PreflightCheck,
    PreflightReport,
    check_configuration,
    check_credential,
    check_tools,
    create_standard_preflight_checker,
)

from conftest import FakeRunner, make_config


class TestConfirmers:
    """Tests for the confirmation capability."""

    def test_auto_confirmer(self) -> None:
        assert AutoConfirmer().confirm("Continue?") is True
        assert AutoConfirmer(answer=False).confirm("Continue?") is False

    def test_callback_confirmer(self) -> None:
        prompts: list[str] = []

        def answer(prompt: str) -> bool:
            prompts.append(prompt)
            return False

        assert CallbackConfirmer(answer).confirm("Reset?") is False
        assert prompts == ["Reset?"]


class TestPreflightReport:
    """Tests for PreflightReport."""

    def test_all_passed(self) -> None:
        report = PreflightReport(
            checks=[
                PreflightCheck(name="Check 1", passed=True, message="OK"),
                PreflightCheck(name="Check 2", passed=True, message="OK"),
            ]
        )
        assert report.all_passed is True
        assert report.has_errors is False
        report.raise_for_errors()

    def test_raise_for_errors(self) -> None:
        report = PreflightReport(
            checks=[
                PreflightCheck(name="Check 1", passed=True, message="OK"),
                PreflightCheck(name="Tools", passed=False, message="psql missing", severity="error"),
            ]
        )
        assert [c.name for c in report.failures] == ["Tools"]
        with pytest.raises(PreconditionError, match="psql missing"):
            report.raise_for_errors()

    def test_summary(self) -> None:
        report = PreflightReport(checks=[PreflightCheck(name="Tools", passed=True, message="OK")])
        assert "1/1 checks passed" in report.get_summary()


class TestPreflightChecks:
    """Tests for the standard preflight checks."""

    def test_missing_tools(self, sample_config: ProjectConfiguration) -> None:
        runner = FakeRunner(missing_tools=("pg_dump",))
        check = check_tools({"runner": runner, "tools": ("git", "pg_dump")})
        assert check.passed is False
        assert check.details["missing"] == ["pg_dump"]

    def test_missing_credential(self, project_dir: Path) -> None:
        config = make_config(project_dir, supabase={"db_password": None})
        check = check_credential({"config": config})
        assert check.passed is False
        assert "SUPABASE_DB_PASSWORD" in check.message

    def test_configuration_violations(self, tmp_path: Path) -> None:
        config = make_config(tmp_path / "missing")
        check = check_configuration({"config": config})
        assert check.passed is False
        assert check.details["violations"]

    def test_standard_checker_passes(self, sample_config: ProjectConfiguration) -> None:
        report = create_standard_preflight_checker().run_checks(
            {"config": sample_config, "runner": FakeRunner(), "tools": ("git", "psql")}
        )
        assert report.all_passed is True
        assert len(report.checks) == 3


class TestExecutionPlan:
    """Tests for ExecutionPlan."""

    def test_plan_text(self) -> None:
        plan = ExecutionPlan(
            operation="reset",
            target="main / abc",
            steps=["ConfirmUnlessForced", "StopBackend"],
            warnings=["Local data is discarded"],
            destructive=True,
        )
        text = plan.get_plan_text()
        assert "OPERATION: reset" in text
        assert "1. ConfirmUnlessForced" in text
        assert "Local data is discarded" in text
