"""
SupaSync Step Pipeline.

Runs the steps of a sync operation strictly in order with fail-stop
semantics, best-effort steps and a structured result.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from supasync.core.errors import OperationCancelled, PartialSyncFailure, SyncError
from supasync.core.logging import get_logger

logger = get_logger(__name__)


class StepStatus(Enum):
    """Status of a pipeline step."""

    PENDING = "pending"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    WARNED = "warned"
    FAILED = "failed"
    CANCELLED = "cancelled"


class StepSkipped(Exception):
    """Raised by a step action that has nothing to do."""


@dataclass
class Step:
    """One named unit of work in a pipeline."""

    name: str
    action: Callable[[], str | None]
    best_effort: bool = False
    mutating: bool = False


@dataclass
class StepResult:
    """Outcome of a single step."""

    name: str
    status: StepStatus = StepStatus.PENDING
    message: str = ""
    error: BaseException | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None

    @property
    def duration_seconds(self) -> float | None:
        if self.start_time and self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return None

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "status": self.status.value,
            "message": self.message,
            "error": str(self.error) if self.error else None,
            "duration_seconds": self.duration_seconds,
        }


@dataclass
class PipelineResult:
    """Result of a whole pipeline run."""

    operation: str
    steps: list[StepResult] = field(default_factory=list)
    error: SyncError | None = None
    cancelled: bool = False

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def completed_steps(self) -> list[str]:
        return [s.name for s in self.steps if s.status == StepStatus.COMPLETED]

    @property
    def failed_step(self) -> str | None:
        for step in self.steps:
            if step.status == StepStatus.FAILED:
                return step.name
        return None

    @property
    def warnings(self) -> list[str]:
        return [f"{s.name}: {s.message}" for s in self.steps if s.status == StepStatus.WARNED]

    def step(self, name: str) -> StepResult | None:
        for step in self.steps:
            if step.name == name:
                return step
        return None

    def to_dict(self) -> dict[str, object]:
        return {
            "operation": self.operation,
            "success": self.success,
            "cancelled": self.cancelled,
            "failed_step": self.failed_step,
            "error": str(self.error) if self.error else None,
            "steps": [s.to_dict() for s in self.steps],
        }


class Pipeline:
    """Executes steps sequentially; no step starts before the previous returns."""

    def __init__(self, operation: str, on_step: Callable[[StepResult], None] | None = None) -> None:
        self.operation = operation
        self.on_step = on_step

    def run(self, steps: list[Step]) -> PipelineResult:
        result = PipelineResult(operation=self.operation)
        mutated = False

        logger.info("Pipeline started", operation=self.operation, steps=[s.name for s in steps])

        for step in steps:
            step_result = StepResult(name=step.name, start_time=datetime.now())
            result.steps.append(step_result)

            try:
                step_result.message = step.action() or ""
                step_result.status = StepStatus.COMPLETED
                if step.mutating:
                    mutated = True

            except StepSkipped as e:
                step_result.status = StepStatus.SKIPPED
                step_result.message = str(e)

            except OperationCancelled as e:
                step_result.status = StepStatus.CANCELLED
                step_result.message = str(e)
                result.cancelled = True

            except Exception as e:
                error = e if isinstance(e, SyncError) else SyncError(f"{type(e).__name__}: {e}")
                if error is not e:
                    error.__cause__ = e
                step_result.error = error
                step_result.message = str(error)
                if step.best_effort:
                    step_result.status = StepStatus.WARNED
                    logger.warning("Step failed, continuing", step=step.name, error=str(error))
                else:
                    step_result.status = StepStatus.FAILED
                    if mutated:
                        failure = PartialSyncFailure(result.completed_steps, step.name, error)
                        failure.__cause__ = error
                        result.error = failure
                    else:
                        result.error = error
                    logger.error("Step failed", step=step.name, error=str(error))

            finally:
                step_result.end_time = datetime.now()
                if self.on_step:
                    self.on_step(step_result)

            if step_result.status == StepStatus.COMPLETED:
                logger.info(
                    "Step completed",
                    step=step.name,
                    duration_seconds=step_result.duration_seconds,
                )

            if result.cancelled or result.error is not None:
                break

        logger.info(
            "Pipeline finished",
            operation=self.operation,
            success=result.success,
            cancelled=result.cancelled,
        )
        return result
