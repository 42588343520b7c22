"""
SupaSync Core - configuration, errors, logging and the step pipeline.
"""

from supasync.core.config import ProjectConfiguration, load_config
from supasync.core.logging import get_logger, setup_logging
from supasync.core.pipeline import Pipeline, PipelineResult, Step, StepResult, StepStatus
from supasync.core.retry import RetryPolicy
from supasync.core.session import CommandVerb, SyncSession

__all__ = [
    "ProjectConfiguration",
    "load_config",
    "get_logger",
    "setup_logging",
    "Pipeline",
    "PipelineResult",
    "Step",
    "StepResult",
    "StepStatus",
    "RetryPolicy",
    "CommandVerb",
    "SyncSession",
]
