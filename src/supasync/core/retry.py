"""
Bounded retry policy shared by readiness polling and port rechecks.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

from supasync.core.logging import get_logger

logger = get_logger(__name__)

Sleeper = Callable[[float], None]


@dataclass(frozen=True)
class RetryPolicy:
    """Poll a predicate a bounded number of times with a fixed or growing delay."""

    max_attempts: int
    delay: float
    backoff: float = 1.0
    initial_delay: float = 0.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.delay < 0 or self.initial_delay < 0:
            raise ValueError("delays must not be negative")
        if self.backoff < 1.0:
            raise ValueError("backoff must be >= 1.0")

    @property
    def max_wait_seconds(self) -> float:
        """Upper bound on time spent sleeping."""
        total = self.initial_delay
        delay = self.delay
        for _ in range(self.max_attempts - 1):
            total += delay
            delay *= self.backoff
        return total

    def wait_until(
        self,
        predicate: Callable[[], bool],
        sleep: Sleeper = time.sleep,
        description: str = "condition",
    ) -> bool:
        """
        Return True as soon as ``predicate`` holds, False once attempts run out.
        """
        if self.initial_delay:
            sleep(self.initial_delay)

        delay = self.delay
        for attempt in range(1, self.max_attempts + 1):
            if predicate():
                logger.debug("Retry predicate satisfied", description=description, attempt=attempt)
                return True
            if attempt < self.max_attempts:
                sleep(delay)
                delay *= self.backoff

        logger.warning(
            "Retry attempts exhausted",
            description=description,
            attempts=self.max_attempts,
        )
        return False
