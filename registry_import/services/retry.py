"""Bounded retry with exponential backoff for batch submissions.

Retries only on BatchTransientError (transport failures, 5xx / 429, endpoint
answering success=false). Anything else propagates on the first attempt.
The sleep function is injected so tests can run with a fake clock.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from .endpoint import BatchTransientError

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]


class RetryExhaustedError(Exception):
    """Raised when every attempt failed with a transient error.

    Attributes:
        attempts: Total number of attempts made.
        last_error: The error from the final attempt.
        history: Errors from every failed attempt, oldest first.
    """

    def __init__(
        self,
        attempts: int,
        last_error: BatchTransientError,
        history: list[BatchTransientError],
    ) -> None:
        self.attempts = attempts
        self.last_error = last_error
        self.history = history
        super().__init__(f"failed after {attempts} attempt(s): {last_error}")


class RetryPolicy:
    """Attempt cap plus exponential backoff (base * 2 ** (attempt - 1))."""

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 0.2,
        sleep: SleepFn | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        if base_delay < 0:
            raise ValueError(f"base_delay must be >= 0, got {base_delay}")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._sleep: SleepFn = sleep if sleep is not None else asyncio.sleep

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after the given failed attempt (1-based)."""
        return self.base_delay * (2 ** (attempt - 1))

    async def run(self, operation: Callable[[], Awaitable[T]], description: str = "operation") -> T:
        """Await operation() until it succeeds or max_attempts is reached.

        Raises:
            RetryExhaustedError: If every attempt raised BatchTransientError.
        """
        history: list[BatchTransientError] = []
        for attempt in range(1, self.max_attempts + 1):
            try:
                result = await operation()
            except BatchTransientError as exc:
                history.append(exc)
                if attempt >= self.max_attempts:
                    break
                delay = self.delay_for(attempt)
                logger.warning(
                    "%s attempt %d/%d failed: %s (retrying in %.2fs)",
                    description,
                    attempt,
                    self.max_attempts,
                    exc,
                    delay,
                )
                await self._sleep(delay)
                continue
            if attempt > 1:
                logger.info("%s succeeded on attempt %d/%d", description, attempt, self.max_attempts)
            return result

        logger.warning("%s gave up after %d attempt(s): %s", description, self.max_attempts, history[-1])
        raise RetryExhaustedError(
            attempts=self.max_attempts,
            last_error=history[-1],
            history=history,
        )
