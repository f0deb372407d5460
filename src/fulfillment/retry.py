"""
Retrying fulfillment attempts that lost a race.

A fulfillment attempt that loses a concurrent stock update raises
ConflictError and leaves no trace in storage, so running it again from the
start is always safe. ``retry_async`` does that with jittered exponential
backoff. Anything not listed as retryable propagates from the first attempt.
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from fulfillment.exceptions import ConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_EXCEPTIONS: tuple[type[Exception], ...] = (ConflictError,)


@dataclass(frozen=True)
class RetryConfig:
    """
    Bounds for retrying conflicted attempts.

    Attributes:
        max_retries: Retries after the first attempt (0 disables retrying)
        initial_delay: Seconds to wait before the first retry
        max_delay: Cap on the wait between retries
        exponential_base: Growth factor of the wait per retry
        jitter: Random spread applied to each wait, as a fraction of it (0-1)
    """

    max_retries: int = 3
    initial_delay: float = 0.01
    max_delay: float = 0.5
    exponential_base: float = 2.0
    jitter: float = 0.1

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError(
                f"max_retries must be >= 0, got {self.max_retries}. Use 0 for no retries."
            )
        if self.initial_delay <= 0:
            raise ValueError(f"initial_delay must be positive, got {self.initial_delay}.")
        if self.max_delay < self.initial_delay:
            raise ValueError(
                f"max_delay ({self.max_delay}) must be >= initial_delay ({self.initial_delay})."
            )
        if self.exponential_base <= 1.0:
            raise ValueError(f"exponential_base must be > 1.0, got {self.exponential_base}.")
        if not 0.0 <= self.jitter <= 1.0:
            raise ValueError(f"jitter must be between 0.0 and 1.0, got {self.jitter}.")


@dataclass
class RetryStats:
    """Counters collected over one ``retry_async`` call."""

    attempts: int = 0
    successes: int = 0
    failures: int = 0
    total_delay_seconds: float = 0.0
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempts": self.attempts,
            "successes": self.successes,
            "failures": self.failures,
            "total_delay_seconds": self.total_delay_seconds,
            "last_error": self.last_error,
        }


class RetryError(Exception):
    """
    Every attempt failed with a retryable error.

    Attributes:
        attempts: Attempts made, the first one included
        last_error: Exception raised by the final attempt
        stats: Counters for the whole call
    """

    def __init__(
        self,
        message: str,
        attempts: int,
        last_error: Exception,
        stats: RetryStats | None = None,
    ) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error
        self.stats = stats or RetryStats(attempts=attempts, failures=attempts)


def calculate_backoff(attempt: int, config: RetryConfig) -> float:
    """
    Seconds to wait after the 0-based ``attempt`` failed.

    Example:
        >>> config = RetryConfig(initial_delay=0.01, max_delay=0.5, jitter=0.0)
        >>> calculate_backoff(2, config)
        0.04
    """
    delay = min(config.initial_delay * config.exponential_base**attempt, config.max_delay)
    spread = delay * config.jitter
    delay += random.uniform(-spread, spread)  # nosec B311 - not crypto
    return max(0.0, delay)


async def retry_async(
    operation: Callable[[int], Awaitable[T]],
    config: RetryConfig | None = None,
    retryable_exceptions: tuple[type[Exception], ...] = RETRYABLE_EXCEPTIONS,
    operation_name: str = "operation",
) -> T:
    """
    Run ``operation`` until it succeeds or the retries run out.

    Args:
        operation: Coroutine function called with the 1-based attempt number
        config: Retry bounds (defaults if None)
        retryable_exceptions: Exception types that trigger another attempt
        operation_name: Label used in log records

    Raises:
        RetryError: If the last allowed attempt also failed with a retryable error
    """
    config = config or RetryConfig()
    stats = RetryStats()
    last_error: Exception | None = None

    for attempt in range(1, config.max_retries + 2):
        stats.attempts = attempt
        try:
            result = await operation(attempt)
        except retryable_exceptions as e:
            last_error = e
            stats.failures += 1
            stats.last_error = str(e)
            if attempt > config.max_retries:
                break

            delay = calculate_backoff(attempt - 1, config)
            stats.total_delay_seconds += delay
            logger.warning(
                "%s attempt %d failed with %s, retrying in %.3fs",
                operation_name,
                attempt,
                type(e).__name__,
                delay,
                extra={
                    "operation": operation_name,
                    "attempt": attempt,
                    "max_retries": config.max_retries,
                    "delay_seconds": delay,
                    "error_type": type(e).__name__,
                },
            )
            await asyncio.sleep(delay)
            continue

        stats.successes += 1
        if attempt > 1:
            logger.info(
                "%s succeeded on attempt %d",
                operation_name,
                attempt,
                extra={"operation": operation_name, "attempt": attempt},
            )
        return result

    assert last_error is not None
    raise RetryError(
        f"{operation_name} failed after {stats.attempts} attempts: {last_error}",
        attempts=stats.attempts,
        last_error=last_error,
        stats=stats,
    )


__all__ = [
    "RETRYABLE_EXCEPTIONS",
    "RetryConfig",
    "RetryStats",
    "RetryError",
    "calculate_backoff",
    "retry_async",
]
