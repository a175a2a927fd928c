"""Retry policy for external model calls.

with_retry() re-invokes an async operation on failure, up to a fixed number
of total attempts, sleeping between attempts. The delay is fixed by default;
exponential backoff and jitter are opt-in because they change observable
timing.

Every failure is retried identically except the NON_RETRYABLE_ERRORS
(configuration, invalid input, unparseable response), which surface at once.
"""

import asyncio
import random
from typing import Awaitable, Callable, Optional, TypeVar

from pantry_ai.utils.errors import NON_RETRYABLE_ERRORS
from pantry_ai.utils.logger import logger

T = TypeVar("T")


def compute_delay(
    attempt: int,
    delay_seconds: float,
    exponential_backoff: bool = False,
    jitter: bool = False,
) -> float:
    """Delay to sleep after the given (1-based) failed attempt.

    Args:
        attempt: Number of the attempt that just failed (1 = first attempt).
        delay_seconds: Base delay.
        exponential_backoff: Double the delay after each failed attempt.
        jitter: Randomize the delay uniformly in [0, delay].

    Returns:
        Delay in seconds.
    """
    delay = delay_seconds * (2 ** (attempt - 1)) if exponential_backoff else delay_seconds
    if jitter:
        delay = random.uniform(0, delay)
    return delay


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    retries: int = 3,
    delay_seconds: float = 1.0,
    exponential_backoff: bool = False,
    jitter: bool = False,
    operation_name: str = "operation",
) -> T:
    """Run an async operation, retrying on failure.

    Args:
        operation: Zero-argument callable returning a fresh awaitable per attempt.
        retries: Total number of attempts (default: 3).
        delay_seconds: Delay between attempts (default: 1s, fixed).
        exponential_backoff: Double the delay after each failure (default: False).
        jitter: Randomize each delay (default: False).
        operation_name: Label used in log messages.

    Returns:
        Result of the first successful attempt.

    Raises:
        ValueError: If retries < 1.
        Exception: The last error once all attempts are exhausted, or a
            non-retryable error immediately.
    """
    if retries < 1:
        raise ValueError(f"retries must be at least 1, got: {retries}")

    last_exception: Optional[BaseException] = None
    for attempt in range(1, retries + 1):
        try:
            return await operation()
        except NON_RETRYABLE_ERRORS:
            raise
        except Exception as e:
            last_exception = e
            if attempt == retries:
                break
            delay = compute_delay(attempt, delay_seconds, exponential_backoff, jitter)
            logger.debug(
                f"{operation_name} failed (attempt {attempt}/{retries}), retrying in {delay:.2f}s: {e}",
                extra={"operation": operation_name, "attempt": attempt},
            )
            await asyncio.sleep(delay)

    logger.warning(
        f"{operation_name} exhausted all {retries} attempts: {last_exception}",
        extra={"operation": operation_name, "attempt": retries},
    )
    raise last_exception
