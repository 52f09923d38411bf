"""
Generic retry-with-backoff.

Shared by the notification dispatcher (failed sends) and the auto-cancel
job (transient transaction conflicts) so retry semantics live in one place.
"""

import asyncio
import logging
import random
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def get_retry_delay(
    attempt: int,
    base_delay: float = 1.0,
    max_delay: float = 1800,
    include_jitter: bool = False,
) -> float:
    """
    Calculate retry delay using exponential backoff with cap.

    Args:
        attempt: Zero-based attempt number (0 = delay after the first failure)
        base_delay: Delay before the first retry, in seconds
        max_delay: Upper bound for the delay, in seconds
        include_jitter: Add random jitter to prevent thundering herd

    Returns:
        Delay in seconds (1, 2, 4, 8, ... with the default base delay)
    """
    delay = min(base_delay * 2**attempt, max_delay)
    if include_jitter:
        # Jitter scales with delay to spread out retries
        delay += random.uniform(0, min(delay * 0.1, 60))
    return float(delay)


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    description: str = "operation",
) -> T:
    """
    Run an async operation, retrying failures with exponential backoff.

    Attempt k (1-based) that fails is followed by a delay of
    base_delay * 2**(k-1) seconds, unless it was the last attempt.

    Args:
        operation: Zero-argument callable returning a fresh awaitable per attempt
        max_attempts: Total number of attempts, including the first
        base_delay: Delay after the first failed attempt, in seconds
        retry_on: Exception types that trigger a retry; others propagate at once
        description: Used in log messages

    Returns:
        The operation's result from the first successful attempt

    Raises:
        The last exception once all attempts have failed
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    for attempt in range(max_attempts):
        try:
            result = await operation()
        except retry_on as e:
            if attempt == max_attempts - 1:
                logger.error(
                    f"{description} failed after {max_attempts} attempt(s): {e}"
                )
                raise
            delay = get_retry_delay(attempt, base_delay=base_delay)
            logger.warning(
                f"{description} attempt {attempt + 1} failed ({e}), "
                f"retrying in {delay:.0f}s"
            )
            await asyncio.sleep(delay)
        else:
            if attempt > 0:
                logger.info(f"{description} succeeded after {attempt + 1} attempt(s)")
            return result

    raise AssertionError("unreachable")
