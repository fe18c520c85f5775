"""Retry utilities for async operations.

A single bounded retry primitive parameterized by attempt count and a delay
function. Provisioning uses a linear backoff, OAuth callback polling uses a
fixed interval, and outbound provider requests use exponential backoff.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

# Default retry configuration
DEFAULT_ATTEMPTS = 2
DEFAULT_BASE_DELAY = 0.2  # seconds

# Maps the 1-based number of the attempt that just failed to a delay in seconds.
DelayFn = Callable[[int], float]
SleepFn = Callable[[float], Awaitable[None]]

T = TypeVar("T")


class RetryCancelledError(Exception):
    """Raised when a retry sequence is superseded before its next attempt."""

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f"Retry cancelled after {attempts} attempt(s)")


def _calculate_delay(attempt: int, base_delay: float = DEFAULT_BASE_DELAY) -> float:
    """Calculate exponential backoff delay for a given attempt.

    Args:
        attempt: Zero-indexed attempt number
        base_delay: Base delay in seconds

    Returns:
        Delay in seconds (base_delay * 2^attempt)
    """
    return base_delay * (2**attempt)


def exponential_backoff(base_delay: float = DEFAULT_BASE_DELAY) -> DelayFn:
    """Delay doubling after every failure, starting at ``base_delay``."""
    return lambda failed_attempt: _calculate_delay(failed_attempt - 1, base_delay)


def linear_backoff(step: float) -> DelayFn:
    """Delay of ``n * step`` after the n-th failed attempt."""
    return lambda failed_attempt: failed_attempt * step


def fixed_interval(interval: float) -> DelayFn:
    """Same delay after every failed attempt."""
    return lambda _failed_attempt: interval


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    attempts: int = DEFAULT_ATTEMPTS,
    exceptions: tuple[type[Exception], ...] = (Exception,),
    base_delay: float = DEFAULT_BASE_DELAY,
    *,
    delay: DelayFn | None = None,
    cancelled: Callable[[], bool] | None = None,
    sleep: SleepFn = asyncio.sleep,
) -> T:
    """Execute async function with bounded retry.

    No delay precedes the first attempt and no delay follows the last one,
    so ``attempts`` calls sleep at most ``attempts - 1`` times.

    Args:
        fn: Async function to execute (typically a lambda or partial)
        attempts: Maximum number of attempts
        exceptions: Tuple of exception types to catch and retry
        base_delay: Base delay in seconds for exponential backoff
        delay: Delay function overriding exponential backoff
        cancelled: Checked before every attempt; when it returns True the
            sequence stops with RetryCancelledError
        sleep: Awaitable sleep used between attempts

    Returns:
        Result from successful function execution

    Raises:
        RetryCancelledError: If ``cancelled`` reports supersession
        The last exception if all attempts fail

    Example:
        profile = await with_retry(
            lambda: store.ensure_profile_exists(user_id, nickname),
            attempts=3,
            exceptions=(ProfileStoreError,),
            delay=linear_backoff(1.0),
        )
    """
    delay_fn = delay or exponential_backoff(base_delay)
    last_error: Exception | None = None

    for attempt in range(1, attempts + 1):
        if cancelled is not None and cancelled():
            raise RetryCancelledError(attempt - 1)
        try:
            return await fn()
        except exceptions as e:
            last_error = e
            if attempt < attempts:
                wait = delay_fn(attempt)
                logger.debug(
                    "Attempt %s/%s failed (%s), retrying in %.0fms",
                    attempt,
                    attempts,
                    type(e).__name__,
                    wait * 1000,
                    extra={"attempt": attempt, "delay_ms": round(wait * 1000)},
                )
                await sleep(wait)

    raise last_error  # type: ignore[misc]
