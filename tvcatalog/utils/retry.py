"""
Fixed-delay retry loop shared by the playlist and guide schedulers.
"""
import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from tvcatalog.errors import ExhaustedRetryError, FetchError, ParseError


logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (FetchError, ParseError)


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int,
    delay: float,
    resource: str,
    retry_on: tuple[type[BaseException], ...] = RETRYABLE_ERRORS,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run `operation` until it succeeds or `attempts` is used up

    Every failure consumes one attempt, timeouts included. The loop waits
    `delay` seconds between attempts, never after the last one.

    Args:
        operation: Zero-argument coroutine factory performing one attempt
        attempts: Total number of attempts (>= 1)
        delay: Seconds to wait between attempts
        resource: Human-readable name used in logs and the raised error

    Returns:
        The result of the first successful attempt

    Raises:
        ExhaustedRetryError: When every attempt failed with a retryable error
    """
    attempts = max(1, attempts)
    last_error: BaseException | None = None

    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except retry_on as e:
            last_error = e
            if attempt < attempts:
                logger.warning(
                    f"{resource} attempt {attempt}/{attempts} failed: {e}. "
                    f"Retrying in {delay:.1f}s..."
                )
                await sleep(delay)
            else:
                logger.error(f"{resource} failed after {attempts} attempt(s): {e}")

    raise ExhaustedRetryError(resource, attempts, last_error) from last_error
