"""Retry wrapper for flaky browser operations."""

import asyncio
from typing import TYPE_CHECKING, Awaitable, Callable, Optional, TypeVar

import structlog

from .exceptions import StaleElementError

if TYPE_CHECKING:
    from .browser import BrowserSession

logger = structlog.get_logger(__name__, service="extractor")

T = TypeVar("T")


def _is_retryable(error: BaseException) -> bool:
    return getattr(error, "retryable", True)


async def retry_operation(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    delay: float = 1.0,
    browser: Optional["BrowserSession"] = None,
) -> T:
    """
    Run an async operation, retrying on failure with a fixed delay.

    A stale element failure is recovered by refreshing the page when a
    browser is supplied. Errors flagged as non-retryable propagate at once.

    Args:
        operation: Zero-argument coroutine function to run
        max_attempts: Total number of attempts (including the first)
        delay: Seconds to wait between attempts
        browser: Session used to refresh the page after a stale element

    Returns:
        Whatever the operation returns

    Raises:
        Exception: The last error once attempts are exhausted
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    last_error: Optional[BaseException] = None

    for attempt in range(max_attempts):
        try:
            return await operation()
        except Exception as e:
            last_error = e

            if not _is_retryable(e):
                raise

            is_last = attempt == max_attempts - 1
            logger.debug(
                "operation_failed",
                attempt=attempt + 1,
                max_attempts=max_attempts,
                error=str(e),
                error_type=type(e).__name__,
                will_retry=not is_last,
            )

            if isinstance(e, StaleElementError) and browser is not None:
                if is_last:
                    break
                try:
                    await browser.refresh()
                except Exception as refresh_error:
                    logger.warning("stale_refresh_failed", error=str(refresh_error))
            elif is_last:
                raise

            if browser is not None:
                await browser.sleep(delay)
            else:
                await asyncio.sleep(delay)

    raise last_error
