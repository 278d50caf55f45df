"""Retry policy for vendor page fetches and whole scrape runs.

Backoff is linear (attempt * backoff_base: 2s, 4s, 6s with the defaults),
not exponential. Vendor pages are small and rate limits are lenient, so a
short predictable schedule keeps a failing run bounded.
"""

import asyncio
from typing import Awaitable, Callable, Optional, Tuple, Type

import httpx
import structlog
from playwright.async_api import Error as PlaywrightError, TimeoutError as PlaywrightTimeoutError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)


logger = structlog.get_logger(__name__)


class RetryableStatusError(Exception):
    """Non-2xx response from a browser navigation (httpx has HTTPStatusError)."""

    def __init__(self, url: str, status_code: int):
        self.url = url
        self.status_code = status_code
        super().__init__(f"Unexpected status code {status_code} for {url}")


# Errors worth another attempt for plain HTTP fetches
HTTP_RETRY_EXCEPTIONS: Tuple[Type[BaseException], ...] = (
    httpx.HTTPStatusError,
    httpx.TransportError,  # ConnectError, ReadTimeout, ConnectTimeout, ...
)

# Errors worth another attempt for headless browser renders
BROWSER_RETRY_EXCEPTIONS: Tuple[Type[BaseException], ...] = (
    PlaywrightError,
    PlaywrightTimeoutError,
    asyncio.TimeoutError,
    RetryableStatusError,
)


def _before_sleep_logger(event: str) -> Callable[[RetryCallState], None]:
    def log(retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            event,
            attempt=retry_state.attempt_number,
            sleep_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
            error=str(exc) if exc else None,
        )

    return log


def linear_retry(
    max_retries: int,
    backoff_base: float,
    retry_on: Tuple[Type[BaseException], ...] = HTTP_RETRY_EXCEPTIONS,
    sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    log_event: str = "fetch_retry_scheduled",
) -> AsyncRetrying:
    """Build an AsyncRetrying controller with linear backoff.

    Args:
        max_retries: Retries after the first attempt (total attempts = max_retries + 1)
        backoff_base: Seconds added per attempt; 0 disables waiting
        retry_on: Exception types that trigger another attempt
        sleep: Optional sleep coroutine (tests pass a no-op)
        log_event: structlog event name for each scheduled retry

    Returns:
        AsyncRetrying that re-raises the last exception when exhausted
    """
    kwargs = {}
    if sleep is not None:
        kwargs["sleep"] = sleep

    return AsyncRetrying(
        stop=stop_after_attempt(max(0, max_retries) + 1),
        wait=wait_incrementing(start=backoff_base, increment=backoff_base),
        retry=retry_if_exception_type(retry_on),
        before_sleep=_before_sleep_logger(log_event),
        reraise=True,
        **kwargs,
    )
