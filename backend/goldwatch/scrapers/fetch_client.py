"""HTTP and headless-browser fetching of vendor pages.

Both paths share the same linear retry policy and raise FetchError once
every attempt has failed. A failed fetch never returns partial content.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import httpx
import structlog
from tenacity import RetryError

from goldwatch.core.exceptions import FetchError
from goldwatch.scrapers.base import FetchedDocument
from goldwatch.scrapers.utils.browser_manager import BrowserSession
from goldwatch.scrapers.utils.retry import (
    BROWSER_RETRY_EXCEPTIONS,
    HTTP_RETRY_EXCEPTIONS,
    RetryableStatusError,
    linear_retry,
)
from goldwatch.scrapers.utils.user_agents import (
    DEFAULT_ACCEPT,
    DEFAULT_ACCEPT_LANGUAGE,
    build_request_headers,
)

logger = structlog.get_logger(__name__)


@dataclass
class FetchConfig:
    """Injected fetch settings (see Settings.fetch_config())."""

    timeout: float = 30.0
    user_agent: Optional[str] = None  # None picks a random realistic UA
    max_retries: int = 3
    backoff_base: float = 2.0
    settle_delay: float = 8.0
    wait_for_network_idle: bool = True
    headless: bool = True
    accept: str = DEFAULT_ACCEPT
    accept_language: str = DEFAULT_ACCEPT_LANGUAGE


SessionFactory = Callable[[FetchConfig], BrowserSession]


def _default_session_factory(config: FetchConfig) -> BrowserSession:
    return BrowserSession(headless=config.headless, user_agent=config.user_agent)


class FetchClient:
    """Fetches vendor pages over plain HTTP or through a headless browser.

    The httpx client and browser sessions are created per call, so
    concurrent scrapes never share connection or browser state.
    """

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        session_factory: Optional[SessionFactory] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        """Initialize the fetch client.

        Args:
            transport: Optional httpx transport (tests use httpx.MockTransport)
            session_factory: Builds a BrowserSession for render()
            sleep: Optional sleep coroutine used between retries
        """
        self._transport = transport
        self._session_factory = session_factory or _default_session_factory
        self._sleep = sleep
        self.logger = logger.bind(service="fetch_client")

    async def fetch(self, url: str, config: Optional[FetchConfig] = None) -> FetchedDocument:
        """GET a vendor page with retry.

        Raises:
            FetchError: exhausted=True after every attempt failed
        """
        config = config or FetchConfig()
        headers = build_request_headers(config.user_agent, config.accept, config.accept_language)
        last_status: Optional[int] = None

        async with httpx.AsyncClient(
            timeout=config.timeout,
            headers=headers,
            follow_redirects=True,
            transport=self._transport,
        ) as client:

            async def attempt() -> FetchedDocument:
                nonlocal last_status
                self.logger.info("fetching_url", url=url)
                response = await client.get(url)
                last_status = response.status_code
                response.raise_for_status()
                return FetchedDocument(url=str(response.url), html=response.text, status_code=response.status_code)

            try:
                return await self._run_with_retry(attempt, config, HTTP_RETRY_EXCEPTIONS)
            except HTTP_RETRY_EXCEPTIONS as e:
                self.logger.error("fetch_exhausted", url=url, status_code=last_status, error=str(e))
                raise FetchError(
                    url,
                    _describe(e),
                    exhausted=True,
                    status_code=last_status,
                    last_error=e,
                ) from e

    async def render(self, url: str, config: Optional[FetchConfig] = None) -> FetchedDocument:
        """Render a JavaScript-driven vendor page in a headless browser.

        Every attempt runs in its own BrowserSession, which is closed before
        the next attempt or on timeout / cancellation.

        Raises:
            FetchError: exhausted=True after every attempt failed
        """
        config = config or FetchConfig()
        last_status: Optional[int] = None
        # Navigation + network idle + settle delay, plus slack for startup
        overall_timeout = config.timeout * 2 + config.settle_delay + 15

        async def attempt() -> FetchedDocument:
            nonlocal last_status
            async with self._session_factory(config) as session:
                try:
                    return await asyncio.wait_for(
                        session.render(
                            url,
                            timeout=config.timeout,
                            settle_delay=config.settle_delay,
                            wait_for_network_idle=config.wait_for_network_idle,
                        ),
                        timeout=overall_timeout,
                    )
                except RetryableStatusError as e:
                    last_status = e.status_code
                    raise

        try:
            return await self._run_with_retry(attempt, config, BROWSER_RETRY_EXCEPTIONS)
        except BROWSER_RETRY_EXCEPTIONS as e:
            self.logger.error("render_exhausted", url=url, status_code=last_status, error=str(e))
            raise FetchError(
                url,
                _describe(e),
                exhausted=True,
                status_code=last_status,
                last_error=e,
            ) from e

    async def _run_with_retry(self, attempt, config: FetchConfig, retry_on):
        retrying = linear_retry(
            max_retries=config.max_retries,
            backoff_base=config.backoff_base,
            retry_on=retry_on,
            sleep=self._sleep,
        )
        try:
            return await retrying(attempt)
        except RetryError as e:
            # reraise=True normally surfaces the original error
            raise e.last_attempt.exception() from e


def _describe(error: BaseException) -> str:
    if isinstance(error, httpx.HTTPStatusError):
        return f"unexpected status code {error.response.status_code}"
    if isinstance(error, asyncio.TimeoutError):
        return "timed out"
    return str(error) or type(error).__name__
