"""Playwright browser session scoped to one scrape invocation.

Each render opens its own Chromium process, context and page, captures
the DOM plus any XHR/fetch bodies served from the vendor's own origin,
and tears everything down on exit, whether the render succeeded, timed
out or was cancelled.
"""

import asyncio
from typing import Dict, List, Optional, Set
from urllib.parse import urlparse

import structlog
from playwright.async_api import (
    Browser,
    BrowserContext,
    Page,
    Playwright,
    Response,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from goldwatch.scrapers.base import FetchedDocument
from goldwatch.scrapers.utils.retry import RetryableStatusError
from goldwatch.scrapers.utils.user_agents import DEFAULT_ACCEPT_LANGUAGE, get_chrome_user_agent

logger = structlog.get_logger()


# Collects the text of elements that look like price cards
TEXT_BLOCKS_JS = """
() => {
    const results = [];
    const elements = document.querySelectorAll(
        '[class*="card"], [class*="price"], [class*="vendor"], [class*="product"]'
    );
    elements.forEach(el => {
        const text = el.innerText || el.textContent;
        if (text && (text.includes('Rp') || text.includes('gram'))) {
            results.push(text);
        }
    });
    return results;
}
"""


# Minimal stealth JS to mask automation signals
STEALTH_JS = """
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
Object.defineProperty(navigator, 'languages', { get: () => ['id-ID', 'id', 'en-US', 'en'] });
Object.defineProperty(navigator, 'plugins', { get: () => [1, 2, 3, 4, 5] });
window.chrome = { runtime: {} };
"""


def _site_domain(host: str) -> str:
    host = host.lower().split(":")[0]
    return host[4:] if host.startswith("www.") else host


def is_same_origin(response_url: str, page_url: str) -> bool:
    """True when response_url is served by the vendor site or one of its subdomains."""
    response_host = _site_domain(urlparse(response_url).netloc)
    site = _site_domain(urlparse(page_url).netloc)
    if not response_host or not site:
        return False
    return response_host == site or response_host.endswith("." + site)


class BrowserSession:
    """Async context manager owning one headless Chromium instance.

    Usage:
        async with BrowserSession(user_agent=ua) as session:
            document = await session.render(url, timeout=30, settle_delay=8)
    """

    def __init__(
        self,
        headless: bool = True,
        user_agent: Optional[str] = None,
        block_resources: bool = True,
    ):
        self._headless = headless
        self._user_agent = user_agent or get_chrome_user_agent()
        self._block_resources = block_resources
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None
        self._target_url: str = ""
        self._api_bodies: Dict[str, str] = {}
        self._body_tasks: Set[asyncio.Task] = set()

    async def __aenter__(self) -> "BrowserSession":
        try:
            await self._start()
        except BaseException:
            await self.close()
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _start(self) -> None:
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self._headless,
            args=[
                "--disable-blink-features=AutomationControlled",
                "--disable-dev-shm-usage",
                "--no-sandbox",
            ],
        )
        self._context = await self._browser.new_context(
            user_agent=self._user_agent,
            viewport={"width": 1920, "height": 1080},
            locale="id-ID",
            timezone_id="Asia/Jakarta",
            extra_http_headers={"Accept-Language": DEFAULT_ACCEPT_LANGUAGE},
            java_script_enabled=True,
        )
        await self._context.add_init_script(STEALTH_JS)

        # Block heavy resources for speed
        if self._block_resources:
            await self._context.route(
                "**/*.{png,jpg,jpeg,gif,svg,webp,woff,woff2,ttf,eot}",
                lambda route: route.abort(),
            )

        self._page = await self._context.new_page()
        self._page.on("response", self._on_response)
        logger.info("browser_session_started", headless=self._headless)

    def _on_response(self, response: Response) -> None:
        """Queue body capture for XHR/fetch responses from the vendor origin."""
        if response.request.resource_type not in ("xhr", "fetch"):
            return
        if not self._target_url or not is_same_origin(response.url, self._target_url):
            return
        task = asyncio.ensure_future(self._capture_body(response))
        self._body_tasks.add(task)
        task.add_done_callback(self._body_tasks.discard)

    async def _capture_body(self, response: Response) -> None:
        try:
            body = await response.text()
        except Exception as e:
            # Redirects and aborted requests have no body
            logger.debug("api_body_unavailable", url=response.url, error=str(e))
            return
        self._api_bodies[response.url] = body
        logger.debug("api_response_captured", url=response.url, size=len(body))

    async def _drain_body_tasks(self) -> None:
        if self._body_tasks:
            await asyncio.gather(*list(self._body_tasks), return_exceptions=True)

    async def render(
        self,
        url: str,
        timeout: float = 30.0,
        settle_delay: float = 8.0,
        wait_for_network_idle: bool = True,
    ) -> FetchedDocument:
        """Navigate to url and capture DOM, text blocks and API bodies.

        Args:
            url: Vendor page URL
            timeout: Navigation timeout in seconds
            settle_delay: Fixed wait after load for client-side rendering
            wait_for_network_idle: Also wait (bounded by timeout) for network idle

        Raises:
            RetryableStatusError: Navigation returned a non-2xx status
            playwright TimeoutError / Error: Navigation failed
        """
        if self._page is None:
            raise RuntimeError("BrowserSession must be entered before render()")

        self._target_url = url
        self._api_bodies.clear()
        page = self._page

        logger.info("browser_navigating", url=url)
        response = await page.goto(url, wait_until="domcontentloaded", timeout=timeout * 1000)
        status_code = response.status if response else 200
        if response is not None and not response.ok:
            raise RetryableStatusError(url, response.status)

        if wait_for_network_idle:
            try:
                await page.wait_for_load_state("networkidle", timeout=timeout * 1000)
            except PlaywrightTimeoutError:
                logger.warning("network_idle_timeout", url=url, timeout=timeout)

        if settle_delay > 0:
            await asyncio.sleep(settle_delay)

        await self._drain_body_tasks()

        html = await page.content()
        text_blocks: List[str] = await page.evaluate(TEXT_BLOCKS_JS) or []

        logger.info(
            "browser_render_complete",
            url=url,
            html_length=len(html),
            api_responses=len(self._api_bodies),
            text_blocks=len(text_blocks),
        )
        return FetchedDocument(
            url=url,
            html=html,
            status_code=status_code,
            api_bodies=dict(self._api_bodies),
            text_blocks=[str(block) for block in text_blocks],
            rendered=True,
        )

    async def close(self) -> None:
        """Close page, context, browser and Playwright. Safe to call twice."""
        for task in list(self._body_tasks):
            task.cancel()
        self._body_tasks.clear()

        if self._page is not None:
            self._page.remove_listener("response", self._on_response)

        for name, closer in (
            ("page", self._page),
            ("context", self._context),
            ("browser", self._browser),
        ):
            if closer is None:
                continue
            try:
                await closer.close()
            except Exception as e:
                logger.warning("browser_close_failed", resource=name, error=str(e))

        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception as e:
                logger.warning("playwright_stop_failed", error=str(e))

        if self._browser is not None:
            logger.info("browser_session_closed")

        self._page = None
        self._context = None
        self._browser = None
        self._playwright = None
