"""Headless browser page fetching and extraction.

Pages are rendered with Playwright (Chromium) so that client-side content
is present before the title, description, visible text and anchors are
read.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional

from playwright.async_api import Browser, BrowserContext, Error as PlaywrightError, async_playwright

from config.settings import CrawlerConfig
from observability.logging import log_performance
from observability.metrics import page_fetch_duration
from .urls import filter_links

logger = logging.getLogger(__name__)

# Raw anchors read from the DOM before same-domain filtering
MAX_RAW_LINKS = 500

EXTRACT_SCRIPT = """
(maxLinks) => {
    const meta = document.querySelector('meta[name="description"]');
    return {
        title: document.title || '',
        description: meta ? (meta.getAttribute('content') || '') : '',
        text: document.body ? (document.body.innerText || '') : '',
        hrefs: Array.from(document.querySelectorAll('a[href]'))
            .map(a => a.getAttribute('href'))
            .filter(href => !!href)
            .slice(0, maxLinks)
    };
}
"""

BROWSER_ARGS = [
    '--no-sandbox',
    '--disable-setuid-sandbox',
    '--disable-dev-shm-usage',
    '--disable-accelerated-2d-canvas',
    '--no-first-run',
    '--no-zygote',
    '--disable-gpu',
]


class PageFetchError(Exception):
    """Raised when a page cannot be navigated to or extracted."""
    pass


@dataclass
class PageData:
    """What the crawler keeps from a rendered page."""
    url: str
    title: str = ""
    description: str = ""
    text: str = ""
    links: List[str] = field(default_factory=list)


class PageFetcher:
    """Renders pages in a shared headless browser, one tab per fetch."""

    def __init__(self, config: Optional[CrawlerConfig] = None, headless: bool = True):
        self.config = config or CrawlerConfig()
        self.headless = headless
        self._playwright = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def start(self) -> None:
        """Launch the browser if it is not running yet."""
        if self._context is not None:
            return
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(headless=self.headless, args=BROWSER_ARGS)
        self._context = await self._browser.new_context(user_agent=self.config.user_agent)
        logger.info("Headless browser started")

    async def close(self) -> None:
        """Close the browser and stop Playwright."""
        try:
            if self._context is not None:
                await self._context.close()
            if self._browser is not None:
                await self._browser.close()
        finally:
            self._context = None
            self._browser = None
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None
                logger.info("Headless browser closed")

    @log_performance(threshold_ms=15000)
    async def fetch(self, url: str, root_url: str, timeout: Optional[float] = None) -> PageData:
        """Render ``url`` and extract its content and same-domain links.

        Args:
            url: Page to fetch
            root_url: Crawl root; links outside its registrable domain are dropped
            timeout: Navigation timeout in seconds (defaults to the config value)

        Raises:
            PageFetchError: on navigation timeout or render/extraction failure
        """
        await self.start()
        timeout_ms = (timeout if timeout is not None else self.config.timeout) * 1000
        start_time = time.monotonic()

        page = None
        try:
            page = await self._context.new_page()
            page.set_default_timeout(timeout_ms)
            await page.goto(url, wait_until="networkidle", timeout=timeout_ms)
            data = await page.evaluate(EXTRACT_SCRIPT, MAX_RAW_LINKS)
            final_url = page.url or url
        except PlaywrightError as e:
            raise PageFetchError(f"Failed to load {url}: {e}") from e
        finally:
            page_fetch_duration.observe(time.monotonic() - start_time)
            if page is not None:
                try:
                    await page.close()
                except PlaywrightError as e:
                    logger.debug(f"Error closing tab for {url}: {e}")

        links = filter_links(data.get("hrefs") or [], final_url, root_url, self.config.max_links_per_page)
        logger.debug(f"Fetched {url}: {len(data.get('text') or '')} chars, {len(links)} links")

        return PageData(
            url=url,
            title=(data.get("title") or "").strip(),
            description=(data.get("description") or "").strip(),
            text=data.get("text") or "",
            links=links,
        )
