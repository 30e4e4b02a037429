"""Fetcher tests with a mocked browser context; no browser is launched."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from playwright.async_api import Error as PlaywrightError

from config.settings import CrawlerConfig
from pipelines.fetcher import PageFetcher, PageFetchError

ROOT = "https://example.com/"


def _fetcher(context):
    fetcher = PageFetcher(CrawlerConfig(timeout=5))
    fetcher._context = context
    return fetcher


def _tab(evaluated=None, goto_error=None, url=ROOT):
    page = MagicMock()
    page.url = url
    page.goto = AsyncMock(side_effect=goto_error)
    page.evaluate = AsyncMock(return_value=evaluated or {})
    page.close = AsyncMock()
    return page


@pytest.mark.asyncio
async def test_extracts_page_and_filters_links():
    tab = _tab({
        "title": "  Widgets  ",
        "description": "All about widgets",
        "text": "Widgets are small.",
        "hrefs": ["/about", "mailto:a@example.com", "https://other.org/", "/about#team"],
    })
    context = MagicMock()
    context.new_page = AsyncMock(return_value=tab)

    page = await _fetcher(context).fetch(ROOT, ROOT)

    assert page.title == "Widgets"
    assert page.description == "All about widgets"
    assert page.text == "Widgets are small."
    assert page.links == ["https://example.com/about"]
    tab.goto.assert_awaited_once_with(ROOT, wait_until="networkidle", timeout=5000)
    tab.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_navigation_error_becomes_page_fetch_error():
    tab = _tab(goto_error=PlaywrightError("net::ERR_NAME_NOT_RESOLVED"))
    context = MagicMock()
    context.new_page = AsyncMock(return_value=tab)

    with pytest.raises(PageFetchError, match="ERR_NAME_NOT_RESOLVED"):
        await _fetcher(context).fetch(ROOT, ROOT)
    tab.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_tab_open_error_becomes_page_fetch_error():
    context = MagicMock()
    context.new_page = AsyncMock(side_effect=PlaywrightError("Target page, context or browser has been closed"))

    with pytest.raises(PageFetchError, match="has been closed"):
        await _fetcher(context).fetch(ROOT, ROOT)
