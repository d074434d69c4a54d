"""Playwright-backed page source.

One headless Chromium tab is reused for the whole run. Callers get plain
:class:`PageSnapshot` objects (final URL plus rendered HTML), so extraction
code never touches the browser.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, Optional, Protocol

from playwright.async_api import (
    Browser,
    BrowserContext,
    Page,
    Playwright,
    async_playwright,
)

from .config import DEFAULT_USER_AGENT, DEFAULT_VIEWPORT

LOGGER = logging.getLogger(__name__)

LAUNCH_ARGS = ["--no-sandbox", "--disable-setuid-sandbox"]


@dataclass(frozen=True, slots=True)
class PageSnapshot:
    """Rendered state of a loaded page."""

    url: str
    html: str


class PageSource(Protocol):
    async def load(self, url: str) -> PageSnapshot:
        """Navigate to *url* and return the rendered page."""
        ...


class PlaywrightPageSource:
    """Sequential page loader over a single Playwright tab.

    Example::

        async with PlaywrightPageSource(page_wait=1.0) as pages:
            snapshot = await pages.load("https://example.com/book")
    """

    def __init__(
        self,
        *,
        page_wait: float = 1.0,
        navigation_timeout: float = 30.0,
        headless: bool = True,
        user_agent: str = DEFAULT_USER_AGENT,
        viewport: Optional[Dict[str, int]] = None,
    ):
        self.page_wait = page_wait
        self.navigation_timeout = navigation_timeout
        self.headless = headless
        self.user_agent = user_agent
        self.viewport = dict(viewport or DEFAULT_VIEWPORT)
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None

    async def __aenter__(self) -> "PlaywrightPageSource":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def start(self) -> None:
        LOGGER.info("Launching browser...")
        self._playwright = await async_playwright().start()
        try:
            self._browser = await self._playwright.chromium.launch(
                headless=self.headless,
                args=LAUNCH_ARGS,
            )
            self._context = await self._browser.new_context(
                user_agent=self.user_agent,
                viewport=self.viewport,
            )
            self._page = await self._context.new_page()
            self._page.set_default_navigation_timeout(self.navigation_timeout * 1000)
        except BaseException:
            await self.close()
            raise

    async def load(self, url: str) -> PageSnapshot:
        if self._page is None:
            raise RuntimeError("Page source is not started")
        await self._page.goto(
            url,
            wait_until="domcontentloaded",
            timeout=self.navigation_timeout * 1000,
        )
        if self.page_wait > 0:
            # Give client-side rendering time to populate the records.
            await asyncio.sleep(self.page_wait)
        html = await self._page.content()
        return PageSnapshot(url=self._page.url or url, html=html)

    async def close(self) -> None:
        """Release page, context, browser and driver; safe to call twice."""
        page, context, browser = self._page, self._context, self._browser
        self._page = self._context = self._browser = None
        for resource in (page, context, browser):
            if resource is None:
                continue
            try:
                await resource.close()
            except Exception as exc:
                LOGGER.debug("Ignoring error while closing %r: %s", resource, exc)
        if self._playwright is not None:
            playwright, self._playwright = self._playwright, None
            try:
                await playwright.stop()
            except Exception as exc:
                LOGGER.debug("Ignoring error while stopping playwright: %s", exc)
