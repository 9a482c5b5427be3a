"""Playwright browser launcher.

Every bootstrap gets its own browser process: a headless one for searching
and a visible one for interactive login. They never share state except
through the cookie store.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog
from playwright.async_api import async_playwright

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from playwright.async_api import BrowserContext, Page

    from rednote.config import BrowserSettings

log = structlog.get_logger()

_CHROMIUM_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--no-sandbox",
]


class PlaywrightLauncher:
    """Launches Chromium and yields a single configured context."""

    def __init__(self, settings: BrowserSettings) -> None:
        self._settings = settings

    @asynccontextmanager
    async def open_context(self, *, headless: bool) -> AsyncIterator[BrowserContext]:
        async with async_playwright() as playwright:
            browser = await playwright.chromium.launch(headless=headless, args=_CHROMIUM_ARGS)
            log.debug("browser_launched", headless=headless)
            try:
                context = await browser.new_context(
                    user_agent=self._settings.user_agent,
                    viewport={
                        "width": self._settings.viewport_width,
                        "height": self._settings.viewport_height,
                    },
                )
                try:
                    yield context
                finally:
                    await context.close()
            finally:
                await browser.close()
                log.debug("browser_closed", headless=headless)


async def close_page(page: Page, **log_context: object) -> None:
    """Close a tab, logging rather than raising if the browser already went away."""
    try:
        await page.close()
    except Exception:
        log.warning("page_close_failed", exc_info=True, **log_context)
