"""Search pipeline: session → listing → link discovery → detail fetch.

One ``search`` call owns at most three short-lived browsers: a headless one
that tries the saved session, a visible one for interactive login if that
fails, and a second headless one that re-verifies the fresh login before
searching. Session state only changes between those browsers, never while a
detail batch is running.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from rednote.browser import close_page
from rednote.discovery import auto_scroll, extract_links
from rednote.errors import SessionUnavailable
from rednote.site import FEED_CONTAINER_SELECTOR, search_url

if TYPE_CHECKING:
    from playwright.async_api import BrowserContext, Page

    from rednote.config import Settings
    from rednote.details import DetailFetcher
    from rednote.models.notes import DetailRecord
    from rednote.protocols import ContextLauncher
    from rednote.session import SessionManager

log = structlog.get_logger()


class SearchPipeline:
    """Runs one Xiaohongshu search end to end."""

    def __init__(
        self,
        settings: Settings,
        launcher: ContextLauncher,
        session: SessionManager,
        fetcher: DetailFetcher,
    ) -> None:
        self._settings = settings
        self._launcher = launcher
        self._session = session
        self._fetcher = fetcher
        self._cancel_login = asyncio.Event()

    def cancel_login(self) -> None:
        """Abort a pending interactive login; the search then fails with SessionUnavailable."""
        self._cancel_login.set()

    async def search(self, query: str, count: int) -> list[DetailRecord]:
        """Return up to ``count`` notes for ``query`` in listing order.

        Raises SessionUnavailable when neither saved cookies nor one round of
        interactive login produce a verified session. Per-note failures come
        back as degraded records instead.
        """
        search_log = log.bind(query=query, count=count)
        search_log.info("search_started")
        headless = self._settings.browser.headless

        async with self._launcher.open_context(headless=headless) as context:
            if await self._session.bootstrap(context):
                return await self._run(context, query, count)

        search_log.info("search_needs_login")
        await self._interactive_login()

        async with self._launcher.open_context(headless=headless) as context:
            if not await self._session.bootstrap(context):
                raise SessionUnavailable("Login completed but the saved session did not verify")
            return await self._run(context, query, count)

    async def _interactive_login(self) -> None:
        self._cancel_login.clear()
        async with self._launcher.open_context(headless=False) as context:
            succeeded = await self._session.interactive_login(context, cancel=self._cancel_login)
        if not succeeded:
            raise SessionUnavailable("Interactive login timed out or was cancelled")

    async def _run(self, context: BrowserContext, query: str, count: int) -> list[DetailRecord]:
        page = await context.new_page()
        try:
            if not await self._open_listing(page, query, count):
                return []
            refs = await extract_links(page, count, base_url=self._settings.browser.base_url)
        finally:
            await close_page(page)

        records = await self._fetcher.fetch_all(context, refs)
        await self._session.persist(context)
        log.info("search_complete", query=query, results=len(records))
        return records

    async def _open_listing(self, page: Page, query: str, count: int) -> bool:
        browser = self._settings.browser
        url = search_url(browser.search_url, query)
        try:
            await page.goto(
                url,
                timeout=browser.navigation_timeout_seconds * 1000,
                wait_until="domcontentloaded",
            )
        except Exception:
            log.warning("listing_navigation_failed", url=url, exc_info=True)
            return False

        try:
            await page.wait_for_selector(
                FEED_CONTAINER_SELECTOR,
                timeout=browser.element_timeout_seconds * 1000,
            )
        except Exception:
            log.warning("feed_container_missing", url=url, exc_info=True)
            await asyncio.sleep(browser.listing_settle_seconds)

        if count > self._settings.fetch.scroll_threshold:
            await auto_scroll(page, self._settings.fetch)
        return True
