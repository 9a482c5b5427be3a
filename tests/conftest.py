"""Shared test fixtures for the rednote test suite.

The browser is replaced by a small in-memory fake. ``FakeSite`` holds what
the "website" serves (listing cards, note pages, which cookies count as
logged in); ``FakeLauncher`` hands out ``FakeContext``s bound to it.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from rednote.config import Settings
from rednote.site import (
    EXTRACT_DETAIL_SCRIPT,
    EXTRACT_LINKS_SCRIPT,
    LOGIN_MARKER_SELECTOR,
    SCROLL_STEP_SCRIPT,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

VALID_COOKIE = {
    "name": "web_session",
    "value": "valid",
    "domain": ".xiaohongshu.com",
    "path": "/",
}
EXPIRED_COOKIE = {**VALID_COOKIE, "value": "expired"}


def note_url(n: int) -> str:
    return f"https://www.xiaohongshu.com/explore/note{n}"


def make_card(n: int) -> dict:
    return {"title": f"Card {n}", "href": f"/explore/note{n}", "author": f"author{n}"}


def make_detail(n: int) -> dict:
    return {
        "title": f"Note {n}",
        "content": f"Body of note {n}",
        "author": f"author{n}",
        "authorDesc": f"bio {n}",
        "counts": ["1.2万", "35", "赞"],
        "images": [f"https://img.example/{n}.jpg"],
        "tags": ["travel"],
    }


class FakeSite:
    """What the fake browser serves. Tests mutate it to script scenarios."""

    def __init__(self) -> None:
        self.cards: list[dict] = []
        # url -> dict payload, or an Exception to raise from evaluate
        self.details: dict[str, Any] = {}
        # url -> Exception to raise from goto
        self.goto_errors: dict[str, Exception] = {}
        self.missing_selectors: set[str] = set()
        # selector -> Exception other than a timeout to raise from wait_for_selector
        self.selector_errors: dict[str, Exception] = {}
        self.valid_cookie_values: set[str] = {"valid"}
        # When True, a visible browser becomes logged in on its first login check
        self.human_logs_in = False
        self.page_height = 1000
        self.scroll_growth = 0
        self.visits: list[str] = []
        self.pages: list[FakePage] = []
        self.detail_delays: dict[str, float] = {}
        self.max_open_pages = 0

    note_url = staticmethod(note_url)

    def with_notes(self, n: int) -> FakeSite:
        self.cards = [make_card(i) for i in range(n)]
        self.details = {note_url(i): make_detail(i) for i in range(n)}
        return self


class FakePage:
    def __init__(self, site: FakeSite, context: FakeContext) -> None:
        self.site = site
        self.context = context
        self.url = "about:blank"
        self.closed = False
        self.scroll_y = 0
        self.height = site.page_height
        site.pages.append(self)
        open_pages = sum(1 for page in site.pages if not page.closed)
        site.max_open_pages = max(site.max_open_pages, open_pages)

    async def goto(self, url: str, timeout: float | None = None, wait_until: str | None = None):
        self.site.visits.append(url)
        if url in self.site.goto_errors:
            raise self.site.goto_errors[url]
        self.url = url

    async def wait_for_selector(self, selector: str, timeout: float | None = None):
        if selector in self.site.selector_errors:
            raise self.site.selector_errors[selector]
        if selector in self.site.missing_selectors:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {selector}")
        return object()

    async def query_selector(self, selector: str):
        if selector != LOGIN_MARKER_SELECTOR:
            return None
        if not self.context.headless and self.site.human_logs_in:
            self.context.jar.append(dict(VALID_COOKIE))
        return None if self.context.logged_in else object()

    async def evaluate(self, script: str, arg: Any = None):
        if script == EXTRACT_LINKS_SCRIPT:
            return [dict(card) for card in self.site.cards]
        if script == SCROLL_STEP_SCRIPT:
            self.scroll_y += arg
            self.height += self.site.scroll_growth
            return {"height": self.height, "bottom": self.scroll_y + 800}
        if script == EXTRACT_DETAIL_SCRIPT:
            delay = self.site.detail_delays.get(self.url)
            if delay:
                await asyncio.sleep(delay)
            payload = self.site.details.get(self.url)
            if isinstance(payload, Exception):
                raise payload
            return payload
        raise AssertionError(f"unexpected script: {script[:40]!r}")

    async def close(self) -> None:
        self.closed = True


class FakeContext:
    def __init__(self, site: FakeSite, *, headless: bool) -> None:
        self.site = site
        self.headless = headless
        self.jar: list[dict] = []
        self.pages: list[FakePage] = []
        self.closed = False

    @property
    def logged_in(self) -> bool:
        return any(cookie.get("value") in self.site.valid_cookie_values for cookie in self.jar)

    async def add_cookies(self, cookies: list[dict]) -> None:
        self.jar.extend(dict(cookie) for cookie in cookies)

    async def cookies(self) -> list[dict]:
        return [dict(cookie) for cookie in self.jar]

    async def new_page(self) -> FakePage:
        page = FakePage(self.site, self)
        self.pages.append(page)
        return page


class FakeLauncher:
    def __init__(self, site: FakeSite) -> None:
        self.site = site
        self.contexts: list[FakeContext] = []

    @asynccontextmanager
    async def open_context(self, *, headless: bool) -> AsyncIterator[FakeContext]:
        context = FakeContext(self.site, headless=headless)
        self.contexts.append(context)
        try:
            yield context
        finally:
            context.closed = True


@pytest.fixture()
def valid_cookie() -> dict:
    return dict(VALID_COOKIE)


@pytest.fixture()
def expired_cookie() -> dict:
    return dict(EXPIRED_COOKIE)


@pytest.fixture()
def site() -> FakeSite:
    return FakeSite()


@pytest.fixture()
def launcher(site: FakeSite) -> FakeLauncher:
    return FakeLauncher(site)


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    """Settings with every delay zeroed and all paths under tmp_path."""
    return Settings(
        server={"mock_results_path": str(tmp_path / "mock" / "example_search_result.json")},
        browser={"listing_settle_seconds": 0},
        session={
            "cookies": None,
            "cookies_path": str(tmp_path / "cookies" / "xiaohongshu-cookies.json"),
            "login_poll_interval_seconds": 0,
            "login_max_attempts": 3,
            "login_settle_seconds": 0,
        },
        fetch={
            "worker_stagger_seconds": 0,
            "request_delay_seconds": 0,
            "scroll_settle_seconds": 0,
            "scroll_final_settle_seconds": 0,
        },
        cache={"path": str(tmp_path / "cache" / "search-cache.json")},
    )
