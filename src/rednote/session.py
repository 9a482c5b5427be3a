"""Login session state machine.

A session is a cookie set. It is loaded from the first provider that has one
(configuration blob, then the cookie file), attached to a fresh context and
only trusted after a live page probe confirms the login prompt is gone. When
no provider yields a working session, an interactive login in a visible
browser is the single fallback; a completed login is written back to the
cookie file so the next run can skip it.

    unauthenticated ──bootstrap ok──────────▶ authenticated
    unauthenticated ──interactive_login─────▶ awaiting_interactive_login
    awaiting_interactive_login ──verified───▶ authenticated
    awaiting_interactive_login ──timeout────▶ fatal  (also on cancel or error)
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from rednote.browser import close_page
from rednote.errors import ErrorCode, RedNoteError
from rednote.models.session import Session, SessionState
from rednote.site import LOGIN_MARKER_SELECTOR, LOGIN_URL_FRAGMENTS
from rednote.storage import read_json, write_json_atomic

if TYPE_CHECKING:
    from collections.abc import Sequence

    from playwright.async_api import BrowserContext, Page

    from rednote.config import Settings, SessionSettings
    from rednote.protocols import SessionProvider

log = structlog.get_logger()


def _as_cookie_list(raw: Any, source: str) -> list[dict] | None:
    if not isinstance(raw, list) or not all(isinstance(item, dict) for item in raw):
        log.warning("session_cookies_invalid", source=source, reason="not_a_cookie_array")
        return None
    return raw


class EnvCookieProvider:
    """Cookies supplied as a JSON blob through configuration."""

    name = "env"

    def __init__(self, raw: str | None) -> None:
        self._raw = raw

    def load(self) -> tuple[Session, bool]:
        if not self._raw:
            return Session(source=self.name), False
        try:
            decoded = json.loads(self._raw)
        except json.JSONDecodeError:
            log.warning("session_cookies_invalid", source=self.name, reason="bad_json")
            return Session(source=self.name), False
        cookies = _as_cookie_list(decoded, self.name)
        if cookies is None:
            return Session(source=self.name), False
        return Session(cookies=cookies, source=self.name), True


class FileCookieProvider:
    """Cookies persisted on local disk. Also the durable store for new logins."""

    name = "file"

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> tuple[Session, bool]:
        try:
            decoded = read_json(self.path)
        except (OSError, ValueError):
            log.warning(
                "session_cookies_invalid", source=self.name, path=str(self.path), exc_info=True
            )
            return Session(source=self.name), False
        if decoded is None:
            log.debug("session_file_missing", path=str(self.path))
            return Session(source=self.name), False
        cookies = _as_cookie_list(decoded, self.name)
        if cookies is None:
            return Session(source=self.name), False
        return Session(cookies=cookies, source=self.name), True

    def save(self, cookies: list[dict]) -> None:
        write_json_atomic(self.path, cookies)


async def _cancelled_within(cancel: asyncio.Event | None, seconds: float) -> bool:
    """Sleep for ``seconds``; return True early if ``cancel`` gets set."""
    if cancel is None:
        await asyncio.sleep(seconds)
        return False
    try:
        await asyncio.wait_for(cancel.wait(), timeout=seconds)
    except TimeoutError:
        return False
    return True


class SessionManager:
    """Owns the cookie session and its verification state."""

    def __init__(
        self,
        providers: Sequence[SessionProvider],
        store: FileCookieProvider,
        settings: SessionSettings,
        *,
        home_url: str,
        navigation_timeout_seconds: float,
    ) -> None:
        self._providers = list(providers)
        self._store = store
        self._settings = settings
        self._home_url = home_url
        self._navigation_timeout_ms = navigation_timeout_seconds * 1000
        self.state = SessionState.UNAUTHENTICATED
        self.session: Session | None = None
        # Sources whose cookies failed a live probe; skipped until rewritten
        self._stale_sources: set[str] = set()

    def _transition(self, new_state: SessionState) -> None:
        if new_state != self.state:
            log.info("session_state_changed", from_state=self.state, to_state=new_state)
        self.state = new_state

    async def load_session(self, context: BrowserContext) -> bool:
        """Attach cookies from the first provider that has them.

        Returns False when no provider has usable cookies; that is not an error.
        """
        self.session = None
        for provider in self._providers:
            if provider.name in self._stale_sources:
                log.debug("session_source_skipped", source=provider.name, reason="stale")
                continue
            session, found = provider.load()
            if not found:
                continue
            try:
                await context.add_cookies(session.cookies)  # type: ignore[arg-type]
            except Exception:
                log.warning("session_cookies_rejected", source=provider.name, exc_info=True)
                continue
            self.session = session
            log.info("session_loaded", source=provider.name, cookie_count=len(session.cookies))
            return True

        log.info("session_not_found", providers=[p.name for p in self._providers])
        return False

    async def verify(self, page: Page) -> bool:
        """Return True when ``page`` shows no sign of a login wall. Never raises."""
        try:
            if any(fragment in page.url for fragment in LOGIN_URL_FRAGMENTS):
                return False
            marker = await page.query_selector(LOGIN_MARKER_SELECTOR)
            return marker is None
        except Exception:
            log.warning("session_verify_error", exc_info=True)
            return False

    async def bootstrap(self, context: BrowserContext) -> bool:
        """Load saved cookies into ``context`` and probe the home page.

        Moves to ``authenticated`` only when cookies were attached *and* the
        probe passes.
        """
        loaded = await self.load_session(context)
        page = await context.new_page()
        try:
            try:
                await page.goto(
                    self._home_url,
                    timeout=self._navigation_timeout_ms,
                    wait_until="domcontentloaded",
                )
            except Exception:
                log.warning("session_probe_navigation_failed", url=self._home_url, exc_info=True)
                verified = False
                probed = False
            else:
                verified = await self.verify(page)
                probed = True
        finally:
            await close_page(page)

        if loaded and verified and self.session is not None:
            self.session = self.session.model_copy(update={"valid": True})
            self._transition(SessionState.AUTHENTICATED)
            return True

        log.info("session_unverified", cookies_loaded=loaded, probe_passed=verified)
        if self.session is not None:
            if probed:
                self._stale_sources.add(self.session.source)
            self.session = self.session.model_copy(update={"valid": False})
        self._transition(SessionState.UNAUTHENTICATED)
        return False

    async def interactive_login(
        self,
        context: BrowserContext,
        cancel: asyncio.Event | None = None,
    ) -> bool:
        """Wait for a human to log in through a visible browser.

        Polls ``verify`` every ``login_poll_interval_seconds`` for at most
        ``login_max_attempts`` rounds. Setting ``cancel`` stops the wait early.
        Returns True once logged in and persisted, False on timeout or cancel.
        """
        self._transition(SessionState.AWAITING_INTERACTIVE_LOGIN)
        interval = self._settings.login_poll_interval_seconds
        max_attempts = self._settings.login_max_attempts

        page: Page | None = None
        try:
            page = await context.new_page()
            await page.goto(self._home_url, timeout=self._navigation_timeout_ms)
            log.info(
                "interactive_login_waiting",
                message="Log in to Xiaohongshu in the opened browser window",
                timeout_seconds=interval * max_attempts,
            )
            if await _cancelled_within(cancel, self._settings.login_settle_seconds):
                log.info("interactive_login_cancelled", attempt=0)
            else:
                for attempt in range(1, max_attempts + 1):
                    if await _cancelled_within(cancel, interval):
                        log.info("interactive_login_cancelled", attempt=attempt)
                        break
                    if await self.verify(page):
                        log.info("interactive_login_succeeded", attempt=attempt)
                        await self.persist(context)
                        # The fresh login in the cookie file outranks every other source
                        self._stale_sources.update(
                            provider.name
                            for provider in self._providers
                            if provider is not self._store
                        )
                        self._stale_sources.discard(self._store.name)
                        self.session = Session(source="interactive", valid=True)
                        self._transition(SessionState.AUTHENTICATED)
                        return True
                else:
                    log.warning("interactive_login_timeout", attempts=max_attempts)
        except Exception:
            log.warning("interactive_login_error", exc_info=True)
        finally:
            if page is not None:
                await close_page(page)

        self.session = None
        self._transition(SessionState.FATAL)
        return False

    async def persist(self, context: BrowserContext) -> None:
        """Write the context's cookies to the cookie file. Non-fatal on failure."""
        try:
            cookies = await context.cookies()
            self._store.save([dict(cookie) for cookie in cookies])
            log.info("session_persisted", cookie_count=len(cookies), path=str(self._store.path))
        except Exception:
            log.warning("session_persist_failed", path=str(self._store.path), exc_info=True)

    def store_cookies(self, cookies: list[dict]) -> None:
        """Replace the cookie file with a caller-supplied cookie set."""
        try:
            self._store.save(cookies)
        except OSError as exc:
            raise RedNoteError(
                code=ErrorCode.SESSION_STORE_FAILED,
                message=f"Failed to save cookies: {exc}",
                suggestion="Check that the cookie directory is writable.",
                recoverable=True,
            ) from exc
        self._stale_sources.discard(self._store.name)
        log.info("session_cookies_stored", cookie_count=len(cookies), path=str(self._store.path))
        # Force the next search to re-verify with the new cookies
        self._transition(SessionState.UNAUTHENTICATED)


def build_session_manager(settings: Settings) -> SessionManager:
    """Wire the provider chain: configuration blob first, cookie file second."""
    store = FileCookieProvider(Path(settings.session.cookies_path).expanduser())
    return SessionManager(
        [EnvCookieProvider(settings.session.cookies), store],
        store,
        settings.session,
        home_url=settings.browser.home_url,
        navigation_timeout_seconds=settings.browser.navigation_timeout_seconds,
    )
