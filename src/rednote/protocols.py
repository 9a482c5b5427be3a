"""Protocol interfaces for swappable components.

Tool handlers, the pipeline and AppState reference these protocols, not the
concrete implementations. This allows:
- Tests to use in-memory fakes instead of a real browser
- Alternative cookie sources (e.g. a secrets manager) to be added as providers
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from contextlib import AbstractAsyncContextManager

    from playwright.async_api import BrowserContext

    from rednote.models.cache import CacheStats
    from rednote.models.notes import DetailRecord
    from rednote.models.session import Session


class CacheProtocol(Protocol):
    """Interface for the search result cache."""

    async def get(self, query: str, count: int) -> list[DetailRecord] | None: ...

    async def set(self, query: str, count: int, data: list[DetailRecord]) -> None: ...

    async def clear(self) -> None: ...

    async def stats(self) -> CacheStats: ...

    async def cleanup_expired(self) -> int: ...


class SessionProvider(Protocol):
    """One source of saved cookies, tried in priority order."""

    name: str

    def load(self) -> tuple[Session, bool]: ...


class ContextLauncher(Protocol):
    """Opens a fresh browser and context; closing the context closes both."""

    def open_context(self, *, headless: bool) -> AbstractAsyncContextManager[BrowserContext]: ...
