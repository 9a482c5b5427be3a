"""Background scheduler coroutine for cache cleanup."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from rednote.state import AppState

log = structlog.get_logger()


async def run_cache_cleanup_scheduler(state: AppState) -> None:
    """Sweep expired cache entries on the configured interval (HTTP mode only).

    Stdio sessions are short-lived; the cache sweeps itself on first use.
    """
    if state.settings.server.transport != "http":
        return

    interval_seconds = state.settings.cache.cleanup_interval_hours * 3600
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            removed = await state.cache.cleanup_expired()
        except Exception:
            log.warning("cache_cleanup_scheduler_error", exc_info=True)
            continue
        log.info("cache_cleanup_scheduled_run", removed=removed)
