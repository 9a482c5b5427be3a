"""JSON-file search result cache with a fixed TTL.

Entries are keyed by ``"<lowercased, trimmed query>:<count>"``. An entry is
valid while ``now - timestamp <= ttl``; expired entries are dropped lazily on
read and in bulk by ``cleanup_expired`` (run once on first use, and
periodically by the HTTP-mode scheduler).

All cache operations catch I/O and decoding errors internally and degrade
gracefully: a store that cannot be read starts empty, and a store that
cannot be written keeps serving from memory. Failures are logged as
``CACHE_IO_ERROR`` with ``exc_info=True`` and never cross the SearchCache
class boundary, so a broken cache costs a re-fetch and nothing more.

Every mutation is flushed to disk before the call returns. There is no
internal locking: callers that may race on the same key must serialise.
"""

from __future__ import annotations

import time
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError

from rednote.errors import ErrorCode
from rednote.models.cache import CacheEntry, CacheEntrySummary, CacheStats
from rednote.models.notes import DetailRecord
from rednote.storage import read_json, write_json_atomic

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

log = structlog.get_logger()

DEFAULT_TTL = timedelta(days=14)


def cache_key(query: str, count: int) -> str:
    return f"{query.strip().lower()}:{count}"


class SearchCache:
    """Search results persisted to a single JSON document, implementing CacheProtocol."""

    def __init__(
        self,
        path: Path,
        ttl: timedelta = DEFAULT_TTL,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._path = path
        self._ttl_ms = int(ttl.total_seconds() * 1000)
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._initialized = False

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _is_expired(self, entry: CacheEntry) -> bool:
        return self._now_ms() - entry.timestamp > self._ttl_ms

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def _init(self) -> None:
        """Load the store from disk once and sweep expired entries."""
        if self._initialized:
            return
        await self.cleanup_expired()

    def _load(self) -> dict[str, CacheEntry]:
        try:
            raw = read_json(self._path)
        except (OSError, ValueError):
            log.warning(
                "cache_read_error",
                code=ErrorCode.CACHE_IO_ERROR,
                path=str(self._path),
                exc_info=True,
            )
            return {}
        if raw is None:
            log.info("cache_empty", path=str(self._path))
            return {}
        if not isinstance(raw, dict):
            log.warning("cache_read_error", code=ErrorCode.CACHE_IO_ERROR, reason="not_an_object")
            return {}

        entries: dict[str, CacheEntry] = {}
        for key, value in raw.items():
            try:
                entries[key] = CacheEntry(key=key, **value)
            except (TypeError, ValidationError):
                log.warning("cache_entry_invalid", key=key)
        log.info("cache_loaded", path=str(self._path), entries=len(entries))
        return entries

    def _save(self) -> None:
        payload = {
            key: {
                "data": [record.to_wire() for record in entry.data],
                "timestamp": entry.timestamp,
                "query": entry.query,
                "count": entry.count,
            }
            for key, entry in self._entries.items()
        }
        try:
            write_json_atomic(self._path, payload)
        except OSError:
            log.warning(
                "cache_write_error",
                code=ErrorCode.CACHE_IO_ERROR,
                path=str(self._path),
                exc_info=True,
            )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get(self, query: str, count: int) -> list[DetailRecord] | None:
        """Return cached records, or ``None`` on miss or expiry."""
        await self._init()
        key = cache_key(query, count)
        entry = self._entries.get(key)

        if entry is None:
            log.info("cache_miss", key=key)
            return None

        if self._is_expired(entry):
            log.info("cache_expired", key=key)
            del self._entries[key]
            self._save()
            return None

        log.info("cache_hit", key=key, results=len(entry.data))
        return list(entry.data)

    async def set(self, query: str, count: int, data: list[DetailRecord]) -> None:
        """Store ``data`` under the normalised key, replacing any previous entry."""
        await self._init()
        key = cache_key(query, count)
        self._entries[key] = CacheEntry(
            key=key,
            data=list(data),
            timestamp=self._now_ms(),
            query=query,
            count=count,
        )
        self._save()
        log.info("cache_set", key=key, results=len(data))

    async def clear(self) -> None:
        self._entries = {}
        self._initialized = True
        self._save()
        log.info("cache_cleared")

    async def cleanup_expired(self) -> int:
        """Drop every expired entry. Returns how many were removed."""
        if not self._initialized:
            self._entries = self._load()
            self._initialized = True
        expired = [key for key, entry in self._entries.items() if self._is_expired(entry)]
        for key in expired:
            del self._entries[key]
        if expired:
            self._save()
            log.info("cache_cleanup_complete", removed=len(expired))
        return len(expired)

    async def stats(self) -> CacheStats:
        await self._init()
        if not self._entries:
            return CacheStats(total_entries=0)

        by_age = sorted(self._entries.values(), key=lambda entry: entry.timestamp)
        return CacheStats(
            total_entries=len(by_age),
            oldest_entry=_summarise(by_age[0]),
            newest_entry=_summarise(by_age[-1]),
        )


def _summarise(entry: CacheEntry) -> CacheEntrySummary:
    return CacheEntrySummary(
        key=entry.key,
        query=entry.query,
        count=entry.count,
        cached_at=datetime.fromtimestamp(entry.timestamp / 1000, tz=UTC),
    )
