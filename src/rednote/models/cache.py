from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from rednote.models.notes import DetailRecord


class CacheEntry(BaseModel):
    """Cached search results for one normalised ``query:count`` key."""

    key: str
    data: list[DetailRecord]
    timestamp: int  # Unix epoch milliseconds
    query: str  # As originally submitted, before normalisation
    count: int


class CacheEntrySummary(BaseModel):
    key: str
    query: str
    count: int
    cached_at: datetime


class CacheStats(BaseModel):
    total_entries: int
    oldest_entry: CacheEntrySummary | None = None
    newest_entry: CacheEntrySummary | None = None
