from __future__ import annotations

from rednote.models.cache import CacheEntry, CacheEntrySummary, CacheStats
from rednote.models.notes import (
    FETCH_FAILED_CONTENT,
    NO_CONTENT,
    DetailRecord,
    LinkReference,
)
from rednote.models.session import Session, SessionState
from rednote.models.tools import (
    LoginCookiesInput,
    SearchInput,
    SearchOutput,
)

__all__ = [
    # notes
    "LinkReference",
    "DetailRecord",
    "FETCH_FAILED_CONTENT",
    "NO_CONTENT",
    # cache
    "CacheEntry",
    "CacheEntrySummary",
    "CacheStats",
    # session
    "Session",
    "SessionState",
    # tools
    "SearchInput",
    "SearchOutput",
    "LoginCookiesInput",
]
