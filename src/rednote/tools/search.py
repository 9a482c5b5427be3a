"""Tool handler for search_xiaohongshu.

Receives AppState, checks the result cache, runs the browser pipeline on a
miss and returns a structured dict. No MCP or FastMCP imports; server.py
handles the MCP wiring.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from rednote.errors import ErrorCode, RedNoteError
from rednote.models.tools import SearchInput, SearchOutput

if TYPE_CHECKING:
    from rednote.models.notes import DetailRecord
    from rednote.state import AppState


def _output(query: str, records: list[DetailRecord], *, cached: bool) -> dict:
    output = SearchOutput(
        query=query,
        count=len(records),
        cached=cached,
        results=[record.to_wire() for record in records],
    )
    return output.model_dump(mode="json")


async def handle(query: str, count: int, state: AppState) -> dict:
    """Handle a search_xiaohongshu tool call."""
    log = structlog.get_logger().bind(tool="search_xiaohongshu", query=query, count=count)
    log.info("handler_called")

    try:
        validated = SearchInput(query=query, count=count)
    except ValueError as exc:
        raise RedNoteError(
            code=ErrorCode.INVALID_INPUT,
            message=str(exc),
            suggestion="Provide a non-empty keyword (max 500 chars) and a count from 1 to 100.",
            recoverable=False,
        ) from exc

    hit = await state.cache.get(validated.query, validated.count)
    if hit is not None:
        return _output(validated.query, hit, cached=True)

    async with state.search_lock:
        # A concurrent caller may have filled the cache while we waited
        hit = await state.cache.get(validated.query, validated.count)
        if hit is not None:
            return _output(validated.query, hit, cached=True)

        records = await state.pipeline.search(validated.query, validated.count)

        if records:
            await state.cache.set(validated.query, validated.count, records)
        else:
            log.info("search_empty_not_cached")

    log.info("search_handled", results=len(records))
    return _output(validated.query, records, cached=False)
