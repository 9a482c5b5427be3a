"""Tool handler for mock_search.

Serves a canned search result from a local JSON fixture so MCP clients can
be developed without a browser, a login or any traffic to Xiaohongshu.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from rednote.errors import ErrorCode, RedNoteError
from rednote.storage import read_json

if TYPE_CHECKING:
    from rednote.state import AppState


def _unavailable(path: Path, reason: str) -> RedNoteError:
    return RedNoteError(
        code=ErrorCode.MOCK_DATA_UNAVAILABLE,
        message=f"Mock search result {path} {reason}",
        suggestion=(
            "Save a search_xiaohongshu response as JSON at that path, or point "
            "REDNOTE__SERVER__MOCK_RESULTS_PATH at one."
        ),
        recoverable=False,
    )


async def handle(state: AppState) -> dict:
    """Handle a mock_search tool call."""
    path = Path(state.settings.server.mock_results_path).expanduser()
    log = structlog.get_logger().bind(tool="mock_search", path=str(path))
    log.info("handler_called")

    try:
        data = read_json(path)
    except (OSError, ValueError) as exc:
        log.warning("mock_results_unreadable", exc_info=True)
        raise _unavailable(path, "could not be read") from exc

    if data is None:
        raise _unavailable(path, "does not exist")
    # A bare array of notes is wrapped the way search_xiaohongshu shapes its output
    if isinstance(data, list):
        return {"query": "mock", "count": len(data), "cached": False, "results": data}
    if isinstance(data, dict):
        return data
    raise _unavailable(path, "is not a JSON object or array")
