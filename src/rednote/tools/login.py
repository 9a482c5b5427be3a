"""Tool handler for set_login_cookies.

Stores a cookie set exported from a logged-in browser so the next search
can skip interactive login.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from rednote.errors import ErrorCode, RedNoteError
from rednote.models.tools import LoginCookiesInput

if TYPE_CHECKING:
    from rednote.state import AppState


async def handle(cookies: list[dict], state: AppState) -> dict:
    """Handle a set_login_cookies tool call."""
    log = structlog.get_logger().bind(tool="set_login_cookies")
    log.info("handler_called", cookie_count=len(cookies))

    try:
        validated = LoginCookiesInput(cookies=cookies)
    except ValueError as exc:
        raise RedNoteError(
            code=ErrorCode.INVALID_INPUT,
            message=str(exc),
            suggestion="Pass the JSON cookie array exported from a logged-in xiaohongshu.com tab.",
            recoverable=False,
        ) from exc

    # Runs under the search lock so a pipeline never sees a half-swapped session
    async with state.search_lock:
        state.session_manager.store_cookies(validated.cookies)

    return {"stored": True, "cookie_count": len(validated.cookies)}
