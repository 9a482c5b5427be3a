from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    SESSION_UNAVAILABLE = "SESSION_UNAVAILABLE"
    SESSION_STORE_FAILED = "SESSION_STORE_FAILED"
    NAVIGATION_FAILED = "NAVIGATION_FAILED"
    EXTRACTION_FAILED = "EXTRACTION_FAILED"
    CACHE_IO_ERROR = "CACHE_IO_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    MOCK_DATA_UNAVAILABLE = "MOCK_DATA_UNAVAILABLE"


class RedNoteError(Exception):
    """Raised for all expected failure conditions.

    Per-note failures (``NAVIGATION_FAILED``, ``EXTRACTION_FAILED``) are caught
    by the detail fetcher and turned into degraded records. Everything else
    propagates to server.py and is serialised into the MCP error response.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        suggestion: str,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion
        self.recoverable = recoverable

    def to_dict(self) -> dict:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "suggestion": self.suggestion,
                "recoverable": self.recoverable,
            }
        }


class SessionUnavailable(RedNoteError):
    """No usable login session and the interactive login did not complete."""

    def __init__(self, message: str = "No valid Xiaohongshu login session") -> None:
        super().__init__(
            code=ErrorCode.SESSION_UNAVAILABLE,
            message=message,
            suggestion=(
                "Log in through the browser window when prompted, or upload a cookie set "
                "with the set_login_cookies tool."
            ),
            recoverable=False,
        )
