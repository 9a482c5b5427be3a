from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel


class SessionState(StrEnum):
    UNAUTHENTICATED = "unauthenticated"
    AWAITING_INTERACTIVE_LOGIN = "awaiting_interactive_login"
    AUTHENTICATED = "authenticated"
    FATAL = "fatal"


class Session(BaseModel):
    """A reusable cookie set and where it came from.

    ``valid`` is only ever set after a live page probe; a freshly loaded
    session is unverified.
    """

    cookies: list[dict] = []
    source: str = ""
    valid: bool = False
