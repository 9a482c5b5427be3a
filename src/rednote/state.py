"""Application state container.

AppState is created once at server startup (inside the FastMCP lifespan context
manager) and injected into every tool handler via the MCP Context object.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from rednote.config import Settings
    from rednote.pipeline import SearchPipeline
    from rednote.protocols import CacheProtocol
    from rednote.session import SessionManager


@dataclass
class AppState:
    """Holds all shared runtime state. Passed to every tool handler."""

    settings: Settings
    cache: CacheProtocol
    session_manager: SessionManager
    pipeline: SearchPipeline
    # One browser-driven search at a time per process
    search_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
