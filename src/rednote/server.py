"""MCP server entrypoint.

Responsibilities (and nothing more):
- Configure structlog
- Create AppState via the FastMCP lifespan context manager
- Register tools
- Start the correct transport (stdio or HTTP)
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from contextlib import asynccontextmanager, suppress
from datetime import timedelta
from pathlib import Path
from typing import TYPE_CHECKING

import structlog
from mcp.server.fastmcp import Context, FastMCP
from mcp.types import CallToolResult, TextContent

import rednote.tools.cache_admin as t_cache
import rednote.tools.login as t_login
import rednote.tools.mock_search as t_mock
import rednote.tools.search as t_search
from rednote import __version__
from rednote.browser import PlaywrightLauncher
from rednote.cache import SearchCache
from rednote.config import Settings
from rednote.details import DetailFetcher
from rednote.errors import RedNoteError
from rednote.pipeline import SearchPipeline
from rednote.schedulers import run_cache_cleanup_scheduler
from rednote.session import build_session_manager
from rednote.state import AppState
from rednote.transport import run_http_server

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def _setup_logging(settings: Settings) -> None:
    """Configure structlog. Called once at startup before any log statements."""
    log_level = logging.getLevelNamesMapping()[settings.logging.level]

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.logging.format == "json":
        processors = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ]
    else:
        processors = [*shared_processors, structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        # stdout is reserved for the MCP JSON-RPC stream
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


def build_state(settings: Settings) -> AppState:
    """Wire the cache, session manager, browser launcher and pipeline."""
    cache = SearchCache(
        Path(settings.cache.path).expanduser(),
        ttl=timedelta(days=settings.cache.ttl_days),
    )
    session_manager = build_session_manager(settings)
    pipeline = SearchPipeline(
        settings,
        PlaywrightLauncher(settings.browser),
        session_manager,
        DetailFetcher(settings.fetch, settings.browser),
    )
    return AppState(
        settings=settings,
        cache=cache,
        session_manager=session_manager,
        pipeline=pipeline,
    )


@asynccontextmanager
async def lifespan(server: FastMCP) -> AsyncGenerator[AppState, None]:
    """Create and tear down all shared resources for the server's lifetime."""
    settings = Settings()
    _setup_logging(settings)

    log.info("server_starting", version=__version__, transport=settings.server.transport)

    state = build_state(settings)
    cache_cleanup_task = asyncio.create_task(run_cache_cleanup_scheduler(state))

    log.info(
        "server_started",
        version=__version__,
        transport=settings.server.transport,
        headless=settings.browser.headless,
        cache_path=settings.cache.path,
    )

    try:
        yield state
    finally:
        state.pipeline.cancel_login()
        cache_cleanup_task.cancel()
        with suppress(asyncio.CancelledError):
            await cache_cleanup_task
        log.info("server_stopping")


# ---------------------------------------------------------------------------
# FastMCP instance and tool registration
# ---------------------------------------------------------------------------

mcp = FastMCP("rednote", lifespan=lifespan)
# FastMCP doesn't expose a version kwarg, so set it on the underlying Server
# so the MCP initialize handshake reports our version, not the SDK's.
mcp._mcp_server.version = __version__  # pyright: ignore[reportPrivateUsage]


def _serialise_tool_error(error: RedNoteError) -> CallToolResult:
    """Convert a RedNoteError to the MCP tool error result envelope."""
    return CallToolResult(
        content=[TextContent(type="text", text=json.dumps(error.to_dict(), ensure_ascii=False))],
        isError=True,
    )


def _tool_error(tool: str, exc: RedNoteError) -> CallToolResult:
    log.warning(
        "tool_error",
        tool=tool,
        code=exc.code,
        message=exc.message,
        recoverable=exc.recoverable,
    )
    return _serialise_tool_error(exc)


@mcp.tool()
async def search_xiaohongshu(query: str, ctx: Context, count: int = 10) -> object:
    """Search Xiaohongshu (RedNote) notes by keyword.

    Returns up to ``count`` notes in search-result order with title, body
    text, author, likes/collects/comments, tags and image URLs. Results are
    cached (14 days by default). The first search without saved cookies opens a
    browser window for a manual login.
    """
    state: AppState = ctx.request_context.lifespan_context
    try:
        return await t_search.handle(query, count, state)
    except RedNoteError as exc:
        return _tool_error("search_xiaohongshu", exc)
    except Exception:
        log.error("tool_unexpected_error", tool="search_xiaohongshu", exc_info=True)
        raise


@mcp.tool()
async def cache_stats(ctx: Context) -> object:
    """Report how many searches are cached and the oldest and newest entries."""
    state: AppState = ctx.request_context.lifespan_context
    try:
        return await t_cache.handle_stats(state)
    except RedNoteError as exc:
        return _tool_error("cache_stats", exc)
    except Exception:
        log.error("tool_unexpected_error", tool="cache_stats", exc_info=True)
        raise


@mcp.tool()
async def clear_cache(ctx: Context) -> object:
    """Delete every cached search result."""
    state: AppState = ctx.request_context.lifespan_context
    try:
        return await t_cache.handle_clear(state)
    except RedNoteError as exc:
        return _tool_error("clear_cache", exc)
    except Exception:
        log.error("tool_unexpected_error", tool="clear_cache", exc_info=True)
        raise


@mcp.tool()
async def set_login_cookies(cookies: list[dict], ctx: Context) -> object:
    """Save Xiaohongshu login cookies exported from a logged-in browser.

    ``cookies`` is the JSON cookie array (each object needs at least
    ``name`` and ``value``). Later searches use it instead of asking for an
    interactive login.
    """
    state: AppState = ctx.request_context.lifespan_context
    try:
        return await t_login.handle(cookies, state)
    except RedNoteError as exc:
        return _tool_error("set_login_cookies", exc)
    except Exception:
        log.error("tool_unexpected_error", tool="set_login_cookies", exc_info=True)
        raise


@mcp.tool()
async def mock_search(ctx: Context) -> object:
    """Return a canned search result from the local mock fixture file.

    Useful for developing against this server without a browser or a
    Xiaohongshu account. The fixture path is ``server.mock_results_path``.
    """
    state: AppState = ctx.request_context.lifespan_context
    try:
        return await t_mock.handle(state)
    except RedNoteError as exc:
        return _tool_error("mock_search", exc)
    except Exception:
        log.error("tool_unexpected_error", tool="mock_search", exc_info=True)
        raise


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


def main() -> None:
    settings = Settings()

    if settings.server.transport == "http":
        _setup_logging(settings)
        run_http_server(mcp, settings)
        return

    mcp.run()


if __name__ == "__main__":
    main()
