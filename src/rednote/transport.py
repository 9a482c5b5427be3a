"""Streamable HTTP transport and security middleware for the MCP server."""

from __future__ import annotations

import re
import secrets
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog
import uvicorn
from starlette.datastructures import Headers
from starlette.responses import JSONResponse, Response

if TYPE_CHECKING:
    from mcp.server.fastmcp import FastMCP
    from starlette.types import ASGIApp, Receive, Scope, Send

    from rednote.config import Settings

log = structlog.get_logger()

SUPPORTED_PROTOCOL_VERSIONS: frozenset[str] = frozenset({"2025-11-25", "2025-06-18", "2025-03-26"})
HEALTH_PATH = "/health"
_LOCALHOST_ORIGIN = re.compile(r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$")


class MCPSecurityMiddleware:
    """Pure ASGI middleware guarding the Streamable HTTP endpoint.

    ``GET /health`` is answered here, before any check, so process
    supervisors can probe the server without credentials. Every other HTTP
    request runs through ``_rejection`` in this order:

    1. Bearer key, when auth is enabled (401).
    2. Origin header must be localhost; blocks DNS rebinding from a browser
       tab (403).
    3. MCP-Protocol-Version, if sent, must be one we speak (400).

    Pure ASGI rather than BaseHTTPMiddleware: the search tool can run for
    minutes and its SSE stream must not be buffered.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        auth_enabled: bool,
        auth_key: str | None = None,
    ) -> None:
        self.app = app
        self.auth_enabled = auth_enabled
        self.auth_key = auth_key

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        if scope["path"] == HEALTH_PATH and scope["method"] == "GET":
            await _health_response()(scope, receive, send)
            return

        rejection = self._rejection(Headers(scope=scope))
        if rejection is not None:
            log.info(
                "http_request_rejected",
                path=scope["path"],
                status=rejection.status_code,
            )
            await rejection(scope, receive, send)
            return

        await self.app(scope, receive, send)

    def _rejection(self, headers: Headers) -> Response | None:
        """Return the error response for the first failed check, or None."""
        if self.auth_enabled and not self._authorised(headers.get("authorization", "")):
            return Response("Unauthorized", status_code=401)

        origin = headers.get("origin", "")
        if origin and not _LOCALHOST_ORIGIN.match(origin):
            return Response("Forbidden", status_code=403)

        proto_version = headers.get("mcp-protocol-version", "")
        if proto_version and proto_version not in SUPPORTED_PROTOCOL_VERSIONS:
            return Response(f"Unsupported protocol version: {proto_version}", status_code=400)
        return None

    def _authorised(self, auth_header: str) -> bool:
        scheme, _, token = auth_header.partition(" ")
        if scheme != "Bearer" or not token:
            return False
        # Constant-time comparison
        return secrets.compare_digest(token, self.auth_key or "")


def _health_response() -> JSONResponse:
    return JSONResponse({"status": "ok", "timestamp": datetime.now(UTC).isoformat()})


def run_http_server(mcp: FastMCP, settings: Settings) -> None:
    """Serve the MCP app over Streamable HTTP behind ``MCPSecurityMiddleware``.

    Blocks until uvicorn exits. With auth enabled and no key configured, a
    random key is generated and logged once at startup.
    """
    server = settings.server
    http_log = log.bind(transport="http", host=server.host, port=server.port)

    auth_key = server.auth_key or None
    if server.auth_enabled and auth_key is None:
        auth_key = secrets.token_urlsafe(32)
        http_log.warning("http_auth_key_auto_generated", auth_key=auth_key)
    elif not server.auth_enabled:
        http_log.warning("http_auth_disabled")

    http_log.info("http_server_starting", health_path=HEALTH_PATH)
    uvicorn.run(
        MCPSecurityMiddleware(
            mcp.streamable_http_app(),
            auth_enabled=server.auth_enabled,
            auth_key=auth_key,
        ),
        host=server.host,
        port=server.port,
        log_config=None,  # structlog owns logging
    )
