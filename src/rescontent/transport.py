"""HTTP transport: API-key middleware and the uvicorn entrypoint."""

from __future__ import annotations

import secrets
from typing import TYPE_CHECKING

import structlog
import uvicorn
from starlette.datastructures import Headers
from starlette.responses import JSONResponse

if TYPE_CHECKING:
    from collections.abc import Iterable

    from starlette.types import ASGIApp, Receive, Scope, Send

    from rescontent.config import Settings

log = structlog.get_logger()

API_KEY_HEADER = "x-api-key"
PUBLIC_PATHS: frozenset[str] = frozenset({"/", "/ping", "/health", "/version"})


class APIKeyMiddleware:
    """Pure ASGI middleware enforcing the ``X-API-Key`` header.

    Paths in ``public_paths`` pass through untouched. For everything else:
    key not configured on the server → 500, header missing → 401, header
    present but wrong → 403.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        auth_enabled: bool,
        api_key: str | None = None,
        public_paths: Iterable[str] = PUBLIC_PATHS,
    ) -> None:
        self.app = app
        self.auth_enabled = auth_enabled
        self.api_key = api_key or None
        self.public_paths = frozenset(public_paths)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if (
            scope["type"] == "http"
            and self.auth_enabled
            and scope["path"] not in self.public_paths
        ):
            response = self._reject(scope)
            if response is not None:
                await response(scope, receive, send)
                return

        await self.app(scope, receive, send)

    def _reject(self, scope: Scope) -> JSONResponse | None:
        if self.api_key is None:
            log.error("api_key_not_configured", path=scope["path"])
            return JSONResponse({"error": "Server configuration error"}, status_code=500)

        client = scope.get("client")
        client_host = client[0] if client else None
        supplied = Headers(scope=scope).get(API_KEY_HEADER)
        if not supplied:
            log.warning("api_key_missing", path=scope["path"], client=client_host)
            return JSONResponse({"error": "API key required"}, status_code=401)

        if not secrets.compare_digest(supplied.encode(), self.api_key.encode()):
            log.warning("api_key_invalid", path=scope["path"], client=client_host)
            return JSONResponse({"error": "Invalid API key"}, status_code=403)

        return None


def run_http_server(app: ASGIApp, settings: Settings) -> None:
    """Serve the application with uvicorn until SIGINT/SIGTERM."""
    http_log = log.bind(host=settings.server.host, port=settings.server.port)

    if not settings.server.auth_enabled:
        http_log.warning("http_auth_disabled")
    elif not settings.server.api_key:
        http_log.error("http_api_key_missing", hint="set RESCONTENT__SERVER__API_KEY")

    uvicorn.run(
        app,
        host=settings.server.host,
        port=settings.server.port,
        log_config=None,  # Disable uvicorn's default logging; structlog handles it
    )
