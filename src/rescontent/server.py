"""HTTP server entrypoint.

Responsibilities (and nothing more):
- Configure structlog
- Create AppState inside the Starlette lifespan and tear it down on shutdown
- Register routes that translate HTTP requests into fetcher calls
- Start uvicorn
"""

from __future__ import annotations

import asyncio
import json
import logging
import platform
import sys
from contextlib import asynccontextmanager, suppress
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError
from starlette.applications import Starlette
from starlette.exceptions import HTTPException
from starlette.middleware import Middleware
from starlette.responses import JSONResponse
from starlette.routing import Route

from rescontent import __version__
from rescontent.browser_pool import BrowserPool
from rescontent.cache import ContentCache
from rescontent.config import Settings
from rescontent.errors import ErrorType, status_code_for
from rescontent.models.requests import BatchTranscriptRequest, PageRequest, SocialPostRequest
from rescontent.models.version import VersionCheckRequest
from rescontent.pages import PageExtractor
from rescontent.schedulers import run_cache_cleanup_scheduler, warm_up_browser
from rescontent.social import SocialPostExtractor, is_social_post_url
from rescontent.state import AppState
from rescontent.transcripts import (
    TranscriptApiBackend,
    TranscriptFetcher,
    YtDlpBackend,
    extract_video_id,
)
from rescontent.transport import PUBLIC_PATHS, APIKeyMiddleware, run_http_server
from rescontent.versioning import check_compatibility

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from pydantic import BaseModel
    from starlette.requests import Request

log = structlog.get_logger()

SERVICE_NAME = "rescontent"
API_VERSION = "v1"
FEATURES = [
    "youtube-transcript",
    "twitter-content",
    "playwright-content",
    "content-cache",
    "browser-pool",
]
INVALID_POST_URL_MESSAGE = (
    "Invalid Twitter/X URL. Must be a tweet URL like https://x.com/user/status/123"
)

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
        processors = [*shared_processors, structlog.processors.JSONRenderer()]
    else:
        processors = [*shared_processors, structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

# ---------------------------------------------------------------------------
# State construction
# ---------------------------------------------------------------------------

def build_state(settings: Settings) -> AppState:
    """Wire the cache, the browser pool and the three fetchers together."""
    cache = ContentCache(
        max_size=settings.cache.max_size,
        ttl_seconds=settings.cache.ttl_seconds,
    )
    pool = BrowserPool(settings.browser)
    transcripts = TranscriptFetcher(
        cache,
        [YtDlpBackend(settings.transcript), TranscriptApiBackend()],
        default_language=settings.transcript.default_language,
    )
    pages = PageExtractor(pool, cache, page_timeout_ms=settings.browser.page_timeout_ms)
    social_posts = SocialPostExtractor(
        pool, cache, page_timeout_ms=settings.browser.page_timeout_ms
    )
    return AppState(
        settings=settings,
        cache=cache,
        browser_pool=pool,
        transcripts=transcripts,
        pages=pages,
        social_posts=social_posts,
    )

# ---------------------------------------------------------------------------
# Response helpers
# ---------------------------------------------------------------------------

def _state(request: Request) -> AppState:
    return request.app.state.app_state

def _model_response(model: BaseModel, status_code: int = 200) -> JSONResponse:
    return JSONResponse(model.model_dump(mode="json", exclude_none=True), status_code=status_code)

def _result_response(result: Any) -> JSONResponse:
    status_code = 200 if result.success else status_code_for(result.error_type)
    return _model_response(result, status_code)

def _bad_request(error: str, **extra: Any) -> JSONResponse:
    return JSONResponse({"success": False, "error": error, **extra}, status_code=400)

def _validation_message(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first["loc"])
    return f"{location}: {first['msg']}" if location else first["msg"]

async def _json_body(request: Request) -> dict[str, Any] | None:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    return body if isinstance(body, dict) else None

def format_uptime(seconds: float) -> str:
    """``93784`` → ``"1d 2h 3m 4s"``."""
    total = int(seconds)
    days, rest = divmod(total, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, secs = divmod(rest, 60)
    parts = []
    if days:
        parts.append(f"{days}d")
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    parts.append(f"{secs}s")
    return " ".join(parts)

# ---------------------------------------------------------------------------
# Public routes
# ---------------------------------------------------------------------------

async def index(request: Request) -> JSONResponse:
    return JSONResponse(
        {
            "service": SERVICE_NAME,
            "version": __version__,
            "endpoints": {
                "public": {
                    "ping": "GET /ping",
                    "health": "GET /health",
                    "version": "GET /version",
                },
                "authenticated": {
                    "health_detailed": "GET /health/detailed",
                    "version_check": "POST /version/check",
                    "version_features": "GET /version/features",
                    "transcript": "GET /transcript?videoId={id}&language={lang}",
                    "transcript_batch": "POST /transcript/batch",
                    "transcript_cache": "GET|DELETE /transcript/cache",
                    "content": "GET|POST /content/fetch",
                    "twitter": "GET|POST /twitter/content",
                    "twitter_validate": "POST /twitter/validate",
                    "cache": "GET|DELETE /cache",
                },
            },
            "authentication": {"header": "X-API-Key"},
        }
    )

async def ping(request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok", "timestamp": datetime.now(UTC).isoformat()})

def _health_payload(state: AppState) -> dict[str, Any]:
    browser = state.browser_pool.status()
    uptime = state.uptime_seconds
    started_at = datetime.now(UTC) - timedelta(seconds=uptime)
    return {
        "status": "degraded" if browser.status == "error" else "operational",
        "version": __version__,
        "uptime": int(uptime),
        "uptime_formatted": format_uptime(uptime),
        "started_at": started_at.isoformat(),
        "browser": browser.model_dump(mode="json"),
        "cache": state.cache.stats().model_dump(mode="json"),
    }

async def health(request: Request) -> JSONResponse:
    return JSONResponse(_health_payload(_state(request)))

async def health_detailed(request: Request) -> JSONResponse:
    state = _state(request)
    settings = state.settings
    payload = _health_payload(state)
    payload["config"] = {
        "port": settings.server.port,
        "browser_max_contexts": settings.browser.max_contexts,
        "cache_max_size": settings.cache.max_size,
        "cache_ttl_seconds": settings.cache.ttl_seconds,
        "transcript_batch_max": settings.transcript.batch_max,
    }
    payload["system"] = {
        "hostname": platform.node(),
        "platform": sys.platform,
        "arch": platform.machine(),
        "python_version": platform.python_version(),
    }
    return JSONResponse(payload)

async def version(request: Request) -> JSONResponse:
    return JSONResponse(
        {
            "service": SERVICE_NAME,
            "version": __version__,
            "api_version": API_VERSION,
            "min_client_version": _state(request).settings.server.min_client_version,
            "features": FEATURES,
        }
    )

async def check_version(request: Request) -> JSONResponse:
    body = await _json_body(request)
    try:
        payload = VersionCheckRequest.model_validate(body or {})
    except ValidationError:
        return _bad_request("clientVersion is required in request body")

    result = check_compatibility(
        payload.client_version,
        service_version=__version__,
        min_client_version=_state(request).settings.server.min_client_version,
    )
    return _model_response(result)

async def version_features(request: Request) -> JSONResponse:
    return JSONResponse(
        {
            "version": __version__,
            "features": FEATURES,
            "endpoints": {
                "transcript": {"supported": True, "methods": ["GET"], "batch_support": True},
                "content": {"supported": True, "methods": ["GET", "POST"], "playwright": True},
                "twitter": {"supported": True, "methods": ["GET", "POST"]},
            },
        }
    )


# ---------------------------------------------------------------------------
# Transcript routes
# ---------------------------------------------------------------------------

async def get_transcript(request: Request) -> JSONResponse:
    raw_id = request.query_params.get("videoId")
    if not raw_id:
        return _bad_request("videoId query parameter is required")

    video_id = extract_video_id(raw_id)
    if video_id is None:
        return _bad_request("Invalid videoId format")

    result = await _state(request).transcripts.fetch(
        video_id, request.query_params.get("language") or None
    )
    return _result_response(result)

async def batch_transcripts(request: Request) -> JSONResponse:
    state = _state(request)
    body = await _json_body(request)
    if body is None:
        return _bad_request("videoIds array is required")
    try:
        payload = BatchTranscriptRequest.model_validate(body)
    except ValidationError:
        return _bad_request("videoIds array is required")

    batch_max = state.settings.transcript.batch_max
    if len(payload.video_ids) > batch_max:
        return _bad_request(f"Maximum {batch_max} videos per batch request")

    result = await state.transcripts.fetch_batch(payload.video_ids, payload.language)
    return _model_response(result)

async def transcript_cache_stats(request: Request) -> JSONResponse:
    cache = _state(request).cache
    stats = cache.stats().model_dump(mode="json")
    stats["transcripts"] = len(cache.keys_by_prefix("transcript:"))
    return JSONResponse(stats)

async def clear_transcript_cache(request: Request) -> JSONResponse:
    removed = _state(request).cache.delete_by_prefix("transcript:")
    return JSONResponse({"success": True, "message": "Cache cleared", "removed": removed})

# ---------------------------------------------------------------------------
# Content routes
# ---------------------------------------------------------------------------

async def fetch_content(request: Request) -> JSONResponse:
    if request.method == "GET":
        params = request.query_params
        if not params.get("url"):
            return _bad_request("url query parameter is required")
        raw = {"url": params["url"], "waitFor": params.get("waitFor"), "timeout": params.get("timeout")}
    else:
        raw = await _json_body(request)
        if not raw or not raw.get("url"):
            return _bad_request("url is required in request body")

    try:
        payload = PageRequest.model_validate({k: v for k, v in raw.items() if v is not None})
    except ValidationError as exc:
        return _bad_request(_validation_message(exc), url=raw.get("url"))

    result = await _state(request).pages.fetch(
        payload.url,
        wait_for_selector=payload.wait_for_selector,
        timeout_ms=payload.timeout_ms,
    )
    return _result_response(result)

# ---------------------------------------------------------------------------
# Social post routes
# ---------------------------------------------------------------------------

async def fetch_social_post(request: Request) -> JSONResponse:
    if request.method == "GET":
        url = request.query_params.get("url")
        if not url:
            return _bad_request("url query parameter is required")
    else:
        body = await _json_body(request)
        try:
            url = SocialPostRequest.model_validate(body or {}).url
        except ValidationError:
            return _bad_request("url is required in request body")

    if not is_social_post_url(url):
        return _bad_request(
            INVALID_POST_URL_MESSAGE, url=url, error_type=ErrorType.INVALID_URL.value
        )

    result = await _state(request).social_posts.fetch(url)
    return _result_response(result)

async def validate_social_post(request: Request) -> JSONResponse:
    body = await _json_body(request)
    try:
        url = SocialPostRequest.model_validate(body or {}).url
    except ValidationError:
        return _bad_request("url is required in request body")
    return JSONResponse({"valid": is_social_post_url(url), "url": url})

# ---------------------------------------------------------------------------
# Cache administration
# ---------------------------------------------------------------------------

async def cache_stats(request: Request) -> JSONResponse:
    return _model_response(_state(request).cache.stats())

async def clear_cache(request: Request) -> JSONResponse:
    _state(request).cache.clear()
    return JSONResponse({"success": True, "message": "Cache cleared"})

# ---------------------------------------------------------------------------
# Error handlers
# ---------------------------------------------------------------------------

async def _not_found(request: Request, exc: HTTPException) -> JSONResponse:
    if exc.status_code == 404:
        return JSONResponse({"error": "Not found"}, status_code=404)
    return JSONResponse({"error": exc.detail}, status_code=exc.status_code)

async def _internal_error(request: Request, exc: Exception) -> JSONResponse:
    log.error("route_unexpected_error", path=request.url.path, exc_info=exc)
    return JSONResponse(
        {
            "success": False,
            "error": "Internal server error",
            "error_type": ErrorType.SERVER_ERROR.value,
        },
        status_code=500,
    )

# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

ROUTES = [
    Route("/", index),
    Route("/ping", ping),
    Route("/health", health),
    Route("/health/detailed", health_detailed),
    Route("/version", version),
    Route("/version/check", check_version, methods=["POST"]),
    Route("/version/features", version_features, methods=["GET"]),
    Route("/transcript", get_transcript),
    Route("/transcript/batch", batch_transcripts, methods=["POST"]),
    Route("/transcript/cache", transcript_cache_stats, methods=["GET"]),
    Route("/transcript/cache", clear_transcript_cache, methods=["DELETE"]),
    Route("/content/fetch", fetch_content, methods=["GET", "POST"]),
    Route("/twitter/content", fetch_social_post, methods=["GET", "POST"]),
    Route("/twitter/validate", validate_social_post, methods=["POST"]),
    Route("/cache", cache_stats, methods=["GET"]),
    Route("/cache", clear_cache, methods=["DELETE"]),
]

def create_app(settings: Settings | None = None, *, state: AppState | None = None) -> Starlette:
    """Build the ASGI application.

    When ``state`` is given it is installed immediately and owned by the
    caller; otherwise the lifespan builds one from ``settings``.
    """
    if state is not None:
        settings = state.settings
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        app_state: AppState = getattr(app.state, "app_state", None) or build_state(settings)
        app.state.app_state = app_state
        log.info("server_starting", version=__version__, port=settings.server.port)

        await warm_up_browser(app_state)
        cleanup_task = asyncio.create_task(run_cache_cleanup_scheduler(app_state))

        log.info(
            "server_started",
            version=__version__,
            max_contexts=settings.browser.max_contexts,
            cache_max_size=settings.cache.max_size,
        )
        try:
            yield
        finally:
            log.info("server_stopping")
            cleanup_task.cancel()
            with suppress(asyncio.CancelledError):
                await cleanup_task
            await app_state.browser_pool.cleanup()
            log.info("server_stopped")

    app = Starlette(
        routes=ROUTES,
        middleware=[
            Middleware(
                APIKeyMiddleware,
                auth_enabled=settings.server.auth_enabled,
                api_key=settings.server.api_key,
                public_paths=PUBLIC_PATHS,
            )
        ],
        exception_handlers={HTTPException: _not_found, Exception: _internal_error},
        lifespan=lifespan,
    )
    if state is not None:
        app.state.app_state = state
    return app

# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------

def main() -> None:
    settings = Settings()
    _setup_logging(settings)
    run_http_server(create_app(settings), settings)

if __name__ == "__main__":
    main()
