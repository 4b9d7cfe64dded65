"""Background coroutines started by the application lifespan."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from rescontent.state import AppState

log = structlog.get_logger()


async def run_cache_cleanup_scheduler(state: AppState) -> None:
    """Purge expired cache entries on the configured interval, forever."""
    interval_seconds = state.settings.cache.cleanup_interval_seconds

    while True:
        await asyncio.sleep(interval_seconds)
        try:
            purged = state.cache.purge_expired()
        except Exception:
            log.warning("cache_cleanup_error", exc_info=True)
            continue
        if purged:
            log.info("cache_cleanup_complete", purged=purged)


async def warm_up_browser(state: AppState) -> bool:
    """Launch the browser engine ahead of the first request.

    Failure is not fatal: the pool retries the launch on first use.
    """
    try:
        await state.browser_pool.warmup()
    except Exception:
        log.warning("browser_warmup_failed", exc_info=True)
        return False
    return True
