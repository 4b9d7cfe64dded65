"""Bounded pool of isolated Playwright browser contexts.

One Chromium process is launched lazily (single-flight) and shared by up to
``max_contexts`` browser contexts. Contexts are created on demand, handed to
one caller at a time, and reused until the pool is torn down.

Concurrency model: every mutation of the session map happens between
``await`` points, so the asyncio scheduler cannot interleave two of them and
no lock is needed. Callers waiting for a free session poll at a fixed
interval; fairness between waiters is not guaranteed.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog

from rescontent.errors import BrowserPoolTimeout
from rescontent.models.browser import BrowserPoolStatus

if TYPE_CHECKING:
    from playwright.async_api import Browser, BrowserContext, Page

    from rescontent.config import BrowserSettings

log = structlog.get_logger()

ACQUIRE_POLL_INTERVAL_SECONDS = 0.1

# Returns the launched browser plus an async callback that shuts down
# whatever driver owns it.
BrowserLauncher = Callable[[], Awaitable[tuple["Browser", Callable[[], Awaitable[None]]]]]


def playwright_launcher(settings: BrowserSettings) -> BrowserLauncher:
    """Build the default launcher: headless Chromium via Playwright."""

    async def launch() -> tuple[Browser, Callable[[], Awaitable[None]]]:
        from playwright.async_api import async_playwright

        playwright = await async_playwright().start()
        try:
            browser = await playwright.chromium.launch(
                headless=settings.headless,
                args=settings.launch_args,
            )
        except BaseException:
            await playwright.stop()
            raise
        return browser, playwright.stop

    return launch


@dataclass
class ManagedSession:
    id: str
    context: BrowserContext
    created_at: datetime
    in_use: bool = False


@dataclass
class SessionLease:
    """A session checked out of the pool. Release exactly once."""

    session: ManagedSession
    _pool: BrowserPool = field(repr=False)
    _released: bool = field(default=False, repr=False)

    @property
    def id(self) -> str:
        return self.session.id

    @property
    def context(self) -> BrowserContext:
        return self.session.context

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        self._pool.release(self.session.id)


class BrowserPool:
    """Owns the browser engine and every context created from it."""

    def __init__(
        self,
        settings: BrowserSettings,
        *,
        launcher: BrowserLauncher | None = None,
    ) -> None:
        self._settings = settings
        self._launcher = launcher or playwright_launcher(settings)
        self._browser: Browser | None = None
        self._shutdown_driver: Callable[[], Awaitable[None]] | None = None
        self._init_task: asyncio.Task[None] | None = None
        self._sessions: dict[str, ManagedSession] = {}
        self._creating = 0
        self._total_pages_created = 0
        self._engine_version: str | None = None
        self._last_error: str | None = None

    @property
    def max_contexts(self) -> int:
        return self._settings.max_contexts

    @property
    def active_count(self) -> int:
        return sum(1 for session in self._sessions.values() if session.in_use)

    # ------------------------------------------------------------------
    # Engine lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Launch the engine once; concurrent callers share the same launch."""
        if self._browser is not None:
            return
        if self._init_task is None:
            self._init_task = asyncio.create_task(self._launch())
        task = self._init_task
        try:
            await asyncio.shield(task)
        finally:
            if task.done() and (task.cancelled() or task.exception() is not None):
                # Allow a later caller to retry a failed launch.
                if self._init_task is task:
                    self._init_task = None

    async def _launch(self) -> None:
        log.info("browser_pool_initializing")
        try:
            browser, shutdown_driver = await self._launcher()
        except Exception as exc:
            self._last_error = str(exc) or type(exc).__name__
            log.error("browser_pool_init_failed", error=self._last_error)
            raise
        self._browser = browser
        self._shutdown_driver = shutdown_driver
        self._engine_version = browser.version
        self._last_error = None
        log.info("browser_pool_initialized", engine_version=self._engine_version)

    async def warmup(self) -> None:
        await self.initialize()
        log.info("browser_pool_warmed_up")

    async def cleanup(self) -> None:
        """Close every context and the engine. Safe to call more than once."""
        if self._init_task is not None and not self._init_task.done():
            self._init_task.cancel()
        log.info("browser_pool_cleanup_started", sessions=len(self._sessions))

        sessions = list(self._sessions.values())
        self._sessions.clear()
        for session in sessions:
            try:
                await session.context.close()
                log.debug("browser_context_closed", session_id=session.id)
            except Exception:
                log.warning("browser_context_close_failed", session_id=session.id, exc_info=True)

        browser, self._browser = self._browser, None
        if browser is not None:
            try:
                await browser.close()
                log.info("browser_closed")
            except Exception:
                log.warning("browser_close_failed", exc_info=True)

        shutdown_driver, self._shutdown_driver = self._shutdown_driver, None
        if shutdown_driver is not None:
            try:
                await shutdown_driver()
            except Exception:
                log.warning("browser_driver_stop_failed", exc_info=True)

        self._init_task = None

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def _claim_idle(self) -> ManagedSession | None:
        for session in self._sessions.values():
            if not session.in_use:
                session.in_use = True
                return session
        return None

    async def _create_session(self) -> ManagedSession:
        if self._browser is None:
            raise RuntimeError("Browser not initialized")
        self._creating += 1
        try:
            context = await self._browser.new_context(
                viewport={
                    "width": self._settings.viewport_width,
                    "height": self._settings.viewport_height,
                },
                user_agent=self._settings.user_agent,
            )
        finally:
            self._creating -= 1
        session = ManagedSession(
            id=f"ctx_{uuid.uuid4().hex[:12]}",
            context=context,
            created_at=datetime.now(UTC),
            in_use=True,
        )
        self._sessions[session.id] = session
        log.debug("browser_context_created", session_id=session.id)
        return session

    async def acquire(self, timeout_ms: float | None = None) -> SessionLease:
        """Check out a session, waiting up to ``timeout_ms`` at capacity.

        Raises BrowserPoolTimeout if no session frees up in time.
        """
        if timeout_ms is None:
            timeout_ms = self._settings.context_timeout_ms
        await self.initialize()

        deadline = time.monotonic() + timeout_ms / 1000
        while True:
            session = self._claim_idle()
            if session is not None:
                return SessionLease(session, self)
            # In-flight creations count against capacity so two callers
            # cannot both squeeze into the last slot.
            if self.active_count + self._creating < self.max_contexts:
                return SessionLease(await self._create_session(), self)
            if time.monotonic() >= deadline:
                log.warning("browser_pool_acquire_timeout", timeout_ms=timeout_ms)
                raise BrowserPoolTimeout(timeout_ms)
            await asyncio.sleep(ACQUIRE_POLL_INTERVAL_SECONDS)

    def release(self, session_id: str) -> None:
        session = self._sessions.get(session_id)
        if session is not None:
            session.in_use = False
            log.debug("browser_context_released", session_id=session_id)

    async def create_page(self, session: ManagedSession | SessionLease) -> Page:
        page = await session.context.new_page()
        self._total_pages_created += 1
        page.set_default_timeout(self._settings.page_timeout_ms)
        return page

    @asynccontextmanager
    async def page(self, timeout_ms: float | None = None) -> AsyncIterator[Page]:
        """Yield a fresh page on a pooled session.

        The page is closed and the session released on every exit path.
        """
        lease = await self.acquire(timeout_ms)
        page = None
        try:
            page = await self.create_page(lease)
            yield page
        finally:
            if page is not None:
                try:
                    await page.close()
                except Exception:
                    log.debug("browser_page_close_failed", session_id=lease.id, exc_info=True)
            lease.release()

    def status(self) -> BrowserPoolStatus:
        if self._browser is not None:
            state = "ready"
        elif self._init_task is not None and not self._init_task.done():
            state = "initializing"
        else:
            state = "error"
        return BrowserPoolStatus(
            status=state,
            engine_version=self._engine_version,
            active_count=self.active_count,
            max_count=self.max_contexts,
            total_pages_created=self._total_pages_created,
            last_error=self._last_error,
        )
