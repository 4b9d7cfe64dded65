"""Shared test fixtures and Playwright fakes for the rescontent test suite.

Nothing here launches a browser: the fakes implement only the slice of the
Playwright async API that the pool and the extractors call.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from contextlib import asynccontextmanager
from typing import Any
from unittest.mock import AsyncMock

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from rescontent.cache import ContentCache
from rescontent.config import Settings
from rescontent.models.browser import BrowserPoolStatus

# ---------------------------------------------------------------------------
# Playwright fakes
# ---------------------------------------------------------------------------


class FakeResponse:
    def __init__(self, status: int = 200) -> None:
        self.status = status


class FakePage:
    """Records every call; ``evaluate`` answers by script text.

    ``evaluate_results`` maps a script string to either a value, a callable
    taking the evaluate argument, or an exception instance to raise.
    """

    def __init__(
        self,
        *,
        status: int = 200,
        goto_error: Exception | None = None,
        missing_selectors: Iterable[str] = (),
        evaluate_results: dict[str, Any] | None = None,
    ) -> None:
        self.status = status
        self.goto_error = goto_error
        self.missing_selectors = set(missing_selectors)
        self.evaluate_results = evaluate_results or {}
        self.visits: list[tuple[str, dict[str, Any]]] = []
        self.selector_waits: list[tuple[str, float | None]] = []
        self.timeouts: list[float] = []
        self.evaluations: list[tuple[str, Any]] = []
        self.default_timeout: float | None = None
        self.closed = False

    async def goto(self, url: str, **kwargs: Any) -> FakeResponse:
        self.visits.append((url, kwargs))
        if self.goto_error is not None:
            raise self.goto_error
        return FakeResponse(self.status)

    async def wait_for_selector(self, selector: str, timeout: float | None = None) -> None:
        self.selector_waits.append((selector, timeout))
        if selector in self.missing_selectors:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {selector}")

    async def wait_for_timeout(self, timeout: float) -> None:
        self.timeouts.append(timeout)

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        self.evaluations.append((expression, arg))
        result = self.evaluate_results.get(expression)
        if isinstance(result, Exception):
            raise result
        if callable(result):
            return result(arg)
        return result

    def set_default_timeout(self, timeout: float) -> None:
        self.default_timeout = timeout

    async def close(self) -> None:
        self.closed = True


class FakeContext:
    def __init__(self, page_factory: Callable[[], FakePage], options: dict[str, Any]) -> None:
        self._page_factory = page_factory
        self.options = options
        self.pages: list[FakePage] = []
        self.closed = False

    async def new_page(self) -> FakePage:
        page = self._page_factory()
        self.pages.append(page)
        return page

    async def close(self) -> None:
        self.closed = True


class FakeBrowser:
    version = "120.0.6099.28"

    def __init__(self, page_factory: Callable[[], FakePage] | None = None) -> None:
        self._page_factory = page_factory or FakePage
        self.contexts: list[FakeContext] = []
        self.closed = False

    async def new_context(self, **options: Any) -> FakeContext:
        context = FakeContext(self._page_factory, options)
        self.contexts.append(context)
        return context

    async def close(self) -> None:
        self.closed = True


class FakeLauncher:
    """Stands in for ``playwright_launcher``; counts launches."""

    def __init__(self, browser: FakeBrowser | None = None, error: Exception | None = None) -> None:
        self.browser = browser or FakeBrowser()
        self.error = error
        self.calls = 0
        self.stop = AsyncMock()

    async def __call__(self) -> tuple[FakeBrowser, AsyncMock]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.browser, self.stop


class StubPagePool:
    """PagePoolProtocol implementation handing out pre-built pages in order."""

    def __init__(self, pages: Iterable[FakePage] = (), error: Exception | None = None) -> None:
        self.pages = list(pages)
        self.error = error
        self.handed_out: list[FakePage] = []
        self.released = 0

    @asynccontextmanager
    async def page(self, timeout_ms: float | None = None):
        if self.error is not None:
            raise self.error
        page = self.pages.pop(0)
        self.handed_out.append(page)
        try:
            yield page
        finally:
            await page.close()
            self.released += 1

    def status(self) -> BrowserPoolStatus:
        return BrowserPoolStatus(
            status="ready", active_count=0, max_count=1, total_pages_created=len(self.handed_out)
        )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        server={"api_key": "test-key"},
        browser={"max_contexts": 2, "context_timeout_ms": 300, "page_timeout_ms": 5000},
        cache={"max_size": 10, "ttl_seconds": 60},
    )


@pytest.fixture()
def cache() -> ContentCache:
    return ContentCache(max_size=10, ttl_seconds=60)


@pytest.fixture()
def launcher() -> FakeLauncher:
    return FakeLauncher()


@pytest.fixture()
def make_launcher() -> type[FakeLauncher]:
    return FakeLauncher


@pytest.fixture()
def make_browser() -> type[FakeBrowser]:
    return FakeBrowser


@pytest.fixture()
def make_page() -> type[FakePage]:
    """Factory for scripted pages: ``make_page(status=404, evaluate_results={...})``."""
    return FakePage


@pytest.fixture()
def make_pool() -> type[StubPagePool]:
    return StubPagePool
