"""Integration test fixtures.

Provides an AppState with a real ContentCache and mocked fetchers and
browser pool, plus an httpx client speaking to the Starlette app in-process.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from rescontent.models.browser import BrowserPoolStatus
from rescontent.server import create_app
from rescontent.state import AppState

API_KEY = "test-key"


@pytest.fixture()
def browser_pool() -> MagicMock:
    pool = MagicMock()
    pool.status.return_value = BrowserPoolStatus(
        status="ready",
        engine_version="120.0.6099.28",
        active_count=0,
        max_count=2,
        total_pages_created=0,
    )
    pool.warmup = AsyncMock()
    pool.cleanup = AsyncMock()
    return pool


@pytest.fixture()
def app_state(settings, cache, browser_pool) -> AppState:
    transcripts = MagicMock()
    transcripts.fetch = AsyncMock()
    transcripts.fetch_batch = AsyncMock()
    pages = MagicMock()
    pages.fetch = AsyncMock()
    social_posts = MagicMock()
    social_posts.fetch = AsyncMock()
    return AppState(
        settings=settings,
        cache=cache,
        browser_pool=browser_pool,
        transcripts=transcripts,
        pages=pages,
        social_posts=social_posts,
    )


@pytest.fixture()
def app(app_state: AppState):
    return create_app(state=app_state)


@pytest.fixture()
async def client(app):
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://localhost",
        headers={"X-API-Key": API_KEY},
    ) as client:
        yield client
