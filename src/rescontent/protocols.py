"""Protocol interfaces for swappable components.

Fetchers and AppState reference these protocols, not the concrete
implementations. This allows:
- Tests to use lightweight fakes (no Chromium, no yt-dlp, no network)
- Future backends (e.g. a shared Redis cache) to be swapped without
  changing fetcher code
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from contextlib import AbstractAsyncContextManager

    from playwright.async_api import Page

    from rescontent.models.browser import BrowserPoolStatus
    from rescontent.models.cache import CacheStats
    from rescontent.models.results import TranscriptResult


class CacheProtocol(Protocol):
    """Interface for the content cache shared by all fetchers."""

    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any, content_type: str = "unknown") -> None: ...

    def has(self, key: str) -> bool: ...

    def delete(self, key: str) -> bool: ...

    def clear(self) -> None: ...

    def stats(self) -> CacheStats: ...

    def keys_by_prefix(self, prefix: str) -> list[str]: ...

    def delete_by_prefix(self, prefix: str) -> int: ...

    def remaining_ttl(self, key: str) -> float | None: ...

    def purge_expired(self) -> int: ...


class PagePoolProtocol(Protocol):
    """Interface for anything that can lend out a browser page."""

    def page(self, timeout_ms: float | None = None) -> AbstractAsyncContextManager[Page]: ...

    def status(self) -> BrowserPoolStatus: ...


class TranscriptBackend(Protocol):
    """One strategy in the transcript fallback chain."""

    name: str

    async def attempt(self, video_id: str, language: str) -> TranscriptResult: ...
