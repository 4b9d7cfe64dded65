"""Application state container.

AppState is created once at server startup (inside the Starlette lifespan)
and stored on ``app.state.app_state``; every route handler reads it from
there.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from rescontent.browser_pool import BrowserPool
    from rescontent.config import Settings
    from rescontent.pages import PageExtractor
    from rescontent.protocols import CacheProtocol
    from rescontent.social import SocialPostExtractor
    from rescontent.transcripts import TranscriptFetcher


@dataclass
class AppState:
    """Holds all shared runtime state. Passed to every route handler."""

    settings: Settings
    cache: CacheProtocol
    browser_pool: BrowserPool
    transcripts: TranscriptFetcher
    pages: PageExtractor
    social_posts: SocialPostExtractor
    started_at: float = field(default_factory=time.monotonic)

    @property
    def uptime_seconds(self) -> float:
        return round(time.monotonic() - self.started_at, 1)
