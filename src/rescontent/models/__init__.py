from __future__ import annotations

from rescontent.models.browser import BrowserPoolStatus
from rescontent.models.cache import CacheEntry, CacheStats
from rescontent.models.requests import (
    BatchTranscriptRequest,
    PageRequest,
    SocialPostRequest,
)
from rescontent.models.results import (
    BatchTranscriptResult,
    BatchTranscriptSummary,
    PageContent,
    PageMetadata,
    PageResult,
    SocialPostContent,
    SocialPostResult,
    Transcript,
    TranscriptResult,
    TranscriptSegment,
)
from rescontent.models.version import CompatibilityCheck, VersionCheckRequest

__all__ = [
    # browser
    "BrowserPoolStatus",
    # cache
    "CacheEntry",
    "CacheStats",
    # requests
    "PageRequest",
    "SocialPostRequest",
    "BatchTranscriptRequest",
    # results
    "TranscriptSegment",
    "Transcript",
    "TranscriptResult",
    "BatchTranscriptSummary",
    "BatchTranscriptResult",
    "PageContent",
    "PageMetadata",
    "PageResult",
    "SocialPostContent",
    "SocialPostResult",
    # version
    "VersionCheckRequest",
    "CompatibilityCheck",
]
