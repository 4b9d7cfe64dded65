"""Result envelopes returned by the three fetchers.

Every envelope carries ``success`` plus exactly one of: the kind-specific
payload, or ``error`` + ``error_type``. The validators below reject any
other combination, so a result built anywhere in the codebase is always
well-formed when it reaches the HTTP layer.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Self

from pydantic import BaseModel, model_validator

from rescontent.errors import ErrorType

TranscriptSource = Literal["yt-dlp", "youtube-transcript-api", "cache"]
PageMethod = Literal["playwright", "cache"]


def _check_envelope(success: bool, payload_present: bool, error: str | None, error_type) -> None:
    if success:
        if not payload_present:
            raise ValueError("successful result requires a payload")
        if error is not None or error_type is not None:
            raise ValueError("successful result must not carry error fields")
    else:
        if payload_present:
            raise ValueError("failed result must not carry a payload")
        if error is None or error_type is None:
            raise ValueError("failed result requires error and error_type")


# ---------------------------------------------------------------------------
# Transcripts
# ---------------------------------------------------------------------------


class TranscriptSegment(BaseModel):
    start: float  # seconds
    duration: float  # seconds
    text: str


class Transcript(BaseModel):
    full_text: str
    segments: list[TranscriptSegment]
    language: str
    word_count: int


class TranscriptResult(BaseModel):
    success: bool
    video_id: str
    transcript: Transcript | None = None
    error: str | None = None
    error_type: ErrorType | None = None
    fetch_time_ms: float | None = None
    source: TranscriptSource | None = None
    cached: bool = False

    @model_validator(mode="after")
    def _exactly_one(self) -> Self:
        _check_envelope(self.success, self.transcript is not None, self.error, self.error_type)
        return self

    @classmethod
    def failure(
        cls,
        video_id: str,
        error: str,
        error_type: ErrorType,
        fetch_time_ms: float | None = None,
    ) -> TranscriptResult:
        return cls(
            success=False,
            video_id=video_id,
            error=error,
            error_type=error_type,
            fetch_time_ms=fetch_time_ms,
        )


class BatchTranscriptSummary(BaseModel):
    total: int
    successful: int
    failed: int


class BatchTranscriptResult(BaseModel):
    success: bool = True
    results: list[TranscriptResult]
    summary: BatchTranscriptSummary


# ---------------------------------------------------------------------------
# Pages
# ---------------------------------------------------------------------------


class PageContent(BaseModel):
    text: str
    html: str | None = None


class PageMetadata(BaseModel):
    title: str | None = None
    author: str | None = None
    published_at: str | None = None
    description: str | None = None
    word_count: int
    fetched_at: datetime
    method: PageMethod
    latency_ms: float


class PageResult(BaseModel):
    success: bool
    url: str
    content: PageContent | None = None
    metadata: PageMetadata | None = None
    error: str | None = None
    error_type: ErrorType | None = None

    @model_validator(mode="after")
    def _exactly_one(self) -> Self:
        if (self.content is None) != (self.metadata is None):
            raise ValueError("content and metadata must be set together")
        _check_envelope(self.success, self.content is not None, self.error, self.error_type)
        return self

    @classmethod
    def failure(cls, url: str, error: str, error_type: ErrorType) -> PageResult:
        return cls(success=False, url=url, error=error, error_type=error_type)


# ---------------------------------------------------------------------------
# Social posts
# ---------------------------------------------------------------------------


class SocialPostContent(BaseModel):
    text: str
    author_name: str | None = None
    author_handle: str | None = None
    timestamp: str | None = None
    likes: int | None = None
    retweets: int | None = None
    replies: int | None = None


class SocialPostResult(BaseModel):
    success: bool
    url: str
    content: SocialPostContent | None = None
    error: str | None = None
    error_type: ErrorType | None = None
    fetch_time_ms: float | None = None
    source: str | None = None  # Mirror host, "x.com", or "cache"

    @model_validator(mode="after")
    def _exactly_one(self) -> Self:
        _check_envelope(self.success, self.content is not None, self.error, self.error_type)
        return self

    @classmethod
    def failure(
        cls,
        url: str,
        error: str,
        error_type: ErrorType,
        fetch_time_ms: float | None = None,
    ) -> SocialPostResult:
        return cls(
            success=False,
            url=url,
            error=error,
            error_type=error_type,
            fetch_time_ms=fetch_time_ms,
        )
