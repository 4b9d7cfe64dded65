"""Validated request bodies for the HTTP layer."""

from __future__ import annotations

from pydantic import BaseModel, Field


class PageRequest(BaseModel):
    url: str = Field(min_length=1, max_length=2048)
    wait_for_selector: str | None = Field(default=None, alias="waitFor")
    timeout_ms: int | None = Field(default=None, alias="timeout", ge=1, le=300_000)

    model_config = {"populate_by_name": True}


class SocialPostRequest(BaseModel):
    url: str = Field(min_length=1, max_length=2048)


class BatchTranscriptRequest(BaseModel):
    video_ids: list[str] = Field(alias="videoIds", min_length=1)
    language: str | None = None

    model_config = {"populate_by_name": True}
