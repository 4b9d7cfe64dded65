from __future__ import annotations

from typing import Literal

from pydantic import BaseModel


class BrowserPoolStatus(BaseModel):
    """Snapshot of the browser pool, reported by /health."""

    status: Literal["ready", "initializing", "error"]
    engine_version: str | None = None
    active_count: int
    max_count: int
    total_pages_created: int
    last_error: str | None = None
