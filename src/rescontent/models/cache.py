from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import BaseModel


@dataclass(frozen=True)
class CacheEntry:
    """A cached value plus the bookkeeping needed for expiry."""

    value: Any
    content_type: str
    cached_at: datetime  # Wall-clock insertion time, for display
    stored_at: float  # Monotonic insertion time, drives expiry


class CacheStats(BaseModel):
    size: int
    max_size: int
    hit_rate: float  # 0.0–1.0
    hits: int
    misses: int
