"""Cache domain types."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from cadence.payload import Payload


class CacheEntry(BaseModel):
    cache_key: str
    cache_type: str = ""
    cached_data: Payload = Field(default_factory=Payload)
    expires_at: datetime
    hit_count: int = 0
    last_accessed: datetime | None = None
    created_at: datetime


class CacheHit(BaseModel):
    entry: CacheEntry

    @property
    def data(self) -> Any:
        return self.entry.cached_data.data

    def __bool__(self) -> bool:
        return True


class CacheMiss(BaseModel):
    cache_key: str
    expired: bool = False

    def __bool__(self) -> bool:
        return False


CacheLookup = CacheHit | CacheMiss


class CacheStats(BaseModel):
    entries: int = 0
    expired: int = 0
    total_hits: int = 0
