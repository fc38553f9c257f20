"""TTL cache: cache-aside get/set over expiring entries with hit accounting."""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Awaitable, Callable

from cadence.caching.repository import CacheRepository
from cadence.caching.types import CacheHit, CacheLookup, CacheMiss, CacheStats
from cadence.errors import ValidationError
from cadence.infrastructure.clock import Clock, SystemClock
from cadence.infrastructure.logger import logger
from cadence.payload import Payload


class TtlCache:
    """Expiring key/value store. Lookups are by key only; cache_type is metadata.

    Expired rows are never removed by get/set. Call sweep_expired() to reclaim them.
    """

    def __init__(self, cache_repo: CacheRepository, clock: Clock | None = None) -> None:
        self._repo = cache_repo
        self._clock = clock or SystemClock()

    def get(self, cache_key: str) -> CacheLookup:
        now = self._clock.now()
        if not self._repo.touch_if_fresh(cache_key, now):
            entry = self._repo.get_entry(cache_key)
            logger.debug("Cache miss", cache_key=cache_key, expired=entry is not None)
            return CacheMiss(cache_key=cache_key, expired=entry is not None)

        entry = self._repo.get_entry(cache_key)
        if entry is None:
            return CacheMiss(cache_key=cache_key)
        logger.debug("Cache hit", cache_key=cache_key, hit_count=entry.hit_count)
        return CacheHit(entry=entry)

    def set(self, cache_key: str, cache_type: str, data: Any, ttl: timedelta | float) -> None:
        if not cache_key:
            raise ValidationError("cache_key is required", field="cache_key")
        if not isinstance(ttl, timedelta):
            ttl = timedelta(seconds=ttl)
        if ttl <= timedelta(0):
            raise ValidationError("ttl must be positive", field="ttl")

        now = self._clock.now()
        self._repo.upsert(cache_key, cache_type, Payload.wrap(data), now + ttl, now)
        logger.debug("Cache set", cache_key=cache_key, cache_type=cache_type, ttl_s=ttl.total_seconds())

    async def get_or_set(
        self,
        cache_key: str,
        cache_type: str,
        ttl: timedelta | float,
        compute: Callable[[], Awaitable[Any]],
    ) -> Any:
        """Return the cached value, or compute, store, and return it."""
        lookup = self.get(cache_key)
        if isinstance(lookup, CacheHit):
            return lookup.data
        value = await compute()
        self.set(cache_key, cache_type, value, ttl)
        return value

    def sweep_expired(self) -> int:
        removed = self._repo.delete_expired(self._clock.now())
        logger.info("Cache sweep complete", removed=removed)
        return removed

    def stats(self) -> CacheStats:
        return self._repo.stats(self._clock.now())
