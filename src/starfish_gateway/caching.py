"""TTL cache for Starfish query results.

Results are cached whole, keyed by scope and filter parameters. Expired
results are evicted lazily on lookup; there is no background sweep. The
cache is an accelerator only: internal failures degrade to a miss.
"""

import time
from dataclasses import dataclass
from typing import Callable

from starfish_gateway.models import CachedResult, QueryResult
from starfish_gateway.observability import emit_counter, emit_gauge, emit_metric, get_logger
from starfish_gateway.utils.locks import ReadWriteLock

logger = get_logger(__name__)

DEFAULT_TTL_SECONDS = 3600


def make_cache_key(version: str, bucket: str, prefix: str = "", delimiter: str = "") -> str:
    """Build the deterministic cache key for a listing request."""
    return f"{version}:{bucket}:{prefix}:{delimiter}"


@dataclass
class CacheStats:
    """Point-in-time cache statistics.

    `hit_ratio` is cumulative hits of valid results divided by the number of
    stored results, not by the number of lookups.
    """

    total_entries: int = 0
    valid_entries: int = 0
    expired_entries: int = 0
    total_hits: int = 0
    hit_ratio: float = 0.0

    def to_dict(self) -> dict[str, int | float]:
        return {
            "total_entries": self.total_entries,
            "valid_entries": self.valid_entries,
            "expired_entries": self.expired_entries,
            "total_hits": self.total_hits,
            "cache_hit_ratio": self.hit_ratio,
        }

    def to_metrics(self) -> dict[str, int]:
        """Gauge values for monitoring systems."""
        return {
            "starfish_cache_total_entries": self.total_entries,
            "starfish_cache_valid_entries": self.valid_entries,
            "starfish_cache_expired_entries": self.expired_entries,
            "starfish_cache_total_hits": self.total_hits,
        }


class QueryCache:
    """Readers-writer guarded TTL cache of query results.

    Example:
        cache = QueryCache(ttl_seconds=3600)
        await cache.set("v2:Archive::/", result, "Archive")
        cached = await cache.get("v2:Archive::/")
    """

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize cache.

        Args:
            ttl_seconds: Lifetime of every stored result
            clock: Time source returning epoch seconds
        """
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._data: dict[str, CachedResult] = {}
        self._lock = ReadWriteLock()

    async def get(self, key: str) -> QueryResult | None:
        """Get a cached result.

        Returns None if not present or expired. Expired results are removed.
        """
        try:
            return await self._get(key)
        except Exception as e:
            logger.warning("Cache lookup failed, treating as miss", context={"cache_key": key}, error=e)
            emit_counter("starfish_cache_miss", {"cache_key": key, "reason": "error"})
            return None

    async def _get(self, key: str) -> QueryResult | None:
        async with self._lock.read():
            cached = self._data.get(key)
            if cached is None:
                emit_counter("starfish_cache_miss", {"cache_key": key, "reason": "not_present"})
                return None
            if cached.is_valid(self._clock()):
                cached.hit_count += 1
                emit_counter("starfish_cache_hit", {"cache_key": key})
                emit_metric("starfish_cache_hit_count", cached.hit_count, {"cache_key": key})
                return cached.data

        async with self._lock.write():
            # A concurrent set may have replaced the expired result
            current = self._data.get(key)
            if current is cached:
                del self._data[key]
                emit_gauge("starfish_cache_entries", len(self._data))
        emit_counter("starfish_cache_miss", {"cache_key": key, "reason": "expired"})
        return None

    async def set(self, key: str, data: QueryResult, volume_and_path: str = "") -> None:
        """Store a result, replacing any previous result for the key.

        Args:
            key: Cache key
            data: Query result to cache
            volume_and_path: Descriptor of the originating query
        """
        try:
            async with self._lock.write():
                now = self._clock()
                self._data[key] = CachedResult(
                    data=data,
                    cached_at=now,
                    expires_at=now + self.ttl_seconds,
                    volume_and_path=volume_and_path,
                )
                size = len(self._data)
        except Exception as e:
            logger.warning("Cache store failed", context={"cache_key": key}, error=e)
            return
        emit_counter("starfish_cache_set", {"cache_key": key})
        emit_gauge("starfish_cache_entries", size)

    async def invalidate(self, key: str) -> bool:
        """Remove one result.

        Returns True if the key existed.
        """
        try:
            async with self._lock.write():
                if key not in self._data:
                    return False
                del self._data[key]
                size = len(self._data)
        except Exception as e:
            logger.warning("Cache invalidation failed", context={"cache_key": key}, error=e)
            return False
        emit_counter("starfish_cache_invalidate", {"cache_key": key})
        emit_gauge("starfish_cache_entries", size)
        return True

    async def clear(self) -> int:
        """Remove all results.

        Returns number of results removed.
        """
        try:
            async with self._lock.write():
                cleared = len(self._data)
                self._data = {}
        except Exception as e:
            logger.warning("Cache clear failed", error=e)
            return 0
        emit_metric("starfish_cache_clear", cleared)
        emit_gauge("starfish_cache_entries", 0)
        return cleared

    async def stats(self) -> CacheStats:
        """Compute statistics over stored results."""
        try:
            async with self._lock.read():
                now = self._clock()
                stats = CacheStats(total_entries=len(self._data))
                for cached in self._data.values():
                    if cached.is_valid(now):
                        stats.valid_entries += 1
                        stats.total_hits += cached.hit_count
                    else:
                        stats.expired_entries += 1
        except Exception as e:
            logger.warning("Cache stats failed", error=e)
            return CacheStats()
        if stats.total_entries:
            stats.hit_ratio = stats.total_hits / stats.total_entries
        return stats

    async def describe(self, key: str) -> CachedResult | None:
        """Return the stored record for a key without counting a hit."""
        async with self._lock.read():
            return self._data.get(key)

    @property
    def size(self) -> int:
        """Get current number of stored results, expired included."""
        return len(self._data)
