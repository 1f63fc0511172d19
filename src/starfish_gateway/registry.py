"""Bucket name to Starfish collection tag mapping.

Buckets are the tags of the Collections tagset: bucket ``Archive`` maps to
tag ``Collections:Archive``. The registry is owned by the gateway and
refreshed periodically in the background.
"""

import asyncio
import contextlib
from datetime import datetime, timezone
from typing import Callable

from starfish_gateway.exceptions import BucketNotFoundError
from starfish_gateway.models import BucketInfo
from starfish_gateway.observability import Timer, emit_counter, emit_gauge, get_logger
from starfish_gateway.upstream import StarfishClient
from starfish_gateway.utils.locks import ReadWriteLock

logger = get_logger(__name__)

DEFAULT_TAGSET = "Collections"
DEFAULT_REFRESH_INTERVAL = 600


def collection_tag(tagset: str, name: str) -> str:
    return f"{tagset}:{name}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CollectionRegistry:
    """Readers-writer guarded bucket -> collection tag map.

    Example:
        registry = CollectionRegistry({"Archive": "Collections:Archive"})
        tag = await registry.resolve("Archive")
    """

    def __init__(
        self,
        collections: dict[str, str] | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._clock = clock
        self._collections: dict[str, str] = dict(collections or {})
        now = clock()
        # First time each bucket was seen, reported as its creation date
        self._discovered: dict[str, datetime] = {name: now for name in self._collections}
        self._lock = ReadWriteLock()

    async def get(self, bucket: str) -> str | None:
        async with self._lock.read():
            return self._collections.get(bucket)

    async def resolve(self, bucket: str) -> str:
        """Get the collection tag for a bucket.

        Raises:
            BucketNotFoundError: If no collection is mapped to the bucket
        """
        tag = await self.get(bucket)
        if tag is None:
            raise BucketNotFoundError(bucket)
        return tag

    async def contains(self, bucket: str) -> bool:
        return await self.get(bucket) is not None

    async def add(self, bucket: str, tag: str) -> None:
        async with self._lock.write():
            self._collections[bucket] = tag
            self._discovered.setdefault(bucket, self._clock())

    async def replace(self, collections: dict[str, str]) -> None:
        """Swap the whole mapping atomically."""
        async with self._lock.write():
            now = self._clock()
            self._discovered = {
                name: self._discovered.get(name, now) for name in collections
            }
            self._collections = dict(collections)

    async def snapshot(self) -> dict[str, str]:
        """Copy of the current mapping."""
        async with self._lock.read():
            return dict(self._collections)

    async def names(self) -> list[str]:
        async with self._lock.read():
            return sorted(self._collections)

    async def buckets(self) -> list[BucketInfo]:
        """Bucket descriptions sorted by name."""
        async with self._lock.read():
            return [
                BucketInfo(
                    name=name,
                    collection_tag=self._collections[name],
                    creation_date=self._discovered[name],
                )
                for name in sorted(self._collections)
            ]

    async def refresh(self, client: StarfishClient, tagset: str = DEFAULT_TAGSET) -> int:
        """Rediscover buckets from the tagset.

        Returns:
            Number of buckets now registered

        Raises:
            UpstreamError: If the tagset cannot be listed; the mapping is kept
        """
        with Timer() as t:
            names = await client.list_collections(tagset)
        await self.replace({name: collection_tag(tagset, name) for name in names})
        logger.info(
            "Discovered collections",
            context={"tagset": tagset, "count": len(names)},
            duration_ms=t.duration_ms,
        )
        emit_gauge("starfish_collections", len(names))
        return len(names)


class CollectionRefresher:
    """Periodically refreshes a registry in a background task.

    Failures are logged and retried on the next tick.
    """

    def __init__(
        self,
        registry: CollectionRegistry,
        client: StarfishClient,
        tagset: str = DEFAULT_TAGSET,
        interval_seconds: float = DEFAULT_REFRESH_INTERVAL,
    ) -> None:
        self.registry = registry
        self.client = client
        self.tagset = tagset
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def refresh_once(self) -> bool:
        """Run one refresh. Returns False if it failed."""
        try:
            await self.registry.refresh(self.client, self.tagset)
        except Exception as e:
            logger.warning("Collection refresh failed", context={"tagset": self.tagset}, error=e)
            emit_counter("starfish_collection_refresh_errors")
            return False
        return True

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            if self._stop_event.is_set():
                return
            await self.refresh_once()

    def start(self) -> None:
        """Start the background loop. No-op if already running."""
        if self.running:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop the background loop and wait for it to exit."""
        self._stop_event.set()
        if self._task is not None:
            if not self._task.done():
                self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
