"""Main StarfishGateway class for starfish-gateway."""

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from starfish_gateway.caching import CacheStats, QueryCache, make_cache_key
from starfish_gateway.config import Config
from starfish_gateway.exceptions import (
    NotImplementedOperationError,
    ObjectNotFoundError,
)
from starfish_gateway.listing import ListingConverter, to_object_info
from starfish_gateway.models import BucketInfo, ListingParams, ListingResult, ObjectInfo, QueryResult
from starfish_gateway.observability import (
    LogLevel,
    Timer,
    configure_logging,
    emit_counter,
    emit_metric,
    emit_timer,
    get_logger,
)
from starfish_gateway.registry import CollectionRefresher, CollectionRegistry
from starfish_gateway.rewrite import PathRewriter, load_rules
from starfish_gateway.upstream import StarfishClient

logger = get_logger(__name__)

# Only regular files are listed
FILES_ONLY_FILTER = "type=f"


@dataclass
class ObjectContent:
    """Content and metadata of one object."""

    body: bytes
    info: ObjectInfo


class StarfishGateway:
    """Read-only S3 view over Starfish collections.

    Example usage:
        # Load from config file
        gateway = StarfishGateway.from_config("config.yaml")

        # Start HTTP server
        gateway.serve(port=7070)

        # Or use directly
        async with gateway:
            listing = await gateway.list_objects_v2("Archive", delimiter="/")
    """

    def __init__(
        self,
        config: Config,
        client: StarfishClient | None = None,
        registry: CollectionRegistry | None = None,
        cache: QueryCache | None = None,
        rewriter: PathRewriter | None = None,
    ) -> None:
        """Initialize the gateway with configuration.

        Components not passed in are built from the configuration. Use
        `StarfishGateway.from_config()` for convenience.

        Raises:
            ConfigError: If the path rewrite rules cannot be loaded
        """
        self.config = config
        self.client = client or StarfishClient.from_config(config.starfish)
        self.registry = registry or CollectionRegistry()
        self.cache = cache or QueryCache(ttl_seconds=config.cache.ttl_seconds)
        if rewriter is None:
            rewriter = PathRewriter(load_rules(config.rewrite.rules_path))
        self.rewriter = rewriter
        self.converter = ListingConverter(rewriter, strict_prefix=config.listing.strict_prefix)
        self.refresher = CollectionRefresher(
            self.registry,
            self.client,
            tagset=config.starfish.collections_tagset,
            interval_seconds=config.collections.refresh_interval_seconds,
        )
        self._started = False

    @classmethod
    def from_config(cls, path: str | Path) -> "StarfishGateway":
        """Create a gateway from a YAML or JSON configuration file."""
        return cls(Config.from_file(path))

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> "StarfishGateway":
        """Create a gateway from a configuration dictionary."""
        return cls(Config.from_dict(config_dict))

    async def start(self) -> None:
        """Discover collections and start the background refresher.

        Raises:
            UpstreamError: If the initial discovery fails
        """
        if self._started:
            return
        if self.config.collections.refresh_on_start:
            await self.registry.refresh(self.client, self.config.starfish.collections_tagset)
        self.refresher.start()
        self._started = True
        logger.info(
            "Gateway started",
            context={
                "endpoint": self.client.endpoint,
                "rules": len(self.rewriter.rules),
                "file_server": self.client.serves_files,
            },
        )

    async def shutdown(self) -> None:
        """Stop the refresher, drop cached results and close connections."""
        await self.refresher.stop()
        cleared = await self.cache.clear()
        await self.client.close()
        self._started = False
        logger.info("Gateway stopped", context={"cleared_cache_entries": cleared})

    async def _query(self, bucket: str, version: str, prefix: str, delimiter: str, operation: str) -> QueryResult:
        """Cached upstream query for a bucket.

        Raises:
            BucketNotFoundError: If the bucket has no collection
            UpstreamError: If the upstream query fails
        """
        tag = await self.registry.resolve(bucket)
        cache_key = make_cache_key(version, bucket, prefix, delimiter)

        cached = await self.cache.get(cache_key)
        if cached is not None:
            return cached

        labels = {"bucket": bucket, "operation": operation}
        timer = Timer()
        try:
            with timer:
                result = await self.client.query(tag, FILES_ONLY_FILTER)
        except Exception as e:
            emit_timer("starfish_query_duration_ms", timer.duration_ms, dict(labels))
            emit_counter("starfish_query_errors", dict(labels))
            logger.error("Starfish query failed", context={"collection_tag": tag}, error=e)
            raise

        emit_timer("starfish_query_duration_ms", timer.duration_ms, dict(labels))
        emit_counter("starfish_query_success", dict(labels))
        emit_metric("starfish_objects_returned", len(result.entries), {"bucket": bucket})
        logger.info(
            "Starfish query complete",
            context={"collection_tag": tag, "entries": result.total, "cache_key": cache_key},
            duration_ms=timer.duration_ms,
        )

        await self.cache.set(cache_key, result, bucket)
        return result

    def _max_keys(self, max_keys: int | None) -> int:
        return self.config.listing.default_max_keys if max_keys is None else max_keys

    async def list_objects(
        self,
        bucket: str,
        prefix: str = "",
        delimiter: str = "",
        marker: str = "",
        max_keys: int | None = None,
    ) -> ListingResult:
        """List a bucket with V1 semantics; `marker` is the resume cursor."""
        result = await self._query(bucket, "v1", prefix, delimiter, "ListObjects")
        params = ListingParams(
            prefix=prefix,
            delimiter=delimiter,
            start_after=marker,
            max_keys=self._max_keys(max_keys),
        )
        return self.converter.convert(result.entries, bucket, params)

    async def list_objects_v2(
        self,
        bucket: str,
        prefix: str = "",
        delimiter: str = "",
        start_after: str = "",
        continuation_token: str = "",
        max_keys: int | None = None,
    ) -> ListingResult:
        """List a bucket with V2 semantics.

        The continuation token is the last key of the previous page and takes
        precedence over `start_after`. The echoed `start_after` is always the
        caller's value.
        """
        result = await self._query(bucket, "v2", prefix, delimiter, "ListObjectsV2")
        params = ListingParams(
            prefix=prefix,
            delimiter=delimiter,
            start_after=continuation_token or start_after,
            max_keys=self._max_keys(max_keys),
        )
        listing = self.converter.convert(result.entries, bucket, params)
        listing.start_after = start_after
        return listing

    async def head_object(self, bucket: str, key: str) -> ObjectInfo:
        """Metadata of the object presented under `key`.

        Raises:
            BucketNotFoundError: If the bucket has no collection
            ObjectNotFoundError: If no entry is presented under `key`
        """
        result = await self._query(bucket, "obj", "", "", "HeadObject")
        for entry in result.entries:
            presented = self.converter.presented_key(entry, bucket)
            if presented == key:
                return to_object_info(entry, presented)
        raise ObjectNotFoundError(bucket, key)

    async def get_object(self, bucket: str, key: str) -> ObjectContent:
        """Read object content through the file server.

        Raises:
            NotImplementedOperationError: If no file server is configured
            BucketNotFoundError: If the bucket has no collection
            ObjectNotFoundError: If the key or the file does not exist
        """
        if not self.client.serves_files:
            raise NotImplementedOperationError("GetObject requires a file server")

        info = await self.head_object(bucket, key)
        try:
            body = await self.client.fetch_file(info.volume, info.source_path)
        except ObjectNotFoundError as e:
            raise ObjectNotFoundError(bucket, key) from e
        emit_metric("starfish_bytes_served", len(body), {"bucket": bucket})
        return ObjectContent(body=body, info=info)

    async def list_buckets(self) -> list[BucketInfo]:
        return await self.registry.buckets()

    async def head_bucket(self, bucket: str) -> None:
        """Raises BucketNotFoundError if the bucket has no collection."""
        await self.registry.resolve(bucket)

    async def cache_stats(self) -> CacheStats:
        return await self.cache.stats()

    def serve(
        self,
        host: str | None = None,
        port: int | None = None,
    ) -> None:
        """Start the HTTP server.

        Args:
            host: Host to bind to (defaults to config value)
            port: Port to bind to (defaults to config value)
        """
        import uvicorn

        from starfish_gateway.server.app import create_app

        configure_logging(LogLevel(self.config.logging.level), self.config.logging.format)
        app = create_app(self)
        uvicorn.run(
            app,
            host=host or self.config.server.host,
            port=port or self.config.server.port,
        )

    async def __aenter__(self) -> "StarfishGateway":
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.shutdown()
