"""Starfish Gateway - a read-only S3 view over Starfish metadata collections."""

from starfish_gateway.caching import CacheStats, QueryCache
from starfish_gateway.config import Config
from starfish_gateway.gateway import ObjectContent, StarfishGateway
from starfish_gateway.listing import ListingConverter
from starfish_gateway.models import Entry, ListingParams, ListingResult, ObjectInfo, QueryResult
from starfish_gateway.observability import (
    LogLevel,
    RequestContext,
    StructuredLogger,
    Timer,
    configure_logging,
    emit_counter,
    emit_metric,
    emit_timer,
    get_logger,
    register_metric_callback,
)
from starfish_gateway.registry import CollectionRefresher, CollectionRegistry
from starfish_gateway.rewrite import PathRewriter, RewriteRule, RewriteRuleSet, load_rules
from starfish_gateway.upstream import StarfishClient

__version__ = "0.1.0"
__all__ = [
    # Core
    "Config",
    "ObjectContent",
    "StarfishGateway",
    # Data
    "Entry",
    "ListingParams",
    "ListingResult",
    "ObjectInfo",
    "QueryResult",
    # Components
    "CacheStats",
    "CollectionRefresher",
    "CollectionRegistry",
    "ListingConverter",
    "PathRewriter",
    "QueryCache",
    "RewriteRule",
    "RewriteRuleSet",
    "StarfishClient",
    "load_rules",
    # Observability
    "LogLevel",
    "RequestContext",
    "StructuredLogger",
    "Timer",
    "configure_logging",
    "emit_counter",
    "emit_metric",
    "emit_timer",
    "get_logger",
    "register_metric_callback",
]
