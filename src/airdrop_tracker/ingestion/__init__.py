"""
Ingestion Layer - Binance Alpha listing source.

This module turns the upstream token list into cached, queryable snapshots:
    - REST client for the token list endpoint
    - Typed listing model and record parsing
    - Staleness-aware snapshot cache with single-flight fetches
    - Pure filter/sort/paginate query engine

Usage:
    from airdrop_tracker.ingestion import AlphaRestClient, ListingQuery, SnapshotCache

    async with AlphaRestClient() as client:
        cache = SnapshotCache(client.fetch_snapshot)
        view = await cache.fetch(ListingQuery(status="CLAIMABLE", limit=10))
"""

# Models
from .models import (
    ListingItem,
    ListingStatus,
    ListingType,
    ParseError,
    Snapshot,
    normalize_chain_name,
    parse_listing,
    parse_snapshot,
)

# REST Client
from .client import (
    AlphaRestClient,
    RateLimitError,
    UpstreamFetchError,
)

# Query engine
from .query import (
    FULL_SNAPSHOT_KEY,
    ListingQuery,
    QueryResult,
    apply_query,
    compute_stats,
    sort_listings,
)

# Cache
from .cache import (
    CachedSnapshot,
    CacheEntry,
    SnapshotCache,
    SnapshotSource,
)


__all__ = [
    # Models
    "ListingItem",
    "ListingStatus",
    "ListingType",
    "ParseError",
    "Snapshot",
    "normalize_chain_name",
    "parse_listing",
    "parse_snapshot",
    # REST Client
    "AlphaRestClient",
    "RateLimitError",
    "UpstreamFetchError",
    # Query
    "FULL_SNAPSHOT_KEY",
    "ListingQuery",
    "QueryResult",
    "apply_query",
    "compute_stats",
    "sort_listings",
    # Cache
    "CachedSnapshot",
    "CacheEntry",
    "SnapshotCache",
    "SnapshotSource",
]
