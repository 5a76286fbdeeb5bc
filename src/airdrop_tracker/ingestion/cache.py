"""
Staleness-aware snapshot cache in front of the listing source.

Entries are keyed by the effective query. The unfiltered snapshot lives under
FULL_SNAPSHOT_KEY in upstream fetch order; filtered views are derived from it
and stored under their own keys. A successful live fetch drops the derived
views so they never outlive the snapshot they were cut from.

Rules:
    - fresh entry and no force_refresh: served with source "cache"
    - otherwise one upstream call per key at a time (single-flight); on
      success the entry is replaced and served with source "live"
    - upstream failure with an older entry present: that entry is served
      with source "stale-fallback"; with nothing cached the error propagates
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from airdrop_tracker.ingestion.client import UpstreamFetchError
from airdrop_tracker.ingestion.models import ListingItem, Snapshot
from airdrop_tracker.ingestion.query import (
    FULL_SNAPSHOT_KEY,
    ListingQuery,
    apply_query,
)

logger = logging.getLogger(__name__)

SnapshotFetcher = Callable[[], Awaitable[Snapshot]]
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SnapshotSource(str, Enum):
    """Where a served snapshot came from."""
    CACHE = "cache"
    LIVE = "live"
    STALE_FALLBACK = "stale-fallback"


@dataclass(frozen=True)
class CacheEntry:
    """Stored payload for one cache key."""

    key: str
    items: tuple[ListingItem, ...]
    total: int
    fetched_at: datetime
    parse_errors: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class CachedSnapshot:
    """A cache entry as served to a caller."""

    items: tuple[ListingItem, ...]
    total: int
    source: SnapshotSource
    fetched_at: datetime
    parse_errors: tuple[str, ...] = field(default_factory=tuple)
    limit: Optional[int] = None
    offset: int = 0

    @property
    def has_more(self) -> bool:
        if self.limit is None:
            return False
        return self.offset + self.limit < self.total

    @classmethod
    def from_entry(
        cls,
        entry: CacheEntry,
        source: SnapshotSource,
        query: Optional[ListingQuery] = None,
    ) -> "CachedSnapshot":
        return cls(
            items=entry.items,
            total=entry.total,
            source=source,
            fetched_at=entry.fetched_at,
            parse_errors=entry.parse_errors,
            limit=query.limit if query else None,
            offset=query.offset if query else 0,
        )


class SnapshotCache:
    """
    Process-local cache for listing snapshots.

    Usage:
        cache = SnapshotCache(client.fetch_snapshot, freshness_seconds=300)

        full = await cache.fetch()                      # fetch order
        page = await cache.fetch(ListingQuery(status="CLAIMABLE", limit=10))
        live = await cache.fetch(force_refresh=True)    # always hits upstream
        view = cache.view(full, ListingQuery(chain="bsc"))  # never hits upstream
    """

    DEFAULT_FRESHNESS_SECONDS = 300.0
    DEFAULT_MAX_ENTRIES = 500

    def __init__(
        self,
        fetcher: SnapshotFetcher,
        freshness_seconds: float = DEFAULT_FRESHNESS_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Optional[Clock] = None,
    ) -> None:
        """
        Args:
            fetcher: Coroutine function returning a fresh Snapshot; must raise
                UpstreamFetchError on failure
            freshness_seconds: Age after which an entry is stale
            max_entries: Upper bound on stored entries (oldest evicted)
            clock: Source of "now" (injected in tests)
        """
        self._fetcher = fetcher
        self._freshness = timedelta(seconds=freshness_seconds)
        self._max_entries = max(1, max_entries)
        self._clock = clock or utc_now

        self._entries: Dict[str, CacheEntry] = {}
        self._inflight: Dict[str, asyncio.Future] = {}
        self._upstream_calls = 0

    @property
    def upstream_calls(self) -> int:
        """Number of fetcher invocations so far."""
        return self._upstream_calls

    def is_fresh(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.fetched_at <= self._freshness

    def get_entry(self, key: str = FULL_SNAPSHOT_KEY) -> Optional[CacheEntry]:
        """Stored entry for a key, fresh or not."""
        return self._entries.get(key)

    async def fetch(
        self,
        query: Optional[ListingQuery] = None,
        force_refresh: bool = False,
        accept_stale: bool = False,
    ) -> CachedSnapshot:
        """
        Serve a snapshot view.

        Args:
            query: Filter/sort/page parameters; None means the full snapshot
                in upstream fetch order
            force_refresh: Bypass fresh entries and call upstream
            accept_stale: Serve an existing stale entry without refreshing

        Raises:
            UpstreamFetchError: Upstream failed and nothing was ever cached
                for the key
        """
        key = query.cache_key if query else FULL_SNAPSHOT_KEY
        entry = self._entries.get(key)

        if entry is not None and not force_refresh:
            if self.is_fresh(entry) or accept_stale:
                logger.debug(f"Cache hit: {key}")
                return CachedSnapshot.from_entry(entry, SnapshotSource.CACHE, query)

        if query is None:
            return await self._single_flight(FULL_SNAPSHOT_KEY, self._load_full)

        # A forced load must not join a plain one that may be served from cache
        flight_key = f"{key}:force" if force_refresh else key
        return await self._single_flight(
            flight_key, lambda: self._load_view(query, force_refresh)
        )

    async def _single_flight(
        self,
        key: str,
        loader: Callable[[], Awaitable[CachedSnapshot]],
    ) -> CachedSnapshot:
        """Run loader once per key; concurrent callers await the same result."""
        inflight = self._inflight.get(key)
        if inflight is None:
            inflight = asyncio.ensure_future(loader())
            self._inflight[key] = inflight
            inflight.add_done_callback(lambda f, k=key: self._clear_inflight(k, f))
        else:
            logger.debug(f"Joining in-flight fetch: {key}")

        # Shield so one cancelled waiter does not cancel the shared fetch
        return await asyncio.shield(inflight)

    def _clear_inflight(self, key: str, future: asyncio.Future) -> None:
        if self._inflight.get(key) is future:
            del self._inflight[key]
        # Mark the exception retrieved when every waiter was cancelled
        if not future.cancelled():
            future.exception()

    async def _load_full(self) -> CachedSnapshot:
        self._upstream_calls += 1
        try:
            snapshot = await self._fetcher()
        except UpstreamFetchError as e:
            stale = self._entries.get(FULL_SNAPSHOT_KEY)
            if stale is None:
                logger.error(f"Snapshot fetch failed with nothing cached: {e}")
                raise
            logger.warning(
                f"Snapshot fetch failed, serving stale entry from "
                f"{stale.fetched_at.isoformat()}: {e}"
            )
            return CachedSnapshot.from_entry(stale, SnapshotSource.STALE_FALLBACK)

        entry = CacheEntry(
            key=FULL_SNAPSHOT_KEY,
            items=snapshot.items,
            # Upstream record count, unparseable ones included
            total=snapshot.total,
            fetched_at=self._clock(),
            parse_errors=snapshot.parse_errors,
        )
        # Derived views were cut from the previous snapshot
        self._entries = {FULL_SNAPSHOT_KEY: entry}
        return CachedSnapshot.from_entry(entry, SnapshotSource.LIVE)

    async def _load_view(self, query: ListingQuery, force_refresh: bool) -> CachedSnapshot:
        key = query.cache_key
        try:
            full = await self.fetch(force_refresh=force_refresh)
        except UpstreamFetchError:
            stale = self._entries.get(key)
            if stale is None:
                raise
            logger.warning(f"Serving stale view for {key}")
            return CachedSnapshot.from_entry(stale, SnapshotSource.STALE_FALLBACK, query)

        return self.view(full, query)

    def view(self, full: CachedSnapshot, query: ListingQuery) -> CachedSnapshot:
        """
        Cut a view from a full snapshot already served by fetch().

        Never calls upstream. The view is stored under the query's key unless
        an entry cut from the same snapshot is already there.
        """
        key = query.cache_key
        entry = self._entries.get(key)
        if entry is None or entry.fetched_at != full.fetched_at:
            result = apply_query(full.items, query)
            entry = CacheEntry(
                key=key,
                items=result.items,
                total=result.total,
                fetched_at=full.fetched_at,
                parse_errors=full.parse_errors,
            )
            self._store(entry)
        return CachedSnapshot.from_entry(entry, full.source, query)

    def _store(self, entry: CacheEntry) -> None:
        if entry.key not in self._entries and len(self._entries) >= self._max_entries:
            self._evict_oldest()
        self._entries[entry.key] = entry

    def _evict_oldest(self) -> None:
        """Evict the oldest derived view, or the full snapshot if it is alone."""
        candidates = [e for e in self._entries.values() if e.key != FULL_SNAPSHOT_KEY]
        if not candidates:
            candidates = list(self._entries.values())
        oldest = min(candidates, key=lambda e: e.fetched_at)
        del self._entries[oldest.key]

    def clear(self) -> None:
        """Drop every entry."""
        self._entries.clear()
        logger.info("Snapshot cache cleared")

    def stats(self) -> dict[str, Any]:
        """Cache statistics."""
        fetched = [e.fetched_at for e in self._entries.values()]
        return {
            "size": len(self._entries),
            "maxSize": self._max_entries,
            "freshnessSeconds": self._freshness.total_seconds(),
            "keys": sorted(self._entries),
            "oldestEntry": min(fetched).isoformat() if fetched else None,
            "newestEntry": max(fetched).isoformat() if fetched else None,
            "upstreamCalls": self._upstream_calls,
        }
