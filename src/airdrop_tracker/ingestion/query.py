"""
Filtering, ordering and pagination over a snapshot.

Everything here is pure: inputs are never mutated, and the same snapshot and
query always give the same view.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Sequence

from airdrop_tracker.ingestion.models import ListingItem, ListingStatus, ListingType

FULL_SNAPSHOT_KEY = "listings:full"


@dataclass(frozen=True)
class ListingQuery:
    """Filter, sort and pagination parameters for a snapshot view."""

    status: Optional[str] = None
    chain: Optional[str] = None
    limit: Optional[int] = None
    offset: int = 0
    sort_by: str = "score"
    descending: bool = True

    # Fields that can be sorted on (must exist on ListingItem)
    VALID_SORT_FIELDS = frozenset([
        "score",
        "token",
        "name",
        "chain",
        "status",
        "mul_point",
        "required_points",
        "estimated_value",
        "price",
        "listing_time",
    ])

    def __post_init__(self) -> None:
        if self.sort_by not in self.VALID_SORT_FIELDS:
            raise ValueError(
                f"Invalid sort field: {self.sort_by}. "
                f"Valid fields: {sorted(self.VALID_SORT_FIELDS)}"
            )
        if self.limit is not None and self.limit < 0:
            raise ValueError(f"limit must be >= 0, got {self.limit}")
        if self.offset < 0:
            raise ValueError(f"offset must be >= 0, got {self.offset}")

    @property
    def cache_key(self) -> str:
        """Normalized key; never collides with FULL_SNAPSHOT_KEY."""
        status = self.status.upper() if self.status else "*"
        chain = self.chain.lower() if self.chain else "*"
        direction = "desc" if self.descending else "asc"
        return (
            f"listings:status={status}:chain={chain}:limit={self.limit}"
            f":offset={self.offset}:sort={self.sort_by}:{direction}"
        )


@dataclass(frozen=True)
class QueryResult:
    """A page of listings plus the pre-pagination match count."""

    items: tuple[ListingItem, ...]
    total: int
    limit: Optional[int]
    offset: int

    @property
    def has_more(self) -> bool:
        if self.limit is None:
            return False
        return self.offset + self.limit < self.total


def matches(item: ListingItem, query: ListingQuery) -> bool:
    """Case-insensitive status and chain predicate."""
    if query.status and item.status.value != query.status.upper():
        return False
    if query.chain and item.chain.lower() != query.chain.lower():
        return False
    return True


def sort_listings(
    items: Iterable[ListingItem],
    sort_by: str = "score",
    descending: bool = True,
) -> list[ListingItem]:
    """
    Order listings by a field, ties broken by token ascending.

    Listings without a value for the field always sort last.
    """
    by_token = sorted(items, key=lambda i: i.token)
    present = [i for i in by_token if _sort_value(i, sort_by) is not None]
    missing = [i for i in by_token if _sort_value(i, sort_by) is None]

    # sorted() is stable, so the token order survives inside equal values
    present = sorted(present, key=lambda i: _sort_value(i, sort_by), reverse=descending)
    return present + missing


def apply_query(items: Sequence[ListingItem], query: ListingQuery) -> QueryResult:
    """Filter, sort and paginate a snapshot without touching the input."""
    matched = [item for item in items if matches(item, query)]
    ordered = sort_listings(matched, query.sort_by, query.descending)

    start = query.offset
    end = None if query.limit is None else start + query.limit
    page = ordered[start:end]

    return QueryResult(
        items=tuple(page),
        total=len(matched),
        limit=query.limit,
        offset=query.offset,
    )


def compute_stats(items: Iterable[ListingItem]) -> dict[str, Any]:
    """Aggregate counts over a snapshot."""
    by_status = {status.value: 0 for status in ListingStatus}
    by_type = {kind.value: 0 for kind in ListingType}
    by_chain: Counter[str] = Counter()
    by_multiplier = {"1x": 0, "2x": 0, "4x": 0}
    total = 0
    active_airdrops = 0
    active_tge = 0

    for item in items:
        total += 1
        by_status[item.status.value] += 1
        by_type[item.type.value] += 1
        by_chain[item.chain] += 1

        mul_key = f"{item.mul_point}x"
        if mul_key in by_multiplier:
            by_multiplier[mul_key] += 1

        if item.online_airdrop:
            active_airdrops += 1
        if item.online_tge:
            active_tge += 1

    return {
        "total": total,
        "byStatus": by_status,
        "byType": by_type,
        "byChain": dict(by_chain),
        "byMultiplier": by_multiplier,
        "activeAirdrops": active_airdrops,
        "activeTGE": active_tge,
    }


def _sort_value(item: ListingItem, field: str) -> Any:
    value = getattr(item, field)
    if isinstance(value, (ListingStatus, ListingType)):
        return value.value
    if isinstance(value, str):
        return value.lower()
    return value
