"""
Data models for the ingestion layer.

ListingItem is the typed, immutable form of one record from the Binance
Alpha token list. Raw upstream records are loosely typed (numbers arrive as
strings, timestamps as epoch milliseconds); parse_listing() is the only place
that turns them into ListingItems.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, ValidationError


class ParseError(Exception):
    """A raw upstream record could not be mapped to a ListingItem."""

    def __init__(self, message: str, token: Optional[str] = None):
        super().__init__(message)
        self.token = token


class ListingStatus(str, Enum):
    """Lifecycle status of an airdrop listing."""
    UPCOMING = "UPCOMING"
    CLAIMABLE = "CLAIMABLE"
    ENDED = "ENDED"


class ListingType(str, Enum):
    """Kind of distribution."""
    TGE = "TGE"
    AIRDROP = "AIRDROP"


# Claim window assumed for listings that are no longer active upstream
INACTIVE_CLAIM_WINDOW = timedelta(days=30)

CHAIN_ID_MAP: dict[str, str] = {
    "1": "Ethereum",
    "56": "BSC",
    "137": "Polygon",
    "42161": "Arbitrum",
    "10": "Optimism",
    "43114": "Avalanche",
    "250": "Fantom",
    "8453": "Base",
    "324": "zkSync",
    "534352": "Scroll",
    "59144": "Linea",
}

CHAIN_NAME_ALIASES: dict[str, str] = {
    "bsc": "BSC",
    "bnb": "BSC",
    "binance": "BSC",
    "eth": "Ethereum",
    "ethereum": "Ethereum",
    "polygon": "Polygon",
    "matic": "Polygon",
    "arbitrum": "Arbitrum",
    "arb": "Arbitrum",
    "optimism": "Optimism",
    "op": "Optimism",
    "avalanche": "Avalanche",
    "avax": "Avalanche",
    "solana": "Solana",
    "sol": "Solana",
    "sui": "SUI",
    "base": "Base",
    "zksync": "zkSync",
    "scroll": "Scroll",
    "linea": "Linea",
}


class ListingItem(BaseModel):
    """
    One airdrop listing from a snapshot.

    Frozen and closed: unknown fields are rejected, and nothing mutates an
    item after parsing. `token` (the symbol) is the natural key.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    token: str
    name: str
    chain: str
    status: ListingStatus
    type: ListingType = ListingType.AIRDROP
    score: float = 0.0
    mul_point: int = 1
    required_points: Optional[int] = None
    deduct_points: Optional[int] = None
    claim_start: Optional[datetime] = None
    claim_end: Optional[datetime] = None
    estimated_value: Optional[Decimal] = None
    contract_address: Optional[str] = None
    listing_time: Optional[datetime] = None
    price: Decimal = Decimal("0")
    alpha_id: Optional[str] = None
    icon_url: Optional[str] = None
    online_airdrop: bool = False
    online_tge: bool = False

    @property
    def is_active(self) -> bool:
        return self.status != ListingStatus.ENDED


@dataclass(frozen=True)
class Snapshot:
    """
    The full set of listings returned by one upstream fetch.

    Records that failed to parse are kept as messages in `parse_errors` so a
    sync run can count them as failed instead of silently dropping them.
    """
    items: tuple[ListingItem, ...]
    fetched_at: datetime
    parse_errors: tuple[str, ...] = field(default_factory=tuple)

    def __len__(self) -> int:
        return len(self.items)

    @property
    def total(self) -> int:
        """Number of upstream records, including ones that failed to parse."""
        return len(self.items) + len(self.parse_errors)


def normalize_chain_name(chain_id: Optional[str], chain_name: Optional[str]) -> str:
    """
    Map an upstream chain id / name to a canonical chain name.

    Chain id wins when known. Names are matched against aliases, first
    exactly and then by substring. Unknown names pass through; a missing
    name defaults to BSC.
    """
    if chain_id and str(chain_id) in CHAIN_ID_MAP:
        return CHAIN_ID_MAP[str(chain_id)]

    if chain_name:
        normalized = chain_name.lower()
        if normalized in CHAIN_NAME_ALIASES:
            return CHAIN_NAME_ALIASES[normalized]
        for alias, name in CHAIN_NAME_ALIASES.items():
            if alias in normalized:
                return name
        return chain_name

    return "BSC"


def determine_status(raw: dict[str, Any], now: datetime) -> ListingStatus:
    """Derive the listing status from upstream flags."""
    if raw.get("offline") or raw.get("offsell"):
        return ListingStatus.ENDED

    listing_time = _parse_epoch_ms(raw.get("listingTime"))
    if listing_time is not None and listing_time > now:
        return ListingStatus.UPCOMING

    # onlineAirdrop is the primary indicator; an active TGE counts too
    if raw.get("onlineAirdrop") or raw.get("onlineTge"):
        return ListingStatus.CLAIMABLE

    return ListingStatus.ENDED


def determine_type(raw: dict[str, Any]) -> ListingType:
    return ListingType.TGE if raw.get("onlineTge") else ListingType.AIRDROP


def parse_listing(raw: dict[str, Any], now: Optional[datetime] = None) -> ListingItem:
    """
    Parse one raw upstream record into a ListingItem.

    Args:
        raw: Record from the token list `data` array
        now: Reference time for status derivation (defaults to UTC now)

    Raises:
        ParseError: If the record is not a mapping, has no symbol, or
            carries values that cannot be coerced
    """
    if not isinstance(raw, dict):
        raise ParseError(f"Expected an object, got {type(raw).__name__}")

    symbol = raw.get("symbol")
    if not isinstance(symbol, str) or not symbol.strip():
        raise ParseError("Missing token symbol")
    symbol = symbol.strip()

    now = now or datetime.now(timezone.utc)

    try:
        price = _parse_decimal(raw.get("price"))
        score = _parse_float(raw.get("score"))
        listing_time = _parse_epoch_ms(raw.get("listingTime"))
        online_airdrop = bool(raw.get("onlineAirdrop"))
        online_tge = bool(raw.get("onlineTge"))

        claim_end = None
        if listing_time is not None and not (online_airdrop or online_tge):
            claim_end = listing_time + INACTIVE_CLAIM_WINDOW

        return ListingItem(
            token=symbol,
            name=(raw.get("name") or symbol).strip(),
            chain=normalize_chain_name(raw.get("chainId"), raw.get("chainName")),
            status=determine_status(raw, now),
            type=determine_type(raw),
            score=score,
            mul_point=int(raw.get("mulPoint") or 1),
            required_points=int(score) if score > 0 else None,
            deduct_points=math.floor(score * 0.1) if score > 0 else None,
            claim_start=listing_time,
            claim_end=claim_end,
            estimated_value=round(price, 2) if price > 0 else None,
            contract_address=raw.get("contractAddress") or None,
            listing_time=listing_time,
            price=price,
            alpha_id=raw.get("alphaId") or None,
            icon_url=raw.get("iconUrl") or None,
            online_airdrop=online_airdrop,
            online_tge=online_tge,
        )
    except ParseError:
        raise
    except (ValidationError, ValueError, TypeError, InvalidOperation) as e:
        raise ParseError(f"Invalid listing {symbol}: {e}", token=symbol) from e


def parse_snapshot(
    records: list[Any],
    fetched_at: Optional[datetime] = None,
) -> Snapshot:
    """Parse a list of raw records, collecting per-record failures."""
    fetched_at = fetched_at or datetime.now(timezone.utc)
    items: list[ListingItem] = []
    errors: list[str] = []

    for raw in records:
        try:
            items.append(parse_listing(raw, now=fetched_at))
        except ParseError as e:
            errors.append(str(e))

    return Snapshot(items=tuple(items), fetched_at=fetched_at, parse_errors=tuple(errors))


def _parse_decimal(value: Any) -> Decimal:
    """Upstream sends numbers as strings; empty or null means zero."""
    if value is None or value == "":
        return Decimal("0")
    if isinstance(value, bool):
        raise ParseError(f"Expected a number, got {value!r}")
    try:
        parsed = Decimal(str(value))
    except InvalidOperation:
        raise ParseError(f"Expected a number, got {value!r}")
    if not parsed.is_finite():
        raise ParseError(f"Expected a finite number, got {value!r}")
    return parsed


def _parse_float(value: Any) -> float:
    return float(_parse_decimal(value))


def _parse_epoch_ms(value: Any) -> Optional[datetime]:
    """Epoch milliseconds to an aware datetime. Zero/absent means unknown."""
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        millis = int(value)
    except (TypeError, ValueError):
        raise ParseError(f"Invalid timestamp {value!r}")
    if millis <= 0:
        return None
    try:
        return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        raise ParseError(f"Timestamp out of range {value!r}")
