"""
Pydantic models matching the PostgreSQL schema in storage.database.

List-valued columns (requirements, eligibility) are stored as JSON text and
go through encode_string_list / decode_string_list at the repository
boundary. Both directions reject anything that is not a list of strings.

Monetary fields (price, estimated value) use Decimal.
"""
from __future__ import annotations

import json
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from airdrop_tracker.ingestion.models import ListingStatus, ListingType


class ListCodecError(ValueError):
    """A list column value is not a JSON array of strings."""
    pass


def encode_string_list(values: Any) -> str:
    """Serialize a list of strings for a TEXT column."""
    if not isinstance(values, (list, tuple)):
        raise ListCodecError(f"Expected a list of strings, got {type(values).__name__}")
    for value in values:
        if not isinstance(value, str):
            raise ListCodecError(f"List element is not a string: {value!r}")
    return json.dumps(list(values))


def decode_string_list(text: Optional[str]) -> list[str]:
    """Parse a TEXT column back into a list of strings. NULL/empty is []."""
    if text is None or text == "":
        return []
    try:
        values = json.loads(text)
    except json.JSONDecodeError as e:
        raise ListCodecError(f"Invalid JSON list: {e}") from e
    if not isinstance(values, list):
        raise ListCodecError(f"Expected a JSON array, got {type(values).__name__}")
    for value in values:
        if not isinstance(value, str):
            raise ListCodecError(f"List element is not a string: {value!r}")
    return values


# =============================================================================
# AIRDROPS
# =============================================================================


# Columns the sync path overwrites on every observation
SYNC_FIELDS = (
    "name",
    "chain",
    "status",
    "type",
    "score",
    "mul_point",
    "required_points",
    "deduct_points",
    "claim_start",
    "claim_end",
    "estimated_value",
    "contract_address",
    "listing_time",
    "price",
    "alpha_id",
    "icon_url",
    "online_airdrop",
    "online_tge",
    "description",
    "requirements",
    "eligibility",
    "is_active",
)


class AirdropRecord(BaseModel):
    """
    One persisted airdrop, unique by token.

    A row's existence means its creation notification was already
    considered; the sync path never deletes rows.
    """

    id: Optional[int] = None
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
    description: Optional[str] = None
    requirements: list[str] = Field(default_factory=list)
    eligibility: list[str] = Field(default_factory=list)
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("requirements", "eligibility", mode="before")
    @classmethod
    def _decode_list_column(cls, value: Any) -> Any:
        if isinstance(value, str):
            return decode_string_list(value)
        if value is None:
            return []
        return value


# =============================================================================
# SYNC LOGS
# =============================================================================


class SyncLogEntry(BaseModel):
    """Condensed record of one completed sync run."""

    id: Optional[int] = None
    source: str
    action: str = "sync"
    success: bool
    tokens_count: int = 0
    created: int = 0
    updated: int = 0
    failed: int = 0
    notified: int = 0
    errors: list[str] = Field(default_factory=list)
    duration_ms: int = 0
    created_at: Optional[datetime] = None

    @field_validator("errors", mode="before")
    @classmethod
    def _decode_errors(cls, value: Any) -> Any:
        if isinstance(value, str):
            return decode_string_list(value)
        if value is None:
            return []
        return value
