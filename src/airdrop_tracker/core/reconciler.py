"""
Reconciler - folds one listing into the airdrop store.

Decision per listing, keyed by token symbol:
    absent  -> insert, outcome CREATE (the only outcome that may notify)
    present -> overwrite synchronizable fields, outcome UPDATE
    insert loses a race on the unique token -> SKIP
    any other storage failure -> FAILED with the message; the caller moves on
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional

from airdrop_tracker.ingestion.models import ListingItem, ListingStatus
from airdrop_tracker.storage.models import AirdropRecord
from airdrop_tracker.storage.repositories.airdrop_repo import (
    AirdropStore,
    PersistenceConflict,
    PersistenceError,
)

logger = logging.getLogger(__name__)


class ReconcileOutcome(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    SKIP = "SKIP"
    FAILED = "FAILED"


@dataclass(frozen=True)
class ReconcileResult:
    """What happened to one listing."""

    token: str
    outcome: ReconcileOutcome
    record: Optional[AirdropRecord] = None
    error: Optional[str] = None


def listing_to_fields(item: ListingItem) -> dict[str, Any]:
    """Synchronizable column values for a listing."""
    requirements = [
        "Binance Alpha Points Required",
        f"Point Multiplier: {item.mul_point}x",
    ]
    if item.online_tge:
        requirements.append("TGE Active")
    if item.online_airdrop:
        requirements.append("Airdrop Active")

    score = int(item.score) if item.score == int(item.score) else item.score

    return {
        "name": item.name,
        "chain": item.chain,
        "status": item.status,
        "type": item.type,
        "score": item.score,
        "mul_point": item.mul_point,
        "required_points": item.required_points,
        "deduct_points": item.deduct_points,
        "claim_start": item.claim_start,
        "claim_end": item.claim_end,
        "estimated_value": item.estimated_value,
        "contract_address": item.contract_address,
        "listing_time": item.listing_time,
        "price": item.price,
        "alpha_id": item.alpha_id,
        "icon_url": item.icon_url,
        "online_airdrop": item.online_airdrop,
        "online_tge": item.online_tge,
        "description": (
            f"{item.name} ({item.token}) on {item.chain}. "
            f"Alpha ID: {item.alpha_id}. Point Multiplier: {item.mul_point}x"
        ),
        "requirements": requirements,
        "eligibility": ["Binance Alpha User", f"Min Score: {score}"],
        "is_active": item.status != ListingStatus.ENDED,
    }


class Reconciler:
    """
    Create-or-update of listings against an AirdropStore.

    Usage:
        reconciler = Reconciler(AirdropRepository(db))
        result = await reconciler.reconcile(item)
        if result.outcome is ReconcileOutcome.CREATE:
            ...
    """

    def __init__(
        self,
        store: AirdropStore,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._store = store
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def reconcile(self, item: ListingItem) -> ReconcileResult:
        token = item.token
        fields = listing_to_fields(item)
        now = self._clock()

        try:
            existing = await self._store.find_by_token(token)

            if existing is None:
                record = AirdropRecord(token=token, created_at=now, updated_at=now, **fields)
                created = await self._store.create(record)
                logger.info(f"Created airdrop {token} ({item.status.value})")
                return ReconcileResult(token, ReconcileOutcome.CREATE, record=created)

            fields["updated_at"] = now
            updated = await self._store.update(token, fields)
            logger.debug(f"Updated airdrop {token}")
            return ReconcileResult(token, ReconcileOutcome.UPDATE, record=updated)

        except PersistenceConflict:
            # A concurrent writer created it first; its run owns the notification
            logger.info(f"Airdrop {token} created concurrently, skipping")
            return ReconcileResult(token, ReconcileOutcome.SKIP)

        except PersistenceError as e:
            logger.error(f"Failed to reconcile {token}: {e}")
            return ReconcileResult(token, ReconcileOutcome.FAILED, error=f"{token}: {e}")
