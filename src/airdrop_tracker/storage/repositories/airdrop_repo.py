"""
Airdrop repository keyed by token symbol.

The UNIQUE constraint on airdrops.token is the durable de-duplication anchor
for creation notifications: an insert that loses a race to a concurrent run
surfaces as PersistenceConflict, every other storage failure as
PersistenceError.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

import asyncpg
from pydantic import ValidationError

from airdrop_tracker.storage.database import STORAGE_ERRORS
from airdrop_tracker.storage.models import (
    SYNC_FIELDS,
    AirdropRecord,
    ListCodecError,
    encode_string_list,
)
from airdrop_tracker.storage.repositories.base import BaseRepository

logger = logging.getLogger(__name__)

LIST_COLUMNS = ("requirements", "eligibility")

# Everything update() may touch
UPDATABLE_COLUMNS = frozenset(SYNC_FIELDS) | {"updated_at"}

INSERT_COLUMNS = ("token",) + SYNC_FIELDS + ("created_at", "updated_at")


class PersistenceError(Exception):
    """Store I/O or constraint failure other than a token conflict."""

    def __init__(self, message: str, token: Optional[str] = None):
        super().__init__(message)
        self.token = token


class PersistenceConflict(PersistenceError):
    """Insert rejected because the token already exists."""
    pass


class AirdropStore(Protocol):
    """What the reconciler needs from the airdrop store."""

    async def find_by_token(self, token: str) -> Optional[AirdropRecord]: ...

    async def create(self, record: AirdropRecord) -> AirdropRecord: ...

    async def update(self, token: str, fields: dict[str, Any]) -> AirdropRecord: ...


def _to_column_value(column: str, value: Any) -> Any:
    if column in LIST_COLUMNS:
        return encode_string_list(value)
    if hasattr(value, "value") and column in ("status", "type"):
        return value.value
    return value


class AirdropRepository(BaseRepository[AirdropRecord]):
    """
    Repository for the airdrops table.

    Usage:
        repo = AirdropRepository(db)
        existing = await repo.find_by_token("WAL")
        if existing is None:
            await repo.create(record)
        else:
            await repo.update("WAL", {"status": ListingStatus.ENDED})
    """

    table_name = "airdrops"
    model_class = AirdropRecord

    def _to_model(self, row, token: Optional[str] = None) -> Optional[AirdropRecord]:
        try:
            return self._record_to_model(row)
        except ValidationError as e:
            raise PersistenceError(f"Corrupt airdrop row {token}: {e}", token=token) from e

    async def find_by_token(self, token: str) -> Optional[AirdropRecord]:
        """Get an airdrop by its token symbol."""
        query = "SELECT * FROM airdrops WHERE token = $1"
        try:
            row = await self.db.fetchrow(query, token)
        except STORAGE_ERRORS as e:
            raise PersistenceError(f"Lookup failed for {token}: {e}", token=token) from e
        return self._to_model(row, token)

    async def create(self, record: AirdropRecord) -> AirdropRecord:
        """
        Insert a new airdrop.

        Raises:
            PersistenceConflict: The token already exists
            PersistenceError: Any other storage failure
        """
        now = datetime.now(timezone.utc)
        data = record.model_dump()
        data["created_at"] = data.get("created_at") or now
        data["updated_at"] = data.get("updated_at") or data["created_at"]

        try:
            values = [_to_column_value(col, data[col]) for col in INSERT_COLUMNS]
        except ListCodecError as e:
            raise PersistenceError(str(e), token=record.token) from e

        placeholders = ", ".join(f"${i}" for i in range(1, len(INSERT_COLUMNS) + 1))
        query = f"""
            INSERT INTO airdrops ({", ".join(INSERT_COLUMNS)})
            VALUES ({placeholders})
            RETURNING *
        """

        try:
            row = await self.db.fetchrow(query, *values)
        except asyncpg.UniqueViolationError as e:
            raise PersistenceConflict(
                f"Airdrop {record.token} already exists", token=record.token
            ) from e
        except STORAGE_ERRORS as e:
            raise PersistenceError(
                f"Insert failed for {record.token}: {e}", token=record.token
            ) from e

        return self._to_model(row, record.token)

    async def update(self, token: str, fields: dict[str, Any]) -> AirdropRecord:
        """
        Overwrite the given columns of an existing airdrop.

        `updated_at` is set to now unless supplied; `created_at` and `token`
        are never touched.

        Raises:
            PersistenceError: Unknown column, missing row, or storage failure
        """
        unknown = set(fields) - UPDATABLE_COLUMNS
        if unknown:
            raise PersistenceError(f"Cannot update columns: {sorted(unknown)}", token=token)

        fields = dict(fields)
        fields.setdefault("updated_at", datetime.now(timezone.utc))
        columns = list(fields)

        try:
            values = [_to_column_value(col, fields[col]) for col in columns]
        except ListCodecError as e:
            raise PersistenceError(str(e), token=token) from e

        assignments = ", ".join(f"{col} = ${i}" for i, col in enumerate(columns, start=2))
        query = f"UPDATE airdrops SET {assignments} WHERE token = $1 RETURNING *"

        try:
            row = await self.db.fetchrow(query, token, *values)
        except STORAGE_ERRORS as e:
            raise PersistenceError(f"Update failed for {token}: {e}", token=token) from e

        if row is None:
            raise PersistenceError(f"Airdrop {token} not found", token=token)
        return self._to_model(row, token)

    async def count_by_status(self) -> dict[str, int]:
        """Row counts grouped by status."""
        query = "SELECT status, COUNT(*) AS count FROM airdrops GROUP BY status"
        rows = await self.db.fetch(query)
        return {row["status"]: row["count"] for row in rows}

    async def get_recent(self, limit: int = 20) -> list[AirdropRecord]:
        """Most recently created airdrops."""
        query = "SELECT * FROM airdrops ORDER BY created_at DESC LIMIT $1"
        rows = await self.db.fetch(query, limit)
        return [self._to_model(row) for row in rows]
