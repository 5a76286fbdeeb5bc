"""
Sync log repository: one condensed row per completed sync run.
"""
from __future__ import annotations

from datetime import datetime, timezone

from airdrop_tracker.storage.models import SyncLogEntry, encode_string_list
from airdrop_tracker.storage.repositories.base import BaseRepository


class SyncLogRepository(BaseRepository[SyncLogEntry]):
    """Repository for the sync_logs table."""

    table_name = "sync_logs"
    model_class = SyncLogEntry

    async def record(self, entry: SyncLogEntry) -> SyncLogEntry:
        """Insert a sync log row."""
        query = """
            INSERT INTO sync_logs
            (source, action, success, tokens_count, created, updated, failed,
             notified, errors, duration_ms, created_at)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
            RETURNING *
        """
        row = await self.db.fetchrow(
            query,
            entry.source,
            entry.action,
            entry.success,
            entry.tokens_count,
            entry.created,
            entry.updated,
            entry.failed,
            entry.notified,
            encode_string_list(entry.errors),
            entry.duration_ms,
            entry.created_at or datetime.now(timezone.utc),
        )
        return self._record_to_model(row)

    async def get_recent(self, limit: int = 10) -> list[SyncLogEntry]:
        """Most recent runs, newest first."""
        query = "SELECT * FROM sync_logs ORDER BY created_at DESC LIMIT $1"
        rows = await self.db.fetch(query, limit)
        return self._records_to_models(rows)
