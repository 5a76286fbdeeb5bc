"""
Storage Layer - Async PostgreSQL store for airdrops and sync logs.

Built on asyncpg. The airdrops table is unique by token; that constraint is
what keeps creation notifications from repeating across runs.

Public API:
    Database, DatabaseConfig - Connection pool management and schema bootstrap
    AirdropRecord, SyncLogEntry - Row models
    AirdropRepository, SyncLogRepository - Table access
    PersistenceError, PersistenceConflict - Storage failures
"""
from airdrop_tracker.storage.database import Database, DatabaseConfig
from airdrop_tracker.storage.models import (
    AirdropRecord,
    ListCodecError,
    SyncLogEntry,
    decode_string_list,
    encode_string_list,
)
from airdrop_tracker.storage.repositories import (
    AirdropRepository,
    AirdropStore,
    PersistenceConflict,
    PersistenceError,
    SyncLogRepository,
)

__all__ = [
    "Database",
    "DatabaseConfig",
    "AirdropRecord",
    "ListCodecError",
    "SyncLogEntry",
    "decode_string_list",
    "encode_string_list",
    "AirdropRepository",
    "AirdropStore",
    "PersistenceConflict",
    "PersistenceError",
    "SyncLogRepository",
]
