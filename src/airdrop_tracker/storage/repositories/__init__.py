"""
Repository exports.
"""
from airdrop_tracker.storage.repositories.airdrop_repo import (
    AirdropRepository,
    AirdropStore,
    PersistenceConflict,
    PersistenceError,
)
from airdrop_tracker.storage.repositories.sync_log_repo import SyncLogRepository

__all__ = [
    "AirdropRepository",
    "AirdropStore",
    "PersistenceConflict",
    "PersistenceError",
    "SyncLogRepository",
]
