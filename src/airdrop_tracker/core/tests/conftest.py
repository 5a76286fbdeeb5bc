"""
Test fixtures for the sync engine.

The engine is wired exactly as in production except for its edges: the
airdrop store is in memory, upstream is a ScriptedFetcher, and alerts go to
a RecordingTransport. All of those come from the root conftest.
"""
from unittest.mock import AsyncMock, MagicMock

import pytest

from airdrop_tracker.core.coordinator import SyncCoordinator
from airdrop_tracker.core.guard import RunGuard
from airdrop_tracker.core.notifier import NotifierGate
from airdrop_tracker.core.reconciler import Reconciler
from airdrop_tracker.ingestion.cache import SnapshotCache
from airdrop_tracker.storage.repositories.sync_log_repo import SyncLogRepository


@pytest.fixture
def snapshot_cache(fetcher, clock):
    return SnapshotCache(fetcher, freshness_seconds=300, clock=clock)


@pytest.fixture
def reconciler(memory_store, clock):
    return Reconciler(memory_store, clock=clock)


@pytest.fixture
def notifier(transport):
    """Gate with no pause so tests stay fast."""
    return NotifierGate(transport, delay_seconds=0)


@pytest.fixture
def guard():
    return RunGuard()


@pytest.fixture
def sync_logs():
    """Sync log repository double."""
    repo = MagicMock(spec=SyncLogRepository)
    repo.record = AsyncMock()
    return repo


@pytest.fixture
def coordinator(snapshot_cache, reconciler, notifier, guard, sync_logs, clock):
    return SyncCoordinator(
        cache=snapshot_cache,
        reconciler=reconciler,
        notifier=notifier,
        guard=guard,
        sync_logs=sync_logs,
        clock=clock,
    )
