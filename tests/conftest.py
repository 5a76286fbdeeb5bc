"""
Shared test fixtures for integration tests.

This file provides fixtures that span multiple components,
unlike component-specific fixtures in src/airdrop_tracker/{component}/tests/conftest.py.
The store, transport, clock and fetcher doubles come from the root conftest.
"""

from dataclasses import dataclass
from unittest.mock import AsyncMock, MagicMock

import pytest

from airdrop_tracker.core.coordinator import SyncCoordinator
from airdrop_tracker.core.guard import RunGuard
from airdrop_tracker.core.notifier import NotifierGate
from airdrop_tracker.core.reconciler import Reconciler
from airdrop_tracker.core.scheduler import SyncScheduler
from airdrop_tracker.ingestion.cache import SnapshotCache
from airdrop_tracker.storage.database import Database


@dataclass
class SyncEngine:
    """A fully wired engine plus handles on its doubles."""

    cache: SnapshotCache
    coordinator: SyncCoordinator
    scheduler: SyncScheduler
    fetcher: object
    store: object
    transport: object
    clock: object


def wire_engine(fetcher, store, transport, clock, interval_seconds: float = 3600) -> SyncEngine:
    """Wire the engine the same way main.build_services does."""
    cache = SnapshotCache(fetcher, freshness_seconds=300, clock=clock)
    coordinator = SyncCoordinator(
        cache=cache,
        reconciler=Reconciler(store, clock=clock),
        notifier=NotifierGate(transport, delay_seconds=0),
        guard=RunGuard(),
        clock=clock,
    )
    scheduler = SyncScheduler(coordinator, interval_seconds=interval_seconds, clock=clock)
    return SyncEngine(cache, coordinator, scheduler, fetcher, store, transport, clock)


# =============================================================================
# Engine Fixtures
# =============================================================================


@pytest.fixture
def engine(fetcher, memory_store, transport, clock) -> SyncEngine:
    """Sync engine over the in-memory store and scripted upstream."""
    return wire_engine(fetcher, memory_store, transport, clock)


@pytest.fixture
def engine_factory():
    """Build extra engines, e.g. to model a second process on the same store."""
    return wire_engine


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
def mock_database():
    """Database whose lifecycle methods are AsyncMocks."""
    database = MagicMock(spec=Database)
    database.initialize = AsyncMock()
    database.ensure_schema = AsyncMock()
    database.close = AsyncMock()
    database.health_check = AsyncMock(return_value=True)
    database.fetchrow = AsyncMock(return_value=None)
    database.fetch = AsyncMock(return_value=[])
    database.fetchval = AsyncMock(return_value=0)
    return database
