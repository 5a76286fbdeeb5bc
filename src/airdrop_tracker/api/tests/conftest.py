"""
Test fixtures for the HTTP API.

The app is built around a real sync engine whose edges are doubles from the
root conftest. No database is attached.
"""
import pytest
from fastapi.testclient import TestClient

from airdrop_tracker.api.app import AppServices, create_app
from airdrop_tracker.config import Settings
from airdrop_tracker.core.coordinator import SyncCoordinator
from airdrop_tracker.core.notifier import NotifierGate
from airdrop_tracker.core.reconciler import Reconciler
from airdrop_tracker.core.scheduler import SyncScheduler
from airdrop_tracker.ingestion.cache import SnapshotCache

CRON_SECRET = "s3cret-token"


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        cron_secret=CRON_SECRET,
        scheduler_enabled=False,
        notification_delay_seconds=0,
    )


@pytest.fixture
def services(settings, fetcher, memory_store, transport, clock) -> AppServices:
    cache = SnapshotCache(fetcher, freshness_seconds=settings.cache_freshness_seconds, clock=clock)
    coordinator = SyncCoordinator(
        cache=cache,
        reconciler=Reconciler(memory_store, clock=clock),
        notifier=NotifierGate(transport, delay_seconds=0),
        clock=clock,
    )
    scheduler = SyncScheduler(coordinator, interval_seconds=3600, clock=clock)
    return AppServices(
        settings=settings,
        cache=cache,
        coordinator=coordinator,
        scheduler=scheduler,
    )


@pytest.fixture
def client(services):
    with TestClient(create_app(services)) as test_client:
        yield test_client


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {CRON_SECRET}"}
