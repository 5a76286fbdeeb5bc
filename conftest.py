"""
Shared test fixtures for every test directory.

Provides the doubles the sync engine is tested against:
    - InMemoryAirdropStore: AirdropStore with the unique-token constraint
    - RecordingTransport: NotificationTransport that records sends
    - FakeClock: injectable "now"
    - ScriptedFetcher: snapshot fetcher with call counting, failures and a gate

IMPORTANT: Nothing here touches the network or a real database.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import pytest

from airdrop_tracker.ingestion.client import UpstreamFetchError
from airdrop_tracker.ingestion.models import (
    ListingItem,
    ListingStatus,
    ListingType,
    Snapshot,
    parse_snapshot,
)
from airdrop_tracker.monitoring.alerting import NotificationError
from airdrop_tracker.storage.models import AirdropRecord
from airdrop_tracker.storage.repositories.airdrop_repo import (
    PersistenceConflict,
    PersistenceError,
)

BASE_TIME = datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Doubles
# =============================================================================


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = BASE_TIME):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class InMemoryAirdropStore:
    """AirdropStore backed by a dict, enforcing one row per token."""

    def __init__(self):
        self.records: dict[str, AirdropRecord] = {}
        self.fail_tokens: set[str] = set()
        self.race_tokens: set[str] = set()
        self.create_calls: list[str] = []
        self.update_calls: list[str] = []

    async def find_by_token(self, token: str) -> Optional[AirdropRecord]:
        if token in self.fail_tokens:
            raise PersistenceError(f"Lookup failed for {token}: disk full", token=token)
        if token in self.race_tokens:
            # Simulates a concurrent writer inserting between lookup and insert
            return None
        return self.records.get(token)

    async def create(self, record: AirdropRecord) -> AirdropRecord:
        self.create_calls.append(record.token)
        if record.token in self.records or record.token in self.race_tokens:
            raise PersistenceConflict(f"Airdrop {record.token} already exists", token=record.token)
        stored = record.model_copy(update={"id": len(self.records) + 1})
        self.records[record.token] = stored
        return stored

    async def update(self, token: str, fields: dict[str, Any]) -> AirdropRecord:
        self.update_calls.append(token)
        existing = self.records.get(token)
        if existing is None:
            raise PersistenceError(f"Airdrop {token} not found", token=token)
        stored = existing.model_copy(update=fields)
        self.records[token] = stored
        return stored


class RecordingTransport:
    """NotificationTransport that records what it was asked to send."""

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self.sent: list[str] = []
        self.attempts: list[str] = []
        self.fail_tokens: set[str] = set()

    async def send(self, record: AirdropRecord) -> bool:
        self.attempts.append(record.token)
        if record.token in self.fail_tokens:
            raise NotificationError(f"chat not found for {record.token}", status_code=400)
        if not self.enabled:
            return False
        self.sent.append(record.token)
        return True


class ScriptedFetcher:
    """
    Snapshot fetcher for SnapshotCache.

    Set `records` to change what upstream returns, `error` to make the next
    calls fail, and `gate` to hold fetches until the test releases them.
    """

    def __init__(self, records: Optional[list[dict]] = None, clock: Optional[FakeClock] = None):
        self.records = list(records or [])
        self.error: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None
        self.calls = 0
        self._clock = clock

    async def __call__(self) -> Snapshot:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        fetched_at = self._clock() if self._clock else BASE_TIME
        return parse_snapshot(self.records, fetched_at=fetched_at)

    def fail_with(self, message: str = "upstream down") -> None:
        self.error = UpstreamFetchError(message, status_code=503)


def make_raw_listing(symbol: str, **overrides) -> dict[str, Any]:
    """Raw Binance Alpha token list record."""
    raw = {
        "alphaId": f"ALPHA_{symbol}",
        "symbol": symbol,
        "name": f"{symbol} Protocol",
        "chainId": "56",
        "chainName": "BSC",
        "contractAddress": f"0x{symbol.lower():0>40}"[:42],
        "price": "0.4123",
        "score": 200,
        "mulPoint": 1,
        "listingTime": int((BASE_TIME - timedelta(days=1)).timestamp() * 1000),
        "onlineAirdrop": True,
        "onlineTge": False,
        "offline": False,
        "offsell": False,
        "iconUrl": f"https://bin.bnbstatic.com/{symbol.lower()}.png",
    }
    raw.update(overrides)
    return raw


def make_listing(token: str, **overrides) -> ListingItem:
    """ListingItem with sensible defaults."""
    fields = {
        "token": token,
        "name": f"{token} Protocol",
        "chain": "BSC",
        "status": ListingStatus.CLAIMABLE,
        "type": ListingType.AIRDROP,
        "score": 100.0,
        "mul_point": 1,
        "online_airdrop": True,
    }
    fields.update(overrides)
    return ListingItem(**fields)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def clock():
    """Fake clock starting at BASE_TIME."""
    return FakeClock()


@pytest.fixture
def memory_store():
    """Empty in-memory airdrop store."""
    return InMemoryAirdropStore()


@pytest.fixture
def transport():
    """Enabled recording transport."""
    return RecordingTransport()


@pytest.fixture
def fetcher(clock):
    """Scripted upstream fetcher (empty until records are set)."""
    return ScriptedFetcher(clock=clock)


@pytest.fixture
def raw_listing():
    """Factory for raw upstream records: raw_listing("WAL", score=300)."""
    return make_raw_listing


@pytest.fixture
def listing():
    """Factory for ListingItems: listing("WAL", chain="Ethereum")."""
    return make_listing


@pytest.fixture
def fetcher_factory(clock):
    """Build extra scripted fetchers sharing the test clock."""

    def _make(records: Optional[list[dict]] = None) -> ScriptedFetcher:
        return ScriptedFetcher(records, clock=clock)

    return _make
