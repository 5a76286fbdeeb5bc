"""
Test fixtures for ingestion layer.

IMPORTANT: All external API calls must be mocked.
Never hit the real Binance Alpha API in tests.
"""

from typing import Any, Optional
from unittest.mock import MagicMock

import pytest

from airdrop_tracker.ingestion.cache import SnapshotCache
from airdrop_tracker.ingestion.client import AlphaRestClient


# =============================================================================
# HTTP Doubles
# =============================================================================


class FakeResponse:
    """Minimal aiohttp response."""

    def __init__(self, status: int, payload: Any = None, text: str = ""):
        self.status = status
        self._payload = payload
        self._text = text

    async def json(self, content_type: Optional[str] = None) -> Any:
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload

    async def text(self) -> str:
        return self._text


class FakeRequestContext:
    """What session.request(...) returns: an async context manager."""

    def __init__(self, response: Optional[FakeResponse] = None, error: Optional[Exception] = None):
        self._response = response
        self._error = error

    async def __aenter__(self) -> FakeResponse:
        if self._error is not None:
            raise self._error
        return self._response

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def mock_session():
    """aiohttp session whose request() results are set per test."""
    return MagicMock()


@pytest.fixture
def alpha_client(mock_session):
    """Client with no retry delay and no effective rate limit."""
    return AlphaRestClient(
        url="https://example.test/alpha/token/list",
        session=mock_session,
        rate_limit=1000,
        retry_delay=0,
        max_retries=3,
    )


@pytest.fixture
def ok_envelope(raw_listing):
    """Successful token list envelope with three listings."""
    return {
        "code": "000000",
        "message": None,
        "data": [
            raw_listing("WAL", score=300),
            raw_listing("ABC", score=100, offline=True),
            raw_listing("XYZ", score=500, chainId="1", chainName="ETH"),
        ],
        "success": True,
    }


@pytest.fixture
def cache(fetcher, clock):
    """Snapshot cache over the scripted fetcher with a 5 minute window."""
    return SnapshotCache(fetcher, freshness_seconds=300, clock=clock)


@pytest.fixture
def response():
    """Factory for fake responses."""
    return FakeResponse


@pytest.fixture
def request_context():
    """Factory for fake request contexts."""
    return FakeRequestContext
