"""
Test fixtures for monitoring.

IMPORTANT: The Telegram API is never called; the requests session is mocked.
"""
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from airdrop_tracker.ingestion.models import ListingStatus
from airdrop_tracker.monitoring.alerting import TelegramTransport
from airdrop_tracker.storage.models import AirdropRecord


@pytest.fixture
def wal_record() -> AirdropRecord:
    """Freshly created airdrop as the reconciler would store it."""
    return AirdropRecord(
        id=1,
        token="WAL",
        name="Walrus",
        chain="BSC",
        status=ListingStatus.CLAIMABLE,
        score=200.0,
        required_points=200,
        deduct_points=20,
        claim_start=datetime(2025, 5, 31, 12, 0, tzinfo=timezone.utc),
        estimated_value=Decimal("0.41"),
        price=Decimal("0.4123"),
        contract_address="0x356e7f2c8c3f1d5ca6dd1e4c6b6c0d6a0f7e3a11",
    )


@pytest.fixture
def mock_session():
    """requests session whose post() succeeds."""
    session = MagicMock()
    session.post.return_value = MagicMock(status_code=200)
    return session


@pytest.fixture
def telegram(mock_session) -> TelegramTransport:
    return TelegramTransport(bot_token="123:abc", chat_id="-100200", session=mock_session)
