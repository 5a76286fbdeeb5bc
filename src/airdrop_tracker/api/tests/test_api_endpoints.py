"""
Tests for the HTTP API.

These tests verify:
- Trigger endpoints require the shared secret (header or query)
- Trigger responses carry the run summary
- Overlapping or empty runs report success=false
- The live endpoint filters and paginates the snapshot cache
"""
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from airdrop_tracker.api.app import (
    ALREADY_RUNNING_ERROR,
    NO_DATA_ERROR,
    AuthError,
    create_app,
    extract_credential,
    verify_secret,
)


class TestSecretHelpers:
    """Tests for credential extraction and comparison."""

    def test_bearer_wins_over_query(self):
        assert extract_credential("Bearer from-header", "from-query") == "from-header"

    def test_query_fallback(self):
        assert extract_credential(None, "from-query") == "from-query"
        assert extract_credential("Basic abc", "from-query") == "from-query"

    def test_verify_accepts_exact_match(self):
        verify_secret("abc", "abc")

    @pytest.mark.parametrize("expected,provided", [
        ("abc", "abd"),
        ("abc", None),
        ("abc", ""),
        (None, "abc"),
        ("", ""),
    ])
    def test_verify_rejects(self, expected, provided):
        with pytest.raises(AuthError):
            verify_secret(expected, provided)


class TestTriggerAuth:
    """Trigger endpoints are gated by CRON_SECRET."""

    def test_missing_secret(self, client):
        response = client.post("/api/sync/trigger")

        assert response.status_code == 401
        assert response.json() == {"success": False, "error": "Unauthorized"}

    def test_wrong_secret(self, client):
        response = client.post("/api/sync/trigger", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    def test_bearer_header(self, client, auth_headers, fetcher, raw_listing):
        fetcher.records = [raw_listing("WAL")]

        response = client.post("/api/sync/trigger", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["success"] is True

    def test_query_parameter(self, client, settings, fetcher, raw_listing):
        fetcher.records = [raw_listing("WAL")]

        response = client.get("/api/cron/sync", params={"secret": settings.cron_secret})

        assert response.status_code == 200
        assert response.json()["success"] is True

    def test_unset_secret_rejects_everything(self, services):
        services.settings.cron_secret = None

        with TestClient(create_app(services)) as client:
            response = client.get("/api/cron/sync", params={"secret": ""})

        assert response.status_code == 401

    def test_rejected_request_does_not_sync(self, client, fetcher):
        client.post("/api/sync/trigger")
        assert fetcher.calls == 0


class TestTriggerSync:
    """Tests for the run summary responses."""

    def test_first_and_second_run(self, client, auth_headers, fetcher, transport, raw_listing):
        fetcher.records = [raw_listing("WAL")]

        first = client.post("/api/sync/trigger", params={"force": "true"}, headers=auth_headers)
        second = client.post("/api/sync/trigger", params={"force": "true"}, headers=auth_headers)

        assert first.json()["data"]["created"] == 1
        assert first.json()["data"]["notified"] == 1
        assert second.json()["data"]["created"] == 0
        assert second.json()["data"]["updated"] == 1
        assert second.json()["data"]["notified"] == 0
        assert transport.sent == ["WAL"]

    def test_response_shape(self, client, auth_headers, fetcher, raw_listing):
        fetcher.records = [raw_listing("WAL")]

        body = client.post("/api/sync/trigger", headers=auth_headers).json()

        assert set(body) == {"success", "data", "timestamp"}
        assert body["data"]["source"] == "live"
        assert body["data"]["total"] == 1

    def test_cron_uses_cache_unless_forced(self, client, auth_headers, fetcher, raw_listing):
        fetcher.records = [raw_listing("WAL")]

        client.get("/api/cron/sync", headers=auth_headers)
        cached = client.get("/api/cron/sync", headers=auth_headers).json()
        forced = client.get("/api/cron/sync", params={"force": "true"}, headers=auth_headers).json()

        assert cached["data"]["source"] == "cache"
        assert forced["data"]["source"] == "live"
        assert fetcher.calls == 2

    def test_no_data(self, client, auth_headers, fetcher):
        fetcher.records = []

        body = client.post("/api/sync/trigger", headers=auth_headers).json()

        assert body["success"] is False
        assert body["error"] == NO_DATA_ERROR

    def test_already_running(self, client, auth_headers, services, fetcher):
        services.coordinator.guard.try_acquire("scheduler")

        response = client.post("/api/sync/trigger", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["success"] is False
        assert response.json()["error"] == ALREADY_RUNNING_ERROR
        assert fetcher.calls == 0

    def test_unexpected_error_is_500(self, services, auth_headers):
        app = create_app(services)
        failing = AsyncMock(side_effect=RuntimeError("kaboom"))

        with patch.object(services.coordinator, "run_sync", failing):
            with TestClient(app, raise_server_exceptions=False) as client:
                response = client.post("/api/sync/trigger", headers=auth_headers)

        assert response.status_code == 500
        assert response.json() == {"success": False, "error": "kaboom"}


class TestLiveAirdrops:
    """Tests for GET /api/airdrops/live."""

    @pytest.fixture
    def thirty_seven(self, fetcher, raw_listing):
        fetcher.records = [raw_listing(f"T{i:02d}", score=i + 1) for i in range(37)]

    def test_last_page(self, client, thirty_seven):
        body = client.get("/api/airdrops/live", params={"limit": 10, "offset": 30}).json()

        assert body["success"] is True
        assert body["data"]["pagination"] == {
            "total": 37,
            "limit": 10,
            "offset": 30,
            "hasMore": False,
        }
        assert len(body["data"]["tokens"]) == 7

    def test_middle_page(self, client, thirty_seven):
        body = client.get("/api/airdrops/live", params={"limit": 10, "offset": 20}).json()

        assert body["data"]["pagination"]["hasMore"] is True
        assert len(body["data"]["tokens"]) == 10

    def test_sorted_by_score_descending(self, client, thirty_seven):
        body = client.get("/api/airdrops/live", params={"limit": 3}).json()

        assert [t["token"] for t in body["data"]["tokens"]] == ["T36", "T35", "T34"]

    def test_stats_cover_full_snapshot(self, client, thirty_seven):
        body = client.get("/api/airdrops/live", params={"limit": 1}).json()

        assert body["data"]["stats"]["total"] == 37
        assert body["data"]["stats"]["byChain"] == {"BSC": 37}

    def test_filters(self, client, fetcher, raw_listing):
        fetcher.records = [
            raw_listing("WAL"),
            raw_listing("OLD", offline=True),
            raw_listing("ETHX", chainId="1"),
        ]

        ended = client.get("/api/airdrops/live", params={"status": "ended"}).json()
        eth = client.get("/api/airdrops/live", params={"chain": "ethereum"}).json()

        assert [t["token"] for t in ended["data"]["tokens"]] == ["OLD"]
        assert [t["token"] for t in eth["data"]["tokens"]] == ["ETHX"]
        assert ended["data"]["pagination"]["total"] == 1

    def test_token_shape(self, client, fetcher, raw_listing):
        fetcher.records = [raw_listing("WAL", price="0.4123", score=200)]

        token = client.get("/api/airdrops/live").json()["data"]["tokens"][0]

        assert token["token"] == "WAL"
        assert token["status"] == "CLAIMABLE"
        assert token["requiredPoints"] == 200
        assert token["deductPoints"] == 20
        assert token["estimatedValue"] == 0.41
        assert token["price"] == "0.4123"
        assert token["chain"] == "BSC"

    def test_source_and_force(self, client, fetcher, raw_listing):
        fetcher.records = [raw_listing("WAL")]

        first = client.get("/api/airdrops/live").json()
        second = client.get("/api/airdrops/live").json()
        forced = client.get("/api/airdrops/live", params={"force": "true"}).json()

        assert first["data"]["source"] == "live"
        assert second["data"]["source"] == "cache"
        assert forced["data"]["source"] == "live"
        assert fetcher.calls == 2

    def test_live_endpoint_does_not_write(self, client, fetcher, memory_store, raw_listing):
        fetcher.records = [raw_listing("WAL")]

        client.get("/api/airdrops/live")

        assert memory_store.records == {}

    def test_invalid_sort_field(self, client):
        response = client.get("/api/airdrops/live", params={"sort_by": "market_cap"})

        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_negative_limit(self, client):
        response = client.get("/api/airdrops/live", params={"limit": -1})
        assert response.status_code == 422

    def test_upstream_down_with_empty_cache(self, client, fetcher):
        fetcher.fail_with("upstream 502")

        response = client.get("/api/airdrops/live")

        assert response.status_code == 503
        assert response.json()["success"] is False

    def test_upstream_down_serves_stale(self, client, fetcher, clock, raw_listing):
        fetcher.records = [raw_listing("WAL")]
        client.get("/api/airdrops/live")
        clock.advance(3600)
        fetcher.fail_with()

        body = client.get("/api/airdrops/live").json()

        assert body["data"]["source"] == "stale-fallback"
        assert [t["token"] for t in body["data"]["tokens"]] == ["WAL"]

    def test_one_upstream_call_per_request_during_outage(self, client, fetcher, clock, raw_listing):
        fetcher.records = [raw_listing("WAL"), raw_listing("OLD", offline=True)]
        params = {"status": "claimable", "limit": 10}
        client.get("/api/airdrops/live", params=params)
        clock.advance(600)
        fetcher.fail_with()

        for expected_calls in (2, 3):
            body = client.get("/api/airdrops/live", params=params).json()

            assert fetcher.calls == expected_calls
            assert body["data"]["source"] == "stale-fallback"
            assert [t["token"] for t in body["data"]["tokens"]] == ["WAL"]

    def test_forced_filtered_request_goes_live(self, client, fetcher, raw_listing):
        fetcher.records = [raw_listing("WAL")]
        params = {"chain": "bsc"}
        client.get("/api/airdrops/live", params=params)

        body = client.get("/api/airdrops/live", params={**params, "force": "true"}).json()

        assert body["data"]["source"] == "live"
        assert fetcher.calls == 2


class TestStatusAndScheduler:
    """Tests for status, health and scheduler control."""

    def test_health(self, client):
        body = client.get("/health").json()

        assert body["status"] == "healthy"
        assert body["database"] is None
        assert body["scheduler"] == "STOPPED"

    def test_sync_status(self, client, auth_headers, fetcher, raw_listing):
        fetcher.records = [raw_listing("WAL")]
        client.post("/api/sync/trigger", headers=auth_headers)

        body = client.get("/api/sync/status").json()

        assert body["success"] is True
        assert body["data"]["scheduler"]["state"] == "STOPPED"
        assert body["data"]["scheduler"]["lastSummary"]["created"] == 1
        assert body["data"]["cache"]["upstreamCalls"] == 1

    def test_scheduler_control_requires_secret(self, client):
        assert client.post("/api/scheduler/start").status_code == 401
        assert client.post("/api/scheduler/stop").status_code == 401

    def test_start_and_stop(self, client, auth_headers):
        started = client.post("/api/scheduler/start", headers=auth_headers).json()
        again = client.post("/api/scheduler/start", headers=auth_headers).json()
        stopped = client.post("/api/scheduler/stop", headers=auth_headers).json()

        assert started["changed"] is True
        assert started["data"]["state"] == "RUNNING"
        assert again["changed"] is False
        assert stopped["changed"] is True
        assert stopped["data"]["state"] == "STOPPED"
