"""
FastAPI application for Airdrop Tracker.

Trigger endpoints start a guarded sync run; the live endpoint serves
filtered listing views from the snapshot cache. Every response is JSON with
an explicit `success` flag.
"""

from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Annotated, Any, AsyncIterator, Callable, Optional

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from airdrop_tracker import __version__
from airdrop_tracker.config import Settings
from airdrop_tracker.core.coordinator import SyncCoordinator, SyncRunSummary
from airdrop_tracker.core.scheduler import SyncScheduler
from airdrop_tracker.ingestion.cache import SnapshotCache
from airdrop_tracker.ingestion.client import AlphaRestClient, UpstreamFetchError
from airdrop_tracker.ingestion.models import ListingItem
from airdrop_tracker.ingestion.query import ListingQuery, compute_stats
from airdrop_tracker.storage.database import STORAGE_ERRORS, Database
from airdrop_tracker.storage.repositories.airdrop_repo import (
    AirdropRepository,
    PersistenceError,
)
from airdrop_tracker.storage.repositories.sync_log_repo import SyncLogRepository

logger = logging.getLogger(__name__)

ALREADY_RUNNING_ERROR = "Sync already running"
NO_DATA_ERROR = "No data received from Binance Alpha"


class AuthError(Exception):
    """Missing or mismatched trigger secret."""
    pass


@dataclass
class AppServices:
    """Everything the endpoints need, wired once at startup."""

    settings: Settings
    cache: SnapshotCache
    coordinator: SyncCoordinator
    scheduler: SyncScheduler
    database: Optional[Database] = None
    airdrops: Optional[AirdropRepository] = None
    sync_logs: Optional[SyncLogRepository] = None
    client: Optional[AlphaRestClient] = None


# =============================================================================
# Helpers
# =============================================================================


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def listing_to_response(item: ListingItem) -> dict[str, Any]:
    """Convert a ListingItem to its JSON shape."""
    return {
        "token": item.token,
        "name": item.name,
        "chain": item.chain,
        "status": item.status.value,
        "type": item.type.value,
        "score": item.score,
        "mulPoint": item.mul_point,
        "requiredPoints": item.required_points,
        "deductPoints": item.deduct_points,
        "claimStartDate": _iso(item.claim_start),
        "claimEndDate": _iso(item.claim_end),
        "estimatedValue": float(item.estimated_value) if item.estimated_value is not None else None,
        "contractAddress": item.contract_address,
        "listingTime": _iso(item.listing_time),
        "price": str(item.price),
        "alphaId": item.alpha_id,
        "iconUrl": item.icon_url,
        "onlineAirdrop": item.online_airdrop,
        "onlineTge": item.online_tge,
    }


def extract_credential(
    authorization: Optional[str],
    secret: Optional[str],
) -> Optional[str]:
    """Bearer header first, then the `secret` query parameter."""
    if authorization and authorization.startswith("Bearer "):
        return authorization[len("Bearer "):]
    return secret


def verify_secret(expected: Optional[str], provided: Optional[str]) -> None:
    """
    Exact comparison against the configured secret.

    Raises:
        AuthError: No secret configured, none provided, or mismatch
    """
    if not expected or provided is None:
        raise AuthError("Unauthorized")
    if not hmac.compare_digest(expected.encode(), provided.encode()):
        raise AuthError("Unauthorized")


def summary_response(summary: SyncRunSummary) -> dict[str, Any]:
    """Trigger endpoint body for a run summary."""
    if summary.already_running:
        return {
            "success": False,
            "error": ALREADY_RUNNING_ERROR,
            "timestamp": utc_timestamp(),
        }
    if summary.no_data:
        return {
            "success": False,
            "error": NO_DATA_ERROR,
            "data": summary.to_dict(),
            "timestamp": utc_timestamp(),
        }
    return {
        "success": True,
        "data": summary.to_dict(),
        "timestamp": utc_timestamp(),
    }


# =============================================================================
# Dependency Injection
# =============================================================================


def get_services(request: Request) -> AppServices:
    """Service container attached at app creation; overridable in tests."""
    return request.app.state.services


def require_secret(
    services: Annotated[AppServices, Depends(get_services)],
    authorization: Annotated[Optional[str], Header()] = None,
    secret: Annotated[Optional[str], Query(description="Trigger secret")] = None,
) -> None:
    verify_secret(services.settings.cron_secret, extract_credential(authorization, secret))


# =============================================================================
# Endpoints
# =============================================================================


async def health_check(
    services: Annotated[AppServices, Depends(get_services)],
) -> dict[str, Any]:
    """Health check endpoint."""
    database_ok = None
    if services.database is not None:
        database_ok = await services.database.health_check()
    return {
        "status": "healthy" if database_ok is not False else "degraded",
        "version": __version__,
        "database": database_ok,
        "scheduler": services.scheduler.state.value,
    }


async def trigger_sync(
    services: Annotated[AppServices, Depends(get_services)],
    _auth: Annotated[None, Depends(require_secret)],
    force: Annotated[bool, Query(description="Bypass the snapshot cache")] = False,
) -> dict[str, Any]:
    """Manual sync trigger."""
    summary = await services.coordinator.run_sync(force_refresh=force, trigger="manual")
    return summary_response(summary)


async def cron_sync(
    services: Annotated[AppServices, Depends(get_services)],
    _auth: Annotated[None, Depends(require_secret)],
    force: Annotated[bool, Query(description="Bypass the snapshot cache")] = False,
) -> dict[str, Any]:
    """Cron sync trigger."""
    summary = await services.coordinator.run_sync(force_refresh=force, trigger="cron")
    return summary_response(summary)


async def live_airdrops(
    services: Annotated[AppServices, Depends(get_services)],
    status: Annotated[Optional[str], Query(description="UPCOMING, CLAIMABLE or ENDED")] = None,
    chain: Annotated[Optional[str], Query(description="Chain name")] = None,
    limit: Annotated[int, Query(ge=0, le=1000)] = 100,
    offset: Annotated[int, Query(ge=0)] = 0,
    sort_by: Annotated[str, Query(description="Sort field")] = "score",
    sort_desc: Annotated[bool, Query(description="Sort descending")] = True,
    force: Annotated[bool, Query(description="Bypass the snapshot cache")] = False,
) -> Any:
    """Filtered, paginated listings straight from the snapshot cache."""
    try:
        query = ListingQuery(
            status=status,
            chain=chain,
            limit=limit,
            offset=offset,
            sort_by=sort_by,
            descending=sort_desc,
        )
    except ValueError as e:
        return JSONResponse(status_code=400, content={"success": False, "error": str(e)})

    try:
        # One upstream attempt at most; the page is cut from that snapshot
        full = await services.cache.fetch(force_refresh=force)
        page = services.cache.view(full, query)
    except UpstreamFetchError as e:
        logger.error(f"Live listings unavailable: {e}")
        return JSONResponse(
            status_code=503,
            content={"success": False, "error": f"Failed to fetch live data: {e}"},
        )

    return {
        "success": True,
        "data": {
            "source": full.source.value,
            "lastUpdate": _iso(full.fetched_at),
            "stats": compute_stats(full.items),
            "pagination": {
                "total": page.total,
                "limit": limit,
                "offset": offset,
                "hasMore": page.has_more,
            },
            "tokens": [listing_to_response(item) for item in page.items],
        },
    }


async def sync_status(
    services: Annotated[AppServices, Depends(get_services)],
) -> dict[str, Any]:
    """Scheduler state, last run, recent sync logs and store counts."""
    data: dict[str, Any] = {
        "scheduler": services.scheduler.status(),
        "cache": services.cache.stats(),
    }

    if services.sync_logs is not None:
        try:
            logs = await services.sync_logs.get_recent(10)
            data["recentRuns"] = [log.model_dump(mode="json") for log in logs]
        except (PersistenceError, *STORAGE_ERRORS) as e:
            logger.warning(f"Could not load sync logs: {e}")
            data["recentRuns"] = None

    if services.airdrops is not None:
        try:
            data["database"] = await services.airdrops.count_by_status()
            recent = await services.airdrops.get_recent(5)
            data["recentAirdrops"] = [
                {
                    "token": record.token,
                    "status": record.status.value,
                    "createdAt": _iso(record.created_at),
                }
                for record in recent
            ]
        except (PersistenceError, *STORAGE_ERRORS) as e:
            logger.warning(f"Could not read airdrops: {e}")
            data["database"] = None
            data["recentAirdrops"] = None

    return {"success": True, "data": data, "timestamp": utc_timestamp()}


async def start_scheduler(
    services: Annotated[AppServices, Depends(get_services)],
    _auth: Annotated[None, Depends(require_secret)],
) -> dict[str, Any]:
    started = await services.scheduler.start()
    return {
        "success": True,
        "changed": started,
        "data": services.scheduler.status(),
    }


async def stop_scheduler(
    services: Annotated[AppServices, Depends(get_services)],
    _auth: Annotated[None, Depends(require_secret)],
) -> dict[str, Any]:
    stopped = await services.scheduler.stop()
    return {
        "success": True,
        "changed": stopped,
        "data": services.scheduler.status(),
    }


# =============================================================================
# FastAPI App
# =============================================================================


async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    logger.warning(f"Rejected unauthorized request to {request.url.path}")
    return JSONResponse(status_code=401, content={"success": False, "error": str(exc)})


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error on {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(status_code=500, content={"success": False, "error": str(exc)})


def create_app(
    services: AppServices,
    lifespan: Optional[Callable[[FastAPI], AsyncIterator[None]]] = None,
) -> FastAPI:
    """
    Build the API around an already wired service container.

    Tests pass fakes and no lifespan; main passes the lifespan that opens the
    database and starts the scheduler.
    """
    app = FastAPI(
        title="Airdrop Tracker API",
        description="Binance Alpha airdrop sync engine",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=services.settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AuthError, auth_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.get("/health")(health_check)
    app.post("/api/sync/trigger")(trigger_sync)
    app.get("/api/cron/sync")(cron_sync)
    app.get("/api/airdrops/live")(live_airdrops)
    app.get("/api/sync/status")(sync_status)
    app.post("/api/scheduler/start")(start_scheduler)
    app.post("/api/scheduler/stop")(stop_scheduler)

    return app
