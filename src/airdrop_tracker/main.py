"""
Airdrop Tracker - Main Entry Point

Runs the HTTP API with the background sync scheduler, or a single sync pass.

Usage:
    python -m airdrop_tracker.main                 # API + scheduler
    python -m airdrop_tracker.main --no-scheduler  # API only (cron-driven)
    python -m airdrop_tracker.main --once --force  # One sync run, then exit

Environment Variables:
    DATABASE_URL                PostgreSQL connection string
    ALPHA_API_URL               Binance Alpha token list endpoint
    CACHE_FRESHNESS_SECONDS     Snapshot cache freshness window (default: 300)
    SYNC_INTERVAL_SECONDS       Scheduler interval (default: 300)
    NOTIFICATION_DELAY_SECONDS  Pause between alerts (default: 0.1)
    CRON_SECRET                 Shared secret for trigger endpoints
    TELEGRAM_BOT_TOKEN          Telegram bot token for alerts
    TELEGRAM_CHAT_ID            Telegram chat ID for alerts
    SCHEDULER_ENABLED           Start the scheduler with the API (default: true)
    API_HOST / API_PORT         Bind address (default: 127.0.0.1:8080)
    LOG_LEVEL                   Logging level (DEBUG/INFO/WARNING/ERROR)
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import uvicorn
from fastapi import FastAPI

from airdrop_tracker.api.app import AppServices, create_app
from airdrop_tracker.config import Settings, load_settings
from airdrop_tracker.core.coordinator import SyncCoordinator
from airdrop_tracker.core.guard import RunGuard
from airdrop_tracker.core.notifier import NotifierGate
from airdrop_tracker.core.reconciler import Reconciler
from airdrop_tracker.core.scheduler import SyncScheduler
from airdrop_tracker.ingestion.cache import SnapshotCache
from airdrop_tracker.ingestion.client import AlphaRestClient
from airdrop_tracker.monitoring.alerting import NotificationTransport, TelegramTransport
from airdrop_tracker.storage.database import Database, DatabaseConfig
from airdrop_tracker.storage.repositories import AirdropRepository, SyncLogRepository

# Configure logging before anything else logs
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def build_services(
    settings: Settings,
    database: Optional[Database] = None,
    transport: Optional[NotificationTransport] = None,
    client: Optional[AlphaRestClient] = None,
) -> AppServices:
    """Wire the sync engine. Nothing connects until the lifespan starts."""
    database = database or Database(DatabaseConfig(url=settings.database_url))
    client = client or AlphaRestClient(
        url=settings.alpha_api_url,
        timeout=settings.request_timeout_seconds,
    )
    transport = transport or TelegramTransport(
        bot_token=settings.telegram_bot_token,
        chat_id=settings.telegram_chat_id,
    )

    airdrops = AirdropRepository(database)
    sync_logs = SyncLogRepository(database)

    cache = SnapshotCache(
        client.fetch_snapshot,
        freshness_seconds=settings.cache_freshness_seconds,
        max_entries=settings.cache_max_entries,
    )
    coordinator = SyncCoordinator(
        cache=cache,
        reconciler=Reconciler(airdrops),
        notifier=NotifierGate(transport, delay_seconds=settings.notification_delay_seconds),
        guard=RunGuard(),
        sync_logs=sync_logs,
    )
    scheduler = SyncScheduler(coordinator, interval_seconds=settings.sync_interval_seconds)

    return AppServices(
        settings=settings,
        cache=cache,
        coordinator=coordinator,
        scheduler=scheduler,
        database=database,
        airdrops=airdrops,
        sync_logs=sync_logs,
        client=client,
    )


async def startup(services: AppServices) -> None:
    if services.database is not None:
        await services.database.initialize()
        await services.database.ensure_schema()

    if services.settings.scheduler_enabled:
        await services.scheduler.start()
    else:
        logger.info("Scheduler disabled; syncs run only on trigger")


async def shutdown(services: AppServices) -> None:
    await services.scheduler.stop(wait=True)
    if services.client is not None:
        await services.client.close()
    if services.database is not None:
        await services.database.close()


def build_app(settings: Settings) -> FastAPI:
    services = build_services(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await startup(services)
        try:
            yield
        finally:
            await shutdown(services)

    return create_app(services, lifespan=lifespan)


async def run_once(settings: Settings, force_refresh: bool = False) -> int:
    """Run a single sync pass and print its summary."""
    services = build_services(settings)
    await services.database.initialize()
    await services.database.ensure_schema()
    try:
        summary = await services.coordinator.run_sync(force_refresh=force_refresh, trigger="cli")
    finally:
        await shutdown(services)

    print(json.dumps(summary.to_dict(), indent=2))
    return 0 if summary.success else 1


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Binance Alpha Airdrop Tracker",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--host", type=str, help="Override API_HOST")
    parser.add_argument("--port", type=int, help="Override API_PORT")
    parser.add_argument(
        "--no-scheduler",
        action="store_true",
        help="Do not start the background scheduler",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run one sync pass and exit",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="With --once: bypass the snapshot cache",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Override log level",
    )
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    overrides = {}
    if args.host:
        overrides["api_host"] = args.host
    if args.port:
        overrides["api_port"] = args.port
    if args.no_scheduler:
        overrides["scheduler_enabled"] = False
    settings = load_settings(**overrides)

    # --log-level wins over LOG_LEVEL (env or .env)
    level = (args.log_level or settings.log_level).upper()
    logging.getLogger().setLevel(getattr(logging, level, logging.INFO))

    if not settings.cron_secret:
        logger.warning("CRON_SECRET is not set; all trigger requests will be rejected")

    if args.once:
        try:
            return asyncio.run(run_once(settings, force_refresh=args.force))
        except KeyboardInterrupt:
            return 0

    app = build_app(settings)
    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level=logging.getLevelName(logging.getLogger().level).lower(),
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
