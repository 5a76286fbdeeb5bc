"""
Sync coordinator - one guarded fetch, reconcile, notify pass.

Every entry point (scheduler tick, manual trigger, cron trigger) goes
through run_sync(). The RunGuard is held from the fetch until the last
notification is sent; an overlapping call returns immediately with
already_running set and touches nothing.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from airdrop_tracker.core.guard import RunGuard
from airdrop_tracker.core.notifier import NotificationResult, NotifierGate
from airdrop_tracker.core.reconciler import Reconciler, ReconcileOutcome
from airdrop_tracker.ingestion.cache import SnapshotCache
from airdrop_tracker.ingestion.client import UpstreamFetchError
from airdrop_tracker.storage.database import STORAGE_ERRORS
from airdrop_tracker.storage.models import AirdropRecord, ListCodecError, SyncLogEntry
from airdrop_tracker.storage.repositories.sync_log_repo import SyncLogRepository

logger = logging.getLogger(__name__)


@dataclass
class SyncRunSummary:
    """Outcome of one run_sync() call."""

    created: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    notified: int = 0
    errors: list[str] = field(default_factory=list)
    total: int = 0
    source: Optional[str] = None
    last_update: Optional[datetime] = None
    already_running: bool = False
    no_data: bool = False
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    duration_ms: int = 0
    notification_results: list[NotificationResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not (self.already_running or self.no_data)

    def to_dict(self) -> dict[str, Any]:
        """Response body fields for the trigger endpoints."""
        data: dict[str, Any] = {
            "source": self.source,
            "lastUpdate": self.last_update.isoformat() if self.last_update else None,
            "total": self.total,
            "created": self.created,
            "updated": self.updated,
            "skipped": self.skipped,
            "failed": self.failed,
            "notified": self.notified,
            "durationMs": self.duration_ms,
        }
        if self.errors:
            data["errors"] = list(self.errors)
        return data

    def to_log_entry(self, action: str = "sync") -> SyncLogEntry:
        return SyncLogEntry(
            source=self.source or "none",
            action=action,
            success=self.success,
            tokens_count=self.total,
            created=self.created,
            updated=self.updated,
            failed=self.failed,
            notified=self.notified,
            errors=list(self.errors),
            duration_ms=self.duration_ms,
            created_at=self.finished_at,
        )


class SyncCoordinator:
    """
    Usage:
        coordinator = SyncCoordinator(cache, reconciler, notifier, sync_logs=logs)
        summary = await coordinator.run_sync(force_refresh=True, trigger="cron")
    """

    def __init__(
        self,
        cache: SnapshotCache,
        reconciler: Reconciler,
        notifier: NotifierGate,
        guard: Optional[RunGuard] = None,
        sync_logs: Optional[SyncLogRepository] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._cache = cache
        self._reconciler = reconciler
        self._notifier = notifier
        self._guard = guard or RunGuard()
        self._sync_logs = sync_logs
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._last_summary: Optional[SyncRunSummary] = None

    @property
    def guard(self) -> RunGuard:
        return self._guard

    @property
    def last_summary(self) -> Optional[SyncRunSummary]:
        return self._last_summary

    @property
    def is_running(self) -> bool:
        return self._guard.is_held

    async def run_sync(
        self,
        force_refresh: bool = False,
        trigger: str = "manual",
    ) -> SyncRunSummary:
        started = self._clock()

        if not self._guard.try_acquire(trigger):
            logger.warning(
                f"Sync ({trigger}) skipped: run by {self._guard.holder} already in progress"
            )
            return SyncRunSummary(
                already_running=True,
                started_at=started,
                finished_at=started,
            )

        try:
            logger.info(f"Sync started (trigger={trigger}, force={force_refresh})")
            summary = await self._run(started, force_refresh)
            self._last_summary = summary
            await self._write_log(summary, trigger)
        finally:
            self._guard.release()

        logger.info(
            f"Sync finished: source={summary.source} total={summary.total} "
            f"created={summary.created} updated={summary.updated} "
            f"skipped={summary.skipped} failed={summary.failed} "
            f"notified={summary.notified} ({summary.duration_ms}ms)"
        )
        return summary

    async def _run(self, started: datetime, force_refresh: bool) -> SyncRunSummary:
        summary = SyncRunSummary(started_at=started)

        try:
            snapshot = await self._cache.fetch(force_refresh=force_refresh)
        except UpstreamFetchError as e:
            logger.error(f"No snapshot available: {e}")
            summary.no_data = True
            summary.errors.append(f"Fetch failed: {e}")
            return self._finish(summary)

        summary.source = snapshot.source.value
        summary.last_update = snapshot.fetched_at
        summary.total = snapshot.total

        if summary.total == 0:
            logger.warning("Upstream returned an empty snapshot")
            summary.no_data = True
            return self._finish(summary)

        for message in snapshot.parse_errors:
            summary.failed += 1
            summary.errors.append(message)

        created: list[AirdropRecord] = []
        for item in snapshot.items:
            result = await self._reconciler.reconcile(item)

            if result.outcome is ReconcileOutcome.CREATE:
                summary.created += 1
                created.append(result.record)
            elif result.outcome is ReconcileOutcome.UPDATE:
                summary.updated += 1
            elif result.outcome is ReconcileOutcome.SKIP:
                summary.skipped += 1
            else:
                summary.failed += 1
                summary.errors.append(result.error or f"{result.token}: unknown error")

        if created:
            report = await self._notifier.notify(created)
            summary.notified = report.notified
            summary.errors.extend(report.failures)
            summary.notification_results = report.results

        return self._finish(summary)

    def _finish(self, summary: SyncRunSummary) -> SyncRunSummary:
        summary.finished_at = self._clock()
        elapsed = summary.finished_at - summary.started_at
        summary.duration_ms = max(0, int(elapsed.total_seconds() * 1000))
        return summary

    async def _write_log(self, summary: SyncRunSummary, trigger: str) -> None:
        if self._sync_logs is None:
            return
        try:
            await self._sync_logs.record(summary.to_log_entry(action=trigger))
        except (ListCodecError, *STORAGE_ERRORS) as e:
            logger.error(f"Failed to write sync log: {e}")
