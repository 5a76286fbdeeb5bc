"""
Fixed-interval scheduler for sync runs.

STOPPED -> start() -> RUNNING -> stop() -> STOPPED

While RUNNING the loop runs a sync immediately, then waits `interval`
after each run completes. Interval drift is tolerated. stop() cancels the
pending wait only; a run already in progress finishes first.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Optional

from airdrop_tracker.core.coordinator import SyncCoordinator

logger = logging.getLogger(__name__)


class SchedulerState(str, Enum):
    STOPPED = "STOPPED"
    RUNNING = "RUNNING"


class SyncScheduler:
    """
    Runs SyncCoordinator.run_sync on a fixed interval.

    Usage:
        scheduler = SyncScheduler(coordinator, interval_seconds=300)
        await scheduler.start()
        # ... service runs ...
        await scheduler.stop(wait=True)
    """

    def __init__(
        self,
        coordinator: SyncCoordinator,
        interval_seconds: float = 300.0,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._coordinator = coordinator
        self._interval = interval_seconds
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self._state = SchedulerState.STOPPED
        self._task: Optional[asyncio.Task] = None
        # Each start() gets its own event so a stopping loop cannot be revived
        self._stop_event: Optional[asyncio.Event] = None

        self._last_run_at: Optional[datetime] = None
        self._next_run_at: Optional[datetime] = None
        self._run_count = 0
        self._error_count = 0
        self._last_error: Optional[str] = None

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is SchedulerState.RUNNING

    async def start(self) -> bool:
        """Start the loop. Returns False if already running."""
        if self._state is SchedulerState.RUNNING:
            logger.warning("Sync scheduler already running")
            return False

        self._state = SchedulerState.RUNNING
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(
            self._loop(self._stop_event),
            name="sync_scheduler",
        )
        logger.info(f"Sync scheduler started (interval={self._interval}s)")
        return True

    async def stop(self, wait: bool = False) -> bool:
        """
        Stop scheduling further runs. Returns False if already stopped.

        Args:
            wait: Also wait for an in-flight run to finish
        """
        if self._state is SchedulerState.STOPPED:
            return False

        self._state = SchedulerState.STOPPED
        self._next_run_at = None
        if self._stop_event is not None:
            self._stop_event.set()

        task = self._task
        self._task = None
        if wait and task is not None:
            await asyncio.gather(task, return_exceptions=True)

        logger.info("Sync scheduler stopped")
        return True

    async def _loop(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            await self._tick()

            if stop_event.is_set():
                break

            self._next_run_at = self._clock() + timedelta(seconds=self._interval)
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self._interval)
                break  # Stop requested
            except asyncio.TimeoutError:
                pass  # Next tick

    async def _tick(self) -> None:
        self._last_run_at = self._clock()
        self._run_count += 1
        try:
            await self._coordinator.run_sync(trigger="scheduler")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._error_count += 1
            self._last_error = str(e)
            logger.error(f"Scheduled sync failed: {e}", exc_info=True)

    def status(self) -> dict[str, Any]:
        summary = self._coordinator.last_summary
        return {
            "state": self._state.value,
            "intervalSeconds": self._interval,
            "lastRunAt": self._last_run_at.isoformat() if self._last_run_at else None,
            "nextRunAt": self._next_run_at.isoformat() if self._next_run_at else None,
            "runCount": self._run_count,
            "errorCount": self._error_count,
            "lastError": self._last_error,
            "syncInProgress": self._coordinator.is_running,
            "lastSummary": summary.to_dict() if summary else None,
        }
