"""
Process-wide re-entrancy guard for sync runs.

All callers share one event loop, so checking and setting the flag with no
await in between is atomic.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger(__name__)


class RunGuard:
    """Non-blocking single-holder lock."""

    def __init__(self) -> None:
        self._holder: Optional[str] = None
        self._acquired_at: Optional[datetime] = None

    @property
    def is_held(self) -> bool:
        return self._holder is not None

    @property
    def holder(self) -> Optional[str]:
        return self._holder

    @property
    def acquired_at(self) -> Optional[datetime]:
        return self._acquired_at

    def try_acquire(self, holder: str = "sync") -> bool:
        """Take the guard if free. Never waits."""
        if self._holder is not None:
            logger.debug(f"Guard held by {self._holder}, refusing {holder}")
            return False
        self._holder = holder
        self._acquired_at = datetime.now(timezone.utc)
        return True

    def release(self) -> None:
        self._holder = None
        self._acquired_at = None
