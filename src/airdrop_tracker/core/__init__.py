"""
Core Layer - The sync engine.

    Reconciler      - create-or-update of one listing by token
    NotifierGate    - paced alerts for records a run created
    RunGuard        - one sync pass at a time
    SyncCoordinator - guarded fetch -> reconcile -> notify
    SyncScheduler   - fixed-interval STOPPED/RUNNING loop
"""

from .guard import RunGuard
from .reconciler import (
    Reconciler,
    ReconcileOutcome,
    ReconcileResult,
    listing_to_fields,
)
from .notifier import (
    NotificationResult,
    NotifierGate,
    NotifyReport,
)
from .coordinator import SyncCoordinator, SyncRunSummary
from .scheduler import SchedulerState, SyncScheduler

__all__ = [
    "RunGuard",
    "Reconciler",
    "ReconcileOutcome",
    "ReconcileResult",
    "listing_to_fields",
    "NotificationResult",
    "NotifierGate",
    "NotifyReport",
    "SyncCoordinator",
    "SyncRunSummary",
    "SchedulerState",
    "SyncScheduler",
]
