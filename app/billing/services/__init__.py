"""
Billing services.

- PauseScheduler: pause window lifecycle against Stripe
- PauseCreditService: daily start/end of date-range pauses
- SubscriptionReconciler: local state vs Stripe drift correction
- AdminBillingActions: ServiceResult facade used by cron, tasks and staff
"""

from billing.services.admin_actions import AdminBillingActions, SchedulePauseParams
from billing.services.base import BatchResult, BillingService, Outcome, UnitResult
from billing.services.pause_credits import DailyRunResult, PauseCreditService
from billing.services.pause_scheduler import CancelResult, PauseScheduler
from billing.services.subscription_reconciler import (
    ReconcileBatchResult,
    ReconcileResult,
    RecoveryResult,
    SubscriptionReconciler,
)

__all__ = [
    "AdminBillingActions",
    "BatchResult",
    "BillingService",
    "CancelResult",
    "DailyRunResult",
    "Outcome",
    "PauseCreditService",
    "PauseScheduler",
    "ReconcileBatchResult",
    "ReconcileResult",
    "RecoveryResult",
    "SchedulePauseParams",
    "SubscriptionReconciler",
    "UnitResult",
]
