"""
State machine enums and status mappings for billing models.
"""

from billing.state_machines.mapping import (
    membership_status_for,
    subscription_status_from_stripe,
)
from billing.state_machines.states import (
    AuditAction,
    MembershipStatus,
    PauseBehavior,
    PauseWindowKind,
    PauseWindowStatus,
    PaymentStatus,
    ReconcileOutcome,
    ReconciliationRunStatus,
    SubscriptionStatus,
    WebhookEventStatus,
)

__all__ = [
    "AuditAction",
    "MembershipStatus",
    "PauseBehavior",
    "PauseWindowKind",
    "PauseWindowStatus",
    "PaymentStatus",
    "ReconcileOutcome",
    "ReconciliationRunStatus",
    "SubscriptionStatus",
    "WebhookEventStatus",
    "membership_status_for",
    "subscription_status_from_stripe",
]
