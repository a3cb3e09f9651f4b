"""
Billing domain models.

- Subscription: Local mirror of a Stripe subscription (FSM status)
- Membership: Access projection derived from the subscription
- PauseWindow: Scheduled pause of collection (month, date range, open-ended)
- Payment / Invoice: Ledger of money facts
- AuditLogEntry: Append-only audit trail
- WebhookEvent: Stripe webhook events for idempotent processing
- ReconciliationRun: History of reconciliation batches
"""

from billing.models.audit_log import AuditLogEntry
from billing.models.membership import Membership
from billing.models.pause_window import PauseWindow
from billing.models.payment import Invoice, Payment
from billing.models.reconciliation_run import ReconciliationRun
from billing.models.subscription import Subscription
from billing.models.webhook_event import WebhookEvent

__all__ = [
    "AuditLogEntry",
    "Invoice",
    "Membership",
    "PauseWindow",
    "Payment",
    "ReconciliationRun",
    "Subscription",
    "WebhookEvent",
]
