"""
State enums for billing models.

These are Django TextChoices for database storage and admin integration.
Subscription and PauseWindow states are driven through django-fsm
transitions; the remaining enums are plain status columns.

State Machines Overview:

Subscription States:
    TRIALING/ACTIVE → PAUSED → ACTIVE (pause window applied / resumed)
    ACTIVE → PAST_DUE → ACTIVE (failed then recovered invoice)
    INCOMPLETE → ACTIVE (first payment confirmed)
    any → CANCELLED (terminal)
    any → any via sync_status (upstream correction)

PauseWindow States:
    SCHEDULED → ACTIVE → CREDIT_APPLIED
    SCHEDULED/ACTIVE → CANCELLED
"""

from django.db import models


class SubscriptionStatus(models.TextChoices):
    """
    Local subscription status, mirrored from Stripe.

    Terminal state: CANCELLED
    """

    ACTIVE = "ACTIVE", "Active"
    TRIALING = "TRIALING", "Trialing"
    PAUSED = "PAUSED", "Paused"
    PAST_DUE = "PAST_DUE", "Past Due"
    INCOMPLETE = "INCOMPLETE", "Incomplete"
    INCOMPLETE_EXPIRED = "INCOMPLETE_EXPIRED", "Incomplete Expired"
    CANCELLED = "CANCELLED", "Cancelled"


class MembershipStatus(models.TextChoices):
    """
    Access-control projection of a subscription.

    Always derived from SubscriptionStatus, see
    billing.state_machines.mapping.membership_status_for.
    """

    ACTIVE = "ACTIVE", "Active"
    SUSPENDED = "SUSPENDED", "Suspended"
    PENDING_PAYMENT = "PENDING_PAYMENT", "Pending Payment"
    CANCELLED = "CANCELLED", "Cancelled"


class PauseWindowStatus(models.TextChoices):
    """
    Lifecycle of a pause window.

    Terminal states: CREDIT_APPLIED, CANCELLED

    State Flow:
        SCHEDULED → ACTIVE → CREDIT_APPLIED
        SCHEDULED → CANCELLED (zero-cost)
        ACTIVE → CANCELLED (partial credit for elapsed days)
    """

    SCHEDULED = "SCHEDULED", "Scheduled"
    ACTIVE = "ACTIVE", "Active"
    CREDIT_APPLIED = "CREDIT_APPLIED", "Credit Applied"
    CANCELLED = "CANCELLED", "Cancelled"


class PauseWindowKind(models.TextChoices):
    """
    Shape of a pause window row.

    FIXED rows cover a concrete month or date range. OPEN_ENDED rows are
    masters with no end; one concrete month row is materialized from them
    per apply pass until closed_at is set.
    """

    FIXED = "FIXED", "Fixed"
    OPEN_ENDED = "OPEN_ENDED", "Open Ended"


class PauseBehavior(models.TextChoices):
    """What Stripe does with invoices raised while collection is paused."""

    VOID = "void", "Void"
    KEEP_AS_DRAFT = "keep_as_draft", "Keep as Draft"
    MARK_UNCOLLECTIBLE = "mark_uncollectible", "Mark Uncollectible"


class PaymentStatus(models.TextChoices):
    """Status of a recorded payment."""

    CONFIRMED = "CONFIRMED", "Confirmed"
    FAILED = "FAILED", "Failed"
    PENDING = "PENDING", "Pending"


class WebhookEventStatus(models.TextChoices):
    """
    Processing status for WebhookEvent.

    State Flow:
        PENDING → PROCESSING → PROCESSED
        PENDING → PROCESSING → FAILED (can retry)
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PROCESSED = "processed", "Processed"
    FAILED = "failed", "Failed"


class ReconcileOutcome(models.TextChoices):
    """Per-subscription outcome tag of a reconciliation pass."""

    FIXED = "FIXED", "Fixed"
    CORRECT = "CORRECT", "Correct"
    ERROR = "ERROR", "Error"
    SKIPPED = "SKIPPED", "Skipped"


class ReconciliationRunStatus(models.TextChoices):
    """Status of a reconciliation batch run."""

    RUNNING = "running", "Running"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"


class AuditAction(models.TextChoices):
    """Kinds of audit log entries; each has a fixed payload shape."""

    PAUSE_SCHEDULE_CREATE = "PAUSE_SCHEDULE_CREATE", "Pause Schedule Created"
    PAUSE_AUTO_APPLY = "PAUSE_AUTO_APPLY", "Pause Auto Applied"
    RESUME_AUTO_APPLY = "RESUME_AUTO_APPLY", "Resume Auto Applied"
    PAUSE_STARTED = "PAUSE_STARTED", "Pause Started"
    PAUSE_ENDED = "PAUSE_ENDED", "Pause Ended"
    PAUSE_COMPLETED = "PAUSE_COMPLETED", "Pause Completed"
    PAUSE_RESUMED_EARLY = "PAUSE_RESUMED_EARLY", "Pause Resumed Early"
    PAUSE_WINDOW_CANCELLED = "PAUSE_WINDOW_CANCELLED", "Pause Window Cancelled"
    PAUSE_VERIFY_FIX = "PAUSE_VERIFY_FIX", "Pause Verify Fix"
    PAUSE_BACKSTOP_FIX = "PAUSE_BACKSTOP_FIX", "Pause Backstop Fix"
    RECONCILE_STATUS = "RECONCILE_STATUS", "Reconcile Status"
    PAYMENT_PHANTOM_FAILED = "PAYMENT_PHANTOM_FAILED", "Phantom Payment Failed"


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
]
