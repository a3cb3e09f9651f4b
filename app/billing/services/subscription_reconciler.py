"""
Subscription state reconciler.

This module provides the SubscriptionReconciler which pulls each
subscription from Stripe and corrects local drift. It is the safety net
behind the webhook dispatcher: a missed or out-of-order webhook is
repaired on the next pass.

Detection:
    Local Subscription.status is compared with
    subscription_status_from_stripe(upstream status, pause_collection).
    Membership is always re-derived, even when the subscription matches.

Healing:
    - Status drift: subscription and membership corrected atomically
      (sync_status, since upstream is authoritative), period bounds and
      cancel flag refreshed, RECONCILE_STATUS audited.
    - INCOMPLETE upstream: CONFIRMED payments recorded since the
      subscription was created are phantom revenue and flip to FAILED.
    - FAILED payments whose invoice is paid upstream are re-confirmed
      through the ledger (recover_paid_invoices).

Outcomes per subscription: FIXED, CORRECT, ERROR, SKIPPED.

Usage:
    from billing.services import SubscriptionReconciler

    batch = SubscriptionReconciler.reconcile_subscriptions(account_key="SU")
    batch.counts  # {"CORRECT": 40, "FIXED": 2}
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from django.db.models import Q

from billing.audit import (
    AuditLogService,
    PaymentPhantomFailed,
    ReconcileStatus,
    make_operation_id,
)
from billing.exceptions import ReconciliationError, StripeError
from billing.ledger import PaymentLedger
from billing.models import Membership, Payment, ReconciliationRun, Subscription
from billing.models.subscription import LIVE_STATES
from billing.proration import from_minor_units
from billing.services.base import BillingService
from billing.state_machines import (
    PaymentStatus,
    ReconcileOutcome,
    ReconciliationRunStatus,
    SubscriptionStatus,
    membership_status_for,
    subscription_status_from_stripe,
)
from billing.sync import (
    apply_upstream_fields,
    set_subscription_status,
    sync_membership,
)

if TYPE_CHECKING:
    import uuid
    from datetime import datetime
    from typing import Any

    from billing.adapters import SubscriptionResult
    from billing.clock import Clock


# =============================================================================
# Constants
# =============================================================================

DEFAULT_BATCH_LIMIT = 500
PHANTOM_FAILURE_REASON = "incomplete upstream"
RECOVERED_DESCRIPTION = "Monthly membership payment"


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class ReconcileResult:
    """Result of reconciling one subscription."""

    subscription_id: str
    outcome: str
    previous_status: str | None = None
    new_status: str | None = None
    stripe_status: str | None = None
    membership_status: str | None = None
    phantom_payments: int = 0
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "subscription_id": self.subscription_id,
            "outcome": self.outcome,
            "previous_status": self.previous_status,
            "new_status": self.new_status,
            "stripe_status": self.stripe_status,
            "membership_status": self.membership_status,
            "phantom_payments": self.phantom_payments,
            "message": self.message,
        }


@dataclass
class ReconcileBatchResult:
    """Summary of a reconcile_subscriptions run."""

    run_id: uuid.UUID | None
    started_at: datetime
    completed_at: datetime | None = None
    dry_run: bool = False
    results: list[ReconcileResult] = field(default_factory=list)

    def count(self, outcome: str) -> int:
        return sum(1 for result in self.results if result.outcome == outcome)

    @property
    def counts(self) -> dict[str, int]:
        return {outcome: self.count(outcome) for outcome in ReconcileOutcome.values}

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": str(self.run_id) if self.run_id else None,
            "dry_run": self.dry_run,
            "checked": len(self.results),
            "counts": self.counts,
            "results": [result.to_dict() for result in self.results],
        }


@dataclass
class RecoveryResult:
    checked: int = 0
    recovered: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"checked": self.checked, "recovered": self.recovered, "errors": list(self.errors)}


# =============================================================================
# Reconciler
# =============================================================================


class SubscriptionReconciler(BillingService):
    """
    Service for converging local subscription state on Stripe.

    Concurrency:
        A webhook for the same subscription may run at the same time. Both
        paths go through the same pure mapping and the row is locked for
        the short local write, so whichever commits last still leaves the
        mapped state.
    """

    # =========================================================================
    # Public API
    # =========================================================================

    @classmethod
    def reconcile_subscription(
        cls,
        subscription: Subscription,
        *,
        dry_run: bool = False,
        clock: Clock | None = None,
    ) -> ReconcileResult:
        """
        Reconcile one subscription against Stripe.

        Never raises for Stripe or local failures: they come back as an
        ERROR result so a batch keeps going.
        """
        clock = cls.clock(clock)
        logger = cls.get_logger()
        subscription_id = str(subscription.id)

        if not subscription.has_stripe_subscription:
            return ReconcileResult(
                subscription_id, ReconcileOutcome.SKIPPED, message="No Stripe subscription",
            )

        try:
            upstream = cls.get_stripe_adapter().retrieve_subscription(
                subscription.stripe_subscription_id,
                account_key=subscription.stripe_account_key,
            )
        except StripeError as e:
            logger.warning(
                "Could not retrieve subscription from Stripe",
                extra={"subscription_id": subscription_id, "error": str(e)},
            )
            return ReconcileResult(
                subscription_id, ReconcileOutcome.ERROR, message=e.message,
            )

        target = subscription_status_from_stripe(upstream.status, upstream.pause_collection)
        if subscription.is_cancelled and target == SubscriptionStatus.CANCELLED:
            return ReconcileResult(
                subscription_id,
                ReconcileOutcome.SKIPPED,
                previous_status=subscription.status,
                new_status=target,
                stripe_status=upstream.status,
                message="Already cancelled",
            )

        if dry_run:
            return cls._preview(subscription, target, upstream)

        try:
            return cls._heal(subscription, target, upstream, clock)
        except Exception as e:
            logger.error(
                "Failed to reconcile subscription",
                extra={"subscription_id": subscription_id, "error": str(e)},
                exc_info=True,
            )
            return ReconcileResult(
                subscription_id,
                ReconcileOutcome.ERROR,
                previous_status=subscription.status,
                stripe_status=upstream.status,
                message=str(e),
            )

    @classmethod
    def reconcile_subscriptions(
        cls,
        account_key: str | None = None,
        *,
        limit: int = DEFAULT_BATCH_LIMIT,
        dry_run: bool = False,
        clock: Clock | None = None,
    ) -> ReconcileBatchResult:
        """
        Reconcile every live subscription, optionally for one account.

        Stalest rows (oldest updated_at) go first so a limited batch still
        reaches everyone over successive runs.

        Raises:
            ReconciliationError: The run itself failed (not one subscription)
        """
        clock = cls.clock(clock)
        logger = cls.get_logger()
        started_at = clock.now()

        run = None
        if not dry_run:
            run = ReconciliationRun.objects.create(
                started_at=started_at,
                stripe_account_key=account_key or "",
                status=ReconciliationRunStatus.RUNNING,
            )
        batch = ReconcileBatchResult(
            run_id=run.id if run else None,
            started_at=started_at,
            dry_run=dry_run,
        )

        logger.info(
            "Starting subscription reconciliation",
            extra={"account_key": account_key, "limit": limit, "dry_run": dry_run},
        )

        try:
            subscriptions = Subscription.objects.filter(
                status__in=LIVE_STATES,
                stripe_subscription_id__isnull=False,
            ).order_by("updated_at")
            if account_key:
                subscriptions = subscriptions.filter(stripe_account_key=account_key)

            for subscription in subscriptions[:limit]:
                batch.results.append(
                    cls.reconcile_subscription(subscription, dry_run=dry_run, clock=clock)
                )
        except Exception as e:
            if run is not None:
                run.completed_at = clock.now()
                run.status = ReconciliationRunStatus.FAILED
                run.error_message = str(e)
                run.checked = len(batch.results)
                run.save()
            logger.error(
                "Reconciliation run failed",
                extra={"run_id": str(batch.run_id), "error": str(e)},
                exc_info=True,
            )
            raise ReconciliationError(
                f"Reconciliation run failed: {e}",
                details={"run_id": str(batch.run_id)},
            ) from e

        batch.completed_at = clock.now()
        if run is not None:
            run.completed_at = batch.completed_at
            run.checked = len(batch.results)
            run.fixed = batch.count(ReconcileOutcome.FIXED)
            run.correct = batch.count(ReconcileOutcome.CORRECT)
            run.errors = batch.count(ReconcileOutcome.ERROR)
            run.skipped = batch.count(ReconcileOutcome.SKIPPED)
            run.status = ReconciliationRunStatus.COMPLETED
            run.save()

        logger.info(
            "Subscription reconciliation completed",
            extra={
                "run_id": str(batch.run_id),
                "checked": len(batch.results),
                **batch.counts,
                "duration_seconds": (batch.completed_at - started_at).total_seconds(),
            },
        )
        return batch

    @classmethod
    def recover_paid_invoices(
        cls,
        *,
        limit: int = DEFAULT_BATCH_LIMIT,
        clock: Clock | None = None,
    ) -> RecoveryResult:
        """
        Re-confirm FAILED payments whose Stripe invoice has since been paid.

        The invoice is retrieved from the account of the payment's
        subscription; a recovered payment re-activates a PAST_DUE
        subscription.
        """
        logger = cls.get_logger()
        result = RecoveryResult()
        adapter = cls.get_stripe_adapter()

        payments = (
            Payment.objects.filter(
                status=PaymentStatus.FAILED,
                stripe_invoice_id__isnull=False,
            )
            .select_related("owner", "subscription", "invoice")
            .order_by("-failed_at")[:limit]
        )
        for payment in payments:
            result.checked += 1
            subscription = payment.subscription
            account_key = subscription.stripe_account_key if subscription else None
            try:
                invoice = adapter.retrieve_invoice(payment.stripe_invoice_id, account_key=account_key)
                if invoice.status != "paid":
                    continue

                with cls.atomic():
                    PaymentLedger.persist_successful_payment(
                        invoice_id=invoice.id,
                        user=payment.owner,
                        amount=from_minor_units(invoice.amount_paid or invoice.amount_due),
                        currency=invoice.currency,
                        description=RECOVERED_DESCRIPTION,
                        routed_entity_id=payment.routed_entity_id,
                        operation_id=make_operation_id("payment_recover", payment.id, invoice.id),
                        subscription=subscription,
                        invoice=payment.invoice,
                    )
                    if subscription is not None and subscription.status == SubscriptionStatus.PAST_DUE:
                        set_subscription_status(subscription, SubscriptionStatus.ACTIVE)
                result.recovered += 1
            except Exception as e:
                logger.error(
                    "Failed to recover payment",
                    extra={"payment_id": str(payment.id), "error": str(e)},
                    exc_info=not isinstance(e, StripeError),
                )
                result.errors.append(f"{payment.id}: {getattr(e, 'message', None) or e}")

        logger.info("Paid invoice recovery finished", extra=result.to_dict())
        return result

    # =========================================================================
    # Internal: Healing
    # =========================================================================

    @classmethod
    def _heal(
        cls,
        subscription: Subscription,
        target: str,
        upstream: SubscriptionResult,
        clock: Clock,
    ) -> ReconcileResult:
        with cls.atomic():
            locked = Subscription.objects.select_for_update().get(pk=subscription.pk)
            previous = locked.status
            previous_membership = cls._membership_status(locked)

            status_changed = previous != target
            if status_changed:
                set_subscription_status(locked, target, force=True)
                membership_changed = previous_membership != cls._membership_status(locked)
            else:
                membership_changed = sync_membership(locked)

            apply_upstream_fields(locked, upstream)

            phantom = 0
            if target == SubscriptionStatus.INCOMPLETE:
                phantom = cls._fail_phantom_payments(locked, clock)

            membership_status = cls._membership_status(locked)
            if status_changed or membership_changed:
                AuditLogService.record(
                    locked,
                    ReconcileStatus(
                        previous_status=previous,
                        new_status=target,
                        stripe_status=upstream.status,
                        previous_membership_status=previous_membership,
                        membership_status=membership_status,
                    ),
                    reason=f"Stripe {upstream.status} -> Local {target}",
                    operation_id=make_operation_id("reconcile", locked.id),
                )

        outcome = (
            ReconcileOutcome.FIXED
            if status_changed or membership_changed or phantom
            else ReconcileOutcome.CORRECT
        )
        if outcome == ReconcileOutcome.FIXED:
            cls.get_logger().info(
                "Reconciled subscription drift",
                extra={
                    "subscription_id": str(locked.id),
                    "previous_status": previous,
                    "new_status": target,
                    "stripe_status": upstream.status,
                    "phantom_payments": phantom,
                },
            )
        return ReconcileResult(
            str(locked.id),
            outcome,
            previous_status=previous,
            new_status=target,
            stripe_status=upstream.status,
            membership_status=membership_status,
            phantom_payments=phantom,
        )

    @classmethod
    def _preview(
        cls,
        subscription: Subscription,
        target: str,
        upstream: SubscriptionResult,
    ) -> ReconcileResult:
        current_membership = cls._membership_status(subscription)
        expected_membership = membership_status_for(target)
        drifted = subscription.status != target or (
            current_membership is not None and current_membership != expected_membership
        )
        return ReconcileResult(
            str(subscription.id),
            ReconcileOutcome.FIXED if drifted else ReconcileOutcome.CORRECT,
            previous_status=subscription.status,
            new_status=target,
            stripe_status=upstream.status,
            membership_status=expected_membership,
            message="would update" if drifted else "",
        )

    @classmethod
    def _fail_phantom_payments(cls, subscription: Subscription, clock: Clock) -> int:
        """Flip CONFIRMED payments recorded since the subscription began to FAILED."""
        now = clock.now()
        phantoms = Payment.objects.select_for_update().filter(
            Q(subscription=subscription) | Q(subscription__isnull=True, owner_id=subscription.owner_id),
            status=PaymentStatus.CONFIRMED,
            created_at__gte=subscription.created_at,
        )
        count = 0
        for payment in phantoms:
            payment.status = PaymentStatus.FAILED
            payment.failure_reason = PHANTOM_FAILURE_REASON
            payment.failed_at = now
            payment.save(update_fields=["status", "failure_reason", "failed_at", "updated_at"])
            AuditLogService.record(
                subscription,
                PaymentPhantomFailed(
                    payment_id=str(payment.id),
                    stripe_invoice_id=payment.stripe_invoice_id,
                    amount_cents=payment.amount_cents,
                    reason=PHANTOM_FAILURE_REASON,
                ),
                reason="Confirmed payment on a subscription that is incomplete upstream",
                operation_id=make_operation_id("payment_phantom", subscription.id, payment.id),
            )
            count += 1

        if count:
            cls.get_logger().warning(
                "Flipped phantom payments to FAILED",
                extra={"subscription_id": str(subscription.id), "count": count},
            )
        return count

    @staticmethod
    def _membership_status(subscription: Subscription) -> str | None:
        return (
            Membership.objects.filter(subscription=subscription)
            .values_list("status", flat=True)
            .first()
        )


__all__ = [
    "DEFAULT_BATCH_LIMIT",
    "ReconcileBatchResult",
    "ReconcileResult",
    "RecoveryResult",
    "SubscriptionReconciler",
]
