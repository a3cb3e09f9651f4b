"""
Daily start/end of date-range pause windows.

Start: a SCHEDULED window whose range contains today is paused in Stripe
with resumes_at set to the day after end_date.

End: a window whose end_date has passed is resumed in Stripe (a failure to
resume is only logged; Stripe resumes by itself at resumes_at), and the
settlement for its partial months is applied as a negative invoice item
on the customer's next invoice. Fully covered months contribute nothing:
their invoice was never raised.

The invoice item uses an idempotency key derived from the window id, so a
window that failed after Stripe created the item converges on the next
day's run without a duplicate credit.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from datetime import timezone as dt_timezone
from typing import TYPE_CHECKING

from billing.adapters import IdempotencyKeyGenerator
from billing.audit import (
    AuditLogService,
    PauseCompleted,
    PauseEnded,
    PauseStarted,
    make_operation_id,
)
from billing.exceptions import StripeError
from billing.models import PauseWindow
from billing.models.pause_window import OPEN_STATES
from billing.proration import calculate_settlement_breakdown, format_short_date
from billing.services.base import BillingService
from billing.state_machines import PauseWindowStatus, SubscriptionStatus
from billing.sync import release_pause, set_subscription_status

if TYPE_CHECKING:
    from typing import Any

    from billing.clock import Clock


@dataclass
class DailyRunResult:
    today: date
    started: int = 0
    ended: int = 0
    credits_applied: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "today": self.today.isoformat(),
            "started": self.started,
            "ended": self.ended,
            "credits_applied": self.credits_applied,
            "failed": self.failed,
            "skipped": self.skipped,
            "errors": list(self.errors),
        }


class PauseCreditService(BillingService):
    """Service for the daily date-range pause pass."""

    @classmethod
    def run_daily(cls, today: date | None = None, *, clock: Clock | None = None) -> DailyRunResult:
        clock = cls.clock(clock)
        today = today or clock.today()
        logger = cls.get_logger()
        result = DailyRunResult(today=today)

        to_start = (
            PauseWindow.objects.date_ranges()
            .filter(
                status__in=OPEN_STATES,
                applied_pause_at__isnull=True,
                start_date__lte=today,
                end_date__gte=today,
            )
            .select_related("subscription")
        )
        for window in to_start:
            try:
                if cls.start_window(window, clock=clock):
                    result.started += 1
                else:
                    result.skipped += 1
            except Exception as e:
                logger.error(
                    "Failed to start pause",
                    extra={"window_id": str(window.id), "error": str(e)},
                    exc_info=True,
                )
                result.failed += 1
                result.errors.append(f"Start {window.id}: {e}")

        to_end = (
            PauseWindow.objects.date_ranges()
            .filter(
                status__in=OPEN_STATES,
                end_date__lt=today,
                credit_applied_at__isnull=True,
            )
            .select_related("subscription")
        )
        for window in to_end:
            try:
                outcome = cls.end_window(window, clock=clock)
            except Exception as e:
                logger.error(
                    "Failed to end pause",
                    extra={"window_id": str(window.id), "error": str(e)},
                    exc_info=True,
                )
                result.failed += 1
                result.errors.append(f"End {window.id}: {e}")
                continue
            if outcome is None:
                result.skipped += 1
                continue
            result.ended += 1
            if outcome:
                result.credits_applied += 1

        logger.info("Daily pause pass finished", extra=result.to_dict())
        return result

    # =========================================================================
    # Start
    # =========================================================================

    @classmethod
    def start_window(cls, window: PauseWindow, *, clock: Clock | None = None) -> bool:
        """
        Pause Stripe for a date-range window. Returns False when skipped.
        """
        clock = cls.clock(clock)
        subscription = window.subscription
        if subscription.is_cancelled or not subscription.has_stripe_subscription:
            cls.get_logger().info(
                "Skipping pause start",
                extra={"window_id": str(window.id), "subscription_status": subscription.status},
            )
            return False

        resumes_at = datetime.combine(
            window.end_date + timedelta(days=1), time.min, tzinfo=dt_timezone.utc
        )
        cls.get_stripe_adapter().pause_collection(
            subscription.stripe_subscription_id,
            window.behavior,
            account_key=subscription.stripe_account_key,
            resumes_at=resumes_at,
        )

        now = clock.now()
        with cls.atomic():
            locked = PauseWindow.objects.select_for_update().get(pk=window.pk)
            if locked.status == PauseWindowStatus.SCHEDULED:
                locked.activate(at=now)
            else:
                locked.applied_pause_at = now
            locked.save()
            set_subscription_status(subscription, SubscriptionStatus.PAUSED, force=True)
            AuditLogService.record(
                subscription,
                PauseStarted(
                    window_id=str(window.id),
                    start_date=window.start_date,
                    end_date=window.end_date,
                    resumes_at=resumes_at,
                    behavior=window.behavior,
                ),
                reason=(
                    "Scheduled pause started: "
                    f"{format_short_date(window.start_date)} - {format_short_date(window.end_date)}"
                ),
                operation_id=make_operation_id("pause_start", subscription.id, window.id),
            )
        return True

    # =========================================================================
    # End
    # =========================================================================

    @classmethod
    def end_window(cls, window: PauseWindow, *, clock: Clock | None = None) -> bool | None:
        """
        Resume Stripe and apply the settlement credit.

        Returns:
            None when skipped (cancelled subscription), True when a credit
            invoice item was created, False when there was nothing to credit
        """
        clock = cls.clock(clock)
        logger = cls.get_logger()
        subscription = window.subscription
        if subscription.is_cancelled:
            logger.info("Skipping pause end for cancelled subscription", extra={"window_id": str(window.id)})
            return None

        adapter = cls.get_stripe_adapter()
        if subscription.has_stripe_subscription:
            try:
                adapter.resume_collection(
                    subscription.stripe_subscription_id,
                    account_key=subscription.stripe_account_key,
                )
            except StripeError as e:
                logger.warning(
                    "Resume at pause end failed",
                    extra={"window_id": str(window.id), "error": str(e)},
                )

        settlement = calculate_settlement_breakdown(
            window.start_date, window.end_date, subscription.monthly_price
        )
        credit_pence = settlement.total_settlement_pence
        invoice_item_id = None
        if credit_pence > 0 and subscription.stripe_customer_id:
            item = adapter.create_credit_invoice_item(
                subscription.stripe_customer_id,
                credit_pence,
                subscription.currency,
                f"Pause settlement: {settlement.description}",
                IdempotencyKeyGenerator.generate("pause_credit", window.id),
                account_key=subscription.stripe_account_key,
                subscription_id=subscription.stripe_subscription_id,
                metadata={
                    "pause_window_id": str(window.id),
                    "subscription_id": str(subscription.id),
                    "total_paused_days": str(settlement.total_days),
                    "start_date": format_short_date(window.start_date),
                    "end_date": format_short_date(window.end_date),
                    "reason": "pause_credit",
                },
            )
            invoice_item_id = item.id

        now = clock.now()
        with cls.atomic():
            locked = PauseWindow.objects.select_for_update().get(pk=window.pk)
            if locked.credit_applied_at is not None:
                return bool(locked.stripe_invoice_item_id)
            release_pause(subscription)
            locked.paused_days = settlement.total_days
            locked.stripe_invoice_item_id = invoice_item_id
            locked.applied_resume_at = locked.applied_resume_at or now
            locked.complete(at=now, credit_cents=credit_pence if invoice_item_id else 0)
            locked.save()

            if invoice_item_id:
                payload = PauseEnded(
                    window_id=str(window.id),
                    start_date=window.start_date,
                    end_date=window.end_date,
                    paused_days=settlement.total_days,
                    credit_cents=credit_pence,
                    invoice_item_id=invoice_item_id,
                    full_months_skipped=settlement.full_months_skipped,
                    description=settlement.description,
                )
            else:
                payload = PauseCompleted(
                    window_id=str(window.id),
                    start_date=window.start_date,
                    end_date=window.end_date,
                    paused_days=settlement.total_days,
                    full_months_skipped=settlement.full_months_skipped,
                    description=settlement.description,
                )
            AuditLogService.record(
                subscription,
                payload,
                reason=settlement.description,
                operation_id=make_operation_id("pause_end", subscription.id, window.id),
            )

        logger.info(
            "Pause window ended",
            extra={
                "window_id": str(window.id),
                "credit_pence": credit_pence,
                "invoice_item_id": invoice_item_id,
            },
        )
        return invoice_item_id is not None

