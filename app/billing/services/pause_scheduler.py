"""
Pause window scheduler.

This module provides the PauseScheduler which owns the lifecycle of pause
windows:

    schedule  -> rows persisted, no Stripe call
    apply     -> Stripe pause_collection, then local PAUSED/SUSPENDED
    resume    -> Stripe pause cleared, then local ACTIVE/ACTIVE
    verify    -> intended vs actual comparison, re-pause / re-resume
    backstop  -> void stray open invoices, un-pause what should be live
    cancel    -> SCHEDULED (free) or ACTIVE (partial settlement + resume)

Ordering:
    Stripe is always called first, outside any row lock. Local state is
    written in one short transaction only after Stripe confirmed. If that
    local write fails the inconsistency is logged and the verify/backstop
    passes converge it; an applied Stripe pause is never rolled back.

Open-ended pauses:
    A master row (kind=OPEN_ENDED) is itself the window for its first
    month. apply(month) materializes one concrete month row for exactly
    that month from every open master covering it, unless a row for the
    month already exists. A row cancelled by hand for a month is an
    explicit decision and blocks materialization too.

Usage:
    from billing.services import PauseScheduler
    from billing.proration import MonthKey

    windows = PauseScheduler.schedule(
        subscription,
        months=["2026-05", "2026-06"],
        behavior=PauseBehavior.VOID,
        performed_by="admin@gym.test",
    )

    summary = PauseScheduler.apply(MonthKey(2026, 5))
    summary.counts  # {"APPLIED": 12, "ERROR": 1}
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import IntegrityError

from billing.audit import (
    SYSTEM_ACTOR,
    AuditLogService,
    PauseAutoApplied,
    PauseBackstopFix,
    PauseResumedEarly,
    PauseScheduleCreated,
    PauseVerifyFix,
    PauseWindowCancelled,
    ResumeAutoApplied,
    make_operation_id,
)
from billing.exceptions import (
    BillingValidationError,
    InvalidStateTransitionError,
    PauseOverlapError,
    StripeError,
)
from billing.models import PauseWindow, Subscription
from billing.models.pause_window import OPEN_STATES
from billing.proration import (
    MonthKey,
    calculate_settlement_breakdown,
    days_between_inclusive,
    format_short_date,
)
from billing.services.base import (
    BatchResult,
    BillingService,
    Outcome,
    UnitResult,
    error_result,
)
from billing.state_machines import (
    PauseBehavior,
    PauseWindowKind,
    PauseWindowStatus,
    SubscriptionStatus,
)
from billing.sync import release_pause, set_subscription_status

if TYPE_CHECKING:
    from billing.clock import Clock


DEFAULT_MAX_PAUSE_DAYS = 90


@dataclass
class CancelResult:
    """
    Outcome of PauseScheduler.cancel.

    Attributes:
        window: The (now) cancelled window
        already_cancelled: The window was cancelled before this call
        was_active: The window was ACTIVE, so Stripe was resumed
        elapsed_days: Paused days settled for an ACTIVE date-range window
        credit_cents: Partial settlement recorded on the window
    """

    window: PauseWindow
    already_cancelled: bool = False
    was_active: bool = False
    elapsed_days: int = 0
    credit_cents: int = 0

    @property
    def message(self) -> str:
        if self.already_cancelled:
            return "Pause window already cancelled"
        if not self.was_active:
            return "Scheduled pause cancelled"
        if self.credit_cents:
            return f"Pause ended early. Partial credit: £{self.credit_cents / 100:.2f}"
        return "Pause ended early"


class PauseScheduler(BillingService):
    """
    Service for scheduling and driving pause windows.

    All passes are idempotent per window: the applied markers
    (applied_pause_at, applied_resume_at) are set only after Stripe
    confirmed the call, and every pass filters on them.
    """

    # =========================================================================
    # Scheduling
    # =========================================================================

    @classmethod
    def schedule(
        cls,
        subscription: Subscription,
        *,
        months: list[str] | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        behavior: str = PauseBehavior.VOID,
        open_ended: bool = False,
        reason: str = "",
        performed_by: str = SYSTEM_ACTOR,
        clock: Clock | None = None,
    ) -> list[PauseWindow]:
        """
        Persist a pause. No Stripe call is made.

        Exactly one shape is accepted:
            months=["2026-05", ...]           one row per month
            start_date=..., end_date=...      one date-range row
            months=["2026-05"], open_ended    one open-ended master

        Returns:
            The created PauseWindow rows

        Raises:
            BillingValidationError: Bad shape, month key, behavior or range,
                or the subscription is cancelled
            PauseOverlapError: Overlaps a non-cancelled window
        """
        clock = cls.clock(clock)
        today = clock.today()

        if behavior not in PauseBehavior.values:
            raise BillingValidationError(
                "Invalid pause behavior",
                error_code="INVALID_PAUSE_BEHAVIOR",
                details={"behavior": behavior},
            )
        if subscription.is_cancelled:
            raise BillingValidationError(
                "Cannot pause a cancelled subscription",
                error_code="SUBSCRIPTION_CANCELLED",
                details={"subscription_id": str(subscription.id)},
            )

        has_range = start_date is not None or end_date is not None
        if open_ended and has_range:
            raise BillingValidationError(
                "An open-ended pause takes a starting month, not a date range",
                error_code="INVALID_PAUSE_SHAPE",
            )
        if bool(months) == has_range:
            raise BillingValidationError(
                "Provide either months or a start_date/end_date range",
                error_code="INVALID_PAUSE_SHAPE",
            )

        if has_range:
            month_keys: list[MonthKey] = []
            cls._validate_date_range(start_date, end_date, today)
            candidate = (start_date, end_date)
        else:
            month_keys = sorted({MonthKey.parse(value) for value in months})
            if open_ended and len(month_keys) != 1:
                raise BillingValidationError(
                    "An open-ended pause takes exactly one starting month",
                    error_code="INVALID_PAUSE_SHAPE",
                )
            if month_keys[0] < MonthKey.from_date(today):
                raise BillingValidationError(
                    "Cannot schedule a pause for a past month",
                    error_code="PAUSE_IN_PAST",
                    details={"month": str(month_keys[0])},
                )
            candidate = None

        with cls.atomic():
            # Serializes concurrent schedule calls for one subscription.
            locked = Subscription.objects.select_for_update().get(pk=subscription.pk)
            cls._check_overlap(locked, month_keys, candidate, open_ended)
            try:
                windows = cls._create_windows(
                    locked,
                    month_keys=month_keys,
                    start_date=start_date,
                    end_date=end_date,
                    behavior=behavior,
                    open_ended=open_ended,
                    reason=reason,
                )
            except IntegrityError as e:
                raise PauseOverlapError(
                    "Overlaps with an existing pause window",
                    details={"subscription_id": str(subscription.id)},
                ) from e

            first = windows[0]
            AuditLogService.record(
                locked,
                PauseScheduleCreated(
                    window_ids=[str(window.id) for window in windows],
                    behavior=behavior,
                    months=[str(key) for key in month_keys],
                    start_date=start_date,
                    end_date=end_date,
                    open_ended=open_ended,
                    paused_days=first.paused_days,
                    credit_cents=first.credit_cents,
                ),
                performed_by=performed_by,
                reason=reason or "Scheduled pause",
                operation_id=make_operation_id("pause_schedule", subscription.id),
            )

        cls.get_logger().info(
            "Scheduled pause",
            extra={
                "subscription_id": str(subscription.id),
                "windows": len(windows),
                "open_ended": open_ended,
                "behavior": behavior,
            },
        )
        return windows

    @classmethod
    def _validate_date_range(cls, start_date: date | None, end_date: date | None, today: date) -> None:
        if start_date is None or end_date is None:
            raise BillingValidationError(
                "startDate and endDate are both required",
                error_code="INVALID_PAUSE_SHAPE",
            )
        if start_date < today:
            raise BillingValidationError(
                "Start date must be today or in the future",
                error_code="PAUSE_IN_PAST",
                details={"start_date": start_date.isoformat()},
            )
        if end_date < start_date:
            raise BillingValidationError(
                "End date must be after or equal to start date",
                error_code="INVALID_PAUSE_RANGE",
            )
        max_days = getattr(settings, "BILLING_MAX_PAUSE_DAYS", DEFAULT_MAX_PAUSE_DAYS)
        if days_between_inclusive(start_date, end_date) > max_days:
            raise BillingValidationError(
                f"Maximum pause duration is {max_days} days",
                error_code="PAUSE_TOO_LONG",
                details={"max_days": max_days},
            )

    @classmethod
    def _check_overlap(
        cls,
        subscription: Subscription,
        month_keys: list[MonthKey],
        candidate: tuple[date, date] | None,
        open_ended: bool,
    ) -> None:
        if candidate is not None:
            spans = [candidate]
        elif open_ended:
            spans = [(month_keys[0].first_day, None)]
        else:
            spans = [(key.first_day, key.last_day) for key in month_keys]

        existing = PauseWindow.objects.filter(subscription=subscription).not_cancelled()
        for window in existing:
            first, last = window.covered_dates()
            for start, end in spans:
                if (end is None or first <= end) and (last is None or start <= last):
                    raise PauseOverlapError(
                        f"Overlaps with existing pause: {cls._label(window)}",
                        details={"window_id": str(window.id), "status": window.status},
                    )

    @staticmethod
    def _label(window: PauseWindow) -> str:
        if window.is_date_range:
            return f"{format_short_date(window.start_date)} - {format_short_date(window.end_date)}"
        return window.describe()

    @classmethod
    def _create_windows(
        cls,
        subscription: Subscription,
        *,
        month_keys: list[MonthKey],
        start_date: date | None,
        end_date: date | None,
        behavior: str,
        open_ended: bool,
        reason: str,
    ) -> list[PauseWindow]:
        if start_date is not None:
            settlement = calculate_settlement_breakdown(
                start_date, end_date, subscription.monthly_price
            )
            window = PauseWindow.objects.create(
                subscription=subscription,
                kind=PauseWindowKind.FIXED,
                start_date=start_date,
                end_date=end_date,
                behavior=behavior,
                reason=reason,
                paused_days=settlement.total_days,
                credit_cents=settlement.total_settlement_pence,
            )
            return [window]

        kind = PauseWindowKind.OPEN_ENDED if open_ended else PauseWindowKind.FIXED
        return [
            PauseWindow.objects.create(
                subscription=subscription,
                kind=kind,
                year=key.year,
                month=key.month,
                behavior=behavior,
                reason=reason,
            )
            for key in month_keys
        ]

    # =========================================================================
    # Apply
    # =========================================================================

    @classmethod
    def apply(cls, as_of_month: MonthKey, *, clock: Clock | None = None) -> BatchResult:
        """
        Suspend collection for every unapplied month row of as_of_month.

        Open-ended masters covering the month are materialized first.
        """
        clock = cls.clock(clock)
        summary = BatchResult(operation="apply", month=str(as_of_month))
        cls.materialize_open_ended(as_of_month)

        windows = (
            PauseWindow.objects.month_rows()
            .for_month(as_of_month)
            .filter(status=PauseWindowStatus.SCHEDULED, applied_pause_at__isnull=True)
            .select_related("subscription")
            .order_by("created_at")
        )
        for window in windows:
            try:
                summary.add(cls._apply_window(window, as_of_month, clock))
            except Exception as e:
                cls.get_logger().error(
                    "Failed to apply pause window",
                    extra={"window_id": str(window.id), "month": str(as_of_month), "error": str(e)},
                    exc_info=not isinstance(e, StripeError),
                )
                summary.add(error_result(window.subscription, e, str(window.id)))

        cls.get_logger().info(
            "Pause apply pass finished",
            extra={"month": str(as_of_month), "counts": summary.counts},
        )
        return summary

    @classmethod
    def materialize_open_ended(cls, month: MonthKey) -> list[PauseWindow]:
        """Create the concrete row for month from every covering open master."""
        created: list[PauseWindow] = []
        masters = PauseWindow.objects.masters_covering(month).select_related("subscription")
        for master in masters:
            if master.month_key == month or master.subscription.is_cancelled:
                continue
            if PauseWindow.objects.filter(subscription_id=master.subscription_id).for_month(month).exists():
                continue
            try:
                with cls.atomic():
                    created.append(
                        PauseWindow.objects.create(
                            subscription_id=master.subscription_id,
                            kind=PauseWindowKind.FIXED,
                            year=month.year,
                            month=month.month,
                            behavior=master.behavior,
                            reason=master.reason or "Open-ended pause",
                        )
                    )
            except IntegrityError:
                cls.get_logger().info(
                    "Concrete pause row already materialized",
                    extra={"master_id": str(master.id), "month": str(month)},
                )
        return created

    @classmethod
    def _apply_window(cls, window: PauseWindow, month: MonthKey, clock: Clock) -> UnitResult:
        subscription = window.subscription
        skipped = cls._skip_reason(subscription)
        if skipped:
            return UnitResult(str(subscription.id), Outcome.SKIPPED, str(window.id), skipped)

        adapter = cls.get_stripe_adapter()
        adapter.pause_collection(
            subscription.stripe_subscription_id,
            window.behavior,
            account_key=subscription.stripe_account_key,
        )
        voided = cls._void_for(window, subscription)

        if not cls._record_local(
            cls._mark_paused, window, subscription, clock,
            payload=PauseAutoApplied(
                window_id=str(window.id),
                month=str(month),
                behavior=window.behavior,
                voided_invoice_ids=voided,
            ),
            reason="Scheduled pause window",
            operation_id=make_operation_id("pause_auto", subscription.id, window.id),
        ):
            return UnitResult(
                str(subscription.id), Outcome.ERROR, str(window.id),
                "Stripe paused but local write failed", "LOCAL_WRITE_FAILED",
            )
        return UnitResult(str(subscription.id), Outcome.APPLIED, str(window.id))

    # =========================================================================
    # Resume
    # =========================================================================

    @classmethod
    def resume(cls, as_of_month: MonthKey, *, clock: Clock | None = None) -> BatchResult:
        """
        Resume collection for windows of the month before as_of_month.

        A window whose subscription is still covered in as_of_month (a
        concrete row or an open master) hands over instead: it is marked
        done without touching Stripe.
        """
        clock = cls.clock(clock)
        previous = as_of_month.previous()
        summary = BatchResult(operation="resume", month=str(as_of_month))

        windows = (
            PauseWindow.objects.month_rows()
            .for_month(previous)
            .filter(
                status=PauseWindowStatus.ACTIVE,
                applied_pause_at__isnull=False,
                applied_resume_at__isnull=True,
            )
            .select_related("subscription")
        )
        for window in windows:
            try:
                summary.add(cls._resume_window(window, as_of_month, clock))
            except Exception as e:
                cls.get_logger().error(
                    "Failed to resume pause window",
                    extra={"window_id": str(window.id), "month": str(as_of_month), "error": str(e)},
                    exc_info=not isinstance(e, StripeError),
                )
                summary.add(error_result(window.subscription, e, str(window.id)))
        return summary

    @classmethod
    def _resume_window(cls, window: PauseWindow, month: MonthKey, clock: Clock) -> UnitResult:
        subscription = window.subscription
        if cls.is_covered(subscription, month) or cls.has_live_date_range(subscription):
            if window.is_open_ended:
                return UnitResult(str(subscription.id), Outcome.CONTINUED, str(window.id))
            with cls.atomic():
                locked = PauseWindow.objects.select_for_update().get(pk=window.pk)
                if locked.status == PauseWindowStatus.ACTIVE:
                    locked.complete(at=clock.now(), credit_cents=0)
                    locked.save()
            return UnitResult(str(subscription.id), Outcome.CONTINUED, str(window.id))

        skipped = cls._skip_reason(subscription)
        if skipped:
            return UnitResult(str(subscription.id), Outcome.SKIPPED, str(window.id), skipped)

        adapter = cls.get_stripe_adapter()
        adapter.resume_collection(
            subscription.stripe_subscription_id,
            account_key=subscription.stripe_account_key,
        )
        paid_invoice_id = cls._pay_open_invoice(subscription)

        if not cls._record_local(
            cls._mark_resumed, window, subscription, clock,
            payload=ResumeAutoApplied(
                window_id=str(window.id),
                month=str(window.month_key),
                paid_invoice_id=paid_invoice_id,
            ),
            reason="Scheduled pause window ended",
            operation_id=make_operation_id("resume_auto", subscription.id, window.id),
        ):
            return UnitResult(
                str(subscription.id), Outcome.ERROR, str(window.id),
                "Stripe resumed but local write failed", "LOCAL_WRITE_FAILED",
            )
        return UnitResult(str(subscription.id), Outcome.RESUMED, str(window.id))

    @classmethod
    def _pay_open_invoice(cls, subscription: Subscription) -> str | None:
        """Try to collect the newest open invoice. Failure is only logged."""
        if not subscription.stripe_customer_id:
            return None
        adapter = cls.get_stripe_adapter()
        try:
            invoices = adapter.list_open_invoices(
                subscription.stripe_customer_id,
                account_key=subscription.stripe_account_key,
                limit=1,
            )
            if not invoices:
                return None
            adapter.pay_invoice(invoices[0].id, account_key=subscription.stripe_account_key)
            return invoices[0].id
        except StripeError as e:
            cls.get_logger().warning(
                "Could not pay open invoice after resume",
                extra={"subscription_id": str(subscription.id), "error": str(e)},
            )
            return None

    # =========================================================================
    # Verify / Backstop
    # =========================================================================

    @classmethod
    def verify(cls, as_of_month: MonthKey, *, clock: Clock | None = None) -> BatchResult:
        """
        Compare intended pause state with Stripe and fix drift.

        - Windows of as_of_month: re-pause anything Stripe is not pausing.
        - Windows of the previous month with no coverage in as_of_month:
          resume anything Stripe is still pausing.
        """
        clock = cls.clock(clock)
        summary = BatchResult(operation="verify", month=str(as_of_month))
        cls.materialize_open_ended(as_of_month)

        intended = (
            PauseWindow.objects.month_rows()
            .for_month(as_of_month)
            .filter(status__in=OPEN_STATES)
            .select_related("subscription")
        )
        for window in intended:
            try:
                summary.add(cls._verify_paused(window, as_of_month, clock))
            except Exception as e:
                cls.get_logger().error(
                    "Verify failed for pause window",
                    extra={"window_id": str(window.id), "error": str(e)},
                    exc_info=not isinstance(e, StripeError),
                )
                summary.add(error_result(window.subscription, e, str(window.id)))

        summary.extend(cls._ensure_resumed(as_of_month, clock, operation="verify"))
        return summary

    @classmethod
    def backstop(cls, as_of_month: MonthKey, *, clock: Clock | None = None) -> BatchResult:
        """
        Void stray open invoices for void-behavior windows of as_of_month
        and un-pause subscriptions whose pause ended last month.
        """
        clock = cls.clock(clock)
        summary = BatchResult(operation="backstop", month=str(as_of_month))

        windows = (
            PauseWindow.objects.month_rows()
            .for_month(as_of_month)
            .filter(status__in=OPEN_STATES, behavior=PauseBehavior.VOID)
            .select_related("subscription")
        )
        for window in windows:
            subscription = window.subscription
            try:
                skipped = cls._skip_reason(subscription)
                if skipped:
                    summary.add(UnitResult(str(subscription.id), Outcome.SKIPPED, str(window.id), skipped))
                    continue
                voided = cls.void_open_invoices(subscription)
                if not voided:
                    summary.add(UnitResult(str(subscription.id), Outcome.CORRECT, str(window.id)))
                    continue
                AuditLogService.record(
                    subscription,
                    PauseBackstopFix(
                        month=str(as_of_month),
                        fix="voided_open_invoices",
                        voided_invoice_ids=voided,
                    ),
                    reason="Backstop voided open invoices for paused month",
                    operation_id=make_operation_id("pause_backstop", subscription.id),
                )
                summary.add(
                    UnitResult(
                        str(subscription.id), Outcome.FIXED, str(window.id),
                        f"Voided {len(voided)} open invoice(s)",
                    )
                )
            except Exception as e:
                cls.get_logger().error(
                    "Backstop failed for pause window",
                    extra={"window_id": str(window.id), "error": str(e)},
                    exc_info=not isinstance(e, StripeError),
                )
                summary.add(error_result(subscription, e, str(window.id)))

        summary.extend(cls._ensure_resumed(as_of_month, clock, operation="backstop"))
        return summary

    @classmethod
    def _verify_paused(cls, window: PauseWindow, month: MonthKey, clock: Clock) -> UnitResult:
        subscription = window.subscription
        skipped = cls._skip_reason(subscription)
        if skipped:
            return UnitResult(str(subscription.id), Outcome.SKIPPED, str(window.id), skipped)

        adapter = cls.get_stripe_adapter()
        upstream = adapter.retrieve_subscription(
            subscription.stripe_subscription_id,
            account_key=subscription.stripe_account_key,
        )
        if upstream.status in ("canceled", "cancelled"):
            return UnitResult(
                str(subscription.id), Outcome.SKIPPED, str(window.id), "Cancelled upstream",
            )

        if upstream.is_paused:
            locally_done = (
                window.applied_pause_at is not None
                and subscription.status == SubscriptionStatus.PAUSED
            )
            if locally_done:
                return UnitResult(str(subscription.id), Outcome.CORRECT, str(window.id))
            fix = "marked_applied"
        else:
            adapter.pause_collection(
                subscription.stripe_subscription_id,
                window.behavior,
                account_key=subscription.stripe_account_key,
            )
            cls._void_for(window, subscription)
            fix = "re_paused"

        if not cls._record_local(
            cls._mark_paused, window, subscription, clock,
            payload=PauseVerifyFix(month=str(month), fix=fix, stripe_status=upstream.status),
            reason="Verify pass re-applied pause",
            operation_id=make_operation_id("pause_verify", subscription.id),
        ):
            return UnitResult(
                str(subscription.id), Outcome.ERROR, str(window.id),
                "Stripe paused but local write failed", "LOCAL_WRITE_FAILED",
            )
        return UnitResult(str(subscription.id), Outcome.FIXED, str(window.id), fix)

    @classmethod
    def _ensure_resumed(cls, as_of_month: MonthKey, clock: Clock, operation: str) -> BatchResult:
        """Resume subscriptions paused last month that have no coverage now."""
        summary = BatchResult(operation=operation, month=str(as_of_month))
        previous = as_of_month.previous()
        payload_type = PauseVerifyFix if operation == "verify" else PauseBackstopFix

        windows = (
            PauseWindow.objects.month_rows()
            .for_month(previous)
            .not_cancelled()
            .filter(applied_pause_at__isnull=False)
            .select_related("subscription")
        )
        for window in windows:
            subscription = window.subscription
            try:
                if cls.is_covered(subscription, as_of_month) or cls.has_live_date_range(subscription):
                    continue
                skipped = cls._skip_reason(subscription)
                if skipped:
                    summary.add(UnitResult(str(subscription.id), Outcome.SKIPPED, str(window.id), skipped))
                    continue

                adapter = cls.get_stripe_adapter()
                upstream = adapter.retrieve_subscription(
                    subscription.stripe_subscription_id,
                    account_key=subscription.stripe_account_key,
                )
                if upstream.is_paused:
                    adapter.resume_collection(
                        subscription.stripe_subscription_id,
                        account_key=subscription.stripe_account_key,
                    )
                    fix = "resumed"
                elif window.applied_resume_at is None or subscription.status == SubscriptionStatus.PAUSED:
                    fix = "marked_resumed"
                else:
                    summary.add(UnitResult(str(subscription.id), Outcome.CORRECT, str(window.id)))
                    continue

                if payload_type is PauseVerifyFix:
                    payload = PauseVerifyFix(month=str(as_of_month), fix=fix, stripe_status=upstream.status)
                else:
                    payload = PauseBackstopFix(month=str(as_of_month), fix=fix)

                if not cls._record_local(
                    cls._mark_resumed, window, subscription, clock,
                    payload=payload,
                    reason=f"{operation.capitalize()} pass resumed subscription",
                    operation_id=make_operation_id(f"pause_{operation}", subscription.id),
                ):
                    summary.add(
                        UnitResult(
                            str(subscription.id), Outcome.ERROR, str(window.id),
                            "Stripe resumed but local write failed", "LOCAL_WRITE_FAILED",
                        )
                    )
                    continue
                summary.add(UnitResult(str(subscription.id), Outcome.FIXED, str(window.id), fix))
            except Exception as e:
                cls.get_logger().error(
                    "Resume check failed for pause window",
                    extra={"window_id": str(window.id), "operation": operation, "error": str(e)},
                    exc_info=not isinstance(e, StripeError),
                )
                summary.add(error_result(subscription, e, str(window.id)))
        return summary

    # =========================================================================
    # Cancel
    # =========================================================================

    @classmethod
    def cancel(
        cls,
        window: PauseWindow,
        *,
        clock: Clock | None = None,
        performed_by: str = SYSTEM_ACTOR,
        reason: str = "",
    ) -> CancelResult:
        """
        Cancel a pause window.

        SCHEDULED: zero-cost, no Stripe call.
        ACTIVE: settle the days already paused (window start to yesterday,
        date-range windows only), resume Stripe, then mark CANCELLED.
        CANCELLED: returns an "already cancelled" result.

        Cancelling an open-ended master also cancels the month rows it
        generated from the current month on, so later passes do not
        pause the subscription again.

        Raises:
            InvalidStateTransitionError: Window already CREDIT_APPLIED
            StripeError: Stripe resume failed (window left ACTIVE)
        """
        clock = cls.clock(clock)
        logger = cls.get_logger()

        if window.status == PauseWindowStatus.CANCELLED:
            return CancelResult(window=window, already_cancelled=True)
        if window.status not in OPEN_STATES:
            raise InvalidStateTransitionError(
                f"Cannot cancel pause window with status: {window.status}. "
                "Only SCHEDULED or ACTIVE windows can be cancelled.",
                details={"window_id": str(window.id), "current_state": window.status},
            )

        subscription = window.subscription
        if window.status == PauseWindowStatus.SCHEDULED:
            with cls.atomic():
                window.cancel(at=clock.now())
                window.save()
                cls._cancel_materialized(window, clock)
                AuditLogService.record(
                    subscription,
                    PauseWindowCancelled(window_id=str(window.id), window=window.describe()),
                    performed_by=performed_by,
                    reason=reason or "Scheduled pause cancelled",
                    operation_id=make_operation_id("pause_cancel", subscription.id, window.id),
                )
            logger.info("Cancelled scheduled pause window", extra={"window_id": str(window.id)})
            return CancelResult(window=window)

        elapsed_days, credit_cents = cls._elapsed_settlement(window, subscription, clock.today())

        if subscription.has_stripe_subscription and not subscription.is_cancelled:
            cls.get_stripe_adapter().resume_collection(
                subscription.stripe_subscription_id,
                account_key=subscription.stripe_account_key,
            )

        now = clock.now()
        with cls.atomic():
            window.cancel(at=now, credit_cents=credit_cents)
            if window.applied_pause_at is not None:
                window.applied_resume_at = now
            window.save()
            cls._cancel_materialized(window, clock)
            if not subscription.is_cancelled:
                release_pause(subscription)
            AuditLogService.record(
                subscription,
                PauseResumedEarly(
                    window_id=str(window.id),
                    window=window.describe(),
                    elapsed_days=elapsed_days,
                    credit_cents=credit_cents,
                ),
                performed_by=performed_by,
                reason=reason or "Pause ended early",
                operation_id=make_operation_id("pause_cancel", subscription.id, window.id),
            )

        logger.info(
            "Ended active pause window early",
            extra={
                "window_id": str(window.id),
                "elapsed_days": elapsed_days,
                "credit_cents": credit_cents,
            },
        )
        return CancelResult(
            window=window,
            was_active=True,
            elapsed_days=elapsed_days,
            credit_cents=credit_cents,
        )

    @classmethod
    def _cancel_materialized(cls, window: PauseWindow, clock: Clock) -> list[str]:
        """Cancel the month rows a master generated from the current month on."""
        if not window.is_open_ended:
            return []
        now = clock.now()
        rows = (
            PauseWindow.objects.filter(
                subscription_id=window.subscription_id,
                kind=PauseWindowKind.FIXED,
                status__in=OPEN_STATES,
            )
            .month_rows()
            .from_month(max(window.month_key, MonthKey.from_date(clock.today())))
        )
        cancelled = []
        for row in rows:
            row.cancel(at=now)
            if row.applied_pause_at is not None:
                row.applied_resume_at = now
            row.save()
            cancelled.append(str(row.id))
        if cancelled:
            cls.get_logger().info(
                "Cancelled months generated by open-ended pause",
                extra={"master_id": str(window.id), "window_ids": cancelled},
            )
        return cancelled

    @staticmethod
    def _elapsed_settlement(
        window: PauseWindow,
        subscription: Subscription,
        today: date,
    ) -> tuple[int, int]:
        """Settlement for days paused before today. Month rows settle nothing."""
        if not window.is_date_range or window.start_date >= today:
            return 0, 0
        last_paused = min(today - timedelta(days=1), window.end_date)
        settlement = calculate_settlement_breakdown(
            window.start_date, last_paused, subscription.monthly_price
        )
        return settlement.total_days, settlement.total_settlement_pence

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def is_covered(subscription: Subscription, month: MonthKey) -> bool:
        """True if a non-cancelled month row or open master covers month."""
        windows = PauseWindow.objects.filter(subscription=subscription)
        if windows.not_cancelled().month_rows().for_month(month).exists():
            return True
        return windows.masters_covering(month).exists()

    @staticmethod
    def has_live_date_range(subscription: Subscription) -> bool:
        """True if a date-range pause is currently applied in Stripe."""
        return (
            PauseWindow.objects.filter(subscription=subscription)
            .date_ranges()
            .filter(
                status=PauseWindowStatus.ACTIVE,
                applied_pause_at__isnull=False,
                credit_applied_at__isnull=True,
            )
            .exists()
        )

    @staticmethod
    def _skip_reason(subscription: Subscription) -> str:
        if subscription.is_cancelled:
            return "Subscription cancelled"
        if not subscription.has_stripe_subscription:
            return "No Stripe subscription"
        return ""

    @classmethod
    def _void_for(cls, window: PauseWindow, subscription: Subscription) -> list[str]:
        if window.behavior != PauseBehavior.VOID:
            return []
        try:
            return cls.void_open_invoices(subscription, limit=3)
        except StripeError as e:
            cls.get_logger().warning(
                "Could not list open invoices to void",
                extra={"subscription_id": str(subscription.id), "error": str(e)},
            )
            return []

    @classmethod
    def _record_local(cls, mark, window, subscription, clock, *, payload, reason, operation_id) -> bool:
        """
        Write local state after a confirmed Stripe call.

        Returns False (after logging) when the write fails; the Stripe side
        effect stays in place for verify/backstop to converge.
        """
        try:
            with cls.atomic():
                mark(window, subscription, clock)
                AuditLogService.record(
                    subscription,
                    payload,
                    reason=reason,
                    operation_id=operation_id,
                )
        except Exception as e:
            cls.get_logger().error(
                "Local state write failed after Stripe call",
                extra={
                    "subscription_id": str(subscription.id),
                    "window_id": str(window.id),
                    "action": payload.action,
                    "error": str(e),
                },
                exc_info=True,
            )
            return False
        return True

    @classmethod
    def _mark_paused(cls, window: PauseWindow, subscription: Subscription, clock: Clock) -> None:
        locked = PauseWindow.objects.select_for_update().get(pk=window.pk)
        # Stripe already confirmed the pause, so the local mirror follows it.
        set_subscription_status(subscription, SubscriptionStatus.PAUSED, force=True)
        if locked.status == PauseWindowStatus.SCHEDULED:
            locked.activate(at=clock.now())
        elif locked.applied_pause_at is None:
            locked.applied_pause_at = clock.now()
        locked.save()
        window.refresh_from_db()

    @classmethod
    def _mark_resumed(cls, window: PauseWindow, subscription: Subscription, clock: Clock) -> None:
        locked = PauseWindow.objects.select_for_update().get(pk=window.pk)
        release_pause(subscription)
        now = clock.now()
        if locked.applied_resume_at is None:
            locked.applied_resume_at = now
        if locked.status in OPEN_STATES:
            locked.complete(at=now, credit_cents=0)
        locked.save()
        window.refresh_from_db()

