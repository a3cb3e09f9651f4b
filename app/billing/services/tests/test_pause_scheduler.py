"""
Tests for PauseScheduler.

Tests cover:
- Scheduling month rows, date ranges and open-ended masters
- Validation and overlap rejection
- Apply pass (Stripe first, then local state) and its idempotency
- Open-ended materialization
- Resume pass, hand-over to the next month's window
- Verify and backstop drift correction
- Cancelling SCHEDULED and ACTIVE windows
"""

from datetime import date, datetime
from datetime import timezone as dt_timezone
from decimal import Decimal
from unittest.mock import patch

import pytest
from django.db import DatabaseError

from billing.adapters import InvoiceResult, SubscriptionResult
from billing.exceptions import (
    BillingValidationError,
    InvalidStateTransitionError,
    PauseOverlapError,
    StripeAPIUnavailableError,
    StripeInvalidRequestError,
    StripeRateLimitError,
)
from billing.models import AuditLogEntry, Membership, PauseWindow
from billing.proration import MonthKey, calculate_settlement_breakdown
from billing.services import Outcome, PauseScheduler
from billing.state_machines import (
    AuditAction,
    MembershipStatus,
    PauseBehavior,
    PauseWindowKind,
    PauseWindowStatus,
    SubscriptionStatus,
)
from billing.tests.factories import PauseWindowFactory, SubscriptionFactory

APPLIED_AT = datetime(2026, 4, 30, 23, 0, tzinfo=dt_timezone.utc)
MAY = MonthKey(2026, 5)
JUNE = MonthKey(2026, 6)


def paused_upstream(**overrides):
    data = {"id": "sub_upstream", "status": "active", "pause_collection": {"behavior": "void"}}
    data.update(overrides)
    return SubscriptionResult(**data)


def active_window(subscription, **overrides):
    """An ACTIVE window already applied in Stripe."""
    data = {
        "subscription": subscription,
        "status": PauseWindowStatus.ACTIVE,
        "applied_pause_at": APPLIED_AT,
    }
    data.update(overrides)
    return PauseWindowFactory(**data)


# =============================================================================
# Schedule Tests
# =============================================================================


@pytest.mark.django_db
class TestSchedule:
    """Tests for PauseScheduler.schedule."""

    def test_month_rows(self, subscription, stripe_adapter, clock_at):
        """Should create one SCHEDULED row per month without calling Stripe."""
        windows = PauseScheduler.schedule(
            subscription,
            months=["2026-06", "2026-05"],
            performed_by="frontdesk@gym.test",
            clock=clock_at(2026, 4, 20),
        )

        assert [window.month_key for window in windows] == [MAY, JUNE]
        assert all(window.status == PauseWindowStatus.SCHEDULED for window in windows)
        assert all(window.kind == PauseWindowKind.FIXED for window in windows)
        assert stripe_adapter.method_calls == []

        entry = AuditLogEntry.objects.get(
            subscription=subscription, action=AuditAction.PAUSE_SCHEDULE_CREATE
        )
        assert entry.performed_by == "frontdesk@gym.test"
        assert entry.payload["months"] == ["2026-05", "2026-06"]
        assert len(entry.payload["window_ids"]) == 2

    def test_duplicate_months_collapse(self, subscription, stripe_adapter, clock_at):
        windows = PauseScheduler.schedule(
            subscription, months=["2026-05", "2026-05"], clock=clock_at(2026, 4, 20)
        )

        assert len(windows) == 1

    def test_date_range_records_settlement(self, subscription, stripe_adapter, clock_at):
        """Should store paused days and the settlement credit on the row."""
        start, end = date(2026, 4, 25), date(2026, 5, 5)

        windows = PauseScheduler.schedule(
            subscription, start_date=start, end_date=end, clock=clock_at(2026, 4, 20)
        )

        window = windows[0]
        expected = calculate_settlement_breakdown(start, end, Decimal("50.00"))
        assert len(windows) == 1
        assert window.is_date_range
        assert window.year is None
        assert window.status == PauseWindowStatus.SCHEDULED
        assert window.paused_days == 11
        assert window.credit_cents == expected.total_settlement_pence
        assert stripe_adapter.method_calls == []

    def test_date_range_starting_today_is_scheduled(self, subscription, stripe_adapter, clock_at):
        """Should stay SCHEDULED until Stripe confirms the pause."""
        windows = PauseScheduler.schedule(
            subscription,
            start_date=date(2026, 4, 20),
            end_date=date(2026, 4, 27),
            clock=clock_at(2026, 4, 20),
        )

        assert windows[0].status == PauseWindowStatus.SCHEDULED
        assert windows[0].applied_pause_at is None

    def test_open_ended_master(self, subscription, stripe_adapter, clock_at):
        windows = PauseScheduler.schedule(
            subscription,
            months=["2026-05"],
            open_ended=True,
            behavior=PauseBehavior.KEEP_AS_DRAFT,
            clock=clock_at(2026, 4, 20),
        )

        master = windows[0]
        assert master.kind == PauseWindowKind.OPEN_ENDED
        assert master.is_open_ended
        assert master.behavior == PauseBehavior.KEEP_AS_DRAFT
        assert master.describe() == "from 2026-05 (open-ended)"

    def test_current_month_allowed(self, subscription, stripe_adapter, clock_at):
        windows = PauseScheduler.schedule(
            subscription, months=["2026-04"], clock=clock_at(2026, 4, 20)
        )

        assert windows[0].month_key == MonthKey(2026, 4)


@pytest.mark.django_db
class TestScheduleValidation:
    """Tests for schedule input validation."""

    @pytest.mark.parametrize(
        "kwargs,error_code",
        [
            ({"months": ["2026-05"], "behavior": "skip"}, "INVALID_PAUSE_BEHAVIOR"),
            ({}, "INVALID_PAUSE_SHAPE"),
            (
                {"months": ["2026-05"], "start_date": date(2026, 5, 1), "end_date": date(2026, 5, 9)},
                "INVALID_PAUSE_SHAPE",
            ),
            (
                {"open_ended": True, "start_date": date(2026, 5, 1), "end_date": date(2026, 5, 9)},
                "INVALID_PAUSE_SHAPE",
            ),
            ({"months": ["2026-05", "2026-06"], "open_ended": True}, "INVALID_PAUSE_SHAPE"),
            ({"start_date": date(2026, 5, 1)}, "INVALID_PAUSE_SHAPE"),
            ({"months": ["2026-03"]}, "PAUSE_IN_PAST"),
            ({"start_date": date(2026, 4, 19), "end_date": date(2026, 4, 25)}, "PAUSE_IN_PAST"),
            ({"start_date": date(2026, 5, 9), "end_date": date(2026, 5, 1)}, "INVALID_PAUSE_RANGE"),
            ({"start_date": date(2026, 5, 1), "end_date": date(2026, 7, 30)}, "PAUSE_TOO_LONG"),
        ],
    )
    def test_rejected(self, subscription, stripe_adapter, clock_at, kwargs, error_code):
        with pytest.raises(BillingValidationError) as exc_info:
            PauseScheduler.schedule(subscription, clock=clock_at(2026, 4, 20), **kwargs)

        assert exc_info.value.error_code == error_code
        assert not PauseWindow.objects.exists()
        assert not AuditLogEntry.objects.exists()

    def test_ninety_days_allowed(self, subscription, stripe_adapter, clock_at):
        windows = PauseScheduler.schedule(
            subscription,
            start_date=date(2026, 5, 1),
            end_date=date(2026, 7, 29),
            clock=clock_at(2026, 4, 20),
        )

        assert windows[0].paused_days == 90

    def test_bad_month_key(self, subscription, stripe_adapter, clock_at):
        with pytest.raises(BillingValidationError):
            PauseScheduler.schedule(subscription, months=["2026-13"], clock=clock_at(2026, 4, 20))

    def test_cancelled_subscription(self, stripe_adapter, clock_at):
        subscription = SubscriptionFactory(status=SubscriptionStatus.CANCELLED)

        with pytest.raises(BillingValidationError) as exc_info:
            PauseScheduler.schedule(subscription, months=["2026-05"], clock=clock_at(2026, 4, 20))

        assert exc_info.value.error_code == "SUBSCRIPTION_CANCELLED"


@pytest.mark.django_db
class TestScheduleOverlap:
    """Tests for overlap rejection."""

    def test_month_overlapping_date_range(self, subscription, stripe_adapter, clock_at):
        PauseWindowFactory(
            subscription=subscription,
            year=None,
            month=None,
            start_date=date(2026, 4, 15),
            end_date=date(2026, 5, 2),
        )

        with pytest.raises(PauseOverlapError) as exc_info:
            PauseScheduler.schedule(subscription, months=["2026-05"], clock=clock_at(2026, 4, 10))

        assert exc_info.value.message == "Overlaps with existing pause: Apr 15 - May 2"
        assert exc_info.value.error_code == "PAUSE_OVERLAP"

    def test_date_range_overlapping_month(self, subscription, stripe_adapter, clock_at):
        PauseWindowFactory(subscription=subscription)

        with pytest.raises(PauseOverlapError) as exc_info:
            PauseScheduler.schedule(
                subscription,
                start_date=date(2026, 4, 25),
                end_date=date(2026, 5, 1),
                clock=clock_at(2026, 4, 20),
            )

        assert exc_info.value.message == "Overlaps with existing pause: 2026-05"

    def test_open_master_blocks_later_months(self, subscription, stripe_adapter, clock_at):
        PauseWindowFactory(subscription=subscription, kind=PauseWindowKind.OPEN_ENDED)

        with pytest.raises(PauseOverlapError):
            PauseScheduler.schedule(subscription, months=["2026-09"], clock=clock_at(2026, 4, 20))

    def test_completed_window_blocks(self, subscription, stripe_adapter, clock_at):
        PauseWindowFactory(subscription=subscription, status=PauseWindowStatus.CREDIT_APPLIED)

        with pytest.raises(PauseOverlapError):
            PauseScheduler.schedule(subscription, months=["2026-05"], clock=clock_at(2026, 4, 20))

    def test_cancelled_window_does_not_block(self, subscription, stripe_adapter, clock_at):
        PauseWindowFactory(subscription=subscription, status=PauseWindowStatus.CANCELLED)

        windows = PauseScheduler.schedule(
            subscription, months=["2026-05"], clock=clock_at(2026, 4, 20)
        )

        assert PauseWindow.objects.filter(subscription=subscription).count() == 2
        assert windows[0].status == PauseWindowStatus.SCHEDULED

    def test_adjacent_ranges_allowed(self, subscription, stripe_adapter, clock_at):
        PauseWindowFactory(
            subscription=subscription,
            year=None,
            month=None,
            start_date=date(2026, 5, 1),
            end_date=date(2026, 5, 10),
        )

        windows = PauseScheduler.schedule(
            subscription,
            start_date=date(2026, 5, 11),
            end_date=date(2026, 5, 20),
            clock=clock_at(2026, 4, 20),
        )

        assert len(windows) == 1


# =============================================================================
# Apply Tests
# =============================================================================


@pytest.mark.django_db
class TestApply:
    """Tests for PauseScheduler.apply."""

    def test_applies_scheduled_window(self, subscription, stripe_adapter, clock_at):
        """Should pause Stripe, then mark the window and subscription paused."""
        window = PauseWindowFactory(subscription=subscription)

        summary = PauseScheduler.apply(MAY, clock=clock_at(2026, 4, 30))

        assert summary.counts == {Outcome.APPLIED: 1}
        stripe_adapter.pause_collection.assert_called_once_with(
            subscription.stripe_subscription_id, "void", account_key="SU"
        )
        stripe_adapter.list_open_invoices.assert_called_once_with(
            subscription.stripe_customer_id, account_key="SU", limit=3
        )

        window.refresh_from_db()
        subscription.refresh_from_db()
        assert window.status == PauseWindowStatus.ACTIVE
        assert window.applied_pause_at is not None
        assert subscription.status == SubscriptionStatus.PAUSED
        assert Membership.objects.get(subscription=subscription).status == MembershipStatus.SUSPENDED

        entry = AuditLogEntry.objects.get(action=AuditAction.PAUSE_AUTO_APPLY)
        assert entry.operation_id == f"pause_auto_{subscription.id}_{window.id}"
        assert entry.payload["month"] == "2026-05"

    def test_voids_open_invoices(self, subscription, stripe_adapter, clock_at):
        PauseWindowFactory(subscription=subscription)
        stripe_adapter.list_open_invoices.return_value = [InvoiceResult(id="in_stray", status="open")]

        PauseScheduler.apply(MAY, clock=clock_at(2026, 4, 30))

        stripe_adapter.void_invoice.assert_called_once_with("in_stray", account_key="SU")
        entry = AuditLogEntry.objects.get(action=AuditAction.PAUSE_AUTO_APPLY)
        assert entry.payload["voided_invoice_ids"] == ["in_stray"]

    def test_keep_as_draft_does_not_void(self, subscription, stripe_adapter, clock_at):
        PauseWindowFactory(subscription=subscription, behavior=PauseBehavior.KEEP_AS_DRAFT)

        PauseScheduler.apply(MAY, clock=clock_at(2026, 4, 30))

        stripe_adapter.pause_collection.assert_called_once_with(
            subscription.stripe_subscription_id, "keep_as_draft", account_key="SU"
        )
        stripe_adapter.list_open_invoices.assert_not_called()

    def test_listing_failure_does_not_block_apply(self, subscription, stripe_adapter, clock_at):
        PauseWindowFactory(subscription=subscription)
        stripe_adapter.list_open_invoices.side_effect = StripeRateLimitError("Too many requests")

        summary = PauseScheduler.apply(MAY, clock=clock_at(2026, 4, 30))

        assert summary.counts == {Outcome.APPLIED: 1}

    def test_second_run_is_noop(self, subscription, stripe_adapter, clock_at):
        """Should not call Stripe again for an applied window."""
        PauseWindowFactory(subscription=subscription)
        PauseScheduler.apply(MAY, clock=clock_at(2026, 4, 30))
        stripe_adapter.reset_mock()

        summary = PauseScheduler.apply(MAY, clock=clock_at(2026, 4, 30))

        assert summary.results == []
        stripe_adapter.pause_collection.assert_not_called()
        assert AuditLogEntry.objects.filter(action=AuditAction.PAUSE_AUTO_APPLY).count() == 1

    def test_only_requested_month(self, subscription, stripe_adapter, clock_at):
        PauseWindowFactory(subscription=subscription, month=6)

        summary = PauseScheduler.apply(MAY, clock=clock_at(2026, 4, 30))

        assert summary.results == []

    def test_date_ranges_ignored(self, subscription, stripe_adapter, clock_at):
        PauseWindowFactory(
            subscription=subscription,
            year=None,
            month=None,
            start_date=date(2026, 5, 1),
            end_date=date(2026, 5, 9),
        )

        summary = PauseScheduler.apply(MAY, clock=clock_at(2026, 4, 30))

        assert summary.results == []

    def test_cancelled_subscription_skipped(self, stripe_adapter, clock_at):
        subscription = SubscriptionFactory(status=SubscriptionStatus.CANCELLED)
        PauseWindowFactory(subscription=subscription)

        summary = PauseScheduler.apply(MAY, clock=clock_at(2026, 4, 30))

        assert summary.results[0].outcome == Outcome.SKIPPED
        assert summary.results[0].message == "Subscription cancelled"
        stripe_adapter.pause_collection.assert_not_called()

    def test_missing_stripe_subscription_skipped(self, stripe_adapter, clock_at):
        subscription = SubscriptionFactory(stripe_subscription_id=None)
        PauseWindowFactory(subscription=subscription)

        summary = PauseScheduler.apply(MAY, clock=clock_at(2026, 4, 30))

        assert summary.results[0].message == "No Stripe subscription"

    def test_one_failure_does_not_stop_the_batch(self, subscription, stripe_adapter, clock_at):
        """Should report the failing window and still apply the others."""
        failing = SubscriptionFactory()
        failing_window = PauseWindowFactory(subscription=failing)
        window = PauseWindowFactory(subscription=subscription)

        def pause(subscription_id, behavior, account_key=None, resumes_at=None):
            if subscription_id == failing.stripe_subscription_id:
                raise StripeAPIUnavailableError("Could not connect to Stripe")
            return SubscriptionResult(id=subscription_id, status="active")

        stripe_adapter.pause_collection.side_effect = pause

        summary = PauseScheduler.apply(MAY, clock=clock_at(2026, 4, 30))

        assert summary.counts == {Outcome.APPLIED: 1, Outcome.ERROR: 1}
        error = summary.errors[0]
        assert error.window_id == str(failing_window.id)
        assert error.error_code == "STRIPE_UNAVAILABLE"

        failing_window.refresh_from_db()
        window.refresh_from_db()
        assert failing_window.status == PauseWindowStatus.SCHEDULED
        assert failing_window.applied_pause_at is None
        assert window.status == PauseWindowStatus.ACTIVE

    def test_local_write_failure_reported(self, subscription, stripe_adapter, clock_at):
        """Should keep the Stripe pause and report LOCAL_WRITE_FAILED."""
        window = PauseWindowFactory(subscription=subscription)

        with patch.object(PauseScheduler, "_mark_paused", side_effect=DatabaseError("disk full")):
            summary = PauseScheduler.apply(MAY, clock=clock_at(2026, 4, 30))

        result = summary.results[0]
        assert result.outcome == Outcome.ERROR
        assert result.error_code == "LOCAL_WRITE_FAILED"
        stripe_adapter.pause_collection.assert_called_once()

        window.refresh_from_db()
        assert window.status == PauseWindowStatus.SCHEDULED
        assert window.applied_pause_at is None

    def test_verify_converges_after_local_failure(self, subscription, stripe_adapter, clock_at):
        window = PauseWindowFactory(subscription=subscription)
        with patch.object(PauseScheduler, "_mark_paused", side_effect=DatabaseError("disk full")):
            PauseScheduler.apply(MAY, clock=clock_at(2026, 4, 30))
        stripe_adapter.retrieve_subscription.return_value = paused_upstream()

        summary = PauseScheduler.verify(MAY, clock=clock_at(2026, 5, 2))

        assert summary.results[0].outcome == Outcome.FIXED
        assert summary.results[0].message == "marked_applied"
        window.refresh_from_db()
        assert window.status == PauseWindowStatus.ACTIVE


# =============================================================================
# Open-Ended Materialization Tests
# =============================================================================


@pytest.mark.django_db
class TestOpenEnded:
    """Tests for open-ended masters across months."""

    def test_master_applies_in_first_month(self, subscription, stripe_adapter, clock_at):
        master = PauseWindowFactory(subscription=subscription, kind=PauseWindowKind.OPEN_ENDED)

        summary = PauseScheduler.apply(MAY, clock=clock_at(2026, 4, 30))

        assert summary.counts == {Outcome.APPLIED: 1}
        master.refresh_from_db()
        assert master.status == PauseWindowStatus.ACTIVE
        assert PauseWindow.objects.count() == 1

    def test_materializes_next_month(self, paused_subscription, stripe_adapter, clock_at):
        """Should create and apply a concrete row for each later month."""
        active_window(paused_subscription, kind=PauseWindowKind.OPEN_ENDED)

        summary = PauseScheduler.apply(JUNE, clock=clock_at(2026, 5, 31))

        june = PauseWindow.objects.get(subscription=paused_subscription, year=2026, month=6)
        assert june.kind == PauseWindowKind.FIXED
        assert june.status == PauseWindowStatus.ACTIVE
        assert june.reason == "Travelling"
        assert summary.counts == {Outcome.APPLIED: 1}

    def test_materialize_is_idempotent(self, paused_subscription, stripe_adapter):
        active_window(paused_subscription, kind=PauseWindowKind.OPEN_ENDED)

        first = PauseScheduler.materialize_open_ended(JUNE)
        second = PauseScheduler.materialize_open_ended(JUNE)

        assert len(first) == 1
        assert second == []

    def test_cancelled_month_blocks_materialization(self, paused_subscription, stripe_adapter):
        """Should respect a month cancelled by hand."""
        active_window(paused_subscription, kind=PauseWindowKind.OPEN_ENDED)
        PauseWindowFactory(
            subscription=paused_subscription, month=6, status=PauseWindowStatus.CANCELLED
        )

        assert PauseScheduler.materialize_open_ended(JUNE) == []

    def test_cancelled_subscription_not_materialized(self, stripe_adapter):
        subscription = SubscriptionFactory(status=SubscriptionStatus.CANCELLED)
        active_window(subscription, kind=PauseWindowKind.OPEN_ENDED)

        assert PauseScheduler.materialize_open_ended(JUNE) == []

    def test_closed_master_not_materialized(self, paused_subscription, stripe_adapter):
        active_window(
            paused_subscription,
            kind=PauseWindowKind.OPEN_ENDED,
            closed_at=datetime(2026, 5, 20, tzinfo=dt_timezone.utc),
        )

        assert PauseScheduler.materialize_open_ended(JUNE) == []

    def test_master_hands_over_on_resume(self, paused_subscription, stripe_adapter, clock_at):
        master = active_window(paused_subscription, kind=PauseWindowKind.OPEN_ENDED)
        PauseScheduler.apply(JUNE, clock=clock_at(2026, 5, 31))

        summary = PauseScheduler.resume(JUNE, clock=clock_at(2026, 5, 31))

        assert summary.results[0].window_id == str(master.id)
        assert summary.results[0].outcome == Outcome.CONTINUED
        stripe_adapter.resume_collection.assert_not_called()
        master.refresh_from_db()
        assert master.status == PauseWindowStatus.ACTIVE


# =============================================================================
# Resume Tests
# =============================================================================


@pytest.mark.django_db
class TestResume:
    """Tests for PauseScheduler.resume."""

    def test_resumes_previous_month(self, paused_subscription, stripe_adapter, clock_at):
        """Should resume Stripe, then complete the window and reactivate."""
        window = active_window(paused_subscription)

        summary = PauseScheduler.resume(JUNE, clock=clock_at(2026, 5, 31))

        assert summary.counts == {Outcome.RESUMED: 1}
        stripe_adapter.resume_collection.assert_called_once_with(
            paused_subscription.stripe_subscription_id, account_key="SU"
        )

        window.refresh_from_db()
        paused_subscription.refresh_from_db()
        assert window.status == PauseWindowStatus.CREDIT_APPLIED
        assert window.applied_resume_at is not None
        assert paused_subscription.status == SubscriptionStatus.ACTIVE
        membership = Membership.objects.get(subscription=paused_subscription)
        assert membership.status == MembershipStatus.ACTIVE
        assert AuditLogEntry.objects.filter(action=AuditAction.RESUME_AUTO_APPLY).count() == 1

    def test_pays_newest_open_invoice(self, paused_subscription, stripe_adapter, clock_at):
        active_window(paused_subscription)
        stripe_adapter.list_open_invoices.return_value = [InvoiceResult(id="in_open", status="open")]

        PauseScheduler.resume(JUNE, clock=clock_at(2026, 5, 31))

        stripe_adapter.list_open_invoices.assert_called_once_with(
            paused_subscription.stripe_customer_id, account_key="SU", limit=1
        )
        stripe_adapter.pay_invoice.assert_called_once_with("in_open", account_key="SU")
        entry = AuditLogEntry.objects.get(action=AuditAction.RESUME_AUTO_APPLY)
        assert entry.payload["paid_invoice_id"] == "in_open"

    def test_payment_failure_still_resumes(self, paused_subscription, stripe_adapter, clock_at):
        active_window(paused_subscription)
        stripe_adapter.list_open_invoices.return_value = [InvoiceResult(id="in_open", status="open")]
        stripe_adapter.pay_invoice.side_effect = StripeInvalidRequestError("Card declined")

        summary = PauseScheduler.resume(JUNE, clock=clock_at(2026, 5, 31))

        assert summary.counts == {Outcome.RESUMED: 1}

    def test_continues_into_next_window(self, paused_subscription, stripe_adapter, clock_at):
        """Should hand over to next month's window without touching Stripe."""
        window = active_window(paused_subscription)
        PauseWindowFactory(subscription=paused_subscription, month=6)

        summary = PauseScheduler.resume(JUNE, clock=clock_at(2026, 5, 31))

        assert summary.counts == {Outcome.CONTINUED: 1}
        stripe_adapter.resume_collection.assert_not_called()
        window.refresh_from_db()
        paused_subscription.refresh_from_db()
        assert window.status == PauseWindowStatus.CREDIT_APPLIED
        assert paused_subscription.status == SubscriptionStatus.PAUSED

    def test_live_date_range_keeps_pause(self, paused_subscription, stripe_adapter, clock_at):
        active_window(paused_subscription)
        active_window(
            paused_subscription,
            year=None,
            month=None,
            start_date=date(2026, 5, 28),
            end_date=date(2026, 6, 10),
        )

        summary = PauseScheduler.resume(JUNE, clock=clock_at(2026, 5, 31))

        assert summary.counts == {Outcome.CONTINUED: 1}
        stripe_adapter.resume_collection.assert_not_called()

    def test_unapplied_window_ignored(self, paused_subscription, stripe_adapter, clock_at):
        PauseWindowFactory(subscription=paused_subscription)

        summary = PauseScheduler.resume(JUNE, clock=clock_at(2026, 5, 31))

        assert summary.results == []

    def test_stripe_failure_leaves_window_active(self, paused_subscription, stripe_adapter, clock_at):
        window = active_window(paused_subscription)
        stripe_adapter.resume_collection.side_effect = StripeRateLimitError("Too many requests")

        summary = PauseScheduler.resume(JUNE, clock=clock_at(2026, 5, 31))

        assert summary.errors[0].error_code == "STRIPE_RATE_LIMITED"
        window.refresh_from_db()
        assert window.status == PauseWindowStatus.ACTIVE
        assert window.applied_resume_at is None


# =============================================================================
# Verify Tests
# =============================================================================


@pytest.mark.django_db
class TestVerify:
    """Tests for PauseScheduler.verify."""

    def test_correct_when_both_sides_paused(self, paused_subscription, stripe_adapter, clock_at):
        active_window(paused_subscription)
        stripe_adapter.retrieve_subscription.return_value = paused_upstream()

        summary = PauseScheduler.verify(MAY, clock=clock_at(2026, 5, 2))

        assert summary.counts == {Outcome.CORRECT: 1}
        stripe_adapter.pause_collection.assert_not_called()

    def test_re_pauses_missing_pause(self, subscription, stripe_adapter, clock_at):
        """Should re-apply the pause when Stripe is collecting."""
        window = PauseWindowFactory(subscription=subscription)

        summary = PauseScheduler.verify(MAY, clock=clock_at(2026, 5, 2))

        assert summary.results[0].outcome == Outcome.FIXED
        assert summary.results[0].message == "re_paused"
        stripe_adapter.pause_collection.assert_called_once_with(
            subscription.stripe_subscription_id, "void", account_key="SU"
        )
        window.refresh_from_db()
        subscription.refresh_from_db()
        assert window.status == PauseWindowStatus.ACTIVE
        assert subscription.status == SubscriptionStatus.PAUSED
        entry = AuditLogEntry.objects.get(action=AuditAction.PAUSE_VERIFY_FIX)
        assert entry.payload["fix"] == "re_paused"

    def test_cancelled_upstream_skipped(self, paused_subscription, stripe_adapter, clock_at):
        active_window(paused_subscription)
        stripe_adapter.retrieve_subscription.return_value = SubscriptionResult(
            id="sub_upstream", status="canceled"
        )

        summary = PauseScheduler.verify(MAY, clock=clock_at(2026, 5, 2))

        assert summary.results[0].outcome == Outcome.SKIPPED
        assert summary.results[0].message == "Cancelled upstream"

    def test_resumes_stale_pause(self, paused_subscription, stripe_adapter, clock_at):
        """Should resume a subscription still paused after its window ended."""
        window = active_window(paused_subscription, month=4)
        stripe_adapter.retrieve_subscription.return_value = paused_upstream()

        summary = PauseScheduler.verify(MAY, clock=clock_at(2026, 5, 2))

        assert summary.results[0].outcome == Outcome.FIXED
        assert summary.results[0].message == "resumed"
        stripe_adapter.resume_collection.assert_called_once()
        window.refresh_from_db()
        paused_subscription.refresh_from_db()
        assert window.status == PauseWindowStatus.CREDIT_APPLIED
        assert paused_subscription.status == SubscriptionStatus.ACTIVE

    def test_marks_resumed_when_stripe_already_collecting(
        self, paused_subscription, stripe_adapter, clock_at
    ):
        active_window(paused_subscription, month=4)

        summary = PauseScheduler.verify(MAY, clock=clock_at(2026, 5, 2))

        assert summary.results[0].message == "marked_resumed"
        stripe_adapter.resume_collection.assert_not_called()
        paused_subscription.refresh_from_db()
        assert paused_subscription.status == SubscriptionStatus.ACTIVE

    def test_resumed_window_is_correct(self, subscription, stripe_adapter, clock_at):
        active_window(
            subscription,
            month=4,
            status=PauseWindowStatus.CREDIT_APPLIED,
            applied_resume_at=APPLIED_AT,
        )

        summary = PauseScheduler.verify(MAY, clock=clock_at(2026, 5, 2))

        assert summary.counts == {Outcome.CORRECT: 1}

    def test_covered_subscription_not_resumed(self, paused_subscription, stripe_adapter, clock_at):
        active_window(paused_subscription, month=4)
        active_window(paused_subscription, month=5)
        stripe_adapter.retrieve_subscription.return_value = paused_upstream()

        summary = PauseScheduler.verify(MAY, clock=clock_at(2026, 5, 2))

        assert summary.counts == {Outcome.CORRECT: 1}
        stripe_adapter.resume_collection.assert_not_called()


# =============================================================================
# Backstop Tests
# =============================================================================


@pytest.mark.django_db
class TestBackstop:
    """Tests for PauseScheduler.backstop."""

    def test_voids_stray_invoices(self, paused_subscription, stripe_adapter, clock_at):
        active_window(paused_subscription)
        stripe_adapter.list_open_invoices.return_value = [InvoiceResult(id="in_stray", status="open")]

        summary = PauseScheduler.backstop(MAY, clock=clock_at(2026, 5, 3))

        assert summary.results[0].outcome == Outcome.FIXED
        assert summary.results[0].message == "Voided 1 open invoice(s)"
        stripe_adapter.list_open_invoices.assert_called_once_with(
            paused_subscription.stripe_customer_id, account_key="SU", limit=5
        )
        stripe_adapter.void_invoice.assert_called_once_with("in_stray", account_key="SU")
        entry = AuditLogEntry.objects.get(action=AuditAction.PAUSE_BACKSTOP_FIX)
        assert entry.payload["voided_invoice_ids"] == ["in_stray"]

    def test_nothing_to_void(self, paused_subscription, stripe_adapter, clock_at):
        active_window(paused_subscription)

        summary = PauseScheduler.backstop(MAY, clock=clock_at(2026, 5, 3))

        assert summary.counts == {Outcome.CORRECT: 1}
        assert not AuditLogEntry.objects.exists()

    def test_void_failure_tries_the_rest(self, paused_subscription, stripe_adapter, clock_at):
        active_window(paused_subscription)
        stripe_adapter.list_open_invoices.return_value = [
            InvoiceResult(id="in_a", status="open"),
            InvoiceResult(id="in_b", status="open"),
        ]
        stripe_adapter.void_invoice.side_effect = [
            StripeInvalidRequestError("Invoice is not open"),
            InvoiceResult(id="in_b", status="void"),
        ]

        summary = PauseScheduler.backstop(MAY, clock=clock_at(2026, 5, 3))

        assert summary.results[0].message == "Voided 1 open invoice(s)"
        entry = AuditLogEntry.objects.get(action=AuditAction.PAUSE_BACKSTOP_FIX)
        assert entry.payload["voided_invoice_ids"] == ["in_b"]

    def test_keep_as_draft_not_checked(self, paused_subscription, stripe_adapter, clock_at):
        active_window(paused_subscription, behavior=PauseBehavior.KEEP_AS_DRAFT)

        summary = PauseScheduler.backstop(MAY, clock=clock_at(2026, 5, 3))

        assert summary.results == []
        stripe_adapter.list_open_invoices.assert_not_called()

    def test_cancelled_subscription_skipped(self, stripe_adapter, clock_at):
        subscription = SubscriptionFactory(status=SubscriptionStatus.CANCELLED)
        active_window(subscription)

        summary = PauseScheduler.backstop(MAY, clock=clock_at(2026, 5, 3))

        assert summary.counts == {Outcome.SKIPPED: 1}

    def test_unpauses_ended_window(self, paused_subscription, stripe_adapter, clock_at):
        active_window(paused_subscription, month=4)
        stripe_adapter.retrieve_subscription.return_value = paused_upstream()

        summary = PauseScheduler.backstop(MAY, clock=clock_at(2026, 5, 3))

        assert summary.results[0].message == "resumed"
        entry = AuditLogEntry.objects.get(action=AuditAction.PAUSE_BACKSTOP_FIX)
        assert entry.payload["fix"] == "resumed"


# =============================================================================
# Cancel Tests
# =============================================================================


@pytest.mark.django_db
class TestCancel:
    """Tests for PauseScheduler.cancel."""

    def test_scheduled_window_is_free(self, subscription, stripe_adapter, clock_at):
        window = PauseWindowFactory(subscription=subscription)

        result = PauseScheduler.cancel(window, clock=clock_at(2026, 4, 20), performed_by="staff")

        assert result.message == "Scheduled pause cancelled"
        assert not result.was_active
        assert stripe_adapter.method_calls == []
        window.refresh_from_db()
        assert window.status == PauseWindowStatus.CANCELLED
        assert window.cancelled_at is not None
        entry = AuditLogEntry.objects.get(action=AuditAction.PAUSE_WINDOW_CANCELLED)
        assert entry.performed_by == "staff"

    def test_already_cancelled(self, subscription, stripe_adapter, clock_at):
        window = PauseWindowFactory(subscription=subscription, status=PauseWindowStatus.CANCELLED)

        result = PauseScheduler.cancel(window, clock=clock_at(2026, 4, 20))

        assert result.already_cancelled
        assert result.message == "Pause window already cancelled"
        assert not AuditLogEntry.objects.exists()

    def test_completed_window_rejected(self, subscription, stripe_adapter, clock_at):
        window = PauseWindowFactory(
            subscription=subscription, status=PauseWindowStatus.CREDIT_APPLIED
        )

        with pytest.raises(InvalidStateTransitionError):
            PauseScheduler.cancel(window, clock=clock_at(2026, 4, 20))

    def test_active_date_range_settles_elapsed_days(
        self, paused_subscription, stripe_adapter, clock_at
    ):
        """Should credit the days already paused and resume Stripe."""
        window = active_window(
            paused_subscription,
            year=None,
            month=None,
            start_date=date(2026, 4, 15),
            end_date=date(2026, 5, 2),
        )

        result = PauseScheduler.cancel(window, clock=clock_at(2026, 4, 20))

        expected = calculate_settlement_breakdown(
            date(2026, 4, 15), date(2026, 4, 19), Decimal("50.00")
        )
        assert result.was_active
        assert result.elapsed_days == 5
        assert result.credit_cents == expected.total_settlement_pence
        assert result.message.startswith("Pause ended early. Partial credit: £")
        stripe_adapter.resume_collection.assert_called_once_with(
            paused_subscription.stripe_subscription_id, account_key="SU"
        )

        window.refresh_from_db()
        paused_subscription.refresh_from_db()
        assert window.status == PauseWindowStatus.CANCELLED
        assert window.credit_cents == expected.total_settlement_pence
        assert window.applied_resume_at is not None
        assert paused_subscription.status == SubscriptionStatus.ACTIVE
        assert AuditLogEntry.objects.filter(action=AuditAction.PAUSE_RESUMED_EARLY).count() == 1

    def test_active_month_row(self, paused_subscription, stripe_adapter, clock_at):
        window = active_window(paused_subscription)

        result = PauseScheduler.cancel(window, clock=clock_at(2026, 5, 10))

        assert result.message == "Pause ended early"
        assert result.credit_cents == 0
        stripe_adapter.resume_collection.assert_called_once()

    def test_cancelling_master_closes_it(self, paused_subscription, stripe_adapter, clock_at):
        master = active_window(paused_subscription, kind=PauseWindowKind.OPEN_ENDED)

        PauseScheduler.cancel(master, clock=clock_at(2026, 5, 10))

        master.refresh_from_db()
        assert master.closed_at is not None
        assert not PauseWindow.objects.masters_covering(JUNE).exists()

    def test_cancelling_master_cancels_generated_months(
        self, paused_subscription, stripe_adapter, clock_at
    ):
        """Should not let the verify pass pause the member again."""
        master = active_window(paused_subscription, kind=PauseWindowKind.OPEN_ENDED)
        PauseScheduler.apply(JUNE, clock=clock_at(2026, 5, 31))
        PauseScheduler.resume(JUNE, clock=clock_at(2026, 5, 31))
        stripe_adapter.pause_collection.reset_mock()

        PauseScheduler.cancel(master, clock=clock_at(2026, 6, 10))

        june = PauseWindow.objects.get(subscription=paused_subscription, year=2026, month=6)
        assert june.status == PauseWindowStatus.CANCELLED
        assert june.applied_resume_at is not None
        paused_subscription.refresh_from_db()
        assert paused_subscription.status == SubscriptionStatus.ACTIVE

        summary = PauseScheduler.verify(JUNE, clock=clock_at(2026, 6, 11))

        assert summary.counts == {}
        stripe_adapter.pause_collection.assert_not_called()
        paused_subscription.refresh_from_db()
        assert paused_subscription.status == SubscriptionStatus.ACTIVE
        assert not PauseWindow.objects.filter(month=7).exists()

    def test_cancelling_master_keeps_past_months(
        self, paused_subscription, stripe_adapter, clock_at
    ):
        master = active_window(paused_subscription, kind=PauseWindowKind.OPEN_ENDED, month=4)
        may = active_window(paused_subscription, month=5)

        PauseScheduler.cancel(master, clock=clock_at(2026, 6, 10))

        may.refresh_from_db()
        assert may.status == PauseWindowStatus.ACTIVE

    def test_stripe_failure_keeps_window_active(self, paused_subscription, stripe_adapter, clock_at):
        window = active_window(paused_subscription)
        stripe_adapter.resume_collection.side_effect = StripeAPIUnavailableError("Stripe is down")

        with pytest.raises(StripeAPIUnavailableError):
            PauseScheduler.cancel(window, clock=clock_at(2026, 5, 10))

        window.refresh_from_db()
        assert window.status == PauseWindowStatus.ACTIVE


# =============================================================================
# Helper Tests
# =============================================================================


@pytest.mark.django_db
class TestCoverageHelpers:
    """Tests for is_covered and has_live_date_range."""

    def test_month_row_covers(self, subscription):
        PauseWindowFactory(subscription=subscription)

        assert PauseScheduler.is_covered(subscription, MAY)
        assert not PauseScheduler.is_covered(subscription, JUNE)

    def test_cancelled_row_does_not_cover(self, subscription):
        PauseWindowFactory(subscription=subscription, status=PauseWindowStatus.CANCELLED)

        assert not PauseScheduler.is_covered(subscription, MAY)

    def test_master_covers_later_months(self, subscription):
        PauseWindowFactory(subscription=subscription, kind=PauseWindowKind.OPEN_ENDED)

        assert PauseScheduler.is_covered(subscription, MonthKey(2027, 1))
        assert not PauseScheduler.is_covered(subscription, MonthKey(2026, 4))

    def test_live_date_range(self, subscription):
        active_window(
            subscription,
            year=None,
            month=None,
            start_date=date(2026, 5, 1),
            end_date=date(2026, 5, 9),
        )

        assert PauseScheduler.has_live_date_range(subscription)

    def test_scheduled_date_range_is_not_live(self, subscription):
        PauseWindowFactory(
            subscription=subscription,
            year=None,
            month=None,
            start_date=date(2026, 5, 1),
            end_date=date(2026, 5, 9),
        )

        assert not PauseScheduler.has_live_date_range(subscription)
