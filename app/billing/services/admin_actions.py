"""
Administrative facade over the billing services.

This is the entry point used by staff tooling, the cron views and the
Celery tasks. Every action returns a ServiceResult and never raises:
expected failures (validation, overlap, bad transition, Stripe errors)
come back with their error_code, anything else as an unexpected error.

Usage:
    from billing.services import AdminBillingActions, SchedulePauseParams

    result = AdminBillingActions.schedule_pause(
        SchedulePauseParams(
            subscription_id=subscription.id,
            months=["2026-05", "2026-06"],
            performed_by="frontdesk@gym.test",
        )
    )
    if not result.success:
        return Response(result.to_response(), status=400)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from core.exceptions import BaseApplicationError
from core.services import BaseService, ServiceResult

from billing.audit import SYSTEM_ACTOR
from billing.exceptions import BillingNotFoundError
from billing.models import PauseWindow, Subscription
from billing.proration import MonthKey
from billing.services.pause_credits import PauseCreditService
from billing.services.pause_scheduler import PauseScheduler
from billing.services.subscription_reconciler import (
    DEFAULT_BATCH_LIMIT,
    SubscriptionReconciler,
)
from billing.state_machines import PauseBehavior

if TYPE_CHECKING:
    import uuid
    from datetime import date
    from typing import Any

    from billing.clock import Clock


@dataclass
class SchedulePauseParams:
    """
    Parameters for scheduling a pause.

    Either months (optionally open_ended with a single starting month) or a
    start_date/end_date range.
    """

    subscription_id: uuid.UUID | str
    months: list[str] | None = None
    start_date: date | None = None
    end_date: date | None = None
    behavior: str = PauseBehavior.VOID
    open_ended: bool = False
    reason: str = ""
    performed_by: str = SYSTEM_ACTOR


def _month(value: MonthKey | str | None, default: MonthKey) -> MonthKey:
    if value is None:
        return default
    if isinstance(value, MonthKey):
        return value
    return MonthKey.parse(value)


class AdminBillingActions(BaseService):
    """Staff and scheduler entry points. Each method returns a ServiceResult."""

    # =========================================================================
    # Pause windows
    # =========================================================================

    @classmethod
    def schedule_pause(
        cls,
        params: SchedulePauseParams,
        *,
        clock: Clock | None = None,
    ) -> ServiceResult[dict[str, Any]]:
        """
        Schedule a pause.

        A date range starting today is started in Stripe straight away; if
        that fails the window is left unapplied and the daily pass starts it.
        """
        try:
            subscription = cls._get_subscription(params.subscription_id)
            windows = PauseScheduler.schedule(
                subscription,
                months=params.months,
                start_date=params.start_date,
                end_date=params.end_date,
                behavior=params.behavior,
                open_ended=params.open_ended,
                reason=params.reason,
                performed_by=params.performed_by,
                clock=clock,
            )
        except BaseApplicationError as e:
            return cls.handle_exception(e, "Schedule pause", log_level=logging.WARNING)
        except Exception as e:
            return cls.handle_exception(e, "Unexpected error scheduling pause")

        started = False
        first = windows[0]
        if first.is_date_range and first.start_date <= PauseScheduler.clock(clock).today():
            try:
                started = PauseCreditService.start_window(first, clock=clock)
            except Exception as e:
                cls.get_logger().warning(
                    "Immediate pause start failed, deferring to daily pass",
                    extra={"window_id": str(first.id), "error": str(e)},
                )

        return ServiceResult.success(
            {
                "window_ids": [str(window.id) for window in windows],
                "windows": [window.describe() for window in windows],
                "started": started,
                "paused_days": first.paused_days,
                "credit_cents": first.credit_cents,
            }
        )

    @classmethod
    def cancel_pause(
        cls,
        window_id: uuid.UUID | str,
        *,
        performed_by: str = SYSTEM_ACTOR,
        reason: str = "",
        clock: Clock | None = None,
    ) -> ServiceResult[dict[str, Any]]:
        try:
            window = PauseWindow.objects.select_related("subscription").filter(pk=window_id).first()
            if window is None:
                raise BillingNotFoundError(
                    "Pause window not found",
                    details={"window_id": str(window_id)},
                )
            result = PauseScheduler.cancel(
                window, clock=clock, performed_by=performed_by, reason=reason,
            )
        except BaseApplicationError as e:
            return cls.handle_exception(e, "Cancel pause", log_level=logging.WARNING)
        except Exception as e:
            return cls.handle_exception(e, "Unexpected error cancelling pause")

        return ServiceResult.success(
            {
                "window_id": str(result.window.id),
                "status": result.window.status,
                "already_cancelled": result.already_cancelled,
                "was_active": result.was_active,
                "elapsed_days": result.elapsed_days,
                "credit_cents": result.credit_cents,
                "message": result.message,
            }
        )

    # =========================================================================
    # Scheduled passes
    # =========================================================================

    @classmethod
    def apply_pauses(
        cls,
        as_of_month: MonthKey | str | None = None,
        *,
        clock: Clock | None = None,
    ) -> ServiceResult[dict[str, Any]]:
        """
        Month-end pass: apply next month's pauses, then resume this
        month's windows that do not continue into next month, so the next
        invoice is collected.
        """
        try:
            clock = PauseScheduler.clock(clock)
            month = _month(as_of_month, MonthKey.from_date(clock.today()).next())
            applied = PauseScheduler.apply(month, clock=clock)
            resumed = PauseScheduler.resume(month, clock=clock)
        except Exception as e:
            return cls.handle_exception(e, "Apply pauses")
        return ServiceResult.success({"apply": applied.to_dict(), "resume": resumed.to_dict()})

    @classmethod
    def resume_pauses(
        cls,
        as_of_month: MonthKey | str | None = None,
        *,
        clock: Clock | None = None,
    ) -> ServiceResult[dict[str, Any]]:
        try:
            clock = PauseScheduler.clock(clock)
            month = _month(as_of_month, MonthKey.from_date(clock.today()))
            summary = PauseScheduler.resume(month, clock=clock)
        except Exception as e:
            return cls.handle_exception(e, "Resume pauses")
        return ServiceResult.success(summary.to_dict())

    @classmethod
    def verify_pauses(
        cls,
        as_of_month: MonthKey | str | None = None,
        *,
        clock: Clock | None = None,
    ) -> ServiceResult[dict[str, Any]]:
        try:
            clock = PauseScheduler.clock(clock)
            month = _month(as_of_month, MonthKey.from_date(clock.today()).next())
            summary = PauseScheduler.verify(month, clock=clock)
        except Exception as e:
            return cls.handle_exception(e, "Verify pauses")
        return ServiceResult.success(summary.to_dict())

    @classmethod
    def backstop_pauses(
        cls,
        as_of_month: MonthKey | str | None = None,
        *,
        clock: Clock | None = None,
    ) -> ServiceResult[dict[str, Any]]:
        try:
            clock = PauseScheduler.clock(clock)
            month = _month(as_of_month, MonthKey.from_date(clock.today()))
            summary = PauseScheduler.backstop(month, clock=clock)
        except Exception as e:
            return cls.handle_exception(e, "Backstop pauses")
        return ServiceResult.success(summary.to_dict())

    @classmethod
    def apply_pause_credits(
        cls,
        today: date | None = None,
        *,
        clock: Clock | None = None,
    ) -> ServiceResult[dict[str, Any]]:
        try:
            result = PauseCreditService.run_daily(today, clock=clock)
        except Exception as e:
            return cls.handle_exception(e, "Apply pause credits")
        return ServiceResult.success(result.to_dict())

    # =========================================================================
    # Reconciliation
    # =========================================================================

    @classmethod
    def reconcile_subscriptions(
        cls,
        account_key: str | None = None,
        *,
        limit: int = DEFAULT_BATCH_LIMIT,
        dry_run: bool = False,
        clock: Clock | None = None,
    ) -> ServiceResult[dict[str, Any]]:
        try:
            batch = SubscriptionReconciler.reconcile_subscriptions(
                account_key, limit=limit, dry_run=dry_run, clock=clock,
            )
        except Exception as e:
            return cls.handle_exception(e, "Reconcile subscriptions")
        return ServiceResult.success(batch.to_dict())

    @classmethod
    def reconcile_subscription(
        cls,
        subscription_id: uuid.UUID | str,
        *,
        dry_run: bool = False,
        clock: Clock | None = None,
    ) -> ServiceResult[dict[str, Any]]:
        try:
            subscription = cls._get_subscription(subscription_id)
            result = SubscriptionReconciler.reconcile_subscription(
                subscription, dry_run=dry_run, clock=clock,
            )
        except BaseApplicationError as e:
            return cls.handle_exception(e, "Reconcile subscription", log_level=logging.WARNING)
        except Exception as e:
            return cls.handle_exception(e, "Unexpected error reconciling subscription")
        return ServiceResult.success(result.to_dict())

    @classmethod
    def recover_paid_invoices(
        cls,
        *,
        limit: int = DEFAULT_BATCH_LIMIT,
        clock: Clock | None = None,
    ) -> ServiceResult[dict[str, Any]]:
        try:
            result = SubscriptionReconciler.recover_paid_invoices(limit=limit, clock=clock)
        except Exception as e:
            return cls.handle_exception(e, "Recover paid invoices")
        return ServiceResult.success(result.to_dict())

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _get_subscription(subscription_id: uuid.UUID | str) -> Subscription:
        subscription = Subscription.objects.filter(pk=subscription_id).first()
        if subscription is None:
            raise BillingNotFoundError(
                "Subscription not found",
                details={"subscription_id": str(subscription_id)},
            )
        return subscription
