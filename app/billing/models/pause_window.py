"""
PauseWindow model: a scheduled suspension of billing.

A row is one of three shapes:
    - month row: kind=FIXED, year/month set (one calendar month)
    - date range: kind=FIXED, start_date/end_date set (settled daily)
    - open-ended master: kind=OPEN_ENDED, year/month of the first month,
      no end until closed_at is set

The master is itself the row for its first month. Later months are
materialized as concrete month rows by the apply pass.

Usage:
    from billing.models import PauseWindow
    from billing.state_machines import PauseWindowStatus

    window = PauseWindow.objects.create(
        subscription=subscription,
        year=2026,
        month=5,
        behavior=PauseBehavior.VOID,
    )
    window.activate(at=timezone.now())  # SCHEDULED -> ACTIVE
    window.save()
"""

from __future__ import annotations

from datetime import date

from django.db import models

from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from billing.proration.types import MonthKey, from_minor_units
from billing.state_machines import PauseBehavior, PauseWindowKind, PauseWindowStatus

OPEN_STATES = [PauseWindowStatus.SCHEDULED, PauseWindowStatus.ACTIVE]


class PauseWindowQuerySet(models.QuerySet):
    def not_cancelled(self):
        return self.exclude(status=PauseWindowStatus.CANCELLED)

    def month_rows(self):
        return self.filter(year__isnull=False, month__isnull=False)

    def date_ranges(self):
        return self.filter(
            kind=PauseWindowKind.FIXED,
            start_date__isnull=False,
            end_date__isnull=False,
        )

    def for_month(self, month: MonthKey):
        return self.filter(year=month.year, month=month.month)

    def open_masters(self):
        return self.filter(kind=PauseWindowKind.OPEN_ENDED, closed_at__isnull=True)

    def masters_covering(self, month: MonthKey):
        """Open masters whose first month is on or before month."""
        return self.open_masters().not_cancelled().filter(
            models.Q(year__lt=month.year)
            | models.Q(year=month.year, month__lte=month.month)
        )

    def from_month(self, month: MonthKey):
        return self.filter(
            models.Q(year__gt=month.year)
            | models.Q(year=month.year, month__gte=month.month)
        )


class PauseWindow(UUIDPrimaryKeyMixin, BaseModel):
    """
    A pause of collection for one subscription.

    State Flow:
        SCHEDULED -> ACTIVE (Stripe pause confirmed)
        SCHEDULED/ACTIVE -> CREDIT_APPLIED (window ended, credit settled)
        SCHEDULED/ACTIVE -> CANCELLED

    Fields:
        subscription: Subscription being paused
        kind: FIXED or OPEN_ENDED
        year/month: Month row (or first month of a master)
        start_date/end_date: Inclusive day range for date-range windows
        closed_at: When an open-ended master stopped generating months
        behavior: Stripe pause_collection behavior
        paused_days/credit_cents: Settlement for date-range windows
        stripe_invoice_item_id: Negative invoice item carrying the credit
        applied_*_at: Markers set only after Stripe confirmed the call
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    subscription = models.ForeignKey(
        "billing.Subscription",
        on_delete=models.CASCADE,
        related_name="pause_windows",
        help_text="Subscription this pause applies to",
    )

    # ==========================================================================
    # Shape
    # ==========================================================================

    kind = models.CharField(
        max_length=20,
        choices=PauseWindowKind.choices,
        default=PauseWindowKind.FIXED,
        help_text="FIXED (month or date range) or OPEN_ENDED master",
    )

    year = models.PositiveSmallIntegerField(
        null=True,
        blank=True,
        help_text="Calendar year of a month row or master start",
    )

    month = models.PositiveSmallIntegerField(
        null=True,
        blank=True,
        help_text="Calendar month (1-12) of a month row or master start",
    )

    start_date = models.DateField(
        null=True,
        blank=True,
        help_text="First paused day of a date-range window",
    )

    end_date = models.DateField(
        null=True,
        blank=True,
        help_text="Last paused day of a date-range window (inclusive)",
    )

    closed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When an open-ended master was closed",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=PauseWindowStatus.SCHEDULED,
        choices=PauseWindowStatus.choices,
        db_index=True,
        help_text="Current state of the window (managed by FSM)",
    )

    behavior = models.CharField(
        max_length=20,
        choices=PauseBehavior.choices,
        default=PauseBehavior.VOID,
        help_text="Stripe pause_collection behavior",
    )

    reason = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Why the pause was scheduled",
    )

    # ==========================================================================
    # Settlement
    # ==========================================================================

    paused_days = models.PositiveIntegerField(
        default=0,
        help_text="Number of paused days (date-range windows)",
    )

    credit_cents = models.PositiveIntegerField(
        default=0,
        help_text="Settlement credit in pence",
    )

    stripe_invoice_item_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Stripe InvoiceItem ID (ii_xxx) carrying the credit",
    )

    # ==========================================================================
    # Applied Markers
    # ==========================================================================

    applied_pause_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When Stripe confirmed the pause",
    )

    applied_resume_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When Stripe confirmed the resume",
    )

    credit_applied_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the settlement credit was applied",
    )

    cancelled_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the window was cancelled",
    )

    objects = PauseWindowQuerySet.as_manager()

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Pause Window"
        verbose_name_plural = "Pause Windows"
        indexes = [
            models.Index(fields=["subscription", "status"], name="pausewin_sub_status_idx"),
            models.Index(fields=["year", "month", "status"], name="pausewin_month_status_idx"),
            models.Index(fields=["status", "start_date"], name="pausewin_status_start_idx"),
            models.Index(fields=["status", "end_date"], name="pausewin_status_end_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["subscription", "year", "month"],
                condition=~models.Q(status=PauseWindowStatus.CANCELLED),
                name="pause_window_unique_month",
            ),
            models.CheckConstraint(
                condition=(
                    models.Q(start_date__isnull=True)
                    | models.Q(end_date__isnull=True)
                    | models.Q(end_date__gte=models.F("start_date"))
                ),
                name="pause_window_range_ordered",
            ),
        ]

    def __str__(self) -> str:
        return f"PauseWindow({self.id}, {self.describe()}, {self.status})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=PauseWindowStatus.SCHEDULED,
        target=PauseWindowStatus.ACTIVE,
    )
    def activate(self, at=None):
        """
        Stripe confirmed the pause.

        Transition: SCHEDULED -> ACTIVE
        """
        if at is not None:
            self.applied_pause_at = at

    @transition(field=status, source=OPEN_STATES, target=PauseWindowStatus.CREDIT_APPLIED)
    def complete(self, at, credit_cents: int = 0):
        """
        Window ended and its settlement was applied.

        Transition: SCHEDULED/ACTIVE -> CREDIT_APPLIED
        """
        self.credit_cents = credit_cents
        self.credit_applied_at = at

    @transition(field=status, source=OPEN_STATES, target=PauseWindowStatus.CANCELLED)
    def cancel(self, at, credit_cents: int = 0):
        """
        Cancel the window.

        Transition: SCHEDULED/ACTIVE -> CANCELLED

        credit_cents records the partial settlement for days already
        paused when an ACTIVE window is cut short.
        """
        self.cancelled_at = at
        self.credit_cents = credit_cents
        if self.kind == PauseWindowKind.OPEN_ENDED and self.closed_at is None:
            self.closed_at = at

    # ==========================================================================
    # Helper Properties
    # ==========================================================================

    @property
    def is_month_row(self) -> bool:
        return self.year is not None and self.month is not None

    @property
    def is_date_range(self) -> bool:
        return self.start_date is not None and self.end_date is not None

    @property
    def is_open_ended(self) -> bool:
        return self.kind == PauseWindowKind.OPEN_ENDED

    @property
    def month_key(self) -> MonthKey | None:
        if not self.is_month_row:
            return None
        return MonthKey(self.year, self.month)

    @property
    def credit_amount(self):
        return from_minor_units(self.credit_cents)

    def covered_dates(self) -> tuple[date, date | None]:
        """
        Inclusive (first, last) day this window covers.

        last is None for an open master that has not been closed.
        """
        if self.is_date_range:
            return self.start_date, self.end_date
        key = self.month_key
        if self.is_open_ended:
            if self.closed_at is None:
                return key.first_day, None
            return key.first_day, max(key.last_day, MonthKey.from_date(self.closed_at).last_day)
        return key.first_day, key.last_day

    def describe(self) -> str:
        if self.is_date_range:
            return f"{self.start_date.isoformat()} - {self.end_date.isoformat()}"
        if self.is_open_ended:
            return f"from {self.month_key} (open-ended)"
        if self.is_month_row:
            return str(self.month_key)
        return "unscheduled"
