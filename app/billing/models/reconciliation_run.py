"""
ReconciliationRun: history of subscription reconciliation batches.
"""

from __future__ import annotations

from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from billing.state_machines import ReconciliationRunStatus


class ReconciliationRun(UUIDPrimaryKeyMixin, BaseModel):
    """
    One execution of SubscriptionReconciler.reconcile_subscriptions.

    Example:
        run = ReconciliationRun.objects.create(started_at=clock.now())
        # ... per-subscription reconciliation ...
        run.fixed = 2
        run.correct = 40
        run.status = ReconciliationRunStatus.COMPLETED
        run.completed_at = clock.now()
        run.save()
    """

    started_at = models.DateTimeField(
        help_text="When this run started",
    )
    completed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When this run completed (or failed)",
    )

    stripe_account_key = models.CharField(
        max_length=20,
        blank=True,
        default="",
        help_text="Account the run was limited to (blank for all)",
    )

    # Results summary
    checked = models.PositiveIntegerField(
        default=0,
        help_text="Subscriptions examined",
    )
    fixed = models.PositiveIntegerField(
        default=0,
        help_text="Subscriptions whose local state was corrected",
    )
    correct = models.PositiveIntegerField(
        default=0,
        help_text="Subscriptions already in sync",
    )
    errors = models.PositiveIntegerField(
        default=0,
        help_text="Subscriptions that failed to reconcile",
    )
    skipped = models.PositiveIntegerField(
        default=0,
        help_text="Subscriptions skipped (no Stripe id or terminal)",
    )

    status = models.CharField(
        max_length=20,
        choices=ReconciliationRunStatus.choices,
        default=ReconciliationRunStatus.RUNNING,
        db_index=True,
        help_text="Current status of this run",
    )
    error_message = models.TextField(
        blank=True,
        help_text="Error message if the run failed",
    )

    class Meta:
        indexes = [
            models.Index(fields=["status", "started_at"], name="reconrun_status_started_idx"),
        ]
        ordering = ["-started_at"]

    def __str__(self) -> str:
        return f"ReconciliationRun({self.id}, {self.status}, {self.started_at})"

    @property
    def duration_seconds(self) -> float | None:
        if self.completed_at and self.started_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None
