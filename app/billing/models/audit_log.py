"""
Append-only audit log for subscription changes.

Rows are written through billing.audit.AuditLogService with a typed
payload; the table is never updated or deleted from application code.
"""

from __future__ import annotations

from django.db import models

from core.model_mixins import AppendOnlyMixin, UUIDPrimaryKeyMixin
from core.models import BaseModel

from billing.state_machines import AuditAction


class AuditLogEntry(UUIDPrimaryKeyMixin, AppendOnlyMixin, BaseModel):
    """
    One audited action against a subscription.

    Fields:
        subscription: Subscription the action touched
        action: AuditAction tag, selects the payload shape
        operation_id: Unique key of the operation (idempotency)
        performed_by: "SYSTEM" or the staff user identifier
        reason: Free-text reason
        payload: JSON of the payload dataclass for action
    """

    subscription = models.ForeignKey(
        "billing.Subscription",
        on_delete=models.PROTECT,
        related_name="audit_entries",
        help_text="Subscription the action touched",
    )

    action = models.CharField(
        max_length=40,
        choices=AuditAction.choices,
        db_index=True,
        help_text="Audited action",
    )

    operation_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Unique operation key",
    )

    performed_by = models.CharField(
        max_length=255,
        default="SYSTEM",
        help_text="Who performed the action",
    )

    reason = models.CharField(
        max_length=500,
        blank=True,
        default="",
        help_text="Why the action was performed",
    )

    payload = models.JSONField(
        default=dict,
        blank=True,
        help_text="Action-specific payload",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Audit Log Entry"
        verbose_name_plural = "Audit Log Entries"
        indexes = [
            models.Index(fields=["subscription", "created_at"], name="audit_sub_created_idx"),
            models.Index(fields=["action", "created_at"], name="audit_action_created_idx"),
        ]

    def __str__(self) -> str:
        return f"AuditLogEntry({self.action}, {self.operation_id})"
