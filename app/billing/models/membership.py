"""
Membership model: gym access derived from a subscription.
"""

from __future__ import annotations

from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from billing.state_machines import MembershipStatus, membership_status_for


class Membership(UUIDPrimaryKeyMixin, BaseModel):
    """
    Access projection of a subscription.

    Never independently authoritative: status is always rewritten from the
    subscription status via membership_status_for().

    Fields:
        subscription: The subscription this membership is derived from
        status: ACTIVE, SUSPENDED, PENDING_PAYMENT or CANCELLED
        plan_type: Plan identifier (e.g. "FULL_ADULT")
        schedule_access: Class categories the member may book
    """

    subscription = models.OneToOneField(
        "billing.Subscription",
        on_delete=models.CASCADE,
        related_name="membership",
        help_text="Subscription this membership is derived from",
    )

    status = models.CharField(
        max_length=20,
        choices=MembershipStatus.choices,
        default=MembershipStatus.ACTIVE,
        db_index=True,
        help_text="Access status, derived from the subscription",
    )

    plan_type = models.CharField(
        max_length=50,
        blank=True,
        default="",
        help_text="Plan identifier",
    )

    schedule_access = models.JSONField(
        default=list,
        blank=True,
        help_text="Class categories this membership can book",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Membership"
        verbose_name_plural = "Memberships"

    def __str__(self) -> str:
        return f"Membership({self.id}, {self.status}, {self.plan_type})"

    def sync_from_subscription(self, subscription_status: str) -> bool:
        """
        Re-derive status from a subscription status.

        Returns:
            True if the status changed (caller must save)
        """
        target = membership_status_for(subscription_status)
        if self.status == target:
            return False
        self.status = target
        return True
