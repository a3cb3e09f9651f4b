"""
Subscription model mirroring a Stripe subscription.

Stripe is the source of truth. Local status is moved by the pause
scheduler, the webhook handlers and the reconciler, always through the
django-fsm transitions below.

Usage:
    from billing.models import Subscription
    from billing.state_machines import SubscriptionStatus

    subscription = Subscription.objects.create(
        owner=member,
        stripe_subscription_id="sub_xxx",
        stripe_customer_id="cus_xxx",
        monthly_price_cents=5000,
    )

    subscription.pause()  # ACTIVE -> PAUSED
    subscription.save()
"""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils import timezone

from django_fsm import RETURN_VALUE, FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from billing.proration.types import from_minor_units
from billing.state_machines import SubscriptionStatus

LIVE_STATES = [
    SubscriptionStatus.ACTIVE,
    SubscriptionStatus.TRIALING,
    SubscriptionStatus.PAUSED,
    SubscriptionStatus.PAST_DUE,
    SubscriptionStatus.INCOMPLETE,
    SubscriptionStatus.INCOMPLETE_EXPIRED,
]


class Subscription(UUIDPrimaryKeyMixin, BaseModel):
    """
    A member's recurring billing relationship.

    State Flow:
        ACTIVE/TRIALING/PAST_DUE -> PAUSED (pause applied)
        PAUSED -> ACTIVE (resume)
        any live state -> PAST_DUE (invoice payment failed)
        any live state -> ACTIVE (invoice paid)
        any live state -> CANCELLED (terminal)
        any -> any (sync_status, upstream correction only)

    Fields:
        owner: Member paying for the subscription
        stripe_account_key: Which configured Stripe account holds it
        stripe_subscription_id: Stripe Subscription ID (sub_xxx)
        stripe_customer_id: Stripe Customer ID (cus_xxx)
        status: Current FSM state
        current_period_start/end: Current billing period
        next_billing_date: Next collection date
        monthly_price_cents: Monthly price in pence
        cancel_at_period_end: Whether cancellation is scheduled
        cancelled_at: When the subscription was cancelled
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="subscriptions",
        help_text="Member paying for the subscription",
    )

    # ==========================================================================
    # Stripe Integration
    # ==========================================================================

    stripe_account_key = models.CharField(
        max_length=20,
        default="SU",
        db_index=True,
        help_text="Key of the Stripe account in STRIPE_ACCOUNTS",
    )

    stripe_subscription_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Stripe Subscription ID (sub_xxx)",
    )

    stripe_customer_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        db_index=True,
        help_text="Stripe Customer ID (cus_xxx)",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=SubscriptionStatus.ACTIVE,
        choices=SubscriptionStatus.choices,
        db_index=True,
        help_text="Current status of the subscription (managed by FSM)",
    )

    # ==========================================================================
    # Billing Period
    # ==========================================================================

    current_period_start = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Start of current billing period",
    )

    current_period_end = models.DateTimeField(
        null=True,
        blank=True,
        help_text="End of current billing period",
    )

    next_billing_date = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Next date Stripe will attempt collection",
    )

    # ==========================================================================
    # Amount & Currency
    # ==========================================================================

    monthly_price_cents = models.PositiveIntegerField(
        help_text="Monthly price in smallest currency unit (pence)",
    )

    currency = models.CharField(
        max_length=3,
        default="GBP",
        help_text="ISO 4217 currency code (upper-case)",
    )

    # ==========================================================================
    # Cancellation
    # ==========================================================================

    cancel_at_period_end = models.BooleanField(
        default=False,
        help_text="Whether subscription will cancel at period end",
    )

    cancelled_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When subscription was cancelled",
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Subscription"
        verbose_name_plural = "Subscriptions"
        indexes = [
            models.Index(fields=["owner", "status"], name="sub_owner_status_idx"),
            models.Index(fields=["stripe_account_key", "status"], name="sub_account_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(monthly_price_cents__gt=0),
                name="subscription_price_positive",
            ),
        ]

    def __str__(self) -> str:
        return (
            f"Subscription({self.id}, {self.status}, "
            f"{self.monthly_price_cents / 100:.2f} {self.currency}/month)"
        )

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=[
            SubscriptionStatus.ACTIVE,
            SubscriptionStatus.TRIALING,
            SubscriptionStatus.PAST_DUE,
            SubscriptionStatus.PAUSED,
        ],
        target=SubscriptionStatus.PAUSED,
    )
    def pause(self):
        """
        Collection paused in Stripe.

        Transition: ACTIVE/TRIALING/PAST_DUE -> PAUSED
        """

    @transition(
        field=status,
        source=[SubscriptionStatus.PAUSED, SubscriptionStatus.ACTIVE],
        target=SubscriptionStatus.ACTIVE,
    )
    def resume(self):
        """
        Collection resumed in Stripe.

        Transition: PAUSED -> ACTIVE
        """

    @transition(field=status, source=LIVE_STATES, target=SubscriptionStatus.PAST_DUE)
    def mark_past_due(self):
        """Invoice payment failed. Transition: live -> PAST_DUE"""

    @transition(field=status, source=LIVE_STATES, target=SubscriptionStatus.ACTIVE)
    def activate(self):
        """Invoice paid. Transition: live -> ACTIVE"""

    @transition(field=status, source=LIVE_STATES, target=SubscriptionStatus.CANCELLED)
    def cancel(self):
        """
        Cancel the subscription.

        Transition: live -> CANCELLED

        Triggered by customer.subscription.deleted or by the reconciler
        finding the subscription cancelled upstream.
        """
        self.cancelled_at = self.cancelled_at or timezone.now()

    @transition(
        field=status,
        source="*",
        target=RETURN_VALUE(*SubscriptionStatus.values),
    )
    def sync_status(self, target: str) -> str:
        """
        Force the status to an upstream-observed value.

        Only the reconciler and subscription webhooks call this.
        """
        if target == SubscriptionStatus.CANCELLED:
            self.cancelled_at = self.cancelled_at or timezone.now()
        return target

    # ==========================================================================
    # Helper Properties
    # ==========================================================================

    @property
    def monthly_price(self) -> Decimal:
        """Monthly price in pounds."""
        return from_minor_units(self.monthly_price_cents)

    @property
    def is_cancelled(self) -> bool:
        return self.status == SubscriptionStatus.CANCELLED

    @property
    def is_paused(self) -> bool:
        return self.status == SubscriptionStatus.PAUSED

    @property
    def has_stripe_subscription(self) -> bool:
        return bool(self.stripe_subscription_id)
