"""
Payment and Invoice models: the ledger of money facts.

Both are written only through billing.ledger.services. Every CONFIRMED
payment maps to exactly one Stripe invoice, enforced by the unique
stripe_invoice_id column.

Usage:
    from billing.ledger import PaymentLedger

    PaymentLedger.persist_successful_payment(
        invoice_id="in_123",
        user=member,
        amount=Decimal("75.00"),
        currency="GBP",
        description="Monthly membership",
    )
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from billing.proration.types import from_minor_units
from billing.state_machines import PaymentStatus


class Invoice(UUIDPrimaryKeyMixin, BaseModel):
    """
    Local snapshot of a Stripe invoice.

    Fields:
        subscription: Subscription the invoice bills (nullable for one-offs)
        stripe_invoice_id: Stripe Invoice ID (in_xxx)
        amount_cents: Amount paid or due in pence
        currency: ISO 4217 code, upper-case
        status: Stripe invoice status (draft, open, paid, void, uncollectible)
        period_start/period_end: Billing period covered
        paid_at: When Stripe marked it paid
    """

    subscription = models.ForeignKey(
        "billing.Subscription",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="invoices",
        help_text="Subscription this invoice bills",
    )

    stripe_invoice_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe Invoice ID (in_xxx)",
    )

    amount_cents = models.PositiveIntegerField(
        default=0,
        help_text="Invoice amount in pence",
    )

    currency = models.CharField(
        max_length=3,
        default="GBP",
        help_text="ISO 4217 currency code (upper-case)",
    )

    status = models.CharField(
        max_length=30,
        blank=True,
        default="",
        help_text="Stripe invoice status",
    )

    period_start = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Start of the billed period",
    )

    period_end = models.DateTimeField(
        null=True,
        blank=True,
        help_text="End of the billed period",
    )

    paid_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the invoice was paid",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Invoice"
        verbose_name_plural = "Invoices"
        indexes = [
            models.Index(fields=["subscription", "status"], name="invoice_sub_status_idx"),
        ]

    def __str__(self) -> str:
        return f"Invoice({self.stripe_invoice_id}, {self.status})"


class Payment(UUIDPrimaryKeyMixin, BaseModel):
    """
    One recorded payment attempt.

    Immutable once CONFIRMED except for the reconciler flipping a phantom
    confirmation to FAILED.

    Fields:
        owner: Member who paid
        subscription: Subscription the payment belongs to
        invoice: Local Invoice snapshot, when the payment came from one
        amount_cents: Amount in pence
        currency: ISO 4217 code, upper-case
        status: CONFIRMED, FAILED or PENDING
        stripe_invoice_id: Stripe Invoice ID, unique when present
        stripe_payment_intent_id: Stripe PaymentIntent ID (pi_xxx)
        description: Human-readable description
        routed_entity_id: Business entity the payment was routed to
        failure_reason: Why the payment failed
        operation_id: Idempotency key of the writer
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="payments",
        help_text="Member who made the payment",
    )

    subscription = models.ForeignKey(
        "billing.Subscription",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="payments",
        help_text="Subscription this payment belongs to",
    )

    invoice = models.ForeignKey(
        Invoice,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="payments",
        help_text="Invoice snapshot this payment settled",
    )

    # ==========================================================================
    # Amount & Status
    # ==========================================================================

    amount_cents = models.PositiveIntegerField(
        help_text="Payment amount in pence",
    )

    currency = models.CharField(
        max_length=3,
        default="GBP",
        help_text="ISO 4217 currency code (upper-case)",
    )

    status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
        db_index=True,
        help_text="Payment status",
    )

    # ==========================================================================
    # Stripe Integration
    # ==========================================================================

    stripe_invoice_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Stripe Invoice ID (in_xxx)",
    )

    stripe_payment_intent_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        db_index=True,
        help_text="Stripe PaymentIntent ID (pi_xxx)",
    )

    # ==========================================================================
    # Description & Outcome
    # ==========================================================================

    description = models.CharField(
        max_length=500,
        blank=True,
        default="",
        help_text="Human-readable description",
    )

    routed_entity_id = models.CharField(
        max_length=100,
        blank=True,
        default="",
        help_text="Business entity the payment was routed to",
    )

    failure_reason = models.TextField(
        null=True,
        blank=True,
        help_text="Why the payment failed",
    )

    failed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the payment failed",
    )

    processed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the payment was recorded as confirmed",
    )

    operation_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Idempotency key of the operation that wrote this row",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payment"
        verbose_name_plural = "Payments"
        indexes = [
            models.Index(fields=["owner", "status"], name="payment_owner_status_idx"),
            models.Index(
                fields=["subscription", "status", "created_at"],
                name="payment_sub_status_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"Payment({self.id}, {self.status}, {self.amount_cents / 100:.2f} {self.currency})"

    @property
    def amount(self):
        return from_minor_units(self.amount_cents)

    @property
    def is_confirmed(self) -> bool:
        return self.status == PaymentStatus.CONFIRMED
