"""
Data types for ledger writes.

Types:
    InvoiceData: Normalised view of a Stripe invoice object

Usage:
    from billing.ledger.types import InvoiceData

    data = InvoiceData.from_stripe(event.data_object)
    data.amount      # Decimal("75.00")
    data.currency    # "GBP"
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from billing.adapters.stripe_adapter import from_timestamp
from billing.proration.types import from_minor_units


@dataclass
class InvoiceData:
    """
    Fields of a Stripe invoice the ledger cares about.

    Attributes:
        stripe_invoice_id: Invoice ID (in_xxx)
        amount_cents: amount_paid, falling back to amount_due (pence)
        currency: Upper-case ISO 4217 code
        status: Stripe invoice status
        stripe_subscription_id: Subscription ID the invoice bills, if any
        stripe_customer_id: Customer ID
        payment_intent_id: PaymentIntent that paid it, if any
        period_start/period_end: Billed period (first line, else invoice)
        paid_at: When Stripe marked it paid
        description: First line description, or the invoice description
        failure_reason: Last payment error message, if any
    """

    stripe_invoice_id: str
    amount_cents: int
    currency: str
    status: str = ""
    stripe_subscription_id: str | None = None
    stripe_customer_id: str | None = None
    payment_intent_id: str | None = None
    period_start: datetime | None = None
    period_end: datetime | None = None
    paid_at: datetime | None = None
    description: str = ""
    failure_reason: str = ""

    @property
    def amount(self) -> Decimal:
        return from_minor_units(self.amount_cents)

    @classmethod
    def from_stripe(cls, obj: dict[str, Any]) -> InvoiceData:
        lines = ((obj.get("lines") or {}).get("data")) or []
        first_line = lines[0] if lines else {}
        line_period = first_line.get("period") or {}

        subscription_id = obj.get("subscription")
        if isinstance(subscription_id, dict):
            subscription_id = subscription_id.get("id")
        if not subscription_id:
            # Newer API versions nest it under parent.subscription_details.
            details = (obj.get("parent") or {}).get("subscription_details") or {}
            subscription_id = details.get("subscription")

        payment_intent = obj.get("payment_intent")
        if isinstance(payment_intent, dict):
            payment_intent = payment_intent.get("id")

        transitions = obj.get("status_transitions") or {}
        last_error = obj.get("last_payment_error") or {}

        amount = obj.get("amount_paid") or obj.get("amount_due") or 0
        return cls(
            stripe_invoice_id=obj["id"],
            amount_cents=int(amount),
            currency=(obj.get("currency") or "gbp").upper(),
            status=obj.get("status") or "",
            stripe_subscription_id=subscription_id,
            stripe_customer_id=obj.get("customer"),
            payment_intent_id=payment_intent,
            period_start=from_timestamp(line_period.get("start") or obj.get("period_start")),
            period_end=from_timestamp(line_period.get("end") or obj.get("period_end")),
            paid_at=from_timestamp(transitions.get("paid_at")),
            description=first_line.get("description") or obj.get("description") or "",
            failure_reason=last_error.get("message") or "",
        )
