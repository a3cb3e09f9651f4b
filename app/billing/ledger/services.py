"""
Payment ledger service.

This module provides the PaymentLedger class which is the only writer of
Payment and Invoice rows. Every write is keyed by a Stripe identifier
(invoice id, or payment intent id for payments that have no invoice), so
replays of the same fact converge on one row.

Concurrency:
    Two writers racing on the same invoice both try to create. The loser
    gets an IntegrityError from the unique stripe_invoice_id constraint,
    re-reads the winner inside a savepoint and updates it. The conflict is
    never surfaced to the caller.

Usage:
    from billing.ledger import PaymentLedger

    payment = PaymentLedger.persist_successful_payment(
        invoice_id="in_123",
        user=member,
        amount=Decimal("75.00"),
        currency="GBP",
        description="Monthly membership payment",
        routed_entity_id="entity_1",
        operation_id="op_1",
    )
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import TYPE_CHECKING

from django.db import IntegrityError, transaction
from django.utils import timezone

from billing.exceptions import BillingValidationError, InvalidStateTransitionError
from billing.ledger.types import InvoiceData
from billing.models import Invoice, Payment
from billing.proration.types import to_decimal, to_minor_units
from billing.state_machines import PaymentStatus, SubscriptionStatus
from billing.sync import set_subscription_status

if TYPE_CHECKING:
    from django.contrib.auth.models import AbstractBaseUser

    from billing.models import Subscription

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_REASON = "Payment declined"


class PaymentLedger:
    """
    Service class for ledger writes.

    All methods are classmethods and must be called inside the caller's
    transaction when they are part of a larger unit of work.
    """

    # =========================================================================
    # Payments
    # =========================================================================

    @classmethod
    def persist_successful_payment(
        cls,
        invoice_id: str | None,
        user: AbstractBaseUser,
        amount: Decimal | int | str,
        currency: str,
        description: str = "",
        routed_entity_id: str = "",
        operation_id: str = "",
        subscription: Subscription | None = None,
        invoice: Invoice | None = None,
        payment_intent_id: str | None = None,
    ) -> Payment:
        """
        Record a confirmed payment exactly once per Stripe invoice.

        Args:
            invoice_id: Stripe Invoice ID; None for invoice-less payments,
                which are then keyed by payment_intent_id
            user: Member who paid
            amount: Amount in pounds
            currency: ISO 4217 code (stored upper-case)
            description: Human-readable description (refreshed on replay)
            routed_entity_id: Business entity the payment is routed to
            operation_id: Idempotency key of the caller
            subscription: Subscription the payment belongs to
            invoice: Local Invoice snapshot to link
            payment_intent_id: Stripe PaymentIntent ID

        Returns:
            The single CONFIRMED Payment for the invoice

        Raises:
            BillingValidationError: Neither invoice_id nor payment_intent_id given
        """
        cls._require_key(invoice_id, payment_intent_id)
        fields = {
            "amount_cents": to_minor_units(to_decimal(amount)),
            "currency": currency.upper(),
            "status": PaymentStatus.CONFIRMED,
            "description": description,
            "processed_at": timezone.now(),
            "failure_reason": None,
            "failed_at": None,
        }
        if routed_entity_id:
            fields["routed_entity_id"] = routed_entity_id
        if operation_id:
            fields["operation_id"] = operation_id
        if subscription is not None:
            fields["subscription"] = subscription
        if invoice is not None:
            fields["invoice"] = invoice
        if payment_intent_id:
            fields["stripe_payment_intent_id"] = payment_intent_id

        existing = cls._find(invoice_id, payment_intent_id)
        if existing is not None:
            return cls._update(existing, fields)

        try:
            with transaction.atomic():
                payment = Payment.objects.create(
                    owner=user,
                    stripe_invoice_id=invoice_id,
                    **fields,
                )
        except IntegrityError:
            logger.info(
                "Concurrent payment write detected, updating winner",
                extra={"stripe_invoice_id": invoice_id, "operation_id": operation_id},
            )
            with transaction.atomic():
                winner = cls._find(invoice_id, payment_intent_id, lock=True)
                if winner is None:
                    raise
                return cls._update(winner, fields)

        logger.info(
            "Recorded confirmed payment",
            extra={
                "payment_id": str(payment.id),
                "stripe_invoice_id": invoice_id,
                "amount_cents": payment.amount_cents,
                "operation_id": operation_id,
            },
        )
        return payment

    @classmethod
    def persist_failed_payment(
        cls,
        invoice_id: str,
        user: AbstractBaseUser,
        amount: Decimal | int | str,
        currency: str,
        reason: str = DEFAULT_FAILURE_REASON,
        subscription: Subscription | None = None,
        operation_id: str = "",
        description: str = "Failed monthly membership payment",
        invoice: Invoice | None = None,
    ) -> Payment:
        """
        Record a failed payment and suspend the subscription.

        A CONFIRMED payment for the same invoice is never downgraded; the
        failure is then stale and nothing else changes.

        Cascade:
            Subscription -> PAST_DUE, Membership -> SUSPENDED (skipped for
            cancelled subscriptions)
        """
        cls._require_key(invoice_id, None)
        now = timezone.now()
        fields = {
            "amount_cents": to_minor_units(to_decimal(amount)),
            "currency": currency.upper(),
            "status": PaymentStatus.FAILED,
            "description": description,
            "failure_reason": reason or DEFAULT_FAILURE_REASON,
            "failed_at": now,
        }
        if operation_id:
            fields["operation_id"] = operation_id
        if subscription is not None:
            fields["subscription"] = subscription
        if invoice is not None:
            fields["invoice"] = invoice

        with transaction.atomic():
            existing = cls._find(invoice_id, None, lock=True)
            if existing is not None and existing.status == PaymentStatus.CONFIRMED:
                logger.info(
                    "Ignoring failure for already confirmed payment",
                    extra={"payment_id": str(existing.id), "stripe_invoice_id": invoice_id},
                )
                return existing

            if existing is not None:
                payment = cls._update(existing, fields)
            else:
                try:
                    with transaction.atomic():
                        payment = Payment.objects.create(
                            owner=user,
                            stripe_invoice_id=invoice_id,
                            **fields,
                        )
                except IntegrityError:
                    winner = cls._find(invoice_id, None, lock=True)
                    if winner is None:
                        raise
                    if winner.status == PaymentStatus.CONFIRMED:
                        return winner
                    payment = cls._update(winner, fields)

            if subscription is not None and subscription.status != SubscriptionStatus.CANCELLED:
                try:
                    set_subscription_status(subscription, SubscriptionStatus.PAST_DUE)
                except InvalidStateTransitionError:
                    logger.warning(
                        "Could not mark subscription past due",
                        extra={"subscription_id": str(subscription.id)},
                    )

        logger.info(
            "Recorded failed payment",
            extra={
                "payment_id": str(payment.id),
                "stripe_invoice_id": invoice_id,
                "reason": payment.failure_reason,
            },
        )
        return payment

    @classmethod
    def persist_pending_payment(
        cls,
        invoice_id: str,
        user: AbstractBaseUser,
        amount: Decimal | int | str,
        currency: str,
        description: str = "Payment requires customer action",
        subscription: Subscription | None = None,
    ) -> Payment:
        """
        Record a payment awaiting customer action (e.g. 3DS).

        Existing rows keep their status; only a missing row is created.
        """
        cls._require_key(invoice_id, None)
        existing = cls._find(invoice_id, None)
        if existing is not None:
            return existing
        try:
            with transaction.atomic():
                return Payment.objects.create(
                    owner=user,
                    subscription=subscription,
                    stripe_invoice_id=invoice_id,
                    amount_cents=to_minor_units(to_decimal(amount)),
                    currency=currency.upper(),
                    status=PaymentStatus.PENDING,
                    description=description,
                )
        except IntegrityError:
            return cls._find(invoice_id, None)

    # =========================================================================
    # Invoices
    # =========================================================================

    @classmethod
    def upsert_invoice(
        cls,
        subscription: Subscription | None,
        invoice_data: InvoiceData | dict,
    ) -> Invoice:
        """
        Create or refresh the local snapshot of a Stripe invoice.

        Args:
            subscription: Local subscription the invoice bills
            invoice_data: InvoiceData, or a raw Stripe invoice dict
        """
        if isinstance(invoice_data, dict):
            invoice_data = InvoiceData.from_stripe(invoice_data)

        defaults = {
            "subscription": subscription,
            "amount_cents": invoice_data.amount_cents,
            "currency": invoice_data.currency,
            "status": invoice_data.status,
            "period_start": invoice_data.period_start,
            "period_end": invoice_data.period_end,
        }
        if invoice_data.paid_at or invoice_data.status == "paid":
            defaults["paid_at"] = invoice_data.paid_at or timezone.now()

        try:
            with transaction.atomic():
                invoice, created = Invoice.objects.update_or_create(
                    stripe_invoice_id=invoice_data.stripe_invoice_id,
                    defaults=defaults,
                )
        except IntegrityError:
            with transaction.atomic():
                invoice = Invoice.objects.select_for_update().get(
                    stripe_invoice_id=invoice_data.stripe_invoice_id
                )
                for field_name, value in defaults.items():
                    setattr(invoice, field_name, value)
                invoice.save()
            created = False

        logger.debug(
            "Upserted invoice",
            extra={"stripe_invoice_id": invoice.stripe_invoice_id, "created": created},
        )
        return invoice

    # =========================================================================
    # Internals
    # =========================================================================

    @staticmethod
    def _require_key(invoice_id: str | None, payment_intent_id: str | None) -> None:
        if not invoice_id and not payment_intent_id:
            raise BillingValidationError(
                "A Stripe invoice id or payment intent id is required",
                error_code="MISSING_PAYMENT_KEY",
            )

    @staticmethod
    def _find(
        invoice_id: str | None,
        payment_intent_id: str | None,
        lock: bool = False,
    ) -> Payment | None:
        queryset = Payment.objects.select_for_update() if lock else Payment.objects.all()
        if invoice_id:
            return queryset.filter(stripe_invoice_id=invoice_id).first()
        return queryset.filter(
            stripe_invoice_id__isnull=True,
            stripe_payment_intent_id=payment_intent_id,
        ).first()

    @staticmethod
    def _update(payment: Payment, fields: dict) -> Payment:
        for field_name, value in fields.items():
            setattr(payment, field_name, value)
        payment.save()
        return payment
