"""
Webhook event handlers for Stripe billing events.

This module provides a handler registry and the handlers for invoice,
subscription and payment intent events. Every handler:
- re-checks existing rows by external id before writing (events are
  delivered at least once and out of order)
- returns a ServiceResult; success for events that need no action
- raises only for unexpected errors, which the processor records

Usage:
    from billing.webhooks.handlers import dispatch_webhook, register_handler

    @register_handler("custom.event")
    def handle_custom_event(webhook_event: WebhookEvent) -> ServiceResult:
        ...

    result = dispatch_webhook(webhook_event)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

from django.db import transaction

from core.services import ServiceResult

from billing.adapters import StripeAdapter
from billing.ledger import InvoiceData, PaymentLedger
from billing.models import Subscription, WebhookEvent
from billing.proration import from_minor_units
from billing.state_machines import SubscriptionStatus, subscription_status_from_stripe
from billing.sync import apply_upstream_fields, set_subscription_status

if TYPE_CHECKING:
    from typing import Any


logger = logging.getLogger(__name__)

INITIAL_PAYMENT_DESCRIPTION = "Initial subscription payment (prorated)"
MONTHLY_PAYMENT_DESCRIPTION = "Monthly membership payment"
PRORATED_FIRST_PERIOD = "prorated_first_period"

# Statuses a paid invoice moves to ACTIVE. PAUSED is left to the
# pause services and the reconciler.
ACTIVATABLE_STATES = [
    SubscriptionStatus.TRIALING,
    SubscriptionStatus.PAST_DUE,
    SubscriptionStatus.INCOMPLETE,
    SubscriptionStatus.INCOMPLETE_EXPIRED,
]


# =============================================================================
# Handler Registry
# =============================================================================


# Maps event type strings to handler functions
WEBHOOK_HANDLERS: dict[str, Callable[[WebhookEvent], ServiceResult]] = {}


def register_handler(*event_types: str) -> Callable:
    """
    Decorator to register a webhook event handler for one or more types.

    Usage:
        @register_handler("invoice.payment_succeeded", "invoice.paid")
        def handle_invoice_paid(webhook_event: WebhookEvent) -> ServiceResult:
            ...
    """

    def decorator(func: Callable[[WebhookEvent], ServiceResult]) -> Callable:
        for event_type in event_types:
            WEBHOOK_HANDLERS[event_type] = func
            logger.debug(f"Registered webhook handler for {event_type}")
        return func

    return decorator


def dispatch_webhook(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Dispatch a webhook event to its handler.

    Unknown event types are acknowledged as a successful no-op.
    """
    handler = WEBHOOK_HANDLERS.get(webhook_event.event_type)

    if not handler:
        logger.info(
            f"No handler registered for event type: {webhook_event.event_type}",
            extra={"stripe_event_id": webhook_event.stripe_event_id},
        )
        return ServiceResult.success(None)

    logger.info(
        f"Dispatching {webhook_event.event_type} to handler",
        extra={"stripe_event_id": webhook_event.stripe_event_id},
    )

    return handler(webhook_event)


# =============================================================================
# Lookups
# =============================================================================


def find_subscription(
    stripe_subscription_id: str | None,
    metadata: dict[str, Any] | None = None,
    *,
    backfill: bool = False,
) -> Subscription | None:
    """
    Find the local subscription for a Stripe subscription id.

    Falls back to metadata.dbSubscriptionId, set when the Stripe
    subscription was created before the local row knew its id. With
    backfill, a local row without a Stripe id is linked.
    """
    subscription = None
    if stripe_subscription_id:
        subscription = (
            Subscription.objects.select_related("owner")
            .filter(stripe_subscription_id=stripe_subscription_id)
            .first()
        )
    if subscription is not None:
        return subscription

    db_subscription_id = (metadata or {}).get("dbSubscriptionId")
    if not db_subscription_id:
        return None
    subscription = Subscription.objects.select_related("owner").filter(pk=db_subscription_id).first()
    if subscription is None:
        return None

    if backfill and stripe_subscription_id and not subscription.stripe_subscription_id:
        subscription.stripe_subscription_id = stripe_subscription_id
        subscription.save(update_fields=["stripe_subscription_id", "updated_at"])
        logger.info(
            "Linked Stripe subscription id from metadata",
            extra={
                "subscription_id": str(subscription.id),
                "stripe_subscription_id": stripe_subscription_id,
            },
        )
    return subscription


def _operation_id(webhook_event: WebhookEvent) -> str:
    return f"webhook_{webhook_event.stripe_event_id}"


def _activate(subscription: Subscription) -> None:
    if subscription.status in ACTIVATABLE_STATES:
        set_subscription_status(subscription, SubscriptionStatus.ACTIVE)


# =============================================================================
# Invoice Handlers
# =============================================================================


@register_handler("invoice.payment_succeeded", "invoice.paid")
def handle_invoice_paid(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Record a paid invoice.

    Upserts the Invoice snapshot, records the CONFIRMED payment once per
    invoice id and activates the subscription. invoice.paid and
    invoice.payment_succeeded for the same invoice converge on one row.
    """
    data_object = webhook_event.get_object()
    if not data_object.get("id"):
        return ServiceResult.failure(
            "Could not extract invoice id from webhook",
            error_code="INVALID_WEBHOOK_PAYLOAD",
        )

    invoice_data = InvoiceData.from_stripe(data_object)
    metadata = data_object.get("metadata") or {}
    subscription = find_subscription(invoice_data.stripe_subscription_id, metadata)
    if subscription is None:
        logger.info(
            "Paid invoice has no local subscription, ignoring",
            extra={
                "stripe_event_id": webhook_event.stripe_event_id,
                "stripe_invoice_id": invoice_data.stripe_invoice_id,
            },
        )
        return ServiceResult.success(None)

    description = (
        INITIAL_PAYMENT_DESCRIPTION
        if data_object.get("billing_reason") == "subscription_create"
        else MONTHLY_PAYMENT_DESCRIPTION
    )

    with transaction.atomic():
        invoice = PaymentLedger.upsert_invoice(subscription, invoice_data)
        payment = PaymentLedger.persist_successful_payment(
            invoice_id=invoice_data.stripe_invoice_id,
            user=subscription.owner,
            amount=invoice_data.amount,
            currency=invoice_data.currency,
            description=description,
            routed_entity_id=metadata.get("routedEntityId", ""),
            operation_id=_operation_id(webhook_event),
            subscription=subscription,
            invoice=invoice,
            payment_intent_id=invoice_data.payment_intent_id,
        )

        if not subscription.is_cancelled:
            _activate(subscription)
            if invoice_data.period_end:
                subscription.current_period_start = invoice_data.period_start
                subscription.current_period_end = invoice_data.period_end
                subscription.next_billing_date = invoice_data.period_end
                subscription.save(
                    update_fields=[
                        "current_period_start",
                        "current_period_end",
                        "next_billing_date",
                        "updated_at",
                    ]
                )

    logger.info(
        "Processed paid invoice",
        extra={
            "stripe_event_id": webhook_event.stripe_event_id,
            "subscription_id": str(subscription.id),
            "payment_id": str(payment.id),
        },
    )
    return ServiceResult.success(payment)


@register_handler("invoice.payment_failed")
def handle_invoice_payment_failed(webhook_event: WebhookEvent) -> ServiceResult:
    data_object = webhook_event.get_object()
    if not data_object.get("id"):
        return ServiceResult.failure(
            "Could not extract invoice id from webhook",
            error_code="INVALID_WEBHOOK_PAYLOAD",
        )

    invoice_data = InvoiceData.from_stripe(data_object)
    subscription = find_subscription(
        invoice_data.stripe_subscription_id, data_object.get("metadata")
    )
    if subscription is None:
        logger.info(
            "Failed invoice has no local subscription, ignoring",
            extra={"stripe_invoice_id": invoice_data.stripe_invoice_id},
        )
        return ServiceResult.success(None)

    with transaction.atomic():
        invoice = PaymentLedger.upsert_invoice(subscription, invoice_data)
        payment = PaymentLedger.persist_failed_payment(
            invoice_id=invoice_data.stripe_invoice_id,
            user=subscription.owner,
            amount=from_minor_units(data_object.get("amount_due") or invoice_data.amount_cents),
            currency=invoice_data.currency,
            reason=invoice_data.failure_reason or "Payment declined",
            subscription=subscription,
            operation_id=_operation_id(webhook_event),
            invoice=invoice,
        )
    return ServiceResult.success(payment)


@register_handler("invoice.payment_action_required")
def handle_invoice_payment_action_required(webhook_event: WebhookEvent) -> ServiceResult:
    """Record a PENDING payment while the member completes authentication."""
    data_object = webhook_event.get_object()
    if not data_object.get("id"):
        return ServiceResult.failure(
            "Could not extract invoice id from webhook",
            error_code="INVALID_WEBHOOK_PAYLOAD",
        )

    invoice_data = InvoiceData.from_stripe(data_object)
    subscription = find_subscription(
        invoice_data.stripe_subscription_id, data_object.get("metadata")
    )
    if subscription is None:
        return ServiceResult.success(None)

    payment = PaymentLedger.persist_pending_payment(
        invoice_id=invoice_data.stripe_invoice_id,
        user=subscription.owner,
        amount=from_minor_units(data_object.get("amount_due") or invoice_data.amount_cents),
        currency=invoice_data.currency,
        subscription=subscription,
    )
    return ServiceResult.success(payment)


# =============================================================================
# Subscription Handlers
# =============================================================================


@register_handler("customer.subscription.created", "customer.subscription.updated")
def handle_subscription_updated(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Sync status and billing fields from a Stripe subscription.

    Uses the same mapping as the reconciler, so a webhook racing a
    reconciliation pass ends in the same state.
    """
    data_object = webhook_event.get_object()
    if not data_object.get("id"):
        return ServiceResult.failure(
            "Could not extract subscription id from webhook",
            error_code="INVALID_WEBHOOK_PAYLOAD",
        )

    upstream = StripeAdapter.subscription_from_payload(data_object)
    target = subscription_status_from_stripe(upstream.status, upstream.pause_collection)

    with transaction.atomic():
        subscription = find_subscription(upstream.id, upstream.metadata, backfill=True)
        if subscription is None:
            logger.info(
                "Subscription not found in database",
                extra={
                    "stripe_event_id": webhook_event.stripe_event_id,
                    "stripe_subscription_id": upstream.id,
                },
            )
            return ServiceResult.success(None)

        subscription = Subscription.objects.select_for_update().get(pk=subscription.pk)
        previous = subscription.status
        set_subscription_status(subscription, target, force=True)
        apply_upstream_fields(subscription, upstream)

    logger.info(
        "Synced subscription from webhook",
        extra={
            "subscription_id": str(subscription.id),
            "stripe_status": upstream.status,
            "previous_status": previous,
            "new_status": target,
        },
    )
    return ServiceResult.success(subscription)


@register_handler("customer.subscription.deleted")
def handle_subscription_deleted(webhook_event: WebhookEvent) -> ServiceResult:
    data_object = webhook_event.get_object()
    subscription = find_subscription(data_object.get("id"))
    if subscription is None:
        return ServiceResult.success(None)

    if subscription.is_cancelled:
        logger.info(
            "Subscription already cancelled",
            extra={"subscription_id": str(subscription.id)},
        )
        return ServiceResult.success(subscription)

    with transaction.atomic():
        subscription = Subscription.objects.select_for_update().get(pk=subscription.pk)
        set_subscription_status(subscription, SubscriptionStatus.CANCELLED)

    logger.info(
        "Subscription cancelled by Stripe",
        extra={"subscription_id": str(subscription.id)},
    )
    return ServiceResult.success(subscription)


# =============================================================================
# Payment Intent Handlers
# =============================================================================


@register_handler("payment_intent.succeeded")
def handle_payment_intent_succeeded(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Activate a signup whose prorated first period was paid asynchronously.

    Only intents tagged reason=prorated_first_period with a
    dbSubscriptionId are handled; the payment is keyed by the intent id
    because there is no invoice.
    """
    data_object = webhook_event.get_object()
    metadata = data_object.get("metadata") or {}
    if metadata.get("reason") != PRORATED_FIRST_PERIOD or not metadata.get("dbSubscriptionId"):
        return ServiceResult.success(None)

    subscription = find_subscription(None, metadata)
    if subscription is None:
        logger.warning(
            "Prorated payment for unknown subscription",
            extra={"db_subscription_id": metadata.get("dbSubscriptionId")},
        )
        return ServiceResult.success(None)

    amount_cents = data_object.get("amount_received") or data_object.get("amount") or 0
    with transaction.atomic():
        payment = PaymentLedger.persist_successful_payment(
            invoice_id=None,
            user=subscription.owner,
            amount=from_minor_units(amount_cents),
            currency=data_object.get("currency") or subscription.currency,
            description=INITIAL_PAYMENT_DESCRIPTION,
            routed_entity_id=metadata.get("routedEntityId", ""),
            operation_id=_operation_id(webhook_event),
            subscription=subscription,
            payment_intent_id=data_object.get("id"),
        )
        if not subscription.is_cancelled:
            _activate(subscription)

    return ServiceResult.success(payment)
