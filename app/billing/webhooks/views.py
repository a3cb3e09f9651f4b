"""
Webhook endpoint view for Stripe.

The view:
1. Verifies the signature against every configured account secret
2. Creates/retrieves the WebhookEvent record (idempotent)
3. Processes the event inline
4. Returns 500 on failure so Stripe redelivers

Usage:
    # In urls.py
    from billing.webhooks.views import stripe_webhook

    urlpatterns = [
        path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
    ]
"""

from __future__ import annotations

import logging

from django.http import HttpRequest, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from billing.adapters import StripeAdapter
from billing.exceptions import WebhookSignatureError
from billing.models import WebhookEvent
from billing.state_machines import WebhookEventStatus
from billing.webhooks.processing import process_event

logger = logging.getLogger(__name__)


@csrf_exempt
@require_POST
def stripe_webhook(request: HttpRequest) -> JsonResponse:
    """
    Receive and process Stripe webhook events.

    Idempotency:
    - WebhookEvent.stripe_event_id is unique
    - Already processed events return 200 without running handlers

    Returns:
        JsonResponse with status:
        - 200: Event processed (new or duplicate)
        - 400: Missing/invalid signature or payload
        - 500: Handler failed; Stripe will redeliver
    """
    payload = request.body
    signature = request.headers.get("Stripe-Signature", "")

    if not signature:
        logger.warning("Webhook received without Stripe-Signature header")
        return JsonResponse({"error": "Missing signature"}, status=400)

    try:
        event = StripeAdapter.verify_webhook_signature(payload, signature)
    except WebhookSignatureError as e:
        logger.warning(
            "Webhook signature verification failed",
            extra={"error": str(e)},
        )
        return JsonResponse({"error": "Invalid signature"}, status=400)

    logger.info(
        f"Received Stripe webhook: {event.type}",
        extra={
            "stripe_event_id": event.id,
            "event_type": event.type,
            "account_key": event.account_key,
        },
    )

    webhook_event, created = WebhookEvent.objects.get_or_create(
        stripe_event_id=event.id,
        defaults={
            "event_type": event.type,
            "payload": event.payload,
            "stripe_account_key": event.account_key,
            "status": WebhookEventStatus.PENDING,
        },
    )

    if not created and webhook_event.is_processed:
        logger.info(
            "Webhook already processed, returning success",
            extra={"stripe_event_id": event.id},
        )
        return JsonResponse({"received": True, "duplicate": True}, status=200)

    outcome = process_event(webhook_event)
    if not outcome.ok:
        return JsonResponse({"error": "Webhook handler failed"}, status=500)

    return JsonResponse({"received": True}, status=200)
