"""
Webhook handling for billing events from Stripe.

Webhooks are verified, stored idempotently and processed inline; failed
events are retried by the retry_failed_webhooks task.

Usage:
    # In urls.py
    from billing.webhooks.views import stripe_webhook

    urlpatterns = [
        path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
    ]
"""

from billing.webhooks.handlers import dispatch_webhook, register_handler
from billing.webhooks.processing import process_event
from billing.webhooks.views import stripe_webhook

__all__ = [
    "dispatch_webhook",
    "process_event",
    "register_handler",
    "stripe_webhook",
]
