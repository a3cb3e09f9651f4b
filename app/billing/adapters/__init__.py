"""
Adapters for external services.

All Stripe API calls go through StripeAdapter so error handling,
timeouts and logging are consistent.
"""

from billing.adapters.stripe_adapter import (
    IdempotencyKeyGenerator,
    InvoiceItemResult,
    InvoiceResult,
    StripeAdapter,
    SubscriptionResult,
    VerifiedEvent,
    is_retryable_stripe_error,
)

__all__ = [
    "IdempotencyKeyGenerator",
    "InvoiceItemResult",
    "InvoiceResult",
    "StripeAdapter",
    "SubscriptionResult",
    "VerifiedEvent",
    "is_retryable_stripe_error",
]
