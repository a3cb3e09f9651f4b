"""
Stripe API adapter for billing operations.

This module provides the StripeAdapter class which encapsulates every
Stripe API interaction of the billing subsystem. Nothing else imports the
stripe SDK, so timeouts, error translation and logging stay consistent.

Several Stripe accounts can be configured (settings.STRIPE_ACCOUNTS,
keyed by account key, e.g. "SU"). Every call takes the account key of the
subscription it acts on and passes that account's secret key per request;
the global stripe.api_key is never set.

Features:
- Per-account API keys
- Configurable timeout on all API calls
- Automatic error translation to billing exceptions
- Structured logging with timing metrics
- Idempotency keys for credit invoice items

Usage:
    from billing.adapters import StripeAdapter

    result = StripeAdapter.retrieve_subscription("sub_xxx", account_key="SU")
    if not result.is_paused:
        StripeAdapter.pause_collection("sub_xxx", behavior="void", account_key="SU")
"""

from __future__ import annotations

import hashlib
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from datetime import timezone as dt_timezone
from typing import Any

import stripe
from django.conf import settings

from billing.exceptions import (
    StripeAPIUnavailableError,
    StripeAuthenticationError,
    StripeError,
    StripeInvalidRequestError,
    StripeRateLimitError,
    WebhookSignatureError,
)

DEFAULT_ACCOUNT_KEY = "SU"


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class SubscriptionResult:
    """
    Result from Stripe Subscription operations.

    Attributes:
        id: Subscription ID (sub_xxx)
        status: Stripe status (active, trialing, past_due, canceled, ...)
        customer_id: Customer ID (cus_xxx)
        pause_collection: Stripe pause_collection dict, None when not paused
        current_period_start/end: Current billing period
        cancel_at_period_end: Whether cancellation is scheduled
        metadata: Attached metadata
        raw_response: Full Stripe response dict
    """

    id: str
    status: str
    customer_id: str | None = None
    pause_collection: dict[str, Any] | None = None
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None
    cancel_at_period_end: bool = False
    metadata: dict[str, str] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)

    @property
    def is_paused(self) -> bool:
        return bool(self.pause_collection)


@dataclass
class InvoiceResult:
    """
    Result from Stripe Invoice operations.

    Amounts are in pence as Stripe reports them.
    """

    id: str
    status: str
    customer_id: str | None = None
    subscription_id: str | None = None
    amount_due: int = 0
    amount_paid: int = 0
    currency: str = "gbp"
    period_start: datetime | None = None
    period_end: datetime | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class InvoiceItemResult:
    id: str
    amount_cents: int
    currency: str
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class VerifiedEvent:
    """
    A webhook event whose signature checked out.

    Attributes:
        id: Event ID (evt_xxx)
        type: Event type (e.g. "invoice.payment_succeeded")
        account_key: Account whose webhook secret verified the payload
        payload: Full event dict
    """

    id: str
    type: str
    account_key: str
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def data_object(self) -> dict[str, Any]:
        return (self.payload.get("data") or {}).get("object") or {}


# =============================================================================
# Helpers
# =============================================================================


class IdempotencyKeyGenerator:
    """
    Generate idempotency keys for Stripe API calls.

    Format: "{operation}:{entity_id}:{attempt}:{hash}"

    Example:
        key = IdempotencyKeyGenerator.generate("pause_credit", window.id)
        # "pause_credit:550e8400-e29b-41d4-a716-446655440000:1:a1b2c3d4"
    """

    @staticmethod
    def generate(
        operation: str,
        entity_id: uuid.UUID | str,
        attempt: int = 1,
    ) -> str:
        entity_str = str(entity_id)
        hash_input = f"{operation}:{entity_str}:{attempt}:{settings.SECRET_KEY}"
        short_hash = hashlib.sha256(hash_input.encode()).hexdigest()[:8]
        return f"{operation}:{entity_str}:{attempt}:{short_hash}"


def is_retryable_stripe_error(error: Exception) -> bool:
    """True if error is a transient StripeError a later pass may fix."""
    if isinstance(error, StripeError):
        return getattr(error, "is_retryable", False)
    return False


def from_timestamp(value: int | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=dt_timezone.utc)


def to_plain_dict(obj: Any) -> dict[str, Any]:
    """StripeObject (or plain mapping) to a plain dict."""
    if obj is None:
        return {}
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return dict(obj)


# =============================================================================
# Stripe Adapter
# =============================================================================


class StripeAdapter:
    """
    Adapter for Stripe API operations.

    All methods are classmethods - no instance state is maintained.
    Thread-safe for use from Celery workers.

    Configuration (via settings):
    - STRIPE_ACCOUNTS: {key: {"secret_key": ..., "webhook_secret": ...}}
    - STRIPE_DEFAULT_ACCOUNT: Account used when none is given (default: "SU")
    - STRIPE_API_TIMEOUT_SECONDS: API call timeout (default: 10)
    """

    # =========================================================================
    # Configuration
    # =========================================================================

    @staticmethod
    def _configure_stripe() -> None:
        """Configure the HTTP client timeout."""
        timeout = getattr(settings, "STRIPE_API_TIMEOUT_SECONDS", 10)
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)

    @staticmethod
    def accounts() -> dict[str, dict[str, str]]:
        return getattr(settings, "STRIPE_ACCOUNTS", {}) or {}

    @classmethod
    def _api_key(cls, account_key: str | None) -> str:
        key = account_key or getattr(settings, "STRIPE_DEFAULT_ACCOUNT", DEFAULT_ACCOUNT_KEY)
        secret = (cls.accounts().get(key) or {}).get("secret_key")
        if not secret:
            raise StripeAuthenticationError(
                f"No Stripe secret key configured for account {key}",
                stripe_code="missing_api_key",
                details={"account_key": key},
            )
        return secret

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    # =========================================================================
    # Subscriptions
    # =========================================================================

    @classmethod
    def retrieve_subscription(
        cls,
        subscription_id: str,
        account_key: str | None = None,
    ) -> SubscriptionResult:
        """
        Retrieve a Subscription from Stripe.

        Args:
            subscription_id: Stripe Subscription ID (sub_xxx)
            account_key: Configured account holding the subscription

        Returns:
            SubscriptionResult

        Raises:
            StripeInvalidRequestError: Subscription not found
            StripeAPIUnavailableError: Stripe service unavailable
        """
        return cls._call(
            "retrieve_subscription",
            {"subscription_id": subscription_id, "account_key": account_key},
            lambda api_key: cls._subscription_result(
                stripe.Subscription.retrieve(subscription_id, api_key=api_key)
            ),
            account_key,
        )

    @classmethod
    def pause_collection(
        cls,
        subscription_id: str,
        behavior: str,
        account_key: str | None = None,
        resumes_at: datetime | None = None,
    ) -> SubscriptionResult:
        """
        Pause collection on a subscription.

        Args:
            subscription_id: Stripe Subscription ID
            behavior: void, keep_as_draft or mark_uncollectible
            account_key: Configured account holding the subscription
            resumes_at: When Stripe should resume collection by itself
        """
        pause: dict[str, Any] = {"behavior": behavior}
        if resumes_at is not None:
            pause["resumes_at"] = int(resumes_at.timestamp())

        return cls._call(
            "pause_collection",
            {
                "subscription_id": subscription_id,
                "behavior": behavior,
                "resumes_at": pause.get("resumes_at"),
                "account_key": account_key,
            },
            lambda api_key: cls._subscription_result(
                stripe.Subscription.modify(
                    subscription_id,
                    pause_collection=pause,
                    api_key=api_key,
                )
            ),
            account_key,
        )

    @classmethod
    def resume_collection(
        cls,
        subscription_id: str,
        account_key: str | None = None,
    ) -> SubscriptionResult:
        """
        Clear pause_collection without prorating.

        An empty string unsets the field in the Stripe API.
        """
        return cls._call(
            "resume_collection",
            {"subscription_id": subscription_id, "account_key": account_key},
            lambda api_key: cls._subscription_result(
                stripe.Subscription.modify(
                    subscription_id,
                    pause_collection="",
                    proration_behavior="none",
                    api_key=api_key,
                )
            ),
            account_key,
        )

    # =========================================================================
    # Invoices
    # =========================================================================

    @classmethod
    def list_open_invoices(
        cls,
        customer_id: str,
        account_key: str | None = None,
        limit: int = 10,
    ) -> list[InvoiceResult]:
        """List a customer's open invoices, newest first."""

        def fetch(api_key: str) -> list[InvoiceResult]:
            invoices = stripe.Invoice.list(
                customer=customer_id,
                status="open",
                limit=min(limit, 100),
                api_key=api_key,
            )
            return [cls._invoice_result(invoice) for invoice in invoices.data]

        return cls._call(
            "list_open_invoices",
            {"customer_id": customer_id, "limit": limit, "account_key": account_key},
            fetch,
            account_key,
        )

    @classmethod
    def retrieve_invoice(
        cls,
        invoice_id: str,
        account_key: str | None = None,
    ) -> InvoiceResult:
        return cls._call(
            "retrieve_invoice",
            {"invoice_id": invoice_id, "account_key": account_key},
            lambda api_key: cls._invoice_result(
                stripe.Invoice.retrieve(invoice_id, api_key=api_key)
            ),
            account_key,
        )

    @classmethod
    def void_invoice(
        cls,
        invoice_id: str,
        account_key: str | None = None,
    ) -> InvoiceResult:
        return cls._call(
            "void_invoice",
            {"invoice_id": invoice_id, "account_key": account_key},
            lambda api_key: cls._invoice_result(
                stripe.Invoice.void_invoice(invoice_id, api_key=api_key)
            ),
            account_key,
        )

    @classmethod
    def pay_invoice(
        cls,
        invoice_id: str,
        account_key: str | None = None,
    ) -> InvoiceResult:
        return cls._call(
            "pay_invoice",
            {"invoice_id": invoice_id, "account_key": account_key},
            lambda api_key: cls._invoice_result(
                stripe.Invoice.pay(invoice_id, api_key=api_key)
            ),
            account_key,
        )

    @classmethod
    def create_credit_invoice_item(
        cls,
        customer_id: str,
        amount_cents: int,
        currency: str,
        description: str,
        idempotency_key: str,
        account_key: str | None = None,
        subscription_id: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> InvoiceItemResult:
        """
        Add a negative invoice item that the next invoice picks up.

        Args:
            customer_id: Stripe Customer ID
            amount_cents: Credit in pence (positive; sent negated)
            currency: ISO 4217 code
            description: Line description shown on the invoice
            idempotency_key: Key making retries safe
            account_key: Configured account holding the customer
            subscription_id: Attach the item to this subscription's next invoice
            metadata: Attached metadata
        """
        if amount_cents <= 0:
            raise StripeInvalidRequestError(
                "Credit amount must be positive",
                details={"amount_cents": amount_cents},
            )

        params: dict[str, Any] = {
            "customer": customer_id,
            "amount": -amount_cents,
            "currency": currency.lower(),
            "description": description,
            "metadata": metadata or {},
        }
        if subscription_id:
            params["subscription"] = subscription_id

        def create(api_key: str) -> InvoiceItemResult:
            item = stripe.InvoiceItem.create(
                api_key=api_key,
                idempotency_key=idempotency_key,
                **params,
            )
            data = to_plain_dict(item)
            return InvoiceItemResult(
                id=data["id"],
                amount_cents=data.get("amount", -amount_cents),
                currency=data.get("currency", currency.lower()),
                raw_response=data,
            )

        return cls._call(
            "create_credit_invoice_item",
            {
                "customer_id": customer_id,
                "amount_cents": amount_cents,
                "idempotency_key": idempotency_key,
                "account_key": account_key,
            },
            create,
            account_key,
        )

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    @classmethod
    def subscription_from_payload(cls, data: dict[str, Any]) -> SubscriptionResult:
        """Build a SubscriptionResult from a webhook data.object (no API call)."""
        return cls._subscription_result(data)

    @classmethod
    def verify_webhook_signature(
        cls,
        payload: bytes,
        signature: str | None,
    ) -> VerifiedEvent:
        """
        Verify a webhook payload against every configured account secret.

        Args:
            payload: Raw request body
            signature: Stripe-Signature header value

        Returns:
            VerifiedEvent carrying the key of the account that verified it

        Raises:
            WebhookSignatureError: Missing signature, or no secret verifies
        """
        logger = cls.get_logger()
        if not signature:
            raise WebhookSignatureError("Missing Stripe-Signature header")

        for account_key, account in cls.accounts().items():
            secret = account.get("webhook_secret")
            if not secret:
                continue
            try:
                event = stripe.Webhook.construct_event(payload, signature, secret)
            except stripe.SignatureVerificationError:
                continue
            except ValueError as e:
                raise WebhookSignatureError(
                    "Invalid webhook payload",
                    details={"error": str(e)},
                ) from e

            data = to_plain_dict(event)
            logger.debug(
                "Webhook signature verified",
                extra={"event_id": data.get("id"), "account_key": account_key},
            )
            return VerifiedEvent(
                id=data["id"],
                type=data["type"],
                account_key=account_key,
                payload=data,
            )

        raise WebhookSignatureError(
            "Invalid webhook signature",
            stripe_code="signature_verification_failed",
        )

    # =========================================================================
    # Internals
    # =========================================================================

    @classmethod
    def _call(cls, operation: str, log_context: dict[str, Any], fn, account_key: str | None):
        cls._configure_stripe()
        logger = cls.get_logger()
        log_context = {"operation": operation, **log_context}
        api_key = cls._api_key(account_key)

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            result = fn(api_key)
        except StripeError:
            raise
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            "Stripe operation completed",
            extra={**log_context, "duration_ms": duration_ms},
        )
        return result

    @staticmethod
    def _subscription_result(subscription: Any) -> SubscriptionResult:
        data = to_plain_dict(subscription)
        period_start = data.get("current_period_start")
        period_end = data.get("current_period_end")
        if period_start is None:
            # Newer API versions carry the period on the subscription items.
            items = ((data.get("items") or {}).get("data")) or []
            if items:
                period_start = items[0].get("current_period_start")
                period_end = items[0].get("current_period_end")

        return SubscriptionResult(
            id=data["id"],
            status=data.get("status", ""),
            customer_id=data.get("customer"),
            pause_collection=data.get("pause_collection") or None,
            current_period_start=from_timestamp(period_start),
            current_period_end=from_timestamp(period_end),
            cancel_at_period_end=bool(data.get("cancel_at_period_end")),
            metadata=dict(data.get("metadata") or {}),
            raw_response=data,
        )

    @staticmethod
    def _invoice_result(invoice: Any) -> InvoiceResult:
        data = to_plain_dict(invoice)
        return InvoiceResult(
            id=data["id"],
            status=data.get("status") or "",
            customer_id=data.get("customer"),
            subscription_id=data.get("subscription"),
            amount_due=data.get("amount_due") or 0,
            amount_paid=data.get("amount_paid") or 0,
            currency=data.get("currency") or "gbp",
            period_start=from_timestamp(data.get("period_start")),
            period_end=from_timestamp(data.get("period_end")),
            raw_response=data,
        )

    @classmethod
    def _handle_stripe_error(
        cls,
        error: Exception,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate Stripe SDK exceptions to billing exceptions.

        Raises:
            StripeInvalidRequestError: Invalid parameters or card refused
            StripeAuthenticationError: API key rejected
            StripeRateLimitError: Rate limited
            StripeAPIUnavailableError: Network, Stripe 5xx or unknown error
        """
        logger = cls.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, stripe.CardError):
            # Raised by invoice.pay when the customer's card is refused.
            logger.warning(
                "Card error from Stripe",
                extra={**log_context, "decline_code": getattr(error, "decline_code", None)},
            )
            raise StripeInvalidRequestError(
                str(error.user_message or error),
                error_code="STRIPE_CARD_DECLINED",
                stripe_code=error.code,
            ) from error

        elif isinstance(error, stripe.InvalidRequestError):
            logger.error(
                "Invalid request to Stripe",
                extra={**log_context, "stripe_code": error.code},
            )
            raise StripeInvalidRequestError(
                str(error),
                stripe_code=error.code,
            ) from error

        elif isinstance(error, stripe.RateLimitError):
            logger.warning("Rate limited by Stripe", extra=log_context)
            raise StripeRateLimitError(
                "Stripe rate limit exceeded. Please retry.",
                stripe_code="rate_limit",
            ) from error

        elif isinstance(error, stripe.APIConnectionError):
            logger.error("Connection error to Stripe", extra=log_context, exc_info=True)
            raise StripeAPIUnavailableError(
                "Could not connect to Stripe. Please retry.",
                stripe_code="api_connection_error",
            ) from error

        elif isinstance(error, stripe.APIError):
            logger.error("Stripe API error", extra=log_context, exc_info=True)
            raise StripeAPIUnavailableError(
                "Stripe service error. Please retry.",
                stripe_code="api_error",
            ) from error

        elif isinstance(error, stripe.AuthenticationError):
            logger.critical(
                "Stripe authentication failed - check API key",
                extra=log_context,
            )
            raise StripeAuthenticationError(
                "Stripe authentication failed",
                stripe_code="authentication_error",
            ) from error

        else:
            logger.error(
                f"Unexpected error from Stripe: {type(error).__name__}",
                extra=log_context,
                exc_info=True,
            )
            raise StripeAPIUnavailableError(
                f"Unexpected Stripe error: {error}",
                stripe_code="unknown_error",
            ) from error
