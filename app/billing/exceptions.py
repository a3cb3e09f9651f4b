"""
Billing-specific exceptions.

Exception Hierarchy:
    BillingValidationError (core ValidationError) - rejected synchronously
    ├── ProrationError - Inverted or malformed date ranges
    └── PauseOverlapError - New window overlaps a non-cancelled one

    BillingNotFoundError (core NotFoundError)

    InvalidStateTransitionError (core ConflictError) - FSM transition refused

    ReconciliationError - A reconciliation batch aborted

    StripeError (core ExternalServiceError) - Base for all Stripe errors
    ├── StripeInvalidRequestError - Invalid request params (permanent)
    ├── StripeAuthenticationError - Bad API key (permanent)
    ├── WebhookSignatureError - No configured secret verifies (permanent)
    ├── StripeRateLimitError - Rate limited (transient)
    └── StripeAPIUnavailableError - Network or Stripe-side failure (transient)

Propagation:
    Proration/settlement raise and never partially apply. Orchestration
    (apply, resume, verify, reconcile) catches per subscription and keeps
    going. The admin facade turns anything left into a ServiceResult.

Usage:
    from billing.exceptions import PauseOverlapError

    raise PauseOverlapError(
        "Overlaps with existing pause: Apr 15 - May 2",
        details={"window_id": str(existing.id)},
    )
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Validation
# =============================================================================


class BillingValidationError(ValidationError):
    """Invalid billing input (bad range, bad month key, bad behavior)."""

    default_error_code: str = "BILLING_VALIDATION_ERROR"


class ProrationError(BillingValidationError):
    """Raised by the pure proration/settlement functions on bad input."""

    default_error_code: str = "INVALID_PRORATION_RANGE"


class PauseOverlapError(BillingValidationError):
    """Raised when a pause window would overlap a non-cancelled window."""

    default_error_code: str = "PAUSE_OVERLAP"


class BillingNotFoundError(NotFoundError):
    """Subscription, pause window or payment lookup failed."""

    default_error_code: str = "BILLING_NOT_FOUND"


class ReconciliationError(BaseApplicationError):
    """A reconciliation batch could not run to completion."""

    default_error_code: str = "RECONCILIATION_FAILED"


class InvalidStateTransitionError(ConflictError):
    """
    Raised when a state machine transition is not allowed.

    Wraps django-fsm's TransitionNotAllowed in the standard error format.

    Example:
        try:
            window.cancel()
        except TransitionNotAllowed:
            raise InvalidStateTransitionError(
                f"Cannot cancel pause window in {window.status} state",
                details={"current_state": window.status, "transition": "cancel"},
            )
    """

    default_error_code: str = "INVALID_STATE_TRANSITION"


# =============================================================================
# Stripe-Specific Exceptions
# =============================================================================


class StripeError(ExternalServiceError):
    """
    Base exception for all Stripe-related errors.

    Attributes:
        stripe_code: Stripe's internal error code
        is_retryable: Whether a later pass may succeed

    Note:
        Nothing retries inline. is_retryable only tells the batch summary
        and the Celery webhook task whether a later attempt is worthwhile.
    """

    default_error_code: str = "STRIPE_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        stripe_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if stripe_code:
            details["stripe_code"] = stripe_code
        super().__init__(message, error_code=error_code, details=details)
        self.stripe_code = stripe_code


# -----------------------------------------------------------------------------
# Permanent Errors (do not retry)
# -----------------------------------------------------------------------------


class StripeInvalidRequestError(StripeError):
    """Invalid parameters or missing resource (e.g. unknown sub_xxx)."""

    default_error_code: str = "INVALID_STRIPE_REQUEST"
    is_retryable: bool = False


class StripeAuthenticationError(StripeError):
    """API key rejected, or no key configured for the account."""

    default_error_code: str = "STRIPE_AUTHENTICATION_FAILED"
    is_retryable: bool = False


class WebhookSignatureError(StripeError):
    """No configured webhook secret verifies the payload."""

    default_error_code: str = "INVALID_WEBHOOK_SIGNATURE"
    is_retryable: bool = False


# -----------------------------------------------------------------------------
# Transient Errors (retry on a later pass)
# -----------------------------------------------------------------------------


class StripeRateLimitError(StripeError):
    """Too many requests hit the Stripe API."""

    default_error_code: str = "STRIPE_RATE_LIMITED"
    is_retryable: bool = True


class StripeAPIUnavailableError(StripeError):
    """Connection failure, Stripe 5xx, or an unexpected SDK error."""

    default_error_code: str = "STRIPE_UNAVAILABLE"
    is_retryable: bool = True


__all__ = [
    "BillingNotFoundError",
    "BillingValidationError",
    "InvalidStateTransitionError",
    "PauseOverlapError",
    "ProrationError",
    "ReconciliationError",
    "StripeAPIUnavailableError",
    "StripeAuthenticationError",
    "StripeError",
    "StripeInvalidRequestError",
    "StripeRateLimitError",
    "WebhookSignatureError",
]
