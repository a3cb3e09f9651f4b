"""
Pytest fixtures for Stripe adapter tests.

This module provides fixtures for testing the Stripe adapter, including
mock Stripe API responses and error conditions.

Sections:
    - Mock Stripe Response Fixtures
    - Error Response Fixtures
    - Mock Stripe Client Fixtures
"""

from unittest.mock import patch

import pytest
import stripe


# =============================================================================
# Mock Stripe Response Fixtures
# =============================================================================


@pytest.fixture
def stripe_subscription():
    """Build a Stripe Subscription object as a plain dict."""

    def _create(
        id: str = "sub_test123",
        status: str = "active",
        pause_collection: dict | None = None,
        **overrides,
    ) -> dict:
        data = {
            "id": id,
            "object": "subscription",
            "status": status,
            "customer": "cus_test123",
            "pause_collection": pause_collection,
            "current_period_start": 1777593600,
            "current_period_end": 1780272000,
            "cancel_at_period_end": False,
            "metadata": {"dbSubscriptionId": "local-1"},
        }
        data.update(overrides)
        return data

    return _create


@pytest.fixture
def stripe_invoice():
    """Build a Stripe Invoice object as a plain dict."""

    def _create(id: str = "in_test123", status: str = "open", **overrides) -> dict:
        data = {
            "id": id,
            "object": "invoice",
            "status": status,
            "customer": "cus_test123",
            "subscription": "sub_test123",
            "amount_due": 5000,
            "amount_paid": 0,
            "currency": "gbp",
            "period_start": 1777593600,
            "period_end": 1780272000,
        }
        data.update(overrides)
        return data

    return _create


# =============================================================================
# Error Response Fixtures
# =============================================================================


@pytest.fixture
def card_error():
    """Create a Stripe CardError."""
    return stripe.CardError(
        message="Your card was declined.",
        param=None,
        code="card_declined",
    )


@pytest.fixture
def invalid_request_error():
    """Create a Stripe InvalidRequestError."""
    return stripe.InvalidRequestError(
        message="No such subscription: 'sub_missing'",
        param="id",
        code="resource_missing",
    )


@pytest.fixture
def rate_limit_error():
    return stripe.RateLimitError(message="Too many requests hit the API too quickly.")


@pytest.fixture
def api_connection_error():
    return stripe.APIConnectionError(message="Could not connect to Stripe.")


@pytest.fixture
def api_error():
    return stripe.APIError(message="Something went wrong on Stripe's end.")


@pytest.fixture
def authentication_error():
    return stripe.AuthenticationError(message="Invalid API Key provided.")


# =============================================================================
# Mock Stripe Client Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def mock_stripe_http_client():
    """Mock stripe.RequestsClient so no adapter test opens a connection."""
    with patch("stripe.RequestsClient") as mock:
        yield mock


@pytest.fixture
def mock_stripe_subscription():
    """Mock stripe.Subscription API."""
    with patch("stripe.Subscription") as mock:
        yield mock


@pytest.fixture
def mock_stripe_invoice():
    """Mock stripe.Invoice API."""
    with patch("stripe.Invoice") as mock:
        yield mock


@pytest.fixture
def mock_stripe_invoice_item():
    """Mock stripe.InvoiceItem API."""
    with patch("stripe.InvoiceItem") as mock:
        yield mock