"""
Pytest fixtures for webhook tests.

Provides stored WebhookEvent builders and Stripe object payloads for
invoice, subscription and payment intent events.
"""

import pytest

from billing.tests.factories import (
    MembershipFactory,
    SubscriptionFactory,
    UserFactory,
    WebhookEventFactory,
)


# =============================================================================
# Model Fixtures
# =============================================================================


@pytest.fixture
def user(db):
    """Create a test member."""
    return UserFactory()


@pytest.fixture
def subscription(db, user):
    """Create an ACTIVE subscription with an ACTIVE membership."""
    subscription = SubscriptionFactory(
        owner=user,
        stripe_subscription_id="sub_webhook",
        stripe_customer_id="cus_webhook",
    )
    MembershipFactory(subscription=subscription)
    return subscription


# =============================================================================
# Webhook Event Fixtures
# =============================================================================


@pytest.fixture
def webhook_event(db):
    """Build a stored WebhookEvent wrapping a data.object."""

    def build(event_type: str, data_object: dict, **overrides):
        event_id = overrides.pop("stripe_event_id", "evt_test_webhook")
        return WebhookEventFactory(
            stripe_event_id=event_id,
            event_type=event_type,
            payload={
                "id": event_id,
                "type": event_type,
                "data": {"object": data_object},
            },
            **overrides,
        )

    return build


# =============================================================================
# Stripe Object Fixtures
# =============================================================================


@pytest.fixture
def invoice_object():
    """Build a Stripe invoice data.object."""

    def build(**overrides):
        data = {
            "id": "in_webhook",
            "object": "invoice",
            "customer": "cus_webhook",
            "subscription": "sub_webhook",
            "status": "paid",
            "amount_due": 5000,
            "amount_paid": 5000,
            "currency": "gbp",
            "billing_reason": "subscription_cycle",
            "payment_intent": "pi_webhook",
            "metadata": {},
            "status_transitions": {"paid_at": 1777593600},
            "lines": {
                "data": [
                    {
                        "description": "1 x Full Adult (at £50.00 / month)",
                        "period": {"start": 1777593600, "end": 1780272000},
                    }
                ]
            },
        }
        data.update(overrides)
        return data

    return build


@pytest.fixture
def subscription_object():
    """Build a Stripe subscription data.object."""

    def build(**overrides):
        data = {
            "id": "sub_webhook",
            "object": "subscription",
            "customer": "cus_webhook",
            "status": "active",
            "pause_collection": None,
            "current_period_start": 1777593600,
            "current_period_end": 1780272000,
            "cancel_at_period_end": False,
            "metadata": {},
        }
        data.update(overrides)
        return data

    return build
