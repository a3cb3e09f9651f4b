"""
Pytest fixtures for ledger tests.
"""

import pytest

from billing.tests.factories import MembershipFactory, SubscriptionFactory, UserFactory


@pytest.fixture
def user(db):
    """Create a test member."""
    return UserFactory()


@pytest.fixture
def subscription(db, user):
    """Create an ACTIVE subscription with an ACTIVE membership."""
    subscription = SubscriptionFactory(owner=user)
    MembershipFactory(subscription=subscription)
    return subscription


@pytest.fixture
def stripe_invoice():
    """Build a Stripe invoice object as delivered in webhooks."""

    def build(**overrides):
        invoice = {
            "id": "in_test_ledger",
            "object": "invoice",
            "customer": "cus_test_ledger",
            "subscription": "sub_test_ledger",
            "status": "paid",
            "amount_due": 5000,
            "amount_paid": 5000,
            "currency": "gbp",
            "billing_reason": "subscription_cycle",
            "payment_intent": "pi_test_ledger",
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
        invoice.update(overrides)
        return invoice

    return build
