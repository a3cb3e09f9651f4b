"""
Pytest fixtures for billing model and audit tests.

Usage:
    def test_pause(subscription):
        subscription.pause()
        subscription.save()
        assert subscription.status == SubscriptionStatus.PAUSED
"""

import pytest

from billing.state_machines import MembershipStatus, SubscriptionStatus
from billing.tests.factories import MembershipFactory, SubscriptionFactory, UserFactory


# =============================================================================
# User Fixtures
# =============================================================================


@pytest.fixture
def user(db):
    """Create a test member."""
    return UserFactory()


# =============================================================================
# Subscription Fixtures
# =============================================================================


@pytest.fixture
def subscription(db, user):
    """Create an ACTIVE subscription with an ACTIVE membership."""
    subscription = SubscriptionFactory(owner=user)
    MembershipFactory(subscription=subscription)
    return subscription


@pytest.fixture
def paused_subscription(db):
    """Create a PAUSED subscription with a SUSPENDED membership."""
    subscription = SubscriptionFactory(status=SubscriptionStatus.PAUSED)
    MembershipFactory(subscription=subscription, status=MembershipStatus.SUSPENDED)
    return subscription


@pytest.fixture
def cancelled_subscription(db):
    """Create a CANCELLED subscription with a CANCELLED membership."""
    subscription = SubscriptionFactory(status=SubscriptionStatus.CANCELLED)
    MembershipFactory(subscription=subscription, status=MembershipStatus.CANCELLED)
    return subscription
