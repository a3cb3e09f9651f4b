"""
Pytest fixtures for billing service tests.

The stripe_adapter fixture swaps a MagicMock in for StripeAdapter on every
BillingService subclass and restores it afterwards.

Usage:
    def test_apply(subscription, stripe_adapter, clock_at):
        PauseScheduler.apply(MonthKey(2026, 5), clock=clock_at(2026, 4, 30))
        stripe_adapter.pause_collection.assert_called_once()
"""

from datetime import datetime
from datetime import timezone as dt_timezone
from unittest.mock import MagicMock

import pytest

from billing.adapters import InvoiceItemResult, InvoiceResult, SubscriptionResult
from billing.clock import FixedClock
from billing.services import BillingService
from billing.state_machines import MembershipStatus, SubscriptionStatus
from billing.tests.factories import MembershipFactory, SubscriptionFactory, UserFactory


def _clock_at(year: int, month: int, day: int, hour: int = 12) -> FixedClock:
    """FixedClock at the given UTC day (midday by default)."""
    return FixedClock(datetime(year, month, day, hour, tzinfo=dt_timezone.utc))


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
    subscription = SubscriptionFactory(owner=user)
    MembershipFactory(subscription=subscription)
    return subscription


@pytest.fixture
def paused_subscription(db):
    """Create a PAUSED subscription with a SUSPENDED membership."""
    subscription = SubscriptionFactory(status=SubscriptionStatus.PAUSED)
    MembershipFactory(subscription=subscription, status=MembershipStatus.SUSPENDED)
    return subscription


# =============================================================================
# Stripe Adapter Fixtures
# =============================================================================


@pytest.fixture
def stripe_adapter():
    """
    Mock Stripe adapter with happy-path defaults.

    Tests override return_value/side_effect per call as needed.
    """
    adapter = MagicMock()
    adapter.retrieve_subscription.return_value = SubscriptionResult(id="sub_upstream", status="active")
    adapter.pause_collection.return_value = SubscriptionResult(
        id="sub_upstream",
        status="active",
        pause_collection={"behavior": "void"},
    )
    adapter.resume_collection.return_value = SubscriptionResult(id="sub_upstream", status="active")
    adapter.list_open_invoices.return_value = []
    adapter.void_invoice.return_value = InvoiceResult(id="in_voided", status="void")
    adapter.pay_invoice.return_value = InvoiceResult(id="in_paid", status="paid")
    adapter.retrieve_invoice.return_value = InvoiceResult(id="in_open", status="open")
    adapter.create_credit_invoice_item.return_value = InvoiceItemResult(
        id="ii_test_credit",
        amount_cents=-1000,
        currency="gbp",
    )

    BillingService.set_stripe_adapter(adapter)
    yield adapter
    BillingService.set_stripe_adapter(None)


@pytest.fixture
def clock_at():
    """Build a FixedClock for a UTC day: clock_at(2026, 4, 30)."""
    return _clock_at
