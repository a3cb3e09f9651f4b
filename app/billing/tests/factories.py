"""
Factory Boy factories for billing test data.

This module provides factories for creating test instances of billing models.
Factories generate realistic test data while allowing easy customization.

Usage:
    from billing.tests.factories import (
        MembershipFactory,
        PauseWindowFactory,
        PaymentFactory,
        SubscriptionFactory,
        WebhookEventFactory,
    )

    # Create an active subscription with its membership
    membership = MembershipFactory()
    subscription = membership.subscription

    # Create a subscription in a specific state
    subscription = SubscriptionFactory(status=SubscriptionStatus.PAUSED)

    # Create a date-range pause window
    window = PauseWindowFactory(
        subscription=subscription,
        year=None,
        month=None,
        start_date=date(2026, 4, 15),
        end_date=date(2026, 4, 20),
    )
"""

import uuid

import factory

from billing.models import (
    Invoice,
    Membership,
    PauseWindow,
    Payment,
    Subscription,
    WebhookEvent,
)
from billing.state_machines import (
    MembershipStatus,
    PauseBehavior,
    PauseWindowKind,
    PauseWindowStatus,
    PaymentStatus,
    SubscriptionStatus,
    WebhookEventStatus,
)


class UserFactory(factory.django.DjangoModelFactory):
    """Factory for creating gym members."""

    class Meta:
        model = "auth.User"
        skip_postgeneration_save = True

    username = factory.Sequence(lambda n: f"member{n}")
    email = factory.LazyAttribute(lambda o: f"{o.username}@example.com")
    password = factory.PostGenerationMethodCall("set_password", "testpass123")
    is_active = True


class SubscriptionFactory(factory.django.DjangoModelFactory):
    """
    Factory for creating Subscription instances.

    Default state is ACTIVE at 50.00 GBP a month on the default account.
    """

    class Meta:
        model = Subscription
        skip_postgeneration_save = True

    owner = factory.SubFactory(UserFactory)
    stripe_account_key = "SU"
    stripe_subscription_id = factory.Sequence(lambda n: f"sub_test_{n:06d}")
    stripe_customer_id = factory.Sequence(lambda n: f"cus_test_{n:06d}")
    status = SubscriptionStatus.ACTIVE
    monthly_price_cents = 5000
    currency = "GBP"


class MembershipFactory(factory.django.DjangoModelFactory):
    """Factory for creating Membership instances with their subscription."""

    class Meta:
        model = Membership
        skip_postgeneration_save = True

    subscription = factory.SubFactory(SubscriptionFactory)
    status = MembershipStatus.ACTIVE
    plan_type = "FULL_ADULT"
    schedule_access = factory.LazyFunction(lambda: ["classes", "gym_floor"])


class PauseWindowFactory(factory.django.DjangoModelFactory):
    """
    Factory for creating PauseWindow instances.

    Defaults to a SCHEDULED month row for May 2026 with void behavior.
    Pass year=None, month=None with start_date/end_date for a date range.
    """

    class Meta:
        model = PauseWindow
        skip_postgeneration_save = True

    subscription = factory.SubFactory(SubscriptionFactory)
    kind = PauseWindowKind.FIXED
    year = 2026
    month = 5
    status = PauseWindowStatus.SCHEDULED
    behavior = PauseBehavior.VOID
    reason = "Travelling"


class InvoiceFactory(factory.django.DjangoModelFactory):
    """Factory for creating Invoice snapshots."""

    class Meta:
        model = Invoice
        skip_postgeneration_save = True

    subscription = factory.SubFactory(SubscriptionFactory)
    stripe_invoice_id = factory.Sequence(lambda n: f"in_test_{n:06d}")
    amount_cents = 5000
    currency = "GBP"
    status = "open"


class PaymentFactory(factory.django.DjangoModelFactory):
    """Factory for creating confirmed Payment rows."""

    class Meta:
        model = Payment
        skip_postgeneration_save = True

    subscription = factory.SubFactory(SubscriptionFactory)
    owner = factory.LazyAttribute(lambda o: o.subscription.owner)
    amount_cents = 5000
    currency = "GBP"
    status = PaymentStatus.CONFIRMED
    stripe_invoice_id = factory.Sequence(lambda n: f"in_paid_{n:06d}")
    description = "Monthly membership payment"


class WebhookEventFactory(factory.django.DjangoModelFactory):
    """Factory for creating WebhookEvent instances."""

    class Meta:
        model = WebhookEvent
        skip_postgeneration_save = True

    stripe_event_id = factory.LazyFunction(lambda: f"evt_{uuid.uuid4().hex[:24]}")
    stripe_account_key = "SU"
    event_type = "invoice.paid"
    payload = factory.LazyAttribute(
        lambda o: {
            "id": o.stripe_event_id,
            "type": o.event_type,
            "data": {"object": {}},
        }
    )
    status = WebhookEventStatus.PENDING
    retry_count = 0
