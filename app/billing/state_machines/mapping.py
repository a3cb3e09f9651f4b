"""
Pure status mappings between Stripe and local state.

Both the webhook dispatcher and the reconciler go through these two
functions, so a webhook racing a reconciliation pass converges on the
same result.

Usage:
    from billing.state_machines.mapping import (
        membership_status_for,
        subscription_status_from_stripe,
    )

    status = subscription_status_from_stripe("trialing", pause_collection=None)
    # SubscriptionStatus.ACTIVE
    membership_status_for(SubscriptionStatus.PAST_DUE)
    # MembershipStatus.SUSPENDED
"""

from __future__ import annotations

from typing import Any

from billing.state_machines.states import MembershipStatus, SubscriptionStatus

STRIPE_STATUS_MAP: dict[str, SubscriptionStatus] = {
    "active": SubscriptionStatus.ACTIVE,
    "trialing": SubscriptionStatus.ACTIVE,
    "paused": SubscriptionStatus.PAUSED,
    "past_due": SubscriptionStatus.PAST_DUE,
    "unpaid": SubscriptionStatus.PAST_DUE,
    "incomplete": SubscriptionStatus.INCOMPLETE,
    "incomplete_expired": SubscriptionStatus.INCOMPLETE_EXPIRED,
    "canceled": SubscriptionStatus.CANCELLED,
    "cancelled": SubscriptionStatus.CANCELLED,
}

MEMBERSHIP_STATUS_MAP: dict[str, MembershipStatus] = {
    SubscriptionStatus.PAUSED: MembershipStatus.SUSPENDED,
    SubscriptionStatus.PAST_DUE: MembershipStatus.SUSPENDED,
    SubscriptionStatus.INCOMPLETE: MembershipStatus.PENDING_PAYMENT,
    SubscriptionStatus.INCOMPLETE_EXPIRED: MembershipStatus.PENDING_PAYMENT,
    SubscriptionStatus.CANCELLED: MembershipStatus.CANCELLED,
}


def subscription_status_from_stripe(
    stripe_status: str | None,
    pause_collection: Any = None,
) -> SubscriptionStatus:
    """
    Map a Stripe subscription status onto the local enum.

    A present pause_collection means PAUSED whatever the base status is.
    """
    if pause_collection:
        return SubscriptionStatus.PAUSED
    return STRIPE_STATUS_MAP.get((stripe_status or "").lower(), SubscriptionStatus.ACTIVE)


def membership_status_for(subscription_status: str) -> MembershipStatus:
    """Derive the membership status for a subscription status."""
    return MEMBERSHIP_STATUS_MAP.get(subscription_status, MembershipStatus.ACTIVE)
