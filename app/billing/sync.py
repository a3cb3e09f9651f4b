"""
Subscription and membership status propagation.

Every writer (scheduler, credit service, ledger, webhook handlers,
reconciler) moves subscription status through set_subscription_status, so
membership is always re-derived from the same mapping.

Usage:
    from billing.sync import set_subscription_status

    with transaction.atomic():
        changed = set_subscription_status(subscription, SubscriptionStatus.PAUSED)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django_fsm import TransitionNotAllowed

from billing.exceptions import InvalidStateTransitionError
from billing.models import Membership, Subscription
from billing.state_machines import SubscriptionStatus

if TYPE_CHECKING:
    from billing.adapters import SubscriptionResult

logger = logging.getLogger(__name__)

TRANSITIONS = {
    SubscriptionStatus.PAUSED: "pause",
    SubscriptionStatus.ACTIVE: "activate",
    SubscriptionStatus.PAST_DUE: "mark_past_due",
    SubscriptionStatus.CANCELLED: "cancel",
}


def sync_membership(subscription: Subscription) -> bool:
    """
    Re-derive the membership status. Returns True if it changed.

    Subscriptions without a membership row are left alone.
    """
    membership = Membership.objects.filter(subscription=subscription).first()
    if membership is None:
        return False
    if not membership.sync_from_subscription(subscription.status):
        return False
    membership.save(update_fields=["status", "updated_at"])
    return True


def set_subscription_status(
    subscription: Subscription,
    target: str,
    *,
    force: bool = False,
) -> bool:
    """
    Move a subscription to target and re-derive its membership.

    Args:
        subscription: Subscription to update (saved by this function)
        target: SubscriptionStatus value
        force: Use sync_status, bypassing transition sources. Only for
            upstream-observed corrections.

    Returns:
        True if the subscription or membership status changed

    Raises:
        InvalidStateTransitionError: Transition not allowed from the
            current status (e.g. anything but force from CANCELLED)
    """
    previous = subscription.status
    if previous != target:
        try:
            if previous == SubscriptionStatus.CANCELLED and not force:
                raise TransitionNotAllowed("CANCELLED is terminal")
            if force or target not in TRANSITIONS:
                subscription.sync_status(target)
            else:
                getattr(subscription, TRANSITIONS[target])()
        except TransitionNotAllowed as e:
            raise InvalidStateTransitionError(
                f"Cannot move subscription from {previous} to {target}",
                details={
                    "subscription_id": str(subscription.id),
                    "current_state": previous,
                    "target_state": target,
                },
            ) from e
        subscription.save()
        logger.info(
            "Subscription status changed",
            extra={
                "subscription_id": str(subscription.id),
                "previous_status": previous,
                "new_status": target,
            },
        )

    membership_changed = sync_membership(subscription)
    return previous != target or membership_changed


def release_pause(subscription: Subscription) -> bool:
    """
    Undo a local pause after Stripe resumed collection.

    PAUSED moves to ACTIVE; any other status (e.g. PAST_DUE) is kept and
    only the membership is re-derived.
    """
    if subscription.status == SubscriptionStatus.PAUSED:
        return set_subscription_status(subscription, SubscriptionStatus.ACTIVE)
    return sync_membership(subscription)


def apply_upstream_fields(subscription: Subscription, upstream: SubscriptionResult) -> list[str]:
    """
    Copy period bounds, the cancel flag and a missing customer id from a
    Stripe subscription. Returns the changed field names (saved).
    """
    changed = []
    if upstream.current_period_start and subscription.current_period_start != upstream.current_period_start:
        subscription.current_period_start = upstream.current_period_start
        changed.append("current_period_start")
    if upstream.current_period_end and subscription.current_period_end != upstream.current_period_end:
        subscription.current_period_end = upstream.current_period_end
        subscription.next_billing_date = upstream.current_period_end
        changed.extend(["current_period_end", "next_billing_date"])
    if subscription.cancel_at_period_end != upstream.cancel_at_period_end:
        subscription.cancel_at_period_end = upstream.cancel_at_period_end
        changed.append("cancel_at_period_end")
    if upstream.customer_id and not subscription.stripe_customer_id:
        subscription.stripe_customer_id = upstream.customer_id
        changed.append("stripe_customer_id")
    if changed:
        subscription.save(update_fields=[*changed, "updated_at"])
    return changed
