"""
Billing app: subscription reconciliation and pause proration.

This app handles:
- Proration and settlement math for subscription pauses
- Pause window scheduling against Stripe pause_collection
- Idempotent payment/invoice ledger fed by Stripe webhooks
- Reconciliation of local subscription state with Stripe

Related apps:
    - core: Base models, ServiceResult, exception hierarchy

Usage:
    from billing.services import AdminBillingActions, SchedulePauseParams

    result = AdminBillingActions.schedule_pause(
        SchedulePauseParams(subscription_id=subscription.id, months=["2026-05", "2026-06"])
    )
"""
