"""
Celery tasks for billing.

This module provides async tasks for:
- Processing and retrying Stripe webhook events
- Resetting webhook events stuck in PROCESSING
- The scheduled billing passes (pause apply/verify/backstop, daily pause
  credits, subscription reconciliation, paid invoice recovery)

The scheduled passes are thin wrappers over AdminBillingActions and are
registered with celery-beat in migration 0002_periodic_tasks.

Usage:
    from billing.tasks import process_webhook_event

    process_webhook_event.delay(str(webhook_event.id))
"""

from __future__ import annotations

import logging
from datetime import timedelta
from uuid import UUID

from celery import shared_task
from django.utils import timezone

from billing.models import WebhookEvent
from billing.models.webhook_event import MAX_WEBHOOK_RETRIES
from billing.services import AdminBillingActions
from billing.state_machines import WebhookEventStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

STUCK_PROCESSING_THRESHOLD_MINUTES = 30
RETRY_BATCH_SIZE = 100


# =============================================================================
# Webhook Processing Tasks
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": MAX_WEBHOOK_RETRIES},
    acks_late=True,
)
def process_webhook_event(self, webhook_event_id: str) -> dict:
    """
    Process a stored Stripe webhook event.

    Raises:
        Exception: Re-raised to trigger Celery retry
    """
    from billing.webhooks.processing import process_event

    if isinstance(webhook_event_id, str):
        webhook_event_id = UUID(webhook_event_id)

    try:
        webhook_event = WebhookEvent.objects.get(id=webhook_event_id)
    except WebhookEvent.DoesNotExist:
        logger.error(
            "WebhookEvent not found",
            extra={"webhook_event_id": str(webhook_event_id)},
        )
        return {"status": "not_found", "webhook_event_id": str(webhook_event_id)}

    return process_event(webhook_event, raise_errors=True).to_dict()


@shared_task
def retry_failed_webhooks() -> dict:
    """
    Re-queue FAILED webhook events that have retries left.

    Scheduled via celery-beat every 15 minutes.
    """
    failed_webhooks = WebhookEvent.objects.filter(
        status=WebhookEventStatus.FAILED,
        retry_count__lt=MAX_WEBHOOK_RETRIES,
    ).order_by("created_at")[:RETRY_BATCH_SIZE]

    queued_count = 0
    for webhook in failed_webhooks:
        try:
            process_webhook_event.delay(str(webhook.id))
            queued_count += 1
        except Exception as e:
            logger.error(
                f"Failed to queue webhook for retry: {e}",
                extra={"webhook_event_id": str(webhook.id)},
            )

    logger.info(
        f"Queued {queued_count} failed webhooks for retry",
        extra={"queued_count": queued_count},
    )
    return {"queued_count": queued_count}


@shared_task
def cleanup_stuck_webhooks() -> dict:
    """
    Reset webhooks stuck in PROCESSING (worker crashed) to FAILED so they
    are retried.
    """
    threshold = timezone.now() - timedelta(minutes=STUCK_PROCESSING_THRESHOLD_MINUTES)
    stuck_webhooks = WebhookEvent.objects.filter(
        status=WebhookEventStatus.PROCESSING,
        updated_at__lt=threshold,
    )

    reset_count = 0
    for webhook in stuck_webhooks:
        webhook.mark_failed("Processing timed out - reset for retry")
        webhook.save()
        reset_count += 1
        logger.warning(
            "Reset stuck webhook",
            extra={
                "webhook_event_id": str(webhook.id),
                "stripe_event_id": webhook.stripe_event_id,
            },
        )

    return {"reset_count": reset_count}


# =============================================================================
# Scheduled Billing Passes
# =============================================================================


def _run(name: str, result) -> dict:
    response = result.to_response()
    if result.success:
        logger.info(f"Scheduled {name} finished", extra={"task": name})
    else:
        logger.error(
            f"Scheduled {name} failed: {result.error}",
            extra={"task": name, "error_code": result.error_code},
        )
    return response


@shared_task
def apply_pauses(as_of_month: str | None = None) -> dict:
    """Month-end pass: apply next month's pauses and resume ending ones."""
    return _run("apply_pauses", AdminBillingActions.apply_pauses(as_of_month))


@shared_task
def verify_pauses(as_of_month: str | None = None) -> dict:
    return _run("verify_pauses", AdminBillingActions.verify_pauses(as_of_month))


@shared_task
def backstop_pauses(as_of_month: str | None = None) -> dict:
    return _run("backstop_pauses", AdminBillingActions.backstop_pauses(as_of_month))


@shared_task
def resume_pauses(as_of_month: str | None = None) -> dict:
    return _run("resume_pauses", AdminBillingActions.resume_pauses(as_of_month))


@shared_task
def apply_pause_credits() -> dict:
    """Daily start/end of date-range pauses."""
    return _run("apply_pause_credits", AdminBillingActions.apply_pause_credits())


@shared_task
def reconcile_subscriptions(account_key: str | None = None, limit: int | None = None) -> dict:
    kwargs = {"limit": limit} if limit else {}
    return _run(
        "reconcile_subscriptions",
        AdminBillingActions.reconcile_subscriptions(account_key, **kwargs),
    )


@shared_task
def recover_paid_invoices() -> dict:
    return _run("recover_paid_invoices", AdminBillingActions.recover_paid_invoices())
