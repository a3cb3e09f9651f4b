"""
Webhook event processing shared by the view and the Celery tasks.

process_event runs one stored WebhookEvent through the dispatcher and
records the outcome on the row. The view calls it inline so a failure can
be returned to Stripe (which then redelivers); the retry task calls it
for FAILED rows.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from django.db import transaction

from billing.models import WebhookEvent
from billing.webhooks.handlers import dispatch_webhook

logger = logging.getLogger(__name__)


@dataclass
class ProcessingOutcome:
    status: str
    webhook_event_id: str
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status in ("processed", "already_processed")

    def to_dict(self) -> dict:
        data = {"status": self.status, "webhook_event_id": self.webhook_event_id}
        if self.error:
            data["error"] = self.error
        return data


def process_event(webhook_event: WebhookEvent, *, raise_errors: bool = False) -> ProcessingOutcome:
    """
    Dispatch a stored event and mark it PROCESSED or FAILED.

    Args:
        webhook_event: Stored event
        raise_errors: Re-raise unexpected exceptions after marking FAILED
            (Celery autoretry)
    """
    event_id = str(webhook_event.id)
    if webhook_event.is_processed:
        logger.info(
            "WebhookEvent already processed, skipping",
            extra={"webhook_event_id": event_id, "stripe_event_id": webhook_event.stripe_event_id},
        )
        return ProcessingOutcome("already_processed", event_id)

    webhook_event.mark_processing()
    webhook_event.save()

    logger.info(
        f"Dispatching webhook: {webhook_event.event_type}",
        extra={
            "webhook_event_id": event_id,
            "stripe_event_id": webhook_event.stripe_event_id,
            "retry_count": webhook_event.retry_count,
        },
    )

    try:
        with transaction.atomic():
            result = dispatch_webhook(webhook_event)
    except Exception as e:
        error_msg = f"{type(e).__name__}: {e}"
        webhook_event.mark_failed(error_msg)
        webhook_event.save()
        logger.exception(
            "Webhook processing failed with exception",
            extra={"webhook_event_id": event_id, "stripe_event_id": webhook_event.stripe_event_id},
        )
        if raise_errors:
            raise
        return ProcessingOutcome("failed", event_id, error_msg)

    if not result.success:
        error_msg = result.error or "Handler returned failure"
        webhook_event.mark_failed(error_msg)
        webhook_event.save()
        logger.warning(
            f"Webhook handler failed: {error_msg}",
            extra={
                "webhook_event_id": event_id,
                "stripe_event_id": webhook_event.stripe_event_id,
                "error_code": result.error_code,
            },
        )
        return ProcessingOutcome("handler_failed", event_id, error_msg)

    webhook_event.mark_processed()
    webhook_event.save()
    logger.info(
        "Webhook processed successfully",
        extra={"webhook_event_id": event_id, "stripe_event_id": webhook_event.stripe_event_id},
    )
    return ProcessingOutcome("processed", event_id)
