"""
WebhookEvent model for Stripe webhook event tracking.

Every verified event is stored once, keyed by stripe_event_id, so that
redeliveries are recognised and already-processed events are acknowledged
without running handlers again.

Usage:
    event, created = WebhookEvent.objects.get_or_create(
        stripe_event_id="evt_123",
        defaults={
            "event_type": "invoice.payment_succeeded",
            "payload": payload,
            "stripe_account_key": "SU",
        },
    )
    if event.is_processed:
        return HttpResponse(status=200)
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from billing.state_machines import WebhookEventStatus

MAX_WEBHOOK_RETRIES = 5


class WebhookEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    Tracks Stripe webhook events for idempotent processing.

    Processing Flow:
        1. Verify signature against each configured account secret
        2. get_or_create by stripe_event_id
        3. PROCESSED -> acknowledge (duplicate)
        4. mark_processing, dispatch to the registered handler
        5. mark_processed or mark_failed
        6. FAILED events are picked up again by retry_failed_webhooks

    Fields:
        stripe_event_id: Unique Stripe Event ID (evt_xxx)
        stripe_account_key: Account whose secret verified the event
        event_type: Stripe event type
        payload: Full event JSON
        status: Processing status
        processed_at: When processing succeeded
        error_message: Last processing error
        retry_count: Number of processing attempts
    """

    stripe_event_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe Event ID (evt_xxx) - unique constraint for idempotency",
    )

    stripe_account_key = models.CharField(
        max_length=20,
        default="SU",
        help_text="Stripe account whose webhook secret verified the event",
    )

    event_type = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Stripe event type (e.g., 'invoice.payment_succeeded')",
    )

    payload = models.JSONField(
        help_text="Full webhook payload from Stripe (JSON)",
    )

    status = models.CharField(
        max_length=20,
        choices=WebhookEventStatus.choices,
        default=WebhookEventStatus.PENDING,
        db_index=True,
        help_text="Current processing status",
    )

    processed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When event was successfully processed",
    )

    error_message = models.TextField(
        null=True,
        blank=True,
        help_text="Error message if processing failed",
    )

    retry_count = models.PositiveSmallIntegerField(
        default=0,
        help_text="Number of processing attempts",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Webhook Event"
        verbose_name_plural = "Webhook Events"
        indexes = [
            models.Index(fields=["status", "created_at"], name="webhook_status_created_idx"),
            models.Index(fields=["status", "retry_count"], name="webhook_status_retry_idx"),
        ]

    def __str__(self) -> str:
        return f"WebhookEvent({self.stripe_event_id}, {self.event_type})"

    @property
    def is_processed(self) -> bool:
        return self.status == WebhookEventStatus.PROCESSED

    @property
    def can_retry(self) -> bool:
        return (
            self.status == WebhookEventStatus.FAILED
            and self.retry_count < MAX_WEBHOOK_RETRIES
        )

    # Callers save after each mark_* helper.

    def mark_processing(self) -> None:
        self.status = WebhookEventStatus.PROCESSING
        self.retry_count += 1

    def mark_processed(self) -> None:
        self.status = WebhookEventStatus.PROCESSED
        self.processed_at = timezone.now()
        self.error_message = None

    def mark_failed(self, error_message: str) -> None:
        self.status = WebhookEventStatus.FAILED
        self.error_message = error_message

    def get_object(self) -> dict:
        """The event's data.object, or {} for malformed payloads."""
        data = (self.payload or {}).get("data") or {}
        return data.get("object") or {}
