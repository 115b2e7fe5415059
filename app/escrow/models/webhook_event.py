"""
WebhookEvent model for gateway webhook intake.

Every delivery is stored once (unique provider event id), so a duplicate
delivery is acknowledged without being processed twice, and a failed
processing attempt can be retried from the stored payload.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from escrow.states import WebhookEventStatus


class WebhookEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    Tracks gateway webhook events for idempotent processing.

    Processing Flow:
        1. Webhook arrives, verify signature
        2. get_or_create by provider_event_id
        3. If already PROCESSED -> acknowledge (duplicate)
        4. Queue processing task; handler updates escrow events
        5. PROCESSED, or FAILED with retry until the retry budget is spent
    """

    provider_event_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Gateway event ID (evt_xxx) - unique constraint for idempotency",
    )

    event_type = models.CharField(max_length=100, db_index=True)

    payload = models.JSONField()

    status = models.CharField(
        max_length=20,
        choices=WebhookEventStatus.choices,
        default=WebhookEventStatus.PENDING,
        db_index=True,
    )

    processed_at = models.DateTimeField(null=True, blank=True)
    error_message = models.TextField(null=True, blank=True)
    retry_count = models.PositiveSmallIntegerField(default=0)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "created_at"], name="escrow_wh_status_idx"),
        ]

    def __str__(self) -> str:
        return f"WebhookEvent({self.provider_event_id}, {self.event_type})"

    @property
    def is_processed(self) -> bool:
        return self.status == WebhookEventStatus.PROCESSED

    @property
    def can_retry(self) -> bool:
        return (
            self.status == WebhookEventStatus.FAILED
            and self.retry_count < settings.ESCROW_WEBHOOK_MAX_RETRIES
        )

    # Helpers below do not save; the caller saves.

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
        """The gateway object the event is about (payload.data.object)."""
        data = self.payload.get("data") or {}
        return data.get("object") or {}
