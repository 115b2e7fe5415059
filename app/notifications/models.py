"""
Notification models.

Design Decisions:
    - Notification inherits from BaseModel (timestamps, ordering)
    - Title and body are fully rendered strings serving as historical records
    - Delivery status lives on the notification (email is the only channel)
    - idempotency_key is unique when set, so a job re-run never notifies twice

Usage:
    from notifications.models import Notification, NotificationKind

    notification = Notification.objects.create(
        recipient=user,
        kind=NotificationKind.DEPOSIT_RETURNED,
        title="Your deposit is on its way back",
    )
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.models import BaseModel


# =============================================================================
# Enums
# =============================================================================


class NotificationKind(models.TextChoices):
    ROOM_FEE_RELEASED = "room_fee_released", "Room fee released"
    DEPOSIT_RETURNED = "deposit_returned", "Deposit returned"
    PAYOUT_COMPLETED = "payout_completed", "Payout completed"
    BOOKING_CANCELLED = "booking_cancelled", "Booking cancelled"
    DISPUTE_OPENED = "dispute_opened", "Dispute opened"
    DISPUTE_ESCALATED = "dispute_escalated", "Dispute escalated"
    DISPUTE_RESOLVED = "dispute_resolved", "Dispute resolved"


class DeliveryStatus(models.TextChoices):
    """
    Email delivery state.

    State transitions:
        PENDING -> SENT
        PENDING -> FAILED (after retries)
        PENDING -> SKIPPED (recipient has no email)
    """

    PENDING = "pending", "Pending"
    SENT = "sent", "Sent"
    FAILED = "failed", "Failed"
    SKIPPED = "skipped", "Skipped"


# =============================================================================
# Notification
# =============================================================================


class Notification(BaseModel):
    """
    Individual notification record for a user.

    Fields:
        recipient: User receiving the notification
        kind: What happened (drives the email subject prefix)
        title / body: Fully rendered text
        data: JSON context (booking id, amounts)
        is_read: Whether recipient has read this notification
        delivery_status / sent_at / failure_reason / attempt_count:
            Email delivery tracking
    """

    recipient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="notifications",
        help_text="User receiving this notification",
    )

    kind = models.CharField(
        max_length=40,
        choices=NotificationKind.choices,
        db_index=True,
    )

    title = models.CharField(
        max_length=500,
        help_text="Fully rendered notification title",
    )

    body = models.TextField(
        blank=True,
        default="",
        help_text="Fully rendered notification body",
    )

    data = models.JSONField(
        default=dict,
        blank=True,
        help_text="Arbitrary context data (booking id, amounts)",
    )

    is_read = models.BooleanField(default=False, db_index=True)

    idempotency_key = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Idempotency key to prevent duplicate notifications",
    )

    # ==========================================================================
    # Delivery
    # ==========================================================================

    delivery_status = models.CharField(
        max_length=20,
        choices=DeliveryStatus.choices,
        default=DeliveryStatus.PENDING,
        db_index=True,
    )
    sent_at = models.DateTimeField(null=True, blank=True)
    failure_reason = models.TextField(blank=True, default="")
    attempt_count = models.PositiveSmallIntegerField(default=0)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(
                fields=["recipient", "is_read", "-created_at"],
                name="notif_recipient_unread_idx",
            ),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["idempotency_key"],
                name="notif_idempotency_key_unique",
                condition=models.Q(idempotency_key__isnull=False),
            ),
        ]

    def __str__(self) -> str:
        read_status = "read" if self.is_read else "unread"
        return f"Notification({self.kind}) -> User {self.recipient_id} [{read_status}]"
