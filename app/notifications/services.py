"""
Notification service layer.

Services:
    NotificationService: Notification creation and read status management

Design Principles:
    - Services are stateless (use class methods)
    - Expected failures return ServiceResult.failure()
    - Email delivery is enqueued only after the surrounding transaction commits

Usage:
    from notifications.services import NotificationService

    result = NotificationService.create_notification(
        recipient=user,
        kind=NotificationKind.PAYOUT_COMPLETED,
        title="Payout sent",
        body="Your earnings for booking ... are on the way.",
        idempotency_key=f"payout_completed:{booking.id}",
    )
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.db import IntegrityError, transaction

from core.services import BaseService, ServiceResult

from notifications.models import Notification

if TYPE_CHECKING:
    from django.contrib.auth.models import User


class NotificationService(BaseService):
    """
    Service for notification operations.

    Methods:
        create_notification: Persist a notification and enqueue delivery
        mark_as_read: Mark a single notification as read
    """

    @classmethod
    def create_notification(
        cls,
        recipient: User,
        kind: str,
        title: str,
        body: str = "",
        data: dict | None = None,
        idempotency_key: str | None = None,
    ) -> ServiceResult[Notification]:
        """
        Create a notification for a user.

        Implementation:
            1. Idempotency check (if key provided)
            2. Create notification
            3. Enqueue email delivery on transaction commit

        Error codes:
            DUPLICATE: Notification with this idempotency_key already exists
        """
        from notifications import tasks

        if idempotency_key and Notification.objects.filter(idempotency_key=idempotency_key).exists():
            cls.get_logger().info(
                f"Duplicate notification prevented: idempotency_key={idempotency_key}"
            )
            return ServiceResult.failure(
                f"Notification with idempotency_key already exists: {idempotency_key}",
                error_code="DUPLICATE",
            )

        try:
            with transaction.atomic():
                notification = Notification.objects.create(
                    recipient=recipient,
                    kind=kind,
                    title=title,
                    body=body,
                    data=data or {},
                    idempotency_key=idempotency_key,
                )
        except IntegrityError:
            # Lost a race with a concurrent create for the same key
            return ServiceResult.failure(
                f"Notification with idempotency_key already exists: {idempotency_key}",
                error_code="DUPLICATE",
            )

        notification_id = str(notification.id)
        transaction.on_commit(lambda: tasks.deliver_notification.delay(notification_id))

        cls.get_logger().info(
            f"Created notification {notification.id} for user {recipient.pk}",
            extra={"kind": kind, "recipient_id": recipient.pk},
        )
        return ServiceResult.success(notification)

    @classmethod
    def mark_as_read(cls, notification: Notification, user: User) -> ServiceResult[Notification]:
        if notification.recipient_id != user.pk:
            return ServiceResult.failure(
                "Cannot modify another user's notification",
                error_code="NOT_OWNER",
            )
        if not notification.is_read:
            notification.is_read = True
            notification.save(update_fields=["is_read", "updated_at"])
        return ServiceResult.success(notification)
