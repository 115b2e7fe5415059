"""
Celery tasks for notification delivery.

Tasks:
    deliver_notification: Send a notification by email

Design:
    - Tasks receive notification_id (string) instead of the model
    - Tasks are idempotent: re-running on a non-PENDING notification is a no-op
    - Transient failures are retried with backoff; after the last retry the
      notification is marked FAILED
"""

from __future__ import annotations

import logging

from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail
from django.utils import timezone

from notifications.models import DeliveryStatus, Notification

logger = logging.getLogger(__name__)

MAX_DELIVERY_RETRIES = 3


def _get_pending(notification_id: str) -> Notification | None:
    """Returns None if the notification is missing or not PENDING."""
    notification = (
        Notification.objects.select_related("recipient").filter(id=notification_id).first()
    )
    if notification is None:
        logger.warning(f"Notification {notification_id} not found")
        return None
    if notification.delivery_status != DeliveryStatus.PENDING:
        logger.info(
            f"Notification {notification_id} status is {notification.delivery_status}, skipping"
        )
        return None
    return notification


@shared_task(bind=True, max_retries=MAX_DELIVERY_RETRIES)
def deliver_notification(self, notification_id: str) -> bool:
    """
    Send a notification via the configured Django email backend.

    Returns:
        True if sent or skipped, False if permanently failed
    """
    notification = _get_pending(notification_id)
    if notification is None:
        return True

    recipient = notification.recipient
    if not recipient.email:
        notification.delivery_status = DeliveryStatus.SKIPPED
        notification.save(update_fields=["delivery_status", "updated_at"])
        logger.info(f"Notification {notification_id} skipped: recipient has no email")
        return True

    notification.attempt_count += 1
    try:
        send_mail(
            subject=notification.title,
            message=notification.body or notification.title,
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[recipient.email],
        )
    except Exception as exc:
        if self.request.retries >= MAX_DELIVERY_RETRIES:
            notification.delivery_status = DeliveryStatus.FAILED
            notification.failure_reason = str(exc)
            notification.save(
                update_fields=["delivery_status", "failure_reason", "attempt_count", "updated_at"]
            )
            logger.error(
                f"Notification {notification_id} delivery failed permanently: {exc}",
                exc_info=True,
            )
            return False

        notification.save(update_fields=["attempt_count", "updated_at"])
        logger.warning(f"Notification {notification_id} delivery failed, will retry: {exc}")
        raise self.retry(exc=exc, countdown=2**self.request.retries)

    notification.delivery_status = DeliveryStatus.SENT
    notification.sent_at = timezone.now()
    notification.save(
        update_fields=["delivery_status", "sent_at", "attempt_count", "updated_at"]
    )
    logger.info(f"Notification {notification_id} sent to {recipient.email}")
    return True
