"""
Notifications app for settlement notices to guests and realtors.

This app provides:
- Notification model storing every notice sent to a user
- NotificationService for centralized, idempotent notification creation
- Celery task for async email delivery

Usage:
    from notifications.services import NotificationService

    result = NotificationService.create_notification(
        recipient=booking.guest,
        kind=NotificationKind.ROOM_FEE_RELEASED,
        title="Your stay has started",
        body="The room fee for your booking has been released to the host.",
        data={"booking_id": str(booking.id)},
        idempotency_key=f"room_fee_released:{booking.id}:guest",
    )
"""
