"""
Django admin configuration for notifications.
"""

from django.contrib import admin

from notifications.models import Notification


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    """
    Admin configuration for Notification.

    Delivery fields are read-only; they are maintained by the delivery task.
    """

    list_display = [
        "id",
        "recipient",
        "kind",
        "title",
        "is_read",
        "delivery_status",
        "created_at",
    ]
    list_filter = ["kind", "is_read", "delivery_status", "created_at"]
    search_fields = ["title", "recipient__email", "idempotency_key"]
    raw_id_fields = ["recipient"]
    readonly_fields = [
        "idempotency_key",
        "delivery_status",
        "sent_at",
        "failure_reason",
        "attempt_count",
        "created_at",
        "updated_at",
    ]
    ordering = ["-created_at"]
