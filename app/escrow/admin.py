"""
Escrow admin configuration.

Payments and escrow events are read-mostly: money fields are maintained
by the settlement services, never edited by hand. Stuck job locks can be
force-released from the JobLock changelist.
"""

from django.contrib import admin, messages

from escrow.locks import JobLockManager
from escrow.models import Dispute, EscrowEvent, JobLock, Payment, WebhookEvent


class EscrowEventInline(admin.TabularInline):
    model = EscrowEvent
    fk_name = "booking"
    extra = 0
    can_delete = False
    fields = [
        "event_type",
        "bucket",
        "amount_cents",
        "to_party",
        "transfer_status",
        "retry_count",
        "executed_at",
    ]
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "booking",
        "status",
        "currency",
        "room_fee_cents",
        "room_fee_split_done",
        "deposit_refunded",
        "commission_paid_out",
        "created_at",
    ]
    list_filter = ["status", "room_fee_split_done", "deposit_refunded", "commission_paid_out"]
    search_fields = ["id", "gateway_reference", "booking__id"]
    raw_id_fields = ["booking"]
    ordering = ["-created_at"]
    readonly_fields = [
        "id",
        "status",
        "room_fee_split_done",
        "deposit_refunded",
        "commission_paid_out",
        "room_fee_release_reference",
        "deposit_reference",
        "payout_reference",
        "refund_reference",
        "realtor_room_fee_cents",
        "platform_room_fee_cents",
        "realtor_earnings_cents",
        "platform_commission_cents",
        "customer_refund_cents",
        "verified_at",
        "room_fee_released_at",
        "deposit_refunded_at",
        "payout_date",
        "settled_at",
        "version",
        "created_at",
        "updated_at",
    ]

    fieldsets = (
        (None, {"fields": ("id", "booking", "gateway_reference", "currency", "status")}),
        (
            "Amounts held",
            {
                "fields": (
                    "room_fee_cents",
                    "cleaning_fee_cents",
                    "service_fee_cents",
                    "security_deposit_cents",
                ),
            },
        ),
        (
            "Progress",
            {"fields": ("room_fee_split_done", "deposit_refunded", "commission_paid_out")},
        ),
        (
            "References",
            {
                "fields": (
                    "room_fee_release_reference",
                    "deposit_reference",
                    "payout_reference",
                    "refund_reference",
                ),
            },
        ),
        (
            "Realized split",
            {
                "fields": (
                    "realtor_room_fee_cents",
                    "platform_room_fee_cents",
                    "realtor_earnings_cents",
                    "platform_commission_cents",
                    "customer_refund_cents",
                ),
            },
        ),
        (
            "Timestamps",
            {
                "fields": (
                    "verified_at",
                    "room_fee_released_at",
                    "deposit_refunded_at",
                    "payout_date",
                    "settled_at",
                    "created_at",
                    "updated_at",
                ),
            },
        ),
        ("Metadata", {"fields": ("metadata", "version"), "classes": ("collapse",)}),
    )


@admin.register(EscrowEvent)
class EscrowEventAdmin(admin.ModelAdmin):
    """Append-only log: no add, change or delete from the admin."""

    list_display = [
        "id",
        "booking",
        "event_type",
        "bucket",
        "amount_cents",
        "to_party",
        "transfer_status",
        "retry_count",
        "executed_at",
    ]
    list_filter = ["event_type", "bucket", "transfer_status", "to_party"]
    search_fields = ["id", "booking__id", "transaction_reference", "provider_transaction_id"]
    ordering = ["-executed_at"]

    def get_readonly_fields(self, request, obj=None):
        return [field.name for field in self.model._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Dispute)
class DisputeAdmin(admin.ModelAdmin):
    """Resolution goes through the admin API so the money moves with it."""

    list_display = [
        "id",
        "booking",
        "subject",
        "status",
        "decision",
        "admin_deadline_at",
        "created_at",
    ]
    list_filter = ["status", "subject", "decision"]
    search_fields = ["id", "booking__id", "reason"]
    raw_id_fields = ["booking", "opened_by", "resolved_by"]
    ordering = ["-created_at"]
    readonly_fields = [
        "id",
        "status",
        "escalated_at",
        "admin_deadline_at",
        "decision",
        "final_outcome",
        "execution_reference",
        "customer_amount_cents",
        "realtor_amount_cents",
        "platform_amount_cents",
        "resolved_by",
        "resolved_by_label",
        "closed_at",
        "created_at",
        "updated_at",
    ]


@admin.register(JobLock)
class JobLockAdmin(admin.ModelAdmin):
    list_display = ["job_name", "holder", "acquired_at", "expires_at", "is_expired"]
    readonly_fields = ["id", "job_name", "holder", "acquired_at", "expires_at", "booking_ids"]
    actions = ["force_release"]

    @admin.display(boolean=True)
    def is_expired(self, obj):
        return obj.is_expired

    @admin.action(description="Force-release selected locks")
    def force_release(self, request, queryset):
        released = 0
        for lock in queryset:
            if JobLockManager.force_release(lock.id, admin=request.user).success:
                released += 1
        self.message_user(request, f"Released {released} lock(s)", messages.WARNING)

    def has_add_permission(self, request):
        return False


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    list_display = ["provider_event_id", "event_type", "status", "retry_count", "created_at"]
    list_filter = ["status", "event_type"]
    search_fields = ["provider_event_id"]
    readonly_fields = [
        "id",
        "provider_event_id",
        "event_type",
        "payload",
        "processed_at",
        "error_message",
        "retry_count",
        "created_at",
        "updated_at",
    ]
    ordering = ["-created_at"]
