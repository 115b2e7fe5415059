"""
Bookings admin configuration.
"""

from django.contrib import admin

from bookings.models import Booking, Listing
from escrow.admin import EscrowEventInline


@admin.register(Listing)
class ListingAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "title",
        "realtor",
        "subaccount_code",
        "price_per_night_cents",
        "currency",
        "created_at",
    ]
    search_fields = ["id", "title", "realtor__email", "subaccount_code"]
    raw_id_fields = ["realtor"]
    readonly_fields = ["id", "created_at", "updated_at"]
    ordering = ["-created_at"]


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    """
    Status fields are shown read-only: settlement transitions are made by
    the escrow services so the ledger and the booking never disagree.
    """

    list_display = [
        "id",
        "listing",
        "guest",
        "check_in",
        "check_out",
        "status",
        "stay_status",
        "payout_status",
    ]
    list_filter = ["status", "stay_status", "payout_status"]
    search_fields = ["id", "guest__email", "listing__title"]
    raw_id_fields = ["listing", "guest"]
    readonly_fields = [
        "id",
        "status",
        "payout_status",
        "payout_completed_at",
        "room_fee_release_eligible_at",
        "payout_eligible_at",
        "created_at",
        "updated_at",
    ]
    ordering = ["-check_in"]
    inlines = [EscrowEventInline]
