"""
Listing and Booking models.

A Listing carries an explicit fee configuration: every fee is a required
integer amount in minor units that defaults to zero, so settlement code never
has to guess at missing values.

Usage:
    from bookings.models import Booking

    booking = Booking.objects.create(
        listing=listing,
        guest=user,
        check_in=check_in,
        check_out=check_out,
    )
    booking.room_fee_release_eligible_at  # check_in + release delay
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import timedelta

from django.conf import settings
from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from bookings.states import BookingStatus, PayoutStatus, StayStatus


@dataclass(frozen=True)
class FeeConfig:
    """Snapshot of a listing's pricing used by the calculators."""

    price_per_night_cents: int
    cleaning_fee_cents: int = 0
    service_fee_cents: int = 0
    security_deposit_cents: int = 0
    currency: str = "ngn"

    def room_fee_cents(self, nights: int) -> int:
        return self.price_per_night_cents * nights


class Listing(UUIDPrimaryKeyMixin, BaseModel):
    """
    A listing owned by a realtor.

    Fields:
        realtor: User who receives realtor payouts
        subaccount_code: Gateway connected account (transfer destination)
        price_per_night_cents: Nightly rate in minor units
        cleaning_fee_cents / service_fee_cents / security_deposit_cents:
            Per-booking fees, zero when the listing does not charge them
    """

    title = models.CharField(max_length=255)

    realtor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="listings",
        help_text="Realtor who owns this listing",
    )

    subaccount_code = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Payment gateway subaccount (connected account) for payouts",
    )

    currency = models.CharField(
        max_length=3,
        default="ngn",
        help_text="ISO 4217 currency code (lowercase)",
    )

    # ==========================================================================
    # Fee configuration
    # ==========================================================================

    price_per_night_cents = models.PositiveBigIntegerField(
        help_text="Nightly rate in smallest currency unit",
    )
    cleaning_fee_cents = models.PositiveBigIntegerField(
        default=0,
        help_text="Cleaning fee, retained by the realtor on cancellation",
    )
    service_fee_cents = models.PositiveBigIntegerField(
        default=0,
        help_text="Service fee, retained by the platform on cancellation",
    )
    security_deposit_cents = models.PositiveBigIntegerField(
        default=0,
        help_text="Refundable security deposit",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name_plural = "Listings"

    def __str__(self) -> str:
        return f"Listing({self.title})"

    def fee_config(self) -> FeeConfig:
        return FeeConfig(
            price_per_night_cents=self.price_per_night_cents,
            cleaning_fee_cents=self.cleaning_fee_cents,
            service_fee_cents=self.service_fee_cents,
            security_deposit_cents=self.security_deposit_cents,
            currency=self.currency,
        )


class Booking(UUIDPrimaryKeyMixin, BaseModel):
    """
    A guest's stay at a listing.

    The two eligibility timestamps are derived from check-in on every save
    so the scheduled jobs can select candidates with plain range queries.

    Fields:
        room_fee_release_eligible_at: check_in + ESCROW_ROOM_FEE_RELEASE_DELAY_HOURS
        payout_eligible_at: check_in
    """

    listing = models.ForeignKey(
        Listing,
        on_delete=models.PROTECT,
        related_name="bookings",
    )

    guest = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="bookings",
    )

    check_in = models.DateTimeField(db_index=True)
    check_out = models.DateTimeField(db_index=True)

    # ==========================================================================
    # Status
    # ==========================================================================

    status = models.CharField(
        max_length=20,
        choices=BookingStatus.choices,
        default=BookingStatus.PENDING,
        db_index=True,
    )

    stay_status = models.CharField(
        max_length=20,
        choices=StayStatus.choices,
        default=StayStatus.NOT_CHECKED_IN,
        db_index=True,
    )

    payout_status = models.CharField(
        max_length=20,
        choices=PayoutStatus.choices,
        default=PayoutStatus.PENDING,
        db_index=True,
    )

    payout_completed_at = models.DateTimeField(null=True, blank=True)

    # ==========================================================================
    # Derived eligibility
    # ==========================================================================

    room_fee_release_eligible_at = models.DateTimeField(
        db_index=True,
        editable=False,
        help_text="When the dispute-free holding window for the room fee ends",
    )

    payout_eligible_at = models.DateTimeField(
        db_index=True,
        editable=False,
        help_text="When the realtor payout may be processed",
    )

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(
                fields=["status", "stay_status", "room_fee_release_eligible_at"],
                name="bookings_bo_status_5b1c2e_idx",
            ),
            models.Index(
                fields=["payout_status", "payout_eligible_at"],
                name="bookings_bo_payout__8d4f1a_idx",
            ),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(check_out__gt=models.F("check_in")),
                name="booking_check_out_after_check_in",
            ),
        ]

    def __str__(self) -> str:
        return f"Booking({self.id}, {self.status})"

    def save(self, *args, **kwargs):
        delay = timedelta(hours=settings.ESCROW_ROOM_FEE_RELEASE_DELAY_HOURS)
        self.room_fee_release_eligible_at = self.check_in + delay
        self.payout_eligible_at = self.check_in
        update_fields = kwargs.get("update_fields")
        if update_fields is not None:
            kwargs["update_fields"] = {
                *update_fields,
                "room_fee_release_eligible_at",
                "payout_eligible_at",
            }
        super().save(*args, **kwargs)

    @property
    def realtor(self):
        return self.listing.realtor

    @property
    def nights(self) -> int:
        seconds = (self.check_out - self.check_in).total_seconds()
        return max(1, math.ceil(seconds / 86400))

    def is_party(self, user) -> bool:
        """True for the guest, the listing's realtor, or staff."""
        if user is None or not user.is_authenticated:
            return False
        return user.is_staff or user.pk in (self.guest_id, self.listing.realtor_id)
