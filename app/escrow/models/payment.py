"""
Payment model: the per-booking ledger record.

A Payment is the mutable projection of what the escrow event log says has
happened to a booking's money. It is created when the guest's payment is
verified and is never deleted.

Usage:
    from escrow.models import Payment

    payment = Payment.objects.create(
        booking=booking,
        gateway_reference="pi_123",
        room_fee_cents=9_000_000,
        security_deposit_cents=2_000_000,
    )
    payment.mark_held()
    payment.save()

Progress flags (room_fee_split_done, deposit_refunded, commission_paid_out)
only ever go from False to True. Services flip them with a conditional
UPDATE so a concurrent run that lost the race sees zero rows updated.
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin

from escrow.states import EscrowBucket, PaymentStatus


class Payment(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    Funds a guest paid for one booking, held in escrow until settled.

    State Flow:
        INITIATED -> HELD -> PARTIALLY_RELEASED -> SETTLED
        INITIATED -> FAILED
        HELD/PARTIALLY_RELEASED -> REFUNDED

    Fields:
        booking: One-to-one link to the booking
        *_cents: Fee decomposition in smallest currency unit
        status: Lifecycle state (managed by FSM)
        room_fee_split_done / deposit_refunded / commission_paid_out:
            Monotonic progress flags
        *_reference: Idempotent gateway references of executed movements
        realtor_*/platform_*/customer_*: Realized split amounts
    """

    booking = models.OneToOneField(
        "bookings.Booking",
        on_delete=models.PROTECT,
        related_name="payment",
    )

    gateway_reference = models.CharField(
        max_length=255,
        unique=True,
        help_text="Gateway charge reference (PaymentIntent ID) used for verify and refunds",
    )

    currency = models.CharField(
        max_length=3,
        default="ngn",
        help_text="ISO 4217 currency code (lowercase)",
    )

    # ==========================================================================
    # Amounts held
    # ==========================================================================

    room_fee_cents = models.PositiveBigIntegerField(default=0)
    cleaning_fee_cents = models.PositiveBigIntegerField(default=0)
    service_fee_cents = models.PositiveBigIntegerField(default=0)
    security_deposit_cents = models.PositiveBigIntegerField(default=0)

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=PaymentStatus.INITIATED,
        choices=PaymentStatus.choices,
        db_index=True,
        help_text="Current state of the payment (managed by FSM)",
    )

    room_fee_split_done = models.BooleanField(default=False, db_index=True)
    deposit_refunded = models.BooleanField(default=False, db_index=True)
    commission_paid_out = models.BooleanField(default=False, db_index=True)

    # ==========================================================================
    # References
    # ==========================================================================

    room_fee_release_reference = models.CharField(max_length=255, blank=True, default="")
    deposit_reference = models.CharField(max_length=255, blank=True, default="")
    payout_reference = models.CharField(max_length=255, blank=True, default="")
    refund_reference = models.CharField(max_length=255, blank=True, default="")

    # ==========================================================================
    # Realized amounts
    # ==========================================================================

    realtor_room_fee_cents = models.PositiveBigIntegerField(default=0)
    platform_room_fee_cents = models.PositiveBigIntegerField(default=0)
    realtor_earnings_cents = models.PositiveBigIntegerField(default=0)
    platform_commission_cents = models.PositiveBigIntegerField(default=0)
    customer_refund_cents = models.PositiveBigIntegerField(default=0)

    verified_at = models.DateTimeField(null=True, blank=True)
    room_fee_released_at = models.DateTimeField(null=True, blank=True)
    deposit_refunded_at = models.DateTimeField(null=True, blank=True)
    payout_date = models.DateTimeField(null=True, blank=True)
    settled_at = models.DateTimeField(null=True, blank=True)

    metadata = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "room_fee_split_done"], name="escrow_pay_status_rf_idx"),
            models.Index(fields=["status", "deposit_refunded"], name="escrow_pay_status_dep_idx"),
        ]

    def __str__(self) -> str:
        return f"Payment({self.id}, {self.status}, {self.total_cents} {self.currency.upper()})"

    # ==========================================================================
    # Amount helpers
    # ==========================================================================

    @property
    def total_cents(self) -> int:
        return (
            self.room_fee_cents
            + self.cleaning_fee_cents
            + self.service_fee_cents
            + self.security_deposit_cents
        )

    def held_in_bucket(self, bucket: str) -> int:
        """Amount originally escrowed for one bucket."""
        return {
            EscrowBucket.ROOM_FEE: self.room_fee_cents,
            EscrowBucket.CLEANING_FEE: self.cleaning_fee_cents,
            EscrowBucket.SERVICE_FEE: self.service_fee_cents,
            EscrowBucket.SECURITY_DEPOSIT: self.security_deposit_cents,
        }[bucket]

    @property
    def reference_suffix(self) -> str:
        return str(self.id).replace("-", "")[-8:]

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(field=status, source=PaymentStatus.INITIATED, target=PaymentStatus.HELD)
    def mark_held(self):
        """Guest payment verified; funds are now in escrow."""
        self.verified_at = timezone.now()

    @transition(field=status, source=PaymentStatus.INITIATED, target=PaymentStatus.FAILED)
    def fail(self, reason: str | None = None):
        if reason:
            self.metadata = {**self.metadata, "failure_reason": reason}

    @transition(
        field=status,
        source=PaymentStatus.HELD,
        target=PaymentStatus.PARTIALLY_RELEASED,
    )
    def release_room_fee(self):
        self.room_fee_released_at = timezone.now()

    @transition(
        field=status,
        source=[PaymentStatus.HELD, PaymentStatus.PARTIALLY_RELEASED],
        target=PaymentStatus.SETTLED,
    )
    def settle(self):
        self.settled_at = timezone.now()

    @transition(
        field=status,
        source=[PaymentStatus.HELD, PaymentStatus.PARTIALLY_RELEASED],
        target=PaymentStatus.REFUNDED,
    )
    def refund(self):
        pass

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_terminal(self) -> bool:
        return self.status in (
            PaymentStatus.SETTLED,
            PaymentStatus.REFUNDED,
            PaymentStatus.FAILED,
        )

    @property
    def is_fully_released(self) -> bool:
        return self.room_fee_split_done and self.deposit_refunded
