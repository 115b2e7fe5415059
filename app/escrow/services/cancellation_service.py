"""
Cancellation refund processing.

A cancelled booking's held funds are divided by the refund tier table
(``compute_refund``) and moved in two gateway calls:

- one refund to the guest for the room-fee refund plus the deposit
- one transfer to the realtor for their room-fee share plus the cleaning fee

The platform's room-fee share and the service fee never leave the platform
balance; they are recorded with transfer status NOT_APPLICABLE.

Usage:
    from escrow.services import CancellationService

    result = CancellationService.cancel_booking(booking, user=guest)
    if result.success:
        print(result.data.breakdown.customer_total_cents)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from django.db import transaction
from django.utils import timezone

from bookings.models import Booking
from bookings.states import BookingStatus
from core.exceptions import PermissionDeniedError
from core.services import ServiceResult
from escrow.exceptions import InvalidStateTransitionError, PreconditionFailedError
from escrow.models import Payment
from escrow.refunds import RefundBreakdown, compute_refund
from escrow.services.base import EscrowService, format_amount
from escrow.services.event_log import EscrowEventLog, Movement
from escrow.states import (
    EscrowBucket,
    EscrowEventType,
    Party,
    PaymentStatus,
    TransferStatus,
)
from notifications.models import NotificationKind

if TYPE_CHECKING:
    from datetime import datetime

    from escrow.models import EscrowEvent
    from escrow.outcomes import TransferOutcome


CANCELLABLE_BOOKING_STATUSES = (BookingStatus.PENDING, BookingStatus.ACTIVE)

# Payments that never reached escrow; cancelling moves no money
UNFUNDED_PAYMENT_STATUSES = (PaymentStatus.INITIATED, PaymentStatus.FAILED)


@dataclass
class CancellationResult:
    """
    Attributes:
        booking: The cancelled booking
        breakdown: Tier split, or None when nothing was held
        reference: Base reference of the refund and transfer
    """

    booking: Booking
    breakdown: RefundBreakdown | None = None
    reference: str = ""
    events: list[EscrowEvent] = field(default_factory=list)


class CancellationService(EscrowService):
    """Cancels bookings and settles their held funds by the refund tiers."""

    @classmethod
    def cancel_booking(
        cls,
        booking: Booking,
        user=None,
        now: datetime | None = None,
        reason: str = "",
    ) -> ServiceResult[CancellationResult]:
        """
        Cancel a booking and refund according to the tier in effect ``now``.

        ``user=None`` is a system cancellation.

        Raises:
            PermissionDeniedError: User is not the guest or staff
            InvalidStateTransitionError: Booking is not PENDING/ACTIVE
            PreconditionFailedError: Room fee already split, or the payment
                is past HELD
        """
        now = now or timezone.now()
        if user is not None and not (
            user.pk == booking.guest_id or getattr(user, "is_staff", False)
        ):
            raise PermissionDeniedError("Only the guest or staff can cancel this booking")

        log_extra = {"booking_id": str(booking.id)}

        # Phase 1: validate and compute the split
        with transaction.atomic():
            booking = Booking.objects.select_for_update().get(pk=booking.pk)
            if booking.status not in CANCELLABLE_BOOKING_STATUSES:
                raise InvalidStateTransitionError(
                    f"Booking is {booking.status} and cannot be cancelled",
                    current_state=booking.status,
                    attempted_transition="cancel",
                )

            payment = Payment.objects.select_for_update().filter(booking_id=booking.pk).first()
            if payment is None or payment.status in UNFUNDED_PAYMENT_STATUSES:
                booking.status = BookingStatus.CANCELLED
                booking.save(update_fields=["status", "updated_at"])
                cls.get_logger().info(
                    "Booking cancelled with nothing held",
                    extra={**log_extra, "reason": reason},
                )
                return ServiceResult.success(CancellationResult(booking=booking))

            if payment.status != PaymentStatus.HELD or payment.room_fee_split_done:
                raise PreconditionFailedError(
                    "Room fee already released; cancellation refund is not possible",
                    details={**log_extra, "payment_status": payment.status},
                )

            breakdown = compute_refund(
                check_in=booking.check_in,
                now=now,
                room_fee_cents=EscrowEventLog.remaining_cents(payment, EscrowBucket.ROOM_FEE),
                cleaning_fee_cents=EscrowEventLog.remaining_cents(
                    payment, EscrowBucket.CLEANING_FEE
                ),
                service_fee_cents=EscrowEventLog.remaining_cents(
                    payment, EscrowBucket.SERVICE_FEE
                ),
                security_deposit_cents=EscrowEventLog.remaining_cents(
                    payment, EscrowBucket.SECURITY_DEPOSIT
                ),
            )
            reference = payment.refund_reference or f"cancel_{booking.id}_{payment.reference_suffix}"
            payment.refund_reference = reference
            payment.save(update_fields=["refund_reference", "updated_at"])

        cls.get_logger().info(
            f"Cancelling booking in {breakdown.tier} tier",
            extra={**log_extra, "reference": reference, **breakdown.as_dict()},
        )

        # Phase 2: gateway calls outside the transaction
        refund_outcome = None
        transfer_outcome = None
        if breakdown.customer_total_cents > 0:
            refund_outcome = cls._refund(
                payment, breakdown.customer_total_cents, f"{reference}_customer"
            )
        if breakdown.realtor_total_cents > 0:
            transfer_outcome = cls._transfer(
                booking, breakdown.realtor_total_cents, f"{reference}_realtor", payment.currency
            )

        # Phase 3: record every leg and close out
        with transaction.atomic():
            updated = Payment.objects.filter(
                pk=payment.pk,
                status=PaymentStatus.HELD,
                room_fee_split_done=False,
            ).update(room_fee_split_done=True, deposit_refunded=True, updated_at=timezone.now())
            if not updated:
                cls.get_logger().error(
                    "Payment changed concurrently during cancellation",
                    extra={**log_extra, "reference": reference},
                )
                return ServiceResult.failure(
                    "Payment was settled concurrently",
                    error_code="ALREADY_RELEASED",
                )

            events = EscrowEventLog.append_many(
                booking,
                cls._movements(breakdown, reference, refund_outcome, transfer_outcome),
                actor=user,
                actor_label=cls._actor_label(user),
                executed_at=now,
            )

            payment = Payment.objects.select_for_update().get(pk=payment.pk)
            payment.customer_refund_cents += breakdown.customer_total_cents
            payment.realtor_room_fee_cents = breakdown.room_fee.realtor_cents
            payment.platform_room_fee_cents = breakdown.room_fee.platform_cents
            payment.deposit_refunded_at = now
            payment.metadata = {**payment.metadata, "cancellation": breakdown.as_dict()}
            payment.refund()
            payment.save()

            booking = Booking.objects.select_for_update().get(pk=booking.pk)
            booking.status = BookingStatus.CANCELLED
            booking.save(update_fields=["status", "updated_at"])

        cls.get_logger().info(
            "Booking cancelled and refunded",
            extra={
                **log_extra,
                "reference": reference,
                "tier": breakdown.tier,
                "customer_cents": breakdown.customer_total_cents,
                "realtor_cents": breakdown.realtor_total_cents,
                "platform_cents": breakdown.platform_total_cents,
            },
        )

        currency = payment.currency
        cls._notify(
            booking.guest,
            NotificationKind.BOOKING_CANCELLED,
            "Booking cancelled",
            f"You will be refunded {format_amount(breakdown.customer_total_cents, currency)}.",
            booking,
            f"booking_cancelled:{booking.id}:guest",
        )
        cls._notify(
            booking.realtor,
            NotificationKind.BOOKING_CANCELLED,
            "Booking cancelled",
            f"A booking for {booking.listing.title} was cancelled. "
            f"You will receive {format_amount(breakdown.realtor_total_cents, currency)}.",
            booking,
            f"booking_cancelled:{booking.id}:realtor",
        )

        return ServiceResult.success(
            CancellationResult(
                booking=booking,
                breakdown=breakdown,
                reference=reference,
                events=events,
            )
        )

    @staticmethod
    def _movements(
        breakdown: RefundBreakdown,
        reference: str,
        refund_outcome: TransferOutcome | None,
        transfer_outcome: TransferOutcome | None,
    ) -> list[Movement]:
        refund_id = getattr(refund_outcome, "transfer_id", None) or ""
        transfer_id = getattr(transfer_outcome, "transfer_id", None) or ""

        def customer(event_type, bucket, amount):
            return Movement(
                event_type=event_type,
                bucket=bucket,
                amount_cents=amount,
                to_party=Party.CUSTOMER,
                transaction_reference=f"{reference}_customer",
                provider_transaction_id=refund_id,
                outcome=refund_outcome,
            )

        def realtor(event_type, bucket, amount):
            return Movement(
                event_type=event_type,
                bucket=bucket,
                amount_cents=amount,
                to_party=Party.REALTOR,
                transaction_reference=f"{reference}_realtor",
                provider_transaction_id=transfer_id,
                outcome=transfer_outcome,
            )

        def platform(event_type, bucket, amount):
            return Movement(
                event_type=event_type,
                bucket=bucket,
                amount_cents=amount,
                to_party=Party.PLATFORM,
                transaction_reference=reference,
                transfer_status=TransferStatus.NOT_APPLICABLE,
            )

        legs = [
            (customer, EscrowEventType.REFUND_ROOM_FEE_TO_CUSTOMER, EscrowBucket.ROOM_FEE,
             breakdown.room_fee.customer_cents),
            (customer, EscrowEventType.RELEASE_DEPOSIT_TO_CUSTOMER, EscrowBucket.SECURITY_DEPOSIT,
             breakdown.security_deposit.customer_cents),
            (realtor, EscrowEventType.RELEASE_ROOM_FEE_SPLIT, EscrowBucket.ROOM_FEE,
             breakdown.room_fee.realtor_cents),
            (realtor, EscrowEventType.RELEASE_CLEANING_FEE, EscrowBucket.CLEANING_FEE,
             breakdown.cleaning_fee.realtor_cents),
            (platform, EscrowEventType.COLLECT_PLATFORM_FEE, EscrowBucket.ROOM_FEE,
             breakdown.room_fee.platform_cents),
            (platform, EscrowEventType.COLLECT_SERVICE_FEE, EscrowBucket.SERVICE_FEE,
             breakdown.service_fee.platform_cents),
        ]
        return [make(event_type, bucket, amount) for make, event_type, bucket, amount in legs if amount > 0]

    @staticmethod
    def _actor_label(user) -> str:
        if user is None:
            return "system"
        return "admin" if user.is_staff else "guest"
