"""
Settlement service: payment verification and timed releases.

Operations:
    mark_payment_held: INITIATED -> HELD once the gateway confirms the charge
    release_room_fee: Normal 90/10 split of the room fee after check-in
    return_deposit: Refund the remaining security deposit after check-out

Both releases use the three-phase pattern from EscrowService: the
monotonic flag (room_fee_split_done / deposit_refunded) is flipped by a
conditional UPDATE in Phase 3, so a concurrent or repeated run that lost
the race updates zero rows and records nothing.

Usage:
    from escrow.services import SettlementService

    result = SettlementService.release_room_fee(booking)
    if result.success:
        result.data.split.realtor_cents
    elif result.error_code == "DISPUTE_BLOCKED":
        ...  # retried on the next run once the dispute closes
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import transaction
from django.db.models import Exists, OuterRef
from django.utils import timezone

from bookings.models import Booking
from bookings.states import BookingStatus, StayStatus
from core.services import ServiceResult
from escrow.exceptions import GatewayError, PreconditionFailedError
from escrow.models import Dispute, Payment
from escrow.outcomes import is_timed_out
from escrow.refunds import Split, settlement_split
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

    from django.db.models import QuerySet

    from escrow.models import EscrowEvent


RELEASABLE_BOOKING_STATUSES = (BookingStatus.ACTIVE, BookingStatus.DISPUTED)
RELEASABLE_STAY_STATUSES = (StayStatus.CHECKED_IN, StayStatus.CHECKED_OUT)
OPEN_PAYMENT_STATUSES = (PaymentStatus.HELD, PaymentStatus.PARTIALLY_RELEASED)


@dataclass
class ReleaseResult:
    """Outcome of a room-fee release or deposit return."""

    booking: Booking
    payment: Payment
    reference: str
    split: Split
    events: list[EscrowEvent] = field(default_factory=list)
    timed_out: bool = False


class SettlementService(EscrowService):
    """Moves funds out of escrow on the normal (undisputed) timeline."""

    # =========================================================================
    # Payment verification
    # =========================================================================

    @classmethod
    def mark_payment_held(cls, payment: Payment) -> ServiceResult[Payment]:
        """
        Verify the guest's charge and move the payment into escrow.

        Error codes:
            INVALID_STATE: Payment is not awaiting verification
            PAYMENT_NOT_CONFIRMED: Gateway has not settled the charge yet
            PAYMENT_FAILED: Gateway reported the charge as failed
        """
        if payment.status != PaymentStatus.INITIATED:
            if payment.status == PaymentStatus.HELD:
                return ServiceResult.success(payment)
            return ServiceResult.failure(
                f"Payment is {payment.status}, not awaiting verification",
                error_code="INVALID_STATE",
            )

        try:
            verification = cls.get_stripe_adapter().verify(payment.gateway_reference)
        except GatewayError as e:
            cls.get_logger().warning(
                f"Payment verification failed: {type(e).__name__}",
                extra={"payment_id": str(payment.id), "error": str(e)},
            )
            return ServiceResult.from_exception(e)

        with transaction.atomic():
            payment = Payment.objects.select_for_update().get(pk=payment.pk)
            if payment.status != PaymentStatus.INITIATED:
                return ServiceResult.success(payment)

            if verification.is_verified:
                payment.mark_held()
                payment.save()
                Booking.objects.filter(
                    pk=payment.booking_id,
                    status=BookingStatus.PENDING,
                ).update(status=BookingStatus.ACTIVE, updated_at=timezone.now())
            elif verification.is_failed:
                payment.fail(f"Gateway reported status {verification.status}")
                payment.save()
                cls.get_logger().info(
                    "Payment verification reported failure",
                    extra={"payment_id": str(payment.id), "status": verification.status},
                )
                return ServiceResult.failure(
                    f"Payment failed with status {verification.status}",
                    error_code="PAYMENT_FAILED",
                )
            else:
                return ServiceResult.failure(
                    f"Payment is still {verification.status}",
                    error_code="PAYMENT_NOT_CONFIRMED",
                )

        cls.get_logger().info(
            "Payment held in escrow",
            extra={
                "payment_id": str(payment.id),
                "booking_id": str(payment.booking_id),
                "amount_cents": payment.total_cents,
            },
        )
        return ServiceResult.success(payment)

    # =========================================================================
    # Room fee release
    # =========================================================================

    @classmethod
    def room_fee_candidates(cls, now: datetime | None = None) -> QuerySet[Booking]:
        """Bookings whose room fee holding window has elapsed and is not under dispute."""
        now = now or timezone.now()
        return (
            Booking.objects.filter(
                status__in=RELEASABLE_BOOKING_STATUSES,
                stay_status__in=RELEASABLE_STAY_STATUSES,
                room_fee_release_eligible_at__lte=now,
                payment__status=PaymentStatus.HELD,
                payment__room_fee_split_done=False,
            )
            .exclude(Exists(Dispute.objects.blocking(OuterRef("pk"), EscrowBucket.ROOM_FEE)))
            .select_related("listing", "listing__realtor", "guest")
            .order_by("room_fee_release_eligible_at")
        )

    @classmethod
    def release_room_fee(
        cls,
        booking: Booking,
        now: datetime | None = None,
    ) -> ServiceResult[ReleaseResult]:
        """
        Release the room fee with the normal realtor/platform split.

        Error codes:
            NOT_ELIGIBLE: Booking no longer meets the release conditions
            DISPUTE_BLOCKED: An active ROOM_FEE or GENERAL dispute exists
            ALREADY_RELEASED: A concurrent run released it first

        Raises:
            PreconditionFailedError: Room fee was already split
            GatewayError: Transfer failed (booking left for the next run)
            EscrowOverdraftError: Release would exceed what was held
        """
        now = now or timezone.now()
        log_extra = {"booking_id": str(booking.id)}

        # Phase 1: re-check eligibility under lock
        with transaction.atomic():
            booking = Booking.objects.select_for_update().get(pk=booking.pk)
            payment = Payment.objects.select_for_update().filter(booking_id=booking.pk).first()
            if payment is None:
                return ServiceResult.failure("Booking has no payment", error_code="NOT_ELIGIBLE")
            if payment.room_fee_split_done:
                raise PreconditionFailedError(
                    "Room fee already released",
                    details={**log_extra, "reference": payment.room_fee_release_reference},
                )
            if (
                booking.status not in RELEASABLE_BOOKING_STATUSES
                or booking.stay_status not in RELEASABLE_STAY_STATUSES
                or booking.room_fee_release_eligible_at > now
                or payment.status != PaymentStatus.HELD
            ):
                return ServiceResult.failure(
                    "Booking is not eligible for room fee release",
                    error_code="NOT_ELIGIBLE",
                )
            if Dispute.objects.blocking(booking, EscrowBucket.ROOM_FEE).exists():
                cls.get_logger().info("Room fee release blocked by active dispute", extra=log_extra)
                return ServiceResult.failure(
                    "Room fee is under dispute",
                    error_code="DISPUTE_BLOCKED",
                )

            amount = EscrowEventLog.remaining_cents(payment, EscrowBucket.ROOM_FEE)
            split = settlement_split(amount)
            reference = f"room_fee_{booking.id}_{payment.reference_suffix}"

        # Phase 2: transfer the realtor share outside the transaction
        outcome = None
        if split.realtor_cents > 0:
            cls.get_logger().info(
                "Transferring room fee share to realtor",
                extra={**log_extra, "reference": reference, "amount_cents": split.realtor_cents},
            )
            outcome = cls._transfer(booking, split.realtor_cents, reference, payment.currency)

        # Phase 3: flip the flag and record the movement
        with transaction.atomic():
            updated = Payment.objects.filter(pk=payment.pk, room_fee_split_done=False).update(
                room_fee_split_done=True,
                updated_at=timezone.now(),
            )
            if not updated:
                cls.get_logger().warning(
                    "Room fee flag already set by a concurrent run",
                    extra={**log_extra, "reference": reference},
                )
                return ServiceResult.failure(
                    "Room fee was released concurrently",
                    error_code="ALREADY_RELEASED",
                )

            movements = []
            if split.realtor_cents > 0:
                movements.append(
                    Movement(
                        event_type=EscrowEventType.RELEASE_ROOM_FEE_SPLIT,
                        bucket=EscrowBucket.ROOM_FEE,
                        amount_cents=split.realtor_cents,
                        to_party=Party.REALTOR,
                        transaction_reference=reference,
                        provider_transaction_id=outcome.transfer_id or "",
                        outcome=outcome,
                    )
                )
            if split.platform_cents > 0:
                movements.append(
                    Movement(
                        event_type=EscrowEventType.COLLECT_PLATFORM_FEE,
                        bucket=EscrowBucket.ROOM_FEE,
                        amount_cents=split.platform_cents,
                        to_party=Party.PLATFORM,
                        transaction_reference=reference,
                        transfer_status=TransferStatus.NOT_APPLICABLE,
                        notes="Platform commission on room fee",
                    )
                )
            events = EscrowEventLog.append_many(
                booking, movements, actor_label="job:room_fee_release", executed_at=now
            )

            payment = Payment.objects.select_for_update().get(pk=payment.pk)
            payment.realtor_room_fee_cents = split.realtor_cents
            payment.platform_room_fee_cents = split.platform_cents
            payment.room_fee_release_reference = reference
            payment.release_room_fee()
            cls._settle_if_released(payment, booking)
            payment.save()

        cls.get_logger().info(
            "Room fee released",
            extra={
                **log_extra,
                "reference": reference,
                "realtor_cents": split.realtor_cents,
                "platform_cents": split.platform_cents,
                "timed_out": is_timed_out(outcome),
            },
        )

        amount_text = format_amount(split.realtor_cents, payment.currency)
        cls._notify(
            booking.guest,
            NotificationKind.ROOM_FEE_RELEASED,
            "Your stay has been confirmed",
            "The room fee for your booking has been released to your host.",
            booking,
            f"room_fee_released:{booking.id}:guest",
        )
        cls._notify(
            booking.realtor,
            NotificationKind.ROOM_FEE_RELEASED,
            "Room fee released",
            f"{amount_text} from booking {booking.id} is on its way to your account.",
            booking,
            f"room_fee_released:{booking.id}:realtor",
        )

        return ServiceResult.success(
            ReleaseResult(
                booking=booking,
                payment=payment,
                reference=reference,
                split=split,
                events=events,
                timed_out=is_timed_out(outcome),
            )
        )

    # =========================================================================
    # Deposit return
    # =========================================================================

    @classmethod
    def deposit_candidates(cls, now: datetime | None = None) -> QuerySet[Booking]:
        """Checked-out bookings whose deposit holding window has elapsed and is not under dispute."""
        now = now or timezone.now()
        cutoff = now - timedelta(hours=settings.ESCROW_DEPOSIT_RETURN_DELAY_HOURS)
        return (
            Booking.objects.filter(
                stay_status=StayStatus.CHECKED_OUT,
                check_out__lte=cutoff,
                payment__status__in=OPEN_PAYMENT_STATUSES,
                payment__deposit_refunded=False,
            )
            .exclude(status=BookingStatus.CANCELLED)
            .exclude(
                Exists(Dispute.objects.blocking(OuterRef("pk"), EscrowBucket.SECURITY_DEPOSIT))
            )
            .select_related("listing", "listing__realtor", "guest")
            .order_by("check_out")
        )

    @classmethod
    def return_deposit(
        cls,
        booking: Booking,
        now: datetime | None = None,
    ) -> ServiceResult[ReleaseResult]:
        """
        Refund whatever remains of the security deposit to the guest.

        When the room fee has already been split the payment is fully
        released: it becomes SETTLED and the booking COMPLETED.

        Error codes:
            NOT_ELIGIBLE / DISPUTE_BLOCKED / ALREADY_RELEASED
        """
        now = now or timezone.now()
        log_extra = {"booking_id": str(booking.id)}
        cutoff = now - timedelta(hours=settings.ESCROW_DEPOSIT_RETURN_DELAY_HOURS)

        # Phase 1
        with transaction.atomic():
            booking = Booking.objects.select_for_update().get(pk=booking.pk)
            payment = Payment.objects.select_for_update().filter(booking_id=booking.pk).first()
            if payment is None:
                return ServiceResult.failure("Booking has no payment", error_code="NOT_ELIGIBLE")
            if payment.deposit_refunded:
                raise PreconditionFailedError(
                    "Deposit already returned",
                    details={**log_extra, "reference": payment.deposit_reference},
                )
            if (
                booking.stay_status != StayStatus.CHECKED_OUT
                or booking.check_out > cutoff
                or booking.status == BookingStatus.CANCELLED
                or payment.status not in OPEN_PAYMENT_STATUSES
            ):
                return ServiceResult.failure(
                    "Booking is not eligible for deposit return",
                    error_code="NOT_ELIGIBLE",
                )
            if Dispute.objects.blocking(booking, EscrowBucket.SECURITY_DEPOSIT).exists():
                cls.get_logger().info("Deposit return blocked by active dispute", extra=log_extra)
                return ServiceResult.failure(
                    "Security deposit is under dispute",
                    error_code="DISPUTE_BLOCKED",
                )

            amount = EscrowEventLog.remaining_cents(payment, EscrowBucket.SECURITY_DEPOSIT)
            reference = f"deposit_{booking.id}_{payment.reference_suffix}"

        # Phase 2
        outcome = None
        if amount > 0:
            cls.get_logger().info(
                "Refunding security deposit to guest",
                extra={**log_extra, "reference": reference, "amount_cents": amount},
            )
            outcome = cls._refund(payment, amount, reference)

        # Phase 3
        with transaction.atomic():
            updated = Payment.objects.filter(pk=payment.pk, deposit_refunded=False).update(
                deposit_refunded=True,
                updated_at=timezone.now(),
            )
            if not updated:
                return ServiceResult.failure(
                    "Deposit was returned concurrently",
                    error_code="ALREADY_RELEASED",
                )

            events = []
            if amount > 0:
                events = EscrowEventLog.append_many(
                    booking,
                    [
                        Movement(
                            event_type=EscrowEventType.RELEASE_DEPOSIT_TO_CUSTOMER,
                            bucket=EscrowBucket.SECURITY_DEPOSIT,
                            amount_cents=amount,
                            to_party=Party.CUSTOMER,
                            transaction_reference=reference,
                            provider_transaction_id=outcome.transfer_id or "",
                            outcome=outcome,
                        )
                    ],
                    actor_label="job:deposit_return",
                    executed_at=now,
                )

            payment = Payment.objects.select_for_update().get(pk=payment.pk)
            payment.deposit_reference = reference
            payment.deposit_refunded_at = now
            payment.customer_refund_cents += amount
            cls._settle_if_released(payment, booking)
            payment.save()

        cls.get_logger().info(
            "Security deposit returned",
            extra={**log_extra, "reference": reference, "amount_cents": amount},
        )

        if amount > 0:
            cls._notify(
                booking.guest,
                NotificationKind.DEPOSIT_RETURNED,
                "Your security deposit is on its way back",
                f"{format_amount(amount, payment.currency)} has been refunded to your payment method.",
                booking,
                f"deposit_returned:{booking.id}:guest",
            )
            cls._notify(
                booking.realtor,
                NotificationKind.DEPOSIT_RETURNED,
                "Security deposit returned to guest",
                f"The security deposit for booking {booking.id} was returned to the guest.",
                booking,
                f"deposit_returned:{booking.id}:realtor",
            )

        return ServiceResult.success(
            ReleaseResult(
                booking=booking,
                payment=payment,
                reference=reference,
                split=Split(customer_cents=amount),
                events=events,
                timed_out=is_timed_out(outcome),
            )
        )

    @classmethod
    def _settle_if_released(cls, payment: Payment, booking: Booking) -> bool:
        """Settle once room fee and deposit are both out of escrow. Caller saves payment."""
        if not payment.is_fully_released or payment.status not in OPEN_PAYMENT_STATUSES:
            return False
        payment.settle()
        Booking.objects.filter(pk=booking.pk, status=BookingStatus.ACTIVE).update(
            status=BookingStatus.COMPLETED,
            updated_at=timezone.now(),
        )
        cls.get_logger().info(
            "Payment settled",
            extra={"booking_id": str(booking.id), "payment_id": str(payment.id)},
        )
        return True
