"""
Payout service for realtor earnings.

Realtor earnings are computed with ``compute_realtor_payout``:

    base price x nights - platform commission + service + cleaning + deposit

The room fee and deposit have already left escrow by the time a payout
runs (room fee split, deposit return), so the payout itself only
transfers what is still held in the CLEANING_FEE and SERVICE_FEE buckets.
The breakdown drives the commission reported on the Payment;
``realtor_earnings_cents`` records what the ledger actually paid the realtor,
which excludes a deposit that went back to the guest.

Payout status flow (on the Booking):
    PENDING -> READY -> PROCESSING -> COMPLETED
    PROCESSING -> FAILED -> PENDING (permanent gateway error, reset on the next run)
    PROCESSING -> PENDING (transient gateway error)
    PROCESSING -> PENDING (gateway timeout, retried with the same reference)

Usage:
    from escrow.services import PayoutService

    PayoutService.mark_ready()
    for booking in PayoutService.eligible_bookings():
        result = PayoutService.process_payout(booking)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from django.db import transaction
from django.utils import timezone

from bookings.models import Booking
from bookings.states import BookingStatus, PayoutStatus
from core.services import ServiceResult
from escrow.adapters import is_retryable_gateway_error
from escrow.exceptions import GatewayError, PreconditionFailedError
from escrow.locks import DistributedLock
from escrow.models import Payment
from escrow.outcomes import is_timed_out
from escrow.refunds import PayoutBreakdown, compute_realtor_payout
from escrow.services.base import EscrowService, format_amount
from escrow.services.event_log import EscrowEventLog, Movement
from escrow.states import EscrowBucket, EscrowEventType, Party, PaymentStatus
from notifications.models import NotificationKind

if TYPE_CHECKING:
    from datetime import datetime

    from django.db.models import QuerySet

    from escrow.models import EscrowEvent


# =============================================================================
# Constants
# =============================================================================

# Distributed lock TTL for payout execution (seconds)
PAYOUT_LOCK_TTL = 120

# Buckets still held when the payout runs
PAYOUT_BUCKETS = (EscrowBucket.CLEANING_FEE, EscrowBucket.SERVICE_FEE)

PAYABLE_PAYMENT_STATUSES = (PaymentStatus.PARTIALLY_RELEASED, PaymentStatus.SETTLED)
OPEN_PAYOUT_STATUSES = (PayoutStatus.PENDING, PayoutStatus.READY)


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class PayoutExecutionResult:
    """
    Result of a payout execution attempt.

    Attributes:
        booking: The booking paid out
        breakdown: Realtor earnings breakdown
        transferred_cents: Amount actually transferred by this payout
        reference: Idempotent transfer reference
        timed_out: Gateway timed out; payout reverted to PENDING
    """

    booking: Booking
    breakdown: PayoutBreakdown
    transferred_cents: int
    reference: str
    transfer_id: str | None = None
    timed_out: bool = False
    events: list[EscrowEvent] = field(default_factory=list)


# =============================================================================
# Payout Service
# =============================================================================


class PayoutService(EscrowService):
    """
    Service for executing realtor payouts.

    Two-Phase Commit Pattern:
        1. Acquire distributed lock to prevent concurrent execution
        2. Transition payout to PROCESSING within a transaction
        3. Call Stripe transfer OUTSIDE the transaction
        4. Record COMPLETED (or FAILED / back to PENDING on timeout)

    Safety Guarantees:
        - Distributed lock prevents concurrent execution of same payout
        - commission_paid_out is flipped with a conditional UPDATE
        - The transfer reference is stable across retries
    """

    @classmethod
    def mark_ready(cls, now: datetime | None = None) -> int:
        """PENDING -> READY for bookings past payout eligibility. Returns count."""
        now = now or timezone.now()
        count = Booking.objects.filter(
            payout_status=PayoutStatus.PENDING,
            payout_eligible_at__lte=now,
            payment__status__in=PAYABLE_PAYMENT_STATUSES,
        ).update(payout_status=PayoutStatus.READY, updated_at=now)
        if count:
            cls.get_logger().info(f"Marked {count} payout(s) ready", extra={"count": count})
        return count

    @classmethod
    def reset_failed(cls, now: datetime | None = None) -> int:
        """FAILED -> PENDING so failed payouts are retried. Returns count."""
        count = Booking.objects.filter(payout_status=PayoutStatus.FAILED).update(
            payout_status=PayoutStatus.PENDING,
            updated_at=now or timezone.now(),
        )
        if count:
            cls.get_logger().info(f"Requeued {count} failed payout(s)", extra={"count": count})
        return count

    @classmethod
    def eligible_bookings(cls, now: datetime | None = None) -> QuerySet[Booking]:
        now = now or timezone.now()
        return (
            Booking.objects.filter(
                payout_status__in=OPEN_PAYOUT_STATUSES,
                check_in__lte=now,
                payment__status__in=PAYABLE_PAYMENT_STATUSES,
                payment__commission_paid_out=False,
            )
            .exclude(status=BookingStatus.DISPUTED)
            .select_related("listing", "listing__realtor")
            .order_by("payout_eligible_at")
        )

    @classmethod
    def process_payout(
        cls,
        booking: Booking,
        now: datetime | None = None,
    ) -> ServiceResult[PayoutExecutionResult]:
        """
        Pay the realtor's remaining earnings for a booking.

        Error codes:
            NOT_ELIGIBLE: Check-in not reached or room fee not released
            GATEWAY_*: Transfer failed; payout is PENDING when the error is
                transient and FAILED otherwise

        Raises:
            LockAcquisitionError: Another worker is paying this booking
            PreconditionFailedError: Payout already processed
        """
        with DistributedLock(f"payout:{booking.id}", ttl=PAYOUT_LOCK_TTL, blocking=False) as lock:
            return cls._process_payout_with_lock(booking, now or timezone.now(), lock)

    @classmethod
    def _process_payout_with_lock(
        cls,
        booking: Booking,
        now: datetime,
        lock: DistributedLock,
    ) -> ServiceResult[PayoutExecutionResult]:
        log_extra = {"booking_id": str(booking.id)}

        # Phase 1: validate and move to PROCESSING
        with transaction.atomic():
            booking = Booking.objects.select_for_update().get(pk=booking.pk)
            payment = Payment.objects.select_for_update().get(booking_id=booking.pk)

            if booking.payout_status not in OPEN_PAYOUT_STATUSES or payment.commission_paid_out:
                cls.get_logger().error(
                    "Payout already processed",
                    extra={**log_extra, "payout_status": booking.payout_status},
                )
                raise PreconditionFailedError(
                    "Payout already processed",
                    details={**log_extra, "payout_status": booking.payout_status},
                )
            if booking.check_in > now or payment.status not in PAYABLE_PAYMENT_STATUSES:
                return ServiceResult.failure(
                    "Booking is not eligible for payout",
                    error_code="NOT_ELIGIBLE",
                )

            breakdown = compute_realtor_payout(
                price_per_night_cents=booking.listing.price_per_night_cents,
                nights=booking.nights,
                service_fee_cents=payment.service_fee_cents,
                cleaning_fee_cents=payment.cleaning_fee_cents,
                security_deposit_cents=payment.security_deposit_cents,
            )
            legs = [
                (bucket, EscrowEventLog.remaining_cents(payment, bucket))
                for bucket in PAYOUT_BUCKETS
            ]
            legs = [(bucket, amount) for bucket, amount in legs if amount > 0]
            total = sum(amount for _, amount in legs)

            reference = payment.payout_reference or (
                f"payout_{booking.id}_{payment.reference_suffix}"
            )
            payment.payout_reference = reference
            payment.save(update_fields=["payout_reference", "updated_at"])

            booking.payout_status = PayoutStatus.PROCESSING
            booking.save(update_fields=["payout_status", "updated_at"])

        # Phase 2: transfer outside the transaction
        outcome = None
        if total > 0:
            cls.get_logger().info(
                "Transferring realtor payout",
                extra={**log_extra, "reference": reference, "amount_cents": total},
            )
            # Refresh the TTL so the lock outlives the gateway call
            lock.extend()
            try:
                outcome = cls._transfer(booking, total, reference, payment.currency)
            except GatewayError as e:
                retryable = is_retryable_gateway_error(e)
                cls.get_logger().error(
                    f"Payout transfer failed: {type(e).__name__}",
                    extra={
                        **log_extra,
                        "reference": reference,
                        "error": str(e),
                        "retryable": retryable,
                    },
                )
                cls._set_payout_status(
                    booking, PayoutStatus.PENDING if retryable else PayoutStatus.FAILED
                )
                return ServiceResult.from_exception(e)

            if is_timed_out(outcome):
                # Unknown outcome: retry later with the same reference
                cls._set_payout_status(booking, PayoutStatus.PENDING)
                return ServiceResult.success(
                    PayoutExecutionResult(
                        booking=booking,
                        breakdown=breakdown,
                        transferred_cents=0,
                        reference=reference,
                        timed_out=True,
                    )
                )

        # Phase 3: record completion
        with transaction.atomic():
            updated = Payment.objects.filter(pk=payment.pk, commission_paid_out=False).update(
                commission_paid_out=True,
                updated_at=timezone.now(),
            )
            if not updated:
                cls.get_logger().error(
                    "Commission already marked paid after transfer",
                    extra={**log_extra, "reference": reference},
                )
                return ServiceResult.failure(
                    "Payout was recorded concurrently",
                    error_code="ALREADY_PAID",
                )

            events = EscrowEventLog.append_many(
                booking,
                [
                    Movement(
                        event_type=EscrowEventType.REALTOR_PAYOUT,
                        bucket=bucket,
                        amount_cents=amount,
                        to_party=Party.REALTOR,
                        transaction_reference=reference,
                        provider_transaction_id=outcome.transfer_id or "",
                        outcome=outcome,
                    )
                    for bucket, amount in legs
                ],
                actor_label="job:payout_eligibility",
                executed_at=now,
            )

            payment = Payment.objects.select_for_update().get(pk=payment.pk)
            payment.realtor_earnings_cents = EscrowEventLog.paid_to_cents(booking.id, Party.REALTOR)
            payment.platform_commission_cents = breakdown.commission_cents
            payment.payout_date = now
            payment.save()

            booking = Booking.objects.select_for_update().get(pk=booking.pk)
            booking.payout_status = PayoutStatus.COMPLETED
            booking.payout_completed_at = now
            booking.save(update_fields=["payout_status", "payout_completed_at", "updated_at"])

        cls.get_logger().info(
            "Payout completed",
            extra={
                **log_extra,
                "reference": reference,
                "transferred_cents": total,
                "earnings_cents": payment.realtor_earnings_cents,
            },
        )

        cls._notify(
            booking.realtor,
            NotificationKind.PAYOUT_COMPLETED,
            "Payout sent",
            f"Your earnings of {format_amount(payment.realtor_earnings_cents, payment.currency)} "
            f"for booking {booking.id} have been paid out.",
            booking,
            f"payout_completed:{booking.id}",
        )

        return ServiceResult.success(
            PayoutExecutionResult(
                booking=booking,
                breakdown=breakdown,
                transferred_cents=total,
                reference=reference,
                transfer_id=outcome.transfer_id if outcome else None,
                events=events,
            )
        )

    @classmethod
    def _set_payout_status(cls, booking: Booking, status: str) -> None:
        Booking.objects.filter(pk=booking.pk, payout_status=PayoutStatus.PROCESSING).update(
            payout_status=status,
            updated_at=timezone.now(),
        )
        booking.payout_status = status
