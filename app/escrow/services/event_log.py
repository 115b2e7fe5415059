"""
Escrow event log: the only write path for EscrowEvent rows.

Every append is checked against what the booking's Payment originally held:
per bucket and in total, the cumulative outflow may never exceed the held
amount. A movement that would overdraw is rejected with
EscrowOverdraftError and nothing is recorded.

Usage:
    from escrow.services.event_log import EscrowEventLog, Movement

    with transaction.atomic():
        events = EscrowEventLog.append_many(booking, [
            Movement(
                event_type=EscrowEventType.RELEASE_ROOM_FEE_SPLIT,
                bucket=EscrowBucket.ROOM_FEE,
                amount_cents=9_000_000,
                to_party=Party.REALTOR,
                transaction_reference="room_fee_...",
            ),
        ])
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.db import transaction
from django.db.models import Sum
from django.utils import timezone

from core.exceptions import NotFoundError
from core.services import BaseService
from escrow.exceptions import EscrowOverdraftError
from escrow.models import EscrowEvent, Payment
from escrow.outcomes import TransferPending, serialize_outcome
from escrow.states import EscrowBucket, Party

if TYPE_CHECKING:
    from datetime import datetime

    from django.db.models import QuerySet

    from bookings.models import Booking
    from escrow.outcomes import TransferOutcome


@dataclass
class Movement:
    """
    One money movement to append.

    ``outcome`` defaults to TransferPending; legs that never leave the
    platform balance pass ``transfer_status=TransferStatus.NOT_APPLICABLE``.
    """

    event_type: str
    bucket: str
    amount_cents: int
    to_party: str
    from_party: str = Party.ESCROW
    transaction_reference: str = ""
    provider_transaction_id: str = ""
    outcome: TransferOutcome | None = None
    transfer_status: str | None = None
    notes: str = ""

    def __post_init__(self) -> None:
        if self.amount_cents <= 0:
            raise ValueError("amount_cents must be positive")
        if self.bucket not in EscrowBucket.values:
            raise ValueError(f"Unknown escrow bucket: {self.bucket}")


class EscrowEventLog(BaseService):
    """Append-only access to the escrow event log."""

    @classmethod
    def append(
        cls,
        booking: Booking,
        movement: Movement,
        actor=None,
        actor_label: str = "system",
        executed_at: datetime | None = None,
    ) -> EscrowEvent:
        """
        Append a single movement.

        Raises:
            NotFoundError: Booking has no payment (nothing was escrowed)
            EscrowOverdraftError: Movement exceeds what remains held
        """
        return cls.append_many(
            booking,
            [movement],
            actor=actor,
            actor_label=actor_label,
            executed_at=executed_at,
        )[0]

    @classmethod
    def append_many(
        cls,
        booking: Booking,
        movements: list[Movement],
        actor=None,
        actor_label: str = "system",
        executed_at: datetime | None = None,
    ) -> list[EscrowEvent]:
        """
        Append several movements atomically, in order.

        The Payment row is locked for the duration so two writers cannot
        both pass the overdraft check against the same remaining balance.
        """
        if not movements:
            return []

        executed_at = executed_at or timezone.now()

        with transaction.atomic():
            payment = Payment.objects.select_for_update().filter(booking_id=booking.pk).first()
            if payment is None:
                raise NotFoundError(
                    f"No escrowed payment for booking {booking.pk}",
                    error_code="PAYMENT_NOT_FOUND",
                    details={"booking_id": str(booking.pk)},
                )

            released = cls._released_by_bucket(booking.pk)
            total_released = sum(released.values())

            events = []
            for movement in movements:
                held = payment.held_in_bucket(movement.bucket)
                already = released.get(movement.bucket, 0)
                if already + movement.amount_cents > held:
                    cls._reject(booking, movement, held - already, movement.bucket)
                if total_released + movement.amount_cents > payment.total_cents:
                    cls._reject(
                        booking,
                        movement,
                        available=payment.total_cents - total_released,
                        bucket=None,
                    )

                outcome = movement.outcome or TransferPending()
                event = EscrowEvent.objects.create(
                    booking=booking,
                    event_type=movement.event_type,
                    bucket=movement.bucket,
                    amount_cents=movement.amount_cents,
                    currency=payment.currency,
                    from_party=movement.from_party,
                    to_party=movement.to_party,
                    executed_at=executed_at,
                    transaction_reference=movement.transaction_reference,
                    provider_transaction_id=movement.provider_transaction_id,
                    provider_response=serialize_outcome(outcome),
                    transfer_status=movement.transfer_status or outcome.status,
                    notes=movement.notes,
                    actor=actor,
                    actor_label=actor_label,
                )
                events.append(event)
                released[movement.bucket] = already + movement.amount_cents
                total_released += movement.amount_cents

        cls.get_logger().info(
            f"Appended {len(events)} escrow event(s)",
            extra={
                "booking_id": str(booking.pk),
                "event_types": [e.event_type for e in events],
                "amount_cents": sum(e.amount_cents for e in events),
                "actor": actor_label,
            },
        )
        return events

    @classmethod
    def list_for_booking(cls, booking_id) -> QuerySet[EscrowEvent]:
        """Chronologically ordered events for a booking."""
        return EscrowEvent.objects.filter(booking_id=booking_id).order_by(
            "executed_at", "created_at"
        )

    @classmethod
    def released_cents(cls, booking_id, bucket: str | None = None) -> int:
        qs = EscrowEvent.objects.filter(booking_id=booking_id)
        if bucket is not None:
            qs = qs.filter(bucket=bucket)
        return qs.aggregate(total=Sum("amount_cents"))["total"] or 0

    @classmethod
    def paid_to_cents(cls, booking_id, party: str) -> int:
        """Total moved to ``party`` across every bucket."""
        qs = EscrowEvent.objects.filter(booking_id=booking_id, to_party=party)
        return qs.aggregate(total=Sum("amount_cents"))["total"] or 0

    @classmethod
    def remaining_cents(cls, payment: Payment, bucket: str) -> int:
        """What is still held for ``bucket`` after every recorded movement."""
        return payment.held_in_bucket(bucket) - cls.released_cents(payment.booking_id, bucket)

    # =========================================================================
    # Internals
    # =========================================================================

    @staticmethod
    def _released_by_bucket(booking_id) -> dict[str, int]:
        rows = (
            EscrowEvent.objects.filter(booking_id=booking_id)
            .values("bucket")
            .annotate(total=Sum("amount_cents"))
        )
        return {row["bucket"]: row["total"] or 0 for row in rows}

    @classmethod
    def _reject(cls, booking, movement: Movement, available: int, bucket: str | None) -> None:
        scope = f"bucket {bucket}" if bucket else "booking total"
        cls.get_logger().critical(
            f"Escrow overdraft rejected on {scope}",
            extra={
                "booking_id": str(booking.pk),
                "event_type": movement.event_type,
                "requested_cents": movement.amount_cents,
                "available_cents": available,
                "bucket": bucket,
            },
        )
        raise EscrowOverdraftError(
            f"Movement of {movement.amount_cents} exceeds {available} remaining in {scope}",
            booking_id=str(booking.pk),
            requested_cents=movement.amount_cents,
            available_cents=max(available, 0),
            bucket=bucket,
        )


__all__ = ["EscrowEventLog", "Movement"]
