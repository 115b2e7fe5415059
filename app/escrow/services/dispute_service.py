"""
Dispute resolution service.

Lifecycle:
    open_dispute -> request_response -> respond_to_dispute
        ACCEPT           -> resolved with the claimed amount
        REJECT_ESCALATE  -> ESCALATED, admin deadline starts
    admin_resolve_dispute (ESCALATED only)
    auto_resolve (SLA sweeper, deadline passed) -> PARTIAL_REFUND fallback

Executing a decision moves only what is still held in the contested
buckets, so a resolution can never authorize more than escrow holds.
Gateway calls happen outside the transaction; the dispute stays active
until Phase 3 records the movement, so a failed gateway call leaves it
for a retry.

Usage:
    from escrow.services import DisputeService

    result = DisputeService.open_dispute(
        booking, user=guest, subject=DisputeSubject.ROOM_FEE,
        reason="Apartment was not as described",
        guest_claimed_cents=4_500_000,
    )
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from django.db import transaction
from django.utils import timezone
from django_fsm import TransitionNotAllowed

from bookings.models import Booking
from bookings.states import BookingStatus
from core.exceptions import PermissionDeniedError, ValidationError
from core.services import ServiceResult
from escrow.exceptions import (
    DisputeConflictError,
    EscrowOverdraftError,
    InvalidStateTransitionError,
)
from escrow.models import Dispute, Payment
from escrow.refunds import ResolutionPlan, Split, resolution_splits
from escrow.services.base import EscrowService, format_amount
from escrow.services.event_log import EscrowEventLog, Movement
from escrow.states import (
    DisputeDecision,
    DisputeResponse,
    DisputeStatus,
    DisputeSubject,
    EscrowBucket,
    EscrowEventType,
    Party,
    PaymentStatus,
    TransferStatus,
)
from notifications.models import NotificationKind

if TYPE_CHECKING:
    from datetime import datetime

    from escrow.outcomes import TransferOutcome


# Buckets each dispute subject contests
SUBJECT_BUCKETS = {
    DisputeSubject.ROOM_FEE: (EscrowBucket.ROOM_FEE,),
    DisputeSubject.SECURITY_DEPOSIT: (EscrowBucket.SECURITY_DEPOSIT,),
    DisputeSubject.GENERAL: (EscrowBucket.ROOM_FEE, EscrowBucket.SECURITY_DEPOSIT),
}

OPEN_PAYMENT_STATUSES = (PaymentStatus.HELD, PaymentStatus.PARTIALLY_RELEASED)

FINAL_OUTCOMES = {
    DisputeDecision.FULL_REFUND: "REFUNDED_TO_CUSTOMER",
    DisputeDecision.FULL_PAYOUT: "RELEASED_TO_REALTOR",
    DisputeDecision.PARTIAL_REFUND: "SPLIT_BETWEEN_PARTIES",
}
FALLBACK_OUTCOME = "SPLIT_BY_FALLBACK_SHARE"
NOTHING_HELD_OUTCOME = "CLOSED_NOTHING_HELD"
CANCELLED_OUTCOME = "CLOSED_BY_CANCELLATION"


@dataclass
class ResolutionResult:
    dispute: Dispute
    plan: ResolutionPlan


class DisputeService(EscrowService):
    """
    Opens, escalates and resolves disputes.

    Rule violations (not a party, wrong state, conflicting dispute) raise
    BaseApplicationError subclasses so the API can render them with the
    right status code; successful operations return ServiceResult.
    """

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @classmethod
    def open_dispute(
        cls,
        booking: Booking,
        user,
        subject: str,
        reason: str = "",
        guest_claimed_cents: int | None = None,
        realtor_claimed_cents: int | None = None,
    ) -> ServiceResult[Dispute]:
        """
        Open a dispute and freeze settlement of its subject.

        Raises:
            ValidationError: Unknown subject, negative claim, or the contested
                funds have already left escrow
            PermissionDeniedError: User is neither guest, realtor nor staff
            InvalidStateTransitionError: Booking cannot be disputed
            DisputeConflictError: An active dispute on this subject exists
        """
        if subject not in DisputeSubject.values:
            raise ValidationError(f"Unknown dispute subject: {subject}", details={"subject": subject})
        for name, value in (
            ("guest_claimed_cents", guest_claimed_cents),
            ("realtor_claimed_cents", realtor_claimed_cents),
        ):
            if value is not None and value < 0:
                raise ValidationError(f"{name} must not be negative", details={name: value})
        if not booking.is_party(user):
            raise PermissionDeniedError("Only the guest, the realtor or staff can open a dispute")

        with transaction.atomic():
            booking = Booking.objects.select_for_update().get(pk=booking.pk)
            if booking.status not in (BookingStatus.ACTIVE, BookingStatus.DISPUTED):
                raise InvalidStateTransitionError(
                    f"Booking is {booking.status} and cannot be disputed",
                    current_state=booking.status,
                    attempted_transition="open_dispute",
                )

            payment = Payment.objects.filter(booking_id=booking.pk).first()
            if payment is None or payment.status not in OPEN_PAYMENT_STATUSES:
                raise ValidationError(
                    "Booking has no funds held in escrow",
                    error_code="NOTHING_HELD",
                )
            if cls._contested_remaining(payment, subject) == {}:
                raise ValidationError(
                    "The disputed funds have already been released",
                    error_code="ALREADY_RELEASED",
                    details={"subject": subject},
                )

            if Dispute.objects.active().filter(booking=booking, subject=subject).exists():
                raise DisputeConflictError(
                    f"An active {subject} dispute already exists for this booking",
                    details={"booking_id": str(booking.id), "subject": subject},
                )

            dispute = Dispute.objects.create(
                booking=booking,
                subject=subject,
                opened_by=user,
                reason=reason,
                guest_claimed_cents=guest_claimed_cents,
                realtor_claimed_cents=realtor_claimed_cents,
            )
            if booking.status != BookingStatus.DISPUTED:
                booking.status = BookingStatus.DISPUTED
                booking.save(update_fields=["status", "updated_at"])

        cls.get_logger().info(
            "Dispute opened",
            extra={
                "booking_id": str(booking.id),
                "dispute_id": str(dispute.id),
                "subject": subject,
                "opened_by": user.pk,
            },
        )

        counterparty = booking.realtor if user.pk == booking.guest_id else booking.guest
        cls._notify(
            counterparty,
            NotificationKind.DISPUTE_OPENED,
            "A dispute was opened on your booking",
            f"A {dispute.get_subject_display().lower()} dispute was opened: {reason}",
            booking,
            f"dispute_opened:{dispute.id}",
        )
        return ServiceResult.success(dispute)

    @classmethod
    def request_response(cls, dispute: Dispute, user=None) -> ServiceResult[Dispute]:
        """OPEN -> AWAITING_RESPONSE: the counterparty has been asked to respond."""
        if user is not None and not dispute.booking.is_party(user):
            raise PermissionDeniedError("Only a party to the booking can update this dispute")
        with transaction.atomic():
            dispute = Dispute.objects.select_for_update().get(pk=dispute.pk)
            cls._apply_transition(dispute, "await_response")
            dispute.save()
        return ServiceResult.success(dispute)

    @classmethod
    def respond_to_dispute(cls, dispute: Dispute, user, response: str) -> ServiceResult[Dispute]:
        """
        Counterparty's answer to a claim.

        ACCEPT executes the claim as a PARTIAL_REFUND of the claimed amount
        (the 50/50 fallback when no amount was claimed). REJECT_ESCALATE
        hands the dispute to an admin and starts the SLA clock.

        Raises:
            PermissionDeniedError: User is not the counterparty (or staff)
            InvalidStateTransitionError: Dispute is not awaiting a response
        """
        booking = dispute.booking
        if response not in DisputeResponse.values:
            raise ValidationError(f"Unknown response: {response}", details={"response": response})
        is_counterparty = booking.is_party(user) and user.pk != dispute.opened_by_id
        if not (is_counterparty or getattr(user, "is_staff", False)):
            raise PermissionDeniedError("Only the other party can respond to this dispute")
        if dispute.status not in (DisputeStatus.OPEN, DisputeStatus.AWAITING_RESPONSE):
            raise InvalidStateTransitionError(
                f"Dispute is {dispute.status} and no longer awaits a response",
                current_state=dispute.status,
                attempted_transition="respond",
            )

        if response == DisputeResponse.ACCEPT:
            result = cls._execute_resolution(
                dispute,
                DisputeDecision.PARTIAL_REFUND,
                amount_cents=cls._claimed_customer_amount(dispute),
                actor=user,
                actor_label="counterparty",
                notes="Claim accepted by the other party",
            )
            return ServiceResult.success(result.data.dispute) if result.success else result

        with transaction.atomic():
            dispute = Dispute.objects.select_for_update().get(pk=dispute.pk)
            cls._apply_transition(dispute, "escalate")
            dispute.save()

        cls.get_logger().info(
            "Dispute escalated",
            extra={
                "dispute_id": str(dispute.id),
                "booking_id": str(booking.id),
                "admin_deadline_at": dispute.admin_deadline_at.isoformat(),
            },
        )
        for party, role in ((booking.guest, "guest"), (booking.realtor, "realtor")):
            cls._notify(
                party,
                NotificationKind.DISPUTE_ESCALATED,
                "Your dispute was escalated",
                "An administrator will review the dispute within "
                f"{dispute.admin_deadline_at:%Y-%m-%d %H:%M} UTC.",
                booking,
                f"dispute_escalated:{dispute.id}:{role}",
            )
        return ServiceResult.success(dispute)

    @classmethod
    def admin_resolve_dispute(
        cls,
        dispute: Dispute,
        admin,
        decision: str,
        amount_cents: int | None = None,
        notes: str = "",
    ) -> ServiceResult[ResolutionResult]:
        """
        Apply an admin decision to an escalated dispute.

        Raises:
            PermissionDeniedError: User is not staff
            InvalidStateTransitionError: Dispute is not ESCALATED
            EscrowOverdraftError: Amount exceeds what remains held
        """
        if not getattr(admin, "is_staff", False):
            raise PermissionDeniedError("Admin access required")
        if decision not in DisputeDecision.values:
            raise ValidationError(f"Unknown decision: {decision}", details={"decision": decision})
        if dispute.status != DisputeStatus.ESCALATED:
            raise InvalidStateTransitionError(
                "Only escalated disputes can be resolved by an admin",
                current_state=dispute.status,
                attempted_transition="admin_resolve",
            )

        cls.get_logger().warning(
            f"Admin {admin.username} resolving dispute {dispute.id} as {decision}",
            extra={
                "dispute_id": str(dispute.id),
                "booking_id": str(dispute.booking_id),
                "admin_id": admin.pk,
                "decision": decision,
                "amount_cents": amount_cents,
                "prior_status": dispute.status,
            },
        )
        return cls._execute_resolution(
            dispute,
            decision,
            amount_cents=amount_cents,
            actor=admin,
            actor_label="admin",
            notes=notes,
        )

    @classmethod
    def auto_resolve(
        cls,
        dispute: Dispute,
        now: datetime | None = None,
    ) -> ServiceResult[ResolutionResult]:
        """
        Force-resolve an escalated dispute whose admin deadline has passed.

        Error codes:
            NOT_OVERDUE: Dispute was resolved or its deadline moved meanwhile
        """
        now = now or timezone.now()
        dispute.refresh_from_db()
        if (
            dispute.status != DisputeStatus.ESCALATED
            or dispute.admin_deadline_at is None
            or dispute.admin_deadline_at >= now
        ):
            return ServiceResult.failure("Dispute is not overdue", error_code="NOT_OVERDUE")

        return cls._execute_resolution(
            dispute,
            DisputeDecision.PARTIAL_REFUND,
            amount_cents=None,
            actor=None,
            actor_label="system",
            notes=(
                "Automatically resolved after the admin deadline of "
                f"{dispute.admin_deadline_at.isoformat()} passed (SLA breach)"
            ),
        )

    @classmethod
    def auto_resolve_overdue(cls, now: datetime | None = None):
        """Run the SLA sweep once; returns the job report."""
        from escrow.jobs import DisputeSlaJob

        return DisputeSlaJob(now=now).run_now()

    # =========================================================================
    # Execution
    # =========================================================================

    @classmethod
    def _execute_resolution(
        cls,
        dispute: Dispute,
        decision: str,
        amount_cents: int | None,
        actor,
        actor_label: str,
        notes: str,
    ) -> ServiceResult[ResolutionResult]:
        log_extra = {"dispute_id": str(dispute.id), "booking_id": str(dispute.booking_id)}

        if decision == DisputeDecision.REJECTED:
            return cls._reject_dispute(dispute, actor, actor_label, notes)

        # Phase 1: plan against what is still held
        with transaction.atomic():
            dispute = Dispute.objects.select_for_update().select_related("booking").get(
                pk=dispute.pk
            )
            if not dispute.is_active:
                raise InvalidStateTransitionError(
                    f"Dispute is already {dispute.status}",
                    current_state=dispute.status,
                    attempted_transition="resolve",
                )
            booking = dispute.booking

            payment = Payment.objects.select_for_update().get(booking_id=booking.pk)
            if payment.status not in OPEN_PAYMENT_STATUSES:
                cls.get_logger().warning(
                    f"Payment is {payment.status}; closing dispute without movement",
                    extra={**log_extra, "decision": decision},
                )
                return cls._close_without_movement(
                    dispute, decision, NOTHING_HELD_OUTCOME, actor, actor_label, notes
                )

            cancels_booking = (
                dispute.subject == DisputeSubject.ROOM_FEE
                and decision == DisputeDecision.FULL_REFUND
            )
            subject = DisputeSubject.GENERAL if cancels_booking else dispute.subject
            remaining = cls._contested_remaining(payment, subject)
            room = remaining.get(EscrowBucket.ROOM_FEE, 0)
            deposit = remaining.get(EscrowBucket.SECURITY_DEPOSIT, 0)

            if amount_cents is not None and amount_cents > room + deposit:
                cls.get_logger().critical(
                    "Dispute amount exceeds escrow balance",
                    extra={**log_extra, "requested_cents": amount_cents, "available_cents": room + deposit},
                )
                raise EscrowOverdraftError(
                    f"Resolution of {amount_cents} exceeds {room + deposit} remaining in escrow",
                    booking_id=str(booking.id),
                    requested_cents=amount_cents,
                    available_cents=room + deposit,
                )

            plan = resolution_splits(decision, room, deposit, amount_cents=amount_cents)
            if cancels_booking:
                # The realtor keeps the cleaning fee and the platform its service fee
                plan = replace(
                    plan,
                    cleaning_fee=Split(
                        realtor_cents=EscrowEventLog.remaining_cents(
                            payment, EscrowBucket.CLEANING_FEE
                        )
                    ),
                    service_fee=Split(
                        platform_cents=EscrowEventLog.remaining_cents(
                            payment, EscrowBucket.SERVICE_FEE
                        )
                    ),
                )
            reference = f"dispute_{booking.id}_{str(dispute.id).replace('-', '')[-8:]}"
            dispute.execution_reference = reference
            dispute.save(update_fields=["execution_reference", "updated_at"])

        # Phase 2: gateway calls outside the transaction
        refund_outcome = None
        transfer_outcome = None
        if plan.customer_cents > 0:
            refund_outcome = cls._refund(payment, plan.customer_cents, f"{reference}_customer")
        if plan.realtor_cents > 0:
            transfer_outcome = cls._transfer(
                booking, plan.realtor_cents, f"{reference}_realtor", payment.currency
            )

        # Phase 3: record movements and close the dispute
        closed: list[Dispute] = []
        with transaction.atomic():
            dispute = Dispute.objects.select_for_update().get(pk=dispute.pk)
            if not dispute.is_active:
                cls.get_logger().warning(
                    "Dispute closed concurrently after gateway calls",
                    extra={**log_extra, "reference": reference},
                )
                return ServiceResult.failure(
                    "Dispute was resolved concurrently",
                    error_code="ALREADY_RESOLVED",
                )

            movements = cls._plan_movements(plan, reference, refund_outcome, transfer_outcome)
            EscrowEventLog.append_many(booking, movements, actor=actor, actor_label=actor_label)

            payment = Payment.objects.select_for_update().get(pk=payment.pk)
            booking = Booking.objects.select_for_update().get(pk=booking.pk)
            covered = SUBJECT_BUCKETS[subject]
            if EscrowBucket.ROOM_FEE in covered:
                payment.room_fee_split_done = True
                payment.realtor_room_fee_cents += plan.room_fee.realtor_cents
                payment.platform_room_fee_cents += plan.room_fee.platform_cents
                if payment.status == PaymentStatus.HELD and not cancels_booking:
                    payment.release_room_fee()
            if EscrowBucket.SECURITY_DEPOSIT in covered:
                payment.deposit_refunded = True
                payment.deposit_refunded_at = timezone.now()
            payment.customer_refund_cents += plan.customer_cents

            if cancels_booking:
                payment.refund_reference = reference
                payment.refund()
                booking.status = BookingStatus.CANCELLED
                booking.save(update_fields=["status", "updated_at"])
                closed = cls._close_sibling_disputes(dispute, actor, actor_label)
            elif payment.is_fully_released:
                payment.settle()
                booking.status = BookingStatus.COMPLETED
                booking.save(update_fields=["status", "updated_at"])
            else:
                cls._reopen_booking(booking, dispute)
            payment.save()

            dispute.customer_amount_cents = plan.customer_cents
            dispute.realtor_amount_cents = plan.realtor_cents
            dispute.platform_amount_cents = plan.platform_cents
            cls._record_resolver(dispute, actor, actor_label, notes)
            outcome = FALLBACK_OUTCOME if plan.used_fallback else FINAL_OUTCOMES[decision]
            dispute.resolve(decision, outcome)
            dispute.save()

        cls.get_logger().info(
            "Dispute resolved",
            extra={
                **log_extra,
                "decision": decision,
                "reference": reference,
                "actor": actor_label,
                **plan.room_fee.as_dict(),
                "deposit_customer_cents": plan.security_deposit.customer_cents,
                "deposit_realtor_cents": plan.security_deposit.realtor_cents,
            },
        )
        cls._notify_resolution(dispute, plan)
        for other in closed:
            cls._notify_resolution(other, ResolutionPlan.empty(other.decision))
        return ServiceResult.success(ResolutionResult(dispute=dispute, plan=plan))

    @classmethod
    def _close_sibling_disputes(cls, closing: Dispute, actor, actor_label: str) -> list[Dispute]:
        """Close the booking's other active disputes once it is cancelled and refunded."""
        closed = []
        others = (
            Dispute.objects.active()
            .select_for_update()
            .filter(booking_id=closing.booking_id)
            .exclude(pk=closing.pk)
        )
        for other in others:
            cls._record_resolver(
                other, actor, actor_label, f"Closed by the resolution of dispute {closing.id}"
            )
            other.resolve(DisputeDecision.FULL_REFUND, CANCELLED_OUTCOME)
            other.save()
            closed.append(other)
        if closed:
            cls.get_logger().info(
                "Closed disputes on cancelled booking",
                extra={
                    "booking_id": str(closing.booking_id),
                    "dispute_ids": [str(other.id) for other in closed],
                },
            )
        return closed

    @classmethod
    def _close_without_movement(
        cls,
        dispute: Dispute,
        decision: str,
        outcome: str,
        actor,
        actor_label: str,
        notes: str,
    ) -> ServiceResult[ResolutionResult]:
        """Resolve a locked dispute whose payment no longer holds anything."""
        cls._record_resolver(dispute, actor, actor_label, notes)
        dispute.resolve(decision, outcome)
        dispute.save()
        booking = Booking.objects.select_for_update().get(pk=dispute.booking_id)
        cls._reopen_booking(booking, dispute)
        plan = ResolutionPlan.empty(decision)
        cls._notify_resolution(dispute, plan)
        return ServiceResult.success(ResolutionResult(dispute=dispute, plan=plan))

    @classmethod
    def _reject_dispute(
        cls,
        dispute: Dispute,
        actor,
        actor_label: str,
        notes: str,
    ) -> ServiceResult[ResolutionResult]:
        """Close the dispute without moving money."""
        with transaction.atomic():
            dispute = Dispute.objects.select_for_update().select_related("booking").get(
                pk=dispute.pk
            )
            cls._apply_transition(dispute, "reject")
            cls._record_resolver(dispute, actor, actor_label, notes)
            dispute.save()
            booking = Booking.objects.select_for_update().get(pk=dispute.booking_id)
            cls._reopen_booking(booking, dispute)

        cls.get_logger().info(
            "Dispute rejected",
            extra={"dispute_id": str(dispute.id), "booking_id": str(booking.id)},
        )
        plan = resolution_splits(DisputeDecision.REJECTED, 0, 0)
        cls._notify_resolution(dispute, plan)
        return ServiceResult.success(ResolutionResult(dispute=dispute, plan=plan))

    # =========================================================================
    # Helpers
    # =========================================================================

    @classmethod
    def _contested_remaining(cls, payment: Payment, subject: str) -> dict[str, int]:
        """Remaining held amount per contested bucket, omitting empty buckets."""
        remaining = {}
        for bucket in SUBJECT_BUCKETS[subject]:
            if bucket == EscrowBucket.ROOM_FEE and payment.room_fee_split_done:
                continue
            if bucket == EscrowBucket.SECURITY_DEPOSIT and payment.deposit_refunded:
                continue
            amount = EscrowEventLog.remaining_cents(payment, bucket)
            if amount > 0:
                remaining[bucket] = amount
        return remaining

    @staticmethod
    def _claimed_customer_amount(dispute: Dispute) -> int | None:
        """Customer amount implied by the claim, or None for the fallback split."""
        if dispute.guest_claimed_cents is not None:
            return dispute.guest_claimed_cents
        if dispute.realtor_claimed_cents is not None:
            payment = Payment.objects.get(booking_id=dispute.booking_id)
            held = sum(
                DisputeService._contested_remaining(payment, dispute.subject).values()
            )
            return max(held - dispute.realtor_claimed_cents, 0)
        return None

    @staticmethod
    def _plan_movements(
        plan: ResolutionPlan,
        reference: str,
        refund_outcome: TransferOutcome | None,
        transfer_outcome: TransferOutcome | None,
    ) -> list[Movement]:
        customer_ref = f"{reference}_customer"
        realtor_ref = f"{reference}_realtor"
        refund_id = getattr(refund_outcome, "transfer_id", None) or ""
        transfer_id = getattr(transfer_outcome, "transfer_id", None) or ""

        movements = []
        for bucket, split, realtor_event, platform_event in (
            (
                EscrowBucket.ROOM_FEE,
                plan.room_fee,
                EscrowEventType.RELEASE_ROOM_FEE_SPLIT,
                EscrowEventType.COLLECT_PLATFORM_FEE,
            ),
            (
                EscrowBucket.SECURITY_DEPOSIT,
                plan.security_deposit,
                EscrowEventType.PAY_REALTOR_FROM_DEPOSIT,
                EscrowEventType.COLLECT_PLATFORM_FEE,
            ),
            (
                EscrowBucket.CLEANING_FEE,
                plan.cleaning_fee,
                EscrowEventType.RELEASE_CLEANING_FEE,
                EscrowEventType.COLLECT_PLATFORM_FEE,
            ),
            (
                EscrowBucket.SERVICE_FEE,
                plan.service_fee,
                EscrowEventType.RELEASE_CLEANING_FEE,
                EscrowEventType.COLLECT_SERVICE_FEE,
            ),
        ):
            if split.customer_cents:
                movements.append(
                    Movement(
                        event_type=EscrowEventType.DISPUTE_REFUND_TO_CUSTOMER,
                        bucket=bucket,
                        amount_cents=split.customer_cents,
                        to_party=Party.CUSTOMER,
                        transaction_reference=customer_ref,
                        provider_transaction_id=refund_id,
                        outcome=refund_outcome,
                    )
                )
            if split.realtor_cents:
                movements.append(
                    Movement(
                        event_type=realtor_event,
                        bucket=bucket,
                        amount_cents=split.realtor_cents,
                        to_party=Party.REALTOR,
                        transaction_reference=realtor_ref,
                        provider_transaction_id=transfer_id,
                        outcome=transfer_outcome,
                    )
                )
            if split.platform_cents:
                movements.append(
                    Movement(
                        event_type=platform_event,
                        bucket=bucket,
                        amount_cents=split.platform_cents,
                        to_party=Party.PLATFORM,
                        transaction_reference=reference,
                        transfer_status=TransferStatus.NOT_APPLICABLE,
                    )
                )
        return movements

    @staticmethod
    def _apply_transition(dispute: Dispute, name: str) -> None:
        try:
            getattr(dispute, name)()
        except TransitionNotAllowed as e:
            raise InvalidStateTransitionError(
                f"Cannot {name} a dispute in {dispute.status}",
                current_state=dispute.status,
                attempted_transition=name,
            ) from e

    @staticmethod
    def _record_resolver(dispute: Dispute, actor, actor_label: str, notes: str) -> None:
        dispute.resolved_by = actor
        dispute.resolved_by_label = actor_label
        dispute.admin_notes = notes

    @staticmethod
    def _reopen_booking(booking: Booking, closing: Dispute) -> None:
        """DISPUTED -> ACTIVE once no other dispute on the booking is active."""
        others = Dispute.objects.active().filter(booking=booking).exclude(pk=closing.pk)
        if booking.status == BookingStatus.DISPUTED and not others.exists():
            booking.status = BookingStatus.ACTIVE
            booking.save(update_fields=["status", "updated_at"])

    @classmethod
    def _notify_resolution(cls, dispute: Dispute, plan: ResolutionPlan) -> None:
        booking = dispute.booking
        currency = booking.listing.currency
        body = (
            f"Decision: {dispute.get_decision_display()}. "
            f"Refund to guest: {format_amount(plan.customer_cents, currency)}. "
            f"Paid to host: {format_amount(plan.realtor_cents, currency)}."
        )
        for party, role in ((booking.guest, "guest"), (booking.realtor, "realtor")):
            cls._notify(
                party,
                NotificationKind.DISPUTE_RESOLVED,
                "Your dispute has been resolved",
                body,
                booking,
                f"dispute_resolved:{dispute.id}:{role}",
            )
