"""
Tests for DisputeService.

Test Classes:
    TestOpenDispute: Validation, permissions, freezing settlement
    TestRespondToDispute: ACCEPT executes the claim, REJECT_ESCALATE escalates
    TestAdminResolveDispute: Admin decisions on escalated disputes
"""

from datetime import timedelta

import pytest
from django.utils import timezone

from bookings.models import Booking
from bookings.states import BookingStatus
from core.exceptions import PermissionDeniedError, ValidationError
from escrow.exceptions import (
    DisputeConflictError,
    EscrowOverdraftError,
    GatewayInvalidAccountError,
    InvalidStateTransitionError,
)
from escrow.models import Dispute, EscrowEvent, Payment
from escrow.services import DisputeService, SettlementService
from escrow.services.event_log import EscrowEventLog
from escrow.states import (
    DisputeDecision,
    DisputeResponse,
    DisputeStatus,
    DisputeSubject,
    EscrowEventType,
    Party,
    PaymentStatus,
)
from escrow.tests.conftest import CLEANING_FEE, DEPOSIT, ROOM_FEE, SERVICE_FEE
from escrow.tests.factories import DisputeFactory
from notifications.models import Notification, NotificationKind


def escalate(booking, subject=DisputeSubject.ROOM_FEE, **kwargs):
    Booking.objects.filter(pk=booking.pk).update(status=BookingStatus.DISPUTED)
    return DisputeFactory(
        booking=booking,
        subject=subject,
        status=DisputeStatus.ESCALATED,
        escalated_at=timezone.now(),
        admin_deadline_at=timezone.now() + timedelta(hours=48),
        **kwargs,
    )


class TestOpenDispute:
    def test_guest_opens_room_fee_dispute(self, checked_in_booking, guest):
        result = DisputeService.open_dispute(
            checked_in_booking,
            user=guest,
            subject=DisputeSubject.ROOM_FEE,
            reason="No hot water",
            guest_claimed_cents=4_500_000,
        )

        assert result.success
        dispute = result.data
        assert dispute.status == DisputeStatus.OPEN
        assert dispute.opened_by == guest
        assert dispute.guest_claimed_cents == 4_500_000
        assert Booking.objects.get(pk=checked_in_booking.pk).status == BookingStatus.DISPUTED

    def test_notifies_counterparty(self, checked_in_booking, guest, realtor):
        DisputeService.open_dispute(checked_in_booking, user=guest, subject=DisputeSubject.ROOM_FEE)

        notification = Notification.objects.get(kind=NotificationKind.DISPUTE_OPENED)
        assert notification.recipient == realtor

    def test_realtor_can_open_deposit_dispute(self, checked_out_booking, realtor, guest):
        result = DisputeService.open_dispute(
            checked_out_booking,
            user=realtor,
            subject=DisputeSubject.SECURITY_DEPOSIT,
            reason="Broken television",
        )

        assert result.success
        assert Notification.objects.get(kind=NotificationKind.DISPUTE_OPENED).recipient == guest

    def test_outsider_cannot_open(self, checked_in_booking, outsider):
        with pytest.raises(PermissionDeniedError):
            DisputeService.open_dispute(
                checked_in_booking, user=outsider, subject=DisputeSubject.ROOM_FEE
            )

        assert not Dispute.objects.exists()

    def test_unknown_subject(self, checked_in_booking, guest):
        with pytest.raises(ValidationError):
            DisputeService.open_dispute(checked_in_booking, user=guest, subject="PARKING")

    def test_negative_claim(self, checked_in_booking, guest):
        with pytest.raises(ValidationError):
            DisputeService.open_dispute(
                checked_in_booking,
                user=guest,
                subject=DisputeSubject.ROOM_FEE,
                guest_claimed_cents=-1,
            )

    def test_duplicate_active_dispute(self, checked_in_booking, guest):
        DisputeService.open_dispute(checked_in_booking, user=guest, subject=DisputeSubject.ROOM_FEE)

        with pytest.raises(DisputeConflictError):
            DisputeService.open_dispute(
                checked_in_booking, user=guest, subject=DisputeSubject.ROOM_FEE
            )

    def test_different_subjects_can_coexist(self, checked_in_booking, guest):
        DisputeService.open_dispute(checked_in_booking, user=guest, subject=DisputeSubject.ROOM_FEE)
        DisputeService.open_dispute(
            checked_in_booking, user=guest, subject=DisputeSubject.SECURITY_DEPOSIT
        )

        assert Dispute.objects.active().filter(booking=checked_in_booking).count() == 2

    def test_released_room_fee_cannot_be_disputed(self, checked_in_booking, guest, mock_stripe):
        SettlementService.release_room_fee(checked_in_booking)

        with pytest.raises(ValidationError) as exc_info:
            DisputeService.open_dispute(
                checked_in_booking, user=guest, subject=DisputeSubject.ROOM_FEE
            )

        assert exc_info.value.error_code == "ALREADY_RELEASED"

    def test_booking_without_held_funds(self, booking, guest):
        with pytest.raises(ValidationError) as exc_info:
            DisputeService.open_dispute(booking, user=guest, subject=DisputeSubject.ROOM_FEE)

        assert exc_info.value.error_code == "NOTHING_HELD"

    def test_completed_booking_cannot_be_disputed(self, checked_in_booking, guest):
        Booking.objects.filter(pk=checked_in_booking.pk).update(status=BookingStatus.COMPLETED)

        with pytest.raises(InvalidStateTransitionError):
            DisputeService.open_dispute(
                checked_in_booking, user=guest, subject=DisputeSubject.ROOM_FEE
            )

    def test_dispute_blocks_room_fee_release(self, checked_in_booking, guest, mock_stripe):
        DisputeService.open_dispute(checked_in_booking, user=guest, subject=DisputeSubject.ROOM_FEE)

        result = SettlementService.release_room_fee(checked_in_booking)

        assert result.error_code == "DISPUTE_BLOCKED"


class TestRespondToDispute:
    @pytest.fixture
    def claim(self, checked_in_booking, guest):
        return DisputeService.open_dispute(
            checked_in_booking,
            user=guest,
            subject=DisputeSubject.ROOM_FEE,
            guest_claimed_cents=4_500_000,
        ).data

    def test_accept_executes_claim(self, claim, realtor, mock_stripe):
        result = DisputeService.respond_to_dispute(claim, realtor, DisputeResponse.ACCEPT)

        assert result.success
        dispute = result.data
        assert dispute.status == DisputeStatus.RESOLVED
        assert dispute.decision == DisputeDecision.PARTIAL_REFUND
        assert dispute.final_outcome == "SPLIT_BETWEEN_PARTIES"
        assert dispute.customer_amount_cents == 4_500_000
        assert dispute.realtor_amount_cents == 4_050_000
        assert dispute.platform_amount_cents == 450_000
        assert dispute.resolved_by == realtor
        assert mock_stripe.refund.call_args.kwargs["amount_cents"] == 4_500_000
        assert mock_stripe.transfer.call_args.kwargs["amount_cents"] == 4_050_000

    def test_accept_releases_room_fee_and_reopens_booking(self, claim, realtor, mock_stripe):
        DisputeService.respond_to_dispute(claim, realtor, DisputeResponse.ACCEPT)

        payment = Payment.objects.get(booking=claim.booking)
        assert payment.room_fee_split_done
        assert payment.status == PaymentStatus.PARTIALLY_RELEASED
        assert payment.customer_refund_cents == 4_500_000
        assert not payment.deposit_refunded
        assert Booking.objects.get(pk=claim.booking_id).status == BookingStatus.ACTIVE

    def test_accept_records_movements(self, claim, realtor, mock_stripe):
        DisputeService.respond_to_dispute(claim, realtor, DisputeResponse.ACCEPT)

        events = {
            e.event_type: e.amount_cents
            for e in EscrowEvent.objects.filter(booking=claim.booking)
        }
        assert events == {
            EscrowEventType.DISPUTE_REFUND_TO_CUSTOMER: 4_500_000,
            EscrowEventType.RELEASE_ROOM_FEE_SPLIT: 4_050_000,
            EscrowEventType.COLLECT_PLATFORM_FEE: 450_000,
        }

    def test_realtor_claim_implies_customer_amount(self, checked_in_booking, realtor, guest, mock_stripe):
        dispute = DisputeService.open_dispute(
            checked_in_booking,
            user=realtor,
            subject=DisputeSubject.ROOM_FEE,
            realtor_claimed_cents=6_000_000,
        ).data

        result = DisputeService.respond_to_dispute(dispute, guest, DisputeResponse.ACCEPT)

        assert result.data.customer_amount_cents == ROOM_FEE - 6_000_000

    def test_opener_cannot_respond(self, claim, guest):
        with pytest.raises(PermissionDeniedError):
            DisputeService.respond_to_dispute(claim, guest, DisputeResponse.ACCEPT)

    def test_reject_escalates(self, claim, realtor, settings):
        settings.ESCROW_DISPUTE_ADMIN_DEADLINE_HOURS = 48

        result = DisputeService.respond_to_dispute(claim, realtor, DisputeResponse.REJECT_ESCALATE)

        dispute = result.data
        assert dispute.status == DisputeStatus.ESCALATED
        assert dispute.admin_deadline_at - dispute.escalated_at == timedelta(hours=48)
        assert Notification.objects.filter(kind=NotificationKind.DISPUTE_ESCALATED).count() == 2

    def test_cannot_respond_twice(self, claim, realtor):
        DisputeService.respond_to_dispute(claim, realtor, DisputeResponse.REJECT_ESCALATE)
        claim.refresh_from_db()

        with pytest.raises(InvalidStateTransitionError):
            DisputeService.respond_to_dispute(claim, realtor, DisputeResponse.ACCEPT)

    def test_request_response(self, claim, realtor):
        result = DisputeService.request_response(claim, user=realtor)

        assert result.data.status == DisputeStatus.AWAITING_RESPONSE

    def test_gateway_failure_leaves_dispute_active(self, claim, realtor, mock_stripe):
        mock_stripe.transfer.side_effect = GatewayInvalidAccountError("No subaccount")

        with pytest.raises(GatewayInvalidAccountError):
            DisputeService.respond_to_dispute(claim, realtor, DisputeResponse.ACCEPT)

        claim.refresh_from_db()
        assert claim.is_active
        assert not EscrowEvent.objects.filter(booking=claim.booking).exists()


class TestAdminResolveDispute:
    def test_requires_staff(self, checked_in_booking, realtor):
        dispute = escalate(checked_in_booking)

        with pytest.raises(PermissionDeniedError):
            DisputeService.admin_resolve_dispute(dispute, realtor, DisputeDecision.FULL_REFUND)

    def test_requires_escalation(self, checked_in_booking, admin_user):
        dispute = DisputeFactory(booking=checked_in_booking)

        with pytest.raises(InvalidStateTransitionError):
            DisputeService.admin_resolve_dispute(dispute, admin_user, DisputeDecision.FULL_REFUND)

    def test_full_refund_on_room_fee_cancels_booking(self, checked_in_booking, admin_user, mock_stripe):
        dispute = escalate(checked_in_booking)

        result = DisputeService.admin_resolve_dispute(
            dispute, admin_user, DisputeDecision.FULL_REFUND, notes="Listing misrepresented"
        )

        assert result.success
        assert result.data.plan.customer_cents == ROOM_FEE + DEPOSIT
        assert mock_stripe.transfer.call_args.kwargs["amount_cents"] == CLEANING_FEE
        payment = Payment.objects.get(booking=checked_in_booking)
        assert payment.status == PaymentStatus.REFUNDED
        assert payment.customer_refund_cents == ROOM_FEE + DEPOSIT
        assert Booking.objects.get(pk=checked_in_booking.pk).status == BookingStatus.CANCELLED
        dispute.refresh_from_db()
        assert dispute.final_outcome == "REFUNDED_TO_CUSTOMER"
        assert dispute.resolved_by == admin_user
        assert dispute.admin_notes == "Listing misrepresented"

    def test_full_refund_on_room_fee_settles_every_bucket(
        self, checked_in_booking, admin_user, mock_stripe
    ):
        dispute = escalate(checked_in_booking)

        result = DisputeService.admin_resolve_dispute(dispute, admin_user, DisputeDecision.FULL_REFUND)

        payment = Payment.objects.get(booking=checked_in_booking)
        assert EscrowEventLog.released_cents(checked_in_booking.id) == payment.total_cents
        cleaning = EscrowEvent.objects.get(
            booking=checked_in_booking, event_type=EscrowEventType.RELEASE_CLEANING_FEE
        )
        assert cleaning.amount_cents == CLEANING_FEE
        assert cleaning.to_party == Party.REALTOR
        service = EscrowEvent.objects.get(
            booking=checked_in_booking, event_type=EscrowEventType.COLLECT_SERVICE_FEE
        )
        assert service.amount_cents == SERVICE_FEE
        assert service.to_party == Party.PLATFORM
        assert result.data.plan.as_dict()["realtor_cents"] == CLEANING_FEE
        assert result.data.plan.as_dict()["platform_cents"] == SERVICE_FEE

    def test_full_refund_on_room_fee_closes_other_disputes(
        self, checked_in_booking, admin_user, mock_stripe
    ):
        dispute = escalate(checked_in_booking)
        deposit_dispute = escalate(checked_in_booking, subject=DisputeSubject.SECURITY_DEPOSIT)

        DisputeService.admin_resolve_dispute(dispute, admin_user, DisputeDecision.FULL_REFUND)

        deposit_dispute.refresh_from_db()
        assert deposit_dispute.status == DisputeStatus.RESOLVED
        assert deposit_dispute.final_outcome == "CLOSED_BY_CANCELLATION"
        assert deposit_dispute.closed_at is not None
        assert not Dispute.objects.active().filter(booking=checked_in_booking).exists()

    def test_nothing_held_closes_without_movement(self, checked_in_booking, admin_user, mock_stripe):
        dispute = escalate(checked_in_booking, subject=DisputeSubject.SECURITY_DEPOSIT)
        Payment.objects.filter(booking=checked_in_booking).update(status=PaymentStatus.REFUNDED)

        result = DisputeService.admin_resolve_dispute(dispute, admin_user, DisputeDecision.FULL_PAYOUT)

        assert result.success
        assert result.data.plan.total_cents == 0
        assert result.data.dispute.final_outcome == "CLOSED_NOTHING_HELD"
        mock_stripe.transfer.assert_not_called()
        mock_stripe.refund.assert_not_called()
        assert not EscrowEvent.objects.filter(booking=checked_in_booking).exists()

    def test_full_payout_of_deposit(self, checked_out_booking, admin_user, mock_stripe):
        dispute = escalate(checked_out_booking, subject=DisputeSubject.SECURITY_DEPOSIT)

        DisputeService.admin_resolve_dispute(dispute, admin_user, DisputeDecision.FULL_PAYOUT)

        assert mock_stripe.transfer.call_args.kwargs["amount_cents"] == DEPOSIT
        event = EscrowEvent.objects.get(booking=checked_out_booking)
        assert event.event_type == EscrowEventType.PAY_REALTOR_FROM_DEPOSIT
        payment = Payment.objects.get(booking=checked_out_booking)
        assert payment.deposit_refunded
        assert payment.status == PaymentStatus.HELD
        assert Booking.objects.get(pk=checked_out_booking.pk).status == BookingStatus.ACTIVE

    def test_rejection_moves_nothing(self, checked_in_booking, admin_user, mock_stripe):
        dispute = escalate(checked_in_booking)

        result = DisputeService.admin_resolve_dispute(dispute, admin_user, DisputeDecision.REJECTED)

        assert result.data.dispute.status == DisputeStatus.REJECTED
        assert result.data.plan.total_cents == 0
        mock_stripe.refund.assert_not_called()
        assert not EscrowEvent.objects.filter(booking=checked_in_booking).exists()
        assert Booking.objects.get(pk=checked_in_booking.pk).status == BookingStatus.ACTIVE

    def test_booking_stays_disputed_while_other_dispute_active(
        self, checked_in_booking, admin_user, mock_stripe
    ):
        dispute = escalate(checked_in_booking)
        DisputeFactory(booking=checked_in_booking, subject=DisputeSubject.SECURITY_DEPOSIT)

        DisputeService.admin_resolve_dispute(dispute, admin_user, DisputeDecision.REJECTED)

        assert Booking.objects.get(pk=checked_in_booking.pk).status == BookingStatus.DISPUTED

    def test_amount_above_escrow_rejected(self, checked_in_booking, admin_user, mock_stripe):
        dispute = escalate(checked_in_booking, subject=DisputeSubject.ROOM_FEE)

        with pytest.raises(EscrowOverdraftError):
            DisputeService.admin_resolve_dispute(
                dispute,
                admin_user,
                DisputeDecision.PARTIAL_REFUND,
                amount_cents=ROOM_FEE + 1,
            )

        mock_stripe.refund.assert_not_called()

    def test_notifies_both_parties(self, checked_in_booking, admin_user, mock_stripe):
        dispute = escalate(checked_in_booking)

        DisputeService.admin_resolve_dispute(dispute, admin_user, DisputeDecision.FULL_PAYOUT)

        assert Notification.objects.filter(kind=NotificationKind.DISPUTE_RESOLVED).count() == 2

    def test_resolved_dispute_cannot_be_resolved_again(self, checked_in_booking, admin_user, mock_stripe):
        dispute = escalate(checked_in_booking)
        DisputeService.admin_resolve_dispute(dispute, admin_user, DisputeDecision.FULL_PAYOUT)
        dispute.refresh_from_db()

        with pytest.raises(InvalidStateTransitionError):
            DisputeService.admin_resolve_dispute(dispute, admin_user, DisputeDecision.FULL_REFUND)
