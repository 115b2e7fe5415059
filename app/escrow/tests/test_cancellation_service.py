"""
Tests for CancellationService.cancel_booking.
"""

from datetime import timedelta

import pytest

from bookings.models import Booking
from bookings.states import BookingStatus
from core.exceptions import PermissionDeniedError
from escrow.exceptions import (
    GatewayUnavailableError,
    InvalidStateTransitionError,
    PreconditionFailedError,
)
from escrow.models import EscrowEvent, Payment
from escrow.services import CancellationService, SettlementService
from escrow.states import EscrowEventType, PaymentStatus, TransferStatus
from escrow.tests.conftest import CLEANING_FEE, DEPOSIT, SERVICE_FEE
from escrow.tests.factories import PaymentFactory
from notifications.models import Notification, NotificationKind


class TestCancelBooking:
    def test_early_cancellation_refunds_by_tier(self, booking, held_payment, guest, mock_stripe):
        result = CancellationService.cancel_booking(booking, user=guest)

        assert result.success
        breakdown = result.data.breakdown
        assert breakdown.tier == "EARLY"
        assert breakdown.customer_total_cents == 8_100_000 + DEPOSIT
        assert breakdown.realtor_total_cents == 630_000 + CLEANING_FEE
        assert breakdown.platform_total_cents == 270_000 + SERVICE_FEE

    def test_one_refund_and_one_transfer(self, booking, held_payment, guest, mock_stripe):
        result = CancellationService.cancel_booking(booking, user=guest)
        reference = result.data.reference

        mock_stripe.refund.assert_called_once()
        assert mock_stripe.refund.call_args.kwargs["amount_cents"] == 10_100_000
        assert mock_stripe.refund.call_args.kwargs["reference"] == f"{reference}_customer"
        mock_stripe.transfer.assert_called_once()
        assert mock_stripe.transfer.call_args.kwargs["amount_cents"] == 1_130_000
        assert mock_stripe.transfer.call_args.kwargs["reference"] == f"{reference}_realtor"

    def test_records_every_leg(self, booking, held_payment, guest, mock_stripe):
        CancellationService.cancel_booking(booking, user=guest)

        events = EscrowEvent.objects.filter(booking=booking)
        by_type = {e.event_type: e for e in events}
        assert events.count() == 6
        assert by_type[EscrowEventType.REFUND_ROOM_FEE_TO_CUSTOMER].amount_cents == 8_100_000
        assert by_type[EscrowEventType.RELEASE_DEPOSIT_TO_CUSTOMER].amount_cents == DEPOSIT
        assert by_type[EscrowEventType.RELEASE_CLEANING_FEE].amount_cents == CLEANING_FEE
        assert (
            by_type[EscrowEventType.COLLECT_SERVICE_FEE].transfer_status
            == TransferStatus.NOT_APPLICABLE
        )
        assert all(e.actor_label == "guest" for e in events)
        assert sum(e.amount_cents for e in events) == held_payment.total_cents

    def test_closes_payment_and_booking(self, booking, held_payment, guest, mock_stripe):
        CancellationService.cancel_booking(booking, user=guest)

        payment = Payment.objects.get(pk=held_payment.pk)
        assert payment.status == PaymentStatus.REFUNDED
        assert payment.room_fee_split_done
        assert payment.deposit_refunded
        assert payment.customer_refund_cents == 10_100_000
        assert payment.metadata["cancellation"]["tier"] == "EARLY"
        assert Booking.objects.get(pk=booking.pk).status == BookingStatus.CANCELLED

    def test_thirty_hours_before_check_in(self, booking, held_payment, guest, mock_stripe):
        now = booking.check_in - timedelta(hours=30)

        result = CancellationService.cancel_booking(booking, user=guest, now=now)

        assert result.data.breakdown.tier == "EARLY"
        by_type = {e.event_type: e for e in EscrowEvent.objects.filter(booking=booking)}
        assert by_type[EscrowEventType.REFUND_ROOM_FEE_TO_CUSTOMER].amount_cents == 8_100_000
        assert by_type[EscrowEventType.RELEASE_ROOM_FEE_SPLIT].amount_cents == 630_000
        assert by_type[EscrowEventType.COLLECT_PLATFORM_FEE].amount_cents == 270_000
        assert by_type[EscrowEventType.RELEASE_DEPOSIT_TO_CUSTOMER].amount_cents == 2_000_000
        assert by_type[EscrowEventType.RELEASE_CLEANING_FEE].amount_cents == 500_000
        assert by_type[EscrowEventType.COLLECT_SERVICE_FEE].amount_cents == 300_000
        assert mock_stripe.refund.call_args.kwargs["amount_cents"] == 10_100_000
        assert mock_stripe.transfer.call_args.kwargs["amount_cents"] == 1_130_000

    def test_medium_tier(self, booking, held_payment, guest, mock_stripe):
        now = booking.check_in - timedelta(hours=18)

        result = CancellationService.cancel_booking(booking, user=guest, now=now)

        assert result.data.breakdown.tier == "MEDIUM"
        assert result.data.breakdown.room_fee.customer_cents == 6_300_000

    def test_late_tier_refunds_only_deposit(self, booking, held_payment, guest, mock_stripe):
        now = booking.check_in - timedelta(hours=2)

        result = CancellationService.cancel_booking(booking, user=guest, now=now)

        assert result.data.breakdown.tier == "LATE"
        assert mock_stripe.refund.call_args.kwargs["amount_cents"] == DEPOSIT

    def test_notifies_both_parties(self, booking, held_payment, guest, mock_stripe):
        CancellationService.cancel_booking(booking, user=guest)

        assert Notification.objects.filter(kind=NotificationKind.BOOKING_CANCELLED).count() == 2

    def test_admin_cancellation_is_labelled(self, booking, held_payment, admin_user, mock_stripe):
        CancellationService.cancel_booking(booking, user=admin_user)

        assert set(
            EscrowEvent.objects.filter(booking=booking).values_list("actor_label", flat=True)
        ) == {"admin"}

    def test_realtor_cannot_cancel(self, booking, held_payment, realtor, mock_stripe):
        with pytest.raises(PermissionDeniedError):
            CancellationService.cancel_booking(booking, user=realtor)

        mock_stripe.refund.assert_not_called()

    def test_unfunded_booking_cancels_without_movement(self, pending_booking, guest, mock_stripe):
        result = CancellationService.cancel_booking(pending_booking, user=guest)

        assert result.success
        assert result.data.breakdown is None
        assert Booking.objects.get(pk=pending_booking.pk).status == BookingStatus.CANCELLED
        mock_stripe.refund.assert_not_called()

    def test_initiated_payment_moves_nothing(self, pending_booking, guest, mock_stripe):
        PaymentFactory(booking=pending_booking, status=PaymentStatus.INITIATED, verified_at=None)

        CancellationService.cancel_booking(pending_booking, user=guest)

        assert not EscrowEvent.objects.filter(booking=pending_booking).exists()

    def test_cannot_cancel_twice(self, booking, held_payment, guest, mock_stripe):
        CancellationService.cancel_booking(booking, user=guest)

        with pytest.raises(InvalidStateTransitionError):
            CancellationService.cancel_booking(booking, user=guest)

    def test_cannot_cancel_after_room_fee_release(self, checked_in_booking, guest, mock_stripe):
        SettlementService.release_room_fee(checked_in_booking)

        with pytest.raises(PreconditionFailedError):
            CancellationService.cancel_booking(checked_in_booking, user=None)

    def test_reference_reused_after_gateway_failure(self, booking, held_payment, guest, mock_stripe):
        mock_stripe.refund.side_effect = GatewayUnavailableError("Stripe service error")
        with pytest.raises(GatewayUnavailableError):
            CancellationService.cancel_booking(booking, user=guest)
        first_reference = Payment.objects.get(pk=held_payment.pk).refund_reference

        mock_stripe.refund.side_effect = None
        mock_stripe.refund.return_value.status = "succeeded"
        mock_stripe.refund.return_value.id = "re_retry"
        result = CancellationService.cancel_booking(booking, user=guest)

        assert result.data.reference == first_reference
