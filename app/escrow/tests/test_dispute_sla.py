"""
Tests for the dispute SLA sweeper (DisputeService.auto_resolve and
DisputeSlaJob).
"""

from datetime import timedelta

from django.utils import timezone
from freezegun import freeze_time

from bookings.models import Booking
from bookings.states import BookingStatus
from escrow.jobs import DisputeSlaJob
from escrow.models import Dispute, EscrowEvent, Payment
from escrow.services import DisputeService
from escrow.states import DisputeDecision, DisputeStatus, DisputeSubject, PaymentStatus
from escrow.tests.conftest import DEPOSIT, ROOM_FEE
from escrow.tests.factories import DisputeFactory, JobLockFactory


def overdue_dispute(booking, subject=DisputeSubject.GENERAL, hours_overdue=1):
    Booking.objects.filter(pk=booking.pk).update(status=BookingStatus.DISPUTED)
    deadline = timezone.now() - timedelta(hours=hours_overdue)
    return DisputeFactory(
        booking=booking,
        subject=subject,
        status=DisputeStatus.ESCALATED,
        escalated_at=deadline - timedelta(hours=48),
        admin_deadline_at=deadline,
    )


class TestAutoResolve:
    def test_overdue_general_dispute_split_by_fallback(self, checked_out_booking, mock_stripe):
        dispute = overdue_dispute(checked_out_booking)

        result = DisputeService.auto_resolve(dispute)

        assert result.success
        plan = result.data.plan
        assert plan.used_fallback
        assert plan.customer_cents == (ROOM_FEE + DEPOSIT) // 2
        assert plan.realtor_cents == (ROOM_FEE + DEPOSIT) // 2
        assert plan.platform_cents == 0

        dispute.refresh_from_db()
        assert dispute.status == DisputeStatus.RESOLVED
        assert dispute.decision == DisputeDecision.PARTIAL_REFUND
        assert dispute.final_outcome == "SPLIT_BY_FALLBACK_SHARE"
        assert dispute.resolved_by is None
        assert dispute.resolved_by_label == "system"
        assert "SLA" in dispute.admin_notes

    def test_settles_when_everything_released(self, checked_out_booking, mock_stripe):
        dispute = overdue_dispute(checked_out_booking)

        DisputeService.auto_resolve(dispute)

        assert Payment.objects.get(booking=checked_out_booking).status == PaymentStatus.SETTLED
        assert Booking.objects.get(pk=checked_out_booking.pk).status == BookingStatus.COMPLETED

    def test_fallback_share_is_configurable(self, checked_in_booking, mock_stripe, settings):
        settings.ESCROW_DISPUTE_FALLBACK_CUSTOMER_SHARE = 0.25
        dispute = overdue_dispute(checked_in_booking, subject=DisputeSubject.ROOM_FEE)

        result = DisputeService.auto_resolve(dispute)

        assert result.data.plan.room_fee.customer_cents == ROOM_FEE // 4

    def test_not_overdue(self, checked_in_booking, mock_stripe):
        dispute = overdue_dispute(checked_in_booking, hours_overdue=-5)

        result = DisputeService.auto_resolve(dispute)

        assert result.error_code == "NOT_OVERDUE"
        mock_stripe.refund.assert_not_called()

    def test_already_resolved(self, checked_in_booking, mock_stripe):
        dispute = overdue_dispute(checked_in_booking)
        dispute.status = DisputeStatus.RESOLVED
        dispute.save()

        assert DisputeService.auto_resolve(dispute).error_code == "NOT_OVERDUE"


class TestDisputeSlaJob:
    def test_resolves_overdue_disputes(self, checked_out_booking, mock_stripe):
        dispute = overdue_dispute(checked_out_booking)

        report = DisputeSlaJob().run_now()

        assert report.succeeded == 1
        dispute.refresh_from_db()
        assert dispute.status == DisputeStatus.RESOLVED

    def test_ignores_disputes_within_deadline(self, checked_in_booking, mock_stripe):
        overdue_dispute(checked_in_booking, hours_overdue=-1)

        report = DisputeSlaJob().run_now()

        assert report.processed == 0

    def test_runs_at_given_time(self, checked_in_booking, mock_stripe):
        dispute = overdue_dispute(checked_in_booking, hours_overdue=-1)

        with freeze_time(timezone.now() + timedelta(hours=2)):
            report = DisputeService.auto_resolve_overdue()

        assert report.succeeded == 1
        dispute.refresh_from_db()
        assert dispute.status == DisputeStatus.RESOLVED

    def test_lock_conflict(self, checked_out_booking, mock_stripe):
        overdue_dispute(checked_out_booking)
        JobLockFactory(job_name="dispute_sla")

        report = DisputeSlaJob().run_now()

        assert report.lock_conflict
        mock_stripe.refund.assert_not_called()

    def test_second_run_changes_nothing(self, checked_out_booking, mock_stripe):
        dispute = overdue_dispute(checked_out_booking)

        first = DisputeSlaJob().run_now()
        events = EscrowEvent.objects.filter(booking=checked_out_booking).count()
        second = DisputeSlaJob().run_now()

        assert first.succeeded == 1
        assert second.processed == 0
        assert EscrowEvent.objects.filter(booking=checked_out_booking).count() == events
        assert mock_stripe.refund.call_count == 1
        assert mock_stripe.transfer.call_count == 1
        dispute.refresh_from_db()
        assert dispute.status == DisputeStatus.RESOLVED
        assert Dispute.objects.filter(booking=checked_out_booking, closed_at__isnull=False).count() == 1

    def test_dispute_left_after_cancelling_refund_does_not_fail(
        self, checked_in_booking, admin_user, mock_stripe
    ):
        room_fee_dispute = overdue_dispute(
            checked_in_booking, subject=DisputeSubject.ROOM_FEE, hours_overdue=-5
        )
        deposit_dispute = overdue_dispute(checked_in_booking, subject=DisputeSubject.SECURITY_DEPOSIT)
        DisputeService.admin_resolve_dispute(
            room_fee_dispute, admin_user, DisputeDecision.FULL_REFUND
        )

        report = DisputeSlaJob().run_now()

        assert report.failed == 0
        assert report.processed == 0
        deposit_dispute.refresh_from_db()
        assert deposit_dispute.status == DisputeStatus.RESOLVED
        assert deposit_dispute.final_outcome == "CLOSED_BY_CANCELLATION"

    def test_overdue_dispute_with_nothing_held_is_closed(self, checked_in_booking, mock_stripe):
        dispute = overdue_dispute(checked_in_booking, subject=DisputeSubject.SECURITY_DEPOSIT)
        Payment.objects.filter(booking=checked_in_booking).update(status=PaymentStatus.REFUNDED)

        report = DisputeSlaJob().run_now()

        assert report.succeeded == 1
        assert report.failed == 0
        mock_stripe.refund.assert_not_called()
        dispute.refresh_from_db()
        assert dispute.status == DisputeStatus.RESOLVED
        assert dispute.final_outcome == "CLOSED_NOTHING_HELD"
