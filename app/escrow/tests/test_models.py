"""
Tests for escrow and booking models.

Test Classes:
    TestBookingModel: Derived eligibility timestamps and party checks
    TestPaymentModel: FSM transitions, amounts, version counter
    TestDisputeModel: FSM transitions and querysets
    TestJobLockModel: Active/expired querysets
    TestWebhookEventModel: Processing helpers
"""

from datetime import timedelta

import pytest
from django.utils import timezone
from django_fsm import TransitionNotAllowed
from freezegun import freeze_time

from bookings.tests.factories import BookingFactory, UserFactory
from escrow.models import Dispute, JobLock
from escrow.states import (
    DisputeDecision,
    DisputeStatus,
    DisputeSubject,
    EscrowBucket,
    PaymentStatus,
    WebhookEventStatus,
)
from escrow.tests.factories import (
    DisputeFactory,
    JobLockFactory,
    PaymentFactory,
    WebhookEventFactory,
)


class TestBookingModel:
    def test_eligibility_derived_from_check_in(self, db, settings):
        settings.ESCROW_ROOM_FEE_RELEASE_DELAY_HOURS = 1
        booking = BookingFactory()

        assert booking.room_fee_release_eligible_at == booking.check_in + timedelta(hours=1)
        assert booking.payout_eligible_at == booking.check_in

    def test_eligibility_follows_check_in_changes(self, db):
        booking = BookingFactory()
        new_check_in = booking.check_in + timedelta(days=2)
        booking.check_in = new_check_in
        booking.check_out = new_check_in + timedelta(days=1)
        booking.save(update_fields=["check_in", "check_out"])
        booking.refresh_from_db()

        assert booking.payout_eligible_at == new_check_in

    def test_nights_rounds_partial_days_up(self, db):
        booking = BookingFactory()
        booking.check_out = booking.check_in + timedelta(days=2, hours=3)

        assert booking.nights == 3

    def test_is_party(self, booking, guest, realtor, admin_user, outsider):
        assert booking.is_party(guest)
        assert booking.is_party(realtor)
        assert booking.is_party(admin_user)
        assert not booking.is_party(outsider)
        assert not booking.is_party(None)


class TestPaymentModel:
    def test_total_and_held_in_bucket(self, held_payment):
        assert held_payment.total_cents == 11_800_000
        assert held_payment.held_in_bucket(EscrowBucket.ROOM_FEE) == 9_000_000
        assert held_payment.held_in_bucket(EscrowBucket.SECURITY_DEPOSIT) == 2_000_000

    def test_reference_suffix(self, held_payment):
        assert held_payment.reference_suffix == held_payment.id.hex[-8:]

    def test_mark_held(self, db):
        payment = PaymentFactory(status=PaymentStatus.INITIATED, verified_at=None)
        payment.mark_held()

        assert payment.status == PaymentStatus.HELD
        assert payment.verified_at is not None

    def test_fail_records_reason(self, db):
        payment = PaymentFactory(status=PaymentStatus.INITIATED)
        payment.fail("card_declined")

        assert payment.status == PaymentStatus.FAILED
        assert payment.metadata["failure_reason"] == "card_declined"

    def test_release_then_settle(self, held_payment):
        held_payment.release_room_fee()
        assert held_payment.status == PaymentStatus.PARTIALLY_RELEASED
        assert held_payment.room_fee_released_at is not None

        held_payment.settle()
        assert held_payment.status == PaymentStatus.SETTLED
        assert held_payment.is_terminal

    def test_cannot_release_twice(self, held_payment):
        held_payment.release_room_fee()

        with pytest.raises(TransitionNotAllowed):
            held_payment.release_room_fee()

    def test_cannot_refund_settled_payment(self, held_payment):
        held_payment.settle()

        with pytest.raises(TransitionNotAllowed):
            held_payment.refund()

    def test_version_increments_on_save(self, held_payment):
        assert held_payment.version == 1

        held_payment.room_fee_split_done = True
        held_payment.save()
        assert held_payment.version == 2

        held_payment.save(update_fields=["room_fee_split_done"])
        assert held_payment.version == 3

    def test_is_fully_released(self, held_payment):
        assert not held_payment.is_fully_released
        held_payment.room_fee_split_done = True
        held_payment.deposit_refunded = True
        assert held_payment.is_fully_released


class TestDisputeModel:
    @freeze_time("2026-03-10 12:00:00")
    def test_escalate_sets_deadline(self, db, settings):
        settings.ESCROW_DISPUTE_ADMIN_DEADLINE_HOURS = 48
        dispute = DisputeFactory()
        dispute.escalate()

        assert dispute.status == DisputeStatus.ESCALATED
        assert dispute.escalated_at == timezone.now()
        assert dispute.admin_deadline_at == timezone.now() + timedelta(hours=48)

    def test_resolve(self, db):
        dispute = DisputeFactory(status=DisputeStatus.ESCALATED)
        dispute.resolve(DisputeDecision.FULL_REFUND, "REFUNDED_TO_CUSTOMER")

        assert dispute.status == DisputeStatus.RESOLVED
        assert dispute.decision == DisputeDecision.FULL_REFUND
        assert dispute.closed_at is not None
        assert not dispute.is_active

    def test_reject(self, db):
        dispute = DisputeFactory()
        dispute.reject()

        assert dispute.status == DisputeStatus.REJECTED
        assert dispute.final_outcome == "REJECTED_NO_MOVEMENT"

    def test_closed_dispute_cannot_escalate(self, db):
        dispute = DisputeFactory(status=DisputeStatus.RESOLVED)

        with pytest.raises(TransitionNotAllowed):
            dispute.escalate()

    def test_blocking_queryset(self, booking):
        general = DisputeFactory(booking=booking, subject=DisputeSubject.GENERAL)
        deposit = DisputeFactory(booking=booking, subject=DisputeSubject.SECURITY_DEPOSIT)
        DisputeFactory(
            booking=booking, subject=DisputeSubject.ROOM_FEE, status=DisputeStatus.RESOLVED
        )

        assert set(Dispute.objects.blocking(booking, EscrowBucket.ROOM_FEE)) == {general}
        assert set(Dispute.objects.blocking(booking, EscrowBucket.SECURITY_DEPOSIT)) == {
            general,
            deposit,
        }

    def test_overdue_queryset(self, db):
        now = timezone.now()
        overdue = DisputeFactory(
            status=DisputeStatus.ESCALATED, admin_deadline_at=now - timedelta(minutes=1)
        )
        DisputeFactory(status=DisputeStatus.ESCALATED, admin_deadline_at=now + timedelta(hours=1))
        DisputeFactory(status=DisputeStatus.OPEN)

        assert list(Dispute.objects.overdue(now)) == [overdue]


class TestJobLockModel:
    def test_active_and_expired(self, db):
        now = timezone.now()
        active = JobLockFactory(expires_at=now + timedelta(minutes=1))
        expired = JobLockFactory(expires_at=now - timedelta(minutes=1))

        assert list(JobLock.objects.active(now)) == [active]
        assert list(JobLock.objects.expired(now)) == [expired]
        assert expired.is_expired
        assert not active.is_expired


class TestWebhookEventModel:
    def test_processing_lifecycle(self, db):
        event = WebhookEventFactory()

        event.mark_processing()
        assert event.status == WebhookEventStatus.PROCESSING
        assert event.retry_count == 1

        event.mark_failed("boom")
        assert event.status == WebhookEventStatus.FAILED
        assert event.error_message == "boom"
        assert event.can_retry

        event.mark_processed()
        assert event.is_processed
        assert event.error_message is None

    def test_cannot_retry_after_budget(self, db, settings):
        settings.ESCROW_WEBHOOK_MAX_RETRIES = 3
        event = WebhookEventFactory(status=WebhookEventStatus.FAILED, retry_count=3)

        assert not event.can_retry

    def test_get_object(self, db):
        event = WebhookEventFactory(
            payload={"id": "evt_1", "data": {"object": {"id": "tr_1"}}}
        )
        assert event.get_object() == {"id": "tr_1"}

        event.payload = {"id": "evt_2"}
        assert event.get_object() == {}


@pytest.mark.django_db
def test_user_factory_hashes_password():
    user = UserFactory(password="s3cret!")

    assert user.check_password("s3cret!")
