"""
Tests for escrow API serializers.

Test Classes:
    TestEscrowEventSerializer: Reconciliation fields derived from the stored outcome
    TestJobLockSerializer: Expiry flag
    TestDisputeCreateSerializer / TestDisputeResolveSerializer: Input validation
"""

from datetime import timedelta

from django.utils import timezone

from escrow.serializers import (
    CancelBookingSerializer,
    DisputeCreateSerializer,
    DisputeRespondSerializer,
    DisputeResolveSerializer,
    EscrowEventSerializer,
    JobLockSerializer,
)
from escrow.tests.factories import EscrowEventFactory, JobLockFactory


class TestEscrowEventSerializer:
    def test_pending_transfer(self, booking):
        event = EscrowEventFactory(booking=booking)

        data = EscrowEventSerializer(event).data

        assert data["amount_cents"] == 8_100_000
        assert data["transfer_status"] == "PENDING"
        assert data["webhook_received"] is False
        assert data["failure_reason"] is None

    def test_failed_transfer(self, booking):
        event = EscrowEventFactory(
            booking=booking,
            transfer_status="FAILED",
            provider_response={
                "kind": "failed",
                "failed_at": "2026-01-01T00:00:00+00:00",
                "reason": "Account closed",
            },
        )

        data = EscrowEventSerializer(event).data

        assert data["webhook_received"] is True
        assert data["failure_reason"] == "Account closed"

    def test_unparseable_response_is_not_a_webhook(self, booking):
        event = EscrowEventFactory(booking=booking, provider_response={"status": "weird"})

        data = EscrowEventSerializer(event).data

        assert data["webhook_received"] is False
        assert data["failure_reason"] is None


class TestJobLockSerializer:
    def test_active_lock(self, db):
        data = JobLockSerializer(JobLockFactory(booking_ids=["b1"])).data

        assert data["is_expired"] is False
        assert data["booking_ids"] == ["b1"]

    def test_expired_lock(self, db):
        acquired_at = timezone.now() - timedelta(hours=1)
        lock = JobLockFactory(acquired_at=acquired_at)

        assert JobLockSerializer(lock).data["is_expired"] is True


class TestCancelBookingSerializer:
    def test_reason_optional(self):
        serializer = CancelBookingSerializer(data={})

        assert serializer.is_valid()
        assert serializer.validated_data["reason"] == ""


class TestDisputeCreateSerializer:
    def test_valid(self):
        serializer = DisputeCreateSerializer(
            data={"subject": "SECURITY_DEPOSIT", "realtor_claimed_cents": 1_500_000}
        )

        assert serializer.is_valid(), serializer.errors
        assert serializer.validated_data["realtor_claimed_cents"] == 1_500_000

    def test_unknown_subject(self):
        serializer = DisputeCreateSerializer(data={"subject": "PARKING"})

        assert not serializer.is_valid()
        assert "subject" in serializer.errors

    def test_negative_claim(self):
        serializer = DisputeCreateSerializer(
            data={"subject": "ROOM_FEE", "guest_claimed_cents": -1}
        )

        assert not serializer.is_valid()
        assert "guest_claimed_cents" in serializer.errors


class TestDisputeRespondSerializer:
    def test_unknown_response(self):
        serializer = DisputeRespondSerializer(data={"response": "MAYBE"})

        assert not serializer.is_valid()


class TestDisputeResolveSerializer:
    def test_partial_refund_with_amount(self):
        serializer = DisputeResolveSerializer(
            data={"decision": "PARTIAL_REFUND", "amount_cents": 500_000}
        )

        assert serializer.is_valid(), serializer.errors

    def test_amount_only_for_partial_refund(self):
        serializer = DisputeResolveSerializer(
            data={"decision": "FULL_REFUND", "amount_cents": 500_000}
        )

        assert not serializer.is_valid()
        assert "amount_cents" in serializer.errors

    def test_null_amount_allowed(self):
        serializer = DisputeResolveSerializer(
            data={"decision": "FULL_PAYOUT", "amount_cents": None}
        )

        assert serializer.is_valid(), serializer.errors
