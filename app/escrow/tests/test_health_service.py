"""Tests for HealthService reporting."""

import uuid
from datetime import timedelta

from django.utils import timezone

from escrow.services import HealthService
from escrow.states import TransferStatus, WebhookEventStatus
from escrow.tests.factories import EscrowEventFactory, JobLockFactory, WebhookEventFactory


def confirmed(booking, **kwargs):
    return EscrowEventFactory(
        booking=booking,
        transfer_status=TransferStatus.CONFIRMED,
        provider_response={
            "kind": "confirmed",
            "confirmed_at": timezone.now().isoformat(),
            "transfer_id": "tr_ok",
        },
        **kwargs,
    )


def failed(booking, **kwargs):
    return EscrowEventFactory(
        booking=booking,
        transfer_status=TransferStatus.FAILED,
        provider_response={
            "kind": "failed",
            "failed_at": timezone.now().isoformat(),
            "reason": "Account closed",
            "transfer_id": "tr_bad",
        },
        **kwargs,
    )


class TestHealthStats:
    def test_empty_window(self, db):
        stats = HealthService.health_stats()

        assert stats["window_hours"] == 24
        assert stats["webhooks"]["total_received"] == 0
        assert stats["webhooks"]["success_rate"] == 0.0
        assert stats["retries"]["success_rate"] == 100.0
        assert stats["transfers"]["total"] == 0

    def test_counts_by_status(self, booking, held_payment):
        confirmed(booking)
        confirmed(booking, retry_count=1)
        failed(booking, retry_count=3)
        EscrowEventFactory(booking=booking)
        EscrowEventFactory(booking=booking, transfer_status=TransferStatus.NOT_APPLICABLE)
        confirmed(booking, executed_at=timezone.now() - timedelta(days=2))

        stats = HealthService.health_stats()

        assert stats["transfers"] == {
            "total": 4,
            "confirmed": 2,
            "pending": 1,
            "failed": 1,
            "reversed": 0,
        }
        assert stats["webhooks"]["total_received"] == 3
        assert stats["webhooks"]["success_rate"] == 66.67
        assert stats["webhooks"]["failed_count"] == 1
        assert stats["retries"] == {
            "total_retries": 4,
            "success_rate": 50.0,
            "max_retries_reached": 1,
            "average_retries": 2.0,
        }

    def test_webhook_intake_and_locks(self, db):
        WebhookEventFactory()
        WebhookEventFactory(status=WebhookEventStatus.FAILED)
        JobLockFactory()
        JobLockFactory(expires_at=timezone.now() - timedelta(minutes=1))

        stats = HealthService.health_stats()

        assert stats["webhooks"]["intake_total"] == 2
        assert stats["webhooks"]["intake_failed"] == 1
        assert stats["job_locks"]["active"] == 1

    def test_custom_window(self, booking, held_payment):
        confirmed(booking, executed_at=timezone.now() - timedelta(hours=30))

        assert HealthService.health_stats(window_hours=48)["transfers"]["confirmed"] == 1
        assert HealthService.health_stats()["transfers"]["confirmed"] == 0


class TestBookingWebhookStatus:
    def test_rows_in_execution_order(self, booking, held_payment):
        now = timezone.now()
        first = confirmed(booking, executed_at=now - timedelta(minutes=5))
        second = failed(booking, executed_at=now)

        rows = HealthService.booking_webhook_status(booking.id)

        assert [row["event_id"] for row in rows] == [str(first.id), str(second.id)]
        assert rows[0]["webhook_received"] is True
        assert rows[0]["failure_reason"] is None
        assert rows[1]["status"] == TransferStatus.FAILED
        assert rows[1]["failure_reason"] == "Account closed"

    def test_pending_event_not_yet_reported(self, booking, held_payment):
        EscrowEventFactory(booking=booking)

        rows = HealthService.booking_webhook_status(booking.id)

        assert rows[0]["webhook_received"] is False

    def test_unknown_booking(self, db):
        assert HealthService.booking_webhook_status(uuid.uuid4()) == []
