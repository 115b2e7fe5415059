"""
Operational health statistics for the settlement engine.

Aggregates over escrow events executed within a rolling window:

- webhooks: how many transfers the gateway has reported on, and how many
  of those succeeded
- retries: transfers that needed re-submission and how they ended
- transfers: counts by transfer status
- job_locks: scheduled jobs currently holding a lease
"""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING, Any

from django.conf import settings
from django.db.models import Avg, Count, Q, Sum
from django.utils import timezone

from core.services import BaseService
from escrow.models import EscrowEvent, JobLock, WebhookEvent
from escrow.outcomes import failure_reason, webhook_received
from escrow.states import TransferStatus, WebhookEventStatus

if TYPE_CHECKING:
    from datetime import datetime


# Retry count at which automatic transfer retries stop
MAX_RETRIES_THRESHOLD = 3

REPORTED_STATUSES = (
    TransferStatus.CONFIRMED,
    TransferStatus.FAILED,
    TransferStatus.REVERSED,
)


def _rate(numerator: int, denominator: int, empty: float) -> float:
    if not denominator:
        return empty
    return round(numerator / denominator * 100, 2)


class HealthService(BaseService):
    """Read-only reporting used by the admin health endpoints."""

    @classmethod
    def health_stats(
        cls,
        now: datetime | None = None,
        window_hours: int | None = None,
    ) -> dict[str, Any]:
        now = now or timezone.now()
        window_hours = window_hours or settings.ESCROW_HEALTH_WINDOW_HOURS
        since = now - timedelta(hours=window_hours)

        events = EscrowEvent.objects.filter(executed_at__gte=since).exclude(
            transfer_status=TransferStatus.NOT_APPLICABLE
        )

        by_status = {
            row["transfer_status"]: row["n"]
            for row in events.order_by().values("transfer_status").annotate(n=Count("id"))
        }
        total = sum(by_status.values())
        confirmed = by_status.get(TransferStatus.CONFIRMED, 0)
        failed = by_status.get(TransferStatus.FAILED, 0)
        reported = sum(by_status.get(status, 0) for status in REPORTED_STATUSES)

        retried = events.filter(retry_count__gt=0)
        retry_agg = retried.aggregate(
            count=Count("id"),
            total=Sum("retry_count"),
            average=Avg("retry_count"),
            succeeded=Count("id", filter=~Q(transfer_status=TransferStatus.FAILED)),
            exhausted=Count("id", filter=Q(retry_count__gte=MAX_RETRIES_THRESHOLD)),
        )

        intake = WebhookEvent.objects.filter(created_at__gte=since)

        return {
            "window_hours": window_hours,
            "generated_at": now.isoformat(),
            "webhooks": {
                "total_received": reported,
                "success_rate": _rate(confirmed, reported, empty=0.0),
                "failed_count": failed,
                "intake_total": intake.count(),
                "intake_failed": intake.filter(status=WebhookEventStatus.FAILED).count(),
            },
            "retries": {
                "total_retries": retry_agg["total"] or 0,
                "success_rate": _rate(retry_agg["succeeded"], retry_agg["count"], empty=100.0),
                "max_retries_reached": retry_agg["exhausted"],
                "average_retries": round(float(retry_agg["average"] or 0), 2),
            },
            "transfers": {
                "total": total,
                "confirmed": confirmed,
                "pending": by_status.get(TransferStatus.PENDING, 0),
                "failed": failed,
                "reversed": by_status.get(TransferStatus.REVERSED, 0),
            },
            "job_locks": {
                "active": JobLock.objects.active(now).count(),
            },
        }

    @classmethod
    def booking_webhook_status(cls, booking_id) -> list[dict[str, Any]]:
        """Per-event reconciliation state for one booking, oldest first."""
        events = EscrowEvent.objects.filter(booking_id=booking_id).order_by("executed_at")

        rows = []
        for event in events:
            outcome = event.outcome
            rows.append(
                {
                    "event_id": str(event.id),
                    "event_type": event.event_type,
                    "bucket": event.bucket,
                    "amount_cents": event.amount_cents,
                    "executed_at": event.executed_at.isoformat(),
                    "transaction_reference": event.transaction_reference,
                    "provider_transaction_id": event.provider_transaction_id,
                    "webhook_received": webhook_received(outcome),
                    "status": event.transfer_status,
                    "failure_reason": failure_reason(outcome),
                    "retry_count": event.retry_count,
                }
            )
        return rows
