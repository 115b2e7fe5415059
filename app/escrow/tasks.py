"""
Celery tasks for the settlement engine.

Scheduled jobs (django-celery-beat, see migration 0002):
- run_room_fee_release: every 5 minutes
- run_deposit_return: every 5 minutes
- run_payout_eligibility: hourly
- run_dispute_sla: hourly

Webhook processing:
- process_webhook_event: queued by the Stripe webhook view

Usage:
    from escrow.tasks import run_room_fee_release

    run_room_fee_release.delay()
"""

from __future__ import annotations

import logging

from celery import shared_task
from django.conf import settings

from escrow.adapters import backoff_delay
from escrow.jobs import DepositReturnJob, DisputeSlaJob, PayoutEligibilityJob, RoomFeeReleaseJob
from escrow.locks import JobLockManager
from escrow.models import WebhookEvent

logger = logging.getLogger(__name__)


# =============================================================================
# Scheduled Jobs
# =============================================================================


@shared_task
def run_room_fee_release() -> dict:
    return RoomFeeReleaseJob().run_now().as_dict()


@shared_task
def run_deposit_return() -> dict:
    return DepositReturnJob().run_now().as_dict()


@shared_task
def run_payout_eligibility() -> dict:
    return PayoutEligibilityJob().run_now().as_dict()


@shared_task
def run_dispute_sla() -> dict:
    return DisputeSlaJob().run_now().as_dict()


@shared_task
def cleanup_expired_job_locks() -> dict:
    """Remove leases left behind by crashed runs."""
    return {"deleted": JobLockManager.cleanup_expired()}


# =============================================================================
# Webhook Processing
# =============================================================================


@shared_task(bind=True, acks_late=True)
def process_webhook_event(self, webhook_event_id: str) -> dict:
    """
    Process a stored Stripe webhook event.

    Handler failures and exceptions mark the event FAILED and are retried
    with exponential backoff until ESCROW_WEBHOOK_MAX_RETRIES attempts
    have been made.
    """
    from escrow.webhooks.handlers import dispatch_webhook

    webhook_event = WebhookEvent.objects.filter(pk=webhook_event_id).first()
    if webhook_event is None:
        logger.error("WebhookEvent not found", extra={"webhook_event_id": webhook_event_id})
        return {"status": "not_found", "webhook_event_id": webhook_event_id}

    if webhook_event.is_processed:
        logger.info(
            "WebhookEvent already processed, skipping",
            extra={"provider_event_id": webhook_event.provider_event_id},
        )
        return {"status": "already_processed", "webhook_event_id": webhook_event_id}

    webhook_event.mark_processing()
    webhook_event.save()
    log_extra = {
        "webhook_event_id": webhook_event_id,
        "provider_event_id": webhook_event.provider_event_id,
        "event_type": webhook_event.event_type,
        "retry_count": webhook_event.retry_count,
    }

    try:
        result = dispatch_webhook(webhook_event)
        error = None if result.success else (result.error or "Handler returned failure")
    except Exception as e:
        logger.exception("Webhook processing failed with exception", extra=log_extra)
        error = f"{type(e).__name__}: {e}"

    if error is None:
        webhook_event.mark_processed()
        webhook_event.save()
        logger.info("Webhook processed successfully", extra=log_extra)
        return {"status": "processed", "webhook_event_id": webhook_event_id}

    webhook_event.mark_failed(error)
    webhook_event.save()

    if webhook_event.retry_count >= settings.ESCROW_WEBHOOK_MAX_RETRIES:
        logger.error(
            f"Webhook failed after {webhook_event.retry_count} attempts: {error}",
            extra={**log_extra, "error": error},
        )
        return {"status": "failed", "webhook_event_id": webhook_event_id, "error": error}

    countdown = backoff_delay(webhook_event.retry_count - 1)
    logger.warning(
        f"Webhook handler failed, retrying in {countdown:.1f}s: {error}",
        extra={**log_extra, "error": error},
    )
    raise self.retry(countdown=countdown, max_retries=settings.ESCROW_WEBHOOK_MAX_RETRIES)
