"""
Webhook endpoint view for Stripe.

The view:
1. Verifies the webhook signature
2. Creates/retrieves the WebhookEvent record (idempotent)
3. Queues the event for async processing
4. Returns immediately
"""

from __future__ import annotations

import logging

from django.http import HttpRequest, HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from escrow.exceptions import GatewayInvalidRequestError
from escrow.models import WebhookEvent
from escrow.services.base import EscrowService
from escrow.states import WebhookEventStatus

logger = logging.getLogger(__name__)


@csrf_exempt
@require_POST
def stripe_webhook(request: HttpRequest) -> HttpResponse:
    """
    Receive and queue Stripe webhook events.

    Returns:
        200: Event accepted (new or duplicate)
        400: Missing/invalid signature or payload
    """
    payload = request.body
    signature = request.headers.get("Stripe-Signature", "")

    if not signature:
        logger.warning("Webhook received without Stripe-Signature header")
        return HttpResponse("Missing signature", status=400)

    try:
        event_data = EscrowService.get_stripe_adapter().verify_webhook_signature(
            payload, signature
        )
    except GatewayInvalidRequestError as e:
        logger.warning(
            "Webhook signature verification failed",
            extra={"error": str(e)},
        )
        return HttpResponse("Invalid signature", status=400)

    provider_event_id = event_data.get("id")
    event_type = event_data.get("type")

    if not provider_event_id or not event_type:
        logger.warning("Webhook missing required fields")
        return HttpResponse("Invalid event", status=400)

    logger.info(
        f"Received Stripe webhook: {event_type}",
        extra={"provider_event_id": provider_event_id, "event_type": event_type},
    )

    webhook_event, created = WebhookEvent.objects.get_or_create(
        provider_event_id=provider_event_id,
        defaults={
            "event_type": event_type,
            "payload": event_data,
            "status": WebhookEventStatus.PENDING,
        },
    )

    if not created and webhook_event.status in (
        WebhookEventStatus.PROCESSED,
        WebhookEventStatus.PROCESSING,
    ):
        logger.info(
            "Duplicate webhook delivery, acknowledging",
            extra={"provider_event_id": provider_event_id, "status": webhook_event.status},
        )
        return HttpResponse("Already received", status=200)

    from escrow.tasks import process_webhook_event

    process_webhook_event.delay(str(webhook_event.id))
    logger.info(
        "Webhook queued for processing",
        extra={
            "provider_event_id": provider_event_id,
            "webhook_event_id": str(webhook_event.id),
        },
    )
    return HttpResponse("OK", status=200)
