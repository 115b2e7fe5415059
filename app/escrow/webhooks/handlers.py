"""
Webhook event handlers for Stripe transfer events.

Handlers reconcile the escrow event log with what the gateway reports.
They only update the reconciliation fields of existing EscrowEvents
(``record_transfer_outcome`` / ``record_retry``); money movement is never
re-recorded here.

Matching:
    The transfer's ``metadata.reference`` (with any ``_retry_N`` suffix
    stripped) is matched against ``EscrowEvent.transaction_reference``;
    the transfer id is used as a fallback. One transfer can cover several
    events (e.g. a payout drawing on two buckets).

Usage:
    from escrow.webhooks.handlers import dispatch_webhook, register_handler

    @register_handler("transfer.created")
    def handle_transfer_created(webhook_event: WebhookEvent) -> ServiceResult:
        ...

    result = dispatch_webhook(webhook_event)
"""

from __future__ import annotations

import logging
import re
from typing import Callable

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from core.services import ServiceResult
from escrow.exceptions import GatewayError
from escrow.models import EscrowEvent, WebhookEvent
from escrow.outcomes import (
    TransferConfirmed,
    TransferFailed,
    TransferOutcome,
    TransferReversed,
)
from escrow.states import TransferStatus

logger = logging.getLogger(__name__)

RETRY_SUFFIX = re.compile(r"_retry_\d+$")


# =============================================================================
# Handler Registry
# =============================================================================


# Maps event type strings to handler functions
WEBHOOK_HANDLERS: dict[str, Callable[[WebhookEvent], ServiceResult]] = {}


def register_handler(event_type: str) -> Callable:
    """
    Decorator to register a webhook event handler.

    Args:
        event_type: The Stripe event type (e.g., "transfer.paid")
    """

    def decorator(func: Callable[[WebhookEvent], ServiceResult]) -> Callable:
        WEBHOOK_HANDLERS[event_type] = func
        logger.debug(f"Registered webhook handler for {event_type}")
        return func

    return decorator


def dispatch_webhook(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Dispatch a webhook event to the appropriate handler.

    Unknown event types are acknowledged with success so the gateway
    stops redelivering them.
    """
    handler = WEBHOOK_HANDLERS.get(webhook_event.event_type)

    if not handler:
        logger.info(
            f"No handler registered for event type: {webhook_event.event_type}",
            extra={"provider_event_id": webhook_event.provider_event_id},
        )
        return ServiceResult.success(None)

    logger.info(
        f"Dispatching {webhook_event.event_type} to handler",
        extra={"provider_event_id": webhook_event.provider_event_id},
    )
    return handler(webhook_event)


# =============================================================================
# Matching
# =============================================================================


def base_reference(reference: str) -> str:
    """``payout_x_y_retry_2`` -> ``payout_x_y``."""
    return RETRY_SUFFIX.sub("", reference or "")


def matching_events(transfer: dict) -> list[EscrowEvent]:
    """
    Lock and return the escrow events a transfer object settles.

    Must be called inside a transaction.
    """
    reference = base_reference((transfer.get("metadata") or {}).get("reference", ""))
    qs = EscrowEvent.objects.select_for_update().exclude(
        transfer_status=TransferStatus.NOT_APPLICABLE
    )

    events = []
    if reference:
        events = list(qs.filter(transaction_reference=reference))
    if not events and transfer.get("id"):
        events = list(qs.filter(provider_transaction_id=transfer["id"]))
    return events


def _record(webhook_event: WebhookEvent, outcome: TransferOutcome) -> ServiceResult:
    transfer = webhook_event.get_object()
    with transaction.atomic():
        events = matching_events(transfer)
        if not events:
            logger.warning(
                "No escrow event matches transfer",
                extra={
                    "provider_event_id": webhook_event.provider_event_id,
                    "transfer_id": transfer.get("id"),
                    "reference": (transfer.get("metadata") or {}).get("reference"),
                },
            )
            return ServiceResult.failure(
                f"No escrow event for transfer {transfer.get('id')}",
                error_code="EVENT_NOT_FOUND",
            )
        for event in events:
            event.record_transfer_outcome(outcome)

    logger.info(
        f"Recorded {outcome.kind} outcome on {len(events)} escrow event(s)",
        extra={
            "provider_event_id": webhook_event.provider_event_id,
            "transfer_id": transfer.get("id"),
            "booking_id": str(events[0].booking_id),
            "transfer_status": outcome.status,
        },
    )
    return ServiceResult.success(events)


# =============================================================================
# Transfer Handlers
# =============================================================================


@register_handler("transfer.paid")
def handle_transfer_paid(webhook_event: WebhookEvent) -> ServiceResult:
    """Funds reached the realtor's subaccount."""
    transfer = webhook_event.get_object()
    return _record(
        webhook_event,
        TransferConfirmed(confirmed_at=timezone.now().isoformat(), transfer_id=transfer.get("id")),
    )


@register_handler("transfer.reversed")
def handle_transfer_reversed(webhook_event: WebhookEvent) -> ServiceResult:
    """
    A completed transfer was pulled back. Funds are back on the platform
    balance and need an operator to decide what happens next.
    """
    transfer = webhook_event.get_object()
    result = _record(
        webhook_event,
        TransferReversed(reversed_at=timezone.now().isoformat(), transfer_id=transfer.get("id")),
    )
    if result.success:
        logger.critical(
            "Transfer reversed, manual review required",
            extra={
                "provider_event_id": webhook_event.provider_event_id,
                "transfer_id": transfer.get("id"),
                "booking_id": str(result.data[0].booking_id),
                "amount_cents": sum(e.amount_cents for e in result.data),
            },
        )
    return result


@register_handler("transfer.failed")
def handle_transfer_failed(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Record the failure, then re-submit the transfer under a new reference
    until ESCROW_TRANSFER_MAX_RETRIES is spent.
    """
    transfer = webhook_event.get_object()
    reason = transfer.get("failure_message") or "Transfer failed"
    result = _record(
        webhook_event,
        TransferFailed(
            failed_at=timezone.now().isoformat(),
            reason=reason,
            transfer_id=transfer.get("id"),
        ),
    )
    if not result.success:
        return result

    events = result.data
    attempts = max(e.retry_count for e in events)
    log_extra = {
        "provider_event_id": webhook_event.provider_event_id,
        "booking_id": str(events[0].booking_id),
        "reference": events[0].transaction_reference,
        "retry_count": attempts,
    }

    if attempts >= settings.ESCROW_TRANSFER_MAX_RETRIES:
        logger.critical(
            "Transfer failed after all retries, manual intervention required",
            extra={**log_extra, "reason": reason},
        )
        return ServiceResult.success(events)

    return retry_transfer(events, attempts + 1, log_extra)


def retry_transfer(events: list[EscrowEvent], attempt: int, log_extra: dict) -> ServiceResult:
    """Re-submit the transfer behind ``events`` as ``<reference>_retry_<attempt>``."""
    from escrow.services.base import EscrowService

    first = events[0]
    booking = first.booking
    reference = f"{base_reference(first.transaction_reference)}_retry_{attempt}"
    amount = sum(e.amount_cents for e in events)

    logger.info(
        f"Retrying failed transfer (attempt {attempt})",
        extra={**log_extra, "retry_reference": reference, "amount_cents": amount},
    )

    try:
        outcome = EscrowService._transfer(booking, amount, reference, first.currency)
    except GatewayError as e:
        logger.error(
            f"Transfer retry failed: {type(e).__name__}",
            extra={**log_extra, "retry_reference": reference, "error": str(e)},
        )
        with transaction.atomic():
            for event in EscrowEvent.objects.select_for_update().filter(
                pk__in=[e.pk for e in events]
            ):
                event.record_retry()
        return ServiceResult.from_exception(e)

    with transaction.atomic():
        for event in EscrowEvent.objects.select_for_update().filter(pk__in=[e.pk for e in events]):
            event.record_retry()
            event.record_transfer_outcome(outcome)
    return ServiceResult.success(events)
