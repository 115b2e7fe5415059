"""
Shared gateway and notification plumbing for settlement services.

Every service that moves money follows the same three-phase shape:

1. Phase 1: Re-check preconditions under ``select_for_update`` and commit
   any "in progress" marker
2. Phase 2: Call the gateway OUTSIDE the transaction
3. Phase 3: Re-lock, flip the monotonic flag with a conditional UPDATE and
   append the escrow events

The helpers here cover Phase 2 and the notifications sent afterwards.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.utils import timezone

from core.services import BaseService
from escrow.adapters import StripeAdapter
from escrow.exceptions import GatewayInvalidRequestError, GatewayTimeoutError
from escrow.outcomes import TransferConfirmed, TransferPending

if TYPE_CHECKING:
    from bookings.models import Booking
    from escrow.models import Payment
    from escrow.outcomes import TransferOutcome


class EscrowService(BaseService):
    """
    Base class for services that move escrowed funds.

    Gateway timeouts are not failures: the outcome is unknown, so the
    movement is recorded as pending with ``timed_out=True`` and the
    transfer webhook settles it later. Retrying with a fresh reference
    could pay twice.
    """

    # Stripe adapter - can be injected for testing
    _stripe_adapter: type | None = None

    @classmethod
    def get_stripe_adapter(cls) -> type:
        """Get the Stripe adapter class."""
        return cls._stripe_adapter or StripeAdapter

    @classmethod
    def set_stripe_adapter(cls, adapter: type | None) -> None:
        """Set the Stripe adapter class (for testing)."""
        cls._stripe_adapter = adapter

    # =========================================================================
    # Gateway calls (Phase 2)
    # =========================================================================

    @classmethod
    def _transfer(
        cls,
        booking: Booking,
        amount_cents: int,
        reference: str,
        currency: str,
    ) -> TransferOutcome:
        """
        Transfer to the listing realtor's subaccount.

        Raises:
            GatewayError: Any gateway failure other than a timeout
        """
        listing = booking.listing
        try:
            result = cls.get_stripe_adapter().transfer(
                destination_account=listing.subaccount_code,
                amount_cents=amount_cents,
                reference=reference,
                currency=currency,
                metadata={"booking_id": str(booking.id)},
            )
        except GatewayTimeoutError:
            cls.get_logger().warning(
                "Transfer timed out, recording as pending for reconciliation",
                extra={
                    "booking_id": str(booking.id),
                    "reference": reference,
                    "amount_cents": amount_cents,
                },
            )
            return TransferPending(timed_out=True)

        return TransferPending(transfer_id=result.id)

    @classmethod
    def _refund(
        cls,
        payment: Payment,
        amount_cents: int,
        reference: str,
    ) -> TransferOutcome:
        """
        Refund part of the guest's charge.

        Raises:
            GatewayInvalidRequestError: Gateway reported the refund as failed
            GatewayError: Any gateway failure other than a timeout
        """
        try:
            result = cls.get_stripe_adapter().refund(
                payment_reference=payment.gateway_reference,
                amount_cents=amount_cents,
                reference=reference,
                metadata={"booking_id": str(payment.booking_id)},
            )
        except GatewayTimeoutError:
            cls.get_logger().warning(
                "Refund timed out, recording as pending for reconciliation",
                extra={
                    "booking_id": str(payment.booking_id),
                    "reference": reference,
                    "amount_cents": amount_cents,
                },
            )
            return TransferPending(timed_out=True)

        if result.status == "failed":
            raise GatewayInvalidRequestError(
                f"Refund {result.id} was rejected by the gateway",
                details={"reference": reference, "refund_id": result.id},
            )
        if result.status == "succeeded":
            return TransferConfirmed(
                confirmed_at=timezone.now().isoformat(),
                transfer_id=result.id,
            )
        return TransferPending(transfer_id=result.id)

    # =========================================================================
    # Notifications
    # =========================================================================

    @classmethod
    def _notify(
        cls,
        recipient,
        kind: str,
        title: str,
        body: str,
        booking: Booking,
        idempotency_key: str,
    ) -> None:
        """
        Enqueue a notification. Failures are logged and never undo the
        money movement that was already recorded.
        """
        from notifications.services import NotificationService

        try:
            NotificationService.create_notification(
                recipient=recipient,
                kind=kind,
                title=title,
                body=body,
                data={"booking_id": str(booking.id)},
                idempotency_key=idempotency_key,
            )
        except Exception:
            cls.get_logger().error(
                "Failed to enqueue notification",
                extra={
                    "booking_id": str(booking.id),
                    "kind": kind,
                    "recipient_id": getattr(recipient, "pk", None),
                },
                exc_info=True,
            )


def format_amount(amount_cents: int, currency: str) -> str:
    """``9000000, "ngn"`` -> ``"NGN 90,000.00"``."""
    return f"{currency.upper()} {amount_cents / 100:,.2f}"
