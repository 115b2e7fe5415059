"""
Stripe API adapter for escrow money movement.

All gateway calls made by the settlement engine go through StripeAdapter so
timeouts, idempotency and error translation are handled in one place.
Realtor subaccounts are Stripe Connect accounts (acct_xxx); the guest's
charge is a PaymentIntent (pi_xxx).

Contract used by the ledger:
    transfer(destination, amount, reference) - idempotent by reference
    refund(payment_reference, amount, reference) - idempotent by reference
    verify(reference) - status of the guest's charge

Configuration (via settings):
- STRIPE_SECRET_KEY: Stripe API secret key
- STRIPE_WEBHOOK_SECRET: Webhook signing secret
- STRIPE_API_TIMEOUT_SECONDS: API call timeout (default: 10)
- STRIPE_MAX_RETRIES: Network retries inside the SDK (default: 3)

Usage:
    from escrow.adapters import StripeAdapter

    result = StripeAdapter.transfer(
        destination_account="acct_123",
        amount_cents=9_000_000,
        reference="room_fee_<booking>_<payment>",
        currency="ngn",
    )
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Any

import stripe
from django.conf import settings

from escrow.exceptions import (
    GatewayError,
    GatewayInvalidAccountError,
    GatewayInvalidRequestError,
    GatewayRateLimitError,
    GatewayTimeoutError,
    GatewayUnavailableError,
)

# PaymentIntent statuses that mean the guest's money was collected
VERIFIED_STATUSES = frozenset({"succeeded"})
FAILED_STATUSES = frozenset({"canceled", "requires_payment_method"})


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class TransferResult:
    """
    Result from a transfer to a connected account.

    Attributes:
        id: Transfer ID (tr_xxx)
        reference: Idempotent reference the transfer was created with
        status: "pending" until the transfer.paid webhook arrives
    """

    id: str
    amount_cents: int
    currency: str
    destination_account: str
    reference: str
    status: str = "pending"
    metadata: dict[str, str] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class RefundResult:
    """
    Result from a refund to the guest.

    Attributes:
        id: Refund ID (re_xxx)
        status: Refund status (succeeded, pending, failed)
        payment_intent_id: Original PaymentIntent ID
    """

    id: str
    amount_cents: int
    currency: str
    status: str
    payment_intent_id: str
    reference: str
    metadata: dict[str, str] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class VerificationResult:
    id: str
    status: str
    amount_cents: int
    currency: str
    raw_response: dict[str, Any] = field(default_factory=dict)

    @property
    def is_verified(self) -> bool:
        return self.status in VERIFIED_STATUSES

    @property
    def is_failed(self) -> bool:
        return self.status in FAILED_STATUSES


# =============================================================================
# Retry Logic Helpers
# =============================================================================


def is_retryable_gateway_error(error: Exception) -> bool:
    """True if the error is a transient gateway failure worth retrying later."""
    if isinstance(error, GatewayError):
        return getattr(error, "is_retryable", False)
    return False


def backoff_delay(attempt: int, base: float = 1.0, max_delay: float = 60.0) -> float:
    """
    Exponential backoff delay with 0-25% jitter.

    Example:
        # Attempt 0: 1.0 - 1.25 seconds
        # Attempt 2: 4.0 - 5.0 seconds
        delay = backoff_delay(attempt=2)
    """
    delay = min(base * (2**attempt), max_delay)
    jitter = delay * random.uniform(0, 0.25)
    return delay + jitter


# =============================================================================
# Stripe Adapter
# =============================================================================


class StripeAdapter:
    """
    Adapter for Stripe API operations.

    All methods are classmethods - no instance state is maintained.
    Thread-safe for use from Celery workers.
    """

    # =========================================================================
    # Configuration
    # =========================================================================

    @staticmethod
    def _configure_stripe() -> None:
        """Configure Stripe client with API key and timeout."""
        stripe.api_key = settings.STRIPE_SECRET_KEY
        stripe.max_network_retries = getattr(settings, "STRIPE_MAX_RETRIES", 3)
        timeout = getattr(settings, "STRIPE_API_TIMEOUT_SECONDS", 10)
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    # =========================================================================
    # Core Operations
    # =========================================================================

    @classmethod
    def transfer(
        cls,
        destination_account: str,
        amount_cents: int,
        reference: str,
        currency: str = "ngn",
        metadata: dict[str, str] | None = None,
    ) -> TransferResult:
        """
        Transfer funds from the platform balance to a realtor subaccount.

        The reference doubles as the Stripe idempotency key, so retrying
        with the same reference never moves money twice. It is also stored
        in the transfer metadata so webhooks can be matched back to the
        escrow event.

        Raises:
            GatewayInvalidAccountError: Missing or invalid subaccount
            GatewayTimeoutError: Outcome unknown, reconcile via webhook
        """
        if amount_cents <= 0:
            raise ValueError("amount_cents must be positive")
        if not destination_account:
            raise GatewayInvalidAccountError(
                "Realtor has no payout subaccount configured",
                details={"reference": reference},
            )

        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "transfer",
            "amount_cents": amount_cents,
            "destination_account": destination_account,
            "reference": reference,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            transfer = stripe.Transfer.create(
                idempotency_key=reference,
                amount=amount_cents,
                currency=currency,
                destination=destination_account,
                transfer_group=reference,
                metadata={**(metadata or {}), "reference": reference},
            )

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={**log_context, "transfer_id": transfer.id, "duration_ms": duration_ms},
            )

            return TransferResult(
                id=transfer.id,
                amount_cents=transfer.amount,
                currency=transfer.currency,
                destination_account=transfer.destination,
                reference=reference,
                metadata=dict(transfer.metadata or {}),
                raw_response=transfer.to_dict(),
            )

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    @classmethod
    def refund(
        cls,
        payment_reference: str,
        amount_cents: int,
        reference: str,
        metadata: dict[str, str] | None = None,
    ) -> RefundResult:
        """
        Refund part of the guest's charge back to the guest.

        Raises:
            GatewayInvalidRequestError: Refund not possible
            GatewayTimeoutError: Outcome unknown, reconcile via webhook
        """
        if amount_cents <= 0:
            raise ValueError("amount_cents must be positive")

        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "refund",
            "payment_intent_id": payment_reference,
            "amount_cents": amount_cents,
            "reference": reference,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            refund = stripe.Refund.create(
                idempotency_key=reference,
                payment_intent=payment_reference,
                amount=amount_cents,
                reason="requested_by_customer",
                metadata={**(metadata or {}), "reference": reference},
            )

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "refund_id": refund.id,
                    "status": refund.status,
                    "duration_ms": duration_ms,
                },
            )

            return RefundResult(
                id=refund.id,
                amount_cents=refund.amount,
                currency=refund.currency,
                status=refund.status,
                payment_intent_id=refund.payment_intent,
                reference=reference,
                metadata=dict(refund.metadata or {}),
                raw_response=refund.to_dict(),
            )

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    @classmethod
    def verify(cls, reference: str) -> VerificationResult:
        """Look up the guest's PaymentIntent by reference."""
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {"operation": "verify", "payment_intent_id": reference}

        start_time = time.time()
        logger.debug("Starting Stripe operation", extra=log_context)

        try:
            intent = stripe.PaymentIntent.retrieve(reference)

            duration_ms = (time.time() - start_time) * 1000
            logger.debug(
                "Stripe operation completed",
                extra={**log_context, "status": intent.status, "duration_ms": duration_ms},
            )

            return VerificationResult(
                id=intent.id,
                status=intent.status,
                amount_cents=intent.amount,
                currency=intent.currency,
                raw_response=intent.to_dict(),
            )

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    @classmethod
    def verify_webhook_signature(
        cls,
        payload: bytes,
        signature: str,
    ) -> dict[str, Any]:
        """
        Verify and parse a Stripe webhook event.

        Raises:
            GatewayInvalidRequestError: Invalid signature
        """
        try:
            event = stripe.Webhook.construct_event(
                payload,
                signature,
                settings.STRIPE_WEBHOOK_SECRET,
            )
            return event.to_dict()
        except (stripe.SignatureVerificationError, ValueError) as e:
            raise GatewayInvalidRequestError(
                "Invalid webhook signature",
                gateway_code="signature_verification_failed",
                details={"error": str(e)},
            )

    # =========================================================================
    # Error Handling
    # =========================================================================

    @classmethod
    def _handle_stripe_error(
        cls,
        error: Exception,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate Stripe exceptions to gateway exceptions.

        Raises:
            GatewayInvalidAccountError: Invalid Connect account
            GatewayInvalidRequestError: Invalid request parameters
            GatewayRateLimitError: Rate limited
            GatewayTimeoutError: Request timed out (outcome unknown)
            GatewayUnavailableError: API unavailable
        """
        logger = cls.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, (GatewayError, ValueError)):
            return

        if isinstance(error, stripe.InvalidRequestError):
            logger.error(
                "Invalid request to Stripe",
                extra={**log_context, "stripe_code": error.code},
            )
            if "account" in str(error).lower():
                raise GatewayInvalidAccountError(str(error), gateway_code=error.code)
            raise GatewayInvalidRequestError(str(error), gateway_code=error.code)

        elif isinstance(error, stripe.RateLimitError):
            logger.warning("Rate limited by Stripe", extra=log_context)
            raise GatewayRateLimitError(
                "Stripe rate limit exceeded. Please retry.",
                gateway_code="rate_limit",
            )

        elif isinstance(error, stripe.APIConnectionError):
            message = str(error).lower()
            if "timed out" in message or "timeout" in message:
                logger.warning(
                    "Stripe request timed out, outcome unknown",
                    extra=log_context,
                )
                raise GatewayTimeoutError(
                    "Stripe request timed out",
                    gateway_code="timeout",
                    details={"reference": log_context.get("reference")},
                )
            logger.error("Connection error to Stripe", extra=log_context, exc_info=True)
            raise GatewayUnavailableError(
                "Could not connect to Stripe. Please retry.",
                gateway_code="api_connection_error",
            )

        elif isinstance(error, stripe.AuthenticationError):
            logger.critical(
                "Stripe authentication failed - check API key",
                extra=log_context,
            )
            raise GatewayInvalidRequestError(
                "Stripe authentication failed",
                gateway_code="authentication_error",
            )

        elif isinstance(error, stripe.APIError):
            logger.error("Stripe API error", extra=log_context, exc_info=True)
            raise GatewayUnavailableError(
                "Stripe service error. Please retry.",
                gateway_code="api_error",
            )

        else:
            logger.error(
                f"Unexpected error from Stripe: {type(error).__name__}",
                extra=log_context,
                exc_info=True,
            )
            raise GatewayUnavailableError(
                f"Unexpected Stripe error: {error}",
                gateway_code="unknown_error",
            )
