"""
Payment gateway adapters.

All external money movement goes through these adapters to ensure
consistent error handling, timeouts, idempotency, and observability.

Usage:
    from escrow.adapters import StripeAdapter

    result = StripeAdapter.transfer(
        destination_account="acct_123",
        amount_cents=9_000_000,
        reference="room_fee_<booking>_<payment>",
    )
"""

from escrow.adapters.stripe_adapter import (
    RefundResult,
    StripeAdapter,
    TransferResult,
    VerificationResult,
    backoff_delay,
    is_retryable_gateway_error,
)

__all__ = [
    "RefundResult",
    "StripeAdapter",
    "TransferResult",
    "VerificationResult",
    "backoff_delay",
    "is_retryable_gateway_error",
]
