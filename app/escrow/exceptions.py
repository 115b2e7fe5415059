"""
Escrow-specific exceptions.

Exception Hierarchy:
    EscrowError (base for the settlement domain)
    ├── EscrowOverdraftError - movement would exceed what was held (fatal)
    ├── ImmutableEventError - attempt to mutate or delete an escrow event
    └── GatewayError - Base for all payment gateway errors
        ├── GatewayInvalidRequestError - Invalid request params (permanent)
        ├── GatewayInvalidAccountError - Bad destination subaccount (permanent)
        ├── GatewayRateLimitError - Rate limited (transient, retry)
        ├── GatewayUnavailableError - API unavailable (transient, retry)
        └── GatewayTimeoutError - Request timeout (unresolved, reconcile)

    PreconditionFailedError - re-release/double payout attempts (ConflictError)
    DisputeConflictError - active dispute already open (ConflictError)
    LockAcquisitionError - Distributed lock timeout (ConflictError)
    InvalidStateTransitionError - FSM transition not allowed (ConflictError)

Usage:
    from escrow.exceptions import EscrowOverdraftError

    try:
        EscrowEventLog.append(...)
    except EscrowOverdraftError:
        # Never absorb: this is a correctness violation
        raise
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import BaseApplicationError, ConflictError

if TYPE_CHECKING:
    from typing import Any


class EscrowError(BaseApplicationError):
    """Base exception for the settlement domain."""

    default_error_code: str = "ESCROW_ERROR"


class EscrowOverdraftError(EscrowError):
    """
    Raised when a movement would take more out of escrow than was held.

    This is a correctness violation, not a business failure: the movement
    is not recorded and the caller must not retry it blindly.

    Attributes:
        booking_id: Booking whose escrow would be overdrawn
        requested_cents: Amount of the rejected movement
        available_cents: Amount still held in the affected bucket/total
    """

    default_error_code: str = "ESCROW_OVERDRAFT"
    http_status = 422

    def __init__(
        self,
        message: str,
        booking_id: str | None = None,
        requested_cents: int = 0,
        available_cents: int = 0,
        bucket: str | None = None,
    ):
        details = {
            "booking_id": booking_id,
            "requested_cents": requested_cents,
            "available_cents": available_cents,
        }
        if bucket:
            details["bucket"] = bucket
        super().__init__(message, details=details)
        self.booking_id = booking_id
        self.requested_cents = requested_cents
        self.available_cents = available_cents
        self.bucket = bucket


class ImmutableEventError(EscrowError):
    """Raised on any attempt to update money fields of, or delete, an escrow event."""

    default_error_code: str = "ESCROW_EVENT_IMMUTABLE"


# =============================================================================
# Precondition / Concurrency Errors
# =============================================================================


class PreconditionFailedError(ConflictError):
    """
    Raised when a ledger precondition no longer holds.

    Examples: releasing a room fee that was already split, paying out a
    booking whose payout is already PROCESSING or COMPLETED. These are
    never retryable.
    """

    default_error_code: str = "PRECONDITION_FAILED"


class DisputeConflictError(ConflictError):
    """Raised when opening a dispute while one is active for the same subject."""

    default_error_code: str = "DISPUTE_ALREADY_OPEN"


class LockAcquisitionError(ConflictError):
    """Raised when a distributed lock cannot be acquired within its timeout."""

    default_error_code: str = "LOCK_ACQUISITION_FAILED"


class InvalidStateTransitionError(ConflictError):
    """
    Raised when a django-fsm transition is not allowed from the current state.

    Attributes:
        current_state: State the record is in
        attempted_transition: Name of the transition method
    """

    default_error_code: str = "INVALID_STATE_TRANSITION"

    def __init__(
        self,
        message: str,
        current_state: str | None = None,
        attempted_transition: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if current_state:
            details["current_state"] = current_state
        if attempted_transition:
            details["attempted_transition"] = attempted_transition
        super().__init__(message, details=details)
        self.current_state = current_state
        self.attempted_transition = attempted_transition


# =============================================================================
# Gateway Errors
# =============================================================================


class GatewayError(EscrowError):
    """
    Base exception for payment gateway failures.

    Attributes:
        is_retryable: Whether the call may succeed if retried later
        gateway_code: Error code reported by the gateway
    """

    default_error_code: str = "GATEWAY_ERROR"
    http_status = 502
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        gateway_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if gateway_code:
            details["gateway_code"] = gateway_code
        super().__init__(message, error_code=error_code, details=details)
        self.gateway_code = gateway_code


class GatewayInvalidRequestError(GatewayError):
    default_error_code: str = "GATEWAY_INVALID_REQUEST"


class GatewayInvalidAccountError(GatewayError):
    """Destination subaccount is missing, restricted or unknown."""

    default_error_code: str = "GATEWAY_INVALID_ACCOUNT"


class GatewayRateLimitError(GatewayError):
    default_error_code: str = "GATEWAY_RATE_LIMITED"
    is_retryable = True


class GatewayUnavailableError(GatewayError):
    default_error_code: str = "GATEWAY_UNAVAILABLE"
    is_retryable = True


class GatewayTimeoutError(GatewayError):
    """
    The call timed out and its outcome is unknown.

    The transfer may or may not have happened; callers record the
    movement as pending and let webhook reconciliation settle it,
    instead of retrying with a fresh reference.
    """

    default_error_code: str = "GATEWAY_TIMEOUT"
    is_retryable = True
