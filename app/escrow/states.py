"""
State and enum definitions for escrow models.

These are Django TextChoices for database storage and admin integration.

Payment States:
    INITIATED -> HELD -> PARTIALLY_RELEASED -> SETTLED
    INITIATED -> FAILED
    HELD/PARTIALLY_RELEASED -> REFUNDED
    HELD -> SETTLED (everything released in one step, e.g. by dispute)

Dispute States:
    OPEN -> AWAITING_RESPONSE -> ESCALATED -> RESOLVED / REJECTED
    OPEN/AWAITING_RESPONSE -> RESOLVED (counterparty accepts the claim)
"""

from django.db import models


class PaymentStatus(models.TextChoices):
    """
    Lifecycle of the funds a guest paid for one booking.

    Terminal states: SETTLED, REFUNDED, FAILED
    """

    INITIATED = "INITIATED", "Initiated"
    HELD = "HELD", "Held"
    PARTIALLY_RELEASED = "PARTIALLY_RELEASED", "Partially Released"
    SETTLED = "SETTLED", "Settled"
    REFUNDED = "REFUNDED", "Refunded"
    FAILED = "FAILED", "Failed"


class EscrowBucket(models.TextChoices):
    """Portion of the held funds an escrow movement draws from."""

    ROOM_FEE = "ROOM_FEE", "Room fee"
    CLEANING_FEE = "CLEANING_FEE", "Cleaning fee"
    SERVICE_FEE = "SERVICE_FEE", "Service fee"
    SECURITY_DEPOSIT = "SECURITY_DEPOSIT", "Security deposit"


class EscrowEventType(models.TextChoices):
    """Kinds of money movement recorded in the escrow event log."""

    RELEASE_ROOM_FEE_SPLIT = "RELEASE_ROOM_FEE_SPLIT", "Release room fee split"
    COLLECT_PLATFORM_FEE = "COLLECT_PLATFORM_FEE", "Collect platform fee"
    RELEASE_CLEANING_FEE = "RELEASE_CLEANING_FEE", "Release cleaning fee"
    COLLECT_SERVICE_FEE = "COLLECT_SERVICE_FEE", "Collect service fee"
    REALTOR_PAYOUT = "REALTOR_PAYOUT", "Realtor payout"
    PAY_REALTOR_FROM_DEPOSIT = "PAY_REALTOR_FROM_DEPOSIT", "Pay realtor from deposit"
    RELEASE_DEPOSIT_TO_CUSTOMER = "RELEASE_DEPOSIT_TO_CUSTOMER", "Release deposit to customer"
    REFUND_ROOM_FEE_TO_CUSTOMER = "REFUND_ROOM_FEE_TO_CUSTOMER", "Refund room fee to customer"
    DISPUTE_REFUND_TO_CUSTOMER = "DISPUTE_REFUND_TO_CUSTOMER", "Dispute refund to customer"


class Party(models.TextChoices):
    ESCROW = "ESCROW", "Escrow"
    CUSTOMER = "CUSTOMER", "Customer"
    REALTOR = "REALTOR", "Realtor"
    PLATFORM = "PLATFORM", "Platform"


class TransferStatus(models.TextChoices):
    """
    Gateway confirmation state of a movement.

    NOT_APPLICABLE is used for legs that never leave the platform
    balance (platform commission).
    """

    NOT_APPLICABLE = "NOT_APPLICABLE", "Not applicable"
    PENDING = "PENDING", "Pending"
    CONFIRMED = "CONFIRMED", "Confirmed"
    FAILED = "FAILED", "Failed"
    REVERSED = "REVERSED", "Reversed"


class DisputeSubject(models.TextChoices):
    ROOM_FEE = "ROOM_FEE", "Room fee"
    SECURITY_DEPOSIT = "SECURITY_DEPOSIT", "Security deposit"
    GENERAL = "GENERAL", "General"


class DisputeStatus(models.TextChoices):
    OPEN = "OPEN", "Open"
    AWAITING_RESPONSE = "AWAITING_RESPONSE", "Awaiting response"
    ESCALATED = "ESCALATED", "Escalated"
    RESOLVED = "RESOLVED", "Resolved"
    REJECTED = "REJECTED", "Rejected"


class DisputeDecision(models.TextChoices):
    FULL_REFUND = "FULL_REFUND", "Full refund"
    FULL_PAYOUT = "FULL_PAYOUT", "Full payout"
    PARTIAL_REFUND = "PARTIAL_REFUND", "Partial refund"
    REJECTED = "REJECTED", "Rejected"


class DisputeResponse(models.TextChoices):
    ACCEPT = "ACCEPT", "Accept"
    REJECT_ESCALATE = "REJECT_ESCALATE", "Reject and escalate"


class WebhookEventStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PROCESSED = "processed", "Processed"
    FAILED = "failed", "Failed"


ACTIVE_DISPUTE_STATUSES = (
    DisputeStatus.OPEN,
    DisputeStatus.AWAITING_RESPONSE,
    DisputeStatus.ESCALATED,
)

# Subjects whose active dispute blocks settlement of a bucket
BLOCKING_SUBJECTS = {
    EscrowBucket.ROOM_FEE: (DisputeSubject.ROOM_FEE, DisputeSubject.GENERAL),
    EscrowBucket.SECURITY_DEPOSIT: (DisputeSubject.SECURITY_DEPOSIT, DisputeSubject.GENERAL),
}
