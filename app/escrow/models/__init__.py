"""
Escrow domain models.

- Payment: Per-booking ledger record of held and released funds
- EscrowEvent: Append-only log of every money movement
- Dispute: Contested booking blocking settlement of its subject
- JobLock: Single-flight lease for scheduled jobs
- WebhookEvent: Gateway webhook event tracking for idempotent processing
"""

from escrow.models.dispute import Dispute
from escrow.models.escrow_event import RECONCILIATION_FIELDS, EscrowEvent
from escrow.models.job_lock import JobLock
from escrow.models.payment import Payment
from escrow.models.webhook_event import WebhookEvent

__all__ = [
    "Dispute",
    "EscrowEvent",
    "JobLock",
    "Payment",
    "RECONCILIATION_FIELDS",
    "WebhookEvent",
]
