"""
Escrow services.

Each service is a BaseService subclass of classmethods returning
ServiceResult for expected outcomes.
"""

from escrow.services.cancellation_service import CancellationService
from escrow.services.dispute_service import DisputeService
from escrow.services.event_log import EscrowEventLog, Movement
from escrow.services.health_service import HealthService
from escrow.services.payout_service import PayoutService
from escrow.services.settlement_service import SettlementService

__all__ = [
    "CancellationService",
    "DisputeService",
    "EscrowEventLog",
    "HealthService",
    "Movement",
    "PayoutService",
    "SettlementService",
]
