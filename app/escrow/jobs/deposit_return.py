"""Deposit return job: refund the security deposit after check-out."""

from escrow.jobs.base import LockedJob
from escrow.services.settlement_service import SettlementService


class DepositReturnJob(LockedJob):
    """
    Every 5 minutes: refund the remaining security deposit to the guest
    for bookings checked out more than ESCROW_DEPOSIT_RETURN_DELAY_HOURS ago.
    """

    job_name = "deposit_return"
    skip_codes = frozenset({"DISPUTE_BLOCKED", "NOT_ELIGIBLE", "ALREADY_RELEASED"})

    def candidates(self):
        return SettlementService.deposit_candidates(self.now)

    def process(self, booking):
        return SettlementService.return_deposit(booking, now=self.now)
