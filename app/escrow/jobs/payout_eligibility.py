"""Payout eligibility job: pay realtors once check-in has passed."""

from core.services import ServiceResult
from escrow.exceptions import LockAcquisitionError, PreconditionFailedError
from escrow.jobs.base import LockedJob
from escrow.services.payout_service import PayoutService


class PayoutEligibilityJob(LockedJob):
    """
    Hourly: requeue FAILED payouts, mark due payouts READY and execute
    them. A payout already being executed by another worker, or already
    completed, is skipped.
    """

    job_name = "payout_eligibility"
    skip_codes = frozenset({"NOT_ELIGIBLE", "PAYOUT_LOCKED", "ALREADY_PAID"})

    def prepare(self) -> None:
        PayoutService.reset_failed(self.now)
        PayoutService.mark_ready(self.now)

    def candidates(self):
        return PayoutService.eligible_bookings(self.now)

    def process(self, booking):
        try:
            return PayoutService.process_payout(booking, now=self.now)
        except LockAcquisitionError:
            return ServiceResult.failure("Payout is being processed", error_code="PAYOUT_LOCKED")
        except PreconditionFailedError as e:
            return ServiceResult.failure(e.message, error_code="ALREADY_PAID")
