"""
Scheduled settlement jobs.

Each job is single-flight through JobLockManager and exposes ``run_now()``;
the Celery tasks in ``escrow.tasks`` are thin wrappers scheduled by
django-celery-beat.
"""

from escrow.jobs.base import JobReport, LockedJob
from escrow.jobs.deposit_return import DepositReturnJob
from escrow.jobs.dispute_sla import DisputeSlaJob
from escrow.jobs.payout_eligibility import PayoutEligibilityJob
from escrow.jobs.room_fee_release import RoomFeeReleaseJob

__all__ = [
    "DepositReturnJob",
    "DisputeSlaJob",
    "JobReport",
    "LockedJob",
    "PayoutEligibilityJob",
    "RoomFeeReleaseJob",
]
