"""Dispute SLA sweeper: force-resolve escalated disputes past their deadline."""

from escrow.jobs.base import LockedJob
from escrow.models import Dispute
from escrow.services.dispute_service import DisputeService


class DisputeSlaJob(LockedJob):
    """
    Hourly: any ESCALATED dispute whose admin deadline has passed is
    resolved as PARTIAL_REFUND with the fallback split.
    """

    job_name = "dispute_sla"
    skip_codes = frozenset({"NOT_OVERDUE"})

    def candidates(self):
        return Dispute.objects.overdue(self.now).select_related("booking").order_by(
            "admin_deadline_at"
        )

    def item_id(self, dispute) -> str:
        return str(dispute.booking_id)

    def process(self, dispute):
        return DisputeService.auto_resolve(dispute, now=self.now)
