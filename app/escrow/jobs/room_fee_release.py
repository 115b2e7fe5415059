"""Room-fee release job: settle the room fee once the dispute window closes."""

from escrow.jobs.base import LockedJob
from escrow.services.settlement_service import SettlementService


class RoomFeeReleaseJob(LockedJob):
    """
    Every 5 minutes: release the room fee of checked-in bookings whose
    ``room_fee_release_eligible_at`` has passed, 90% to the realtor and
    10% to the platform.

    Bookings under an active ROOM_FEE or GENERAL dispute are left out of
    the batch and picked up again on a later run once the dispute closes.
    """

    job_name = "room_fee_release"
    skip_codes = frozenset({"DISPUTE_BLOCKED", "NOT_ELIGIBLE", "ALREADY_RELEASED"})

    def candidates(self):
        return SettlementService.room_fee_candidates(self.now)

    def process(self, booking):
        return SettlementService.release_room_fee(booking, now=self.now)
