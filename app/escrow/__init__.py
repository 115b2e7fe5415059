"""
Escrow app: the ledger and settlement engine for booking payments.

This app provides:
- Payment records holding the guest's money in four buckets
- An append-only escrow event log with overdraft protection
- Scheduled settlement jobs (room fee release, deposit return, payouts,
  dispute SLA) guarded by job locks
- Dispute and cancellation services
- Stripe webhook intake and transfer reconciliation

Usage:
    from escrow.services import SettlementService

    result = SettlementService.release_room_fee(booking)
"""
