"""
EscrowEvent model: the append-only audit log of money movement.

Every fund movement tied to a booking is one row. Rows are created only
through ``escrow.services.event_log.EscrowEventLog.append`` (which enforces
the overdraft invariant) and their money fields never change afterwards;
corrections are new compensating events.

The only mutable part is reconciliation state written when the gateway
reports how a transfer ended (webhooks) or when a retry is recorded.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from escrow.exceptions import ImmutableEventError
from escrow.outcomes import TransferOutcome, parse_outcome, serialize_outcome
from escrow.states import EscrowBucket, EscrowEventType, Party, TransferStatus

# Fields webhook reconciliation may touch after insert
RECONCILIATION_FIELDS = frozenset(
    {
        "transfer_status",
        "provider_response",
        "provider_transaction_id",
        "retry_count",
        "updated_at",
    }
)


class EscrowEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    One immutable money movement.

    Fields:
        booking: Booking the funds belong to
        event_type: Kind of movement
        bucket: Held bucket the funds are drawn from
        amount_cents / currency: Amount moved
        from_party / to_party: Direction of the movement
        executed_at: When the funds actually moved
        transaction_reference: Idempotent reference used with the gateway
        provider_transaction_id: Gateway object ID (tr_xxx / re_xxx)
        provider_response: Serialized TransferOutcome (see escrow.outcomes)
        transfer_status: Queryable projection of provider_response
        retry_count: Gateway delivery attempts beyond the first
        notes: Free text
        actor: User who triggered it (null for system jobs)
        actor_label: "system", "admin", "job:<name>" for display
    """

    booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.PROTECT,
        related_name="escrow_events",
    )

    event_type = models.CharField(
        max_length=40,
        choices=EscrowEventType.choices,
        db_index=True,
    )

    bucket = models.CharField(
        max_length=20,
        choices=EscrowBucket.choices,
    )

    amount_cents = models.PositiveBigIntegerField(
        help_text="Amount moved in smallest currency unit",
    )

    currency = models.CharField(max_length=3, default="ngn")

    from_party = models.CharField(max_length=10, choices=Party.choices, default=Party.ESCROW)
    to_party = models.CharField(max_length=10, choices=Party.choices)

    executed_at = models.DateTimeField(db_index=True)

    transaction_reference = models.CharField(
        max_length=255,
        blank=True,
        default="",
        db_index=True,
        help_text="Idempotent transfer/refund reference",
    )

    # ==========================================================================
    # Reconciliation (mutable)
    # ==========================================================================

    provider_transaction_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        db_index=True,
    )

    provider_response = models.JSONField(
        default=dict,
        blank=True,
        help_text="Serialized gateway outcome (tagged by 'kind')",
    )

    transfer_status = models.CharField(
        max_length=20,
        choices=TransferStatus.choices,
        default=TransferStatus.PENDING,
        db_index=True,
    )

    retry_count = models.PositiveSmallIntegerField(
        default=0,
        help_text="Number of gateway retries for this movement",
    )

    # ==========================================================================
    # Audit
    # ==========================================================================

    notes = models.TextField(blank=True, default="")

    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="escrow_events",
    )

    actor_label = models.CharField(max_length=64, default="system")

    class Meta:
        ordering = ["executed_at", "created_at"]
        indexes = [
            models.Index(fields=["booking", "executed_at"], name="escrow_evt_booking_exec_idx"),
            models.Index(fields=["transfer_status", "executed_at"], name="escrow_evt_status_exec_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount_cents__gt=0),
                name="escrow_event_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"EscrowEvent({self.event_type}, {self.amount_cents} {self.currency.upper()})"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            update_fields = kwargs.get("update_fields")
            if update_fields is None or not set(update_fields) <= RECONCILIATION_FIELDS:
                raise ImmutableEventError(
                    "Escrow events cannot be modified; record a compensating event",
                    details={"event_id": str(self.pk)},
                )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ImmutableEventError(
            "Escrow events cannot be deleted",
            details={"event_id": str(self.pk)},
        )

    # ==========================================================================
    # Reconciliation helpers
    # ==========================================================================

    @property
    def outcome(self) -> TransferOutcome:
        return parse_outcome(self.provider_response)

    def record_transfer_outcome(self, outcome: TransferOutcome) -> None:
        """Store the gateway outcome without touching the movement itself."""
        self.provider_response = serialize_outcome(outcome)
        self.transfer_status = outcome.status
        transfer_id = getattr(outcome, "transfer_id", None)
        fields = ["provider_response", "transfer_status", "updated_at"]
        if transfer_id and not self.provider_transaction_id:
            self.provider_transaction_id = transfer_id
            fields.append("provider_transaction_id")
        self.save(update_fields=fields)

    def record_retry(self) -> None:
        self.retry_count += 1
        self.save(update_fields=["retry_count", "updated_at"])
