"""
Dispute model for contested bookings.

A dispute freezes settlement of its subject (room fee, security deposit,
or both for GENERAL) until it is RESOLVED or REJECTED, either by the
parties, by an admin, or by the SLA sweeper once the admin deadline lapses.
"""

from __future__ import annotations

from datetime import timedelta

from django.conf import settings
from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from escrow.states import (
    ACTIVE_DISPUTE_STATUSES,
    BLOCKING_SUBJECTS,
    DisputeDecision,
    DisputeStatus,
    DisputeSubject,
)


class DisputeQuerySet(models.QuerySet):
    def active(self):
        return self.filter(status__in=ACTIVE_DISPUTE_STATUSES)

    def blocking(self, booking, bucket: str):
        """Active disputes that freeze settlement of ``bucket`` for a booking."""
        return self.active().filter(booking=booking, subject__in=BLOCKING_SUBJECTS[bucket])

    def overdue(self, now=None):
        now = now or timezone.now()
        return self.filter(status=DisputeStatus.ESCALATED, admin_deadline_at__lt=now)


class Dispute(UUIDPrimaryKeyMixin, BaseModel):
    """
    A claim raised by the guest or the realtor against a booking.

    State Flow:
        OPEN -> AWAITING_RESPONSE -> ESCALATED -> RESOLVED / REJECTED
        OPEN/AWAITING_RESPONSE -> RESOLVED (counterparty accepted)

    Fields:
        subject: What is contested (ROOM_FEE, SECURITY_DEPOSIT, GENERAL)
        opened_by: User who raised the claim
        guest_claimed_cents: Refund the guest asks for
        realtor_claimed_cents: Amount the realtor claims to keep
        admin_deadline_at: SLA deadline set on escalation
        decision: Final decision applied
        customer_amount_cents / realtor_amount_cents / platform_amount_cents:
            Realized split of the executed resolution
    """

    booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.PROTECT,
        related_name="disputes",
    )

    subject = models.CharField(
        max_length=20,
        choices=DisputeSubject.choices,
        db_index=True,
    )

    status = FSMField(
        default=DisputeStatus.OPEN,
        choices=DisputeStatus.choices,
        db_index=True,
    )

    opened_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="opened_disputes",
    )

    reason = models.TextField(blank=True, default="")

    guest_claimed_cents = models.PositiveBigIntegerField(null=True, blank=True)
    realtor_claimed_cents = models.PositiveBigIntegerField(null=True, blank=True)

    escalated_at = models.DateTimeField(null=True, blank=True)
    admin_deadline_at = models.DateTimeField(null=True, blank=True, db_index=True)

    # ==========================================================================
    # Resolution
    # ==========================================================================

    decision = models.CharField(
        max_length=20,
        choices=DisputeDecision.choices,
        blank=True,
        default="",
    )
    final_outcome = models.CharField(max_length=64, blank=True, default="")
    execution_reference = models.CharField(max_length=255, blank=True, default="")

    customer_amount_cents = models.PositiveBigIntegerField(default=0)
    realtor_amount_cents = models.PositiveBigIntegerField(default=0)
    platform_amount_cents = models.PositiveBigIntegerField(default=0)

    resolved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="resolved_disputes",
    )
    resolved_by_label = models.CharField(max_length=64, blank=True, default="")
    admin_notes = models.TextField(blank=True, default="")
    closed_at = models.DateTimeField(null=True, blank=True)

    objects = DisputeQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["booking", "status"], name="escrow_disp_booking_st_idx"),
            models.Index(fields=["status", "admin_deadline_at"], name="escrow_disp_deadline_idx"),
        ]

    def __str__(self) -> str:
        return f"Dispute({self.id}, {self.subject}, {self.status})"

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_DISPUTE_STATUSES

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=DisputeStatus.OPEN,
        target=DisputeStatus.AWAITING_RESPONSE,
    )
    def await_response(self):
        pass

    @transition(
        field=status,
        source=[DisputeStatus.OPEN, DisputeStatus.AWAITING_RESPONSE],
        target=DisputeStatus.ESCALATED,
    )
    def escalate(self):
        """Hand the dispute to an admin; the SLA clock starts now."""
        now = timezone.now()
        self.escalated_at = now
        self.admin_deadline_at = now + timedelta(
            hours=settings.ESCROW_DISPUTE_ADMIN_DEADLINE_HOURS
        )

    @transition(
        field=status,
        source=list(ACTIVE_DISPUTE_STATUSES),
        target=DisputeStatus.RESOLVED,
    )
    def resolve(self, decision: str, outcome: str):
        self.decision = decision
        self.final_outcome = outcome
        self.closed_at = timezone.now()

    @transition(
        field=status,
        source=list(ACTIVE_DISPUTE_STATUSES),
        target=DisputeStatus.REJECTED,
    )
    def reject(self):
        self.decision = DisputeDecision.REJECTED
        self.final_outcome = "REJECTED_NO_MOVEMENT"
        self.closed_at = timezone.now()
