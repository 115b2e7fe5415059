"""
Serializers for the escrow API.

Read serializers:
    EscrowEventSerializer: One ledger movement with its reconciliation state
    DisputeSerializer: Dispute with realized resolution amounts
    JobLockSerializer: Active scheduled-job lease

Write serializers:
    CancelBookingSerializer / DisputeCreateSerializer /
    DisputeRespondSerializer / DisputeResolveSerializer
"""

from __future__ import annotations

from rest_framework import serializers

from escrow.models import Dispute, EscrowEvent, JobLock
from escrow.outcomes import failure_reason, webhook_received
from escrow.states import DisputeDecision, DisputeResponse, DisputeSubject


# =============================================================================
# Read Serializers
# =============================================================================


class EscrowEventSerializer(serializers.ModelSerializer):
    webhook_received = serializers.SerializerMethodField()
    failure_reason = serializers.SerializerMethodField()

    class Meta:
        model = EscrowEvent
        fields = [
            "id",
            "event_type",
            "bucket",
            "amount_cents",
            "currency",
            "from_party",
            "to_party",
            "executed_at",
            "transaction_reference",
            "provider_transaction_id",
            "transfer_status",
            "retry_count",
            "webhook_received",
            "failure_reason",
            "actor_label",
            "notes",
        ]
        read_only_fields = fields

    def get_webhook_received(self, obj: EscrowEvent) -> bool:
        return webhook_received(obj.outcome)

    def get_failure_reason(self, obj: EscrowEvent) -> str | None:
        return failure_reason(obj.outcome)


class DisputeSerializer(serializers.ModelSerializer):
    booking_id = serializers.UUIDField(read_only=True)
    opened_by_id = serializers.IntegerField(read_only=True)

    class Meta:
        model = Dispute
        fields = [
            "id",
            "booking_id",
            "subject",
            "status",
            "opened_by_id",
            "reason",
            "guest_claimed_cents",
            "realtor_claimed_cents",
            "escalated_at",
            "admin_deadline_at",
            "decision",
            "final_outcome",
            "execution_reference",
            "customer_amount_cents",
            "realtor_amount_cents",
            "platform_amount_cents",
            "resolved_by_label",
            "closed_at",
            "created_at",
        ]
        read_only_fields = fields


class JobLockSerializer(serializers.ModelSerializer):
    is_expired = serializers.BooleanField(read_only=True)

    class Meta:
        model = JobLock
        fields = [
            "id",
            "job_name",
            "holder",
            "acquired_at",
            "expires_at",
            "is_expired",
            "booking_ids",
        ]
        read_only_fields = fields


# =============================================================================
# Write Serializers
# =============================================================================


class CancelBookingSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="", max_length=1000)


class DisputeCreateSerializer(serializers.Serializer):
    subject = serializers.ChoiceField(choices=DisputeSubject.choices)
    reason = serializers.CharField(required=False, allow_blank=True, default="")
    guest_claimed_cents = serializers.IntegerField(required=False, allow_null=True, min_value=0)
    realtor_claimed_cents = serializers.IntegerField(required=False, allow_null=True, min_value=0)


class DisputeRespondSerializer(serializers.Serializer):
    response = serializers.ChoiceField(choices=DisputeResponse.choices)


class DisputeResolveSerializer(serializers.Serializer):
    decision = serializers.ChoiceField(choices=DisputeDecision.choices)
    amount_cents = serializers.IntegerField(required=False, allow_null=True, min_value=0)
    notes = serializers.CharField(required=False, allow_blank=True, default="")

    def validate(self, attrs):
        if attrs.get("amount_cents") is not None and attrs["decision"] != DisputeDecision.PARTIAL_REFUND:
            raise serializers.ValidationError(
                {"amount_cents": "Only a partial refund takes an amount."}
            )
        return attrs
