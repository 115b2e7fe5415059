"""
DRF views for the escrow app.

Endpoints (prefixed with /api/v1/):
    GET    bookings/{id}/escrow-events/        - Ledger for a booking (parties, staff)
    POST   bookings/{id}/cancel/               - Cancel with tiered refund (guest, staff)
    POST   bookings/{id}/disputes/             - Open a dispute (parties, staff)
    POST   disputes/{id}/respond/              - Accept or escalate (counterparty)
    POST   admin/disputes/{id}/resolve/        - Admin decision (staff)
    GET    admin/system/job-locks/             - Active job locks (staff)
    DELETE admin/system/job-locks/{id}/        - Force-release a lock (staff)
    GET    admin/system/health-stats/          - Settlement health (staff)
    GET    admin/webhooks/booking/{id}/        - Webhook status per event (staff)

Responses use the envelope ``{"success": bool, "data" | "error", "error_code"}``.
Application errors are rendered with their own HTTP status.
"""

from __future__ import annotations

import logging

from django.shortcuts import get_object_or_404
from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from bookings.models import Booking
from core.exceptions import BaseApplicationError, PermissionDeniedError
from escrow.locks import JobLockManager
from escrow.models import Dispute
from escrow.serializers import (
    CancelBookingSerializer,
    DisputeCreateSerializer,
    DisputeResolveSerializer,
    DisputeRespondSerializer,
    DisputeSerializer,
    EscrowEventSerializer,
    JobLockSerializer,
)
from escrow.services import (
    CancellationService,
    DisputeService,
    EscrowEventLog,
    HealthService,
)

logger = logging.getLogger(__name__)


def error_response(exc: BaseApplicationError) -> Response:
    return Response(exc.to_dict(), status=exc.http_status)


def failure_response(result, http_status=status.HTTP_400_BAD_REQUEST) -> Response:
    return Response(result.to_response(), status=http_status)


def ok(data, http_status=status.HTTP_200_OK) -> Response:
    return Response({"success": True, "data": data}, status=http_status)


class ApplicationErrorMixin:
    """Render BaseApplicationError raised by a handler as an error envelope."""

    def handle_exception(self, exc):
        if isinstance(exc, BaseApplicationError):
            return error_response(exc)
        return super().handle_exception(exc)


# =============================================================================
# Booking Endpoints
# =============================================================================


class BookingEscrowEventsView(ApplicationErrorMixin, APIView):
    """Chronological escrow events for one booking."""

    permission_classes = [IsAuthenticated]

    @extend_schema(responses={200: EscrowEventSerializer(many=True)}, tags=["Escrow"])
    def get(self, request, booking_id):
        booking = get_object_or_404(Booking.objects.select_related("listing"), pk=booking_id)
        if not booking.is_party(request.user):
            raise PermissionDeniedError("You do not have access to this booking's ledger")

        events = EscrowEventLog.list_for_booking(booking.id)
        return ok(EscrowEventSerializer(events, many=True).data)


class BookingCancelView(ApplicationErrorMixin, APIView):
    """Cancel a booking; held funds are refunded by the tier in effect now."""

    permission_classes = [IsAuthenticated]

    @extend_schema(request=CancelBookingSerializer, tags=["Escrow"])
    def post(self, request, booking_id):
        booking = get_object_or_404(Booking.objects.select_related("listing"), pk=booking_id)
        serializer = CancelBookingSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = CancellationService.cancel_booking(
            booking,
            user=request.user,
            reason=serializer.validated_data["reason"],
        )
        if not result.success:
            return failure_response(result, status.HTTP_409_CONFLICT)

        cancellation = result.data
        return ok(
            {
                "booking_id": str(cancellation.booking.id),
                "status": cancellation.booking.status,
                "reference": cancellation.reference,
                "breakdown": cancellation.breakdown.as_dict() if cancellation.breakdown else None,
            }
        )


class DisputeCreateView(ApplicationErrorMixin, APIView):
    """Open a dispute on a booking."""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        request=DisputeCreateSerializer,
        responses={201: DisputeSerializer, 409: OpenApiResponse(description="Dispute exists")},
        tags=["Disputes"],
    )
    def post(self, request, booking_id):
        booking = get_object_or_404(Booking.objects.select_related("listing"), pk=booking_id)
        serializer = DisputeCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = DisputeService.open_dispute(booking, user=request.user, **serializer.validated_data)
        return ok(DisputeSerializer(result.data).data, status.HTTP_201_CREATED)


class DisputeRespondView(ApplicationErrorMixin, APIView):
    """Counterparty accepts the claim or escalates to an admin."""

    permission_classes = [IsAuthenticated]

    @extend_schema(request=DisputeRespondSerializer, responses={200: DisputeSerializer}, tags=["Disputes"])
    def post(self, request, dispute_id):
        dispute = get_object_or_404(Dispute.objects.select_related("booking__listing"), pk=dispute_id)
        serializer = DisputeRespondSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = DisputeService.respond_to_dispute(
            dispute, request.user, serializer.validated_data["response"]
        )
        if not result.success:
            return failure_response(result, status.HTTP_409_CONFLICT)
        return ok(DisputeSerializer(result.data).data)


# =============================================================================
# Admin Endpoints
# =============================================================================


class AdminDisputeResolveView(ApplicationErrorMixin, APIView):
    """Apply an admin decision to an escalated dispute."""

    permission_classes = [IsAdminUser]

    @extend_schema(request=DisputeResolveSerializer, responses={200: DisputeSerializer}, tags=["Admin"])
    def post(self, request, dispute_id):
        dispute = get_object_or_404(Dispute.objects.select_related("booking__listing"), pk=dispute_id)
        serializer = DisputeResolveSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = DisputeService.admin_resolve_dispute(
            dispute,
            request.user,
            serializer.validated_data["decision"],
            amount_cents=serializer.validated_data.get("amount_cents"),
            notes=serializer.validated_data["notes"],
        )
        if not result.success:
            return failure_response(result, status.HTTP_409_CONFLICT)
        return ok(
            {
                "dispute": DisputeSerializer(result.data.dispute).data,
                "plan": result.data.plan.as_dict(),
            }
        )


class JobLockListView(APIView):
    permission_classes = [IsAdminUser]

    @extend_schema(responses={200: JobLockSerializer(many=True)}, tags=["Admin"])
    def get(self, request):
        return ok(JobLockSerializer(JobLockManager.list_active(), many=True).data)


class JobLockDetailView(APIView):
    permission_classes = [IsAdminUser]

    @extend_schema(tags=["Admin"])
    def delete(self, request, lock_id):
        result = JobLockManager.force_release(lock_id, admin=request.user)
        if not result.success:
            return failure_response(result, status.HTTP_404_NOT_FOUND)
        return ok({"released": result.data})


class HealthStatsView(APIView):
    permission_classes = [IsAdminUser]

    @extend_schema(tags=["Admin"])
    def get(self, request):
        window = request.query_params.get("window_hours")
        window_hours = int(window) if window and window.isdigit() else None
        return ok(HealthService.health_stats(window_hours=window_hours))


class BookingWebhookStatusView(APIView):
    permission_classes = [IsAdminUser]

    @extend_schema(tags=["Admin"])
    def get(self, request, booking_id):
        booking = get_object_or_404(Booking, pk=booking_id)
        return ok(
            {
                "booking_id": str(booking.id),
                "events": HealthService.booking_webhook_status(booking.id),
            }
        )
