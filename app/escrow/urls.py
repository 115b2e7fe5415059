"""
URL configuration for the escrow app.

All routes are prefixed with /api/v1/ when included in the main URLconf.
"""

from django.urls import path

from escrow import views
from escrow.webhooks.views import stripe_webhook

app_name = "escrow"

urlpatterns = [
    # Bookings
    path(
        "bookings/<uuid:booking_id>/escrow-events/",
        views.BookingEscrowEventsView.as_view(),
        name="booking-escrow-events",
    ),
    path(
        "bookings/<uuid:booking_id>/cancel/",
        views.BookingCancelView.as_view(),
        name="booking-cancel",
    ),
    path(
        "bookings/<uuid:booking_id>/disputes/",
        views.DisputeCreateView.as_view(),
        name="dispute-create",
    ),
    # Disputes
    path(
        "disputes/<uuid:dispute_id>/respond/",
        views.DisputeRespondView.as_view(),
        name="dispute-respond",
    ),
    # Admin
    path(
        "admin/disputes/<uuid:dispute_id>/resolve/",
        views.AdminDisputeResolveView.as_view(),
        name="admin-dispute-resolve",
    ),
    path("admin/system/job-locks/", views.JobLockListView.as_view(), name="job-lock-list"),
    path(
        "admin/system/job-locks/<uuid:lock_id>/",
        views.JobLockDetailView.as_view(),
        name="job-lock-detail",
    ),
    path("admin/system/health-stats/", views.HealthStatsView.as_view(), name="health-stats"),
    path(
        "admin/webhooks/booking/<uuid:booking_id>/",
        views.BookingWebhookStatusView.as_view(),
        name="booking-webhook-status",
    ),
    # Webhooks
    path("escrow/webhooks/stripe/", stripe_webhook, name="stripe-webhook"),
]
