"""
Status enums for bookings.

Booking lifecycle:
    PENDING -> ACTIVE -> COMPLETED
    PENDING/ACTIVE -> CANCELLED
    ACTIVE <-> DISPUTED (returns to ACTIVE when the dispute closes)

Stay progress is tracked separately so a booking can be ACTIVE and
CHECKED_IN at the same time.

Payout lifecycle:
    PENDING -> READY -> PROCESSING -> COMPLETED
    PROCESSING -> FAILED -> PENDING (retry on a later run)
"""

from django.db import models


class BookingStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    ACTIVE = "ACTIVE", "Active"
    DISPUTED = "DISPUTED", "Disputed"
    COMPLETED = "COMPLETED", "Completed"
    CANCELLED = "CANCELLED", "Cancelled"


class StayStatus(models.TextChoices):
    NOT_CHECKED_IN = "NOT_CHECKED_IN", "Not checked in"
    CHECKED_IN = "CHECKED_IN", "Checked in"
    CHECKED_OUT = "CHECKED_OUT", "Checked out"


class PayoutStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    READY = "READY", "Ready"
    PROCESSING = "PROCESSING", "Processing"
    COMPLETED = "COMPLETED", "Completed"
    FAILED = "FAILED", "Failed"
