import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Listing",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("title", models.CharField(max_length=255)),
                ("subaccount_code", models.CharField(blank=True, default="", help_text="Payment gateway subaccount (connected account) for payouts", max_length=255)),
                ("currency", models.CharField(default="ngn", help_text="ISO 4217 currency code (lowercase)", max_length=3)),
                ("price_per_night_cents", models.PositiveBigIntegerField(help_text="Nightly rate in smallest currency unit")),
                ("cleaning_fee_cents", models.PositiveBigIntegerField(default=0, help_text="Cleaning fee, retained by the realtor on cancellation")),
                ("service_fee_cents", models.PositiveBigIntegerField(default=0, help_text="Service fee, retained by the platform on cancellation")),
                ("security_deposit_cents", models.PositiveBigIntegerField(default=0, help_text="Refundable security deposit")),
                ("realtor", models.ForeignKey(help_text="Realtor who owns this listing", on_delete=django.db.models.deletion.PROTECT, related_name="listings", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "verbose_name_plural": "Listings",
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="Booking",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("check_in", models.DateTimeField(db_index=True)),
                ("check_out", models.DateTimeField(db_index=True)),
                ("status", models.CharField(choices=[("PENDING", "Pending"), ("ACTIVE", "Active"), ("DISPUTED", "Disputed"), ("COMPLETED", "Completed"), ("CANCELLED", "Cancelled")], db_index=True, default="PENDING", max_length=20)),
                ("stay_status", models.CharField(choices=[("NOT_CHECKED_IN", "Not checked in"), ("CHECKED_IN", "Checked in"), ("CHECKED_OUT", "Checked out")], db_index=True, default="NOT_CHECKED_IN", max_length=20)),
                ("payout_status", models.CharField(choices=[("PENDING", "Pending"), ("READY", "Ready"), ("PROCESSING", "Processing"), ("COMPLETED", "Completed"), ("FAILED", "Failed")], db_index=True, default="PENDING", max_length=20)),
                ("payout_completed_at", models.DateTimeField(blank=True, null=True)),
                ("room_fee_release_eligible_at", models.DateTimeField(db_index=True, editable=False, help_text="When the dispute-free holding window for the room fee ends")),
                ("payout_eligible_at", models.DateTimeField(db_index=True, editable=False, help_text="When the realtor payout may be processed")),
                ("guest", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="bookings", to=settings.AUTH_USER_MODEL)),
                ("listing", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="bookings", to="bookings.listing")),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "stay_status", "room_fee_release_eligible_at"], name="bookings_bo_status_5b1c2e_idx"),
                    models.Index(fields=["payout_status", "payout_eligible_at"], name="bookings_bo_payout__8d4f1a_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("check_out__gt", models.F("check_in"))), name="booking_check_out_after_check_in"),
                ],
            },
        ),
    ]
