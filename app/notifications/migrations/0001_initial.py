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
            name="Notification",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("kind", models.CharField(choices=[("room_fee_released", "Room fee released"), ("deposit_returned", "Deposit returned"), ("payout_completed", "Payout completed"), ("booking_cancelled", "Booking cancelled"), ("dispute_opened", "Dispute opened"), ("dispute_escalated", "Dispute escalated"), ("dispute_resolved", "Dispute resolved")], db_index=True, max_length=40)),
                ("title", models.CharField(help_text="Fully rendered notification title", max_length=500)),
                ("body", models.TextField(blank=True, default="", help_text="Fully rendered notification body")),
                ("data", models.JSONField(blank=True, default=dict, help_text="Arbitrary context data (booking id, amounts)")),
                ("is_read", models.BooleanField(db_index=True, default=False)),
                ("idempotency_key", models.CharField(blank=True, help_text="Idempotency key to prevent duplicate notifications", max_length=255, null=True)),
                ("delivery_status", models.CharField(choices=[("pending", "Pending"), ("sent", "Sent"), ("failed", "Failed"), ("skipped", "Skipped")], db_index=True, default="pending", max_length=20)),
                ("sent_at", models.DateTimeField(blank=True, null=True)),
                ("failure_reason", models.TextField(blank=True, default="")),
                ("attempt_count", models.PositiveSmallIntegerField(default=0)),
                ("recipient", models.ForeignKey(help_text="User receiving this notification", on_delete=django.db.models.deletion.CASCADE, related_name="notifications", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [models.Index(fields=["recipient", "is_read", "-created_at"], name="notif_recipient_unread_idx")],
                "constraints": [models.UniqueConstraint(condition=models.Q(("idempotency_key__isnull", False)), fields=("idempotency_key",), name="notif_idempotency_key_unique")],
            },
        ),
    ]
