import uuid

import django.db.models.deletion
import django.utils.timezone
import django_fsm
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("bookings", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Payment",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("version", models.PositiveIntegerField(default=1, help_text="Version for optimistic locking - incremented on each save")),
                ("gateway_reference", models.CharField(help_text="Gateway charge reference (PaymentIntent ID) used for verify and refunds", max_length=255, unique=True)),
                ("currency", models.CharField(default="ngn", help_text="ISO 4217 currency code (lowercase)", max_length=3)),
                ("room_fee_cents", models.PositiveBigIntegerField(default=0)),
                ("cleaning_fee_cents", models.PositiveBigIntegerField(default=0)),
                ("service_fee_cents", models.PositiveBigIntegerField(default=0)),
                ("security_deposit_cents", models.PositiveBigIntegerField(default=0)),
                ("status", django_fsm.FSMField(choices=[("INITIATED", "Initiated"), ("HELD", "Held"), ("PARTIALLY_RELEASED", "Partially Released"), ("SETTLED", "Settled"), ("REFUNDED", "Refunded"), ("FAILED", "Failed")], db_index=True, default="INITIATED", help_text="Current state of the payment (managed by FSM)", max_length=50)),
                ("room_fee_split_done", models.BooleanField(db_index=True, default=False)),
                ("deposit_refunded", models.BooleanField(db_index=True, default=False)),
                ("commission_paid_out", models.BooleanField(db_index=True, default=False)),
                ("room_fee_release_reference", models.CharField(blank=True, default="", max_length=255)),
                ("deposit_reference", models.CharField(blank=True, default="", max_length=255)),
                ("payout_reference", models.CharField(blank=True, default="", max_length=255)),
                ("refund_reference", models.CharField(blank=True, default="", max_length=255)),
                ("realtor_room_fee_cents", models.PositiveBigIntegerField(default=0)),
                ("platform_room_fee_cents", models.PositiveBigIntegerField(default=0)),
                ("realtor_earnings_cents", models.PositiveBigIntegerField(default=0)),
                ("platform_commission_cents", models.PositiveBigIntegerField(default=0)),
                ("customer_refund_cents", models.PositiveBigIntegerField(default=0)),
                ("verified_at", models.DateTimeField(blank=True, null=True)),
                ("room_fee_released_at", models.DateTimeField(blank=True, null=True)),
                ("deposit_refunded_at", models.DateTimeField(blank=True, null=True)),
                ("payout_date", models.DateTimeField(blank=True, null=True)),
                ("settled_at", models.DateTimeField(blank=True, null=True)),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("booking", models.OneToOneField(on_delete=django.db.models.deletion.PROTECT, related_name="payment", to="bookings.booking")),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "room_fee_split_done"], name="escrow_pay_status_rf_idx"),
                    models.Index(fields=["status", "deposit_refunded"], name="escrow_pay_status_dep_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="EscrowEvent",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("event_type", models.CharField(choices=[("RELEASE_ROOM_FEE_SPLIT", "Release room fee split"), ("COLLECT_PLATFORM_FEE", "Collect platform fee"), ("RELEASE_CLEANING_FEE", "Release cleaning fee"), ("COLLECT_SERVICE_FEE", "Collect service fee"), ("REALTOR_PAYOUT", "Realtor payout"), ("PAY_REALTOR_FROM_DEPOSIT", "Pay realtor from deposit"), ("RELEASE_DEPOSIT_TO_CUSTOMER", "Release deposit to customer"), ("REFUND_ROOM_FEE_TO_CUSTOMER", "Refund room fee to customer"), ("DISPUTE_REFUND_TO_CUSTOMER", "Dispute refund to customer")], db_index=True, max_length=40)),
                ("bucket", models.CharField(choices=[("ROOM_FEE", "Room fee"), ("CLEANING_FEE", "Cleaning fee"), ("SERVICE_FEE", "Service fee"), ("SECURITY_DEPOSIT", "Security deposit")], max_length=20)),
                ("amount_cents", models.PositiveBigIntegerField(help_text="Amount moved in smallest currency unit")),
                ("currency", models.CharField(default="ngn", max_length=3)),
                ("from_party", models.CharField(choices=[("ESCROW", "Escrow"), ("CUSTOMER", "Customer"), ("REALTOR", "Realtor"), ("PLATFORM", "Platform")], default="ESCROW", max_length=10)),
                ("to_party", models.CharField(choices=[("ESCROW", "Escrow"), ("CUSTOMER", "Customer"), ("REALTOR", "Realtor"), ("PLATFORM", "Platform")], max_length=10)),
                ("executed_at", models.DateTimeField(db_index=True)),
                ("transaction_reference", models.CharField(blank=True, db_index=True, default="", help_text="Idempotent transfer/refund reference", max_length=255)),
                ("provider_transaction_id", models.CharField(blank=True, db_index=True, default="", max_length=255)),
                ("provider_response", models.JSONField(blank=True, default=dict, help_text="Serialized gateway outcome (tagged by 'kind')")),
                ("transfer_status", models.CharField(choices=[("NOT_APPLICABLE", "Not applicable"), ("PENDING", "Pending"), ("CONFIRMED", "Confirmed"), ("FAILED", "Failed"), ("REVERSED", "Reversed")], db_index=True, default="PENDING", max_length=20)),
                ("retry_count", models.PositiveSmallIntegerField(default=0, help_text="Number of gateway retries for this movement")),
                ("notes", models.TextField(blank=True, default="")),
                ("actor_label", models.CharField(default="system", max_length=64)),
                ("actor", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="escrow_events", to=settings.AUTH_USER_MODEL)),
                ("booking", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="escrow_events", to="bookings.booking")),
            ],
            options={
                "ordering": ["executed_at", "created_at"],
                "indexes": [
                    models.Index(fields=["booking", "executed_at"], name="escrow_evt_booking_exec_idx"),
                    models.Index(fields=["transfer_status", "executed_at"], name="escrow_evt_status_exec_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("amount_cents__gt", 0)), name="escrow_event_amount_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Dispute",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("subject", models.CharField(choices=[("ROOM_FEE", "Room fee"), ("SECURITY_DEPOSIT", "Security deposit"), ("GENERAL", "General")], db_index=True, max_length=20)),
                ("status", django_fsm.FSMField(choices=[("OPEN", "Open"), ("AWAITING_RESPONSE", "Awaiting response"), ("ESCALATED", "Escalated"), ("RESOLVED", "Resolved"), ("REJECTED", "Rejected")], db_index=True, default="OPEN", max_length=50)),
                ("reason", models.TextField(blank=True, default="")),
                ("guest_claimed_cents", models.PositiveBigIntegerField(blank=True, null=True)),
                ("realtor_claimed_cents", models.PositiveBigIntegerField(blank=True, null=True)),
                ("escalated_at", models.DateTimeField(blank=True, null=True)),
                ("admin_deadline_at", models.DateTimeField(blank=True, db_index=True, null=True)),
                ("decision", models.CharField(blank=True, choices=[("FULL_REFUND", "Full refund"), ("FULL_PAYOUT", "Full payout"), ("PARTIAL_REFUND", "Partial refund"), ("REJECTED", "Rejected")], default="", max_length=20)),
                ("final_outcome", models.CharField(blank=True, default="", max_length=64)),
                ("execution_reference", models.CharField(blank=True, default="", max_length=255)),
                ("customer_amount_cents", models.PositiveBigIntegerField(default=0)),
                ("realtor_amount_cents", models.PositiveBigIntegerField(default=0)),
                ("platform_amount_cents", models.PositiveBigIntegerField(default=0)),
                ("resolved_by_label", models.CharField(blank=True, default="", max_length=64)),
                ("admin_notes", models.TextField(blank=True, default="")),
                ("closed_at", models.DateTimeField(blank=True, null=True)),
                ("booking", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="disputes", to="bookings.booking")),
                ("opened_by", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="opened_disputes", to=settings.AUTH_USER_MODEL)),
                ("resolved_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="resolved_disputes", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["booking", "status"], name="escrow_disp_booking_st_idx"),
                    models.Index(fields=["status", "admin_deadline_at"], name="escrow_disp_deadline_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="JobLock",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("job_name", models.CharField(max_length=100, unique=True)),
                ("holder", models.CharField(max_length=255)),
                ("acquired_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("expires_at", models.DateTimeField(db_index=True)),
                ("booking_ids", models.JSONField(blank=True, default=list)),
            ],
            options={
                "ordering": ["job_name"],
            },
        ),
        migrations.CreateModel(
            name="WebhookEvent",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("provider_event_id", models.CharField(help_text="Gateway event ID (evt_xxx) - unique constraint for idempotency", max_length=255, unique=True)),
                ("event_type", models.CharField(db_index=True, max_length=100)),
                ("payload", models.JSONField()),
                ("status", models.CharField(choices=[("pending", "Pending"), ("processing", "Processing"), ("processed", "Processed"), ("failed", "Failed")], db_index=True, default="pending", max_length=20)),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
                ("error_message", models.TextField(blank=True, null=True)),
                ("retry_count", models.PositiveSmallIntegerField(default=0)),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "created_at"], name="escrow_wh_status_idx"),
                ],
            },
        ),
    ]
