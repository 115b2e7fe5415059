"""
Escrow app configuration.

This app is the settlement engine: the payment ledger record, the
append-only escrow event log, disputes, job locks, the scheduled
release/payout jobs and gateway webhook reconciliation.
"""

from django.apps import AppConfig


class EscrowConfig(AppConfig):
    """Configuration for the escrow application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "escrow"
    verbose_name = "Escrow"

    def ready(self):
        # Register webhook handlers with the dispatcher
        from escrow.webhooks import handlers  # noqa: F401
