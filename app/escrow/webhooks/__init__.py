"""
Stripe webhook intake and transfer reconciliation.

Webhooks are verified, stored idempotently as WebhookEvent rows, and
processed asynchronously by ``escrow.tasks.process_webhook_event``.
"""
