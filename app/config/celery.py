"""
Celery application for the settlement workers and beat scheduler.

Workers run the scheduled escrow jobs (room fee release, deposit return,
payout eligibility, dispute SLA sweep) and asynchronous webhook
reconciliation. Beat reads its schedule from django-celery-beat's
DatabaseScheduler; the PeriodicTask rows are created by escrow migrations.

Usage:
    celery -A config worker -l info
    celery -A config beat -l info
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

# Picks up tasks.py from every installed app (escrow, notifications)
app.autodiscover_tasks()
