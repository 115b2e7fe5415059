"""
JobLock model: single-flight guard for scheduled jobs.

One row per job name at most (unique constraint). A row whose
``expires_at`` has passed is dead weight that the next acquirer may
replace; see ``escrow.locks.JobLockManager``.
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin


class JobLockQuerySet(models.QuerySet):
    def active(self, now=None):
        return self.filter(expires_at__gt=now or timezone.now())

    def expired(self, now=None):
        return self.filter(expires_at__lte=now or timezone.now())


class JobLock(UUIDPrimaryKeyMixin, BaseModel):
    """
    Lease held by one run of a scheduled job.

    Fields:
        job_name: Scheduled job identifier (unique)
        holder: "<hostname>-<pid>" of the worker running the job
        acquired_at / expires_at: Lease window
        booking_ids: Bookings claimed by the current run
    """

    job_name = models.CharField(max_length=100, unique=True)
    holder = models.CharField(max_length=255)
    acquired_at = models.DateTimeField(default=timezone.now)
    expires_at = models.DateTimeField(db_index=True)
    booking_ids = models.JSONField(default=list, blank=True)

    objects = JobLockQuerySet.as_manager()

    class Meta:
        ordering = ["job_name"]

    def __str__(self) -> str:
        return f"JobLock({self.job_name}, {self.holder})"

    @property
    def is_expired(self) -> bool:
        return self.expires_at <= timezone.now()
