"""
Base class for scheduled settlement jobs.

Each run takes the job's JobLock lease, processes one batch of candidate
bookings and releases the lease. Every booking is handled independently:
a failure is logged and counted, and the batch continues.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any

from django.conf import settings
from django.utils import timezone

from escrow.exceptions import EscrowOverdraftError
from escrow.locks import JobLockManager, default_holder

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import datetime

    from core.services import ServiceResult


@dataclass
class JobReport:
    """Counters for one job run, returned to Celery as a dict."""

    job_name: str
    processed: int = 0
    succeeded: int = 0
    skipped: int = 0
    failed: int = 0
    lock_conflict: bool = False
    errors: list[dict[str, Any]] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


class LockedJob:
    """
    Single-flight batch job.

    Subclasses set ``job_name`` and implement ``candidates()`` and
    ``process(item)``. ``process`` returns a ServiceResult; failures whose
    error_code is in ``skip_codes`` count as skipped rather than failed.
    """

    job_name: str = ""
    skip_codes: frozenset[str] = frozenset()

    def __init__(self, now: datetime | None = None, batch_size: int | None = None):
        self.now = now or timezone.now()
        self.batch_size = batch_size or settings.ESCROW_JOB_BATCH_SIZE
        self.logger = logging.getLogger(f"{type(self).__module__}.{type(self).__name__}")

    # Hooks

    def prepare(self) -> None:
        """Runs under the lock before candidates are selected."""

    def candidates(self) -> Iterable:
        raise NotImplementedError

    def process(self, item) -> ServiceResult:
        raise NotImplementedError

    def item_id(self, item) -> str:
        return str(item.pk)

    # Entry point

    def run_now(self) -> JobReport:
        report = JobReport(job_name=self.job_name)
        holder = default_holder()

        acquired = JobLockManager.acquire(self.job_name, holder=holder)
        if not acquired.success:
            report.lock_conflict = True
            return report
        lock = acquired.data

        try:
            self.prepare()
            items = list(self.candidates()[: self.batch_size])
            JobLockManager.update_booking_ids(lock.id, [self.item_id(item) for item in items])

            self.logger.info(
                f"{self.job_name}: {len(items)} candidate(s)",
                extra={"job_name": self.job_name, "count": len(items)},
            )
            for item in items:
                self._run_item(item, report)
        finally:
            JobLockManager.release(lock.id, holder)

        self.logger.info(
            f"{self.job_name} complete",
            extra={
                "job_name": self.job_name,
                "processed": report.processed,
                "succeeded": report.succeeded,
                "skipped": report.skipped,
                "failed": report.failed,
            },
        )
        return report

    def _run_item(self, item, report: JobReport) -> None:
        item_id = self.item_id(item)
        report.processed += 1
        try:
            result = self.process(item)
        except EscrowOverdraftError as e:
            report.failed += 1
            report.errors.append({"id": item_id, "error_code": e.error_code, "error": e.message})
            self.logger.critical(
                f"{self.job_name}: escrow overdraft rejected",
                extra={"job_name": self.job_name, "booking_id": item_id, **e.details},
            )
            return
        except Exception as e:
            report.failed += 1
            report.errors.append(
                {
                    "id": item_id,
                    "error_code": getattr(e, "error_code", type(e).__name__),
                    "error": str(e),
                }
            )
            self.logger.error(
                f"{self.job_name}: failed to process {item_id}",
                extra={"job_name": self.job_name, "booking_id": item_id},
                exc_info=True,
            )
            return

        if result.success:
            report.succeeded += 1
        elif result.error_code in self.skip_codes:
            report.skipped += 1
        else:
            report.failed += 1
            report.errors.append(
                {"id": item_id, "error_code": result.error_code, "error": result.error}
            )
            self.logger.warning(
                f"{self.job_name}: {result.error}",
                extra={
                    "job_name": self.job_name,
                    "booking_id": item_id,
                    "error_code": result.error_code,
                },
            )
