"""
Concurrency control for settlement operations.

This module provides two complementary mechanisms:

1. **Job locks** (JobLockManager)
   - Database lease per scheduled job name (single-flight)
   - TTL bounds the lifetime of a lock left behind by a crashed run
   - Visible to operators and force-releasable from the admin API

2. **Distributed Locks** (DistributedLock)
   - Redis-based mutual exclusion across workers
   - Use for: a single booking's payout while the gateway call is in flight

Usage:

    from escrow.locks import JobLockManager

    result = JobLockManager.acquire("room_fee_release")
    if not result.success:
        return  # another run holds the lock
    try:
        run_batch()
    finally:
        JobLockManager.release(result.data.id, result.data.holder)

    with DistributedLock(f"payout:{booking.id}", ttl=60, blocking=False):
        execute_payout(booking)
"""

from __future__ import annotations

import os
import socket
import time
import uuid as uuid_module
from datetime import timedelta
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from django_redis import get_redis_connection

from core.services import BaseService, ServiceResult
from escrow.exceptions import LockAcquisitionError
from escrow.models import JobLock

if TYPE_CHECKING:
    from collections.abc import Iterable
    from typing import Any

    from redis import Redis


def default_holder() -> str:
    """Identity of this worker process: ``<hostname>-<pid>``."""
    return f"{socket.gethostname()}-{os.getpid()}"


# =============================================================================
# Job Locks
# =============================================================================


class JobLockManager(BaseService):
    """
    Single-flight leases for scheduled jobs.

    A conflict is an expected outcome (another run is active), so acquire()
    returns a failed ServiceResult instead of raising.
    """

    LOCK_CONFLICT = "LOCK_CONFLICT"

    @classmethod
    def acquire(
        cls,
        job_name: str,
        holder: str | None = None,
        ttl: int | None = None,
    ) -> ServiceResult[JobLock]:
        """
        Take the lease for ``job_name``.

        An expired lock is removed first, so a run that crashed without
        releasing does not block the job forever.

        Args:
            job_name: Scheduled job identifier
            holder: Lock owner identity (defaults to hostname-pid)
            ttl: Lease length in seconds (defaults to ESCROW_JOB_LOCK_TTL_SECONDS)

        Returns:
            ServiceResult with the JobLock, or failure LOCK_CONFLICT
        """
        holder = holder or default_holder()
        ttl = ttl or settings.ESCROW_JOB_LOCK_TTL_SECONDS
        now = timezone.now()

        reclaimed, _ = JobLock.objects.filter(job_name=job_name).expired(now).delete()
        if reclaimed:
            cls.get_logger().info(
                f"Reclaimed expired lock for {job_name}",
                extra={"job_name": job_name},
            )

        try:
            with transaction.atomic():
                lock = JobLock.objects.create(
                    job_name=job_name,
                    holder=holder,
                    acquired_at=now,
                    expires_at=now + timedelta(seconds=ttl),
                )
        except IntegrityError:
            current = JobLock.objects.filter(job_name=job_name).first()
            cls.get_logger().info(
                f"Lock for {job_name} is held, skipping",
                extra={
                    "job_name": job_name,
                    "holder": current.holder if current else None,
                },
            )
            return ServiceResult.failure(
                f"Job '{job_name}' is already running",
                error_code=cls.LOCK_CONFLICT,
            )

        cls.get_logger().debug(
            f"Acquired lock for {job_name}",
            extra={"job_name": job_name, "holder": holder, "lock_id": str(lock.id)},
        )
        return ServiceResult.success(lock)

    @classmethod
    def release(cls, lock_id, holder: str | None = None) -> bool:
        """
        Release a lock. When ``holder`` is given, only that holder's lock
        is deleted, so a run whose lease was reclaimed cannot drop the
        new owner's lock.
        """
        qs = JobLock.objects.filter(pk=lock_id)
        if holder is not None:
            qs = qs.filter(holder=holder)
        deleted, _ = qs.delete()
        return bool(deleted)

    @classmethod
    def list_active(cls) -> list[JobLock]:
        return list(JobLock.objects.active())

    @classmethod
    def force_release(cls, lock_id, admin=None) -> ServiceResult[dict]:
        """
        Admin escape hatch for a stuck lock.

        Returns the prior lock state so the caller can show what was removed.
        """
        lock = JobLock.objects.filter(pk=lock_id).first()
        if lock is None:
            return ServiceResult.failure("Job lock not found", error_code="NOT_FOUND")

        prior = {
            "id": str(lock.id),
            "job_name": lock.job_name,
            "holder": lock.holder,
            "acquired_at": lock.acquired_at.isoformat(),
            "expires_at": lock.expires_at.isoformat(),
            "was_expired": lock.is_expired,
        }
        lock.delete()

        cls.get_logger().warning(
            f"Job lock {lock.job_name} force-released by "
            f"{getattr(admin, 'username', None) or 'unknown'}",
            extra={
                **prior,
                "admin_id": getattr(admin, "pk", None),
            },
        )
        return ServiceResult.success(prior)

    @classmethod
    def update_booking_ids(cls, lock_id, booking_ids: Iterable) -> None:
        """Record the bookings the current run has claimed."""
        JobLock.objects.filter(pk=lock_id).update(
            booking_ids=[str(b) for b in booking_ids],
            updated_at=timezone.now(),
        )

    @classmethod
    def cleanup_expired(cls) -> int:
        deleted, _ = JobLock.objects.expired().delete()
        return deleted


# =============================================================================
# Distributed Locks
# =============================================================================


class DistributedLock:
    """
    Redis-based distributed lock with TTL.

    Features:
        - Automatic TTL prevents deadlocks from crashed processes
        - Token-based ownership prevents accidental release by other processes
        - Blocking and non-blocking acquisition modes
        - Context manager support

    Args:
        key: Lock identifier (will be prefixed with "lock:")
        ttl: Lock TTL in seconds (auto-releases after this time)
        blocking: If True, acquire() waits until lock is available
        timeout: Maximum wait time in seconds (only if blocking=True)
    """

    # Lua script for atomic check-and-delete (release)
    RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    # Lua script for atomic check-and-extend
    EXTEND_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("expire", KEYS[1], ARGV[2])
    else
        return 0
    end
    """

    def __init__(
        self,
        key: str,
        ttl: int = 30,
        blocking: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self.key = f"lock:{key}"
        self.ttl = ttl
        self.blocking = blocking
        self.timeout = timeout
        self._token: str | None = None
        self._redis: Redis | None = None

    def _get_redis(self) -> Redis:
        if self._redis is None:
            self._redis = get_redis_connection("default")
        return self._redis

    def acquire(self) -> bool:
        """
        Attempt to acquire the lock.

        Raises:
            LockAcquisitionError: If lock couldn't be acquired
        """
        token = str(uuid_module.uuid4())
        redis = self._get_redis()

        if self.blocking:
            end_time = time.time() + self.timeout
            while time.time() < end_time:
                if self._try_acquire(redis, token):
                    return True
                time.sleep(0.05)

            raise LockAcquisitionError(
                f"Failed to acquire lock '{self.key}' within {self.timeout}s",
                details={"key": self.key, "timeout": self.timeout},
            )

        if not self._try_acquire(redis, token):
            raise LockAcquisitionError(
                f"Lock '{self.key}' is already held",
                details={"key": self.key},
            )
        return True

    def _try_acquire(self, redis: Redis, token: str) -> bool:
        if redis.set(self.key, token, nx=True, ex=self.ttl):
            self._token = token
            return True
        return False

    def release(self) -> bool:
        """Release the lock if we hold it. Safe to call multiple times."""
        if self._token is None:
            return False

        redis = self._get_redis()
        result = redis.eval(self.RELEASE_SCRIPT, 1, self.key, self._token)
        self._token = None
        return bool(result)

    def extend(self, additional_ttl: int | None = None) -> bool:
        """Reset the lock TTL if we hold it (replaces the remaining time)."""
        if self._token is None:
            return False

        ttl = additional_ttl or self.ttl
        redis = self._get_redis()
        result = redis.eval(self.EXTEND_SCRIPT, 1, self.key, self._token, ttl)
        return bool(result)

    @property
    def is_held(self) -> bool:
        return self._token is not None

    def __enter__(self) -> DistributedLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> bool:
        self.release()
        return False


__all__ = [
    "DistributedLock",
    "JobLockManager",
    "default_holder",
]
