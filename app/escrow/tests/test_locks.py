"""
Tests for settlement concurrency control.

Test Classes:
    TestJobLockManager: Database leases for scheduled jobs
    TestDistributedLock: Redis locks around a single booking's payout
"""

from datetime import timedelta

import pytest
from django.utils import timezone

from escrow.exceptions import LockAcquisitionError
from escrow.locks import DistributedLock, JobLockManager, default_holder
from escrow.models import JobLock
from escrow.tests.factories import JobLockFactory


class TestJobLockManager:
    """Tests for JobLockManager leases."""

    def test_acquire(self, db, settings):
        settings.ESCROW_JOB_LOCK_TTL_SECONDS = 120

        result = JobLockManager.acquire("room_fee_release", holder="worker-a")

        assert result.success
        lock = result.data
        assert lock.job_name == "room_fee_release"
        assert lock.holder == "worker-a"
        assert lock.expires_at - lock.acquired_at == timedelta(seconds=120)

    def test_default_holder(self, db):
        result = JobLockManager.acquire("room_fee_release")

        assert result.data.holder == default_holder()

    def test_conflict_while_held(self, db):
        JobLockManager.acquire("room_fee_release", holder="worker-a")

        result = JobLockManager.acquire("room_fee_release", holder="worker-b")

        assert not result.success
        assert result.error_code == JobLockManager.LOCK_CONFLICT
        assert JobLock.objects.get().holder == "worker-a"

    def test_other_jobs_not_blocked(self, db):
        JobLockManager.acquire("room_fee_release")

        assert JobLockManager.acquire("deposit_return").success

    def test_expired_lock_reclaimed(self, db):
        JobLockFactory(
            job_name="room_fee_release",
            holder="crashed-worker",
            acquired_at=timezone.now() - timedelta(minutes=10),
        )

        result = JobLockManager.acquire("room_fee_release", holder="worker-b")

        assert result.success
        assert JobLock.objects.get().holder == "worker-b"

    def test_release_by_holder(self, db):
        lock = JobLockManager.acquire("room_fee_release", holder="worker-a").data

        assert JobLockManager.release(lock.id, "worker-a") is True
        assert not JobLock.objects.exists()

    def test_release_ignores_other_holder(self, db):
        lock = JobLockManager.acquire("room_fee_release", holder="worker-a").data

        assert JobLockManager.release(lock.id, "worker-b") is False
        assert JobLock.objects.exists()

    def test_list_active_skips_expired(self, db):
        active = JobLockFactory()
        JobLockFactory(expires_at=timezone.now() - timedelta(seconds=1))

        assert JobLockManager.list_active() == [active]

    def test_force_release_returns_prior_state(self, db, admin_user):
        lock = JobLockFactory(job_name="dispute_sla", holder="worker-a")

        result = JobLockManager.force_release(lock.id, admin=admin_user)

        assert result.success
        assert result.data["job_name"] == "dispute_sla"
        assert result.data["holder"] == "worker-a"
        assert result.data["was_expired"] is False
        assert not JobLock.objects.exists()

    def test_force_release_unknown(self, db):
        result = JobLockManager.force_release("00000000-0000-0000-0000-000000000000")

        assert result.error_code == "NOT_FOUND"

    def test_update_booking_ids(self, db, booking):
        lock = JobLockFactory()

        JobLockManager.update_booking_ids(lock.id, [booking.id])

        lock.refresh_from_db()
        assert lock.booking_ids == [str(booking.id)]

    def test_cleanup_expired(self, db):
        JobLockFactory(expires_at=timezone.now() - timedelta(seconds=1))
        JobLockFactory(expires_at=timezone.now() - timedelta(hours=1))
        JobLockFactory()

        assert JobLockManager.cleanup_expired() == 2
        assert JobLock.objects.count() == 1


class TestDistributedLock:
    """Tests for DistributedLock."""

    def test_acquire(self, mock_redis_lock):
        lock = DistributedLock("payout:abc", ttl=60, blocking=False)

        assert lock.acquire() is True
        assert lock.is_held
        args, kwargs = mock_redis_lock.set.call_args
        assert args[0] == "lock:payout:abc"
        assert kwargs == {"nx": True, "ex": 60}

    def test_non_blocking_raises_when_held(self, mock_redis_lock):
        mock_redis_lock.set.return_value = False
        lock = DistributedLock("payout:abc", blocking=False)

        with pytest.raises(LockAcquisitionError) as exc_info:
            lock.acquire()

        assert exc_info.value.details["key"] == "lock:payout:abc"
        assert not lock.is_held

    def test_blocking_retries_until_free(self, mock_redis_lock):
        mock_redis_lock.set.side_effect = [False, False, True]

        lock = DistributedLock("payout:abc", blocking=True, timeout=1.0)

        assert lock.acquire() is True
        assert mock_redis_lock.set.call_count == 3

    def test_blocking_times_out(self, mock_redis_lock):
        mock_redis_lock.set.return_value = False
        lock = DistributedLock("payout:abc", blocking=True, timeout=0.1)

        with pytest.raises(LockAcquisitionError):
            lock.acquire()

    def test_release_uses_owner_token(self, mock_redis_lock):
        lock = DistributedLock("payout:abc", blocking=False)
        lock.acquire()
        token = lock._token

        assert lock.release() is True
        args = mock_redis_lock.eval.call_args.args
        assert args[1:] == (1, "lock:payout:abc", token)
        assert not lock.is_held

    def test_release_without_acquire(self, mock_redis_lock):
        assert DistributedLock("payout:abc").release() is False
        mock_redis_lock.eval.assert_not_called()

    def test_extend(self, mock_redis_lock):
        lock = DistributedLock("payout:abc", ttl=30, blocking=False)
        lock.acquire()

        assert lock.extend(90) is True
        assert mock_redis_lock.eval.call_args.args[-1] == 90

    def test_context_manager_releases_on_error(self, mock_redis_lock):
        with pytest.raises(RuntimeError):
            with DistributedLock("payout:abc", blocking=False) as lock:
                assert lock.is_held
                raise RuntimeError("boom")

        mock_redis_lock.eval.assert_called_once()
        assert not lock.is_held
