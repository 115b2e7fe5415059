"""
Pytest fixtures for escrow tests.

This module provides bookings and payments at each point of the settlement
timeline, a mocked Stripe adapter injected into every escrow service, and a
mocked Redis connection for distributed locks.

Amounts (default listing, three nights):
    room fee         9_000_000
    cleaning fee       500_000
    service fee        300_000
    security deposit 2_000_000

Usage:
    def test_release(checked_in_booking, mock_stripe):
        result = SettlementService.release_room_fee(checked_in_booking)
        assert result.success
"""

from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest
from django.utils import timezone
from rest_framework.test import APIClient

from bookings.states import BookingStatus, StayStatus
from bookings.tests.factories import BookingFactory, ListingFactory, UserFactory
from escrow.adapters.stripe_adapter import RefundResult, TransferResult, VerificationResult
from escrow.services.base import EscrowService
from escrow.tests.factories import PaymentFactory

ROOM_FEE = 9_000_000
CLEANING_FEE = 500_000
SERVICE_FEE = 300_000
DEPOSIT = 2_000_000


# =============================================================================
# Users
# =============================================================================


@pytest.fixture
def guest(db):
    return UserFactory()


@pytest.fixture
def realtor(db):
    return UserFactory()


@pytest.fixture
def admin_user(db):
    return UserFactory(is_staff=True)


@pytest.fixture
def outsider(db):
    """A user with no relation to the booking."""
    return UserFactory()


# =============================================================================
# Bookings and Payments
# =============================================================================


@pytest.fixture
def listing(db, realtor):
    return ListingFactory(realtor=realtor)


@pytest.fixture
def booking(db, listing, guest):
    """ACTIVE booking checking in ten days from now."""
    return BookingFactory(listing=listing, guest=guest)


@pytest.fixture
def held_payment(db, booking):
    """Guest's funds held in escrow for ``booking``."""
    return PaymentFactory(booking=booking)


@pytest.fixture
def checked_in_booking(db, listing, guest):
    """
    Guest checked in two hours ago; the room-fee holding window has passed.
    """
    check_in = timezone.now() - timedelta(hours=2)
    booking = BookingFactory(
        listing=listing,
        guest=guest,
        check_in=check_in,
        check_out=check_in + timedelta(days=3),
        stay_status=StayStatus.CHECKED_IN,
    )
    PaymentFactory(booking=booking)
    return booking


@pytest.fixture
def checked_out_booking(db, listing, guest):
    """
    Guest checked out three hours ago with the room fee still held.
    """
    check_out = timezone.now() - timedelta(hours=3)
    booking = BookingFactory(
        listing=listing,
        guest=guest,
        check_in=check_out - timedelta(days=3),
        check_out=check_out,
        stay_status=StayStatus.CHECKED_OUT,
    )
    PaymentFactory(booking=booking)
    return booking


@pytest.fixture
def pending_booking(db, listing, guest):
    return BookingFactory(listing=listing, guest=guest, status=BookingStatus.PENDING)


# =============================================================================
# Gateway and Redis mocks
# =============================================================================


@pytest.fixture
def mock_stripe():
    """
    Mock Stripe adapter injected into every escrow service.

    transfer() returns tr_test_transfer, refund() returns a succeeded
    re_test_refund, verify() reports the charge as succeeded.
    """
    adapter = MagicMock()
    adapter.transfer.side_effect = lambda destination_account, amount_cents, reference, **kw: (
        TransferResult(
            id="tr_test_transfer",
            amount_cents=amount_cents,
            currency=kw.get("currency", "ngn"),
            destination_account=destination_account,
            reference=reference,
        )
    )
    adapter.refund.side_effect = lambda payment_reference, amount_cents, reference, **kw: (
        RefundResult(
            id="re_test_refund",
            amount_cents=amount_cents,
            currency="ngn",
            status="succeeded",
            payment_intent_id=payment_reference,
            reference=reference,
        )
    )
    adapter.verify.return_value = VerificationResult(
        id="pi_test",
        status="succeeded",
        amount_cents=ROOM_FEE + CLEANING_FEE + SERVICE_FEE + DEPOSIT,
        currency="ngn",
    )

    EscrowService.set_stripe_adapter(adapter)
    yield adapter
    EscrowService.set_stripe_adapter(None)


@pytest.fixture
def mock_redis_lock():
    """Mock Redis for distributed locking."""
    mock_redis = MagicMock()
    mock_redis.set.return_value = True
    mock_redis.get.return_value = None
    mock_redis.delete.return_value = 1
    mock_redis.eval.return_value = 1

    with patch("escrow.locks.get_redis_connection", return_value=mock_redis):
        yield mock_redis


# =============================================================================
# API clients
# =============================================================================


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def guest_client(guest):
    client = APIClient()
    client.force_authenticate(user=guest)
    return client


@pytest.fixture
def realtor_client(realtor):
    client = APIClient()
    client.force_authenticate(user=realtor)
    return client


@pytest.fixture
def admin_client(admin_user):
    client = APIClient()
    client.force_authenticate(user=admin_user)
    return client
