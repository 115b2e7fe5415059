"""
Test configuration and fixtures for notification tests.

This module provides:
- Recipient fixtures (with and without an email address)
- Notification fixtures (pending, read, already delivered)

Usage:
    def test_example(recipient, pending_notification):
        assert pending_notification.recipient == recipient
"""

import pytest

from bookings.tests.factories import UserFactory
from notifications.models import DeliveryStatus
from notifications.tests.factories import NotificationFactory


# =============================================================================
# User Fixtures
# =============================================================================


@pytest.fixture
def recipient(db):
    """User with an email address."""
    return UserFactory(email="guest@example.com")


@pytest.fixture
def recipient_without_email(db):
    return UserFactory(email="")


@pytest.fixture
def other_user(db):
    return UserFactory()


# =============================================================================
# Notification Fixtures
# =============================================================================


@pytest.fixture
def pending_notification(recipient):
    return NotificationFactory(recipient=recipient)


@pytest.fixture
def read_notification(recipient):
    return NotificationFactory(recipient=recipient, is_read=True)


@pytest.fixture
def sent_notification(recipient):
    return NotificationFactory(recipient=recipient, delivery_status=DeliveryStatus.SENT)
