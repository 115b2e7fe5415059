"""
Factory Boy factories for bookings models.

Provides realistic test data generation for:
- User: Guests, realtors and staff (django.contrib.auth User)
- Listing: Realtor listing with fee configuration
- Booking: Guest stay at a listing

Usage:
    from bookings.tests.factories import BookingFactory, ListingFactory, UserFactory

    # Booking with a new guest and a new listing
    booking = BookingFactory()

    # Checked-in booking starting yesterday
    booking = BookingFactory(
        check_in=timezone.now() - timedelta(days=1),
        stay_status=StayStatus.CHECKED_IN,
    )
"""

from datetime import timedelta

import factory
from django.contrib.auth import get_user_model
from django.utils import timezone

from bookings.models import Booking, Listing
from bookings.states import BookingStatus, StayStatus

User = get_user_model()


class UserFactory(factory.django.DjangoModelFactory):
    """
    Factory for the User model.

    Uses create_user() so the password is hashed.

    Examples:
        guest = UserFactory()
        admin = UserFactory(is_staff=True)
        no_email = UserFactory(email="")
    """

    class Meta:
        model = User
        skip_postgeneration_save = True

    username = factory.Sequence(lambda n: f"user{n}")
    email = factory.LazyAttribute(lambda o: f"{o.username}@example.com")
    is_active = True
    is_staff = False

    @classmethod
    def _create(cls, model_class, *args, **kwargs):
        """Override create to use UserManager.create_user()."""
        password = kwargs.pop("password", "TestPass123!")
        return model_class.objects.create_user(
            username=kwargs.pop("username"), password=password, **kwargs
        )


class ListingFactory(factory.django.DjangoModelFactory):
    """
    Factory for Listing model.

    Defaults to NGN 30,000 per night with a cleaning fee, service fee and
    security deposit so every escrow bucket is funded.
    """

    class Meta:
        model = Listing

    title = factory.Sequence(lambda n: f"Lekki Apartment {n}")
    realtor = factory.SubFactory(UserFactory)
    subaccount_code = factory.Sequence(lambda n: f"acct_test{n:06d}")
    currency = "ngn"
    price_per_night_cents = 3_000_000
    cleaning_fee_cents = 500_000
    service_fee_cents = 300_000
    security_deposit_cents = 2_000_000


class BookingFactory(factory.django.DjangoModelFactory):
    """
    Factory for Booking model.

    Defaults to an ACTIVE three-night booking starting in ten days.

    Examples:
        booking = BookingFactory(status=BookingStatus.PENDING)
        booking = BookingFactory(listing=listing, guest=guest)
    """

    class Meta:
        model = Booking

    listing = factory.SubFactory(ListingFactory)
    guest = factory.SubFactory(UserFactory)
    check_in = factory.LazyFunction(lambda: timezone.now() + timedelta(days=10))
    check_out = factory.LazyAttribute(lambda o: o.check_in + timedelta(days=3))
    status = BookingStatus.ACTIVE
    stay_status = StayStatus.NOT_CHECKED_IN
