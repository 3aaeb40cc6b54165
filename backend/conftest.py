"""Shared pytest configuration and fixtures."""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from django.utils import timezone
from rest_framework.test import APIClient

from bookings.models import Booking
from core.tests.fakes import InMemoryStore, RecordingNotifier
from listings.models import Listing

User = get_user_model()


@pytest.fixture
def api_client():
    """DRF API client for request/response helpers."""
    return APIClient()


@pytest.fixture
def host_user(db):
    return User.objects.create_user(
        username="host",
        password="testpass",
        email="host@example.com",
        first_name="Marie",
        last_name="Host",
    )


@pytest.fixture
def guest_user(db):
    return User.objects.create_user(
        username="guest",
        password="testpass",
        email="guest@example.com",
        first_name="Jean",
        last_name="Guest",
    )


@pytest.fixture
def other_user(db):
    return User.objects.create_user(username="other", password="testpass", email="other@example.com")


@pytest.fixture
def listing(host_user):
    return Listing.objects.create(
        host=host_user,
        title="Kay Lakay Jacmel",
        base_price_per_night=Decimal("100"),
        cleaning_fee=Decimal("25"),
        currency="HTG",
        min_stay=1,
        max_stay=14,
        max_guests=4,
        cancellation_policy=Listing.CancellationPolicy.MODERATE,
    )


@pytest.fixture
def future_dates():
    """Return a helper giving ``(check_in, check_out)`` starting ``days`` from today."""

    def _dates(days: int = 30, nights: int = 3) -> tuple[date, date]:
        check_in = timezone.localdate() + timedelta(days=days)
        return check_in, check_in + timedelta(days=nights)

    return _dates


@pytest.fixture
def booking_factory(listing, guest_user, future_dates):
    """Insert bookings directly, bypassing the booking workflow."""

    def _create(**overrides) -> Booking:
        check_in, check_out = future_dates()
        values = {
            "listing": listing,
            "guest": guest_user,
            "host": listing.host,
            "check_in": check_in,
            "check_out": check_out,
            "nights": (check_out - check_in).days,
            "guests": 2,
            "currency": "HTG",
            "base_price_per_night": Decimal("100"),
            "nightly_total": Decimal("300"),
            "cleaning_fee": Decimal("25"),
            "service_fee": Decimal("33"),
            "tax_amount": Decimal("33"),
            "total_amount": Decimal("391"),
            "cancellation_policy": listing.cancellation_policy,
            "status": Booking.Status.PENDING,
        }
        values.update(overrides)
        return Booking.objects.create(**values)

    return _create


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def memory_listing(store):
    """An HTG listing held by the in-memory store; host id 10."""
    listing = Listing(
        host_id=10,
        title="Villa Labadee",
        base_price_per_night=Decimal("100"),
        cleaning_fee=Decimal("25"),
        currency="HTG",
        min_stay=2,
        max_stay=14,
        max_guests=4,
        cancellation_policy=Listing.CancellationPolicy.MODERATE,
        instant_book=False,
        is_active=True,
    )
    return store.add_listing(listing)
