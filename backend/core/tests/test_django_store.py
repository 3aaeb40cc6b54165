from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest
from django.db import IntegrityError, connection, transaction

from bookings.models import Booking
from bookings.services import BookingRequest, BookingService
from core.errors import (
    BookingNotFound,
    DatesUnavailable,
    ListingNotFound,
    PaymentNotFound,
    PromoCodeUnavailable,
)
from core.store import DjangoStore
from core.tests.fakes import RecordingNotifier
from listings.models import BlockedDate
from payments.models import Payment
from promotions.models import PromoCode, PromoCodeUsage

pytestmark = pytest.mark.django_db


@pytest.fixture
def django_store():
    return DjangoStore()


def test_missing_rows_raise_not_found(django_store):
    with pytest.raises(ListingNotFound):
        django_store.get_listing(999)
    with pytest.raises(ListingNotFound):
        with django_store.lock_listing(999):
            pass
    with pytest.raises(BookingNotFound):
        with django_store.lock_booking(999):
            pass
    with pytest.raises(PaymentNotFound):
        with django_store.lock_payment(999):
            pass


def test_blocked_dates_and_active_bookings(django_store, listing, booking_factory, future_dates):
    check_in, _ = future_dates()
    BlockedDate.objects.create(listing=listing, date=check_in - timedelta(days=2))
    kept = booking_factory()
    later_in, later_out = future_dates(days=50)
    booking_factory(status=Booking.Status.DECLINED, check_in=later_in, check_out=later_out)

    assert django_store.blocked_dates(listing.pk) == {check_in - timedelta(days=2)}
    assert [booking.pk for booking in django_store.active_bookings(listing.pk)] == [kept.pk]


def test_save_booking_writes_only_named_fields(django_store, booking_factory):
    booking = booking_factory()
    with django_store.lock_booking(booking.pk) as locked:
        locked.status = Booking.Status.ACCEPTED
        locked.guest_message = "not saved"
        django_store.save_booking(locked, ["status"])

    booking.refresh_from_db()
    assert booking.status == Booking.Status.ACCEPTED
    assert booking.guest_message == ""


def test_payment_lookups(django_store, booking_factory):
    booking = booking_factory()
    first = Payment.objects.create(
        booking=booking, provider="paypal", amount=Decimal("391"), currency="HTG"
    )
    second = Payment.objects.create(
        booking=booking,
        provider="paypal",
        provider_reference="ORDER-1",
        amount=Decimal("391"),
        currency="HTG",
        status=Payment.Status.COMPLETED,
    )

    assert django_store.find_payment("paypal", "ORDER-1").pk == second.pk
    assert django_store.find_payment("paypal", "") is None
    assert django_store.find_latest_payment(booking.pk, "paypal").pk == second.pk
    assert django_store.has_completed_payment(booking.pk)
    assert not django_store.has_completed_payment(booking.pk, exclude_payment_id=second.pk)
    assert first.pk != second.pk


def test_processed_event_ledger_is_unique(django_store, booking_factory):
    booking = booking_factory()
    payment = Payment.objects.create(
        booking=booking, provider="stripe", amount=Decimal("391"), currency="HTG"
    )
    django_store.record_processed_event("stripe", "evt_1", payment_id=payment.pk, outcome="succeeded")

    assert django_store.is_event_processed("stripe", "evt_1", "succeeded")
    assert not django_store.is_event_processed("stripe", "evt_1", "refunded")
    with pytest.raises(IntegrityError), transaction.atomic():
        django_store.record_processed_event(
            "stripe", "evt_1", payment_id=payment.pk, outcome="succeeded"
        )


def test_only_one_completed_payment_per_booking(booking_factory):
    booking = booking_factory()
    Payment.objects.create(
        booking=booking,
        provider="stripe",
        amount=Decimal("391"),
        status=Payment.Status.COMPLETED,
    )

    with pytest.raises(IntegrityError), transaction.atomic():
        Payment.objects.create(
            booking=booking,
            provider="moncash",
            amount=Decimal("391"),
            status=Payment.Status.COMPLETED,
        )


def test_booking_service_redeems_promo_code(listing, guest_user, future_dates):
    promo = PromoCode.objects.create(
        code="KREYOL10",
        discount_type=PromoCode.DiscountType.PERCENTAGE,
        discount_value=Decimal("10"),
    )
    check_in, check_out = future_dates()
    service = BookingService(DjangoStore(), RecordingNotifier())

    booking = service.create(
        BookingRequest(
            listing_id=listing.pk,
            guest_id=guest_user.pk,
            check_in=check_in,
            check_out=check_out,
            guests=2,
            promo_code="kreyol10",
        )
    )

    booking.refresh_from_db()
    promo.refresh_from_db()
    assert booking.total_amount == Decimal("358")
    assert booking.promo_code == "KREYOL10"
    assert promo.usage_count == 1
    usage = PromoCodeUsage.objects.get()
    assert (usage.user_id, usage.booking_id, usage.discount_applied) == (
        guest_user.pk,
        booking.pk,
        Decimal("33"),
    )


def test_service_rejects_overlap_through_store(listing, guest_user, booking_factory, future_dates):
    existing = booking_factory()
    service = BookingService(DjangoStore(), RecordingNotifier())

    with pytest.raises(DatesUnavailable):
        service.create(
            BookingRequest(
                listing_id=listing.pk,
                guest_id=guest_user.pk,
                check_in=existing.check_in + timedelta(days=2),
                check_out=existing.check_out + timedelta(days=2),
                guests=1,
            )
        )
    assert Booking.objects.count() == 1


@pytest.mark.skipif(
    connection.vendor != "postgresql", reason="exclusion constraint is PostgreSQL only"
)
def test_database_rejects_overlapping_active_bookings(django_store, booking_factory, future_dates):
    existing = booking_factory()
    clash = Booking(
        listing_id=existing.listing_id,
        guest_id=existing.guest_id,
        host_id=existing.host_id,
        check_in=existing.check_in + timedelta(days=1),
        check_out=existing.check_out + timedelta(days=1),
        nights=3,
        total_amount=Decimal("391"),
    )

    with pytest.raises(DatesUnavailable):
        django_store.add_booking(clash)


def test_other_constraint_violations_are_not_reported_as_overlap(django_store, booking_factory):
    existing = booking_factory()
    broken = Booking(
        listing_id=existing.listing_id,
        guest_id=existing.guest_id,
        host_id=existing.host_id,
        check_in=existing.check_out + timedelta(days=10),
        check_out=existing.check_out + timedelta(days=10),
        nights=0,
        total_amount=Decimal("391"),
    )

    with pytest.raises(IntegrityError):
        django_store.add_booking(broken)
    assert Booking.objects.count() == 1


def test_lock_promo_code(django_store):
    promo = PromoCode.objects.create(
        code="LAKAY",
        discount_type=PromoCode.DiscountType.FIXED_AMOUNT,
        discount_value=Decimal("10"),
    )

    with transaction.atomic():
        with django_store.lock_promo_code("LAKAY") as locked:
            assert locked.pk == promo.pk
        with django_store.lock_promo_code("NOPE") as missing:
            assert missing is None


class StalePromoReadStore(DjangoStore):
    def get_promo_code(self, code):
        promo = super().get_promo_code(code)
        if promo is not None:
            promo.usage_count = 0
        return promo


def test_used_up_promo_rolls_back_the_booking(listing, guest_user, future_dates):
    PromoCode.objects.create(
        code="KREYOL10",
        discount_type=PromoCode.DiscountType.PERCENTAGE,
        discount_value=Decimal("10"),
        usage_limit=1,
        usage_count=1,
    )
    check_in, check_out = future_dates()
    service = BookingService(StalePromoReadStore(), RecordingNotifier())

    with pytest.raises(PromoCodeUnavailable):
        service.create(
            BookingRequest(
                listing_id=listing.pk,
                guest_id=guest_user.pk,
                check_in=check_in,
                check_out=check_out,
                guests=2,
                promo_code="kreyol10",
            )
        )

    assert Booking.objects.count() == 0
    assert PromoCodeUsage.objects.count() == 0
    assert PromoCode.objects.get().usage_count == 1
