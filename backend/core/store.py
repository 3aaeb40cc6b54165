"""Persistence port used by the booking lifecycle components.

Availability checks, booking transitions and payment reconciliation receive a
``BookingStore`` explicitly. ``DjangoStore`` is the production implementation;
tests substitute an in-memory one.
"""

from __future__ import annotations

import abc
import logging
from contextlib import contextmanager
from datetime import date
from typing import ContextManager, Iterable, Iterator

from django.db import IntegrityError, transaction
from django.db.models import F

from bookings.models import Booking
from core.errors import BookingNotFound, DatesUnavailable, ListingNotFound, PaymentNotFound
from listings.models import BlockedDate, Listing
from payments.models import Payment, ProcessedPaymentEvent
from promotions.models import PromoCode, PromoCodeUsage

logger = logging.getLogger(__name__)

# PostgreSQL exclusion constraint added by bookings migration 0002.
OVERLAP_CONSTRAINT = "bookings_no_overlapping_active"


def _violated_constraint(exc: IntegrityError) -> str:
    diag = getattr(exc.__cause__, "diag", None)
    return getattr(diag, "constraint_name", None) or ""


class BookingStore(abc.ABC):
    """
    Storage operations the booking core relies on.

    The ``lock_*`` methods are context managers: the yielded row stays locked
    until the block exits, and everything written inside the block commits
    together or not at all.
    """

    # listings

    @abc.abstractmethod
    def get_listing(self, listing_id: int) -> Listing:
        """Return the listing or raise ListingNotFound."""

    @abc.abstractmethod
    def lock_listing(self, listing_id: int) -> ContextManager[Listing]:
        """Serialize booking creation for one listing."""

    @abc.abstractmethod
    def blocked_dates(self, listing_id: int) -> set[date]:
        """Return every night the host blocked for the listing."""

    # bookings

    @abc.abstractmethod
    def active_bookings(self, listing_id: int) -> list[Booking]:
        """Return bookings of the listing whose status holds the calendar."""

    @abc.abstractmethod
    def add_booking(self, booking: Booking) -> Booking:
        """Insert a new booking; raise DatesUnavailable on an overlap constraint."""

    @abc.abstractmethod
    def get_booking(self, booking_id: int) -> Booking:
        """Return the booking or raise BookingNotFound."""

    @abc.abstractmethod
    def lock_booking(self, booking_id: int) -> ContextManager[Booking]:
        """Hold the booking row for a read-modify-write."""

    @abc.abstractmethod
    def save_booking(self, booking: Booking, fields: Iterable[str]) -> None:
        """Persist the given fields of an existing booking."""

    # promo codes

    @abc.abstractmethod
    def get_promo_code(self, code: str) -> PromoCode | None:
        """Return the promo code with this (normalized) code, if any."""

    @abc.abstractmethod
    def lock_promo_code(self, code: str) -> ContextManager[PromoCode | None]:
        """Lock the promo code row (``None`` if the code does not exist)."""

    @abc.abstractmethod
    def promo_usage_count(self, promo_id: int, user_id: int) -> int:
        """Return how many times the user has redeemed the promo code."""

    @abc.abstractmethod
    def redeem_promo_code(self, promo: PromoCode, booking: Booking) -> None:
        """Record a redemption for ``booking`` and bump the usage counter."""

    # payments

    @abc.abstractmethod
    def find_payment(self, provider: str, reference: str) -> Payment | None:
        """Return the payment carrying this provider reference, if any."""

    @abc.abstractmethod
    def find_latest_payment(self, booking_id: int, provider: str) -> Payment | None:
        """Return the most recent payment for the booking through ``provider``."""

    @abc.abstractmethod
    def lock_payment(self, payment_id: int) -> ContextManager[Payment]:
        """Hold the payment row while a provider event is applied."""

    @abc.abstractmethod
    def save_payment(self, payment: Payment, fields: Iterable[str]) -> None:
        """Persist the given fields of an existing payment."""

    @abc.abstractmethod
    def has_completed_payment(self, booking_id: int, *, exclude_payment_id: int | None = None) -> bool:
        """Return True if another payment for the booking is already completed."""

    @abc.abstractmethod
    def is_event_processed(self, provider: str, transaction_id: str, outcome: str) -> bool:
        """Return True if this provider transaction and outcome were applied before."""

    @abc.abstractmethod
    def record_processed_event(
        self,
        provider: str,
        transaction_id: str,
        *,
        payment_id: int,
        outcome: str,
    ) -> None:
        """Remember a provider transaction as applied."""


class DjangoStore(BookingStore):
    """ORM-backed store; row locks are ``SELECT ... FOR UPDATE`` inside ``atomic``."""

    def get_listing(self, listing_id: int) -> Listing:
        try:
            return Listing.objects.get(pk=listing_id)
        except Listing.DoesNotExist as exc:
            raise ListingNotFound() from exc

    @contextmanager
    def lock_listing(self, listing_id: int) -> Iterator[Listing]:
        with transaction.atomic():
            try:
                listing = Listing.objects.select_for_update().get(pk=listing_id)
            except Listing.DoesNotExist as exc:
                raise ListingNotFound() from exc
            yield listing

    def blocked_dates(self, listing_id: int) -> set[date]:
        return set(
            BlockedDate.objects.filter(listing_id=listing_id).values_list("date", flat=True)
        )

    def active_bookings(self, listing_id: int) -> list[Booking]:
        return list(
            Booking.objects.filter(
                listing_id=listing_id,
                status__in=Booking.ACTIVE_STATUSES,
            ).order_by("check_in")
        )

    def add_booking(self, booking: Booking) -> Booking:
        try:
            with transaction.atomic():
                booking.save(force_insert=True)
        except IntegrityError as exc:
            if _violated_constraint(exc) != OVERLAP_CONSTRAINT:
                raise
            logger.info(
                "bookings: insert rejected by database constraint",
                extra={"listing_id": booking.listing_id, "error": str(exc)},
            )
            raise DatesUnavailable("These dates are already booked.") from exc
        return booking

    def get_booking(self, booking_id: int) -> Booking:
        try:
            return Booking.objects.get(pk=booking_id)
        except Booking.DoesNotExist as exc:
            raise BookingNotFound() from exc

    @contextmanager
    def lock_booking(self, booking_id: int) -> Iterator[Booking]:
        with transaction.atomic():
            try:
                booking = Booking.objects.select_for_update().get(pk=booking_id)
            except Booking.DoesNotExist as exc:
                raise BookingNotFound() from exc
            yield booking

    def save_booking(self, booking: Booking, fields: Iterable[str]) -> None:
        booking.save(update_fields=[*fields, "updated_at"])

    def get_promo_code(self, code: str) -> PromoCode | None:
        return PromoCode.objects.filter(code=code).first()

    @contextmanager
    def lock_promo_code(self, code: str) -> Iterator[PromoCode | None]:
        with transaction.atomic():
            yield PromoCode.objects.select_for_update().filter(code=code).first()

    def promo_usage_count(self, promo_id: int, user_id: int) -> int:
        return PromoCodeUsage.objects.filter(promo_code_id=promo_id, user_id=user_id).count()

    def redeem_promo_code(self, promo: PromoCode, booking: Booking) -> None:
        PromoCodeUsage.objects.create(
            promo_code=promo,
            user_id=booking.guest_id,
            booking=booking,
            discount_applied=booking.discount_amount,
        )
        PromoCode.objects.filter(pk=promo.pk).update(usage_count=F("usage_count") + 1)

    def find_payment(self, provider: str, reference: str) -> Payment | None:
        if not reference:
            return None
        return Payment.objects.filter(provider=provider, provider_reference=reference).first()

    def find_latest_payment(self, booking_id: int, provider: str) -> Payment | None:
        return (
            Payment.objects.filter(booking_id=booking_id, provider=provider)
            .order_by("-created_at", "-pk")
            .first()
        )

    @contextmanager
    def lock_payment(self, payment_id: int) -> Iterator[Payment]:
        with transaction.atomic():
            try:
                payment = Payment.objects.select_for_update().get(pk=payment_id)
            except Payment.DoesNotExist as exc:
                raise PaymentNotFound() from exc
            yield payment

    def save_payment(self, payment: Payment, fields: Iterable[str]) -> None:
        payment.save(update_fields=[*fields, "updated_at"])

    def has_completed_payment(self, booking_id: int, *, exclude_payment_id: int | None = None) -> bool:
        qs = Payment.objects.filter(booking_id=booking_id, status=Payment.Status.COMPLETED)
        if exclude_payment_id is not None:
            qs = qs.exclude(pk=exclude_payment_id)
        return qs.exists()

    def is_event_processed(self, provider: str, transaction_id: str, outcome: str) -> bool:
        return ProcessedPaymentEvent.objects.filter(
            provider=provider,
            provider_transaction_id=transaction_id,
            outcome=outcome,
        ).exists()

    def record_processed_event(
        self,
        provider: str,
        transaction_id: str,
        *,
        payment_id: int,
        outcome: str,
    ) -> None:
        ProcessedPaymentEvent.objects.create(
            provider=provider,
            provider_transaction_id=transaction_id,
            payment_id=payment_id,
            outcome=outcome,
        )
