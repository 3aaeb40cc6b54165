"""Booking creation and the side effects that follow status changes."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import TYPE_CHECKING, Callable

from core.errors import BookingValidationError, DatesUnavailable, PromoCodeUnavailable
from core.retry import call_with_retry
from listings.services import PricingEngine
from payments_cancellation_policy import CancelActor
from promotions.services import evaluate_promo_code

from .availability import AvailabilityChecker
from .domain import BookingStateMachine, CancellationResult, initial_status
from .models import Booking

if TYPE_CHECKING:
    from core.store import BookingStore
    from notifications.dispatch import NotificationDispatcher

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookingRequest:
    listing_id: int
    guest_id: int
    check_in: date
    check_out: date
    guests: int
    promo_code: str = ""
    guest_message: str = ""


def queue_refund(booking_id: int) -> None:
    """Ask the payment provider to return a cancelled booking's refund."""
    from payments import tasks as payment_tasks

    try:
        payment_tasks.issue_refund.delay(booking_id)
    except Exception:
        logger.info(
            "payments: could not queue issue_refund for booking %s",
            booking_id,
            exc_info=True,
        )


class BookingService:
    """Wires availability, pricing and the state machine around one store."""

    def __init__(
        self,
        store: BookingStore | None = None,
        notifier: NotificationDispatcher | None = None,
        *,
        refund_requester: Callable[[int], None] | None = None,
    ):
        if store is None:
            from core.store import DjangoStore

            store = DjangoStore()
        self.store = store
        self.state_machine = BookingStateMachine(store, notifier)
        self.notifier = self.state_machine.notifier
        self.availability = AvailabilityChecker(store)
        self.pricing = PricingEngine(store)
        self.refund_requester = refund_requester or queue_refund

    def create(self, request: BookingRequest, *, now: datetime | None = None) -> Booking:
        """
        Price, check and insert a booking while holding the listing lock.

        Persistence errors are retried once before ServiceUnavailable.
        """
        booking = call_with_retry(self._create_locked, request, now=now)
        self.notifier.notify(f"booking_{booking.status}", booking.pk)
        return booking

    def _create_locked(self, request: BookingRequest, *, now: datetime | None = None) -> Booking:
        with self.store.lock_listing(request.listing_id) as listing:
            if not listing.is_active:
                raise DatesUnavailable("This listing is not accepting bookings.")
            if listing.host_id == request.guest_id:
                raise BookingValidationError("Hosts cannot book their own listing.")

            breakdown = self.pricing.quote(
                listing,
                request.check_in,
                request.check_out,
                request.guests,
                promo_code=request.promo_code,
                guest_id=request.guest_id,
                now=now,
            )
            ok, reason = self.availability.is_available(
                listing.pk, request.check_in, request.check_out
            )
            if not ok:
                raise DatesUnavailable(reason)

            booking = Booking(
                listing_id=listing.pk,
                guest_id=request.guest_id,
                host_id=listing.host_id,
                check_in=request.check_in,
                check_out=request.check_out,
                nights=breakdown.nights,
                guests=request.guests,
                currency=breakdown.currency,
                base_price_per_night=breakdown.base_price_per_night,
                nightly_total=breakdown.nightly_total,
                cleaning_fee=breakdown.cleaning_fee,
                service_fee=breakdown.service_fee,
                tax_amount=breakdown.tax_amount,
                discount_amount=breakdown.discount_amount,
                total_amount=breakdown.total_amount,
                promo_code=breakdown.promo_code,
                cancellation_policy=listing.cancellation_policy,
                status=initial_status(listing),
                payment_status=Booking.PaymentStatus.PENDING,
                guest_message=request.guest_message,
            )
            self.store.add_booking(booking)
            if breakdown.promo_code:
                self._redeem_promo_code(booking, now=now)

        logger.info(
            "bookings: created %s booking",
            booking.status,
            extra={
                "booking_id": booking.pk,
                "listing_id": booking.listing_id,
                "total_amount": str(booking.total_amount),
            },
        )
        return booking

    def _redeem_promo_code(self, booking: Booking, *, now: datetime | None = None) -> None:
        """Re-check the code under its row lock; bookings on other listings may have used it up."""
        with self.store.lock_promo_code(booking.promo_code) as promo:
            usage = 0
            if promo is not None:
                usage = self.store.promo_usage_count(promo.pk, booking.guest_id)
            check = evaluate_promo_code(
                promo,
                listing_id=booking.listing_id,
                currency=booking.currency,
                base_amount=booking.nightly_total + booking.cleaning_fee,
                guest_usage_count=usage,
                now=now,
            )
            if not check.is_valid:
                logger.info(
                    "bookings: promo code %s rejected at redemption",
                    booking.promo_code,
                    extra={"listing_id": booking.listing_id, "guest_id": booking.guest_id},
                )
                raise PromoCodeUnavailable(check.message)
            self.store.redeem_promo_code(promo, booking)

    def cancel(
        self,
        booking_id: int,
        *,
        actor: CancelActor,
        reason: str = "",
        now: datetime | None = None,
    ) -> CancellationResult:
        result = call_with_retry(
            self.state_machine.cancel, booking_id, actor=actor, reason=reason, now=now
        )
        if result.booking.refund_status == Booking.RefundStatus.REQUESTED:
            self.refund_requester(result.booking.pk)
        return result

    def accept(self, booking_id: int, *, now: datetime | None = None) -> Booking:
        return call_with_retry(self.state_machine.accept, booking_id, now=now)

    def decline(self, booking_id: int, *, now: datetime | None = None) -> Booking:
        return call_with_retry(self.state_machine.decline, booking_id, now=now)

    def complete(self, booking_id: int, *, now: datetime | None = None) -> Booking:
        return call_with_retry(self.state_machine.complete, booking_id, now=now)
