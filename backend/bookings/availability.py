"""Calendar availability for listings."""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import TYPE_CHECKING, Iterator

if TYPE_CHECKING:
    from core.store import BookingStore

logger = logging.getLogger(__name__)

REASON_INVALID_RANGE = "Check-out must be after check-in."
REASON_BLOCKED = "Some of these dates are blocked by the host."
REASON_BOOKED = "These dates are already booked."


def ranges_overlap(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    """Half-open [a_start, a_end) and [b_start, b_end) share at least one night."""
    return a_start < b_end and b_start < a_end


def nights_between(start: date, end: date) -> Iterator[date]:
    """Yield each night of [start, end)."""
    current = start
    while current < end:
        yield current
        current += timedelta(days=1)


class AvailabilityChecker:
    """Read-only checks against a listing's blocked dates and active bookings."""

    def __init__(self, store: BookingStore | None = None):
        if store is None:
            from core.store import DjangoStore

            store = DjangoStore()
        self.store = store

    def is_available(
        self,
        listing_id: int,
        check_in: date,
        check_out: date,
        *,
        exclude_booking_id: int | None = None,
    ) -> tuple[bool, str | None]:
        """Return ``(True, None)`` or ``(False, reason)``."""
        if not check_in or not check_out or check_out <= check_in:
            return False, REASON_INVALID_RANGE

        listing = self.store.get_listing(listing_id)
        nights = (check_out - check_in).days
        if nights < listing.min_stay:
            return False, f"Minimum stay is {listing.min_stay} night(s)."
        if listing.max_stay is not None and nights > listing.max_stay:
            return False, f"Maximum stay is {listing.max_stay} night(s)."

        blocked = self.store.blocked_dates(listing_id)
        if blocked and any(night in blocked for night in nights_between(check_in, check_out)):
            return False, REASON_BLOCKED

        for booking in self.conflicting_bookings(
            listing_id, check_in, check_out, exclude_booking_id=exclude_booking_id
        ):
            logger.debug(
                "availability: %s-%s overlaps booking %s",
                check_in,
                check_out,
                booking.pk,
                extra={"listing_id": listing_id},
            )
            return False, REASON_BOOKED
        return True, None

    def conflicting_bookings(
        self,
        listing_id: int,
        check_in: date,
        check_out: date,
        *,
        exclude_booking_id: int | None = None,
    ) -> list:
        return [
            booking
            for booking in self.store.active_bookings(listing_id)
            if booking.pk != exclude_booking_id
            and ranges_overlap(check_in, check_out, booking.check_in, booking.check_out)
        ]

    def unavailable_dates(self, listing_id: int, start: date, end: date) -> list[date]:
        """
        Return the sorted nights in [start, end) that cannot be booked.

        A night is unavailable when the host blocked it or an active booking
        covers it.
        """
        if end <= start:
            return []
        taken: set[date] = {
            night for night in self.store.blocked_dates(listing_id) if start <= night < end
        }
        for booking in self.conflicting_bookings(listing_id, start, end):
            taken.update(
                nights_between(max(start, booking.check_in), min(end, booking.check_out))
            )
        return sorted(taken)
