"""Refund schedules applied when a booking is cancelled."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from decimal import Decimal
from typing import Literal

from django.utils import timezone

from bookings.models import Booking
from core.errors import BookingAlreadyStarted
from core.money import ZERO, quantize_money

CancelActor = Literal["guest", "host"]

DEFAULT_POLICY = "default"

# (minimum days before check-in, refund percentage), evaluated top-down.
REFUND_SCHEDULES: dict[str, tuple[tuple[int, int], ...]] = {
    "flexible": ((14, 100), (7, 100), (5, 100), (1, 100), (0, 0)),
    "moderate": ((14, 100), (7, 100), (5, 100), (1, 50), (0, 0)),
    "strict": ((14, 100), (7, 50), (5, 0), (1, 0), (0, 0)),
    DEFAULT_POLICY: ((14, 100), (7, 50), (5, 50), (1, 50), (0, 50)),
}


@dataclass(frozen=True)
class RefundQuote:
    """How much of a cancelled booking goes back to the guest."""

    days_until_check_in: int
    percentage: int
    refundable_base: Decimal
    amount: Decimal


def check_in_moment(booking: Booking) -> datetime:
    """Check-in is midnight at the start of ``check_in`` in the platform time zone."""
    return timezone.make_aware(
        datetime.combine(booking.check_in, time.min),
        timezone.get_default_timezone(),
    )


def days_until_check_in(booking: Booking, now: datetime) -> int:
    """Whole days left before check-in, rounded up; zero or less once it has passed."""
    remaining = check_in_moment(booking) - now
    return math.ceil(remaining / timedelta(days=1))


def refund_percentage(policy: str | None, days: int) -> int:
    schedule = REFUND_SCHEDULES.get(policy or DEFAULT_POLICY, REFUND_SCHEDULES[DEFAULT_POLICY])
    for threshold, percentage in schedule:
        if days >= threshold:
            return percentage
    return schedule[-1][1]


def compute_refund(
    *,
    booking: Booking,
    actor: CancelActor,
    now: datetime | None = None,
) -> RefundQuote:
    """
    Return the refund owed when ``actor`` cancels ``booking`` at ``now``.

    Guests get a share of the total minus the service fee, following the
    booking's cancellation policy. Guests cannot cancel once the stay has
    begun. A host cancellation refunds the full total.
    """
    now = now or timezone.now()
    days = days_until_check_in(booking, now)
    currency = booking.currency

    if actor == "host":
        total = quantize_money(booking.total_amount, currency)
        return RefundQuote(
            days_until_check_in=days,
            percentage=100,
            refundable_base=total,
            amount=total,
        )

    if days <= 0:
        raise BookingAlreadyStarted()

    refundable_base = booking.total_amount - booking.service_fee
    if refundable_base < ZERO:
        refundable_base = ZERO
    percentage = refund_percentage(booking.cancellation_policy, days)
    amount = quantize_money(refundable_base * Decimal(percentage) / Decimal("100"), currency)
    return RefundQuote(
        days_until_check_in=days,
        percentage=percentage,
        refundable_base=quantize_money(refundable_base, currency),
        amount=amount,
    )
