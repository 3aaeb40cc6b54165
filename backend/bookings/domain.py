"""Booking status transitions.

``BookingStateMachine`` is the only code that writes ``Booking.status``. Every
transition runs under the booking's row lock and is checked against
``TRANSITIONS`` before anything is mutated.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from django.utils import timezone

from core.errors import IllegalTransition
from listings.models import Listing
from payments_cancellation_policy import CancelActor, RefundQuote, compute_refund

from .models import Booking

if TYPE_CHECKING:
    from core.store import BookingStore
    from notifications.dispatch import NotificationDispatcher

logger = logging.getLogger(__name__)

Status = Booking.Status
PaymentStatus = Booking.PaymentStatus

TRANSITIONS: dict[str, frozenset[str]] = {
    Status.PENDING: frozenset(
        {Status.ACCEPTED, Status.DECLINED, Status.CANCELLED_BY_GUEST, Status.CANCELLED_BY_HOST}
    ),
    Status.ACCEPTED: frozenset(
        {Status.CONFIRMED, Status.CANCELLED_BY_GUEST, Status.CANCELLED_BY_HOST}
    ),
    Status.CONFIRMED: frozenset(
        {Status.COMPLETED, Status.CANCELLED_BY_GUEST, Status.CANCELLED_BY_HOST}
    ),
}

# Timestamp stamped on the booking when it enters a status.
_ENTERED_AT = {
    Status.ACCEPTED: "accepted_at",
    Status.CANCELLED_BY_GUEST: "cancelled_at",
    Status.CANCELLED_BY_HOST: "cancelled_at",
    Status.COMPLETED: "completed_at",
}

CANCEL_TARGETS: dict[str, str] = {
    "guest": Status.CANCELLED_BY_GUEST,
    "host": Status.CANCELLED_BY_HOST,
}


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def assert_transition(current: str, target: str) -> None:
    if not can_transition(current, target):
        raise IllegalTransition(current, target)


def initial_status(listing: Listing) -> str:
    """Instant-book listings skip host approval."""
    return Status.CONFIRMED if listing.instant_book else Status.PENDING


@dataclass(frozen=True)
class CancellationResult:
    booking: Booking
    refund: RefundQuote


class BookingStateMachine:
    """Applies status transitions to persisted bookings."""

    def __init__(
        self,
        store: BookingStore | None = None,
        notifier: NotificationDispatcher | None = None,
    ):
        if store is None:
            from core.store import DjangoStore

            store = DjangoStore()
        if notifier is None:
            from notifications.dispatch import NotificationDispatcher

            notifier = NotificationDispatcher()
        self.store = store
        self.notifier = notifier

    def apply(self, booking: Booking, target: str, *, now: datetime | None = None) -> list[str]:
        """
        Move an already locked ``booking`` to ``target`` in memory.

        Returns the fields that changed; the caller saves them. Raises
        IllegalTransition without touching the booking when the move is not
        allowed.
        """
        assert_transition(booking.status, target)
        previous = booking.status
        booking.status = target
        fields = ["status"]
        stamp = _ENTERED_AT.get(target)
        if stamp:
            setattr(booking, stamp, now or timezone.now())
            fields.append(stamp)
        logger.info(
            "bookings: %s -> %s",
            previous,
            target,
            extra={"booking_id": booking.pk},
        )
        return fields

    def _transition(self, booking_id: int, target: str, *, now: datetime | None = None) -> Booking:
        with self.store.lock_booking(booking_id) as booking:
            fields = self.apply(booking, target, now=now)
            self.store.save_booking(booking, fields)
        self.notifier.notify(f"booking_{target}", booking.pk)
        return booking

    def accept(self, booking_id: int, *, now: datetime | None = None) -> Booking:
        """Host approves a pending request."""
        confirmed = False
        with self.store.lock_booking(booking_id) as booking:
            fields = self.apply(booking, Status.ACCEPTED, now=now)
            if booking.payment_status == PaymentStatus.CAPTURED:
                # Guest already paid: nothing left to wait for.
                fields += self.apply(booking, Status.CONFIRMED, now=now)
                confirmed = True
            self.store.save_booking(booking, fields)
        self.notifier.notify("booking_accepted", booking.pk)
        if confirmed:
            self.notifier.notify("booking_confirmed", booking.pk)
        return booking

    def decline(self, booking_id: int, *, now: datetime | None = None) -> Booking:
        return self._transition(booking_id, Status.DECLINED, now=now)

    def complete(self, booking_id: int, *, now: datetime | None = None) -> Booking:
        return self._transition(booking_id, Status.COMPLETED, now=now)

    def cancel(
        self,
        booking_id: int,
        *,
        actor: CancelActor,
        reason: str = "",
        now: datetime | None = None,
    ) -> CancellationResult:
        """
        Cancel on behalf of the guest or the host.

        The refund is computed and written in the same locked update as the
        status change.
        """
        target = CANCEL_TARGETS[actor]
        now = now or timezone.now()
        with self.store.lock_booking(booking_id) as booking:
            assert_transition(booking.status, target)
            refund = compute_refund(booking=booking, actor=actor, now=now)
            fields = self.apply(booking, target, now=now)
            booking.cancellation_reason = reason or ""
            booking.refund_amount = refund.amount
            booking.refund_percentage = refund.percentage
            if booking.payment_status == PaymentStatus.CAPTURED and refund.amount > 0:
                booking.refund_status = Booking.RefundStatus.REQUESTED
            else:
                booking.refund_status = Booking.RefundStatus.NONE
            fields += ["cancellation_reason", "refund_amount", "refund_percentage", "refund_status"]
            self.store.save_booking(booking, fields)
        logger.info(
            "bookings: cancelled by %s with %s%% refund",
            actor,
            refund.percentage,
            extra={"booking_id": booking.pk, "refund_amount": str(refund.amount)},
        )
        self.notifier.notify(f"booking_{target}", booking.pk)
        return CancellationResult(booking=booking, refund=refund)

    def record_payment(
        self,
        booking: Booking,
        payment_status: str,
        *,
        now: datetime | None = None,
    ) -> list[str]:
        """
        Reflect a reconciled payment on an already locked booking and save it.

        A capture confirms an accepted booking. Returns the notification
        events the caller should send once its lock is released.
        """
        events: list[str] = []
        fields: list[str] = []
        if booking.payment_status != payment_status:
            booking.payment_status = payment_status
            fields.append("payment_status")
        if payment_status == PaymentStatus.CAPTURED:
            if booking.paid_at is None:
                booking.paid_at = now or timezone.now()
                fields.append("paid_at")
            if booking.status == Status.ACCEPTED:
                fields += self.apply(booking, Status.CONFIRMED, now=now)
                events.append("booking_confirmed")
        if fields:
            self.store.save_booking(booking, fields)
        return events
