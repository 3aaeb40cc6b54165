"""Apply provider payment events to payments and their bookings.

Events can arrive late, twice, or out of order. Each one is applied under
the payment's row lock: the idempotency ledger is checked first, then the
payment status table decides whether the event still makes sense.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from django.utils import timezone

from bookings.domain import BookingStateMachine
from bookings.models import Booking
from core.errors import DuplicateCapture, InvalidRefundState, StalePaymentEvent

from .models import Payment
from .providers import PaymentEvent, PaymentOutcome

if TYPE_CHECKING:
    from core.store import BookingStore
    from notifications.dispatch import NotificationDispatcher

logger = logging.getLogger(__name__)

PaymentStatus = Payment.Status

PAYMENT_TRANSITIONS: dict[str, frozenset[str]] = {
    PaymentStatus.PENDING: frozenset(
        {PaymentStatus.PROCESSING, PaymentStatus.COMPLETED, PaymentStatus.FAILED}
    ),
    PaymentStatus.PROCESSING: frozenset({PaymentStatus.COMPLETED, PaymentStatus.FAILED}),
    # A guest may retry after a decline.
    PaymentStatus.FAILED: frozenset({PaymentStatus.PROCESSING, PaymentStatus.COMPLETED}),
    PaymentStatus.COMPLETED: frozenset({PaymentStatus.REFUNDED}),
}

OUTCOME_TARGETS = {
    PaymentOutcome.SUCCEEDED: PaymentStatus.COMPLETED,
    PaymentOutcome.FAILED: PaymentStatus.FAILED,
    PaymentOutcome.PENDING: PaymentStatus.PROCESSING,
    PaymentOutcome.REFUNDED: PaymentStatus.REFUNDED,
}

BOOKING_PAYMENT_STATUS = {
    PaymentStatus.COMPLETED: Booking.PaymentStatus.CAPTURED,
    PaymentStatus.FAILED: Booking.PaymentStatus.FAILED,
    PaymentStatus.PROCESSING: Booking.PaymentStatus.AUTHORIZED,
    PaymentStatus.REFUNDED: Booking.PaymentStatus.REFUNDED,
}

PAYMENT_EVENTS = {
    PaymentStatus.COMPLETED: "payment_received",
    PaymentStatus.FAILED: "payment_failed",
    PaymentStatus.REFUNDED: "payment_refunded",
}


class ApplyStatus:
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    NOT_FOUND = "not_found"


@dataclass
class ApplyResult:
    status: str
    payment_id: int | None = None
    booking_id: int | None = None
    notifications: list[str] = field(default_factory=list)


class PaymentReconciler:
    """Drives Payment and Booking.payment_status from normalized provider events."""

    def __init__(
        self,
        store: BookingStore | None = None,
        state_machine: BookingStateMachine | None = None,
        notifier: NotificationDispatcher | None = None,
    ):
        if store is None:
            from core.store import DjangoStore

            store = DjangoStore()
        self.store = store
        self.state_machine = state_machine or BookingStateMachine(store, notifier)
        self.notifier = notifier or self.state_machine.notifier

    def find_payment(self, event: PaymentEvent) -> Payment | None:
        payment = self.store.find_payment(event.provider, event.provider_reference)
        if payment is None and event.booking_id is not None:
            # First event for a payment whose reference we have not seen yet.
            payment = self.store.find_latest_payment(event.booking_id, event.provider)
        return payment

    def apply(self, event: PaymentEvent, *, now: datetime | None = None) -> ApplyResult:
        """
        Apply ``event``; return what happened.

        Raises StalePaymentEvent, InvalidRefundState or DuplicateCapture when
        the event contradicts the payment's current state. Nothing is written
        in that case.
        """
        payment = self.find_payment(event)
        if payment is None:
            logger.info(
                "payments: no payment for %s event",
                event.provider,
                extra={
                    "provider_reference": event.provider_reference,
                    "provider_transaction_id": event.provider_transaction_id,
                    "booking_id": event.booking_id,
                },
            )
            return ApplyResult(ApplyStatus.NOT_FOUND)

        now = now or timezone.now()
        with self.store.lock_payment(payment.pk) as payment:
            result = ApplyResult(
                ApplyStatus.APPLIED, payment_id=payment.pk, booking_id=payment.booking_id
            )
            if self.store.is_event_processed(
                event.provider, event.provider_transaction_id, event.outcome
            ):
                logger.info(
                    "payments: duplicate %s event ignored",
                    event.provider,
                    extra={
                        "payment_id": payment.pk,
                        "provider_transaction_id": event.provider_transaction_id,
                    },
                )
                result.status = ApplyStatus.DUPLICATE
                return result

            target = OUTCOME_TARGETS[event.outcome]
            if payment.status == target:
                # Same state reached through another delivery.
                result.status = ApplyStatus.DUPLICATE
            else:
                self._check_transition(payment, target, event)
                self._update_payment(payment, target, event, now)
                result.notifications = self._update_booking(payment, target, now)

            self.store.record_processed_event(
                event.provider,
                event.provider_transaction_id,
                payment_id=payment.pk,
                outcome=event.outcome,
            )

        for notification in result.notifications:
            self.notifier.notify(notification, payment.booking_id)
        return result

    def _check_transition(self, payment: Payment, target: str, event: PaymentEvent) -> None:
        allowed = PAYMENT_TRANSITIONS.get(payment.status, frozenset())
        if target in allowed:
            if target == PaymentStatus.COMPLETED and self.store.has_completed_payment(
                payment.booking_id, exclude_payment_id=payment.pk
            ):
                logger.error(
                    "payments: second capture for booking %s",
                    payment.booking_id,
                    extra={"payment_id": payment.pk, "provider": event.provider},
                )
                raise DuplicateCapture()
            return
        if target == PaymentStatus.REFUNDED:
            raise InvalidRefundState(
                f"Payment {payment.pk} is {payment.status}; only completed payments can be refunded."
            )
        raise StalePaymentEvent(
            f"Payment {payment.pk} is {payment.status}; ignoring {event.outcome} event."
        )

    def _update_payment(
        self, payment: Payment, target: str, event: PaymentEvent, now: datetime
    ) -> None:
        previous = payment.status
        payment.status = target
        payment.raw_provider_payload = dict(event.raw)
        fields = ["status", "raw_provider_payload"]
        if event.provider_reference and not payment.provider_reference:
            payment.provider_reference = event.provider_reference
            fields.append("provider_reference")
        if event.provider_transaction_id and target != PaymentStatus.REFUNDED:
            payment.provider_transaction_id = event.provider_transaction_id
            fields.append("provider_transaction_id")
        if target == PaymentStatus.COMPLETED:
            payment.paid_at = now
            fields.append("paid_at")
            if event.amount is not None and event.amount != payment.amount:
                logger.warning(
                    "payments: captured amount %s differs from expected %s",
                    event.amount,
                    payment.amount,
                    extra={"payment_id": payment.pk, "provider": event.provider},
                )
        self.store.save_payment(payment, fields)
        logger.info(
            "payments: %s -> %s",
            previous,
            target,
            extra={"payment_id": payment.pk, "provider": event.provider},
        )

    def _update_booking(self, payment: Payment, target: str, now: datetime) -> list[str]:
        notifications = []
        with self.store.lock_booking(payment.booking_id) as booking:
            booking_status = BOOKING_PAYMENT_STATUS[target]
            if (
                target in (PaymentStatus.FAILED, PaymentStatus.PROCESSING)
                and booking.payment_status == Booking.PaymentStatus.CAPTURED
            ):
                # Another payment already captured this booking.
                booking_status = booking.payment_status
            notifications += self.state_machine.record_payment(booking, booking_status, now=now)
        if target in PAYMENT_EVENTS:
            notifications.insert(0, PAYMENT_EVENTS[target])
        return notifications
