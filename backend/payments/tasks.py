from __future__ import annotations

import logging

from celery import shared_task

from bookings.models import Booking
from core.errors import ServiceUnavailable
from payments.models import Payment, WebhookEvent
from payments.providers import ProviderTransientError, get_provider
from payments.services import replay_recorded_event

logger = logging.getLogger(__name__)

REPLAYABLE_STATUSES = (WebhookEvent.Status.QUEUED, WebhookEvent.Status.RECEIVED)


@shared_task(
    bind=True,
    autoretry_for=(ServiceUnavailable,),
    retry_backoff=True,
    max_retries=8,
    name="payments.replay_webhook_event",
)
def replay_webhook_event(self, webhook_event_id: int) -> str:
    """
    Apply a stored webhook delivery that could not be processed on receipt.
    Safe to run repeatedly; the idempotency ledger absorbs repeats.
    """
    record = WebhookEvent.objects.filter(pk=webhook_event_id).first()
    if record is None:
        logger.warning("payments: webhook event %s vanished before replay", webhook_event_id)
        return "missing"
    if record.status not in REPLAYABLE_STATUSES:
        return record.status

    outcome = replay_recorded_event(record)
    logger.info(
        "payments: replayed webhook event",
        extra={"webhook_event_id": record.pk, "provider": record.provider, "status": outcome},
    )
    return outcome


@shared_task(
    bind=True,
    autoretry_for=(ProviderTransientError,),
    retry_backoff=True,
    max_retries=5,
    name="payments.issue_refund",
)
def issue_refund(self, booking_id: int) -> dict:
    """
    Send a cancelled booking's refund to the provider that captured it.

    The payment itself only moves to refunded when the provider confirms
    through its webhook.
    """
    booking = Booking.objects.filter(pk=booking_id).first()
    if booking is None:
        logger.warning("payments: refund requested for unknown booking %s", booking_id)
        return {"status": "missing"}
    if booking.refund_status != Booking.RefundStatus.REQUESTED or booking.refund_amount <= 0:
        return {"status": "skipped"}

    payment = (
        Payment.objects.filter(booking_id=booking.pk, status=Payment.Status.COMPLETED)
        .order_by("-paid_at", "-pk")
        .first()
    )
    if payment is None:
        logger.warning(
            "payments: no completed payment to refund",
            extra={"booking_id": booking.pk, "refund_amount": str(booking.refund_amount)},
        )
        return {"status": "no_payment"}

    provider = get_provider(payment.provider)
    refund_id = provider.refund(payment, booking.refund_amount)
    logger.info(
        "payments: refund sent to %s",
        payment.provider,
        extra={
            "booking_id": booking.pk,
            "payment_id": payment.pk,
            "refund_amount": str(booking.refund_amount),
            "refund_id": refund_id,
        },
    )
    return {"status": "sent", "payment_id": payment.pk, "refund_id": refund_id}


__all__ = ["replay_webhook_event", "issue_refund"]
