"""Payment initiation and webhook processing."""

from __future__ import annotations

import logging

from django.utils import timezone

from bookings.models import Booking
from core.errors import BookingConflict, ReconciliationError
from core.retry import call_with_retry

from .models import Payment, WebhookEvent
from .providers import PaymentEvent, ProviderIntent, get_provider
from .reconciliation import PaymentReconciler

logger = logging.getLogger(__name__)


class PaymentNotAllowed(BookingConflict):
    code = "PaymentNotAllowed"
    default_message = "This booking does not need a payment."


def initiate_payment(
    booking: Booking,
    provider_name: str,
    *,
    return_url: str | None = None,
) -> tuple[Payment, ProviderIntent]:
    """
    Open a pending payment for the booking total and ask the provider for checkout.

    Provider errors propagate; the pending payment row is kept so a webhook
    arriving later can still be matched.
    """
    if not booking.requires_payment:
        raise PaymentNotAllowed()
    provider = get_provider(provider_name)
    payment = Payment.objects.create(
        booking=booking,
        provider=provider.name,
        amount=booking.total_amount,
        currency=booking.currency,
    )
    intent = provider.create_intent(payment, return_url=return_url)
    if intent.reference:
        payment.provider_reference = intent.reference
        Payment.objects.filter(pk=payment.pk).update(provider_reference=intent.reference)
    logger.info(
        "payments: initiated %s payment",
        provider.name,
        extra={"payment_id": payment.pk, "booking_id": booking.pk, "amount": str(payment.amount)},
    )
    return payment, intent


def _finish(record: WebhookEvent, status: str, *, error: str = "") -> str:
    record.status = status
    record.error = error
    record.processed_at = timezone.now()
    record.save(
        update_fields=[
            "status",
            "error",
            "processed_at",
            "attempts",
            "event_type",
            "provider_reference",
            "provider_transaction_id",
            "outcome",
            "amount",
            "currency",
        ]
    )
    return status


def apply_webhook_event(
    record: WebhookEvent,
    event: PaymentEvent | None,
    *,
    reconciler: PaymentReconciler | None = None,
) -> str:
    """
    Apply a normalized delivery and store the outcome on its audit record.

    Reconciliation errors are logged and recorded, never raised. A database
    that keeps failing surfaces as ServiceUnavailable so the caller can queue
    a replay.
    """
    record.attempts += 1
    if event is None:
        return _finish(record, WebhookEvent.Status.IGNORED)

    record.event_type = event.event_type[:120]
    record.provider_reference = event.provider_reference
    record.provider_transaction_id = event.provider_transaction_id
    record.outcome = event.outcome
    record.amount = event.amount
    record.currency = event.currency[:3]

    reconciler = reconciler or PaymentReconciler()
    try:
        result = call_with_retry(reconciler.apply, event)
    except ReconciliationError as exc:
        logger.warning(
            "payments: %s event rejected: %s",
            event.provider,
            exc,
            extra={
                "webhook_event_id": record.pk,
                "provider_reference": event.provider_reference,
                "provider_transaction_id": event.provider_transaction_id,
            },
        )
        return _finish(record, WebhookEvent.Status.REJECTED, error=f"{exc.code}: {exc}")
    return _finish(record, result.status)


def replay_recorded_event(record: WebhookEvent) -> str:
    """Re-run a stored delivery from its verbatim body."""
    provider = get_provider(record.provider)
    payload = provider.parse_raw(record.raw_body)
    return apply_webhook_event(record, provider.normalize(payload))
