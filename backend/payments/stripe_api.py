"""Stripe payment helpers for booking payments."""

from __future__ import annotations

import json
import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Mapping

import stripe
from django.conf import settings

from .models import Payment, Provider
from .providers import (
    MalformedPayload,
    PaymentEvent,
    PaymentOutcome,
    PaymentProvider,
    ProviderConfigurationError,
    ProviderIntent,
    ProviderPaymentError,
    ProviderTransientError,
    int_or_none,
    mapping_field,
    text_field,
)

logger = logging.getLogger(__name__)
IDEMPOTENCY_VERSION = "v1"

# Stripe amounts for these currencies are already in whole units.
ZERO_DECIMAL_CURRENCIES = frozenset(
    {
        "BIF", "CLP", "DJF", "GNF", "JPY", "KMF", "KRW", "MGA",
        "PYG", "RWF", "UGX", "VND", "VUV", "XAF", "XOF", "XPF",
    }
)

EVENT_OUTCOMES = {
    "payment_intent.succeeded": PaymentOutcome.SUCCEEDED,
    "payment_intent.payment_failed": PaymentOutcome.FAILED,
    "payment_intent.processing": PaymentOutcome.PENDING,
    "charge.refunded": PaymentOutcome.REFUNDED,
}


def _get_stripe_api_key() -> str:
    """Return the configured Stripe API key or raise if missing."""
    api_key = getattr(settings, "STRIPE_SECRET_KEY", "")
    if not api_key:
        raise ProviderConfigurationError("Stripe secret key not configured.")
    return api_key


def _to_minor_units(amount: Decimal, currency: str) -> int:
    """Convert a Decimal amount to Stripe's integer amount for ``currency``."""
    if currency.upper() in ZERO_DECIMAL_CURRENCIES:
        return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    cents = (amount * Decimal("100")).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(cents)


def _from_minor_units(amount: object, currency: str) -> Decimal | None:
    if amount is None:
        return None
    if isinstance(amount, bool) or not isinstance(amount, (int, str)):
        raise MalformedPayload("Stripe amount must be an integer.")
    try:
        value = Decimal(int(amount))
    except ValueError as exc:
        raise MalformedPayload("Stripe amount must be an integer.") from exc
    if currency.upper() in ZERO_DECIMAL_CURRENCIES:
        return value
    return value / Decimal("100")


def _handle_stripe_error(exc: stripe.StripeError) -> None:
    """Map Stripe SDK errors onto internal exception types."""
    if isinstance(exc, stripe.CardError):
        message = exc.user_message or "Your card was declined."
        raise ProviderPaymentError(message) from exc
    if isinstance(
        exc,
        (
            stripe.RateLimitError,
            stripe.APIConnectionError,
            stripe.APIError,
        ),
    ):
        raise ProviderTransientError("Temporary Stripe error, please retry.") from exc
    if isinstance(exc, (stripe.AuthenticationError, stripe.PermissionError)):
        raise ProviderConfigurationError("Stripe credentials are invalid or unauthorized.") from exc
    if isinstance(exc, stripe.InvalidRequestError):
        raise ProviderPaymentError(exc.user_message or "Invalid payment request.") from exc
    raise ProviderPaymentError(exc.user_message or "Stripe payment failure.") from exc


class StripeProvider(PaymentProvider):
    name = Provider.STRIPE

    def parse(self, request) -> dict[str, Any]:
        """Verify the Stripe signature when a webhook secret is configured."""
        endpoint_secret = getattr(settings, "STRIPE_WEBHOOK_SECRET", "")
        if not endpoint_secret:
            logger.warning("stripe_webhook: STRIPE_WEBHOOK_SECRET not set, skipping signature check")
            return super().parse(request)
        try:
            event = stripe.Webhook.construct_event(
                payload=request.body,
                sig_header=request.META.get("HTTP_STRIPE_SIGNATURE", ""),
                secret=endpoint_secret,
            )
        except ValueError as exc:
            raise MalformedPayload("Stripe payload is not valid JSON.") from exc
        except stripe.SignatureVerificationError as exc:
            raise MalformedPayload("Stripe signature verification failed.") from exc
        if isinstance(event, Mapping):
            return dict(event)
        return json.loads(str(event))

    def normalize(self, payload: Mapping[str, Any]) -> PaymentEvent | None:
        event_id = text_field(payload, "id", "Stripe event id")
        event_type = text_field(payload, "type", "Stripe event type")
        if not event_id or not event_type:
            raise MalformedPayload("Stripe event requires id and type.")

        outcome = EVENT_OUTCOMES.get(event_type)
        if outcome is None:
            return None

        data = mapping_field(payload, "data", "Stripe event data")
        data_object = mapping_field(data, "object", "Stripe event data.object")
        metadata = mapping_field(data_object, "metadata", "Stripe metadata")
        currency = text_field(data_object, "currency", "Stripe currency").upper()
        if event_type == "charge.refunded":
            reference = text_field(data_object, "payment_intent", "Stripe payment_intent")
            amount = data_object.get("amount_refunded")
        else:
            reference = text_field(data_object, "id", "Stripe object id")
            amount = data_object.get("amount_received") or data_object.get("amount")
        if not reference:
            raise MalformedPayload("Stripe event does not reference a PaymentIntent.")

        return PaymentEvent(
            provider=self.name,
            provider_reference=reference,
            provider_transaction_id=event_id,
            outcome=outcome,
            amount=_from_minor_units(amount, currency),
            currency=currency,
            booking_id=int_or_none(metadata.get("booking_id")),
            event_type=event_type,
            raw=dict(payload),
        )

    def create_intent(self, payment: Payment, *, return_url: str | None = None) -> ProviderIntent:
        stripe.api_key = _get_stripe_api_key()
        try:
            intent = stripe.PaymentIntent.create(
                amount=_to_minor_units(payment.amount, payment.currency),
                currency=payment.currency.lower(),
                automatic_payment_methods={"enabled": True},
                metadata={
                    "kind": "booking",
                    "booking_id": str(payment.booking_id),
                    "payment_id": str(payment.pk),
                },
                idempotency_key=f"{IDEMPOTENCY_VERSION}:payment:{payment.pk}:intent",
            )
        except stripe.StripeError as exc:
            _handle_stripe_error(exc)
        return ProviderIntent(
            reference=intent.id,
            client_secret=getattr(intent, "client_secret", "") or "",
        )

    def refund(self, payment: Payment, amount: Decimal) -> str | None:
        stripe.api_key = _get_stripe_api_key()
        minor_amount = _to_minor_units(amount, payment.currency)
        try:
            refund = stripe.Refund.create(
                payment_intent=payment.provider_reference,
                amount=minor_amount,
                metadata={"booking_id": str(payment.booking_id), "payment_id": str(payment.pk)},
                idempotency_key=(
                    f"{IDEMPOTENCY_VERSION}:booking:{payment.booking_id}:refund:{minor_amount}"
                ),
            )
        except stripe.StripeError as exc:
            _handle_stripe_error(exc)
        return getattr(refund, "id", None)
