"""PayPal checkout adapter."""

from __future__ import annotations

from typing import Any, Mapping
from urllib.parse import urlencode

from django.conf import settings

from .models import Payment, Provider
from .providers import (
    MalformedPayload,
    PaymentEvent,
    PaymentOutcome,
    PaymentProvider,
    ProviderConfigurationError,
    ProviderIntent,
    decimal_field,
    int_or_none,
    mapping_field,
    text_field,
)

EVENT_OUTCOMES = {
    "PAYMENT.CAPTURE.COMPLETED": PaymentOutcome.SUCCEEDED,
    "PAYMENT.CAPTURE.DENIED": PaymentOutcome.FAILED,
    "PAYMENT.CAPTURE.DECLINED": PaymentOutcome.FAILED,
    "PAYMENT.CAPTURE.PENDING": PaymentOutcome.PENDING,
    "PAYMENT.CAPTURE.REFUNDED": PaymentOutcome.REFUNDED,
}


class PayPalProvider(PaymentProvider):
    """
    PayPal only reports the order id once the guest approves checkout, so
    payments start without a reference. The first webhook is matched through
    ``custom_id`` (the booking id) and carries the order id from then on.
    """

    name = Provider.PAYPAL

    def normalize(self, payload: Mapping[str, Any]) -> PaymentEvent | None:
        event_type = text_field(payload, "event_type", "PayPal event_type")
        resource = payload.get("resource")
        if not event_type or not isinstance(resource, Mapping):
            raise MalformedPayload("PayPal payload requires event_type and resource.")

        outcome = EVENT_OUTCOMES.get(event_type)
        if outcome is None:
            return None

        supplementary = mapping_field(resource, "supplementary_data", "PayPal supplementary_data")
        related_ids = mapping_field(supplementary, "related_ids", "PayPal related_ids")
        resource_id = text_field(resource, "id", "PayPal resource id")
        reference = text_field(related_ids, "order_id", "PayPal order_id") or resource_id
        transaction_id = text_field(payload, "id", "PayPal event id") or resource_id
        if not reference or not transaction_id:
            raise MalformedPayload("PayPal payload does not identify the order.")

        amount = mapping_field(resource, "amount", "PayPal amount")
        return PaymentEvent(
            provider=self.name,
            provider_reference=reference,
            provider_transaction_id=transaction_id,
            outcome=outcome,
            amount=decimal_field(amount.get("value"), "PayPal amount value"),
            currency=text_field(amount, "currency_code", "PayPal currency_code").upper(),
            booking_id=int_or_none(resource.get("custom_id")),
            event_type=event_type,
            raw=dict(payload),
        )

    def create_intent(self, payment: Payment, *, return_url: str | None = None) -> ProviderIntent:
        checkout_url = getattr(settings, "PAYPAL_CHECKOUT_URL", "")
        if not checkout_url:
            raise ProviderConfigurationError("PayPal checkout URL not configured.")
        query = {
            "custom_id": str(payment.booking_id),
            "invoice_id": f"GETIN-{payment.pk}",
            "amount": str(payment.amount),
            "currency_code": payment.currency,
        }
        if return_url:
            query["return_url"] = return_url
        return ProviderIntent(redirect_url=f"{checkout_url}?{urlencode(query)}")
