"""MonCash (Digicel) hosted checkout adapter."""

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
    text_field,
)

ORDER_PREFIX = "GETIN-"

STATUS_OUTCOMES = {
    "successful": PaymentOutcome.SUCCEEDED,
    "success": PaymentOutcome.SUCCEEDED,
    "failed": PaymentOutcome.FAILED,
    "error": PaymentOutcome.FAILED,
    "refunded": PaymentOutcome.REFUNDED,
}


def order_reference(payment: Payment) -> str:
    return f"{ORDER_PREFIX}{payment.pk}"


class MonCashProvider(PaymentProvider):
    name = Provider.MONCASH

    def normalize(self, payload: Mapping[str, Any]) -> PaymentEvent:
        order_id = text_field(payload, "orderId", "MonCash orderId")
        transaction_id = text_field(payload, "transactionId", "MonCash transactionId")
        if not order_id or not transaction_id:
            raise MalformedPayload("MonCash payload requires orderId and transactionId.")
        if not order_id.startswith(ORDER_PREFIX):
            raise MalformedPayload(f"Unknown MonCash order reference {order_id!r}.")

        status = text_field(payload, "status", "MonCash status").lower()
        return PaymentEvent(
            provider=self.name,
            provider_reference=order_id,
            provider_transaction_id=transaction_id,
            # Anything MonCash has not settled yet is still in flight.
            outcome=STATUS_OUTCOMES.get(status, PaymentOutcome.PENDING),
            amount=decimal_field(payload.get("amount"), "MonCash amount"),
            currency="HTG",
            event_type=status,
            raw=dict(payload),
        )

    def create_intent(self, payment: Payment, *, return_url: str | None = None) -> ProviderIntent:
        checkout_url = getattr(settings, "MONCASH_CHECKOUT_URL", "")
        if not checkout_url:
            raise ProviderConfigurationError("MonCash checkout URL not configured.")
        reference = order_reference(payment)
        query = {"orderId": reference, "amount": str(payment.amount)}
        if return_url:
            query["returnUrl"] = return_url
        return ProviderIntent(reference=reference, redirect_url=f"{checkout_url}?{urlencode(query)}")
