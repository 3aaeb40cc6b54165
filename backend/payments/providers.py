"""Provider-neutral payment events and the adapter interface."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Mapping

from core.money import to_decimal

from .models import Payment, Provider

logger = logging.getLogger(__name__)


class PaymentOutcome:
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    PENDING = "pending"
    REFUNDED = "refunded"

    ALL = (SUCCEEDED, FAILED, PENDING, REFUNDED)


class MalformedPayload(ValueError):
    """A webhook body is missing the fields needed to identify the payment."""


class ProviderConfigurationError(Exception):
    """The provider is not configured correctly in the environment."""


class ProviderTransientError(Exception):
    """Temporary provider/API issue that should be retried."""


class ProviderPaymentError(Exception):
    """Permanent failure reported by the provider."""


class UnknownProvider(KeyError):
    pass


@dataclass(frozen=True)
class PaymentEvent:
    """A provider notification reduced to what reconciliation needs."""

    provider: str
    provider_reference: str
    provider_transaction_id: str
    outcome: str
    amount: Decimal | None = None
    currency: str = ""
    booking_id: int | None = None
    event_type: str = ""
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)


@dataclass(frozen=True)
class ProviderIntent:
    """What the guest needs to finish paying: a redirect or a client secret."""

    reference: str = ""
    redirect_url: str = ""
    client_secret: str = ""


def int_or_none(value: object) -> int | None:
    try:
        return int(str(value))
    except (TypeError, ValueError):
        return None


def mapping_field(container: Mapping[str, Any], key: str, label: str) -> Mapping[str, Any]:
    """Return the nested object at ``key``; empty when absent, malformed when not an object."""
    value = container.get(key)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise MalformedPayload(f"{label} must be a JSON object.")
    return value


def text_field(container: Mapping[str, Any], key: str, label: str) -> str:
    value = container.get(key)
    if value is None:
        return ""
    if isinstance(value, (dict, list, bool)):
        raise MalformedPayload(f"{label} must be a string.")
    return str(value).strip()


def decimal_field(value: object, label: str) -> Decimal | None:
    if value is None or value == "":
        return None
    amount = to_decimal(value, None) if not isinstance(value, bool) else None
    if amount is None or not amount.is_finite():
        raise MalformedPayload(f"{label} is not a number.")
    return amount


class PaymentProvider:
    """Base adapter. Subclasses translate one provider's payloads and calls."""

    name: str = ""

    def parse(self, request) -> dict[str, Any]:
        """Return the webhook body as a dict; raise MalformedPayload if it is not one."""
        return self.parse_raw(request.body)

    def parse_raw(self, body: bytes | str) -> dict[str, Any]:
        """Decode a stored body that was already accepted by ``parse``."""
        try:
            payload = json.loads(body or b"{}")
        except ValueError as exc:
            raise MalformedPayload("Webhook body is not valid JSON.") from exc
        if not isinstance(payload, dict):
            raise MalformedPayload("Webhook body must be a JSON object.")
        return payload

    def normalize(self, payload: Mapping[str, Any]) -> PaymentEvent | None:
        """Map a payload to a PaymentEvent, or None for events we do not act on."""
        raise NotImplementedError

    def create_intent(self, payment: Payment, *, return_url: str | None = None) -> ProviderIntent:
        raise NotImplementedError

    def refund(self, payment: Payment, amount: Decimal) -> str | None:
        """Return ``amount`` of a completed payment; return the provider refund id."""
        logger.warning(
            "payments: %s refunds are processed manually",
            self.name,
            extra={"payment_id": payment.pk, "amount": str(amount)},
        )
        return None


def get_provider(name: str) -> PaymentProvider:
    from .moncash_api import MonCashProvider
    from .paypal_api import PayPalProvider
    from .stripe_api import StripeProvider

    adapters = {
        Provider.MONCASH: MonCashProvider,
        Provider.PAYPAL: PayPalProvider,
        Provider.STRIPE: StripeProvider,
    }
    try:
        return adapters[name]()
    except KeyError as exc:
        raise UnknownProvider(name) from exc
