from __future__ import annotations

import json
from decimal import Decimal

import pytest

from payments.moncash_api import MonCashProvider
from payments.paypal_api import PayPalProvider
from payments.providers import MalformedPayload, PaymentOutcome, UnknownProvider, get_provider
from payments.stripe_api import StripeProvider, _from_minor_units, _to_minor_units


def _stripe_event(event_type="payment_intent.succeeded", **data):
    data_object = {
        "id": "pi_123",
        "amount_received": 39100,
        "currency": "usd",
        "metadata": {"booking_id": "42"},
    }
    data_object.update(data)
    return {"id": "evt_1", "type": event_type, "data": {"object": data_object}}


def test_get_provider_by_name():
    assert isinstance(get_provider("moncash"), MonCashProvider)
    assert isinstance(get_provider("paypal"), PayPalProvider)
    assert isinstance(get_provider("stripe"), StripeProvider)
    with pytest.raises(UnknownProvider):
        get_provider("bitcoin")


def test_parse_raw_rejects_non_objects():
    provider = MonCashProvider()
    assert provider.parse_raw(b'{"a": 1}') == {"a": 1}
    assert provider.parse_raw(b"") == {}
    with pytest.raises(MalformedPayload):
        provider.parse_raw(b"not json")
    with pytest.raises(MalformedPayload):
        provider.parse_raw(json.dumps([1, 2]))


class TestStripe:
    def test_succeeded_intent(self):
        event = StripeProvider().normalize(_stripe_event())

        assert event.provider == "stripe"
        assert event.provider_reference == "pi_123"
        assert event.provider_transaction_id == "evt_1"
        assert event.outcome == PaymentOutcome.SUCCEEDED
        assert event.amount == Decimal("391")
        assert event.currency == "USD"
        assert event.booking_id == 42

    def test_refund_references_the_intent(self):
        payload = _stripe_event(
            "charge.refunded",
            id="ch_9",
            payment_intent="pi_123",
            amount_refunded=12050,
        )

        event = StripeProvider().normalize(payload)

        assert event.outcome == PaymentOutcome.REFUNDED
        assert event.provider_reference == "pi_123"
        assert event.amount == Decimal("120.50")

    def test_failure_and_processing(self):
        assert (
            StripeProvider().normalize(_stripe_event("payment_intent.payment_failed")).outcome
            == PaymentOutcome.FAILED
        )
        assert (
            StripeProvider().normalize(_stripe_event("payment_intent.processing")).outcome
            == PaymentOutcome.PENDING
        )

    def test_unrelated_event_is_ignored(self):
        assert StripeProvider().normalize(_stripe_event("customer.created")) is None

    def test_missing_id_is_malformed(self):
        with pytest.raises(MalformedPayload):
            StripeProvider().normalize({"type": "payment_intent.succeeded"})

    def test_refund_without_intent_is_malformed(self):
        payload = _stripe_event("charge.refunded", payment_intent=None)
        with pytest.raises(MalformedPayload):
            StripeProvider().normalize(payload)

    @pytest.mark.parametrize(
        "payload",
        [
            {"id": "evt_1", "type": "payment_intent.succeeded", "data": "oops"},
            {"id": "evt_1", "type": "payment_intent.succeeded", "data": {"object": ["pi_123"]}},
            {"id": "evt_1", "type": ["payment_intent.succeeded"]},
            _stripe_event(amount_received="12.5"),
            _stripe_event(amount_received={"value": 391}),
            _stripe_event(metadata="booking 42"),
        ],
    )
    def test_nested_fields_of_the_wrong_type_are_malformed(self, payload):
        with pytest.raises(MalformedPayload):
            StripeProvider().normalize(payload)

    def test_minor_units(self):
        assert _to_minor_units(Decimal("391"), "USD") == 39100
        assert _to_minor_units(Decimal("10.005"), "usd") == 1001
        assert _to_minor_units(Decimal("5000"), "JPY") == 5000
        assert _from_minor_units(None, "USD") is None
        assert _from_minor_units(5000, "JPY") == Decimal("5000")
        assert _from_minor_units("39100", "USD") == Decimal("391")


class TestMonCash:
    def test_successful_payment(self):
        payload = {
            "orderId": "GETIN-7",
            "transactionId": "2154879",
            "status": "Successful",
            "amount": "391",
        }

        event = MonCashProvider().normalize(payload)

        assert event.provider_reference == "GETIN-7"
        assert event.provider_transaction_id == "2154879"
        assert event.outcome == PaymentOutcome.SUCCEEDED
        assert event.amount == Decimal("391")
        assert event.currency == "HTG"

    def test_unknown_status_is_pending(self):
        event = MonCashProvider().normalize(
            {"orderId": "GETIN-7", "transactionId": "1", "status": "initiated"}
        )
        assert event.outcome == PaymentOutcome.PENDING
        assert event.amount is None

    @pytest.mark.parametrize(
        "payload",
        [
            {"transactionId": "1"},
            {"orderId": "GETIN-7"},
            {"orderId": "ORDER-7", "transactionId": "1"},
            {"orderId": ["GETIN-7"], "transactionId": "1"},
            {"orderId": "GETIN-7", "transactionId": "1", "amount": "a lot"},
            {"orderId": "GETIN-7", "transactionId": "1", "amount": {"value": 391}},
        ],
    )
    def test_malformed(self, payload):
        with pytest.raises(MalformedPayload):
            MonCashProvider().normalize(payload)


class TestPayPal:
    def _payload(self, event_type="PAYMENT.CAPTURE.COMPLETED"):
        return {
            "id": "WH-1",
            "event_type": event_type,
            "resource": {
                "id": "CAPTURE-1",
                "custom_id": "42",
                "amount": {"value": "391.00", "currency_code": "usd"},
                "supplementary_data": {"related_ids": {"order_id": "ORDER-9"}},
            },
        }

    def test_completed_capture(self):
        event = PayPalProvider().normalize(self._payload())

        assert event.provider_reference == "ORDER-9"
        assert event.provider_transaction_id == "WH-1"
        assert event.outcome == PaymentOutcome.SUCCEEDED
        assert event.amount == Decimal("391.00")
        assert event.currency == "USD"
        assert event.booking_id == 42

    def test_denied_capture(self):
        event = PayPalProvider().normalize(self._payload("PAYMENT.CAPTURE.DENIED"))
        assert event.outcome == PaymentOutcome.FAILED

    def test_other_events_are_ignored(self):
        assert PayPalProvider().normalize(self._payload("CHECKOUT.ORDER.APPROVED")) is None

    def test_missing_resource_is_malformed(self):
        with pytest.raises(MalformedPayload):
            PayPalProvider().normalize({"id": "WH-1", "event_type": "PAYMENT.CAPTURE.COMPLETED"})

    @pytest.mark.parametrize(
        "resource",
        [
            {"id": "C1", "amount": "391"},
            {"id": "C1", "amount": {"value": "lots", "currency_code": "USD"}},
            {"id": "C1", "supplementary_data": "ORDER-9"},
            {"id": "C1", "supplementary_data": {"related_ids": ["ORDER-9"]}},
            {"id": {"capture": "C1"}},
        ],
    )
    def test_nested_fields_of_the_wrong_type_are_malformed(self, resource):
        payload = {"id": "WH-1", "event_type": "PAYMENT.CAPTURE.COMPLETED", "resource": resource}
        with pytest.raises(MalformedPayload):
            PayPalProvider().normalize(payload)
