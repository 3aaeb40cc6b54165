from __future__ import annotations

import json
from decimal import Decimal

import pytest
import stripe
from django.core import mail
from django.urls import reverse

from bookings.models import Booking
from core.errors import ServiceUnavailable
from payments.models import Payment, ProcessedPaymentEvent, WebhookEvent

pytestmark = pytest.mark.django_db


def _url(provider: str) -> str:
    return reverse("payments:webhook", kwargs={"provider": provider})


def _post(client, provider, payload, **extra):
    body = payload if isinstance(payload, (str, bytes)) else json.dumps(payload)
    return client.post(_url(provider), data=body, content_type="application/json", **extra)


def _stripe_event(event_type="payment_intent.succeeded", event_id="evt_1", reference="pi_123"):
    return {
        "id": event_id,
        "type": event_type,
        "data": {
            "object": {
                "id": reference,
                "amount_received": 39100,
                "currency": "htg",
                "metadata": {},
            }
        },
    }


@pytest.fixture
def booking(booking_factory):
    return booking_factory()


@pytest.fixture
def stripe_payment(booking):
    return Payment.objects.create(
        booking=booking,
        provider="stripe",
        provider_reference="pi_123",
        amount=booking.total_amount,
        currency="HTG",
    )


def test_stripe_success_captures_booking(api_client, stripe_payment, booking):
    response = _post(api_client, "stripe", _stripe_event())

    assert response.status_code == 200
    assert response.json() == {"status": "applied"}
    stripe_payment.refresh_from_db()
    booking.refresh_from_db()
    assert stripe_payment.status == Payment.Status.COMPLETED
    assert booking.payment_status == Booking.PaymentStatus.CAPTURED

    record = WebhookEvent.objects.get()
    assert record.status == WebhookEvent.Status.APPLIED
    assert record.attempts == 1
    assert record.provider_reference == "pi_123"
    assert record.outcome == "succeeded"
    assert json.loads(record.raw_body)["id"] == "evt_1"
    # Guest and host both hear about the payment.
    assert len(mail.outbox) == 2


def test_redelivery_is_acknowledged_as_duplicate(api_client, stripe_payment):
    _post(api_client, "stripe", _stripe_event())

    response = _post(api_client, "stripe", _stripe_event())

    assert response.status_code == 200
    assert response.json() == {"status": "duplicate"}
    assert ProcessedPaymentEvent.objects.count() == 1
    assert WebhookEvent.objects.count() == 2


def test_sensitive_headers_are_not_stored(api_client, stripe_payment):
    _post(api_client, "stripe", _stripe_event(), HTTP_AUTHORIZATION="Bearer secret")

    headers = WebhookEvent.objects.get().headers
    assert "Authorization" not in headers
    assert "Content-Type" in headers


def test_stripe_signature_is_verified_when_secret_set(api_client, stripe_payment, settings, monkeypatch):
    settings.STRIPE_WEBHOOK_SECRET = "whsec_test"
    seen = {}

    def construct_event(payload, sig_header, secret):
        seen.update(sig_header=sig_header, secret=secret)
        return json.loads(payload)

    monkeypatch.setattr(stripe.Webhook, "construct_event", construct_event)

    response = _post(api_client, "stripe", _stripe_event(), HTTP_STRIPE_SIGNATURE="t=1,v1=abc")

    assert response.status_code == 200
    assert seen == {"sig_header": "t=1,v1=abc", "secret": "whsec_test"}


def test_bad_stripe_signature_is_rejected(api_client, stripe_payment, settings, monkeypatch):
    settings.STRIPE_WEBHOOK_SECRET = "whsec_test"

    def construct_event(payload, sig_header, secret):
        raise stripe.SignatureVerificationError("bad signature", sig_header)

    monkeypatch.setattr(stripe.Webhook, "construct_event", construct_event)

    response = _post(api_client, "stripe", _stripe_event())

    assert response.status_code == 400
    assert response.json()["error"] == "MalformedPayload"
    stripe_payment.refresh_from_db()
    assert stripe_payment.status == Payment.Status.PENDING
    assert WebhookEvent.objects.get().status == WebhookEvent.Status.REJECTED


def test_moncash_notification(api_client, booking):
    payment = Payment.objects.create(
        booking=booking, provider="moncash", amount=booking.total_amount, currency="HTG"
    )
    payment.provider_reference = f"GETIN-{payment.pk}"
    payment.save(update_fields=["provider_reference"])

    response = _post(
        api_client,
        "moncash",
        {
            "orderId": payment.provider_reference,
            "transactionId": "2154879",
            "status": "successful",
            "amount": "391",
        },
    )

    assert response.status_code == 200
    payment.refresh_from_db()
    assert payment.status == Payment.Status.COMPLETED
    assert payment.provider_transaction_id == "2154879"


def test_malformed_body_returns_400(api_client):
    response = _post(api_client, "moncash", {"status": "successful"})

    assert response.status_code == 400
    assert response.json()["error"] == "MalformedPayload"
    record = WebhookEvent.objects.get()
    assert record.status == WebhookEvent.Status.REJECTED
    assert "orderId" in record.error


@pytest.mark.parametrize(
    "provider,payload",
    [
        (
            "stripe",
            {
                "id": "evt_1",
                "type": "payment_intent.succeeded",
                "data": {"object": {"id": "pi_123", "amount_received": "12.5", "currency": "usd"}},
            },
        ),
        ("stripe", {"id": "evt_1", "type": "payment_intent.succeeded", "data": "oops"}),
        (
            "paypal",
            {
                "id": "WH-1",
                "event_type": "PAYMENT.CAPTURE.COMPLETED",
                "resource": {"id": "C1", "amount": "391"},
            },
        ),
        ("moncash", {"orderId": "GETIN-1", "transactionId": "1", "amount": {"value": 391}}),
    ],
)
def test_badly_typed_nested_fields_return_400(api_client, provider, payload):
    response = _post(api_client, provider, payload)

    assert response.status_code == 400
    assert response.json()["error"] == "MalformedPayload"
    record = WebhookEvent.objects.get()
    assert record.status == WebhookEvent.Status.REJECTED
    assert record.error
    assert not ProcessedPaymentEvent.objects.exists()


def test_invalid_json_returns_400(api_client):
    response = _post(api_client, "paypal", "{not json")

    assert response.status_code == 400
    assert WebhookEvent.objects.get().raw_body == "{not json"


def test_unknown_provider_returns_404(api_client):
    response = _post(api_client, "bitcoin", {})

    assert response.status_code == 404
    assert response.json()["error"] == "UnknownProvider"
    assert not WebhookEvent.objects.exists()


def test_unmatched_payment_is_acknowledged(api_client):
    response = _post(api_client, "stripe", _stripe_event(reference="pi_unknown"))

    assert response.status_code == 200
    assert response.json() == {"status": "not_found"}


def test_irrelevant_event_is_ignored(api_client):
    response = _post(api_client, "stripe", _stripe_event("customer.created"))

    assert response.json() == {"status": "ignored"}
    assert WebhookEvent.objects.get().status == WebhookEvent.Status.IGNORED


def test_contradictory_event_is_recorded_as_rejected(api_client, stripe_payment):
    response = _post(api_client, "stripe", _stripe_event("charge.refunded", event_id="evt_r"))

    assert response.status_code == 200
    assert response.json() == {"status": "rejected"}
    record = WebhookEvent.objects.get()
    assert record.error.startswith("InvalidRefundState")
    stripe_payment.refresh_from_db()
    assert stripe_payment.status == Payment.Status.PENDING


class _RecordingTask:
    def __init__(self, error: Exception | None = None):
        self.calls = []
        self.error = error

    def apply_async(self, args=None, countdown=None):
        if self.error is not None:
            raise self.error
        self.calls.append((args, countdown))


def _database_down(record, event, **kwargs):
    record.attempts += 1
    raise ServiceUnavailable()


def test_database_outage_queues_replay(api_client, stripe_payment, monkeypatch, settings):
    settings.WEBHOOK_REPLAY_COUNTDOWN_SECONDS = 5
    task = _RecordingTask()
    monkeypatch.setattr("payments.webhooks.apply_webhook_event", _database_down)
    monkeypatch.setattr("payments.tasks.replay_webhook_event", task)

    response = _post(api_client, "stripe", _stripe_event())

    record = WebhookEvent.objects.get()
    assert response.status_code == 200
    assert response.json() == {"status": "queued"}
    assert record.status == WebhookEvent.Status.QUEUED
    assert task.calls == [([record.pk], 5)]


def test_unqueueable_replay_returns_503(api_client, stripe_payment, monkeypatch):
    monkeypatch.setattr("payments.webhooks.apply_webhook_event", _database_down)
    monkeypatch.setattr(
        "payments.tasks.replay_webhook_event", _RecordingTask(ConnectionError("broker down"))
    )

    response = _post(api_client, "stripe", _stripe_event())

    assert response.status_code == 503
    assert response.json()["error"] == "ServiceUnavailable"


def test_stored_amount_is_in_major_units(api_client, stripe_payment):
    _post(api_client, "stripe", _stripe_event())

    assert WebhookEvent.objects.get().amount == Decimal("391.00")
