from __future__ import annotations

from types import SimpleNamespace

import pytest
import stripe
from django.urls import reverse

from bookings.models import Booking
from payments.models import Payment

pytestmark = pytest.mark.django_db

URL = reverse("payments:create")


@pytest.fixture
def booking(booking_factory):
    return booking_factory()


@pytest.fixture
def guest_client(api_client, guest_user):
    api_client.force_authenticate(user=guest_user)
    return api_client


def test_moncash_checkout_redirect(guest_client, booking):
    response = guest_client.post(URL, {"booking": booking.pk, "provider": "moncash"}, format="json")

    assert response.status_code == 201
    payment = Payment.objects.get(booking=booking)
    body = response.json()
    assert payment.status == Payment.Status.PENDING
    assert payment.provider_reference == f"GETIN-{payment.pk}"
    assert body["payment"]["provider_reference"] == payment.provider_reference
    assert f"orderId=GETIN-{payment.pk}" in body["redirect_url"]
    assert body["client_secret"] is None


def test_stripe_intent_returns_client_secret(guest_client, booking, settings, monkeypatch):
    settings.STRIPE_SECRET_KEY = "sk_test_123"
    calls = []

    def create(**kwargs):
        calls.append(kwargs)
        return SimpleNamespace(id="pi_new", client_secret="pi_new_secret")

    monkeypatch.setattr(stripe.PaymentIntent, "create", create)

    response = guest_client.post(URL, {"booking": booking.pk, "provider": "stripe"}, format="json")

    assert response.status_code == 201
    assert response.json()["client_secret"] == "pi_new_secret"
    assert Payment.objects.get(booking=booking).provider_reference == "pi_new"
    # HTG is charged in cents by Stripe.
    assert calls[0]["amount"] == 39100
    assert calls[0]["currency"] == "htg"


def test_card_decline_is_a_payment_failure(guest_client, booking, settings, monkeypatch):
    settings.STRIPE_SECRET_KEY = "sk_test_123"

    def create(**kwargs):
        raise stripe.CardError("declined", None, "card_declined")

    monkeypatch.setattr(stripe.PaymentIntent, "create", create)

    response = guest_client.post(URL, {"booking": booking.pk, "provider": "stripe"}, format="json")

    assert response.status_code == 400
    assert response.json()["error"] == "PaymentFailed"


def test_unconfigured_provider_is_unavailable(guest_client, booking, settings):
    settings.STRIPE_SECRET_KEY = ""

    response = guest_client.post(URL, {"booking": booking.pk, "provider": "stripe"}, format="json")

    assert response.status_code == 503
    assert response.json()["error"] == "ServiceUnavailable"


def test_paid_booking_cannot_be_paid_again(guest_client, booking_factory):
    booking = booking_factory(payment_status=Booking.PaymentStatus.CAPTURED)

    response = guest_client.post(URL, {"booking": booking.pk, "provider": "moncash"}, format="json")

    assert response.status_code == 400
    assert response.json()["error"] == "PaymentNotAllowed"
    assert not Payment.objects.exists()


def test_only_the_guest_can_pay(api_client, other_user, booking):
    api_client.force_authenticate(user=other_user)

    response = api_client.post(URL, {"booking": booking.pk, "provider": "moncash"}, format="json")

    assert response.status_code == 404
    assert response.json()["error"] == "BookingNotFound"


def test_requires_authentication(api_client, booking):
    response = api_client.post(URL, {"booking": booking.pk, "provider": "moncash"}, format="json")

    assert response.status_code == 401
