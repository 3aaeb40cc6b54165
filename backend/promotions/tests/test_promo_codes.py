from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from django.urls import reverse
from django.utils import timezone

from promotions.models import PromoCode, PromoCodeUsage
from promotions.services import compute_discount, evaluate_promo_code, normalize_code

NOW = timezone.make_aware(datetime(2024, 6, 1, 12, 0))


def _promo(**overrides) -> PromoCode:
    values = {
        "code": "KREYOL10",
        "discount_type": PromoCode.DiscountType.PERCENTAGE,
        "discount_value": Decimal("10"),
        "currency": "HTG",
        "valid_from": NOW - timedelta(days=1),
        "per_user_limit": 1,
    }
    values.update(overrides)
    return PromoCode(**values)


def _check(promo, *, listing_id=1, currency="HTG", base=Decimal("325"), usage=0):
    return evaluate_promo_code(
        promo,
        listing_id=listing_id,
        currency=currency,
        base_amount=base,
        guest_usage_count=usage,
        now=NOW,
    )


def test_normalize_code():
    assert normalize_code("  kreyol10 ") == "KREYOL10"
    assert normalize_code(None) == ""


class TestComputeDiscount:
    def test_percentage_rounds_to_currency(self):
        assert compute_discount(_promo(), Decimal("325"), "HTG") == Decimal("33")
        assert compute_discount(_promo(), Decimal("325.55"), "USD") == Decimal("32.56")

    def test_percentage_cap(self):
        promo = _promo(max_discount_amount=Decimal("20"))
        assert compute_discount(promo, Decimal("325"), "HTG") == Decimal("20")

    def test_fixed_amount_never_exceeds_base(self):
        promo = _promo(discount_type=PromoCode.DiscountType.FIXED_AMOUNT, discount_value=Decimal("5000"))
        assert compute_discount(promo, Decimal("325"), "HTG") == Decimal("325")


class TestEvaluate:
    def test_valid(self):
        check = _check(_promo())
        assert check.is_valid
        assert check.discount == Decimal("33")

    def test_unknown(self):
        check = _check(None)
        assert not check.is_valid
        assert check.message == "Invalid promo code."

    @pytest.mark.parametrize(
        "overrides, message",
        [
            ({"is_active": False}, "no longer active"),
            ({"valid_from": NOW + timedelta(days=1)}, "not active yet"),
            ({"valid_until": NOW - timedelta(seconds=1)}, "expired"),
            ({"usage_limit": 5, "usage_count": 5}, "usage limit"),
            ({"listing_id": 99}, "does not apply to this listing"),
            ({"currency": "USD"}, "not valid for HTG"),
            ({"min_booking_amount": Decimal("500")}, "Minimum booking amount is 500 HTG"),
        ],
    )
    def test_rejections(self, overrides, message):
        check = _check(_promo(**overrides))
        assert not check.is_valid
        assert check.discount == Decimal("0")
        assert message in check.message

    def test_per_user_limit(self):
        assert not _check(_promo(), usage=1).is_valid
        assert _check(_promo(per_user_limit=0), usage=3).is_valid


@pytest.mark.django_db
class TestValidateEndpoint:
    URL = reverse("promotions:validate")

    @pytest.fixture
    def client(self, api_client, guest_user):
        api_client.force_authenticate(user=guest_user)
        return api_client

    def _body(self, listing, future_dates, code="kreyol10"):
        check_in, check_out = future_dates()
        return {
            "code": code,
            "listing": listing.pk,
            "check_in": check_in.isoformat(),
            "check_out": check_out.isoformat(),
            "guests": 2,
        }

    def test_valid_code_returns_discounted_quote(self, client, listing, future_dates):
        PromoCode.objects.create(
            code="kreyol10",
            discount_type=PromoCode.DiscountType.PERCENTAGE,
            discount_value=Decimal("10"),
        )

        response = client.post(self.URL, self._body(listing, future_dates), format="json")

        assert response.status_code == 200
        body = response.json()
        assert body["valid"] is True
        assert body["code"] == "KREYOL10"
        assert body["discount_amount"] == "33"
        assert body["quote"]["total_amount"] == "358"

    def test_used_code_is_invalid(self, client, listing, future_dates, guest_user, booking_factory):
        promo = PromoCode.objects.create(
            code="KREYOL10",
            discount_type=PromoCode.DiscountType.PERCENTAGE,
            discount_value=Decimal("10"),
        )
        PromoCodeUsage.objects.create(
            promo_code=promo,
            user=guest_user,
            booking=booking_factory(),
            discount_applied=Decimal("33"),
        )

        body = client.post(self.URL, self._body(listing, future_dates), format="json").json()

        assert body["valid"] is False
        assert body["message"] == "You have already used this promo code."
        assert body["quote"]["total_amount"] == "391"

    def test_unknown_code(self, client, listing, future_dates):
        body = client.post(self.URL, self._body(listing, future_dates, code="nope"), format="json").json()

        assert body == {
            "valid": False,
            "code": "NOPE",
            "discount_amount": "0",
            "message": "Invalid promo code.",
            "quote": body["quote"],
        }

    def test_unknown_listing(self, client, listing, future_dates):
        data = self._body(listing, future_dates)
        data["listing"] = listing.pk + 1000

        response = client.post(self.URL, data, format="json")

        assert response.status_code == 404
