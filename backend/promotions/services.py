"""Promo code eligibility and discount rules."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from django.utils import timezone

from core.money import ZERO, quantize_money

from .models import PromoCode


@dataclass(frozen=True)
class PromoCheck:
    """Outcome of checking a promo code against a prospective booking."""

    is_valid: bool
    discount: Decimal = ZERO
    message: str = ""


def normalize_code(code: str | None) -> str:
    return (code or "").strip().upper()


def compute_discount(promo: PromoCode, base_amount: Decimal, currency: str) -> Decimal:
    """Return the discount for ``base_amount``, never more than the amount itself."""
    if promo.discount_type == PromoCode.DiscountType.PERCENTAGE:
        discount = quantize_money(base_amount * promo.discount_value / Decimal("100"), currency)
        if promo.max_discount_amount is not None:
            discount = min(discount, quantize_money(promo.max_discount_amount, currency))
    else:
        discount = quantize_money(promo.discount_value, currency)
    return max(ZERO, min(discount, base_amount))


def evaluate_promo_code(
    promo: PromoCode | None,
    *,
    listing_id: int,
    currency: str,
    base_amount: Decimal,
    guest_usage_count: int = 0,
    now: datetime | None = None,
) -> PromoCheck:
    """
    Decide whether ``promo`` applies and how much it takes off.

    ``base_amount`` is the nightly total plus cleaning fee, before platform
    fees and tax.
    """
    if promo is None:
        return PromoCheck(False, message="Invalid promo code.")
    if not promo.is_active:
        return PromoCheck(False, message="This promo code is no longer active.")
    now = now or timezone.now()
    if promo.valid_from and now < promo.valid_from:
        return PromoCheck(False, message="This promo code is not active yet.")
    if promo.valid_until and now > promo.valid_until:
        return PromoCheck(False, message="This promo code has expired.")
    if promo.usage_limit is not None and promo.usage_count >= promo.usage_limit:
        return PromoCheck(False, message="This promo code has reached its usage limit.")
    if promo.per_user_limit and guest_usage_count >= promo.per_user_limit:
        return PromoCheck(False, message="You have already used this promo code.")
    if promo.listing_id and promo.listing_id != listing_id:
        return PromoCheck(False, message="This promo code does not apply to this listing.")
    if (promo.currency or "").upper() != (currency or "").upper():
        return PromoCheck(False, message=f"This promo code is not valid for {currency} bookings.")
    if base_amount < promo.min_booking_amount:
        minimum = quantize_money(promo.min_booking_amount, currency)
        return PromoCheck(False, message=f"Minimum booking amount is {minimum} {currency}.")
    return PromoCheck(True, discount=compute_discount(promo, base_amount, currency))
