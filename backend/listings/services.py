"""Nightly pricing for prospective bookings."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from django.conf import settings

from core.errors import (
    BookingValidationError,
    CapacityExceeded,
    InvalidDateRange,
    StayLengthInvalid,
)
from core.money import ZERO, quantize_money
from promotions.models import PromoCode
from promotions.services import evaluate_promo_code, normalize_code

from .models import Listing

if TYPE_CHECKING:
    from core.store import BookingStore


@dataclass(frozen=True)
class PriceBreakdown:
    """Line items of a booking quote, each already rounded to the currency."""

    nights: int
    currency: str
    base_price_per_night: Decimal
    nightly_total: Decimal
    cleaning_fee: Decimal
    service_fee: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    promo_code: str = ""
    promo_message: str = ""

    def as_dict(self) -> dict[str, object]:
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, Decimal):
                data[key] = str(value)
        return data


def validate_stay(listing: Listing, check_in: date, check_out: date, guests: int) -> int:
    """Check dates, stay length and party size; return the number of nights."""
    if not check_in or not check_out or check_out <= check_in:
        raise InvalidDateRange()
    if guests is None or guests < 1:
        raise BookingValidationError("At least one guest is required.")
    nights = (check_out - check_in).days
    if nights < listing.min_stay:
        raise StayLengthInvalid(f"Minimum stay is {listing.min_stay} night(s).")
    if listing.max_stay is not None and nights > listing.max_stay:
        raise StayLengthInvalid(f"Maximum stay is {listing.max_stay} night(s).")
    if guests > listing.max_guests:
        raise CapacityExceeded(f"This listing accepts at most {listing.max_guests} guest(s).")
    return nights


def compute_booking_totals(
    *,
    listing: Listing,
    check_in: date,
    check_out: date,
    guests: int,
    promo: PromoCode | None = None,
    promo_code: str = "",
    promo_usage_count: int = 0,
    now: datetime | None = None,
) -> PriceBreakdown:
    """
    Compute the price of a stay:
    - Nightly total: nights * listing.base_price_per_night
    - Service fee: settings.BOOKING_SERVICE_FEE_RATE * (nightly total + cleaning fee)
    - Tax: settings.BOOKING_TAX_RATE * (nightly total + cleaning fee)
    - Discount: from ``promo`` when it applies, else zero
    - Total: nightly + cleaning + service fee + tax - discount, never below zero

    Each line item is rounded half-up to the listing currency once; the total
    is a plain sum of the rounded items.
    """
    nights = validate_stay(listing, check_in, check_out, guests)
    currency = listing.currency or settings.BOOKING_DEFAULT_CURRENCY

    def money(value: Decimal) -> Decimal:
        return quantize_money(value, currency)

    base_price = money(listing.base_price_per_night)
    nightly_total = money(listing.base_price_per_night * nights)
    cleaning_fee = money(listing.cleaning_fee or ZERO)
    fee_base = nightly_total + cleaning_fee
    service_fee = money(fee_base * settings.BOOKING_SERVICE_FEE_RATE)
    tax_amount = money(fee_base * settings.BOOKING_TAX_RATE)

    discount_amount = ZERO
    applied_code = ""
    promo_message = ""
    if promo is not None or promo_code:
        check = evaluate_promo_code(
            promo,
            listing_id=listing.pk,
            currency=currency,
            base_amount=fee_base,
            guest_usage_count=promo_usage_count,
            now=now,
        )
        if check.is_valid:
            discount_amount = check.discount
            applied_code = promo.code
        else:
            promo_message = check.message

    total_amount = nightly_total + cleaning_fee + service_fee + tax_amount - discount_amount
    if total_amount < ZERO:
        total_amount = ZERO

    return PriceBreakdown(
        nights=nights,
        currency=currency,
        base_price_per_night=base_price,
        nightly_total=nightly_total,
        cleaning_fee=cleaning_fee,
        service_fee=service_fee,
        tax_amount=tax_amount,
        discount_amount=discount_amount,
        total_amount=total_amount,
        promo_code=applied_code,
        promo_message=promo_message,
    )


class PricingEngine:
    """Quotes stays for a listing, resolving promo codes through the store."""

    def __init__(self, store: BookingStore | None = None):
        if store is None:
            from core.store import DjangoStore

            store = DjangoStore()
        self.store = store

    def resolve_promo(self, promo_code: str | None, guest_id: int | None) -> tuple[PromoCode | None, int]:
        code = normalize_code(promo_code)
        if not code:
            return None, 0
        promo = self.store.get_promo_code(code)
        usage = 0
        if promo is not None and guest_id is not None:
            usage = self.store.promo_usage_count(promo.pk, guest_id)
        return promo, usage

    def quote(
        self,
        listing: Listing,
        check_in: date,
        check_out: date,
        guests: int,
        promo_code: str | None = None,
        guest_id: int | None = None,
        *,
        now: datetime | None = None,
    ) -> PriceBreakdown:
        promo, usage = self.resolve_promo(promo_code, guest_id)
        return compute_booking_totals(
            listing=listing,
            check_in=check_in,
            check_out=check_out,
            guests=guests,
            promo=promo,
            promo_code=normalize_code(promo_code),
            promo_usage_count=usage,
            now=now,
        )
