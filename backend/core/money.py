"""Currency-aware rounding helpers."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

# Digits after the decimal point each currency is charged in.
CURRENCY_MINOR_UNITS = {
    "HTG": 0,
    "USD": 2,
    "EUR": 2,
    "CAD": 2,
}
ZERO = Decimal("0")


def minor_units(currency: str) -> int:
    return CURRENCY_MINOR_UNITS.get((currency or "").upper(), 2)


def quantize_money(value: Decimal, currency: str) -> Decimal:
    """Round ``value`` half-up to the currency's smallest unit."""
    exponent = Decimal(1).scaleb(-minor_units(currency))
    return value.quantize(exponent, rounding=ROUND_HALF_UP)


def to_decimal(value: object, default: Decimal = ZERO) -> Decimal:
    """Convert an arbitrary value to Decimal, falling back to default on failure."""
    if isinstance(value, Decimal):
        return value
    if value is None or value == "":
        return default
    try:
        return Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        return default
