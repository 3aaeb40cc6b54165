from __future__ import annotations

from decimal import Decimal

from core.money import minor_units, quantize_money, to_decimal


def test_htg_rounds_half_up_to_whole_gourdes():
    assert quantize_money(Decimal("32.5"), "HTG") == Decimal("33")
    assert quantize_money(Decimal("32.49"), "HTG") == Decimal("32")


def test_two_decimal_currencies_round_to_cents():
    assert quantize_money(Decimal("10.005"), "USD") == Decimal("10.01")
    assert quantize_money(Decimal("10.004"), "usd") == Decimal("10.00")


def test_unknown_currency_defaults_to_two_places():
    assert minor_units("XYZ") == 2
    assert minor_units("") == 2


def test_to_decimal_falls_back_on_garbage():
    assert to_decimal("12.50") == Decimal("12.50")
    assert to_decimal(None) == Decimal("0")
    assert to_decimal("abc", Decimal("1")) == Decimal("1")
    assert to_decimal("", None) is None
