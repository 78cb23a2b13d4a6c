"""
Test suite for currency module

Money must stay exact: Decimal arithmetic, rounding to currency precision,
and no silent mixing of currencies.
"""

import pytest
from decimal import Decimal

from investment_core.currency import Money, Currency, check_precision, parse_decimal


class TestCurrency:

    def test_precision_and_code(self):
        assert Currency.USDT.code == "USDT"
        assert Currency.USDT.precision == 2

    def test_from_code_is_case_insensitive(self):
        assert Currency.from_code("usdt") == Currency.USDT

    def test_from_code_unknown(self):
        with pytest.raises(ValueError):
            Currency.from_code("XYZ")


class TestMoney:

    def test_defaults_to_usdt(self):
        assert Money(Decimal("10")).currency == Currency.USDT

    def test_rounds_half_up(self):
        assert Money(Decimal("1.005")).amount == Decimal("1.01")
        assert Money(Decimal("1.004")).amount == Decimal("1.00")

    def test_string_input_is_exact(self):
        assert Money("0.1") + Money("0.2") == Money("0.3")

    def test_arithmetic(self):
        a = Money(Decimal("100.00"))
        b = Money(Decimal("30.50"))
        assert (a + b).amount == Decimal("130.50")
        assert (a - b).amount == Decimal("69.50")
        assert (a * Decimal("0.05")).amount == Decimal("5.00")
        assert (-a).amount == Decimal("-100.00")

    def test_currency_mismatch(self):
        with pytest.raises(ValueError):
            Money(Decimal("1"), Currency.USD) + Money(Decimal("1"), Currency.EUR)
        with pytest.raises(ValueError):
            Money(Decimal("1"), Currency.USD) < Money(Decimal("1"), Currency.EUR)

    def test_ordering_and_min(self):
        small = Money(Decimal("190"))
        cap = Money(Decimal("200"))
        assert small < cap
        assert min(Money(Decimal("210")), cap) == cap

    def test_floor_zero(self):
        assert Money(Decimal("-5")).floor_zero().is_zero()
        assert Money(Decimal("5")).floor_zero() == Money(Decimal("5"))

    def test_predicates(self):
        assert Money.zero().is_zero()
        assert Money(Decimal("1")).is_positive()
        assert Money(Decimal("-1")).is_negative()

    def test_to_string(self):
        assert Money(Decimal("1234.5")).to_string() == "1,234.50 USDT"

    def test_dict_round_trip(self):
        money = Money(Decimal("42.10"), Currency.EUR)
        assert money.to_dict() == {"amount": "42.10", "currency": "EUR"}
        assert Money.from_dict(money.to_dict()) == money


class TestParseDecimal:

    def test_accepts_strings_and_ints(self):
        assert parse_decimal("10.50") == Decimal("10.50")
        assert parse_decimal(3) == Decimal("3")

    def test_rejects_float(self):
        with pytest.raises(ValueError):
            parse_decimal(10.5, "amount")

    def test_rejects_garbage(self):
        with pytest.raises(ValueError):
            parse_decimal("ten", "amount")

    def test_rejects_infinity(self):
        with pytest.raises(ValueError):
            parse_decimal("Infinity", "amount")


class TestCheckPrecision:

    def test_accepts_amounts_within_precision(self):
        assert check_precision(Decimal("10.5"), Currency.USDT) == Decimal("10.5")
        assert check_precision(Decimal("10.000"), Currency.USDT) == Decimal("10.000")
        assert check_precision(Decimal("100"), Currency.USD) == Decimal("100")

    def test_rejects_amounts_that_would_round(self):
        with pytest.raises(ValueError, match="more than 2 decimal places for USDT"):
            check_precision(Decimal("9.995"), Currency.USDT)
        with pytest.raises(ValueError, match="withdrawal amount"):
            check_precision(Decimal("0.004"), Currency.USD, "withdrawal amount")
