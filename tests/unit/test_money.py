"""
Unit tests for Money.

Verifies:
- Decimal-only amounts (float constructor prohibited)
- Currency validation and normalization
- Same-currency arithmetic and ordering
- Currency-precision rounding
"""

from decimal import ROUND_DOWN, Decimal

import pytest

from incentive_kernel.domain.values import Money, Percentage
from incentive_kernel.exceptions import (
    CurrencyMismatchError,
    InvalidCurrencyError,
    ValidationError,
)


class TestMoneyConstruction:

    def test_of_string(self):
        money = Money.of("100.50", "INR")
        assert money.amount == Decimal("100.50")
        assert money.currency == "INR"

    def test_of_int(self):
        assert Money.of(5000, "INR").amount == Decimal("5000")

    def test_float_rejected(self):
        with pytest.raises(ValidationError):
            Money.of(0.1, "INR")

    def test_garbage_rejected(self):
        with pytest.raises(ValidationError):
            Money.of("not a number", "INR")

    def test_currency_normalized(self):
        assert Money.of("1", " inr ").currency == "INR"

    def test_unknown_currency_rejected(self):
        with pytest.raises(InvalidCurrencyError) as exc_info:
            Money.of("1", "XYZ")
        assert exc_info.value.code == "INVALID_CURRENCY"

    def test_zero(self):
        zero = Money.zero("USD")
        assert zero.is_zero
        assert not zero.is_positive
        assert not zero.is_negative

    def test_hashable_and_equal_by_value(self):
        assert Money.of("10.0", "INR") == Money.of("10.00", "INR")
        assert len({Money.of("10", "INR"), Money.of("10.00", "INR")}) == 1


class TestMoneyArithmetic:

    def test_add(self):
        assert Money.of("1.25", "INR") + Money.of("2.50", "INR") == Money.of("3.75", "INR")

    def test_subtract_can_go_negative(self):
        result = Money.of("1", "INR") - Money.of("3", "INR")
        assert result.is_negative
        assert result == Money.of("-2", "INR")

    def test_negate(self):
        assert -Money.of("5", "INR") == Money.of("-5", "INR")

    def test_add_mixed_currency_raises(self):
        with pytest.raises(CurrencyMismatchError) as exc_info:
            Money.of("1", "INR") + Money.of("1", "USD")
        assert exc_info.value.operation == "add"

    def test_compare_mixed_currency_raises(self):
        with pytest.raises(CurrencyMismatchError):
            Money.of("1", "INR") < Money.of("1", "USD")

    def test_ordering(self):
        small, large = Money.of("10", "INR"), Money.of("20", "INR")
        assert small < large
        assert large >= small
        assert max(small, large) == large

    def test_apply_percentage_is_unrounded(self):
        result = Money.of("100", "INR").apply_percentage(Percentage.of("33.3333"))
        assert result.amount == Decimal("33.333300")

    def test_apply_percentage_keeps_currency(self):
        assert Money.of("100", "USD").apply_percentage(Percentage.of("10")).currency == "USD"


class TestMoneyRounding:

    def test_half_up_two_places(self):
        assert Money.of("10.555", "INR").round().amount == Decimal("10.56")

    def test_zero_decimal_currency(self):
        assert Money.of("1000.5", "JPY").round().amount == Decimal("1001")

    def test_three_decimal_currency(self):
        assert Money.of("1.2345", "KWD").round().amount == Decimal("1.235")

    def test_explicit_rounding_mode(self):
        assert Money.of("10.559", "INR").round(ROUND_DOWN).amount == Decimal("10.55")

    def test_round_is_idempotent(self):
        once = Money.of("2499.995", "INR").round()
        assert once.round() == once
