"""Unit tests for the ISO 4217 currency registry."""

from decimal import Decimal

import pytest

from incentive_kernel.domain.currency import CurrencyRegistry
from incentive_kernel.exceptions import InvalidCurrencyError


class TestCurrencyRegistry:

    @pytest.mark.parametrize("code", ["INR", "USD", "EUR", "JPY", "KWD"])
    def test_known_codes_valid(self, code):
        assert CurrencyRegistry.is_valid(code)

    @pytest.mark.parametrize("code", ["", "US", "USDX", "ABC", None])
    def test_invalid_codes(self, code):
        assert not CurrencyRegistry.is_valid(code)

    def test_validate_normalizes(self):
        assert CurrencyRegistry.validate("inr") == "INR"

    def test_validate_raises(self):
        with pytest.raises(InvalidCurrencyError):
            CurrencyRegistry.validate("ZZZ")

    def test_decimal_places(self):
        assert CurrencyRegistry.get_decimal_places("INR") == 2
        assert CurrencyRegistry.get_decimal_places("JPY") == 0
        assert CurrencyRegistry.get_decimal_places("BHD") == 3

    def test_quantum(self):
        assert CurrencyRegistry.get_info("KWD").quantum == Decimal("0.001")

    def test_all_codes_contains_inr(self):
        assert "INR" in CurrencyRegistry.all_codes()
