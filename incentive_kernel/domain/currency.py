"""Currency -- ISO 4217 registry and precision-derived rounding."""

from dataclasses import dataclass
from decimal import Decimal
from typing import ClassVar

from incentive_kernel.exceptions import InvalidCurrencyError


@dataclass(frozen=True)
class CurrencyInfo:
    """Information about a single ISO 4217 currency."""

    code: str
    decimal_places: int
    name: str

    @property
    def quantum(self) -> Decimal:
        """Smallest unit, for Decimal.quantize()."""
        return Decimal(1).scaleb(-self.decimal_places)


class CurrencyRegistry:
    """Registry of the ISO 4217 currencies incentive plans are paid in."""

    _CURRENCIES: ClassVar[dict[str, CurrencyInfo]] = {
        info.code: info
        for info in (
            CurrencyInfo("INR", 2, "Indian Rupee"),
            CurrencyInfo("USD", 2, "US Dollar"),
            CurrencyInfo("EUR", 2, "Euro"),
            CurrencyInfo("GBP", 2, "Pound Sterling"),
            CurrencyInfo("AED", 2, "UAE Dirham"),
            CurrencyInfo("AUD", 2, "Australian Dollar"),
            CurrencyInfo("BDT", 2, "Bangladeshi Taka"),
            CurrencyInfo("BRL", 2, "Brazilian Real"),
            CurrencyInfo("CAD", 2, "Canadian Dollar"),
            CurrencyInfo("CHF", 2, "Swiss Franc"),
            CurrencyInfo("CNY", 2, "Yuan Renminbi"),
            CurrencyInfo("DKK", 2, "Danish Krone"),
            CurrencyInfo("HKD", 2, "Hong Kong Dollar"),
            CurrencyInfo("IDR", 2, "Rupiah"),
            CurrencyInfo("LKR", 2, "Sri Lanka Rupee"),
            CurrencyInfo("MXN", 2, "Mexican Peso"),
            CurrencyInfo("MYR", 2, "Malaysian Ringgit"),
            CurrencyInfo("NOK", 2, "Norwegian Krone"),
            CurrencyInfo("NPR", 2, "Nepalese Rupee"),
            CurrencyInfo("NZD", 2, "New Zealand Dollar"),
            CurrencyInfo("PHP", 2, "Philippine Peso"),
            CurrencyInfo("PKR", 2, "Pakistan Rupee"),
            CurrencyInfo("QAR", 2, "Qatari Rial"),
            CurrencyInfo("SAR", 2, "Saudi Riyal"),
            CurrencyInfo("SEK", 2, "Swedish Krona"),
            CurrencyInfo("SGD", 2, "Singapore Dollar"),
            CurrencyInfo("THB", 2, "Baht"),
            CurrencyInfo("ZAR", 2, "Rand"),
            CurrencyInfo("JPY", 0, "Yen"),
            CurrencyInfo("KRW", 0, "Won"),
            CurrencyInfo("VND", 0, "Dong"),
            CurrencyInfo("BHD", 3, "Bahraini Dinar"),
            CurrencyInfo("KWD", 3, "Kuwaiti Dinar"),
            CurrencyInfo("OMR", 3, "Rial Omani"),
        )
    }

    DEFAULT_DECIMAL_PLACES: ClassVar[int] = 2

    @classmethod
    def is_valid(cls, code: str) -> bool:
        if not code or not isinstance(code, str):
            return False
        return code.upper().strip() in cls._CURRENCIES

    @classmethod
    def get_info(cls, code: str) -> CurrencyInfo | None:
        if not code or not isinstance(code, str):
            return None
        return cls._CURRENCIES.get(code.upper().strip())

    @classmethod
    def get_decimal_places(cls, code: str) -> int:
        info = cls.get_info(code)
        return info.decimal_places if info else cls.DEFAULT_DECIMAL_PLACES

    @classmethod
    def validate(cls, code: str) -> str:
        """Validate and normalize a currency code.

        Raises:
            InvalidCurrencyError: not a 3-letter code known to the registry.
        """
        if not code or not isinstance(code, str):
            raise InvalidCurrencyError(str(code))
        normalized = code.upper().strip()
        if len(normalized) != 3 or normalized not in cls._CURRENCIES:
            raise InvalidCurrencyError(code)
        return normalized

    @classmethod
    def all_codes(cls) -> frozenset[str]:
        return frozenset(cls._CURRENCIES)
