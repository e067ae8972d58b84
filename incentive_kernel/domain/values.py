"""
Values -- Immutable, self-validating domain value objects.

Responsibility:
    Provides the primitive types every incentive computation is built from:
    Money, Percentage, DateRange and Target.  These replace bare Decimal,
    str and date values wherever plan or payout data appears in domain logic.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Imported by every other domain module.  No outward dependencies except
    incentive_kernel.domain.currency and incentive_kernel.exceptions.

Invariants enforced:
    - Money pairs a Decimal amount with an ISO 4217 code; arithmetic and
      ordering across currencies raise CurrencyMismatchError.
    - Percentage is never negative.
    - Target value is strictly positive, so an achievement ratio is always
      defined.
    - DateRange bounds are inclusive and ordered.

Failure modes:
    - ValidationError subclasses on construction with invalid values.
    - CurrencyMismatchError when Money operations mix currencies.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum

from incentive_kernel.domain.currency import CurrencyRegistry
from incentive_kernel.exceptions import (
    CurrencyMismatchError,
    InvalidTargetError,
    ValidationError,
)

HUNDRED = Decimal("100")
PERCENT_QUANTUM = Decimal("0.0001")


def _to_decimal(value: Decimal | int | str, label: str) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        raise ValidationError(f"{label} must not be a float: {value!r}")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"Invalid {label}: {value!r}") from e


# =============================================================================
# Money
# =============================================================================


@dataclass(frozen=True, slots=True)
class Money:
    """
    Monetary amount value object.

    Contract:
        Pairs a Decimal amount with its currency code -- they are NEVER
        separated.  A Calculation's amounts all share the base salary's
        currency for the aggregate's lifetime.

    Guarantees:
        - Immutable and hashable
        - amount is always a Decimal (never float)
        - currency is always a valid, upper-case ISO 4217 code
        - add, subtract, apply_percentage and ordering enforce same currency

    Non-goals:
        - Does NOT perform currency conversion
        - Does NOT auto-round -- callers must explicitly call .round()
    """

    amount: Decimal
    currency: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", _to_decimal(self.amount, "amount"))
        object.__setattr__(self, "currency", CurrencyRegistry.validate(self.currency))

    @classmethod
    def of(cls, amount: Decimal | str | int, currency: str) -> Money:
        return cls(amount=_to_decimal(amount, "amount"), currency=currency)

    @classmethod
    def zero(cls, currency: str) -> Money:
        return cls(amount=Decimal("0"), currency=currency)

    @property
    def is_zero(self) -> bool:
        return self.amount == 0

    @property
    def is_positive(self) -> bool:
        return self.amount > 0

    @property
    def is_negative(self) -> bool:
        return self.amount < 0

    def _check_currency(self, other: Money, operation: str) -> None:
        if self.currency != other.currency:
            raise CurrencyMismatchError(self.currency, other.currency, operation)

    def round(self, rounding: str = ROUND_HALF_UP) -> Money:
        """Round to the currency's minor units."""
        places = CurrencyRegistry.get_decimal_places(self.currency)
        quantum = Decimal(1).scaleb(-places)
        return Money(self.amount.quantize(quantum, rounding=rounding), self.currency)

    def add(self, other: Money) -> Money:
        self._check_currency(other, "add")
        return Money(self.amount + other.amount, self.currency)

    def subtract(self, other: Money) -> Money:
        self._check_currency(other, "subtract")
        return Money(self.amount - other.amount, self.currency)

    def apply_percentage(self, percentage: Percentage) -> Money:
        """Return amount x percentage / 100, unrounded."""
        return Money(self.amount * percentage.value / HUNDRED, self.currency)

    def __add__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        return self.add(other)

    def __sub__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        return self.subtract(other)

    def __neg__(self) -> Money:
        return Money(-self.amount, self.currency)

    def __lt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other, "compare")
        return self.amount < other.amount

    def __le__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other, "compare")
        return self.amount <= other.amount

    def __gt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other, "compare")
        return self.amount > other.amount

    def __ge__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other, "compare")
        return self.amount >= other.amount

    def __str__(self) -> str:
        return f"{self.amount} {self.currency}"

    def __repr__(self) -> str:
        return f"Money({self.amount!r}, {self.currency!r})"


# =============================================================================
# Percentage
# =============================================================================


@dataclass(frozen=True, slots=True, order=True)
class Percentage:
    """
    Non-negative percentage (50 means 50%).  Achievements may exceed 100.

    Construction does not round; ``calculate`` rounds the derived ratio to
    four decimal places.
    """

    value: Decimal

    def __post_init__(self) -> None:
        value = _to_decimal(self.value, "percentage")
        if value < 0:
            raise ValidationError(f"Percentage cannot be negative: {value}")
        object.__setattr__(self, "value", value)

    @classmethod
    def of(cls, value: Decimal | int | str) -> Percentage:
        return cls(_to_decimal(value, "percentage"))

    @classmethod
    def zero(cls) -> Percentage:
        return cls(Decimal("0"))

    @classmethod
    def full(cls) -> Percentage:
        return cls(HUNDRED)

    @classmethod
    def calculate(cls, actual: Decimal, target: Decimal) -> Percentage:
        """actual / target x 100, rounded to four places.

        Raises:
            ValidationError: target is zero or negative, or actual is negative.
        """
        actual = _to_decimal(actual, "actual value")
        target = _to_decimal(target, "target value")
        if target <= 0:
            raise InvalidTargetError(
                f"Achievement is undefined for target {target}; target must be positive"
            )
        if actual < 0:
            raise ValidationError(f"Actual value cannot be negative: {actual}")
        ratio = actual / target * HUNDRED
        return cls(ratio.quantize(PERCENT_QUANTUM, rounding=ROUND_HALF_UP))

    def to_fraction(self) -> Decimal:
        return self.value / HUNDRED

    @property
    def is_zero(self) -> bool:
        return self.value == 0

    def __str__(self) -> str:
        return f"{self.value}%"


# =============================================================================
# DateRange
# =============================================================================


@dataclass(frozen=True, slots=True)
class DateRange:
    """Inclusive calendar range used for plan periods and eligibility windows."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValidationError(
                f"Range start {self.start} is after end {self.end}"
            )

    @classmethod
    def for_month(cls, year: int, month: int) -> DateRange:
        last = calendar.monthrange(year, month)[1]
        return cls(date(year, month, 1), date(year, month, last))

    @classmethod
    def for_quarter(cls, year: int, quarter: int) -> DateRange:
        if quarter not in (1, 2, 3, 4):
            raise ValidationError(f"Quarter must be 1-4, got {quarter}")
        first_month = (quarter - 1) * 3 + 1
        start = date(year, first_month, 1)
        return cls(start, cls.for_month(year, first_month + 2).end)

    @classmethod
    def for_year(cls, year: int) -> DateRange:
        return cls(date(year, 1, 1), date(year, 12, 31))

    @classmethod
    def for_financial_year(cls, start_year: int) -> DateRange:
        """April 1 of start_year through March 31 of the following year."""
        return cls(date(start_year, 4, 1), date(start_year + 1, 3, 31))

    @property
    def total_days(self) -> int:
        return (self.end - self.start).days + 1

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    def overlaps(self, other: DateRange) -> bool:
        return self.start <= other.end and other.start <= self.end

    def intersection(self, other: DateRange) -> DateRange | None:
        if not self.overlaps(other):
            return None
        return DateRange(max(self.start, other.start), min(self.end, other.end))

    def overlap_percentage(self, other: DateRange) -> Percentage:
        """Share of this range covered by ``other``, in percent."""
        overlap = self.intersection(other)
        if overlap is None:
            return Percentage.zero()
        ratio = Decimal(overlap.total_days) / Decimal(self.total_days) * HUNDRED
        return Percentage(ratio.quantize(PERCENT_QUANTUM, rounding=ROUND_HALF_UP))

    def __str__(self) -> str:
        return f"{self.start.isoformat()}..{self.end.isoformat()}"


# =============================================================================
# Target
# =============================================================================


class AchievementType(str, Enum):
    AMOUNT = "amount"
    UNITS = "units"
    PERCENTAGE = "percentage"


@dataclass(frozen=True, slots=True)
class Target:
    """
    Plan target.

    Guarantees:
        - target_value > 0 (a zero target is rejected here, at plan creation)
        - 0 <= minimum_threshold <= target_value
    """

    target_value: Decimal
    minimum_threshold: Decimal = Decimal("0")
    achievement_type: AchievementType = AchievementType.AMOUNT
    metric_unit: str | None = None

    def __post_init__(self) -> None:
        target_value = _to_decimal(self.target_value, "target value")
        threshold = _to_decimal(self.minimum_threshold, "minimum threshold")
        if target_value <= 0:
            raise InvalidTargetError(f"Target value must be positive, got {target_value}")
        if threshold < 0:
            raise InvalidTargetError(f"Minimum threshold cannot be negative, got {threshold}")
        if threshold > target_value:
            raise InvalidTargetError(
                f"Minimum threshold {threshold} exceeds target value {target_value}"
            )
        object.__setattr__(self, "target_value", target_value)
        object.__setattr__(self, "minimum_threshold", threshold)

    def achievement(self, actual_value: Decimal) -> Percentage:
        return Percentage.calculate(actual_value, self.target_value)

    def meets_minimum_threshold(self, actual_value: Decimal) -> bool:
        return _to_decimal(actual_value, "actual value") >= self.minimum_threshold
