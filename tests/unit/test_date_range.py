"""Unit tests for DateRange: inclusive bounds, overlap and period factories."""

from datetime import date
from decimal import Decimal

import pytest

from incentive_kernel.domain.values import DateRange
from incentive_kernel.exceptions import ValidationError


class TestDateRange:

    def test_start_after_end_rejected(self):
        with pytest.raises(ValidationError):
            DateRange(date(2024, 2, 1), date(2024, 1, 31))

    def test_single_day(self):
        day = DateRange(date(2024, 1, 1), date(2024, 1, 1))
        assert day.total_days == 1

    def test_month_leap_year(self):
        feb = DateRange.for_month(2024, 2)
        assert feb.end == date(2024, 2, 29)
        assert feb.total_days == 29

    def test_quarter(self):
        q4 = DateRange.for_quarter(2024, 4)
        assert (q4.start, q4.end) == (date(2024, 10, 1), date(2024, 12, 31))
        assert q4.total_days == 92

    def test_bad_quarter(self):
        with pytest.raises(ValidationError):
            DateRange.for_quarter(2024, 5)

    def test_financial_year(self):
        fy = DateRange.for_financial_year(2024)
        assert (fy.start, fy.end) == (date(2024, 4, 1), date(2025, 3, 31))

    def test_contains_is_inclusive(self):
        q = DateRange.for_quarter(2024, 1)
        assert q.contains(date(2024, 1, 1))
        assert q.contains(date(2024, 3, 31))
        assert not q.contains(date(2024, 4, 1))

    def test_overlap_touching_edges(self):
        a = DateRange(date(2024, 1, 1), date(2024, 1, 31))
        b = DateRange(date(2024, 1, 31), date(2024, 2, 28))
        assert a.overlaps(b)
        assert a.intersection(b) == DateRange(date(2024, 1, 31), date(2024, 1, 31))

    def test_disjoint(self):
        a = DateRange.for_month(2024, 1)
        b = DateRange.for_month(2024, 3)
        assert not a.overlaps(b)
        assert a.intersection(b) is None
        assert a.overlap_percentage(b).is_zero

    def test_overlap_percentage(self):
        q4 = DateRange.for_quarter(2024, 4)
        half = DateRange(date(2024, 11, 16), date(2024, 12, 31))
        assert q4.overlap_percentage(half).value == Decimal("50.0000")

    def test_str(self):
        assert str(DateRange.for_month(2024, 1)) == "2024-01-01..2024-01-31"
