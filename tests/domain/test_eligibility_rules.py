"""
Eligibility checks and the prorata factor.

All failed criteria are collected, not just the first, so the reason
stored on an Ineligible calculation is complete.
"""

from datetime import date
from decimal import Decimal

import pytest

from incentive_kernel.domain.eligibility import check_eligibility, prorata_factor
from incentive_kernel.domain.employee import Employee, EmployeeStatus
from incentive_kernel.domain.plan import IncentivePlan, PlanType
from incentive_kernel.domain.values import DateRange, Money, Percentage, Target
from incentive_kernel.exceptions import ValidationError

Q4 = DateRange.for_quarter(2024, 4)


def plan(minimum_tenure_days=None, active=True) -> IncentivePlan:
    result = IncentivePlan(
        code="Q4-TGT",
        name="Q4 target plan",
        plan_type=PlanType.TARGET_BASED,
        target=Target(Decimal("100000")),
        effective_period=DateRange.for_financial_year(2024),
        minimum_tenure_days=minimum_tenure_days,
    )
    return result.activate() if active else result


def employee(**overrides) -> Employee:
    values = dict(
        employee_code="E-1",
        base_salary=Money.of("50000", "INR"),
        date_of_joining=date(2023, 1, 1),
    )
    values.update(overrides)
    return Employee(**values)


class TestCheckEligibility:

    def test_active_full_period(self):
        result = check_eligibility(employee(), plan(), Q4)
        assert result.is_eligible
        assert result.prorata_factor == Percentage.full()
        assert not result.needs_proration

    @pytest.mark.parametrize("status", [
        EmployeeStatus.TERMINATED, EmployeeStatus.ON_LEAVE, EmployeeStatus.NOTICE_PERIOD,
    ])
    def test_ineligible_status(self, status):
        result = check_eligibility(employee(status=status), plan(), Q4)
        assert not result.is_eligible
        assert status.value in result.reason

    def test_probation_eligible_by_default(self):
        assert check_eligibility(employee(status=EmployeeStatus.PROBATION), plan(), Q4).is_eligible

    def test_custom_status_set(self):
        result = check_eligibility(
            employee(status=EmployeeStatus.PROBATION),
            plan(),
            Q4,
            eligible_statuses=frozenset({EmployeeStatus.ACTIVE}),
        )
        assert not result.is_eligible

    def test_inactive_plan(self):
        result = check_eligibility(employee(), plan(active=False), Q4)
        assert not result.is_eligible
        assert "not effective" in result.reason

    def test_joined_after_period(self):
        result = check_eligibility(employee(date_of_joining=date(2025, 1, 2)), plan(), Q4)
        assert not result.is_eligible
        assert "after period end" in result.reason

    def test_left_before_period(self):
        result = check_eligibility(
            employee(date_of_leaving=date(2024, 9, 30)), plan(), Q4,
        )
        assert "before period start" in result.reason

    def test_plan_tenure_overrides_default(self):
        newcomer = employee(date_of_joining=date(2024, 11, 1))
        assert not check_eligibility(newcomer, plan(), Q4, default_min_tenure_days=90).is_eligible
        assert check_eligibility(
            newcomer, plan(minimum_tenure_days=30), Q4, default_min_tenure_days=90,
        ).is_eligible

    def test_collects_every_failure(self):
        result = check_eligibility(
            employee(status=EmployeeStatus.TERMINATED, date_of_joining=date(2025, 2, 1)),
            plan(active=False),
            Q4,
            default_min_tenure_days=90,
        )
        assert len(result.failed_criteria) == 4
        assert result.prorata_factor.is_zero

    def test_mid_period_joiner_is_prorated(self):
        result = check_eligibility(employee(date_of_joining=date(2024, 11, 16)), plan(), Q4)
        assert result.is_eligible
        assert result.needs_proration
        assert result.prorata_factor == Percentage.of("50")


class TestProrataFactor:

    def test_full_overlap(self):
        assert prorata_factor(employee(), Q4) == Percentage.full()

    def test_leaver(self):
        leaver = employee(date_of_leaving=date(2024, 11, 15))
        # Oct 1 - Nov 15 = 46 of 92 days
        assert prorata_factor(leaver, Q4).value == Decimal("50.0000")

    def test_no_overlap(self):
        assert prorata_factor(employee(date_of_joining=date(2025, 6, 1)), Q4).is_zero

    def test_four_decimal_places(self):
        joiner = employee(date_of_joining=date(2024, 12, 1))
        # 31 / 92 = 33.69565...
        assert prorata_factor(joiner, Q4).value == Decimal("33.6957")


class TestEmployee:

    def test_leaving_before_joining_rejected(self):
        with pytest.raises(ValidationError):
            employee(date_of_leaving=date(2022, 12, 31))

    def test_negative_salary_rejected(self):
        with pytest.raises(ValidationError):
            employee(base_salary=Money.of("-1", "INR"))

    def test_tenure(self):
        assert employee().tenure_days(date(2023, 1, 31)) == 30
        assert employee().tenure_days(date(2022, 1, 1)) == 0
