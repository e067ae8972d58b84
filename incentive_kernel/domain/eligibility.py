"""
Eligibility -- who may earn an incentive for a period, and how much of it.

Responsibility:
    Pure check of an employee against a plan for one period.  Collects every
    failed criterion (not just the first) so the Ineligible reason recorded
    on the calculation is complete, and derives the prorata factor from the
    overlap of the employment window with the period.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from incentive_kernel.domain.employee import Employee, EmployeeStatus
from incentive_kernel.domain.plan import IncentivePlan
from incentive_kernel.domain.values import PERCENT_QUANTUM, DateRange, Percentage

DEFAULT_ELIGIBLE_STATUSES = frozenset({EmployeeStatus.ACTIVE, EmployeeStatus.PROBATION})


@dataclass(frozen=True)
class EligibilityResult:
    is_eligible: bool
    failed_criteria: tuple[str, ...]
    prorata_factor: Percentage

    @property
    def reason(self) -> str:
        return "; ".join(self.failed_criteria)

    @property
    def needs_proration(self) -> bool:
        return self.is_eligible and self.prorata_factor.value < 100


def prorata_factor(employee: Employee, period: DateRange) -> Percentage:
    """Eligible days in ``period`` / total period days x 100."""
    overlap = period.intersection(employee.employment_window)
    if overlap is None:
        return Percentage.zero()
    if overlap.total_days >= period.total_days:
        return Percentage.full()
    ratio = Decimal(overlap.total_days) / Decimal(period.total_days) * 100
    return Percentage(ratio.quantize(PERCENT_QUANTUM, rounding=ROUND_HALF_UP))


def check_eligibility(
    employee: Employee,
    plan: IncentivePlan,
    period: DateRange,
    *,
    eligible_statuses: frozenset[EmployeeStatus] = DEFAULT_ELIGIBLE_STATUSES,
    default_min_tenure_days: int = 0,
) -> EligibilityResult:
    failed: list[str] = []

    if employee.status not in eligible_statuses:
        failed.append(f"Employee status {employee.status.value} is not eligible")

    if not plan.is_effective_for(period):
        failed.append(
            f"Plan {plan.code} is not effective for {period} "
            f"(status {plan.status.value}, effective {plan.effective_period})"
        )

    if employee.date_of_joining > period.end:
        failed.append(
            f"Employee joined {employee.date_of_joining} after period end {period.end}"
        )

    if employee.date_of_leaving is not None and employee.date_of_leaving < period.start:
        failed.append(
            f"Employee left {employee.date_of_leaving} before period start {period.start}"
        )

    min_tenure = (
        plan.minimum_tenure_days
        if plan.minimum_tenure_days is not None
        else default_min_tenure_days
    )
    tenure = employee.tenure_days(period.end)
    if tenure < min_tenure:
        failed.append(f"Tenure {tenure} days is below the {min_tenure}-day minimum")

    if failed:
        return EligibilityResult(False, tuple(failed), Percentage.zero())
    return EligibilityResult(True, (), prorata_factor(employee, period))
