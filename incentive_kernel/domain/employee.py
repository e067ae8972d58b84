"""Employee snapshot as supplied by the Employee provider."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from uuid import UUID, uuid4

from incentive_kernel.domain.values import DateRange, Money
from incentive_kernel.exceptions import ValidationError


class EmployeeStatus(str, Enum):
    ACTIVE = "active"
    PROBATION = "probation"
    ON_LEAVE = "on_leave"
    NOTICE_PERIOD = "notice_period"
    TERMINATED = "terminated"


@dataclass(frozen=True)
class Employee:
    employee_code: str
    base_salary: Money
    date_of_joining: date
    id: UUID = field(default_factory=uuid4)
    status: EmployeeStatus = EmployeeStatus.ACTIVE
    date_of_leaving: date | None = None
    manager_id: UUID | None = None

    def __post_init__(self) -> None:
        if self.base_salary.is_negative:
            raise ValidationError("Base salary cannot be negative")
        if self.date_of_leaving is not None and self.date_of_leaving < self.date_of_joining:
            raise ValidationError("Date of leaving precedes date of joining")

    @property
    def employment_window(self) -> DateRange:
        """Joining through leaving; open-ended employment runs to date.max."""
        return DateRange(self.date_of_joining, self.date_of_leaving or date.max)

    def tenure_days(self, as_of: date) -> int:
        if as_of < self.date_of_joining:
            return 0
        return (as_of - self.date_of_joining).days
