"""
Collaborator interfaces consumed by the kernel, with dict-backed defaults.

The Plan and Employee providers are read-only during a computation.  The
static implementations satisfy the protocols for wiring and tests; a
deployment replaces them with HR/plan-store backed versions.
"""

from __future__ import annotations

from typing import Mapping, Protocol
from uuid import UUID

from incentive_kernel.domain.employee import Employee
from incentive_kernel.domain.plan import IncentivePlan
from incentive_kernel.exceptions import EmployeeNotFoundError, PlanNotFoundError


class PlanProvider(Protocol):
    def get_plan(self, plan_id: UUID) -> IncentivePlan:
        """Return the plan or raise PlanNotFoundError."""
        ...


class EmployeeProvider(Protocol):
    def get_employee(self, employee_id: UUID) -> Employee:
        """Return the employee or raise EmployeeNotFoundError."""
        ...

    def employees_on_plan(self, plan_id: UUID) -> tuple[UUID, ...]:
        """Employees assigned to the plan, for batch runs."""
        ...


class StaticPlanProvider:
    """Default PlanProvider backed by a simple dict."""

    def __init__(self, plans: Mapping[UUID, IncentivePlan] | None = None) -> None:
        self._plans: dict[UUID, IncentivePlan] = dict(plans or {})

    def put(self, plan: IncentivePlan) -> None:
        self._plans[plan.id] = plan

    def get_plan(self, plan_id: UUID) -> IncentivePlan:
        try:
            return self._plans[plan_id]
        except KeyError:
            raise PlanNotFoundError(plan_id) from None


class StaticEmployeeProvider:
    """Default EmployeeProvider backed by dicts of employees and assignments."""

    def __init__(
        self,
        employees: Mapping[UUID, Employee] | None = None,
        assignments: Mapping[UUID, tuple[UUID, ...]] | None = None,
    ) -> None:
        self._employees: dict[UUID, Employee] = dict(employees or {})
        self._assignments: dict[UUID, tuple[UUID, ...]] = dict(assignments or {})

    def put(self, employee: Employee, *plan_ids: UUID) -> None:
        self._employees[employee.id] = employee
        for plan_id in plan_ids:
            current = self._assignments.get(plan_id, ())
            if employee.id not in current:
                self._assignments[plan_id] = current + (employee.id,)

    def get_employee(self, employee_id: UUID) -> Employee:
        try:
            return self._employees[employee_id]
        except KeyError:
            raise EmployeeNotFoundError(employee_id) from None

    def employees_on_plan(self, plan_id: UUID) -> tuple[UUID, ...]:
        return self._assignments.get(plan_id, ())


class StaticApproverDirectory:
    """Default ApproverDirectory: one approver per level, shared by everyone.

    ``overrides`` maps an employee id to its own level map, for
    employees whose chain differs from the default.
    """

    def __init__(
        self,
        levels: Mapping[int, UUID] | None = None,
        overrides: Mapping[UUID, Mapping[int, UUID]] | None = None,
    ) -> None:
        self._levels: dict[int, UUID] = dict(levels or {})
        self._overrides = {k: dict(v) for k, v in (overrides or {}).items()}

    def _chain(self, employee_id: UUID) -> dict[int, UUID]:
        return self._overrides.get(employee_id, self._levels)

    def approver_for_level(self, employee_id: UUID, level: int) -> UUID | None:
        return self._chain(employee_id).get(level)

    def escalation_target(
        self, employee_id: UUID, level: int, current_approver_id: UUID,
    ) -> UUID | None:
        chain = self._chain(employee_id)
        for candidate_level in sorted(lvl for lvl in chain if lvl > level):
            candidate = chain[candidate_level]
            if candidate != current_approver_id:
                return candidate
        return None
