"""
CalculationService -- computes, corrects and closes incentive calculations.

Responsibility:
    Runs the calculation pipeline for one employee, plan and period
    (eligibility, threshold, payout, proration, cap) and drives the
    non-approval lifecycle operations: recalculate, adjust,
    create_adjustment, mark_paid and void.

Architecture position:
    Kernel > Services -- imperative shell around the pure Calculation
    aggregate.  Reads plans and employees through the provider protocols,
    persists through CalculationWriter.  Flushes, never commits.

Invariants enforced:
    - At most one active calculation per (employee, plan, period); a new
      run is refused while one exists.
    - Slab plans pay ``base x slab rate%`` for the first matching slab and
      zero when no slab matches; target plans pay
      ``base x achievement% x target_payout_rate%``.  Gross is rounded to
      the currency's minor units.
    - Voiding a calculation cancels all of its Pending approvals in the
      same transaction.
    - A calculation gets at most one successor version.

Failure modes:
    - EmployeeNotFoundError / PlanNotFoundError / CalculationNotFoundError.
    - PlanInactiveError, DuplicateCalculationError,
      SupersededCalculationError.
    - InvalidCalculationTransitionError and ValidationError from the aggregate.

Audit relevance:
    Every state change produces a domain event (via the writer's outbox)
    and a structured log line carrying calculation_id and version.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from incentive_kernel.domain.calculation import Calculation, CalculationStatus
from incentive_kernel.domain.clock import Clock
from incentive_kernel.domain.eligibility import (
    DEFAULT_ELIGIBLE_STATUSES,
    EligibilityResult,
    check_eligibility,
)
from incentive_kernel.domain.employee import Employee, EmployeeStatus
from incentive_kernel.domain.plan import IncentivePlan, PlanType
from incentive_kernel.domain.providers import EmployeeProvider, PlanProvider
from incentive_kernel.domain.slab import payout, resolve
from incentive_kernel.domain.values import DateRange, Money, Percentage
from incentive_kernel.exceptions import (
    DuplicateCalculationError,
    PlanInactiveError,
    SupersededCalculationError,
)
from incentive_kernel.logging_config import LogContext, get_logger
from incentive_kernel.models.calculation import CalculationModel
from incentive_kernel.selectors.calculation_selector import CalculationSelector
from incentive_kernel.services.base import BaseService
from incentive_kernel.services.calculation_writer import CalculationWriter

logger = get_logger("services.calculation")

VOID_CANCELLATION_REASON = "Calculation voided"


@dataclass(frozen=True)
class PayoutFigures:
    """Achievement and payout amounts for one actual value."""

    achievement: Percentage
    gross: Money
    net: Money
    slab_id: UUID | None
    eligibility: EligibilityResult
    below_threshold: bool


def gross_payout(
    plan: IncentivePlan, base_salary: Money, achievement: Percentage,
) -> tuple[Money, UUID | None]:
    """Gross payout for an achievement, rounded to the currency."""
    if plan.plan_type == PlanType.SLAB_BASED:
        slab = resolve(plan.slabs, achievement)
        if slab is None:
            return Money.zero(base_salary.currency), None
        return payout(slab, base_salary).round(), slab.id

    rate = Percentage(plan.target_payout_rate)
    return base_salary.apply_percentage(achievement).apply_percentage(rate).round(), None


class CalculationService(BaseService[CalculationModel]):
    """
    Calculation pipeline and lifecycle operations for one session.

    Contract:
        Every public method loads the current aggregate, applies the
        transition(s), persists through the writer and returns the
        persisted aggregate.
    """

    def __init__(
        self,
        session: Session,
        plans: PlanProvider,
        employees: EmployeeProvider,
        clock: Clock | None = None,
        *,
        eligible_statuses: frozenset[EmployeeStatus] = DEFAULT_ELIGIBLE_STATUSES,
        default_min_tenure_days: int = 0,
        writer: CalculationWriter | None = None,
    ):
        super().__init__(session, clock)
        self._plans = plans
        self._employees = employees
        self._eligible_statuses = eligible_statuses
        self._default_min_tenure_days = default_min_tenure_days
        self._selector = CalculationSelector(session)
        self._writer = writer or CalculationWriter(session, self.clock)

    # -------------------------------------------------------------------------
    # Pipeline
    # -------------------------------------------------------------------------

    def eligibility(
        self, employee: Employee, plan: IncentivePlan, period: DateRange,
    ) -> EligibilityResult:
        return check_eligibility(
            employee,
            plan,
            period,
            eligible_statuses=self._eligible_statuses,
            default_min_tenure_days=self._default_min_tenure_days,
        )

    def figures(
        self,
        employee: Employee,
        plan: IncentivePlan,
        period: DateRange,
        actual_value: Decimal,
        base_salary: Money | None = None,
    ) -> PayoutFigures:
        """Payout amounts without touching any aggregate."""
        base_salary = base_salary or employee.base_salary
        achievement = plan.target.achievement(actual_value)
        eligibility = self.eligibility(employee, plan, period)
        zero = Money.zero(base_salary.currency)
        below = not plan.target.meets_minimum_threshold(actual_value)

        if not eligibility.is_eligible or below:
            return PayoutFigures(achievement, zero, zero, None, eligibility, below)

        gross, slab_id = gross_payout(plan, base_salary, achievement)
        net = gross
        if eligibility.needs_proration:
            net = gross.apply_percentage(eligibility.prorata_factor)
        if plan.maximum_payout is not None and net > plan.maximum_payout:
            net = plan.maximum_payout
        return PayoutFigures(achievement, gross, net, slab_id, eligibility, below)

    def _finish(
        self,
        calculation: Calculation,
        plan: IncentivePlan,
        eligibility: EligibilityResult,
        actual_value: Decimal,
        base_salary: Money,
        by: UUID | None,
    ) -> Calculation:
        """Apply ineligible / below-threshold / payout / prorata / cap."""
        now = self.clock.now()
        if not eligibility.is_eligible:
            return calculation.mark_ineligible(eligibility.reason)
        if not plan.target.meets_minimum_threshold(actual_value):
            return calculation.mark_below_threshold()

        if calculation.status == CalculationStatus.PENDING:
            gross, slab_id = gross_payout(plan, base_salary, calculation.achievement)
            calculation = calculation.calculate(gross, slab_id, at=now, by=by)
        if eligibility.needs_proration:
            calculation = calculation.apply_prorata(eligibility.prorata_factor)
        if plan.maximum_payout is not None:
            calculation = calculation.apply_cap(plan.maximum_payout)
        return calculation

    def run_calculation(
        self,
        employee_id: UUID,
        plan_id: UUID,
        period: DateRange,
        actual_value: Decimal,
        *,
        actor_id: UUID | None = None,
        notes: str | None = None,
    ) -> Calculation:
        """
        Compute and persist a new calculation.

        Preconditions:
            - Employee and plan exist; plan is active.
            - No active calculation exists for (employee, plan, period).

        Postconditions:
            - Exactly one new row, in one of Calculated, Prorated, Capped,
              BelowThreshold or Ineligible.
        """
        employee = self._employees.get_employee(employee_id)
        plan = self._plans.get_plan(plan_id)
        if not plan.is_active:
            raise PlanInactiveError(plan_id)

        existing = self._selector.latest_active_for(employee_id, plan_id, period)
        if existing is not None:
            raise DuplicateCalculationError(employee_id, plan_id, period, existing.id)

        calculation = Calculation.create(
            employee_id=employee_id,
            plan_id=plan_id,
            period=period,
            target_value=plan.target.target_value,
            actual_value=actual_value,
            base_salary=employee.base_salary,
            at=self.clock.now(),
            by=actor_id,
            notes=notes,
        )
        eligibility = self.eligibility(employee, plan, period)
        calculation = self._finish(
            calculation, plan, eligibility, actual_value, employee.base_salary, actor_id,
        )

        with LogContext.bind(calculation_id=calculation.id, employee_id=employee_id):
            persisted = self._writer.insert(calculation)
            logger.info(
                "calculation_completed",
                extra={
                    "plan_id": str(plan_id),
                    "period": str(period),
                    "status": persisted.status.value,
                    "achievement_percentage": persisted.achievement.value,
                    "gross_incentive": persisted.gross_incentive.amount,
                    "net_incentive": persisted.net_incentive.amount,
                    "currency": persisted.currency,
                },
            )
        return persisted

    # -------------------------------------------------------------------------
    # Corrections
    # -------------------------------------------------------------------------

    def recalculate(
        self,
        calculation_id: UUID,
        new_actual: Decimal,
        *,
        actor_id: UUID | None = None,
    ) -> Calculation:
        """Recompute in place with a new actual value; version += 1."""
        current = self._selector.get_calculation(calculation_id)
        plan = self._plans.get_plan(current.plan_id)
        employee = self._employees.get_employee(current.employee_id)

        figures = self.figures(
            employee, plan, current.period, new_actual, current.base_salary,
        )
        # The event carries the final net; _finish re-derives the same figures
        # through the prorata and cap transitions.
        updated = current.recalculate(
            new_actual, figures.gross, figures.net, figures.achievement, figures.slab_id,
            at=self.clock.now(), by=actor_id,
        )
        updated = self._finish(
            updated,
            plan,
            figures.eligibility,
            new_actual,
            current.base_salary,
            actor_id,
        )
        persisted = self._writer.save(updated, actor_id)
        logger.info(
            "calculation_recalculated",
            extra={
                "calculation_id": str(calculation_id),
                "version": persisted.version,
                "status": persisted.status.value,
                "net_incentive": persisted.net_incentive.amount,
            },
        )
        return persisted

    def adjust(
        self,
        calculation_id: UUID,
        new_amount: Money,
        reason: str,
        *,
        actor_id: UUID,
    ) -> Calculation:
        """In-place pre-approval correction of the net amount."""
        current = self._selector.get_calculation(calculation_id)
        updated = current.adjust(new_amount, reason, by=actor_id, at=self.clock.now())
        persisted = self._writer.save(updated, actor_id)
        logger.info(
            "calculation_adjusted",
            extra={
                "calculation_id": str(calculation_id),
                "version": persisted.version,
                "previous_amount": current.net_incentive.amount,
                "new_amount": persisted.net_incentive.amount,
            },
        )
        return persisted

    def create_adjustment(
        self,
        calculation_id: UUID,
        new_actual: Decimal,
        reason: str,
        *,
        actor_id: UUID,
    ) -> Calculation:
        """Create the next version of a calculation as a new row."""
        current = self._selector.get_calculation(calculation_id)
        successor = self._selector.successor_of(calculation_id)
        if successor is not None:
            raise SupersededCalculationError(calculation_id, successor.id)

        plan = self._plans.get_plan(current.plan_id)
        employee = self._employees.get_employee(current.employee_id)
        figures = self.figures(
            employee, plan, current.period, new_actual, current.base_salary,
        )

        new_version = current.create_adjustment(
            new_actual,
            reason,
            gross=figures.gross,
            net=figures.net,
            achievement=figures.achievement,
            slab_id=figures.slab_id,
            by=actor_id,
            at=self.clock.now(),
        )
        persisted = self._writer.insert(new_version)
        logger.info(
            "calculation_version_created",
            extra={
                "calculation_id": str(persisted.id),
                "previous_version_id": str(calculation_id),
                "version": persisted.version,
                "net_incentive": persisted.net_incentive.amount,
            },
        )
        return persisted

    # -------------------------------------------------------------------------
    # Closing
    # -------------------------------------------------------------------------

    def mark_paid(self, calculation_id: UUID, *, actor_id: UUID) -> Calculation:
        current = self._selector.get_calculation(calculation_id)
        updated = current.mark_paid(by=actor_id, at=self.clock.now())
        return self._writer.save(updated, actor_id)

    def void(self, calculation_id: UUID, reason: str, *, actor_id: UUID) -> Calculation:
        """Void the calculation and cancel its Pending approvals."""
        current = self._selector.get_calculation(calculation_id)
        now = self.clock.now()
        updated = current.void(reason, by=actor_id, at=now)

        cancelled = 0
        for approval in current.approvals:
            if approval.is_pending:
                self._writer.save_approval(
                    approval.cancel(VOID_CANCELLATION_REASON, at=now)
                )
                cancelled += 1

        persisted = self._writer.save(updated, actor_id)
        logger.info(
            "calculation_voided",
            extra={
                "calculation_id": str(calculation_id),
                "previous_status": current.status.value,
                "cancelled_approvals": cancelled,
            },
        )
        return persisted
