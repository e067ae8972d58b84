"""
Module: incentive_kernel.selectors.calculation_selector
Responsibility: Read-only access to calculations, their approval records
    and their adjustment chains.  Converts ORM rows to frozen aggregates.
Architecture position: Kernel > Selectors.  May import from domain/, models/,
    selectors/base.py and exceptions.

Invariants enforced:
    - Read-only: no mutations on queried data.
    - A loaded Calculation always carries its full approval collection,
      ordered by (cycle, level, created_at).
    - Multi-row results are ordered deterministically (period_start,
      created_at, id).

Failure modes:
    - CalculationNotFoundError / ApprovalNotFoundError from the get_ methods.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import and_, select
from sqlalchemy.orm import Session

from incentive_kernel.domain.approval import Approval
from incentive_kernel.domain.calculation import Calculation, CalculationStatus
from incentive_kernel.domain.values import DateRange
from incentive_kernel.exceptions import ApprovalNotFoundError, CalculationNotFoundError
from incentive_kernel.models.approval import ApprovalModel
from incentive_kernel.models.calculation import CalculationModel
from incentive_kernel.selectors.base import BaseSelector


class CalculationSelector(BaseSelector[CalculationModel]):
    """
    Selector for calculation and approval queries.

    Guarantees:
        - Approvals are eager-loaded (selectin) with every calculation.
        - The ``*_model`` methods exist for the writer only; everything
          else returns domain values.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    # -------------------------------------------------------------------------
    # Row access (writer-facing)
    # -------------------------------------------------------------------------

    def calculation_model(self, calculation_id: UUID) -> CalculationModel:
        model = self.session.get(CalculationModel, calculation_id)
        if model is None:
            raise CalculationNotFoundError(calculation_id)
        return model

    def approval_model(self, approval_id: UUID) -> ApprovalModel:
        model = self.session.get(ApprovalModel, approval_id)
        if model is None:
            raise ApprovalNotFoundError(approval_id)
        return model

    # -------------------------------------------------------------------------
    # Aggregates
    # -------------------------------------------------------------------------

    def get_calculation(self, calculation_id: UUID) -> Calculation:
        """Load a calculation with its approvals or raise CalculationNotFoundError."""
        return self.calculation_model(calculation_id).to_dto()

    def find_calculation(self, calculation_id: UUID) -> Calculation | None:
        model = self.session.get(CalculationModel, calculation_id)
        return model.to_dto() if model is not None else None

    def get_approval(self, approval_id: UUID) -> Approval:
        return self.approval_model(approval_id).to_dto()

    def approvals_for(self, calculation_id: UUID) -> list[Approval]:
        stmt = (
            select(ApprovalModel)
            .where(ApprovalModel.calculation_id == calculation_id)
            .order_by(ApprovalModel.cycle, ApprovalModel.level, ApprovalModel.created_at)
        )
        return [m.to_dto() for m in self.session.execute(stmt).scalars()]

    def latest_active_for(
        self, employee_id: UUID, plan_id: UUID, period: DateRange,
    ) -> Calculation | None:
        """Highest-version active calculation for (employee, plan, period)."""
        stmt = (
            select(CalculationModel)
            .where(
                CalculationModel.employee_id == employee_id,
                CalculationModel.plan_id == plan_id,
                CalculationModel.period_start == period.start,
                CalculationModel.period_end == period.end,
                CalculationModel.is_active.is_(True),
            )
            .order_by(CalculationModel.version.desc(), CalculationModel.created_at.desc())
            .limit(1)
        )
        model = self.session.execute(stmt).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def find(
        self,
        *,
        employee_id: UUID | None = None,
        plan_id: UUID | None = None,
        period: DateRange | None = None,
        status: CalculationStatus | None = None,
        active_only: bool = False,
    ) -> list[Calculation]:
        """Filtered listing.  Period matches calculations overlapping it."""
        conditions = []
        if employee_id is not None:
            conditions.append(CalculationModel.employee_id == employee_id)
        if plan_id is not None:
            conditions.append(CalculationModel.plan_id == plan_id)
        if period is not None:
            conditions.append(CalculationModel.period_start <= period.end)
            conditions.append(CalculationModel.period_end >= period.start)
        if status is not None:
            conditions.append(CalculationModel.status == status.value)
        if active_only:
            conditions.append(CalculationModel.is_active.is_(True))

        stmt = select(CalculationModel)
        if conditions:
            stmt = stmt.where(and_(*conditions))
        stmt = stmt.order_by(
            CalculationModel.period_start,
            CalculationModel.created_at,
            CalculationModel.id,
        )
        return [m.to_dto() for m in self.session.execute(stmt).scalars()]

    def successor_of(self, calculation_id: UUID) -> Calculation | None:
        stmt = select(CalculationModel).where(
            CalculationModel.previous_version_id == calculation_id,
        )
        model = self.session.execute(stmt).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def version_chain(self, calculation_id: UUID) -> list[Calculation]:
        """Every version from the original to the latest, oldest first."""
        current = self.get_calculation(calculation_id)
        chain = [current]
        seen = {current.id}
        while current.previous_version_id is not None:
            current = self.get_calculation(current.previous_version_id)
            if current.id in seen:
                break
            seen.add(current.id)
            chain.insert(0, current)
        successor = self.successor_of(chain[-1].id)
        while successor is not None and successor.id not in seen:
            seen.add(successor.id)
            chain.append(successor)
            successor = self.successor_of(successor.id)
        return chain

    # -------------------------------------------------------------------------
    # Sweeps
    # -------------------------------------------------------------------------

    def overdue_pending(self, now: datetime) -> list[Approval]:
        """Pending approvals whose expires_at is strictly before ``now``."""
        stmt = (
            select(ApprovalModel)
            .where(
                ApprovalModel.status == "pending",
                ApprovalModel.expires_at.is_not(None),
                ApprovalModel.expires_at < now,
            )
            .order_by(ApprovalModel.expires_at, ApprovalModel.id)
        )
        return [m.to_dto() for m in self.session.execute(stmt).scalars()]

    def pending_for_approver(self, approver_id: UUID) -> list[Approval]:
        stmt = (
            select(ApprovalModel)
            .where(
                ApprovalModel.approver_id == approver_id,
                ApprovalModel.status == "pending",
            )
            .order_by(ApprovalModel.created_at, ApprovalModel.id)
        )
        return [m.to_dto() for m in self.session.execute(stmt).scalars()]
