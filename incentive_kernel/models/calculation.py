"""
Module: incentive_kernel.models.calculation
Responsibility: ORM persistence for incentive calculations.

Architecture position: Kernel > Models.  May import from db/base.py only
    (domain types are imported lazily inside the DTO converters).

Invariants enforced:
    - row_version is SQLAlchemy's version_id_col: every UPDATE carries
      ``WHERE row_version = :expected`` and a mismatch raises
      StaleDataError, which the writer turns into OptimisticLockError.
    - previous_version_id is unique, so a calculation has at most one
      successor and the adjustment chain never branches.
    - Status limited to the lifecycle values by a check constraint.
    - Approvals are exposed ordered by (cycle, level, created_at).

Failure modes:
    - StaleDataError on concurrent UPDATE of the same row.
    - IntegrityError on a second successor for the same prior version.

Audit relevance:
    Rows are never deleted.  Voided calculations keep every amount and
    carry void_reason / voided_by.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from incentive_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from incentive_kernel.domain.calculation import Calculation
    from incentive_kernel.models.approval import ApprovalModel


CALCULATION_STATUS_VALUES = (
    "pending", "calculated", "prorated", "capped", "below_threshold",
    "ineligible", "pending_approval", "approved", "rejected", "paid",
    "adjusted", "voided",
)


class CalculationModel(TrackedBase):
    """Persistent incentive calculation (aggregate root row)."""

    __tablename__ = "incentive_calculations"

    __table_args__ = (
        CheckConstraint(
            "status IN ("
            + ", ".join(f"'{s}'" for s in CALCULATION_STATUS_VALUES)
            + ")",
            name="ck_incentive_calculations_valid_status",
        ),
        CheckConstraint("version >= 1", name="ck_incentive_calculations_version"),
        CheckConstraint(
            "period_start <= period_end",
            name="ck_incentive_calculations_period",
        ),
        Index(
            "ix_incentive_calculations_emp_plan_period",
            "employee_id", "plan_id", "period_start", "period_end",
        ),
        Index("ix_incentive_calculations_status", "status"),
    )

    employee_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    plan_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    target_value: Mapped[Decimal] = mapped_column(nullable=False)
    actual_value: Mapped[Decimal] = mapped_column(nullable=False)
    achievement_percentage: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    base_salary: Mapped[Decimal] = mapped_column(nullable=False)
    gross_incentive: Mapped[Decimal] = mapped_column(nullable=False)
    net_incentive: Mapped[Decimal] = mapped_column(nullable=False)
    prorata_factor: Mapped[Decimal | None] = mapped_column(nullable=True)
    applied_slab_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="pending")
    version: Mapped[int] = mapped_column(nullable=False, default=1)
    approval_cycle: Mapped[int] = mapped_column(nullable=False, default=0)
    previous_version_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("incentive_calculations.id"),
        nullable=True,
        unique=True,
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    ineligible_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    adjustment_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    void_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    calculated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    submitted_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)
    paid_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    adjusted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    adjusted_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    voided_at: Mapped[datetime | None] = mapped_column(nullable=True)
    voided_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    row_version: Mapped[int] = mapped_column(nullable=False)

    approvals: Mapped[list["ApprovalModel"]] = relationship(
        "ApprovalModel",
        back_populates="calculation",
        order_by="ApprovalModel.created_at",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": row_version}

    def __repr__(self) -> str:
        return (
            f"<Calculation {self.id} employee={self.employee_id} "
            f"status={self.status} v{self.version}>"
        )

    def to_dto(self) -> Calculation:
        """Convert ORM model to frozen domain aggregate (with approvals)."""
        from incentive_kernel.domain.calculation import Calculation, CalculationStatus
        from incentive_kernel.domain.values import DateRange, Money, Percentage

        return Calculation(
            id=self.id,
            employee_id=self.employee_id,
            plan_id=self.plan_id,
            period=DateRange(self.period_start, self.period_end),
            target_value=self.target_value,
            actual_value=self.actual_value,
            achievement=Percentage(self.achievement_percentage),
            base_salary=Money(self.base_salary, self.currency),
            gross_incentive=Money(self.gross_incentive, self.currency),
            net_incentive=Money(self.net_incentive, self.currency),
            prorata_factor=(
                Percentage(self.prorata_factor) if self.prorata_factor is not None else None
            ),
            applied_slab_id=self.applied_slab_id,
            status=CalculationStatus(self.status),
            version=self.version,
            previous_version_id=self.previous_version_id,
            approval_cycle=self.approval_cycle,
            notes=self.notes,
            ineligible_reason=self.ineligible_reason,
            rejection_reason=self.rejection_reason,
            adjustment_reason=self.adjustment_reason,
            void_reason=self.void_reason,
            is_active=self.is_active,
            created_at=self.created_at,
            created_by=self.created_by_id,
            calculated_at=self.calculated_at,
            submitted_at=self.submitted_at,
            submitted_by=self.submitted_by,
            approved_at=self.approved_at,
            approved_by=self.approved_by,
            paid_at=self.paid_at,
            paid_by=self.paid_by,
            adjusted_at=self.adjusted_at,
            adjusted_by=self.adjusted_by,
            voided_at=self.voided_at,
            voided_by=self.voided_by,
            row_version=self.row_version,
            approvals=tuple(
                a.to_dto()
                for a in sorted(self.approvals, key=lambda a: (a.cycle, a.level, a.created_at))
            ),
        )

    @classmethod
    def from_dto(cls, dto: Calculation) -> CalculationModel:
        """Create ORM model from domain aggregate (for INSERT)."""
        model = cls(id=dto.id, created_by_id=dto.created_by)
        if dto.created_at is not None:
            model.created_at = dto.created_at
        model.apply_dto(dto)
        return model

    def apply_dto(self, dto: Calculation) -> None:
        """Copy every mutable field from the aggregate onto this row."""
        self.employee_id = dto.employee_id
        self.plan_id = dto.plan_id
        self.period_start = dto.period.start
        self.period_end = dto.period.end
        self.target_value = dto.target_value
        self.actual_value = dto.actual_value
        self.achievement_percentage = dto.achievement.value
        self.currency = dto.currency
        self.base_salary = dto.base_salary.amount
        self.gross_incentive = dto.gross_incentive.amount
        self.net_incentive = dto.net_incentive.amount
        self.prorata_factor = (
            dto.prorata_factor.value if dto.prorata_factor is not None else None
        )
        self.applied_slab_id = dto.applied_slab_id
        self.status = dto.status.value
        self.version = dto.version
        self.previous_version_id = dto.previous_version_id
        self.approval_cycle = dto.approval_cycle
        self.notes = dto.notes
        self.ineligible_reason = dto.ineligible_reason
        self.rejection_reason = dto.rejection_reason
        self.adjustment_reason = dto.adjustment_reason
        self.void_reason = dto.void_reason
        self.is_active = dto.is_active
        self.calculated_at = dto.calculated_at
        self.submitted_at = dto.submitted_at
        self.submitted_by = dto.submitted_by
        self.approved_at = dto.approved_at
        self.approved_by = dto.approved_by
        self.paid_at = dto.paid_at
        self.paid_by = dto.paid_by
        self.adjusted_at = dto.adjusted_at
        self.adjusted_by = dto.adjusted_by
        self.voided_at = dto.voided_at
        self.voided_by = dto.voided_by
