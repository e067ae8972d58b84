"""
Module: incentive_kernel.models.approval
Responsibility: ORM persistence for per-level approval records.

Architecture position: Kernel > Models.  May import from db/base.py and
    exceptions only.

Invariants enforced:
    - Status limited to the record lifecycle values.
    - At most one Pending record per (calculation, level): partial unique
      index on both PostgreSQL and SQLite.
    - Terminal records are frozen: a before_update listener rejects any
      change to a row whose stored status is terminal.
    - row_version is the optimistic lock counter (version_id_col).

Failure modes:
    - IntegrityError on a second Pending record at the same level.
    - InvalidApprovalTransitionError when flushing a change to a terminal row.
    - StaleDataError on concurrent UPDATE of the same record.

Audit relevance:
    Records are never deleted; terminal statuses are the sign-off trail.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    String,
    Text,
    event,
    inspect,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from incentive_kernel.db.base import Base, UUIDString
from incentive_kernel.exceptions import InvalidApprovalTransitionError

if TYPE_CHECKING:
    from incentive_kernel.domain.approval import Approval
    from incentive_kernel.models.calculation import CalculationModel


APPROVAL_STATUS_VALUES = (
    "pending", "approved", "rejected", "escalated", "delegated",
    "cancelled", "expired",
)
_TERMINAL_STATUS_VALUES = frozenset(APPROVAL_STATUS_VALUES) - {"pending"}


class ApprovalModel(Base):
    """Persistent approval record."""

    __tablename__ = "incentive_approvals"

    __table_args__ = (
        CheckConstraint(
            "status IN ("
            + ", ".join(f"'{s}'" for s in APPROVAL_STATUS_VALUES)
            + ")",
            name="ck_incentive_approvals_valid_status",
        ),
        CheckConstraint("level >= 1", name="ck_incentive_approvals_level"),
        Index(
            "uq_incentive_approvals_pending_level",
            "calculation_id", "level",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
        Index("ix_incentive_approvals_expiry", "status", "expires_at"),
        Index("ix_incentive_approvals_approver", "approver_id", "status"),
    )

    calculation_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("incentive_calculations.id"),
        nullable=False,
    )
    approver_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    level: Mapped[int] = mapped_column(nullable=False)
    cycle: Mapped[int] = mapped_column(nullable=False, default=1)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    action_date: Mapped[datetime | None] = mapped_column(nullable=True)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    delegated_to_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    delegated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    row_version: Mapped[int] = mapped_column(nullable=False)

    calculation: Mapped["CalculationModel"] = relationship(
        "CalculationModel",
        back_populates="approvals",
    )

    __mapper_args__ = {"version_id_col": row_version}

    def __repr__(self) -> str:
        return (
            f"<Approval {self.id} calc={self.calculation_id} "
            f"level={self.level} status={self.status}>"
        )

    def to_dto(self) -> Approval:
        from incentive_kernel.domain.approval import Approval, ApprovalStatus

        return Approval(
            id=self.id,
            calculation_id=self.calculation_id,
            approver_id=self.approver_id,
            level=self.level,
            cycle=self.cycle,
            status=ApprovalStatus(self.status),
            action_date=self.action_date,
            comments=self.comments,
            delegated_to_id=self.delegated_to_id,
            delegated_at=self.delegated_at,
            expires_at=self.expires_at,
            created_at=self.created_at,
            row_version=self.row_version,
        )

    @classmethod
    def from_dto(cls, dto: Approval) -> ApprovalModel:
        model = cls(
            id=dto.id,
            calculation_id=dto.calculation_id,
            approver_id=dto.approver_id,
            level=dto.level,
            cycle=dto.cycle,
            created_at=dto.created_at,
        )
        model.apply_dto(dto)
        return model

    def apply_dto(self, dto: Approval) -> None:
        self.status = dto.status.value
        self.action_date = dto.action_date
        self.comments = dto.comments
        self.delegated_to_id = dto.delegated_to_id
        self.delegated_at = dto.delegated_at
        self.expires_at = dto.expires_at


@event.listens_for(ApprovalModel, "before_update")
def _reject_terminal_approval_update(mapper, connection, target: ApprovalModel) -> None:
    history = inspect(target).attrs.status.history
    stored_status = history.deleted[0] if history.deleted else target.status
    if stored_status in _TERMINAL_STATUS_VALUES:
        raise InvalidApprovalTransitionError(target.id, "modify", stored_status)
