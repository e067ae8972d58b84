"""
Approval domain types (``incentive_kernel.domain.approval``).

Responsibility
--------------
The per-level decision record attached to a Calculation and its
lifecycle.  A record only knows its own state; sequencing levels,
delegation hand-offs and escalation targets belong to
``ApprovalWorkflowService``.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* ``APPROVAL_TRANSITIONS`` defines the only valid status transitions.
  Pending is the sole non-terminal state; terminal states have no
  outgoing edges, so no record is ever reopened.
* level >= 1.
* ``cycle`` numbers the submission round the record belongs to; a
  resubmitted calculation starts a fresh chain.
* A reject always carries a reason.
* A record cannot be delegated to its own approver.
* ``mark_expired`` is legal only once ``now`` is past ``expires_at``.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Protocol
from uuid import UUID, uuid4

from incentive_kernel.exceptions import (
    ApprovalNotExpiredError,
    InvalidApprovalLevelError,
    InvalidApprovalTransitionError,
    MissingReasonError,
    SelfDelegationError,
)


class ApprovalStatus(str, Enum):
    """Approval record lifecycle states."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    ESCALATED = "escalated"
    DELEGATED = "delegated"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


APPROVAL_TRANSITIONS: dict[ApprovalStatus, frozenset[ApprovalStatus]] = {
    ApprovalStatus.PENDING: frozenset({
        ApprovalStatus.APPROVED,
        ApprovalStatus.REJECTED,
        ApprovalStatus.ESCALATED,
        ApprovalStatus.DELEGATED,
        ApprovalStatus.CANCELLED,
        ApprovalStatus.EXPIRED,
    }),
    ApprovalStatus.APPROVED: frozenset(),
    ApprovalStatus.REJECTED: frozenset(),
    ApprovalStatus.ESCALATED: frozenset(),
    ApprovalStatus.DELEGATED: frozenset(),
    ApprovalStatus.CANCELLED: frozenset(),
    ApprovalStatus.EXPIRED: frozenset(),
}

TERMINAL_APPROVAL_STATUSES: frozenset[ApprovalStatus] = frozenset(
    status for status, targets in APPROVAL_TRANSITIONS.items() if not targets
)

# Records replaced by another record at the same level.
SUPERSEDED_APPROVAL_STATUSES: frozenset[ApprovalStatus] = frozenset({
    ApprovalStatus.DELEGATED,
    ApprovalStatus.CANCELLED,
})


@dataclass(frozen=True)
class Approval:
    """One approver's decision slot at one level of a calculation's chain."""

    calculation_id: UUID
    approver_id: UUID
    level: int
    id: UUID = field(default_factory=uuid4)
    cycle: int = 1
    status: ApprovalStatus = ApprovalStatus.PENDING
    action_date: datetime | None = None
    comments: str | None = None
    delegated_to_id: UUID | None = None
    delegated_at: datetime | None = None
    expires_at: datetime | None = None
    created_at: datetime | None = None
    row_version: int = field(default=0, compare=False)

    def __post_init__(self) -> None:
        if self.level < 1:
            raise InvalidApprovalLevelError(self.level)
        if self.cycle < 1:
            raise InvalidApprovalLevelError(self.cycle)

    @classmethod
    def create(
        cls,
        calculation_id: UUID,
        approver_id: UUID,
        level: int,
        *,
        expires_at: datetime | None = None,
        at: datetime | None = None,
        cycle: int = 1,
    ) -> Approval:
        return cls(
            calculation_id=calculation_id,
            approver_id=approver_id,
            level=level,
            cycle=cycle,
            expires_at=expires_at,
            created_at=at,
        )

    @property
    def is_pending(self) -> bool:
        return self.status == ApprovalStatus.PENDING

    def is_overdue(self, now: datetime) -> bool:
        return self.is_pending and self.expires_at is not None and now > self.expires_at

    def _transition(self, target: ApprovalStatus, action: str) -> None:
        if target not in APPROVAL_TRANSITIONS[self.status]:
            raise InvalidApprovalTransitionError(self.id, action, self.status.value)

    def approve(self, *, at: datetime, comments: str | None = None) -> Approval:
        self._transition(ApprovalStatus.APPROVED, "approve")
        return replace(
            self, status=ApprovalStatus.APPROVED, action_date=at, comments=comments,
        )

    def reject(self, reason: str, *, at: datetime) -> Approval:
        self._transition(ApprovalStatus.REJECTED, "reject")
        if reason is None or not reason.strip():
            raise MissingReasonError("reject an approval")
        return replace(
            self, status=ApprovalStatus.REJECTED, action_date=at, comments=reason.strip(),
        )

    def escalate(self, reason: str | None, *, at: datetime) -> Approval:
        self._transition(ApprovalStatus.ESCALATED, "escalate")
        return replace(
            self, status=ApprovalStatus.ESCALATED, action_date=at, comments=reason,
        )

    def delegate(self, delegate_to_id: UUID, *, at: datetime) -> Approval:
        """Mark Delegated.  The delegate's new record is created by the caller."""
        self._transition(ApprovalStatus.DELEGATED, "delegate")
        if delegate_to_id == self.approver_id:
            raise SelfDelegationError(self.id, self.approver_id)
        return replace(
            self,
            status=ApprovalStatus.DELEGATED,
            action_date=at,
            delegated_to_id=delegate_to_id,
            delegated_at=at,
        )

    def cancel(self, reason: str | None, *, at: datetime) -> Approval:
        self._transition(ApprovalStatus.CANCELLED, "cancel")
        return replace(
            self, status=ApprovalStatus.CANCELLED, action_date=at, comments=reason,
        )

    def mark_expired(self, now: datetime) -> Approval:
        self._transition(ApprovalStatus.EXPIRED, "expire")
        if self.expires_at is None or now <= self.expires_at:
            raise ApprovalNotExpiredError(self.id, self.expires_at)
        return replace(self, status=ApprovalStatus.EXPIRED, action_date=now)


class ApproverDirectory(Protocol):
    """Pluggable lookup of who approves a calculation at a given level."""

    def approver_for_level(self, employee_id: UUID, level: int) -> UUID | None:
        """Return the approver for ``level`` of this employee's chain."""
        ...

    def escalation_target(
        self, employee_id: UUID, level: int, current_approver_id: UUID,
    ) -> UUID | None:
        """Return an approver above ``level``, different from the current one."""
        ...
