"""
Approval chain state -- where a calculation stands in its sign-off chain.

Responsibility:
    Derives a small tagged variant from a calculation's approval records:

        AwaitingLevel(n)  -- level n is pending, or must be created next
        AllApproved       -- every required level has signed off
        Rejected          -- some level rejected; the chain is over

    ApprovalWorkflowService is the only caller.  Keeping the rules here
    means "create level N+1 only after level N resolves" lives in exactly
    one place.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Rules:
    - Delegated and Cancelled records are superseded and ignored.
    - Any Rejected record makes the chain Rejected.
    - The highest remaining level decides: Pending means awaiting it;
      Approved means done once it reaches the required depth, otherwise
      awaiting the next level; Escalated or Expired means awaiting the
      next level (forced progression).
    - Escalation may push the chain beyond the plan's configured depth;
      the chain is then complete when that deeper level approves.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from incentive_kernel.domain.approval import (
    SUPERSEDED_APPROVAL_STATUSES,
    Approval,
    ApprovalStatus,
)


class ChainPhase(str, Enum):
    AWAITING_LEVEL = "awaiting_level"
    ALL_APPROVED = "all_approved"
    REJECTED = "rejected"


@dataclass(frozen=True)
class ApprovalChainState:
    phase: ChainPhase
    level: int | None = None
    pending: Approval | None = None

    @classmethod
    def awaiting(cls, level: int, pending: Approval | None = None) -> ApprovalChainState:
        return cls(ChainPhase.AWAITING_LEVEL, level, pending)

    @classmethod
    def all_approved(cls) -> ApprovalChainState:
        return cls(ChainPhase.ALL_APPROVED)

    @classmethod
    def rejected(cls, level: int) -> ApprovalChainState:
        return cls(ChainPhase.REJECTED, level)

    @property
    def needs_next_approval(self) -> bool:
        """Awaiting a level that has no Pending record yet."""
        return self.phase == ChainPhase.AWAITING_LEVEL and self.pending is None

    @property
    def is_complete(self) -> bool:
        return self.phase != ChainPhase.AWAITING_LEVEL


def pending_at_level(approvals: Iterable[Approval], level: int) -> list[Approval]:
    return [a for a in approvals if a.level == level and a.is_pending]


def evaluate_chain(approvals: Iterable[Approval], required_levels: int) -> ApprovalChainState:
    """Derive the chain state from the records and the required depth."""
    live = [a for a in approvals if a.status not in SUPERSEDED_APPROVAL_STATUSES]

    rejected = [a for a in live if a.status == ApprovalStatus.REJECTED]
    if rejected:
        return ApprovalChainState.rejected(min(a.level for a in rejected))

    if not live:
        if required_levels < 1:
            return ApprovalChainState.all_approved()
        return ApprovalChainState.awaiting(1)

    top = max(a.level for a in live)
    at_top = [a for a in live if a.level == top]
    target_depth = max(required_levels, top)

    pending = [a for a in at_top if a.is_pending]
    if pending:
        return ApprovalChainState.awaiting(top, pending[0])

    if any(a.status == ApprovalStatus.APPROVED for a in at_top):
        if top >= target_depth:
            return ApprovalChainState.all_approved()
        return ApprovalChainState.awaiting(top + 1)

    # Escalated or Expired at the top: the next level takes over.
    return ApprovalChainState.awaiting(top + 1)
