"""
Incentive plan -- read-only plan configuration consumed by a calculation.

Responsibility:
    Frozen description of an incentive plan: type, target, slabs, payout
    cap and approval configuration.  The Plan provider hands these to the
    calculation service; nothing in the kernel persists plans.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Slab ranges never overlap (validated on construction).
    - requires_approval implies approval_levels >= 1.
    - maximum_payout, when set, is non-negative.
    - Only draft slab-based plans accept slab changes; activation of a
      slab-based plan requires at least one slab.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4

from incentive_kernel.domain.slab import Slab, check_no_overlap
from incentive_kernel.domain.values import DateRange, Money, Target
from incentive_kernel.exceptions import (
    InvalidApprovalLevelError,
    PlanNotModifiableError,
    ValidationError,
)


class PlanType(str, Enum):
    TARGET_BASED = "target_based"
    SLAB_BASED = "slab_based"


class PlanStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ApprovalConfig:
    requires_approval: bool = True
    approval_levels: int = 1

    def __post_init__(self) -> None:
        if self.requires_approval and self.approval_levels < 1:
            raise InvalidApprovalLevelError(self.approval_levels)


@dataclass(frozen=True)
class IncentivePlan:
    """
    Plan configuration snapshot.

    Contract:
        Immutable.  Slab maintenance goes through ``slab.add_slab`` and
        ``slab.remove_slab``, which return a new plan.

    Non-goals:
        - Does NOT track plan assignments (the Employee provider decides
          who is on which plan).
    """

    code: str
    name: str
    plan_type: PlanType
    target: Target
    effective_period: DateRange
    id: UUID = field(default_factory=uuid4)
    status: PlanStatus = PlanStatus.DRAFT
    slabs: tuple[Slab, ...] = ()
    maximum_payout: Money | None = None
    target_payout_rate: Decimal = Decimal("10")
    approval: ApprovalConfig = field(default_factory=ApprovalConfig)
    minimum_tenure_days: int | None = None

    def __post_init__(self) -> None:
        if not self.code or not self.code.strip():
            raise ValidationError("Plan code is required")
        if not self.name or not self.name.strip():
            raise ValidationError("Plan name is required")
        if self.maximum_payout is not None and self.maximum_payout.is_negative:
            raise ValidationError("Maximum payout cannot be negative")
        if self.target_payout_rate < 0:
            raise ValidationError("Target payout rate cannot be negative")
        check_no_overlap(self.slabs)

    @property
    def is_active(self) -> bool:
        return self.status == PlanStatus.ACTIVE

    def is_effective_for(self, period: DateRange) -> bool:
        return self.is_active and self.effective_period.overlaps(period)

    def ensure_slabs_modifiable(self) -> None:
        if self.plan_type != PlanType.SLAB_BASED:
            raise PlanNotModifiableError(self.id, "slabs apply to slab-based plans only")
        if self.status != PlanStatus.DRAFT:
            raise PlanNotModifiableError(self.id, f"plan is {self.status.value}")

    def activate(self) -> IncentivePlan:
        if self.status != PlanStatus.DRAFT:
            raise PlanNotModifiableError(self.id, f"cannot activate a {self.status.value} plan")
        if self.plan_type == PlanType.SLAB_BASED and not self.slabs:
            raise PlanNotModifiableError(self.id, "slab-based plan has no slabs")
        return replace(self, status=PlanStatus.ACTIVE)

    def suspend(self) -> IncentivePlan:
        if self.status != PlanStatus.ACTIVE:
            raise PlanNotModifiableError(self.id, f"cannot suspend a {self.status.value} plan")
        return replace(self, status=PlanStatus.SUSPENDED)
