"""
Slab resolver -- payout tier selection for slab-based plans.

Responsibility:
    Owns the Slab value type and the pure functions that maintain a plan's
    slab set (add, remove) and pick the tier for an achievement percentage.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Plans are immutable;
    add_slab/remove_slab return a new IncentivePlan.

Invariants enforced:
    - from_percentage <= to_percentage and payout_rate >= 0 for every slab.
    - No two slab ranges on a plan intersect (inclusive bounds), checked at
      add time.
    - Slab order is contiguous 1..n.  add_slab appends order = count + 1;
      remove_slab renumbers the survivors by ascending from_percentage.

Failure modes:
    - InvalidSlabRangeError, NegativePayoutRateError, SlabOverlapError on
      malformed input (nothing is modified).
    - PlanNotModifiableError when the plan is not a draft slab-based plan.
    - SlabNotFoundError when removing an unknown slab id.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import TYPE_CHECKING, Iterable
from uuid import UUID, uuid4

from incentive_kernel.domain.values import Money, Percentage
from incentive_kernel.exceptions import (
    InvalidSlabRangeError,
    NegativePayoutRateError,
    SlabNotFoundError,
    SlabOverlapError,
)

if TYPE_CHECKING:
    from incentive_kernel.domain.plan import IncentivePlan


@dataclass(frozen=True)
class Slab:
    """One payout tier: an inclusive achievement range and a payout rate."""

    from_percentage: Decimal
    to_percentage: Decimal
    payout_rate: Decimal
    order: int
    id: UUID = field(default_factory=uuid4)
    description: str | None = None

    def __post_init__(self) -> None:
        if self.from_percentage > self.to_percentage:
            raise InvalidSlabRangeError(self.from_percentage, self.to_percentage)
        if self.payout_rate < 0:
            raise NegativePayoutRateError(self.payout_rate)

    def contains(self, achievement: Percentage) -> bool:
        return self.from_percentage <= achievement.value <= self.to_percentage

    def intersects(self, from_percentage: Decimal, to_percentage: Decimal) -> bool:
        return from_percentage <= self.to_percentage and to_percentage >= self.from_percentage


def resolve(slabs: Iterable[Slab], achievement: Percentage) -> Slab | None:
    """Return the first slab, by order, whose range contains the achievement."""
    for slab in sorted(slabs, key=lambda s: s.order):
        if slab.contains(achievement):
            return slab
    return None


def payout(slab: Slab, base_amount: Money) -> Money:
    """base_amount x payout_rate%."""
    return base_amount.apply_percentage(Percentage(slab.payout_rate))


def add_slab(
    plan: IncentivePlan,
    from_percentage: Decimal,
    to_percentage: Decimal,
    payout_rate: Decimal,
    description: str | None = None,
) -> IncentivePlan:
    """Return a copy of ``plan`` with a new slab appended.

    Validation happens in full before the copy is built: range order,
    non-negative rate, then overlap against every existing slab.
    """
    plan.ensure_slabs_modifiable()

    if from_percentage > to_percentage:
        raise InvalidSlabRangeError(from_percentage, to_percentage)
    if payout_rate < 0:
        raise NegativePayoutRateError(payout_rate)

    for existing in plan.slabs:
        if existing.intersects(from_percentage, to_percentage):
            raise SlabOverlapError(from_percentage, to_percentage, existing.id)

    slab = Slab(
        from_percentage=from_percentage,
        to_percentage=to_percentage,
        payout_rate=payout_rate,
        order=len(plan.slabs) + 1,
        description=description.strip() if description else None,
    )
    return replace(plan, slabs=plan.slabs + (slab,))


def remove_slab(plan: IncentivePlan, slab_id: UUID) -> IncentivePlan:
    """Return a copy of ``plan`` without ``slab_id``, orders re-derived."""
    plan.ensure_slabs_modifiable()

    remaining = [s for s in plan.slabs if s.id != slab_id]
    if len(remaining) == len(plan.slabs):
        raise SlabNotFoundError(slab_id)

    renumbered = tuple(
        replace(slab, order=index)
        for index, slab in enumerate(
            sorted(remaining, key=lambda s: s.from_percentage), start=1
        )
    )
    return replace(plan, slabs=renumbered)


def check_no_overlap(slabs: Iterable[Slab]) -> None:
    """Raise SlabOverlapError if any two slabs intersect.

    Used when a plan is assembled from stored slabs rather than built up
    through add_slab.
    """
    ordered = sorted(slabs, key=lambda s: (s.from_percentage, s.to_percentage))
    for previous, current in zip(ordered, ordered[1:]):
        if previous.intersects(current.from_percentage, current.to_percentage):
            raise SlabOverlapError(
                current.from_percentage, current.to_percentage, previous.id
            )


__all__ = [
    "Slab",
    "add_slab",
    "check_no_overlap",
    "payout",
    "remove_slab",
    "resolve",
]
