"""
Calculation domain events.

Each state-changing Calculation transition records one of these on the
returned aggregate.  The writer moves them into the outbox in the same
transaction as the state change; the dispatcher delivers them to sinks after
commit.  ``to_payload`` is the JSON form stored in the outbox.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar
from uuid import UUID, uuid4

from incentive_kernel.domain.values import Money


def _jsonable(value: Any) -> Any:
    if isinstance(value, Money):
        return {"amount": str(value.amount), "currency": value.currency}
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


@dataclass(frozen=True, kw_only=True)
class CalculationEvent:
    event_type: ClassVar[str] = "calculation.event"

    calculation_id: UUID
    employee_id: UUID
    occurred_at: datetime
    actor_id: UUID | None = None
    event_id: UUID = field(default_factory=uuid4)

    def to_payload(self) -> dict[str, Any]:
        return {f.name: _jsonable(getattr(self, f.name)) for f in fields(self)}


@dataclass(frozen=True, kw_only=True)
class CalculationCompleted(CalculationEvent):
    event_type: ClassVar[str] = "calculation.completed"

    gross_incentive: Money
    net_incentive: Money
    achievement_percentage: Decimal
    applied_slab_id: UUID | None = None


@dataclass(frozen=True, kw_only=True)
class CalculationSubmittedForApproval(CalculationEvent):
    event_type: ClassVar[str] = "calculation.submitted_for_approval"

    net_incentive: Money


@dataclass(frozen=True, kw_only=True)
class CalculationApproved(CalculationEvent):
    event_type: ClassVar[str] = "calculation.approved"

    net_incentive: Money
    comments: str | None = None


@dataclass(frozen=True, kw_only=True)
class CalculationRejected(CalculationEvent):
    event_type: ClassVar[str] = "calculation.rejected"

    reason: str


@dataclass(frozen=True, kw_only=True)
class CalculationPaid(CalculationEvent):
    event_type: ClassVar[str] = "calculation.paid"

    amount: Money


@dataclass(frozen=True, kw_only=True)
class CalculationVoided(CalculationEvent):
    event_type: ClassVar[str] = "calculation.voided"

    reason: str
    previous_status: str


@dataclass(frozen=True, kw_only=True)
class CalculationAdjusted(CalculationEvent):
    event_type: ClassVar[str] = "calculation.adjusted"

    previous_amount: Money
    new_amount: Money
    reason: str
    version: int
    previous_version_id: UUID | None = None


@dataclass(frozen=True, kw_only=True)
class CalculationRecalculated(CalculationEvent):
    event_type: ClassVar[str] = "calculation.recalculated"

    actual_value: Decimal
    net_incentive: Money
    version: int


EVENT_TYPES: dict[str, type[CalculationEvent]] = {
    cls.event_type: cls
    for cls in (
        CalculationCompleted,
        CalculationSubmittedForApproval,
        CalculationApproved,
        CalculationRejected,
        CalculationPaid,
        CalculationVoided,
        CalculationAdjusted,
        CalculationRecalculated,
    )
}
