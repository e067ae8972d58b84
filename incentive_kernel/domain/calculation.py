"""
Calculation -- the incentive calculation aggregate and its lifecycle.

Responsibility:
    One Calculation per employee, plan and period.  Holds the target,
    actual and payout amounts and drives every lifecycle transition:

        Pending -> Calculated -> {Prorated, Capped} -> PendingApproval
                -> {Approved, Rejected} -> Paid

    with side branches BelowThreshold, Ineligible, Adjusted and Voided.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Services load a
    Calculation through the selector, call one transition, and hand the
    result to the writer.

Invariants enforced:
    - Every transition checks its full precondition (source status, reason,
      currency, factor range) before the new state is built.  The aggregate
      is frozen and each transition returns a new instance, so a failed
      transition leaves the caller's object untouched.
    - gross_incentive and net_incentive are always in base_salary's currency.
    - version starts at 1 and only grows: adjust and recalculate add exactly
      one; create_adjustment starts the successor at prior + 1.
    - previous_version_id always points at an existing, different
      calculation, so the adjustment chain is singly linked and acyclic.
    - void() is allowed from every state except Paid and Voided, and clears
      is_active permanently.
    - In-place adjust() is limited to pre-approval states.  Approved and
      Paid amounts are corrected only through create_adjustment(), which
      keeps the prior version intact.

Failure modes:
    - InvalidCalculationTransitionError: wrong source status (fatal, never
      retried).
    - MissingReasonError, InvalidProrataFactorError, CurrencyMismatchError,
      ValidationError: malformed input.

Audit relevance:
    Each state-changing transition appends a domain event to ``events``;
    the writer stores them in the outbox within the same transaction.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4

from incentive_kernel.domain.approval import Approval
from incentive_kernel.domain.events import (
    CalculationAdjusted,
    CalculationApproved,
    CalculationCompleted,
    CalculationEvent,
    CalculationPaid,
    CalculationRecalculated,
    CalculationRejected,
    CalculationSubmittedForApproval,
    CalculationVoided,
)
from incentive_kernel.domain.values import DateRange, Money, Percentage
from incentive_kernel.exceptions import (
    CurrencyMismatchError,
    InvalidCalculationTransitionError,
    InvalidProrataFactorError,
    MissingReasonError,
    ValidationError,
)


class CalculationStatus(str, Enum):
    PENDING = "pending"
    CALCULATED = "calculated"
    PRORATED = "prorated"
    CAPPED = "capped"
    BELOW_THRESHOLD = "below_threshold"
    INELIGIBLE = "ineligible"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    PAID = "paid"
    ADJUSTED = "adjusted"
    VOIDED = "voided"


_S = CalculationStatus

# Source statuses from which each transition is legal.
CALCULATION_TRANSITIONS: dict[str, frozenset[CalculationStatus]] = {
    "calculate": frozenset({_S.PENDING}),
    "apply_prorata": frozenset({_S.CALCULATED}),
    "apply_cap": frozenset({_S.CALCULATED, _S.PRORATED}),
    "mark_below_threshold": frozenset({_S.PENDING, _S.CALCULATED, _S.PRORATED, _S.CAPPED}),
    "mark_ineligible": frozenset({_S.PENDING, _S.CALCULATED, _S.PRORATED, _S.CAPPED}),
    "submit_for_approval": frozenset({_S.CALCULATED, _S.PRORATED, _S.CAPPED, _S.ADJUSTED}),
    "approve": frozenset({_S.PENDING_APPROVAL}),
    "reject": frozenset({_S.PENDING_APPROVAL}),
    "mark_paid": frozenset({_S.APPROVED}),
    "void": frozenset(set(_S) - {_S.PAID, _S.VOIDED}),
    "adjust": frozenset({_S.CALCULATED, _S.PRORATED, _S.CAPPED}),
    "recalculate": frozenset({
        _S.CALCULATED, _S.PRORATED, _S.CAPPED, _S.ADJUSTED,
        _S.BELOW_THRESHOLD, _S.REJECTED,
    }),
    "create_adjustment": frozenset({
        _S.CALCULATED, _S.PRORATED, _S.CAPPED, _S.ADJUSTED,
        _S.BELOW_THRESHOLD, _S.REJECTED, _S.APPROVED, _S.PAID,
    }),
}

TERMINAL_CALCULATION_STATUSES = frozenset({_S.PAID, _S.VOIDED})

REVIEWABLE_STATUSES = CALCULATION_TRANSITIONS["submit_for_approval"]


def _require_reason(reason: str | None, action: str) -> str:
    if reason is None or not reason.strip():
        raise MissingReasonError(action)
    return reason.strip()


@dataclass(frozen=True)
class Calculation:
    """
    Incentive calculation aggregate root.

    Contract:
        Immutable value.  Transitions return a new Calculation carrying the
        events they raised; callers persist it through CalculationWriter.

    Guarantees:
        - ``version`` is the business version of the adjustment chain.
        - ``row_version`` is the persistence concurrency token, owned by the
          writer; transitions never change it.
        - ``approvals`` is the owned approval collection as last loaded.
        - ``approval_cycle`` counts submissions; approvals of earlier rounds
          stay attached for audit but no longer drive the chain.

    Non-goals:
        - Does NOT sequence approval levels (ApprovalWorkflowService does).
        - Does NOT resolve slabs or eligibility (CalculationService does).
    """

    employee_id: UUID
    plan_id: UUID
    period: DateRange
    target_value: Decimal
    actual_value: Decimal
    achievement: Percentage
    base_salary: Money
    gross_incentive: Money
    net_incentive: Money
    id: UUID = field(default_factory=uuid4)
    status: CalculationStatus = CalculationStatus.PENDING
    prorata_factor: Percentage | None = None
    applied_slab_id: UUID | None = None
    version: int = 1
    previous_version_id: UUID | None = None
    approval_cycle: int = 0
    notes: str | None = None
    ineligible_reason: str | None = None
    rejection_reason: str | None = None
    adjustment_reason: str | None = None
    void_reason: str | None = None
    is_active: bool = True
    created_at: datetime | None = None
    created_by: UUID | None = None
    calculated_at: datetime | None = None
    submitted_at: datetime | None = None
    submitted_by: UUID | None = None
    approved_at: datetime | None = None
    approved_by: UUID | None = None
    paid_at: datetime | None = None
    paid_by: UUID | None = None
    adjusted_at: datetime | None = None
    adjusted_by: UUID | None = None
    voided_at: datetime | None = None
    voided_by: UUID | None = None
    row_version: int = field(default=0, compare=False)
    approvals: tuple[Approval, ...] = field(default=(), compare=False)
    events: tuple[CalculationEvent, ...] = field(default=(), compare=False)

    def __post_init__(self) -> None:
        currency = self.base_salary.currency
        for name in ("gross_incentive", "net_incentive"):
            amount: Money = getattr(self, name)
            if amount.currency != currency:
                raise CurrencyMismatchError(currency, amount.currency, f"set {name}")
        if self.version < 1:
            raise ValidationError(f"Calculation version must be >= 1, got {self.version}")
        if self.previous_version_id is not None and self.previous_version_id == self.id:
            raise ValidationError("A calculation cannot be its own previous version")

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    @classmethod
    def create(
        cls,
        *,
        employee_id: UUID,
        plan_id: UUID,
        period: DateRange,
        target_value: Decimal,
        actual_value: Decimal,
        base_salary: Money,
        at: datetime,
        by: UUID | None = None,
        notes: str | None = None,
    ) -> Calculation:
        """New Pending calculation; achievement = actual / target x 100."""
        zero = Money.zero(base_salary.currency)
        return cls(
            employee_id=employee_id,
            plan_id=plan_id,
            period=period,
            target_value=target_value,
            actual_value=actual_value,
            achievement=Percentage.calculate(actual_value, target_value),
            base_salary=base_salary,
            gross_incentive=zero,
            net_incentive=zero,
            notes=notes,
            created_at=at,
            created_by=by,
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @property
    def currency(self) -> str:
        return self.base_salary.currency

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_CALCULATION_STATUSES

    def can(self, action: str) -> bool:
        return self.status in CALCULATION_TRANSITIONS[action]

    def _require(self, action: str) -> None:
        if self.status not in CALCULATION_TRANSITIONS[action]:
            raise InvalidCalculationTransitionError(self.id, action, self.status.value)

    def _check_amount(self, amount: Money, label: str) -> None:
        if amount.currency != self.currency:
            raise CurrencyMismatchError(self.currency, amount.currency, f"set {label}")
        if amount.is_negative:
            raise ValidationError(f"{label} cannot be negative: {amount}")

    def _evolve(self, event: CalculationEvent | None = None, **changes) -> Calculation:
        events = (self.events + (event,)) if event is not None else self.events
        return replace(self, events=events, **changes)

    def _zeroed(self) -> dict:
        zero = Money.zero(self.currency)
        return {"gross_incentive": zero, "net_incentive": zero}

    @property
    def current_approvals(self) -> tuple[Approval, ...]:
        """Approval records of the latest submission round."""
        return tuple(a for a in self.approvals if a.cycle == self.approval_cycle)

    def with_approvals(self, approvals: tuple[Approval, ...]) -> Calculation:
        return replace(self, approvals=tuple(approvals))

    def clear_events(self) -> Calculation:
        return replace(self, events=())

    # -------------------------------------------------------------------------
    # Computation
    # -------------------------------------------------------------------------

    def calculate(
        self, gross: Money, slab_id: UUID | None, *, at: datetime, by: UUID | None = None,
    ) -> Calculation:
        """Pending -> Calculated.  net = gross."""
        self._require("calculate")
        self._check_amount(gross, "gross incentive")
        return self._evolve(
            CalculationCompleted(
                calculation_id=self.id,
                employee_id=self.employee_id,
                occurred_at=at,
                actor_id=by,
                gross_incentive=gross,
                net_incentive=gross,
                achievement_percentage=self.achievement.value,
                applied_slab_id=slab_id,
            ),
            status=_S.CALCULATED,
            gross_incentive=gross,
            net_incentive=gross,
            applied_slab_id=slab_id,
            calculated_at=at,
        )

    def apply_prorata(self, factor: Percentage) -> Calculation:
        """Calculated -> Prorated.  net = gross x factor / 100, unrounded."""
        self._require("apply_prorata")
        if not (0 < factor.value <= 100):
            raise InvalidProrataFactorError(factor.value)
        return self._evolve(
            status=_S.PRORATED,
            prorata_factor=factor,
            net_incentive=self.gross_incentive.apply_percentage(factor),
        )

    def apply_cap(self, maximum: Money) -> Calculation:
        """Clamp net to ``maximum``; status becomes Capped only if clamped."""
        self._require("apply_cap")
        if maximum.currency != self.currency:
            raise CurrencyMismatchError(self.currency, maximum.currency, "apply cap")
        if self.net_incentive > maximum:
            return self._evolve(status=_S.CAPPED, net_incentive=maximum)
        return self

    def mark_below_threshold(self) -> Calculation:
        self._require("mark_below_threshold")
        return self._evolve(status=_S.BELOW_THRESHOLD, **self._zeroed())

    def mark_ineligible(self, reason: str) -> Calculation:
        self._require("mark_ineligible")
        reason = _require_reason(reason, "mark a calculation ineligible")
        return self._evolve(
            status=_S.INELIGIBLE, ineligible_reason=reason, **self._zeroed()
        )

    # -------------------------------------------------------------------------
    # Approval
    # -------------------------------------------------------------------------

    def submit_for_approval(self, *, by: UUID, at: datetime) -> Calculation:
        self._require("submit_for_approval")
        return self._evolve(
            CalculationSubmittedForApproval(
                calculation_id=self.id,
                employee_id=self.employee_id,
                occurred_at=at,
                actor_id=by,
                net_incentive=self.net_incentive,
            ),
            status=_S.PENDING_APPROVAL,
            approval_cycle=self.approval_cycle + 1,
            submitted_by=by,
            submitted_at=at,
        )

    def approve(
        self, *, by: UUID, at: datetime, comments: str | None = None,
    ) -> Calculation:
        self._require("approve")
        return self._evolve(
            CalculationApproved(
                calculation_id=self.id,
                employee_id=self.employee_id,
                occurred_at=at,
                actor_id=by,
                net_incentive=self.net_incentive,
                comments=comments,
            ),
            status=_S.APPROVED,
            approved_by=by,
            approved_at=at,
        )

    def reject(self, reason: str, *, by: UUID, at: datetime) -> Calculation:
        self._require("reject")
        reason = _require_reason(reason, "reject a calculation")
        return self._evolve(
            CalculationRejected(
                calculation_id=self.id,
                employee_id=self.employee_id,
                occurred_at=at,
                actor_id=by,
                reason=reason,
            ),
            status=_S.REJECTED,
            rejection_reason=reason,
        )

    def mark_paid(self, *, by: UUID, at: datetime) -> Calculation:
        self._require("mark_paid")
        return self._evolve(
            CalculationPaid(
                calculation_id=self.id,
                employee_id=self.employee_id,
                occurred_at=at,
                actor_id=by,
                amount=self.net_incentive,
            ),
            status=_S.PAID,
            paid_by=by,
            paid_at=at,
        )

    def void(self, reason: str, *, by: UUID, at: datetime) -> Calculation:
        """Any state except Paid -> Voided.  is_active is cleared for good."""
        self._require("void")
        reason = _require_reason(reason, "void a calculation")
        return self._evolve(
            CalculationVoided(
                calculation_id=self.id,
                employee_id=self.employee_id,
                occurred_at=at,
                actor_id=by,
                reason=reason,
                previous_status=self.status.value,
            ),
            status=_S.VOIDED,
            void_reason=reason,
            voided_by=by,
            voided_at=at,
            is_active=False,
        )

    # -------------------------------------------------------------------------
    # Correction
    # -------------------------------------------------------------------------

    def adjust(
        self, new_amount: Money, reason: str, *, by: UUID, at: datetime,
    ) -> Calculation:
        """Pre-approval, in-place correction of net.  version += 1."""
        self._require("adjust")
        reason = _require_reason(reason, "adjust a calculation")
        self._check_amount(new_amount, "adjusted amount")
        version = self.version + 1
        return self._evolve(
            CalculationAdjusted(
                calculation_id=self.id,
                employee_id=self.employee_id,
                occurred_at=at,
                actor_id=by,
                previous_amount=self.net_incentive,
                new_amount=new_amount,
                reason=reason,
                version=version,
                previous_version_id=self.previous_version_id,
            ),
            status=_S.ADJUSTED,
            net_incentive=new_amount,
            version=version,
            adjustment_reason=reason,
            adjusted_by=by,
            adjusted_at=at,
        )

    def recalculate(
        self,
        new_actual: Decimal,
        gross: Money,
        net: Money,
        achievement: Percentage,
        slab_id: UUID | None,
        *,
        at: datetime,
        by: UUID | None = None,
    ) -> Calculation:
        """
        Back to Calculated with new figures.  version += 1, prorata cleared.

        ``net`` is the final payout the recalculation settles on and is what
        the event reports.  The aggregate restarts from ``gross`` so the
        caller re-applies prorata and cap through their own transitions.
        """
        self._require("recalculate")
        if new_actual < 0:
            raise ValidationError(f"Actual value cannot be negative: {new_actual}")
        self._check_amount(gross, "gross incentive")
        self._check_amount(net, "net incentive")
        version = self.version + 1
        return self._evolve(
            CalculationRecalculated(
                calculation_id=self.id,
                employee_id=self.employee_id,
                occurred_at=at,
                actor_id=by,
                actual_value=new_actual,
                net_incentive=net,
                version=version,
            ),
            status=_S.CALCULATED,
            actual_value=new_actual,
            achievement=achievement,
            gross_incentive=gross,
            net_incentive=gross,
            applied_slab_id=slab_id,
            prorata_factor=None,
            version=version,
            calculated_at=at,
        )

    def create_adjustment(
        self,
        new_actual: Decimal,
        reason: str,
        *,
        gross: Money,
        net: Money,
        achievement: Percentage,
        slab_id: UUID | None,
        by: UUID,
        at: datetime,
    ) -> Calculation:
        """Build the next version as a new Calculation in status Adjusted.

        ``self`` is not modified; the successor links back through
        previous_version_id and must go through approval again.
        """
        self._require("create_adjustment")
        reason = _require_reason(reason, "create an adjustment")
        if new_actual < 0:
            raise ValidationError(f"Actual value cannot be negative: {new_actual}")
        self._check_amount(gross, "gross incentive")
        self._check_amount(net, "net incentive")

        successor_id = uuid4()
        version = self.version + 1
        return Calculation(
            id=successor_id,
            employee_id=self.employee_id,
            plan_id=self.plan_id,
            period=self.period,
            target_value=self.target_value,
            actual_value=new_actual,
            achievement=achievement,
            base_salary=self.base_salary,
            gross_incentive=gross,
            net_incentive=net,
            applied_slab_id=slab_id,
            status=_S.ADJUSTED,
            version=version,
            previous_version_id=self.id,
            notes=self.notes,
            adjustment_reason=reason,
            adjusted_by=by,
            adjusted_at=at,
            created_at=at,
            created_by=by,
            calculated_at=at,
            events=(
                CalculationAdjusted(
                    calculation_id=successor_id,
                    employee_id=self.employee_id,
                    occurred_at=at,
                    actor_id=by,
                    previous_amount=self.net_incentive,
                    new_amount=net,
                    reason=reason,
                    version=version,
                    previous_version_id=self.id,
                ),
            ),
        )
