"""
ApprovalWorkflowService -- multi-level sign-off for incentive calculations.

Responsibility:
    Sequences approval levels for a calculation: opens level 1 on
    submission, opens level N+1 only after level N resolves, applies
    delegation and escalation hand-offs, finalizes the calculation once
    the chain completes, and applies the configured ExpirationPolicy to
    overdue records.

Architecture position:
    Kernel > Services -- imperative shell.  Chain rules live in
    ``domain.approval_chain.evaluate_chain``; this service only acts on
    the state it returns.

Invariants enforced:
    - Required depth = max(plan approval levels, amount-threshold level).
      A plan that does not require approval is approved on submission.
    - At most one Pending record per level (coordinator check plus the
      partial unique index).
    - Calculation.approve() runs exactly once, when the chain reaches
      AllApproved.
    - A rejection at any level rejects the calculation and cancels every
      other Pending record of the round.
    - Only the assigned approver may approve, reject or delegate a record;
      escalation is open to any actor and logged with who forced it.
    - Every approval action touches the parent calculation row.

Failure modes:
    - UnauthorizedApproverError, InvalidApprovalTransitionError,
      SelfDelegationError, MissingReasonError.
    - ApproverUnavailableError when the directory has no (different)
      approver for the level being opened.
    - DuplicatePendingApprovalError if a Pending record already holds
      the level.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Mapping, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from incentive_kernel.domain.approval import Approval, ApproverDirectory
from incentive_kernel.domain.approval_chain import (
    ChainPhase,
    evaluate_chain,
    pending_at_level,
)
from incentive_kernel.domain.calculation import Calculation
from incentive_kernel.domain.clock import Clock
from incentive_kernel.domain.plan import IncentivePlan
from incentive_kernel.domain.providers import PlanProvider
from incentive_kernel.exceptions import (
    ApproverUnavailableError,
    DuplicatePendingApprovalError,
    UnauthorizedApproverError,
)
from incentive_kernel.logging_config import LogContext, get_logger
from incentive_kernel.models.approval import ApprovalModel
from incentive_kernel.selectors.calculation_selector import CalculationSelector
from incentive_kernel.services.base import BaseService
from incentive_kernel.services.calculation_writer import CalculationWriter

logger = get_logger("services.approval_workflow")

# Actor recorded on transitions made by sweeps rather than a person.
SYSTEM_ACTOR_ID = UUID(int=0)

DEFAULT_SLA_HOURS = 72
PARENT_REJECTED_REASON = "Parent approval rejected"
NO_APPROVAL_REQUIRED_COMMENT = "Approval not required by plan"


# =============================================================================
# Expiration policies
# =============================================================================


class ExpirationPolicy(ABC):
    """What happens to a chain after one of its records expired."""

    name: str = "abstract"

    @abstractmethod
    def apply(
        self,
        workflow: ApprovalWorkflowService,
        calculation: Calculation,
        expired: Approval,
    ) -> Calculation:
        """Act on the chain; ``calculation`` already reflects the expiry."""


class NoActionOnExpiry(ExpirationPolicy):
    """Leave the chain as it is; a notifier or an operator follows up."""

    name = "none"

    def apply(self, workflow, calculation, expired):
        return calculation


class AutoRejectOnExpiry(ExpirationPolicy):
    """Reject the calculation when any level runs out of time."""

    name = "auto_reject"

    def apply(self, workflow, calculation, expired):
        reason = f"Approval at level {expired.level} expired"
        return workflow.reject_chain(calculation, reason, by=SYSTEM_ACTOR_ID)


class EscalateOnExpiry(ExpirationPolicy):
    """Hand the decision to the next approver up the chain."""

    name = "escalate"

    def apply(self, workflow, calculation, expired):
        target = workflow.directory.escalation_target(
            calculation.employee_id, expired.level, expired.approver_id,
        )
        if target is None:
            logger.warning(
                "escalation_target_missing",
                extra={
                    "calculation_id": str(calculation.id),
                    "level": expired.level,
                },
            )
            return calculation
        workflow.open_level(calculation, expired.level + 1, target)
        return workflow.reload(calculation.id)


class RenotifyOnExpiry(ExpirationPolicy):
    """Reissue the same level to the same approver with a fresh deadline."""

    name = "renotify"

    def apply(self, workflow, calculation, expired):
        workflow.open_level(calculation, expired.level, expired.approver_id)
        return workflow.reload(calculation.id)


EXPIRATION_POLICIES: dict[str, type[ExpirationPolicy]] = {
    cls.name: cls
    for cls in (NoActionOnExpiry, AutoRejectOnExpiry, EscalateOnExpiry, RenotifyOnExpiry)
}


def expiration_policy_for(name: str) -> ExpirationPolicy:
    try:
        return EXPIRATION_POLICIES[name]()
    except KeyError:
        raise ValueError(
            f"Unknown expiration policy '{name}'; "
            f"expected one of {sorted(EXPIRATION_POLICIES)}"
        ) from None


# =============================================================================
# Service
# =============================================================================


class ApprovalWorkflowService(BaseService[ApprovalModel]):
    """
    Approval coordinator for one session.

    Contract:
        Every public method returns the persisted calculation with its
        approvals as they stand after the action.
    """

    def __init__(
        self,
        session: Session,
        plans: PlanProvider,
        directory: ApproverDirectory,
        clock: Clock | None = None,
        *,
        sla_hours: Mapping[int, int] | None = None,
        default_sla_hours: int = DEFAULT_SLA_HOURS,
        amount_thresholds: Mapping[str, Sequence[Decimal]] | None = None,
        expiration_policy: ExpirationPolicy | None = None,
        writer: CalculationWriter | None = None,
    ):
        super().__init__(session, clock)
        self._plans = plans
        self.directory = directory
        self._sla_hours = dict(sla_hours or {})
        self._default_sla_hours = default_sla_hours
        self._thresholds = {
            currency: tuple(sorted(Decimal(str(t)) for t in values))
            for currency, values in (amount_thresholds or {}).items()
        }
        self.expiration_policy = expiration_policy or NoActionOnExpiry()
        self._selector = CalculationSelector(session)
        self._writer = writer or CalculationWriter(session, self.clock)

    # -------------------------------------------------------------------------
    # Configuration lookups
    # -------------------------------------------------------------------------

    def threshold_level(self, calculation: Calculation) -> int:
        """1 + the number of configured thresholds the net amount exceeds."""
        thresholds = self._thresholds.get(calculation.currency, ())
        amount = calculation.net_incentive.amount
        return 1 + sum(1 for threshold in thresholds if amount > threshold)

    def required_levels(self, calculation: Calculation, plan: IncentivePlan) -> int:
        if not plan.approval.requires_approval:
            return 0
        return max(plan.approval.approval_levels, self.threshold_level(calculation))

    def expires_at(self, level: int, now: datetime | None = None) -> datetime:
        hours = self._sla_hours.get(level, self._default_sla_hours)
        return (now or self.clock.now()) + timedelta(hours=hours)

    # -------------------------------------------------------------------------
    # Building blocks (also used by expiration policies)
    # -------------------------------------------------------------------------

    def reload(self, calculation_id: UUID) -> Calculation:
        return self._writer.reload(calculation_id)

    def open_level(
        self,
        calculation: Calculation,
        level: int,
        approver_id: UUID,
        expires_at: datetime | None = None,
    ) -> Approval:
        """Create the Pending record for ``level`` of the current round."""
        if pending_at_level(calculation.current_approvals, level):
            raise DuplicatePendingApprovalError(calculation.id, level)
        now = self.clock.now()
        approval = Approval.create(
            calculation.id,
            approver_id,
            level,
            expires_at=expires_at or self.expires_at(level, now),
            at=now,
            cycle=calculation.approval_cycle,
        )
        return self._writer.add_approval(approval)

    def _approver_for(self, calculation: Calculation, level: int) -> UUID:
        approver_id = self.directory.approver_for_level(calculation.employee_id, level)
        if approver_id is None:
            raise ApproverUnavailableError(calculation.id, level)
        return approver_id

    def cancel_pending(
        self, calculation: Calculation, reason: str, *, except_id: UUID | None = None,
    ) -> int:
        now = self.clock.now()
        cancelled = 0
        for approval in calculation.current_approvals:
            if approval.is_pending and approval.id != except_id:
                self._writer.save_approval(approval.cancel(reason, at=now))
                cancelled += 1
        return cancelled

    def reject_chain(self, calculation: Calculation, reason: str, *, by: UUID) -> Calculation:
        """Reject the calculation and cancel the round's Pending records."""
        calculation = self.reload(calculation.id)
        self.cancel_pending(calculation, PARENT_REJECTED_REASON)
        rejected = calculation.reject(reason, by=by, at=self.clock.now())
        return self._writer.save(rejected, by)

    def advance(self, calculation: Calculation, *, by: UUID, comments: str | None = None) -> Calculation:
        """Act on the chain state: finalize, open the next level, or wait."""
        plan = self._plans.get_plan(calculation.plan_id)
        required = self.required_levels(calculation, plan)
        state = evaluate_chain(calculation.current_approvals, required)

        if state.phase == ChainPhase.ALL_APPROVED:
            approved = calculation.approve(by=by, at=self.clock.now(), comments=comments)
            persisted = self._writer.save(approved, by)
            logger.info(
                "approval_chain_completed",
                extra={"calculation_id": str(calculation.id), "levels": required},
            )
            return persisted

        if state.needs_next_approval:
            self.open_level(calculation, state.level, self._approver_for(calculation, state.level))
            return self.reload(calculation.id)

        return calculation

    def _load_for_action(
        self, approval_id: UUID, actor_id: UUID | None,
    ) -> tuple[Approval, Calculation]:
        approval = self._selector.get_approval(approval_id)
        if actor_id is not None and actor_id != approval.approver_id:
            raise UnauthorizedApproverError(approval_id, actor_id, approval.approver_id)
        calculation = self._selector.get_calculation(approval.calculation_id)
        return approval, calculation

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def submit(self, calculation_id: UUID, *, actor_id: UUID) -> Calculation:
        """
        Submit a calculation for approval.

        Postconditions:
            - PendingApproval with exactly one Pending record, at level 1;
              or Approved directly when the plan requires no approval.
        """
        current = self._selector.get_calculation(calculation_id)
        plan = self._plans.get_plan(current.plan_id)
        now = self.clock.now()
        submitted = current.submit_for_approval(by=actor_id, at=now)
        required = self.required_levels(submitted, plan)

        with LogContext.bind(calculation_id=calculation_id, actor_id=actor_id):
            if required == 0:
                approved = submitted.approve(
                    by=actor_id, at=now, comments=NO_APPROVAL_REQUIRED_COMMENT,
                )
                persisted = self._writer.save(approved, actor_id)
                logger.info("calculation_auto_approved", extra={"plan_id": str(plan.id)})
                return persisted

            first_approver = self._approver_for(submitted, 1)
            persisted = self._writer.save(submitted, actor_id)
            self.open_level(persisted, 1, first_approver)
            logger.info(
                "calculation_submitted",
                extra={
                    "required_levels": required,
                    "net_incentive": persisted.net_incentive.amount,
                    "cycle": persisted.approval_cycle,
                },
            )
            return self.reload(calculation_id)

    def approve(
        self, approval_id: UUID, *, actor_id: UUID, comments: str | None = None,
    ) -> Calculation:
        approval, calculation = self._load_for_action(approval_id, actor_id)
        with LogContext.bind(approval_id=approval_id, calculation_id=calculation.id):
            self._writer.save_approval(approval.approve(at=self.clock.now(), comments=comments))
            calculation = self._writer.touch(calculation, actor_id)
            logger.info("approval_granted", extra={"level": approval.level})
            return self.advance(calculation, by=actor_id, comments=comments)

    def reject(self, approval_id: UUID, reason: str, *, actor_id: UUID) -> Calculation:
        approval, calculation = self._load_for_action(approval_id, actor_id)
        with LogContext.bind(approval_id=approval_id, calculation_id=calculation.id):
            self._writer.save_approval(approval.reject(reason, at=self.clock.now()))
            logger.info("approval_rejected", extra={"level": approval.level})
            return self.reject_chain(calculation, reason, by=actor_id)

    def delegate(
        self, approval_id: UUID, delegate_to_id: UUID, *, actor_id: UUID,
    ) -> Calculation:
        """Hand a Pending record to another approver at the same level."""
        approval, calculation = self._load_for_action(approval_id, actor_id)
        with LogContext.bind(approval_id=approval_id, calculation_id=calculation.id):
            delegated = approval.delegate(delegate_to_id, at=self.clock.now())
            self._writer.save_approval(delegated)
            calculation = self._writer.touch(calculation, actor_id)
            self.open_level(calculation, approval.level, delegate_to_id, approval.expires_at)
            logger.info(
                "approval_delegated",
                extra={"level": approval.level, "delegate_to_id": str(delegate_to_id)},
            )
            return self.reload(calculation.id)

    def escalate(
        self, approval_id: UUID, reason: str | None = None, *, actor_id: UUID | None = None,
    ) -> Calculation:
        """
        Escalate a Pending record to the next level.

        Any actor may escalate, so a supervisor can force a stuck record up
        the chain; ``actor_id`` None means a system sweep.  The actor is
        recorded on the log entry.
        """
        approval, calculation = self._load_for_action(approval_id, None)
        target = self.directory.escalation_target(
            calculation.employee_id, approval.level, approval.approver_id,
        )
        if target is None:
            raise ApproverUnavailableError(
                calculation.id, approval.level + 1, "no different approver to escalate to",
            )

        with LogContext.bind(approval_id=approval_id, calculation_id=calculation.id):
            self._writer.save_approval(approval.escalate(reason, at=self.clock.now()))
            calculation = self._writer.touch(calculation, actor_id)
            self.open_level(calculation, approval.level + 1, target)
            logger.info(
                "approval_escalated",
                extra={
                    "from_level": approval.level,
                    "to_level": approval.level + 1,
                    "escalated_to": str(target),
                    "escalated_by": str(actor_id) if actor_id is not None else None,
                    "by_assigned_approver": actor_id == approval.approver_id,
                },
            )
            return self.reload(calculation.id)

    def expire(self, approval_id: UUID) -> Calculation:
        """Mark an overdue record Expired and apply the expiration policy."""
        approval, calculation = self._load_for_action(approval_id, None)
        with LogContext.bind(approval_id=approval_id, calculation_id=calculation.id):
            self._writer.save_approval(approval.mark_expired(self.clock.now()))
            calculation = self._writer.touch(calculation)
            logger.info(
                "approval_expired",
                extra={"level": approval.level, "policy": self.expiration_policy.name},
            )
            return self.expiration_policy.apply(self, calculation, approval)
