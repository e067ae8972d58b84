"""
incentive_services.orchestrator -- public operations over the incentive kernel.

Responsibility:
    Owns the transaction boundary for every operation: opens a
    ``session_scope``, wires the kernel services for that session, runs
    the operation, commits, and drains the outbox after commit.  Retries
    operations that lost an optimistic-lock race, and runs batch
    operations and SLA sweeps one item per transaction.

Architecture position:
    Services -- the only layer that combines ``incentive_config`` with
    ``incentive_kernel``.  The kernel never imports from here.

Invariants enforced:
    - One operation, one transaction: a transition, its approval records
      and its outbox rows commit together.
    - ConcurrencyConflictError is retried with a fresh session (reload)
      up to ``concurrency.max_retries`` times, then re-raised.  A retried
      action that is no longer legal surfaces as its PreconditionViolation.
    - Batch items never share a transaction; one failure never aborts or
      rolls back another item.
    - Event delivery happens after commit and never affects the result.

Failure modes:
    - Single-item operations raise the kernel's typed exceptions.
    - Batch operations never raise for item failures; they report them.

Usage:
    orchestrator = IncentiveOrchestrator.from_settings(plans, employees, directory)
    calc = orchestrator.run_calculation(employee_id, plan_id, period, Decimal("120000"))
    calc = orchestrator.submit_for_approval(calc.id, actor_id=manager_id)
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Iterable, Mapping, Sequence, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.orm import Session, sessionmaker

from incentive_config import IncentiveSettings, get_active_config
from incentive_kernel.db.engine import build_engine, create_tables, session_scope
from incentive_kernel.domain.approval import Approval, ApproverDirectory
from incentive_kernel.domain.calculation import Calculation, CalculationStatus
from incentive_kernel.domain.clock import Clock, SystemClock
from incentive_kernel.domain.employee import EmployeeStatus
from incentive_kernel.domain.providers import EmployeeProvider, PlanProvider
from incentive_kernel.domain.values import DateRange, Money
from incentive_kernel.exceptions import (
    ApproverUnavailableError,
    ConcurrencyConflictError,
    DuplicateCalculationError,
    IncentiveKernelError,
)
from incentive_kernel.logging_config import LogContext, get_logger
from incentive_kernel.selectors.calculation_selector import CalculationSelector
from incentive_kernel.services.approval_workflow_service import (
    ApprovalWorkflowService,
    ExpirationPolicy,
    expiration_policy_for,
)
from incentive_kernel.services.calculation_service import CalculationService
from incentive_kernel.services.calculation_writer import CalculationWriter
from incentive_kernel.services.event_dispatcher import (
    DispatchReport,
    EventDispatcher,
    EventSink,
    LoggingEventSink,
)
from incentive_kernel.services.outbox_service import OutboxService
from incentive_services.types import BatchItemResult, BatchRunResult

logger = get_logger("services.orchestrator")

T = TypeVar("T")

SLA_ESCALATION_REASON = "Approval SLA exceeded"


@dataclass(frozen=True)
class SessionServices:
    """Kernel services wired to one session."""

    session: Session
    selector: CalculationSelector
    calculations: CalculationService
    approvals: ApprovalWorkflowService


class IncentiveOrchestrator:
    """
    Entry point for callers (HTTP handlers, consumers, schedulers).

    Contract:
        Every operation is self-contained: it opens and commits its own
        transaction(s).  Results are detached frozen aggregates.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        plans: PlanProvider,
        employees: EmployeeProvider,
        directory: ApproverDirectory,
        settings: IncentiveSettings | None = None,
        clock: Clock | None = None,
        sinks: Sequence[EventSink] | None = None,
        expiration_policy: ExpirationPolicy | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._plans = plans
        self._employees = employees
        self._directory = directory
        self.settings = settings or get_active_config()
        self._clock = clock or SystemClock()
        self.expiration_policy = expiration_policy or expiration_policy_for(
            self.settings.approval.expiration_policy
        )
        self._eligible_statuses = frozenset(
            EmployeeStatus(s) for s in self.settings.eligibility.eligible_statuses
        )
        self.dispatcher = EventDispatcher(
            session_factory,
            sinks if sinks is not None else (LoggingEventSink(),),
            self._clock,
            self.settings.outbox.max_delivery_attempts,
        )

    @classmethod
    def from_settings(
        cls,
        plans: PlanProvider,
        employees: EmployeeProvider,
        directory: ApproverDirectory,
        settings: IncentiveSettings | None = None,
        **kwargs,
    ) -> IncentiveOrchestrator:
        """Build engine, tables and session factory from the database settings."""
        settings = settings or get_active_config()
        engine = build_engine(settings.database.url, echo=settings.database.echo)
        create_tables(engine)
        factory = sessionmaker(bind=engine, expire_on_commit=False)
        return cls(factory, plans, employees, directory, settings, **kwargs)

    # -------------------------------------------------------------------------
    # Plumbing
    # -------------------------------------------------------------------------

    def _services(self, session: Session) -> SessionServices:
        outbox = OutboxService(
            session, self._clock, self.settings.outbox.max_delivery_attempts,
        )
        writer = CalculationWriter(session, self._clock, outbox)
        approval = self.settings.approval
        return SessionServices(
            session=session,
            selector=CalculationSelector(session),
            calculations=CalculationService(
                session,
                self._plans,
                self._employees,
                self._clock,
                eligible_statuses=self._eligible_statuses,
                default_min_tenure_days=self.settings.eligibility.default_min_tenure_days,
                writer=writer,
            ),
            approvals=ApprovalWorkflowService(
                session,
                self._plans,
                self._directory,
                self._clock,
                sla_hours=approval.sla_hours,
                default_sla_hours=approval.default_sla_hours,
                amount_thresholds=approval.amount_thresholds,
                expiration_policy=self.expiration_policy,
                writer=writer,
            ),
        )

    def _execute(
        self,
        operation: str,
        action: Callable[[SessionServices], T],
        *,
        actor_id: UUID | None = None,
        drain: bool = True,
    ) -> T:
        """Run ``action`` in its own transaction, retrying lost races."""
        max_retries = self.settings.concurrency.max_retries
        attempt = 0
        with LogContext.bind(correlation_id=uuid4(), actor_id=actor_id):
            while True:
                try:
                    with session_scope(self._session_factory) as session:
                        result = action(self._services(session))
                    break
                except ConcurrencyConflictError as exc:
                    attempt += 1
                    if attempt > max_retries:
                        logger.error(
                            "concurrency_retries_exhausted",
                            extra={"operation": operation, "attempts": attempt},
                        )
                        raise
                    logger.warning(
                        "concurrency_conflict_retrying",
                        extra={
                            "operation": operation,
                            "attempt": attempt,
                            "error_code": exc.code,
                        },
                    )
        if drain:
            self._drain_after_commit()
        return result

    def _drain_after_commit(self) -> None:
        if self.settings.outbox.drain_after_commit:
            self.dispatcher.drain()

    def _run_items(
        self,
        operation: str,
        items: Iterable[tuple[str, Callable[[SessionServices], Calculation]]],
        *,
        actor_id: UUID | None = None,
        skip_errors: tuple[type[IncentiveKernelError], ...] = (),
    ) -> BatchRunResult:
        batch_id = uuid4()
        results: list[BatchItemResult] = []
        with LogContext.bind(batch_id=batch_id):
            for item_key, action in items:
                try:
                    calculation = self._execute(operation, action, actor_id=actor_id, drain=False)
                    results.append(BatchItemResult.succeeded(item_key, calculation.id))
                except skip_errors as exc:
                    results.append(BatchItemResult.skipped(item_key, exc.code, str(exc)))
                except IncentiveKernelError as exc:
                    results.append(BatchItemResult.failed(item_key, exc.code, str(exc)))
                except Exception as exc:
                    logger.exception(
                        "batch_item_unhandled_error",
                        extra={"operation": operation, "item_key": item_key},
                    )
                    results.append(
                        BatchItemResult.failed(item_key, "UNHANDLED_EXCEPTION", str(exc))
                    )

            run = BatchRunResult(batch_id, operation, tuple(results))
            logger.info(
                "batch_completed",
                extra={
                    "operation": operation,
                    "status": run.status.value,
                    "total": run.total,
                    "succeeded": run.succeeded,
                    "failed": run.failed,
                    "skipped": run.skipped,
                },
            )
        self._drain_after_commit()
        return run

    # -------------------------------------------------------------------------
    # Calculation
    # -------------------------------------------------------------------------

    def run_calculation(
        self,
        employee_id: UUID,
        plan_id: UUID,
        period: DateRange,
        actual_value: Decimal,
        *,
        actor_id: UUID | None = None,
        notes: str | None = None,
    ) -> Calculation:
        return self._execute(
            "run_calculation",
            lambda s: s.calculations.run_calculation(
                employee_id, plan_id, period, actual_value, actor_id=actor_id, notes=notes,
            ),
            actor_id=actor_id,
        )

    def run_batch_calculation(
        self,
        plan_id: UUID,
        period: DateRange,
        actuals: Mapping[UUID, Decimal],
        *,
        employee_ids: Sequence[UUID] | None = None,
        actor_id: UUID | None = None,
    ) -> BatchRunResult:
        """
        Calculate every employee on the plan (or ``employee_ids``).

        Employees without an actual value are skipped (NO_ACTUAL_VALUE);
        employees with an active calculation are skipped
        (DUPLICATE_CALCULATION).
        """
        if employee_ids is None:
            employee_ids = self._employees.employees_on_plan(plan_id)

        missing = [e for e in employee_ids if e not in actuals]

        def items():
            for employee_id in employee_ids:
                if employee_id in actuals:
                    actual = actuals[employee_id]
                    yield str(employee_id), (
                        lambda s, e=employee_id, a=actual: s.calculations.run_calculation(
                            e, plan_id, period, a, actor_id=actor_id,
                        )
                    )

        run = self._run_items(
            "run_batch_calculation",
            items(),
            actor_id=actor_id,
            skip_errors=(DuplicateCalculationError,),
        )
        if not missing:
            return run
        skipped = tuple(
            BatchItemResult.skipped(
                str(e), "NO_ACTUAL_VALUE", f"No actual value supplied for employee {e}",
            )
            for e in missing
        )
        return BatchRunResult(run.batch_id, run.operation, run.item_results + skipped)

    def recalculate(
        self, calculation_id: UUID, new_actual: Decimal, *, actor_id: UUID | None = None,
    ) -> Calculation:
        return self._execute(
            "recalculate",
            lambda s: s.calculations.recalculate(calculation_id, new_actual, actor_id=actor_id),
            actor_id=actor_id,
        )

    def adjust(
        self, calculation_id: UUID, new_amount: Money, reason: str, *, actor_id: UUID,
    ) -> Calculation:
        return self._execute(
            "adjust",
            lambda s: s.calculations.adjust(calculation_id, new_amount, reason, actor_id=actor_id),
            actor_id=actor_id,
        )

    def create_adjustment(
        self, calculation_id: UUID, new_actual: Decimal, reason: str, *, actor_id: UUID,
    ) -> Calculation:
        return self._execute(
            "create_adjustment",
            lambda s: s.calculations.create_adjustment(
                calculation_id, new_actual, reason, actor_id=actor_id,
            ),
            actor_id=actor_id,
        )

    def void(self, calculation_id: UUID, reason: str, *, actor_id: UUID) -> Calculation:
        return self._execute(
            "void",
            lambda s: s.calculations.void(calculation_id, reason, actor_id=actor_id),
            actor_id=actor_id,
        )

    def mark_paid(self, calculation_id: UUID, *, actor_id: UUID) -> Calculation:
        return self._execute(
            "mark_paid",
            lambda s: s.calculations.mark_paid(calculation_id, actor_id=actor_id),
            actor_id=actor_id,
        )

    # -------------------------------------------------------------------------
    # Approval
    # -------------------------------------------------------------------------

    def submit_for_approval(self, calculation_id: UUID, *, actor_id: UUID) -> Calculation:
        return self._execute(
            "submit_for_approval",
            lambda s: s.approvals.submit(calculation_id, actor_id=actor_id),
            actor_id=actor_id,
        )

    def approve(
        self, approval_id: UUID, *, actor_id: UUID, comments: str | None = None,
    ) -> Calculation:
        return self._execute(
            "approve",
            lambda s: s.approvals.approve(approval_id, actor_id=actor_id, comments=comments),
            actor_id=actor_id,
        )

    def reject(self, approval_id: UUID, reason: str, *, actor_id: UUID) -> Calculation:
        return self._execute(
            "reject",
            lambda s: s.approvals.reject(approval_id, reason, actor_id=actor_id),
            actor_id=actor_id,
        )

    def delegate(
        self, approval_id: UUID, delegate_to_id: UUID, *, actor_id: UUID,
    ) -> Calculation:
        return self._execute(
            "delegate",
            lambda s: s.approvals.delegate(approval_id, delegate_to_id, actor_id=actor_id),
            actor_id=actor_id,
        )

    def escalate(
        self, approval_id: UUID, reason: str | None = None, *, actor_id: UUID,
    ) -> Calculation:
        return self._execute(
            "escalate",
            lambda s: s.approvals.escalate(approval_id, reason, actor_id=actor_id),
            actor_id=actor_id,
        )

    def bulk_approve(
        self,
        approval_ids: Sequence[UUID],
        *,
        actor_id: UUID,
        comments: str | None = None,
    ) -> BatchRunResult:
        """Approve each record in its own transaction; report per item."""
        return self._run_items(
            "bulk_approve",
            (
                (
                    str(approval_id),
                    lambda s, a=approval_id: s.approvals.approve(
                        a, actor_id=actor_id, comments=comments,
                    ),
                )
                for approval_id in approval_ids
            ),
            actor_id=actor_id,
        )

    # -------------------------------------------------------------------------
    # Sweeps (driven by an external scheduler)
    # -------------------------------------------------------------------------

    def _overdue(self) -> list[Approval]:
        with session_scope(self._session_factory) as session:
            return CalculationSelector(session).overdue_pending(self._clock.now())

    def escalate_overdue(self, reason: str = SLA_ESCALATION_REASON) -> BatchRunResult:
        """
        Escalate every overdue Pending record to the next level.

        Records with no different approver above them are reported as
        skipped (APPROVER_UNAVAILABLE) and stay Pending.
        """
        return self._run_items(
            "escalate_overdue",
            (
                (
                    str(approval.id),
                    lambda s, a=approval.id: s.approvals.escalate(a, reason),
                )
                for approval in self._overdue()
            ),
            skip_errors=(ApproverUnavailableError,),
        )

    def expire_overdue(self) -> BatchRunResult:
        """Mark every overdue Pending record Expired and apply the policy."""
        return self._run_items(
            "expire_overdue",
            (
                (str(approval.id), lambda s, a=approval.id: s.approvals.expire(a))
                for approval in self._overdue()
            ),
        )

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_calculation(self, calculation_id: UUID) -> Calculation:
        with session_scope(self._session_factory) as session:
            return CalculationSelector(session).get_calculation(calculation_id)

    def find_calculations(
        self,
        *,
        employee_id: UUID | None = None,
        plan_id: UUID | None = None,
        period: DateRange | None = None,
        status: CalculationStatus | None = None,
        active_only: bool = False,
    ) -> list[Calculation]:
        with session_scope(self._session_factory) as session:
            return CalculationSelector(session).find(
                employee_id=employee_id,
                plan_id=plan_id,
                period=period,
                status=status,
                active_only=active_only,
            )

    def version_chain(self, calculation_id: UUID) -> list[Calculation]:
        with session_scope(self._session_factory) as session:
            return CalculationSelector(session).version_chain(calculation_id)

    def pending_approvals_for(self, approver_id: UUID) -> list[Approval]:
        with session_scope(self._session_factory) as session:
            return CalculationSelector(session).pending_for_approver(approver_id)

    def drain_events(self, limit: int | None = None) -> DispatchReport:
        return self.dispatcher.drain(limit)
