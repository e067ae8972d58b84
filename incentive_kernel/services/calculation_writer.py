"""
CalculationWriter -- persistence of calculation aggregates and approvals.

Responsibility:
    The only code path that writes ``incentive_calculations`` and
    ``incentive_approvals``.  Applies a transitioned aggregate onto its row,
    checks the optimistic lock token, and moves the aggregate's pending
    domain events into the outbox within the same transaction.

Architecture position:
    Kernel > Services -- imperative shell.  Called by CalculationService
    and ApprovalWorkflowService; never by outer layers directly.

Invariants enforced:
    - Optimistic concurrency: the aggregate's row_version must match the
      stored one, and the UPDATE itself is guarded by SQLAlchemy's
      version_id_col.  Either mismatch raises OptimisticLockError.
    - Every approval write also touches the parent calculation row, so all
      actions on one calculation serialize on a single version counter.
    - At most one Pending approval per (calculation, level): the partial
      unique index is the backstop; its violation surfaces as
      DuplicatePendingApprovalError.
    - A calculation has at most one successor version; a second one
      surfaces as SupersededCalculationError.
    - Events are enqueued iff the write flushed.

Failure modes:
    - OptimisticLockError (retryable by the orchestrator).
    - DuplicatePendingApprovalError, SupersededCalculationError.
    - CalculationNotFoundError / ApprovalNotFoundError on save of an unknown id.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError

from incentive_kernel.domain.approval import Approval
from incentive_kernel.domain.calculation import Calculation
from incentive_kernel.domain.clock import Clock
from incentive_kernel.exceptions import (
    DuplicatePendingApprovalError,
    OptimisticLockError,
    SupersededCalculationError,
)
from incentive_kernel.logging_config import get_logger
from incentive_kernel.models.approval import ApprovalModel
from incentive_kernel.models.calculation import CalculationModel
from incentive_kernel.selectors.calculation_selector import CalculationSelector
from incentive_kernel.services.base import BaseService
from incentive_kernel.services.outbox_service import OutboxService

logger = get_logger("services.calculation_writer")


class CalculationWriter(BaseService[CalculationModel]):
    """
    Writes aggregates through the session; flushes, never commits.

    Contract:
        Every public method returns the freshly persisted aggregate with
        its current row_version and approvals and with its events cleared.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        outbox: OutboxService | None = None,
    ):
        super().__init__(session, clock)
        self._selector = CalculationSelector(session)
        self._outbox = outbox or OutboxService(session, self.clock)

    # -------------------------------------------------------------------------
    # Calculations
    # -------------------------------------------------------------------------

    def insert(self, calculation: Calculation) -> Calculation:
        model = CalculationModel.from_dto(calculation)
        model.created_at = calculation.created_at or self.clock.now()
        model.updated_at = model.created_at
        model.updated_by_id = calculation.created_by
        self.session.add(model)
        try:
            self.session.flush()
        except IntegrityError as exc:
            if calculation.previous_version_id is not None:
                logger.warning(
                    "successor_version_conflict",
                    extra={"previous_version_id": str(calculation.previous_version_id)},
                )
                raise SupersededCalculationError(
                    calculation.previous_version_id, calculation.id,
                ) from exc
            raise

        self._outbox.enqueue(calculation.events)
        logger.info(
            "calculation_inserted",
            extra={
                "calculation_id": str(model.id),
                "status": model.status,
                "version": model.version,
            },
        )
        return self._reload(model)

    def save(self, calculation: Calculation, actor_id: UUID | None = None) -> Calculation:
        """Apply a transitioned aggregate onto its row (guarded by row_version)."""
        model = self._locked_calculation(calculation)
        previous_status = model.status
        model.apply_dto(calculation)
        self._touch(model, actor_id)
        self._flush("Calculation", calculation.id, calculation.row_version)

        self._outbox.enqueue(calculation.events)
        if previous_status != model.status:
            logger.info(
                "calculation_status_changed",
                extra={
                    "calculation_id": str(model.id),
                    "from_status": previous_status,
                    "to_status": model.status,
                    "version": model.version,
                },
            )
        return self._reload(model)

    def reload(self, calculation_id: UUID) -> Calculation:
        """Current state of a calculation in this session, approvals included."""
        return self._reload(self._selector.calculation_model(calculation_id))

    def touch(self, calculation: Calculation, actor_id: UUID | None = None) -> Calculation:
        """Bump the calculation's row version without changing its state."""
        model = self._locked_calculation(calculation)
        self._touch(model, actor_id)
        self._flush("Calculation", calculation.id, calculation.row_version)
        return self._reload(model)

    # -------------------------------------------------------------------------
    # Approvals
    # -------------------------------------------------------------------------

    def add_approval(self, approval: Approval) -> Approval:
        model = ApprovalModel.from_dto(approval)
        if model.created_at is None:
            model.created_at = self.clock.now()
        self.session.add(model)
        try:
            self.session.flush()
        except IntegrityError as exc:
            logger.warning(
                "duplicate_pending_approval",
                extra={
                    "calculation_id": str(approval.calculation_id),
                    "level": approval.level,
                },
            )
            raise DuplicatePendingApprovalError(
                approval.calculation_id, approval.level,
            ) from exc

        logger.info(
            "approval_created",
            extra={
                "approval_id": str(model.id),
                "calculation_id": str(model.calculation_id),
                "approver_id": str(model.approver_id),
                "level": model.level,
                "expires_at": model.expires_at,
            },
        )
        return model.to_dto()

    def save_approval(self, approval: Approval) -> Approval:
        model = self._selector.approval_model(approval.id)
        if model.row_version != approval.row_version:
            raise OptimisticLockError("Approval", approval.id, approval.row_version)
        previous_status = model.status
        model.apply_dto(approval)
        self._flush("Approval", approval.id, approval.row_version)

        logger.info(
            "approval_status_changed",
            extra={
                "approval_id": str(model.id),
                "calculation_id": str(model.calculation_id),
                "level": model.level,
                "from_status": previous_status,
                "to_status": model.status,
            },
        )
        return model.to_dto()

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _locked_calculation(self, calculation: Calculation) -> CalculationModel:
        model = self._selector.calculation_model(calculation.id)
        if model.row_version != calculation.row_version:
            logger.warning(
                "stale_calculation_write",
                extra={
                    "calculation_id": str(calculation.id),
                    "expected_row_version": calculation.row_version,
                    "stored_row_version": model.row_version,
                },
            )
            raise OptimisticLockError("Calculation", calculation.id, calculation.row_version)
        return model

    def _touch(self, model: CalculationModel, actor_id: UUID | None) -> None:
        model.updated_at = self.clock.now()
        if actor_id is not None:
            model.updated_by_id = actor_id
        # Forces an UPDATE (and so a version bump) even when nothing else changed.
        flag_modified(model, "updated_at")

    def _flush(self, entity_type: str, entity_id: UUID, expected: int) -> None:
        try:
            self.session.flush()
        except StaleDataError as exc:
            logger.warning(
                "optimistic_lock_failed",
                extra={"entity_type": entity_type, "entity_id": str(entity_id)},
            )
            raise OptimisticLockError(entity_type, entity_id, expected) from exc

    def _reload(self, model: CalculationModel) -> Calculation:
        self.session.expire(model, ["approvals"])
        return model.to_dto()
