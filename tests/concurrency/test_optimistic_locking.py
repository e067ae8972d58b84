"""
Optimistic locking under competing writers.

Two sessions act on the same calculation.  The loser of the race must fail
with OptimisticLockError rather than overwrite the winner; a retry reloads
and then sees the action is no longer legal.  File-backed SQLite is used so
the two sessions really hold separate connections.
"""

from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker

from incentive_kernel.db.engine import build_engine, create_tables
from incentive_kernel.domain.calculation import CalculationStatus
from incentive_kernel.exceptions import (
    ConcurrencyConflictError,
    InvalidApprovalTransitionError,
    OptimisticLockError,
)
from incentive_kernel.models import ApprovalModel, CalculationModel
from incentive_kernel.services import approval_workflow_service
from incentive_kernel.services.approval_workflow_service import ApprovalWorkflowService
from incentive_kernel.services.calculation_service import CalculationService


@pytest.fixture
def file_factory(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'race.db'}")
    create_tables(engine)
    yield sessionmaker(bind=engine, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def race_orchestrator(make_orchestrator, file_factory):
    return make_orchestrator(factory=file_factory)


@pytest.fixture
def submitted(race_orchestrator, employee, slab_plan, period, actor_id):
    calc = race_orchestrator.run_calculation(
        employee.id, slab_plan.id, period, Decimal("120000"),
    )
    return race_orchestrator.submit_for_approval(calc.id, actor_id=actor_id)


class TestCompetingApprovals:

    def test_second_approval_loses(
        self, race_orchestrator, file_factory, submitted, plans, directory,
        deterministic_clock, approvers, recording_sink,
    ):
        approval_id = submitted.approvals[0].id

        # Session B loads both rows before A commits and keeps them in its
        # identity map, so its write is based on the stale row_version.
        session_b = file_factory()
        stale_approval = session_b.get(ApprovalModel, approval_id)
        stale_calculation = session_b.get(CalculationModel, submitted.id)
        assert stale_approval.status == "pending"
        assert stale_calculation is not None

        race_orchestrator.approve(approval_id, actor_id=approvers.level1)

        workflow_b = ApprovalWorkflowService(session_b, plans, directory, deterministic_clock)
        with pytest.raises(OptimisticLockError) as exc_info:
            workflow_b.approve(approval_id, actor_id=approvers.level1)
        assert exc_info.value.code == "OPTIMISTIC_LOCK_FAILED"
        assert isinstance(exc_info.value, ConcurrencyConflictError)
        session_b.rollback()
        session_b.close()

        # A retry reloads and finds the record already decided.
        with pytest.raises(InvalidApprovalTransitionError):
            race_orchestrator.approve(approval_id, actor_id=approvers.level1)

        final = race_orchestrator.get_calculation(submitted.id)
        assert final.status == CalculationStatus.APPROVED
        assert recording_sink.for_calculation(submitted.id).count("calculation.approved") == 1

    def test_void_races_approval(
        self, race_orchestrator, file_factory, submitted, plans, employees,
        deterministic_clock, approvers, actor_id,
    ):
        session_b = file_factory()
        stale_calculation = session_b.get(CalculationModel, submitted.id)
        assert stale_calculation.status == "pending_approval"

        race_orchestrator.approve(submitted.approvals[0].id, actor_id=approvers.level1)

        service_b = CalculationService(session_b, plans, employees, deterministic_clock)
        with pytest.raises(OptimisticLockError):
            service_b.void(submitted.id, "Duplicate", actor_id=actor_id)
        session_b.rollback()
        session_b.close()

        assert race_orchestrator.get_calculation(submitted.id).status == CalculationStatus.APPROVED


class TestRetry:

    def test_conflict_retried_then_succeeds(
        self, orchestrator, calculated, actor_id, approvers, monkeypatch,
    ):
        calc = orchestrator.submit_for_approval(calculated.id, actor_id=actor_id)
        original = ApprovalWorkflowService.approve
        calls = []

        def flaky(self, approval_id, **kwargs):
            calls.append(approval_id)
            if len(calls) == 1:
                raise OptimisticLockError("Approval", approval_id, 1)
            return original(self, approval_id, **kwargs)

        monkeypatch.setattr(approval_workflow_service.ApprovalWorkflowService, "approve", flaky)
        result = orchestrator.approve(calc.approvals[0].id, actor_id=approvers.level1)

        assert len(calls) == 2
        assert result.status == CalculationStatus.APPROVED

    def test_retries_exhausted(
        self, orchestrator, calculated, actor_id, approvers, monkeypatch, captured_logs,
    ):
        calc = orchestrator.submit_for_approval(calculated.id, actor_id=actor_id)
        calls = []

        def always_stale(self, approval_id, **kwargs):
            calls.append(approval_id)
            raise OptimisticLockError("Approval", approval_id, 1)

        monkeypatch.setattr(
            approval_workflow_service.ApprovalWorkflowService, "approve", always_stale,
        )
        with pytest.raises(OptimisticLockError):
            orchestrator.approve(calc.approvals[0].id, actor_id=approvers.level1)

        max_retries = orchestrator.settings.concurrency.max_retries
        assert len(calls) == max_retries + 1
        messages = [r["message"] for r in captured_logs()]
        assert messages.count("concurrency_conflict_retrying") == max_retries
        assert "concurrency_retries_exhausted" in messages
        assert orchestrator.get_calculation(calc.id).status == CalculationStatus.PENDING_APPROVAL
