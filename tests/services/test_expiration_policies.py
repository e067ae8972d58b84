"""
Tests for SLA sweeps and expiration policies.

Level 1 is opened at 2025-01-01 09:00 UTC with a 72 hour SLA.  The sweeps
run on the deterministic clock, so "overdue" is fully controlled here.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from incentive_kernel.domain.approval import ApprovalStatus
from incentive_kernel.domain.calculation import CalculationStatus
from incentive_kernel.domain.providers import StaticApproverDirectory
from incentive_kernel.exceptions import ApprovalNotExpiredError
from incentive_kernel.services.approval_workflow_service import (
    EXPIRATION_POLICIES,
    SYSTEM_ACTOR_ID,
    ApprovalWorkflowService,
    AutoRejectOnExpiry,
    expiration_policy_for,
)
from incentive_services import BatchItemStatus, BatchRunStatus
from incentive_services.orchestrator import SLA_ESCALATION_REASON

S = CalculationStatus
A = ApprovalStatus


def statuses(calc):
    return [(a.level, a.status) for a in calc.approvals]


@pytest.fixture
def submit(actor_id):
    def _submit(orchestrator, calculation_id):
        return orchestrator.submit_for_approval(calculation_id, actor_id=actor_id)

    return _submit


@pytest.fixture
def submitted_with(make_orchestrator, employee, slab_plan, period, submit):
    """Build an orchestrator with ``policy`` and a submitted calculation."""

    def _make(policy="none", directory=None):
        orchestrator = make_orchestrator(
            expiration_policy=policy, approver_directory=directory,
        )
        calc = orchestrator.run_calculation(
            employee.id, slab_plan.id, period, Decimal("120000"),
        )
        return orchestrator, submit(orchestrator, calc.id)

    return _make


class TestPolicyRegistry:

    def test_known_policies(self):
        assert set(EXPIRATION_POLICIES) == {"none", "auto_reject", "escalate", "renotify"}
        assert isinstance(expiration_policy_for("auto_reject"), AutoRejectOnExpiry)

    def test_unknown_policy(self):
        with pytest.raises(ValueError, match="Unknown expiration policy"):
            expiration_policy_for("reassign")


class TestOverdueSelection:

    def test_nothing_overdue_before_deadline(self, submitted_with, deterministic_clock):
        orchestrator, _ = submitted_with()
        deterministic_clock.advance(hours=71)
        result = orchestrator.expire_overdue()
        assert result.total == 0
        assert result.status == BatchRunStatus.COMPLETED

    def test_deadline_itself_is_not_overdue(self, submitted_with, deterministic_clock):
        orchestrator, _ = submitted_with()
        deterministic_clock.advance(hours=72)
        assert orchestrator.expire_overdue().total == 0

    def test_direct_expire_before_deadline(
        self, submitted_with, session, plans, directory, deterministic_clock,
    ):
        _, calc = submitted_with()
        workflow = ApprovalWorkflowService(session, plans, directory, deterministic_clock)
        with pytest.raises(ApprovalNotExpiredError) as exc_info:
            workflow.expire(calc.approvals[0].id)
        assert exc_info.value.code == "APPROVAL_NOT_EXPIRED"


class TestEscalateOverdue:

    def test_escalates_to_next_level(
        self, submitted_with, deterministic_clock, approvers,
    ):
        orchestrator, calc = submitted_with()
        deterministic_clock.advance(hours=73)

        result = orchestrator.escalate_overdue()
        assert result.total == 1
        assert result.succeeded == 1

        calc = orchestrator.get_calculation(calc.id)
        assert calc.status == S.PENDING_APPROVAL
        assert statuses(calc) == [(1, A.ESCALATED), (2, A.PENDING)]
        assert calc.approvals[0].comments == SLA_ESCALATION_REASON
        assert calc.approvals[1].approver_id == approvers.level2
        assert calc.approvals[1].expires_at == deterministic_clock.now() + timedelta(hours=48)

    def test_escalated_record_can_complete_chain(
        self, submitted_with, deterministic_clock, approvers,
    ):
        orchestrator, calc = submitted_with()
        deterministic_clock.advance(hours=73)
        orchestrator.escalate_overdue()
        calc = orchestrator.get_calculation(calc.id)
        calc = orchestrator.approve(calc.approvals[1].id, actor_id=approvers.level2)
        assert calc.status == S.APPROVED

    def test_no_target_is_skipped(self, submitted_with, deterministic_clock, approvers):
        orchestrator, calc = submitted_with(
            directory=StaticApproverDirectory({1: approvers.level1}),
        )
        deterministic_clock.advance(hours=73)

        result = orchestrator.escalate_overdue()
        item = result.item_results[0]
        assert item.status == BatchItemStatus.SKIPPED
        assert item.error_code == "APPROVER_UNAVAILABLE"
        assert result.status == BatchRunStatus.COMPLETED
        assert statuses(orchestrator.get_calculation(calc.id)) == [(1, A.PENDING)]


class TestExpireOverdue:

    def test_no_action_policy(self, submitted_with, deterministic_clock):
        orchestrator, calc = submitted_with("none")
        deterministic_clock.advance(hours=73)

        result = orchestrator.expire_overdue()
        assert result.succeeded == 1

        calc = orchestrator.get_calculation(calc.id)
        assert calc.status == S.PENDING_APPROVAL
        assert statuses(calc) == [(1, A.EXPIRED)]
        assert calc.approvals[0].action_date == deterministic_clock.now()

    def test_auto_reject_policy(self, submitted_with, deterministic_clock, recording_sink):
        orchestrator, calc = submitted_with("auto_reject")
        deterministic_clock.advance(hours=73)
        orchestrator.expire_overdue()

        calc = orchestrator.get_calculation(calc.id)
        assert calc.status == S.REJECTED
        assert calc.rejection_reason == "Approval at level 1 expired"
        assert statuses(calc) == [(1, A.EXPIRED)]

        rejected = [p for t, p in recording_sink.events if t == "calculation.rejected"]
        assert rejected[0]["actor_id"] == str(SYSTEM_ACTOR_ID)

    def test_escalate_policy(self, submitted_with, deterministic_clock, approvers):
        orchestrator, calc = submitted_with("escalate")
        deterministic_clock.advance(hours=73)
        orchestrator.expire_overdue()

        calc = orchestrator.get_calculation(calc.id)
        assert calc.status == S.PENDING_APPROVAL
        assert statuses(calc) == [(1, A.EXPIRED), (2, A.PENDING)]
        assert calc.approvals[1].approver_id == approvers.level2

        calc = orchestrator.approve(calc.approvals[1].id, actor_id=approvers.level2)
        assert calc.status == S.APPROVED

    def test_escalate_policy_without_target(
        self, submitted_with, deterministic_clock, approvers,
    ):
        orchestrator, calc = submitted_with(
            "escalate", StaticApproverDirectory({1: approvers.level1}),
        )
        deterministic_clock.advance(hours=73)
        result = orchestrator.expire_overdue()
        assert result.succeeded == 1
        assert statuses(orchestrator.get_calculation(calc.id)) == [(1, A.EXPIRED)]

    def test_renotify_policy(self, submitted_with, deterministic_clock, approvers):
        orchestrator, calc = submitted_with("renotify")
        deterministic_clock.advance(hours=73)
        orchestrator.expire_overdue()

        calc = orchestrator.get_calculation(calc.id)
        assert statuses(calc) == [(1, A.EXPIRED), (1, A.PENDING)]
        reissued = calc.approvals[1]
        assert reissued.approver_id == approvers.level1
        assert reissued.expires_at == deterministic_clock.now() + timedelta(hours=72)

        calc = orchestrator.approve(reissued.id, actor_id=approvers.level1)
        assert calc.status == S.APPROVED

    def test_sweep_is_idempotent(self, submitted_with, deterministic_clock):
        orchestrator, _ = submitted_with("auto_reject")
        deterministic_clock.advance(hours=73)
        assert orchestrator.expire_overdue().total == 1
        assert orchestrator.expire_overdue().total == 0
