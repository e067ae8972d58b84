"""
Database-level backstops for the approval and version invariants.

These go around the workflow service on purpose: they check that the
schema and mapper listeners reject states the services already avoid.
"""

from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from incentive_kernel.domain.approval import Approval
from incentive_kernel.domain.values import Money, Percentage
from incentive_kernel.exceptions import (
    DuplicatePendingApprovalError,
    InvalidApprovalTransitionError,
    OptimisticLockError,
    SupersededCalculationError,
)
from incentive_kernel.models.approval import ApprovalModel
from incentive_kernel.services.calculation_writer import CalculationWriter


@pytest.fixture
def writer(session, deterministic_clock):
    return CalculationWriter(session, deterministic_clock)


def pending(calculation_id, level=1, cycle=1, at=None):
    return Approval.create(
        calculation_id, uuid4(), level,
        expires_at=at + timedelta(hours=72) if at else None,
        at=at,
        cycle=cycle,
    )


class TestPendingPerLevel:

    def test_second_pending_at_level_rejected(self, writer, calculated, deterministic_clock):
        now = deterministic_clock.now()
        writer.add_approval(pending(calculated.id, at=now))
        with pytest.raises(DuplicatePendingApprovalError) as exc_info:
            writer.add_approval(pending(calculated.id, at=now))
        assert exc_info.value.code == "DUPLICATE_PENDING_APPROVAL"

    def test_other_level_allowed(self, writer, calculated, deterministic_clock):
        now = deterministic_clock.now()
        writer.add_approval(pending(calculated.id, 1, at=now))
        writer.add_approval(pending(calculated.id, 2, at=now))
        assert len(writer.reload(calculated.id).approvals) == 2

    def test_resolved_record_frees_the_level(self, writer, calculated, deterministic_clock):
        now = deterministic_clock.now()
        first = writer.add_approval(pending(calculated.id, at=now))
        writer.save_approval(first.escalate("handover", at=now))
        writer.add_approval(pending(calculated.id, at=now))
        statuses = sorted(a.status.value for a in writer.reload(calculated.id).approvals)
        assert statuses == ["escalated", "pending"]


class TestTerminalRecordsFrozen:

    def test_direct_update_rejected(self, session, writer, calculated, deterministic_clock):
        now = deterministic_clock.now()
        record = writer.add_approval(pending(calculated.id, at=now))
        writer.save_approval(record.approve(at=now, comments="fine"))

        model = session.get(ApprovalModel, record.id)
        model.comments = "rewritten"
        with pytest.raises(InvalidApprovalTransitionError):
            session.flush()

    def test_status_cannot_be_reopened(self, session, writer, calculated, deterministic_clock):
        now = deterministic_clock.now()
        record = writer.add_approval(pending(calculated.id, at=now))
        writer.save_approval(record.reject("no", at=now))

        model = session.get(ApprovalModel, record.id)
        model.status = "pending"
        with pytest.raises(InvalidApprovalTransitionError):
            session.flush()


class TestRowVersion:

    def test_starts_at_one(self, calculated):
        assert calculated.row_version == 1

    def test_every_write_bumps(self, writer, calculated, actor_id):
        touched = writer.touch(calculated, actor_id)
        assert touched.row_version == 2
        assert touched == calculated

    def test_stale_aggregate_rejected(self, writer, calculated, actor_id):
        writer.touch(calculated, actor_id)
        voided = calculated.void("Duplicate", by=actor_id, at=calculated.created_at)
        with pytest.raises(OptimisticLockError) as exc_info:
            writer.save(voided, actor_id)
        assert exc_info.value.code == "OPTIMISTIC_LOCK_FAILED"

    def test_approval_bumps_its_own_counter(self, writer, calculated, deterministic_clock):
        now = deterministic_clock.now()
        record = writer.add_approval(pending(calculated.id, at=now))
        assert record.row_version == 1
        assert writer.save_approval(record.escalate(None, at=now)).row_version == 2


class TestSuccessorUniqueness:

    def successor(self, calculation, actor_id, at):
        return calculation.create_adjustment(
            Decimal("130000"),
            "Correction",
            gross=Money.of("5000", "INR"),
            net=Money.of("5000", "INR"),
            achievement=Percentage.of("130"),
            slab_id=None,
            by=actor_id,
            at=at,
        )

    def test_one_successor_per_version(self, writer, calculated, actor_id, deterministic_clock):
        now = deterministic_clock.now()
        writer.insert(self.successor(calculated, actor_id, now))
        with pytest.raises(SupersededCalculationError):
            writer.insert(self.successor(calculated, actor_id, now))
