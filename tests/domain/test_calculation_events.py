"""Domain events raised by calculation transitions and their outbox payloads."""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

from incentive_kernel.domain.calculation import Calculation
from incentive_kernel.domain.events import (
    EVENT_TYPES,
    CalculationCompleted,
    CalculationSubmittedForApproval,
)
from incentive_kernel.domain.values import DateRange, Money

NOW = datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)


def calculated() -> Calculation:
    calc = Calculation.create(
        employee_id=uuid4(),
        plan_id=uuid4(),
        period=DateRange.for_quarter(2024, 4),
        target_value=Decimal("100000"),
        actual_value=Decimal("120000"),
        base_salary=Money.of("50000", "INR"),
        at=NOW,
    )
    return calc.calculate(Money.of("5000.00", "INR"), None, at=NOW)


def test_every_event_type_registered():
    assert set(EVENT_TYPES) == {
        "calculation.completed",
        "calculation.submitted_for_approval",
        "calculation.approved",
        "calculation.rejected",
        "calculation.paid",
        "calculation.voided",
        "calculation.adjusted",
        "calculation.recalculated",
    }


def test_transitions_accumulate_events():
    actor = uuid4()
    calc = calculated().submit_for_approval(by=actor, at=NOW)
    assert [type(e) for e in calc.events] == [
        CalculationCompleted, CalculationSubmittedForApproval,
    ]
    assert calc.clear_events().events == ()


def test_payload_is_json_ready():
    event = calculated().events[0]
    payload = event.to_payload()
    assert payload["calculation_id"] == str(event.calculation_id)
    assert payload["gross_incentive"] == {"amount": "5000.00", "currency": "INR"}
    assert payload["achievement_percentage"] == "120.0000"
    assert payload["occurred_at"] == NOW.isoformat()
    assert payload["applied_slab_id"] is None
    assert payload["actor_id"] is None


def test_event_ids_unique():
    first, second = calculated().events[0], calculated().events[0]
    assert first.event_id != second.event_id
