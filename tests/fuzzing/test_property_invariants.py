"""
Property-based tests for the pure domain layer.

Properties checked:
- add_slab never produces an overlapping slab set, whatever order the
  ranges arrive in; resolve() returns a slab containing the achievement
- Achievement and prorata percentages are exact four-place roundings;
  a prorated net is exactly gross x factor / 100
- Every recalculation bumps the business version by exactly one
- The approval chain completes only once every required level approved
"""

from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from uuid import uuid4

from hypothesis import given, settings
from hypothesis import strategies as st

from incentive_kernel.domain.approval import Approval
from incentive_kernel.domain.approval_chain import ChainPhase, evaluate_chain
from incentive_kernel.domain.calculation import Calculation
from incentive_kernel.domain.eligibility import prorata_factor
from incentive_kernel.domain.employee import Employee
from incentive_kernel.domain.plan import ApprovalConfig, IncentivePlan, PlanType
from incentive_kernel.domain.slab import add_slab, check_no_overlap, resolve
from incentive_kernel.domain.values import DateRange, Money, Percentage, Target
from incentive_kernel.exceptions import SlabOverlapError

NOW = datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)
QUARTER = DateRange.for_quarter(2024, 4)

percent = st.decimals(min_value=0, max_value=500, places=2)
rate = st.decimals(min_value=0, max_value=50, places=2)
amount = st.decimals(min_value=0, max_value=10_000_000, places=2)


def draft_plan() -> IncentivePlan:
    return IncentivePlan(
        code="PROP",
        name="Property plan",
        plan_type=PlanType.SLAB_BASED,
        target=Target(Decimal("100000")),
        effective_period=DateRange.for_financial_year(2024),
        approval=ApprovalConfig(True, 1),
    )


def calculated(actual: Decimal) -> Calculation:
    calc = Calculation.create(
        employee_id=uuid4(),
        plan_id=uuid4(),
        period=QUARTER,
        target_value=Decimal("100000"),
        actual_value=actual,
        base_salary=Money.of("50000", "INR"),
        at=NOW,
    )
    return calc.calculate(Money.of("5000", "INR"), None, at=NOW)


@settings(max_examples=100, deadline=None)
@given(st.lists(st.tuples(percent, percent, rate), max_size=12))
def test_slab_set_never_overlaps(ranges):
    plan = draft_plan()
    for lower, upper, payout_rate in ranges:
        lower, upper = min(lower, upper), max(lower, upper)
        try:
            plan = add_slab(plan, lower, upper, payout_rate)
        except SlabOverlapError:
            continue

    check_no_overlap(plan.slabs)
    assert [s.order for s in plan.slabs] == list(range(1, len(plan.slabs) + 1))


@settings(max_examples=100, deadline=None)
@given(st.lists(st.tuples(percent, percent), max_size=8), percent)
def test_resolved_slab_contains_achievement(ranges, achieved):
    plan = draft_plan()
    for lower, upper in ranges:
        lower, upper = min(lower, upper), max(lower, upper)
        try:
            plan = add_slab(plan, lower, upper, Decimal("10"))
        except SlabOverlapError:
            continue

    achievement = Percentage(achieved)
    slab = resolve(plan.slabs, achievement)
    containing = [s for s in plan.slabs if s.contains(achievement)]
    if slab is None:
        assert containing == []
    else:
        assert containing == [slab]


@given(amount, st.decimals(min_value=Decimal("0.01"), max_value=10_000_000, places=2))
def test_achievement_is_four_place_rounding(actual, target):
    expected = (actual / target * 100).quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)
    assert Percentage.calculate(actual, target).value == expected


@given(st.integers(min_value=0, max_value=QUARTER.total_days - 1))
def test_prorata_matches_days_worked(offset):
    joined = QUARTER.start + timedelta(days=offset)
    employee = Employee(
        employee_code="E-PROP",
        base_salary=Money.of("50000", "INR"),
        date_of_joining=joined,
    )
    days = (QUARTER.end - joined).days + 1
    factor = prorata_factor(employee, QUARTER)
    if days == QUARTER.total_days:
        assert factor == Percentage.full()
    else:
        expected = (Decimal(days) / Decimal(QUARTER.total_days) * 100).quantize(
            Decimal("0.0001"), rounding=ROUND_HALF_UP,
        )
        assert factor.value == expected
    assert Decimal(0) < factor.value <= Decimal(100)


@given(st.lists(amount, min_size=1, max_size=6))
def test_recalculation_bumps_version_by_one(actuals):
    calc = calculated(Decimal("120000"))
    for step, actual in enumerate(actuals, start=2):
        gross = Money.of("1000", "INR")
        calc = calc.recalculate(
            actual, gross, gross, Percentage.calculate(actual, Decimal("100000")), None,
            at=NOW,
        )
        assert calc.version == step
    assert calc.previous_version_id is None


@given(st.integers(min_value=1, max_value=5), st.integers(min_value=0, max_value=5))
def test_chain_complete_only_when_all_levels_approved(required, approved_levels):
    calculation_id = uuid4()
    approvals = [
        Approval.create(calculation_id, uuid4(), level, at=NOW).approve(at=NOW)
        for level in range(1, approved_levels + 1)
    ]
    state = evaluate_chain(approvals, required)
    if approved_levels >= required:
        assert state.phase == ChainPhase.ALL_APPROVED
        assert state.is_complete
    else:
        assert state.phase == ChainPhase.AWAITING_LEVEL
        assert state.level == approved_levels + 1
        assert state.needs_next_approval


@given(
    st.decimals(min_value=Decimal("0.0001"), max_value=100, places=4),
    st.decimals(min_value=0, max_value=1_000_000, places=2),
)
def test_prorata_net_is_exact_share_of_gross(factor, gross_amount):
    calc = Calculation.create(
        employee_id=uuid4(),
        plan_id=uuid4(),
        period=QUARTER,
        target_value=Decimal("100000"),
        actual_value=Decimal("120000"),
        base_salary=Money.of("50000", "INR"),
        at=NOW,
    ).calculate(Money.of(gross_amount, "INR"), None, at=NOW)

    prorated = calc.apply_prorata(Percentage(factor))
    assert prorated.net_incentive.amount == gross_amount * factor / Decimal(100)
    assert prorated.gross_incentive.amount == gross_amount
    assert prorated.net_incentive.amount <= gross_amount
