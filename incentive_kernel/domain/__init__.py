"""
Pure domain layer.

This module contains immutable value objects, the calculation and approval
state machines, and the collaborator protocols, with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Wall-clock time (a Clock is injected)
- I/O
"""

from incentive_kernel.domain.approval import (
    APPROVAL_TRANSITIONS,
    TERMINAL_APPROVAL_STATUSES,
    Approval,
    ApprovalStatus,
    ApproverDirectory,
)
from incentive_kernel.domain.approval_chain import (
    ApprovalChainState,
    ChainPhase,
    evaluate_chain,
)
from incentive_kernel.domain.calculation import (
    CALCULATION_TRANSITIONS,
    Calculation,
    CalculationStatus,
)
from incentive_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from incentive_kernel.domain.currency import CurrencyInfo, CurrencyRegistry
from incentive_kernel.domain.eligibility import EligibilityResult, check_eligibility
from incentive_kernel.domain.employee import Employee, EmployeeStatus
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
from incentive_kernel.domain.plan import (
    ApprovalConfig,
    IncentivePlan,
    PlanStatus,
    PlanType,
)
from incentive_kernel.domain.providers import (
    EmployeeProvider,
    PlanProvider,
    StaticApproverDirectory,
    StaticEmployeeProvider,
    StaticPlanProvider,
)
from incentive_kernel.domain.slab import Slab, add_slab, payout, remove_slab, resolve
from incentive_kernel.domain.values import (
    AchievementType,
    DateRange,
    Money,
    Percentage,
    Target,
)

__all__ = [
    "APPROVAL_TRANSITIONS",
    "AchievementType",
    "Approval",
    "ApprovalChainState",
    "ApprovalConfig",
    "ApprovalStatus",
    "ApproverDirectory",
    "CALCULATION_TRANSITIONS",
    "Calculation",
    "CalculationAdjusted",
    "CalculationApproved",
    "CalculationCompleted",
    "CalculationEvent",
    "CalculationPaid",
    "CalculationRecalculated",
    "CalculationRejected",
    "CalculationStatus",
    "CalculationSubmittedForApproval",
    "CalculationVoided",
    "ChainPhase",
    "Clock",
    "CurrencyInfo",
    "CurrencyRegistry",
    "DateRange",
    "DeterministicClock",
    "EligibilityResult",
    "Employee",
    "EmployeeProvider",
    "EmployeeStatus",
    "IncentivePlan",
    "Money",
    "Percentage",
    "PlanProvider",
    "PlanStatus",
    "PlanType",
    "Slab",
    "StaticApproverDirectory",
    "StaticEmployeeProvider",
    "StaticPlanProvider",
    "SystemClock",
    "TERMINAL_APPROVAL_STATUSES",
    "Target",
    "add_slab",
    "check_eligibility",
    "evaluate_chain",
    "payout",
    "remove_slab",
    "resolve",
]
