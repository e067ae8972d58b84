"""
Typed Exception Hierarchy for the Incentive Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (HTTP layer, message consumers, batch runners) must map failures to
outcomes without parsing message text.  Every error in the kernel is:

  1. A TYPED exception class (catch by type, not message)
  2. Carrying a CODE attribute (machine-readable, API-safe)
  3. Carrying structured DATA (ids, statuses) as attributes

Example:
    try:
        orchestrator.approve(approval_id, approver_id)
    except PreconditionViolationError as e:
        respond(status=409, code=e.code)
    except NotFoundError as e:
        respond(status=404, code=e.code)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    IncentiveKernelError (base)
    |
    +-- ValidationError                 malformed input, rejected pre-mutation
    |   +-- InvalidCurrencyError
    |   +-- CurrencyMismatchError
    |   +-- InvalidTargetError
    |   +-- InvalidSlabRangeError
    |   +-- NegativePayoutRateError
    |   +-- SlabOverlapError
    |   +-- InvalidProrataFactorError
    |   +-- MissingReasonError
    |   +-- InvalidApprovalLevelError
    |   +-- SelfDelegationError
    |
    +-- PreconditionViolationError      wrong-state operation, never retryable
    |   +-- InvalidCalculationTransitionError
    |   +-- InvalidApprovalTransitionError
    |   +-- ApprovalNotExpiredError
    |   +-- UnauthorizedApproverError
    |   +-- DuplicateCalculationError
    |   +-- DuplicatePendingApprovalError
    |   +-- PlanInactiveError
    |   +-- PlanNotModifiableError
    |   +-- SupersededCalculationError
    |   +-- ApproverUnavailableError
    |
    +-- ConcurrencyConflictError        optimistic-lock mismatch, reload and retry
    |   +-- OptimisticLockError
    |
    +-- NotFoundError
        +-- CalculationNotFoundError
        +-- ApprovalNotFoundError
        +-- PlanNotFoundError
        +-- EmployeeNotFoundError
        +-- SlabNotFoundError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                          | When Raised
----------------|-------------------------------|---------------------------------------
Validation      | INVALID_CURRENCY              | Not a valid ISO 4217 code
                | CURRENCY_MISMATCH             | Mixed currencies in arithmetic
                | INVALID_TARGET                | Target value not positive
                | INVALID_SLAB_RANGE            | Slab from > to
                | NEGATIVE_PAYOUT_RATE          | Slab rate below zero
                | SLAB_OVERLAP                  | New slab intersects an existing one
                | INVALID_PRORATA_FACTOR        | Factor outside (0, 100]
                | MISSING_REASON                | Required reason empty
                | INVALID_APPROVAL_LEVEL        | Level below 1
                | SELF_DELEGATION               | Delegate equals current approver
----------------|-------------------------------|---------------------------------------
Precondition    | INVALID_CALCULATION_TRANSITION| Calculation in wrong status
                | INVALID_APPROVAL_TRANSITION   | Approval not Pending
                | APPROVAL_NOT_EXPIRED          | markExpired before expires_at
                | UNAUTHORIZED_APPROVER         | Actor is not the assigned approver
                | DUPLICATE_CALCULATION         | Active calc exists for emp/plan/period
                | DUPLICATE_PENDING_APPROVAL    | Second Pending approval at a level
                | PLAN_INACTIVE                 | Plan disabled or outside its window
                | PLAN_NOT_MODIFIABLE           | Slab change on a non-draft or non-slab plan
                | SUPERSEDED_CALCULATION        | Calc already has a newer version
                | APPROVER_UNAVAILABLE          | No (different) approver for a level
----------------|-------------------------------|---------------------------------------
Concurrency     | OPTIMISTIC_LOCK_FAILED        | Row version changed since read
----------------|-------------------------------|---------------------------------------
Not found       | CALCULATION_NOT_FOUND, APPROVAL_NOT_FOUND, PLAN_NOT_FOUND,
                | EMPLOYEE_NOT_FOUND, SLAB_NOT_FOUND
"""

from decimal import Decimal
from typing import Any
from uuid import UUID


class IncentiveKernelError(Exception):
    """Base exception for all incentive kernel errors."""

    code: str = "INCENTIVE_KERNEL_ERROR"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        for key, value in details.items():
            setattr(self, key, value)


# =============================================================================
# Validation
# =============================================================================


class ValidationError(IncentiveKernelError):
    """Malformed input, rejected before any state is touched."""

    code: str = "VALIDATION_ERROR"


class InvalidCurrencyError(ValidationError):
    """Currency is not a valid ISO 4217 code."""

    code: str = "INVALID_CURRENCY"

    def __init__(self, currency: str):
        self.currency = currency
        super().__init__(f"Invalid ISO 4217 currency code: {currency!r}")


class CurrencyMismatchError(ValidationError):
    """Arithmetic or comparison across two currencies."""

    code: str = "CURRENCY_MISMATCH"

    def __init__(self, currency1: str, currency2: str, operation: str = "combine"):
        self.currency1 = currency1
        self.currency2 = currency2
        self.operation = operation
        super().__init__(
            f"Cannot {operation} amounts in {currency1} and {currency2}"
        )


class InvalidTargetError(ValidationError):
    """Target value must be positive, threshold within [0, target]."""

    code: str = "INVALID_TARGET"


class InvalidSlabRangeError(ValidationError):
    """Slab lower bound is above its upper bound."""

    code: str = "INVALID_SLAB_RANGE"

    def __init__(self, from_percentage: Decimal, to_percentage: Decimal):
        self.from_percentage = from_percentage
        self.to_percentage = to_percentage
        super().__init__(
            f"Slab from ({from_percentage}) must not exceed to ({to_percentage})"
        )


class NegativePayoutRateError(ValidationError):
    code: str = "NEGATIVE_PAYOUT_RATE"

    def __init__(self, payout_rate: Decimal):
        self.payout_rate = payout_rate
        super().__init__(f"Payout rate cannot be negative: {payout_rate}")


class SlabOverlapError(ValidationError):
    """New slab range intersects an existing slab (inclusive bounds)."""

    code: str = "SLAB_OVERLAP"

    def __init__(
        self,
        from_percentage: Decimal,
        to_percentage: Decimal,
        existing_slab_id: UUID,
    ):
        self.from_percentage = from_percentage
        self.to_percentage = to_percentage
        self.existing_slab_id = existing_slab_id
        super().__init__(
            f"Slab [{from_percentage}, {to_percentage}] overlaps "
            f"existing slab {existing_slab_id}"
        )


class InvalidProrataFactorError(ValidationError):
    code: str = "INVALID_PRORATA_FACTOR"

    def __init__(self, factor: Decimal):
        self.factor = factor
        super().__init__(f"Prorata factor must be in (0, 100], got {factor}")


class MissingReasonError(ValidationError):
    """A required reason (reject, void, adjust) was empty."""

    code: str = "MISSING_REASON"

    def __init__(self, action: str):
        self.action = action
        super().__init__(f"A reason is required to {action}")


class InvalidApprovalLevelError(ValidationError):
    code: str = "INVALID_APPROVAL_LEVEL"

    def __init__(self, level: int):
        self.level = level
        super().__init__(f"Approval level must be at least 1, got {level}")


class SelfDelegationError(ValidationError):
    """Delegation target is the approver already assigned."""

    code: str = "SELF_DELEGATION"

    def __init__(self, approval_id: UUID, approver_id: UUID):
        self.approval_id = approval_id
        self.approver_id = approver_id
        super().__init__(
            f"Approval {approval_id} cannot be delegated to its own "
            f"approver {approver_id}"
        )


# =============================================================================
# Precondition violations
# =============================================================================


class PreconditionViolationError(IncentiveKernelError):
    """Operation is not legal in the aggregate's current state."""

    code: str = "PRECONDITION_VIOLATION"


class InvalidCalculationTransitionError(PreconditionViolationError):
    code: str = "INVALID_CALCULATION_TRANSITION"

    def __init__(self, calculation_id: UUID, action: str, current_status: str):
        self.calculation_id = calculation_id
        self.action = action
        self.current_status = current_status
        super().__init__(
            f"Cannot {action} calculation {calculation_id} "
            f"in status {current_status}"
        )


class InvalidApprovalTransitionError(PreconditionViolationError):
    code: str = "INVALID_APPROVAL_TRANSITION"

    def __init__(self, approval_id: UUID, action: str, current_status: str):
        self.approval_id = approval_id
        self.action = action
        self.current_status = current_status
        super().__init__(
            f"Cannot {action} approval {approval_id} in status {current_status}"
        )


class ApprovalNotExpiredError(PreconditionViolationError):
    code: str = "APPROVAL_NOT_EXPIRED"

    def __init__(self, approval_id: UUID, expires_at: Any):
        self.approval_id = approval_id
        self.expires_at = expires_at
        super().__init__(
            f"Approval {approval_id} has not expired (expires_at={expires_at})"
        )


class UnauthorizedApproverError(PreconditionViolationError):
    code: str = "UNAUTHORIZED_APPROVER"

    def __init__(self, approval_id: UUID, actor_id: UUID, approver_id: UUID):
        self.approval_id = approval_id
        self.actor_id = actor_id
        self.approver_id = approver_id
        super().__init__(
            f"Actor {actor_id} is not the approver of {approval_id}"
        )


class DuplicateCalculationError(PreconditionViolationError):
    code: str = "DUPLICATE_CALCULATION"

    def __init__(self, employee_id: UUID, plan_id: UUID, period: Any,
                 existing_id: UUID):
        self.employee_id = employee_id
        self.plan_id = plan_id
        self.period = period
        self.existing_id = existing_id
        super().__init__(
            f"Active calculation {existing_id} already exists for employee "
            f"{employee_id}, plan {plan_id}, period {period}"
        )


class DuplicatePendingApprovalError(PreconditionViolationError):
    code: str = "DUPLICATE_PENDING_APPROVAL"

    def __init__(self, calculation_id: UUID, level: int):
        self.calculation_id = calculation_id
        self.level = level
        super().__init__(
            f"Calculation {calculation_id} already has a pending approval "
            f"at level {level}"
        )


class PlanInactiveError(PreconditionViolationError):
    code: str = "PLAN_INACTIVE"

    def __init__(self, plan_id: UUID):
        self.plan_id = plan_id
        super().__init__(f"Incentive plan {plan_id} is not active")


class PlanNotModifiableError(PreconditionViolationError):
    code: str = "PLAN_NOT_MODIFIABLE"

    def __init__(self, plan_id: UUID, reason: str):
        self.plan_id = plan_id
        self.reason = reason
        super().__init__(f"Incentive plan {plan_id} cannot be modified: {reason}")


class SupersededCalculationError(PreconditionViolationError):
    code: str = "SUPERSEDED_CALCULATION"

    def __init__(self, calculation_id: UUID, successor_id: UUID):
        self.calculation_id = calculation_id
        self.successor_id = successor_id
        super().__init__(
            f"Calculation {calculation_id} was already superseded by "
            f"{successor_id}"
        )


class ApproverUnavailableError(PreconditionViolationError):
    code: str = "APPROVER_UNAVAILABLE"

    def __init__(self, calculation_id: UUID, level: int, reason: str = "no approver configured"):
        self.calculation_id = calculation_id
        self.level = level
        self.reason = reason
        super().__init__(
            f"No approver available for calculation {calculation_id} "
            f"at level {level}: {reason}"
        )


# =============================================================================
# Concurrency
# =============================================================================


class ConcurrencyConflictError(IncentiveKernelError):
    """Base for concurrency errors. Recoverable by reloading."""

    code: str = "CONCURRENCY_CONFLICT"


class OptimisticLockError(ConcurrencyConflictError):
    """Row version changed between read and write."""

    code: str = "OPTIMISTIC_LOCK_FAILED"

    def __init__(self, entity_type: str, entity_id: UUID,
                 expected_version: int | None = None):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version
        super().__init__(
            f"{entity_type} {entity_id} was modified concurrently"
        )


# =============================================================================
# Not found
# =============================================================================


class NotFoundError(IncentiveKernelError):
    code: str = "NOT_FOUND"

    entity_type: str = "Entity"

    def __init__(self, entity_id: Any):
        self.entity_id = entity_id
        super().__init__(f"{self.entity_type} not found: {entity_id}")


class CalculationNotFoundError(NotFoundError):
    code: str = "CALCULATION_NOT_FOUND"
    entity_type = "Calculation"


class ApprovalNotFoundError(NotFoundError):
    code: str = "APPROVAL_NOT_FOUND"
    entity_type = "Approval"


class PlanNotFoundError(NotFoundError):
    code: str = "PLAN_NOT_FOUND"
    entity_type = "Incentive plan"


class EmployeeNotFoundError(NotFoundError):
    code: str = "EMPLOYEE_NOT_FOUND"
    entity_type = "Employee"


class SlabNotFoundError(NotFoundError):
    code: str = "SLAB_NOT_FOUND"
    entity_type = "Slab"
