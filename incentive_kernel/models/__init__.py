"""ORM models for the incentive kernel."""

from incentive_kernel.models.approval import APPROVAL_STATUS_VALUES, ApprovalModel
from incentive_kernel.models.calculation import (
    CALCULATION_STATUS_VALUES,
    CalculationModel,
)
from incentive_kernel.models.outbox import OutboxEventModel, OutboxStatus

__all__ = [
    "APPROVAL_STATUS_VALUES",
    "ApprovalModel",
    "CALCULATION_STATUS_VALUES",
    "CalculationModel",
    "OutboxEventModel",
    "OutboxStatus",
]
