"""
incentive_services -- transaction-owning operations over the kernel.

Responsibility:
    Public surface for callers.  ``IncentiveOrchestrator`` wires
    configuration, providers and kernel services, owns every transaction
    and drains the event outbox after commit.

Architecture position:
    Services.  Dependency direction:
        incentive_services/ -> incentive_kernel/  (allowed)
        incentive_services/ -> incentive_config/  (allowed)
        incentive_kernel/   -> incentive_services/ (FORBIDDEN)
"""

from incentive_services.orchestrator import IncentiveOrchestrator, SessionServices
from incentive_services.types import (
    BatchItemResult,
    BatchItemStatus,
    BatchRunResult,
    BatchRunStatus,
)

__all__ = [
    "BatchItemResult",
    "BatchItemStatus",
    "BatchRunResult",
    "BatchRunStatus",
    "IncentiveOrchestrator",
    "SessionServices",
]
