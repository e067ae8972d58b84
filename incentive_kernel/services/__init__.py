"""Kernel services: write paths over the domain aggregates."""

from incentive_kernel.services.approval_workflow_service import (
    EXPIRATION_POLICIES,
    SYSTEM_ACTOR_ID,
    ApprovalWorkflowService,
    AutoRejectOnExpiry,
    EscalateOnExpiry,
    ExpirationPolicy,
    NoActionOnExpiry,
    RenotifyOnExpiry,
    expiration_policy_for,
)
from incentive_kernel.services.calculation_service import (
    CalculationService,
    PayoutFigures,
    gross_payout,
)
from incentive_kernel.services.calculation_writer import CalculationWriter
from incentive_kernel.services.event_dispatcher import (
    DispatchReport,
    EventDispatcher,
    EventSink,
    LoggingEventSink,
)
from incentive_kernel.services.outbox_service import OutboxService

__all__ = [
    "EXPIRATION_POLICIES",
    "SYSTEM_ACTOR_ID",
    "ApprovalWorkflowService",
    "AutoRejectOnExpiry",
    "CalculationService",
    "CalculationWriter",
    "DispatchReport",
    "EscalateOnExpiry",
    "EventDispatcher",
    "EventSink",
    "ExpirationPolicy",
    "LoggingEventSink",
    "NoActionOnExpiry",
    "OutboxService",
    "PayoutFigures",
    "RenotifyOnExpiry",
    "expiration_policy_for",
    "gross_payout",
]
