"""
OutboxService -- enqueue and track delivery of calculation events.

Responsibility:
    Writes domain events into ``incentive_outbox`` inside the caller's
    transaction and records the outcome of each delivery attempt.

Architecture position:
    Kernel > Services.  Used by CalculationWriter (enqueue) and by
    EventDispatcher (fetch / mark).

Invariants enforced:
    - enqueue only flushes; the rows commit with the state change.
    - A row moves to FAILED once ``max_attempts`` deliveries have failed
      and is never offered again.
    - Pending rows are returned oldest first (occurred_at, enqueued_at, id).

Failure modes:
    - IntegrityError if the same event_id is enqueued twice.
    - ValueError for an event class missing from EVENT_TYPES.
"""

from __future__ import annotations

from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from incentive_kernel.domain.clock import Clock
from incentive_kernel.domain.events import EVENT_TYPES, CalculationEvent
from incentive_kernel.logging_config import get_logger
from incentive_kernel.models.outbox import OutboxEventModel, OutboxStatus
from incentive_kernel.services.base import BaseService

logger = get_logger("services.outbox")

DEFAULT_MAX_DELIVERY_ATTEMPTS = 5


class OutboxService(BaseService[OutboxEventModel]):
    """Outbox rows for one session."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        max_attempts: int = DEFAULT_MAX_DELIVERY_ATTEMPTS,
    ):
        super().__init__(session, clock)
        self.max_attempts = max_attempts

    def enqueue(self, events: Iterable[CalculationEvent]) -> list[OutboxEventModel]:
        now = self.clock.now()
        rows = []
        for event in events:
            if event.event_type not in EVENT_TYPES:
                raise ValueError(f"Unregistered event type: {event.event_type!r}")
            row = OutboxEventModel(
                event_id=event.event_id,
                event_type=event.event_type,
                aggregate_id=event.calculation_id,
                payload=event.to_payload(),
                occurred_at=event.occurred_at,
                enqueued_at=now,
                status=OutboxStatus.PENDING.value,
                attempts=0,
            )
            self.session.add(row)
            rows.append(row)
            logger.debug(
                "event_enqueued",
                extra={
                    "event_id": str(event.event_id),
                    "event_type": event.event_type,
                    "calculation_id": str(event.calculation_id),
                },
            )
        if rows:
            self.session.flush()
        return rows

    def pending(self, limit: int | None = None) -> list[OutboxEventModel]:
        stmt = (
            select(OutboxEventModel)
            .where(OutboxEventModel.status == OutboxStatus.PENDING.value)
            .order_by(
                OutboxEventModel.occurred_at,
                OutboxEventModel.enqueued_at,
                OutboxEventModel.id,
            )
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self.session.execute(stmt).scalars())

    def events_for(self, calculation_id) -> list[OutboxEventModel]:
        stmt = (
            select(OutboxEventModel)
            .where(OutboxEventModel.aggregate_id == calculation_id)
            .order_by(OutboxEventModel.occurred_at, OutboxEventModel.enqueued_at)
        )
        return list(self.session.execute(stmt).scalars())

    def mark_delivered(self, row: OutboxEventModel) -> None:
        row.status = OutboxStatus.DELIVERED.value
        row.delivered_at = self.clock.now()
        row.last_error = None
        self.session.flush()

    def mark_attempt_failed(self, row: OutboxEventModel, error: str) -> None:
        row.attempts += 1
        row.last_error = error
        if row.attempts >= self.max_attempts:
            row.status = OutboxStatus.FAILED.value
            logger.error(
                "outbox_delivery_abandoned",
                extra={
                    "event_id": str(row.event_id),
                    "event_type": row.event_type,
                    "attempts": row.attempts,
                },
            )
        self.session.flush()
