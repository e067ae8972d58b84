"""
EventDispatcher -- post-commit delivery of outbox events to sinks.

Responsibility:
    Reads pending outbox rows in occurrence order and hands each one to
    every registered EventSink.  Runs after the state-changing transaction
    has committed, in its own transaction.

Architecture position:
    Kernel > Services.  Invoked by the orchestrator after each operation
    and on demand (``drain_events``).

Invariants enforced:
    - A committed transition is never undone by a sink: delivery happens
      after commit and a sink failure only updates the outbox row.
    - At-least-once delivery: a row stays pending until every sink
      accepted it; a retry re-delivers to all sinks.
    - Rows are offered in (occurred_at, enqueued_at, id) order.

Failure modes:
    - Sink exception: caught per row, logged, recorded as last_error;
      the row is abandoned (FAILED) after max_attempts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, Sequence
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from incentive_kernel.db.engine import session_scope
from incentive_kernel.domain.clock import Clock, SystemClock
from incentive_kernel.logging_config import get_logger
from incentive_kernel.models.outbox import OutboxStatus
from incentive_kernel.services.outbox_service import (
    DEFAULT_MAX_DELIVERY_ATTEMPTS,
    OutboxService,
)

logger = get_logger("services.event_dispatcher")


class EventSink(Protocol):
    """Receives delivered events.  Raising marks the delivery failed."""

    def deliver(self, event_type: str, payload: dict[str, Any]) -> None:
        ...


class LoggingEventSink:
    """Default sink: writes each event as a structured log line."""

    def __init__(self, logger_name: str = "events"):
        self._logger = get_logger(logger_name)

    def deliver(self, event_type: str, payload: dict[str, Any]) -> None:
        self._logger.info(
            "domain_event",
            extra={"event_type": event_type, "payload": payload},
        )


@dataclass(frozen=True)
class DispatchReport:
    delivered: tuple[UUID, ...] = ()
    failed: tuple[UUID, ...] = ()
    abandoned: tuple[UUID, ...] = ()

    @property
    def attempted(self) -> int:
        return len(self.delivered) + len(self.failed)


@dataclass
class _Tally:
    delivered: list[UUID] = field(default_factory=list)
    failed: list[UUID] = field(default_factory=list)
    abandoned: list[UUID] = field(default_factory=list)

    def report(self) -> DispatchReport:
        return DispatchReport(
            tuple(self.delivered), tuple(self.failed), tuple(self.abandoned),
        )


class EventDispatcher:
    """Drains the outbox into sinks."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        sinks: Sequence[EventSink] = (),
        clock: Clock | None = None,
        max_attempts: int = DEFAULT_MAX_DELIVERY_ATTEMPTS,
    ):
        self._session_factory = session_factory
        self._sinks = list(sinks)
        self._clock = clock or SystemClock()
        self._max_attempts = max_attempts

    def add_sink(self, sink: EventSink) -> None:
        self._sinks.append(sink)

    def drain(self, limit: int | None = None) -> DispatchReport:
        tally = _Tally()
        if not self._sinks:
            return tally.report()

        with session_scope(self._session_factory) as session:
            outbox = OutboxService(session, self._clock, self._max_attempts)
            for row in outbox.pending(limit):
                try:
                    for sink in self._sinks:
                        sink.deliver(row.event_type, dict(row.payload))
                except Exception as exc:
                    logger.error(
                        "event_delivery_failed",
                        extra={
                            "event_id": str(row.event_id),
                            "event_type": row.event_type,
                            "calculation_id": str(row.aggregate_id),
                            "attempt": row.attempts + 1,
                            "error": str(exc),
                        },
                    )
                    outbox.mark_attempt_failed(row, f"{type(exc).__name__}: {exc}")
                    tally.failed.append(row.event_id)
                    if row.status == OutboxStatus.FAILED.value:
                        tally.abandoned.append(row.event_id)
                    continue

                outbox.mark_delivered(row)
                tally.delivered.append(row.event_id)

        if tally.delivered or tally.failed:
            logger.info(
                "outbox_drained",
                extra={
                    "delivered": len(tally.delivered),
                    "failed": len(tally.failed),
                    "abandoned": len(tally.abandoned),
                },
            )
        return tally.report()
