"""
Module: incentive_kernel.models.outbox
Responsibility: Transactional outbox for calculation domain events.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - An outbox row is written in the same transaction as the state change
      that raised the event, so an event exists iff its transition committed.
    - event_id is unique: the same domain event is never enqueued twice.
    - Delivery state moves pending -> delivered, or pending -> failed once
      the attempt budget is spent.  The payload never changes.

Failure modes:
    - IntegrityError on a duplicate event_id.

Audit relevance:
    The outbox doubles as the ordered history of lifecycle events per
    calculation (aggregate_id, occurred_at).
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, CheckConstraint, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from incentive_kernel.db.base import Base, UUIDString


class OutboxStatus(str, Enum):
    PENDING = "pending"
    DELIVERED = "delivered"
    FAILED = "failed"


class OutboxEventModel(Base):
    """
    One enqueued domain event awaiting (or past) delivery.

    Guarantees:
        - payload is the event's JSON form (CalculationEvent.to_payload()).
        - attempts counts failed deliveries; last_error holds the latest one.
    """

    __tablename__ = "incentive_outbox"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'delivered', 'failed')",
            name="ck_incentive_outbox_valid_status",
        ),
        Index("ix_incentive_outbox_status_occurred", "status", "occurred_at"),
        Index("ix_incentive_outbox_aggregate", "aggregate_id"),
    )

    event_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False, unique=True)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    aggregate_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(nullable=False)
    enqueued_at: Mapped[datetime] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=OutboxStatus.PENDING.value,
    )
    attempts: Mapped[int] = mapped_column(nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<OutboxEvent {self.event_type} {self.event_id} status={self.status}>"

    @property
    def is_pending(self) -> bool:
        return self.status == OutboxStatus.PENDING.value
