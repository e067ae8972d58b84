"""
BaseService -- abstract base for kernel services that write.

Responsibility:
    Common constructor and session contract.  Services use
    ``session.flush()`` and never ``session.commit()``; the orchestrator's
    ``session_scope`` owns the transaction.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Transaction boundaries belong to the caller: a transition, its
      approval records and its outbox rows commit together or not at all.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from incentive_kernel.db.base import Base
from incentive_kernel.domain.clock import Clock, SystemClock

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for kernel services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.
        - ``self.clock`` is the only source of time.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()
