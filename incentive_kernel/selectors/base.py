"""
Module: incentive_kernel.selectors.base
Responsibility: Abstract base class for all read-only query selectors.
Architecture position: Kernel > Selectors.  May import from db/base.py and
    models/.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Read-only access: selectors accept a Session from the caller and never
      add, delete, flush or commit.
    - DTO return convention: public methods return frozen domain aggregates,
      never ORM instances.
    - Session ownership: the caller owns the session and its transaction.

Failure modes:
    - Lookup-by-id methods prefixed ``get_`` raise the matching NotFoundError;
      finder methods return None or an empty list.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from incentive_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only
        queries and return domain values.  They MUST NOT mutate any data.
    """

    def __init__(self, session: Session):
        self.session = session
