"""
Module: stock_kernel.selectors.base
Responsibility: Abstract base class for read-only query selectors.
Architecture position: Kernel > Selectors.  May import from db/ and models/.
    MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Read-only access: selectors never add, delete, flush or commit.
    - Selectors return frozen dataclasses or plain values, not ORM rows.
    - The caller owns the session and its transaction scope, so a selector
      call inside a workflow sees that workflow's uncommitted writes.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from stock_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Contract:
        Accept a Session from the caller, query, return DTOs.  No mutation.
    """

    def __init__(self, session: Session):
        self.session = session
