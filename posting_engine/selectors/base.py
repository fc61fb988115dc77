"""
Module: posting_engine.selectors.base
Responsibility: Abstract base class for read-only query selectors.
Architecture position: Engine > Selectors.  May import from db/ and models/.
    MUST NOT import from services/.

Invariants enforced:
    - Read-only: selectors never add, delete, flush, or commit.
    - Selectors return frozen dataclasses or computed values, not ORM rows.
    - Balances are derived from entries; nothing is stored cumulatively.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from posting_engine.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """Selectors accept the caller's Session and only read through it."""

    def __init__(self, session: Session):
        self.session = session
