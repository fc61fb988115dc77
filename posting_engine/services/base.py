"""
BaseService -- abstract base for all engine services.

Responsibility:
    Common constructor and session contract.  Every write service receives
    a SQLAlchemy ``Session`` and persists with ``session.flush()`` only.

Invariants enforced:
    Services never call ``session.commit()`` or ``session.rollback()``.
    The StatusTransitionOrchestrator (or the caller's session_scope) owns
    transaction boundaries, so a rule's journal and its subledger entries
    can share one savepoint.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from posting_engine.db.base import Base
from posting_engine.domain.clock import Clock, SystemClock

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all engine services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide read models -- those belong in ``selectors/``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()
