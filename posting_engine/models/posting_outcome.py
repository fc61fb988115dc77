"""
Module: posting_engine.models.posting_outcome
Responsibility: ORM persistence for the result of posting one document
    lifecycle event.  Doubles as the "needs posting" outbox for retries.
Architecture position: Engine > Models.  May import from db/base.py only.

Invariants enforced:
    - Exactly one outcome per (organization, document, triggering action)
      (UNIQUE idempotency_key).  A second status change with the same key
      is a duplicate and posts nothing.
    - State transitions follow VALID_TRANSITIONS.

Failure modes:
    - IntegrityError on duplicate idempotency_key.
    - InvalidOutcomeTransitionError on an invalid state transition
      (raised by OutcomeRecorder via validate_transition).

Audit relevance:
    journal_ids links to the journals the event produced.  For failed and
    partial outcomes, failure_code / failure_message / rule_results explain
    which rules did not post and why.  document_snapshot stores the document
    as seen at the status change, so a retry posts the same amounts.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from posting_engine.db.base import Base, UUIDString
from posting_engine.exceptions import InvalidOutcomeTransitionError


class OutcomeStatus(str, Enum):
    """
    Status for posting outcomes.

    State machine:
        IN_PROGRESS -> POSTED | NON_POSTING | PARTIAL | FAILED
        PARTIAL -> RETRYING | ABANDONED
        FAILED -> RETRYING | ABANDONED
        RETRYING -> POSTED | NON_POSTING | PARTIAL | FAILED
        POSTED: terminal
        NON_POSTING: terminal
        ABANDONED: terminal
    """

    IN_PROGRESS = "in_progress"  # Claimed, rules running
    POSTED = "posted"            # Every matched rule posted
    NON_POSTING = "non_posting"  # No rule fired or every rule skipped
    PARTIAL = "partial"          # Some rules posted, some failed
    FAILED = "failed"            # No rule posted, at least one failed
    RETRYING = "retrying"        # Retry in progress after PARTIAL/FAILED
    ABANDONED = "abandoned"      # Permanently given up


VALID_TRANSITIONS: dict[OutcomeStatus, frozenset[OutcomeStatus]] = {
    OutcomeStatus.IN_PROGRESS: frozenset({
        OutcomeStatus.POSTED, OutcomeStatus.NON_POSTING,
        OutcomeStatus.PARTIAL, OutcomeStatus.FAILED,
    }),
    OutcomeStatus.PARTIAL: frozenset({
        OutcomeStatus.RETRYING, OutcomeStatus.ABANDONED,
    }),
    OutcomeStatus.FAILED: frozenset({
        OutcomeStatus.RETRYING, OutcomeStatus.ABANDONED,
    }),
    OutcomeStatus.RETRYING: frozenset({
        OutcomeStatus.POSTED, OutcomeStatus.NON_POSTING,
        OutcomeStatus.PARTIAL, OutcomeStatus.FAILED,
    }),
    # Terminal states
    OutcomeStatus.POSTED: frozenset(),
    OutcomeStatus.NON_POSTING: frozenset(),
    OutcomeStatus.ABANDONED: frozenset(),
}


class PostingOutcome(Base):
    """
    Records how one document lifecycle event was posted.

    Guarantees:
        - State transitions follow VALID_TRANSITIONS.
        - needs_posting is True while the event still owes journals to the
          ledger (PARTIAL/FAILED under the record-for-retry policy).
    """

    __tablename__ = "posting_outcomes"

    __table_args__ = (
        Index("idx_posting_outcome_status", "status"),
        Index("idx_posting_outcome_document", "organization_id", "document_id"),
        Index("idx_posting_outcome_needs_posting", "needs_posting", "status"),
    )

    # org:document:action
    idempotency_key: Mapped[str] = mapped_column(
        String(300),
        nullable=False,
        unique=True,
    )

    organization_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    document_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    transaction_category: Mapped[str] = mapped_column(String(20), nullable=False)

    triggering_action: Mapped[str] = mapped_column(String(50), nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False)

    needs_posting: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    # JSON array of journal id strings
    journal_ids: Mapped[list | None] = mapped_column(JSON, nullable=True)

    # JSON array of {rule_id, rule_name, status, reason_code, ...}
    rule_results: Mapped[list | None] = mapped_column(JSON, nullable=True)

    failure_code: Mapped[str | None] = mapped_column(String(100), nullable=True)

    failure_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    document_snapshot: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    # 0 = original attempt
    retry_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    @property
    def status_enum(self) -> OutcomeStatus:
        return OutcomeStatus(self.status)

    def __repr__(self) -> str:
        return f"<PostingOutcome {self.status} {self.idempotency_key}>"

    @property
    def is_terminal(self) -> bool:
        return not VALID_TRANSITIONS.get(self.status_enum, frozenset())

    @property
    def is_retriable(self) -> bool:
        return self.status_enum in (OutcomeStatus.FAILED, OutcomeStatus.PARTIAL)

    def validate_transition(self, target: OutcomeStatus) -> None:
        """
        Raises:
            InvalidOutcomeTransitionError: If target is not reachable from
                the current status.
        """
        allowed = VALID_TRANSITIONS.get(self.status_enum, frozenset())
        if target not in allowed:
            raise InvalidOutcomeTransitionError(
                self.idempotency_key, self.status, target.value,
            )
