"""
OutcomeRecorder -- posting outcome lifecycle and the needs-posting outbox.

Responsibility:
    Claims the idempotency key of a document lifecycle event, records how
    its posting ended, and drives the FAILED/PARTIAL -> RETRYING ->
    ... -> ABANDONED lifecycle.

Architecture position:
    Engine > Services -- imperative shell.
    Called by StatusTransitionOrchestrator.

Invariants enforced:
    - Exactly one PostingOutcome per (organization, document, action).
      claim() reads the key FOR UPDATE and relies on the UNIQUE
      constraint when two claims race.
    - Transitions follow VALID_TRANSITIONS.

Failure modes:
    - OutcomeNotFoundError: transition requested for an unknown key.
    - InvalidOutcomeTransitionError: e.g. posted -> retrying.
    - RetryNotAllowedError: not retriable, or max retries reached.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from posting_engine.domain.dtos import PostingDocument
from posting_engine.domain.types import TriggeringAction
from posting_engine.exceptions import OutcomeNotFoundError, RetryNotAllowedError
from posting_engine.logging_config import get_logger
from posting_engine.models.posting_outcome import OutcomeStatus, PostingOutcome
from posting_engine.services.base import BaseService
from posting_engine.utils.idempotency import document_idempotency_key

logger = get_logger("services.outcome_recorder")


class OutcomeRecorder(BaseService[PostingOutcome]):

    def claim(
        self,
        document: PostingDocument,
        action: TriggeringAction,
        actor_id: UUID,
    ) -> tuple[PostingOutcome, bool]:
        """
        Claim the event's idempotency key.

        Returns:
            (outcome, claimed).  ``claimed`` is False when another call
            already owns the key; ``outcome`` is then the existing row.
        """
        key = document_idempotency_key(document.organization_id, document.document_id, action)
        existing = self.get(key, for_update=True)
        if existing is not None:
            logger.info(
                "posting_already_claimed",
                extra={"idempotency_key": key, "status": existing.status},
            )
            return existing, False

        now = self.clock.now()
        outcome = PostingOutcome(
            idempotency_key=key,
            organization_id=document.organization_id,
            document_id=document.document_id,
            transaction_category=document.category.value,
            triggering_action=action.value,
            status=OutcomeStatus.IN_PROGRESS.value,
            needs_posting=False,
            document_snapshot=document.to_snapshot(),
            actor_id=actor_id,
            retry_count=0,
            created_at=now,
            updated_at=now,
        )
        try:
            with self.session.begin_nested():
                self.session.add(outcome)
                self.session.flush()
        except IntegrityError:
            existing = self.get(key, for_update=True)
            if existing is None:
                raise
            logger.info(
                "posting_claim_lost_race",
                extra={"idempotency_key": key, "status": existing.status},
            )
            return existing, False

        logger.info("posting_claimed", extra={"idempotency_key": key})
        return outcome, True

    def finish(
        self,
        outcome: PostingOutcome,
        status: OutcomeStatus,
        journal_ids: list[str],
        rule_results: list[dict[str, Any]],
        needs_posting: bool = False,
        failure_code: str | None = None,
        failure_message: str | None = None,
    ) -> PostingOutcome:
        """Move an IN_PROGRESS or RETRYING outcome to its result status."""
        outcome.validate_transition(status)
        from_status = outcome.status

        outcome.status = status.value
        outcome.journal_ids = journal_ids
        outcome.rule_results = rule_results
        outcome.needs_posting = needs_posting
        outcome.failure_code = failure_code
        outcome.failure_message = failure_message
        outcome.updated_at = self.clock.now()
        self.session.flush()

        logger.info(
            "outcome_transitioned",
            extra={
                "idempotency_key": outcome.idempotency_key,
                "from_status": from_status,
                "to_status": status.value,
                "needs_posting": needs_posting,
                "journal_count": len(journal_ids),
                "failure_code": failure_code,
            },
        )
        return outcome

    def transition_to_retrying(self, idempotency_key: str, max_retries: int) -> PostingOutcome:
        """
        FAILED/PARTIAL -> RETRYING.  Increments retry_count.

        Raises:
            OutcomeNotFoundError, RetryNotAllowedError.
        """
        outcome = self._get_existing(idempotency_key)
        if not outcome.is_retriable:
            raise RetryNotAllowedError(idempotency_key, f"outcome is {outcome.status}")
        if outcome.retry_count >= max_retries:
            raise RetryNotAllowedError(
                idempotency_key, f"max retries ({max_retries}) reached"
            )
        outcome.validate_transition(OutcomeStatus.RETRYING)
        from_status = outcome.status

        outcome.status = OutcomeStatus.RETRYING.value
        outcome.retry_count += 1
        outcome.updated_at = self.clock.now()
        self.session.flush()

        logger.info(
            "outcome_transitioned",
            extra={
                "idempotency_key": idempotency_key,
                "from_status": from_status,
                "to_status": OutcomeStatus.RETRYING.value,
                "retry_count": outcome.retry_count,
            },
        )
        return outcome

    def transition_to_abandoned(self, idempotency_key: str, reason: str) -> PostingOutcome:
        """
        FAILED/PARTIAL -> ABANDONED.  Clears needs_posting.

        Raises:
            OutcomeNotFoundError, InvalidOutcomeTransitionError.
        """
        outcome = self._get_existing(idempotency_key)
        outcome.validate_transition(OutcomeStatus.ABANDONED)
        from_status = outcome.status

        outcome.status = OutcomeStatus.ABANDONED.value
        outcome.needs_posting = False
        outcome.failure_message = reason
        outcome.updated_at = self.clock.now()
        self.session.flush()

        logger.warning(
            "outcome_abandoned",
            extra={
                "idempotency_key": idempotency_key,
                "from_status": from_status,
                "reason": reason,
            },
        )
        return outcome

    def get(self, idempotency_key: str, for_update: bool = False) -> PostingOutcome | None:
        stmt = select(PostingOutcome).where(PostingOutcome.idempotency_key == idempotency_key)
        if for_update:
            stmt = stmt.with_for_update()
        return self.session.scalars(stmt).first()

    def pending(
        self,
        organization_id: UUID | None = None,
        limit: int = 100,
    ) -> list[PostingOutcome]:
        """Outcomes that still owe journals to the ledger, oldest first."""
        stmt = select(PostingOutcome).where(
            PostingOutcome.needs_posting.is_(True),
            PostingOutcome.status.in_(
                [OutcomeStatus.FAILED.value, OutcomeStatus.PARTIAL.value]
            ),
        )
        if organization_id is not None:
            stmt = stmt.where(PostingOutcome.organization_id == organization_id)
        stmt = stmt.order_by(PostingOutcome.created_at, PostingOutcome.idempotency_key)
        return list(self.session.scalars(stmt.limit(limit)))

    def _get_existing(self, idempotency_key: str) -> PostingOutcome:
        outcome = self.get(idempotency_key, for_update=True)
        if outcome is None:
            raise OutcomeNotFoundError(idempotency_key)
        return outcome
