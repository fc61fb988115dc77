"""
JournalPostingService -- persist, post, and reverse journals.

Responsibility:
    Turns a JournalDraft into JournalHeader + JournalLine rows (Draft), and
    moves journals through Draft -> Posted -> Reversed.

Architecture position:
    Engine > Services -- imperative shell.  Flushes only; the caller owns
    the transaction.

Invariants enforced:
    - Idempotency: one journal per idempotency key (UNIQUE + FOR UPDATE
      lookup).  A second create raises DuplicateJournalError carrying the
      existing journal id.
    - Balance: post_journal re-checks debits == credits before Posted.
    - Transitions: only Draft -> Posted and Posted -> Reversed.

Failure modes:
    - JournalNotFoundError for an unknown id.
    - InvalidJournalTransitionError for any other status change.
    - UnbalancedJournalError if a Draft does not balance at post time.
    - DuplicateJournalError on an idempotency key collision.

Non-goals:
    - Reversal is a status flag only; no offsetting journal is generated.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from posting_engine.domain.dtos import JournalDraft
from posting_engine.domain.types import JournalStatus
from posting_engine.exceptions import (
    DuplicateJournalError,
    InvalidJournalTransitionError,
    JournalNotFoundError,
    UnbalancedJournalError,
)
from posting_engine.logging_config import get_logger
from posting_engine.models.journal import JournalHeader, JournalLine
from posting_engine.services.base import BaseService

logger = get_logger("services.journal_posting")


class JournalPostingService(BaseService[JournalHeader]):

    def create_journal(self, draft: JournalDraft, actor_id: UUID) -> JournalHeader:
        """
        Persist a Draft journal with all of its lines in one flush.

        Raises:
            DuplicateJournalError: If draft.idempotency_key is already used.
        """
        if draft.idempotency_key:
            existing = self.get_by_idempotency_key(draft.idempotency_key)
            if existing is not None:
                raise DuplicateJournalError(draft.idempotency_key, str(existing.id))

        journal = JournalHeader(
            organization_id=draft.organization_id,
            journal_date=draft.journal_date,
            transaction_type=draft.transaction_type,
            transaction_reference=draft.transaction_reference,
            status=JournalStatus.DRAFT.value,
            source_document_id=draft.source_document_id,
            triggering_action=draft.triggering_action,
            rule_id=draft.rule_id,
            idempotency_key=draft.idempotency_key,
            description=draft.description,
            created_by_id=actor_id,
        )
        for line in draft.lines:
            journal.lines.append(
                JournalLine(
                    line_number=line.line_number,
                    account_code=line.account_code,
                    debit_amount=line.debit_amount,
                    credit_amount=line.credit_amount,
                    narration=line.narration,
                    created_by_id=actor_id,
                )
            )

        try:
            with self.session.begin_nested():
                self.session.add(journal)
                self.session.flush()
        except IntegrityError:
            # Lost a race on the idempotency key
            existing = self.get_by_idempotency_key(draft.idempotency_key)
            if existing is None:
                raise
            raise DuplicateJournalError(draft.idempotency_key, str(existing.id)) from None

        logger.info(
            "journal_created",
            extra={
                "journal_id": str(journal.id),
                "transaction_reference": journal.transaction_reference,
                "line_count": len(draft.lines),
                "total_debits": draft.total_debits,
                "total_credits": draft.total_credits,
            },
        )
        return journal

    def post_journal(self, journal_id: UUID, actor_id: UUID) -> JournalHeader:
        """
        Draft -> Posted.

        Raises:
            JournalNotFoundError, InvalidJournalTransitionError,
            UnbalancedJournalError.
        """
        journal = self._load(journal_id)
        if not journal.is_draft:
            raise InvalidJournalTransitionError(
                str(journal_id), journal.status, JournalStatus.POSTED.value
            )
        if not journal.is_balanced:
            raise UnbalancedJournalError(
                journal.total_debits,
                journal.total_credits,
                reference=journal.transaction_reference,
            )

        journal.status = JournalStatus.POSTED.value
        journal.posted_at = self.clock.now()
        journal.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "journal_posted",
            extra={
                "journal_id": str(journal.id),
                "transaction_reference": journal.transaction_reference,
                "total": journal.total_debits,
            },
        )
        return journal

    def reverse_journal(self, journal_id: UUID, actor_id: UUID) -> JournalHeader:
        """
        Posted -> Reversed (status flag only).

        Raises:
            JournalNotFoundError, InvalidJournalTransitionError.
        """
        journal = self._load(journal_id)
        if not journal.is_posted:
            raise InvalidJournalTransitionError(
                str(journal_id), journal.status, JournalStatus.REVERSED.value
            )

        journal.status = JournalStatus.REVERSED.value
        journal.reversed_at = self.clock.now()
        journal.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "journal_reversed",
            extra={
                "journal_id": str(journal.id),
                "transaction_reference": journal.transaction_reference,
            },
        )
        return journal

    def get_by_idempotency_key(self, idempotency_key: str) -> JournalHeader | None:
        return self.session.scalars(
            select(JournalHeader)
            .where(JournalHeader.idempotency_key == idempotency_key)
            .with_for_update()
        ).first()

    def _load(self, journal_id: UUID) -> JournalHeader:
        journal = self.session.get(JournalHeader, journal_id, with_for_update=True)
        if journal is None:
            raise JournalNotFoundError(str(journal_id))
        return journal
