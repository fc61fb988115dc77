"""
Journal query selector.

Read-only access to journals and their lines, returned as frozen DTOs.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from posting_engine.db.types import ZERO
from posting_engine.domain.types import JournalStatus
from posting_engine.models.journal import JournalHeader, JournalLine
from posting_engine.selectors.base import BaseSelector


@dataclass(frozen=True)
class JournalLineDTO:
    id: UUID
    line_number: int
    account_code: str
    debit_amount: Decimal | None
    credit_amount: Decimal | None
    narration: str | None
    subledger_entry_id: UUID | None


@dataclass(frozen=True)
class JournalDTO:
    id: UUID
    organization_id: UUID
    journal_date: date
    transaction_type: str
    transaction_reference: str
    status: str
    source_document_id: UUID | None
    triggering_action: str | None
    rule_id: UUID | None
    idempotency_key: str | None
    description: str | None
    posted_at: datetime | None
    reversed_at: datetime | None
    lines: tuple[JournalLineDTO, ...]

    @property
    def total_debits(self) -> Decimal:
        return sum((l.debit_amount for l in self.lines if l.debit_amount is not None), ZERO)

    @property
    def total_credits(self) -> Decimal:
        return sum((l.credit_amount for l in self.lines if l.credit_amount is not None), ZERO)

    @property
    def is_balanced(self) -> bool:
        return self.total_debits == self.total_credits


class JournalSelector(BaseSelector[JournalHeader]):

    def _to_dto(self, journal: JournalHeader) -> JournalDTO:
        return JournalDTO(
            id=journal.id,
            organization_id=journal.organization_id,
            journal_date=journal.journal_date,
            transaction_type=journal.transaction_type,
            transaction_reference=journal.transaction_reference,
            status=journal.status,
            source_document_id=journal.source_document_id,
            triggering_action=journal.triggering_action,
            rule_id=journal.rule_id,
            idempotency_key=journal.idempotency_key,
            description=journal.description,
            posted_at=journal.posted_at,
            reversed_at=journal.reversed_at,
            lines=tuple(self._line_to_dto(line) for line in journal.lines),
        )

    @staticmethod
    def _line_to_dto(line: JournalLine) -> JournalLineDTO:
        return JournalLineDTO(
            id=line.id,
            line_number=line.line_number,
            account_code=line.account_code,
            debit_amount=line.debit_amount,
            credit_amount=line.credit_amount,
            narration=line.narration,
            subledger_entry_id=line.subledger_entry_id,
        )

    def get_journal(self, journal_id: UUID) -> JournalDTO | None:
        journal = self.session.get(JournalHeader, journal_id)
        return self._to_dto(journal) if journal is not None else None

    def get_by_reference(
        self, organization_id: UUID, transaction_reference: str
    ) -> list[JournalDTO]:
        """Journals posted from the document with this human-readable number."""
        stmt = (
            select(JournalHeader)
            .where(
                JournalHeader.organization_id == organization_id,
                JournalHeader.transaction_reference == transaction_reference,
            )
            .order_by(JournalHeader.created_at, JournalHeader.idempotency_key)
        )
        return [self._to_dto(j) for j in self.session.scalars(stmt)]

    def get_by_source_document(self, source_document_id: UUID) -> list[JournalDTO]:
        stmt = (
            select(JournalHeader)
            .where(JournalHeader.source_document_id == source_document_id)
            .order_by(JournalHeader.created_at, JournalHeader.idempotency_key)
        )
        return [self._to_dto(j) for j in self.session.scalars(stmt)]

    def list_for_organization(
        self,
        organization_id: UUID,
        status: JournalStatus | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[JournalDTO]:
        stmt = select(JournalHeader).where(JournalHeader.organization_id == organization_id)
        if status is not None:
            stmt = stmt.where(JournalHeader.status == JournalStatus(status).value)
        if start_date is not None:
            stmt = stmt.where(JournalHeader.journal_date >= start_date)
        if end_date is not None:
            stmt = stmt.where(JournalHeader.journal_date <= end_date)
        stmt = stmt.order_by(JournalHeader.journal_date, JournalHeader.transaction_reference)
        return [self._to_dto(j) for j in self.session.scalars(stmt)]
