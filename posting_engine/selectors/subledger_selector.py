"""
Subledger query selector.

Read-only access to subledger entries and derived party balances.

Key design decisions:
- Returns DTOs (frozen dataclasses), not ORM models
- Uses the caller's Session, never creates its own
- A party balance is sum(debit) - sum(credit) over its entries; nothing
  cumulative is stored
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from posting_engine.db.types import ZERO
from posting_engine.domain.types import TransactionCategory
from posting_engine.models.subledger import SubledgerEntry
from posting_engine.selectors.base import BaseSelector


@dataclass(frozen=True)
class SubledgerEntryDTO:
    id: UUID
    organization_id: UUID
    journal_id: UUID
    journal_line_id: UUID | None
    party_org_id: UUID
    party_contact_id: UUID | None
    transaction_date: date
    debit_amount: Decimal | None
    credit_amount: Decimal | None
    source_reference: str
    transaction_category: str
    triggering_action: str
    party_name: str | None = None
    party_code: str | None = None

    @property
    def signed_amount(self) -> Decimal:
        """Debits positive, credits negative."""
        if self.debit_amount is not None:
            return self.debit_amount
        return -(self.credit_amount or ZERO)


@dataclass(frozen=True)
class PartyBalanceDTO:
    organization_id: UUID
    party_org_id: UUID
    total_debits: Decimal
    total_credits: Decimal
    entry_count: int

    @property
    def balance(self) -> Decimal:
        return self.total_debits - self.total_credits


class SubledgerSelector(BaseSelector[SubledgerEntry]):

    @staticmethod
    def _to_dto(entry: SubledgerEntry) -> SubledgerEntryDTO:
        return SubledgerEntryDTO(
            id=entry.id,
            organization_id=entry.organization_id,
            journal_id=entry.journal_id,
            journal_line_id=entry.journal_line_id,
            party_org_id=entry.party_org_id,
            party_contact_id=entry.party_contact_id,
            transaction_date=entry.transaction_date,
            debit_amount=entry.debit_amount,
            credit_amount=entry.credit_amount,
            source_reference=entry.source_reference,
            transaction_category=entry.transaction_category,
            triggering_action=entry.triggering_action,
            party_name=entry.party_name,
            party_code=entry.party_code,
        )

    def _filtered(
        self,
        stmt,
        organization_id: UUID,
        party_org_id: UUID | None,
        category: TransactionCategory | None,
        start_date: date | None,
        end_date: date | None,
        party_code: str | None = None,
    ):
        stmt = stmt.where(SubledgerEntry.organization_id == organization_id)
        if party_org_id is not None:
            stmt = stmt.where(SubledgerEntry.party_org_id == party_org_id)
        if party_code is not None:
            stmt = stmt.where(SubledgerEntry.party_code == party_code)
        if category is not None:
            stmt = stmt.where(
                SubledgerEntry.transaction_category == TransactionCategory(category).value
            )
        if start_date is not None:
            stmt = stmt.where(SubledgerEntry.transaction_date >= start_date)
        if end_date is not None:
            stmt = stmt.where(SubledgerEntry.transaction_date <= end_date)
        return stmt

    def list_entries(
        self,
        organization_id: UUID,
        party_org_id: UUID | None = None,
        category: TransactionCategory | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        party_code: str | None = None,
    ) -> list[SubledgerEntryDTO]:
        stmt = self._filtered(
            select(SubledgerEntry), organization_id, party_org_id, category,
            start_date, end_date, party_code=party_code,
        ).order_by(SubledgerEntry.transaction_date, SubledgerEntry.created_at)
        return [self._to_dto(e) for e in self.session.scalars(stmt)]

    def entries_for_journal(self, journal_id: UUID) -> list[SubledgerEntryDTO]:
        stmt = select(SubledgerEntry).where(SubledgerEntry.journal_id == journal_id)
        return [self._to_dto(e) for e in self.session.scalars(stmt)]

    def party_balance(
        self,
        organization_id: UUID,
        party_org_id: UUID,
        as_of: date | None = None,
    ) -> PartyBalanceDTO:
        """Running balance of one counterparty, optionally as of a date."""
        stmt = self._filtered(
            select(
                func.coalesce(func.sum(SubledgerEntry.debit_amount), 0),
                func.coalesce(func.sum(SubledgerEntry.credit_amount), 0),
                func.count(SubledgerEntry.id),
            ),
            organization_id, party_org_id, None, None, as_of,
        )
        debits, credits, count = self.session.execute(stmt).one()
        return PartyBalanceDTO(
            organization_id=organization_id,
            party_org_id=party_org_id,
            total_debits=Decimal(str(debits)),
            total_credits=Decimal(str(credits)),
            entry_count=count,
        )
