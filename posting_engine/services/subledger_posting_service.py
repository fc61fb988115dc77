"""
SubledgerPostingService -- per-party entries that mirror posted journal lines.

Responsibility:
    Creates a SubledgerEntry for a counterparty, tied to a Posted journal
    (and, when given, to the exact journal line it mirrors), then links the
    line back to the entry.

Architecture position:
    Engine > Services -- imperative shell.  Flushes only.

Invariants enforced:
    - Exactly one of debit/credit, and it is positive.
    - The journal owns the posting: it must exist and be Posted.
    - A mirrored journal line belongs to the journal, sits on the same
      side, and carries the same amount.
    - UNIQUE(journal_id, journal_line_id): one entry per journal leg.

Failure modes:
    - InvalidSubledgerAmountError, JournalNotFoundError,
      JournalNotPostedError, JournalLineMismatchError.

Audit relevance:
    A party's running balance is never stored; SubledgerSelector derives it
    as the sum of (debit - credit) over that party's entries.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from posting_engine.db.types import ZERO, to_decimal
from posting_engine.domain.types import LineSide, TransactionCategory, TriggeringAction
from posting_engine.exceptions import (
    InvalidSubledgerAmountError,
    JournalLineMismatchError,
    JournalNotFoundError,
    JournalNotPostedError,
)
from posting_engine.logging_config import get_logger
from posting_engine.models.journal import JournalHeader, JournalLine
from posting_engine.models.subledger import SubledgerEntry
from posting_engine.services.base import BaseService

logger = get_logger("services.subledger_posting")


class SubledgerPostingService(BaseService[SubledgerEntry]):

    def create_entry(
        self,
        journal_id: UUID,
        party_org_id: UUID,
        party_contact_id: UUID | None,
        debit_amount: Decimal | None,
        credit_amount: Decimal | None,
        source_reference: str,
        category: TransactionCategory | str,
        action: TriggeringAction | str,
        actor_id: UUID,
        journal_line_id: UUID | None = None,
        transaction_date: date | None = None,
        party_name: str | None = None,
        party_code: str | None = None,
    ) -> SubledgerEntry:
        """
        Create one subledger entry against a Posted journal.

        Raises:
            InvalidSubledgerAmountError: Not exactly one positive amount.
            JournalNotFoundError: Unknown journal.
            JournalNotPostedError: Journal is not Posted.
            JournalLineMismatchError: Line is foreign or disagrees on side/amount.
        """
        side, amount = self._validate_amounts(debit_amount, credit_amount)

        journal = self.session.get(JournalHeader, journal_id)
        if journal is None:
            raise JournalNotFoundError(str(journal_id))
        if not journal.is_posted:
            raise JournalNotPostedError(str(journal_id), journal.status)

        line = None
        if journal_line_id is not None:
            line = self._matching_line(journal, journal_line_id, side, amount)

        entry = SubledgerEntry(
            organization_id=journal.organization_id,
            journal_id=journal.id,
            journal_line_id=journal_line_id,
            party_org_id=party_org_id,
            party_contact_id=party_contact_id,
            party_name=party_name,
            party_code=party_code,
            transaction_date=transaction_date or journal.journal_date,
            debit_amount=amount if side == LineSide.DEBIT else None,
            credit_amount=amount if side == LineSide.CREDIT else None,
            source_reference=source_reference,
            transaction_category=TransactionCategory(category).value,
            triggering_action=TriggeringAction.from_label(action).value,
            created_by_id=actor_id,
        )
        self.session.add(entry)
        self.session.flush()

        if line is not None:
            line.subledger_entry_id = entry.id
            line.updated_by_id = actor_id
            self.session.flush()

        logger.info(
            "subledger_entry_created",
            extra={
                "subledger_entry_id": str(entry.id),
                "journal_id": str(journal.id),
                "journal_line_id": str(journal_line_id) if journal_line_id else None,
                "party_org_id": str(party_org_id),
                "side": side.value,
                "amount": amount,
            },
        )
        return entry

    @staticmethod
    def _validate_amounts(
        debit_amount: Decimal | None, credit_amount: Decimal | None
    ) -> tuple[LineSide, Decimal]:
        if (debit_amount is None) == (credit_amount is None):
            raise InvalidSubledgerAmountError(debit_amount, credit_amount)
        side = LineSide.DEBIT if debit_amount is not None else LineSide.CREDIT
        amount = to_decimal(debit_amount if debit_amount is not None else credit_amount)
        if amount <= ZERO:
            raise InvalidSubledgerAmountError(debit_amount, credit_amount)
        return side, amount

    @staticmethod
    def _matching_line(
        journal: JournalHeader,
        journal_line_id: UUID,
        side: LineSide,
        amount: Decimal,
    ) -> JournalLine:
        line = next((line for line in journal.lines if line.id == journal_line_id), None)
        if line is None:
            raise JournalLineMismatchError(
                str(journal.id), str(journal_line_id), "line does not belong to journal"
            )
        if line.side != side:
            raise JournalLineMismatchError(
                str(journal.id), str(journal_line_id),
                f"line is a {line.side.value}, entry is a {side.value}",
            )
        if line.amount != amount:
            raise JournalLineMismatchError(
                str(journal.id), str(journal_line_id),
                f"line amount {line.amount} != entry amount {amount}",
            )
        if line.subledger_entry_id is not None:
            raise JournalLineMismatchError(
                str(journal.id), str(journal_line_id), "line already has a subledger entry"
            )
        return line
