"""
Module: posting_engine.models.subledger
Responsibility: ORM persistence for per-counterparty subledger entries.
Architecture position: Engine > Models.  May import from db/ only.

Invariants enforced:
    - Ownership: the journal owns the posting; the subledger entry only
      references it (journal_id, journal_line_id).
    - Idempotency: UNIQUE(journal_id, journal_line_id) prevents duplicate
      entries for the same journal leg under retry.
    - Exactly one of debit_amount / credit_amount (CHECK constraint).
    - Write-once (db/immutability.py listeners).

Audit relevance:
    Party balances are derived from these rows (sum of debit - credit);
    there is no stored running balance.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from posting_engine.db.base import TrackedBase, UUIDString


class SubledgerEntry(TrackedBase):
    """Per-party ledger record tied to a posted journal and its source document."""

    __tablename__ = "subledger_entries"

    __table_args__ = (
        UniqueConstraint("journal_id", "journal_line_id", name="uq_sl_journal_line"),
        CheckConstraint(
            "(debit_amount IS NULL) <> (credit_amount IS NULL)",
            name="ck_sl_one_side",
        ),
        Index("idx_sl_party", "organization_id", "party_org_id"),
        Index("idx_sl_party_code", "organization_id", "party_code"),
        Index("idx_sl_journal", "journal_id"),
        Index("idx_sl_transaction_date", "transaction_date"),
    )

    organization_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    journal_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("journal_headers.id"),
        nullable=False,
    )

    journal_line_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("journal_lines.id"),
        nullable=True,
    )

    party_org_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    party_contact_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    party_name: Mapped[str | None] = mapped_column(String(200), nullable=True)

    party_code: Mapped[str | None] = mapped_column(String(50), nullable=True)

    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)

    debit_amount: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)

    credit_amount: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)

    source_reference: Mapped[str] = mapped_column(String(100), nullable=False)

    transaction_category: Mapped[str] = mapped_column(String(20), nullable=False)

    triggering_action: Mapped[str] = mapped_column(String(50), nullable=False)

    def __repr__(self) -> str:
        side = "Dr" if self.debit_amount is not None else "Cr"
        return f"<SubledgerEntry {self.party_org_id} {side} {self.amount} {self.source_reference}>"

    @property
    def amount(self) -> Decimal:
        if self.debit_amount is not None:
            return self.debit_amount
        return self.credit_amount or Decimal("0")

    @property
    def signed_amount(self) -> Decimal:
        """Debits positive, credits negative."""
        if self.debit_amount is not None:
            return self.debit_amount
        return -self.amount
