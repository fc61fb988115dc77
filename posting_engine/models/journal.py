"""
Module: posting_engine.models.journal
Responsibility: ORM persistence for journal headers and journal lines.
Architecture position: Engine > Models.  May import from db/ and domain/types.

Invariants enforced:
    - Idempotency key uniqueness (one journal per document/action/rule).
    - Balance: checked by JournalPostingService before Draft -> Posted;
      is_balanced is the read-side convenience.
    - Immutability after Posted (db/immutability.py listeners).
    - Exactly one of debit_amount / credit_amount per line.

Failure modes:
    - IntegrityError on duplicate idempotency_key.
    - ImmutabilityViolationError on UPDATE/DELETE of posted header or line.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from posting_engine.db.base import TrackedBase, UUIDString
from posting_engine.domain.types import JournalStatus, LineSide


class JournalHeader(TrackedBase):
    """
    Journal header -- the unit that is posted or reversed.

    Contract:
        Created in Draft together with all of its lines.  Draft -> Posted
        -> Reversed are the only transitions.  Reversal is a status flag;
        no offsetting lines are generated.
    """

    __tablename__ = "journal_headers"

    __table_args__ = (
        Index("idx_journal_org_date", "organization_id", "journal_date"),
        Index("idx_journal_reference", "organization_id", "transaction_reference"),
        Index("idx_journal_source_document", "source_document_id"),
        Index("idx_journal_status", "status"),
    )

    organization_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    journal_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Transaction category of the source document (Invoice, Payment, PO)
    transaction_type: Mapped[str] = mapped_column(String(20), nullable=False)

    # Human-readable source document number
    transaction_reference: Mapped[str] = mapped_column(String(100), nullable=False)

    status: Mapped[str] = mapped_column(
        String(10),
        default=JournalStatus.DRAFT.value,
        nullable=False,
    )

    source_document_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    triggering_action: Mapped[str | None] = mapped_column(String(50), nullable=True)

    rule_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("accounting_rules.id"),
        nullable=True,
    )

    # org:document:action:rule
    idempotency_key: Mapped[str | None] = mapped_column(
        String(300),
        nullable=True,
        unique=True,
    )

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    posted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    reversed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    lines: Mapped[list["JournalLine"]] = relationship(
        back_populates="journal",
        cascade="all, delete-orphan",
        order_by="JournalLine.line_number",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<JournalHeader {self.id} {self.transaction_reference} status={self.status}>"

    @property
    def is_draft(self) -> bool:
        return self.status == JournalStatus.DRAFT.value

    @property
    def is_posted(self) -> bool:
        return self.status == JournalStatus.POSTED.value

    @property
    def is_reversed(self) -> bool:
        return self.status == JournalStatus.REVERSED.value

    @property
    def total_debits(self) -> Decimal:
        return sum(
            (line.debit_amount for line in self.lines if line.debit_amount is not None),
            Decimal("0"),
        )

    @property
    def total_credits(self) -> Decimal:
        return sum(
            (line.credit_amount for line in self.lines if line.credit_amount is not None),
            Decimal("0"),
        )

    @property
    def is_balanced(self) -> bool:
        return self.total_debits == self.total_credits


class JournalLine(TrackedBase):
    """
    One debit or credit leg of a journal.

    Guarantees:
        - Exactly one of debit_amount / credit_amount is set (CHECK constraint).
        - subledger_entry_id is the back-reference to the subledger entry that
          mirrors this leg; it is the only field linked in after posting.
    """

    __tablename__ = "journal_lines"

    __table_args__ = (
        CheckConstraint(
            "(debit_amount IS NULL) <> (credit_amount IS NULL)",
            name="ck_journal_line_one_side",
        ),
        Index("idx_line_journal", "journal_id"),
        Index("idx_line_account", "account_code"),
    )

    journal_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("journal_headers.id"),
        nullable=False,
    )

    line_number: Mapped[int] = mapped_column(Integer, nullable=False)

    account_code: Mapped[str] = mapped_column(String(50), nullable=False)

    debit_amount: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)

    credit_amount: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)

    narration: Mapped[str | None] = mapped_column(String(500), nullable=True)

    subledger_entry_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    journal: Mapped["JournalHeader"] = relationship(back_populates="lines")

    def __repr__(self) -> str:
        return f"<JournalLine {self.line_number} {self.side.value} {self.amount} {self.account_code}>"

    @property
    def side(self) -> LineSide:
        return LineSide.DEBIT if self.debit_amount is not None else LineSide.CREDIT

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
