"""
Module: posting_engine.models.rule
Responsibility: ORM persistence for accounting rules and their ordered lines.
Architecture position: Engine > Models.  May import from db/ and domain/types.

Invariants enforced:
    - Rules are organization-scoped; division and transaction type are
      optional filters (NULL = applies to all).
    - Lines are ordered by line_number, which drives journal line numbering.

Audit relevance:
    The engine only reads Active rules.  Rule edits never touch journals
    already posted from them; each journal records the rule_id it came from.
"""

from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from posting_engine.db.base import TrackedBase, UUIDString
from posting_engine.domain.types import RuleStatus


class AccountingRule(TrackedBase):
    """
    Maps one business event to one or more debit/credit account pairs.

    Contract:
        Matches on (transaction_category, triggering_action) and optionally
        on transaction_type and division_id.  Only status == Active rules
        take part in matching.
    """

    __tablename__ = "accounting_rules"

    __table_args__ = (
        Index("idx_rule_org_category", "organization_id", "transaction_category"),
        Index("idx_rule_status", "status"),
    )

    organization_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    transaction_category: Mapped[str] = mapped_column(String(20), nullable=False)

    transaction_reference: Mapped[str] = mapped_column(String(200), nullable=False)

    # Invoice type or payment mode; NULL matches every subtype
    transaction_type: Mapped[str | None] = mapped_column(String(50), nullable=True)

    triggering_action: Mapped[str] = mapped_column(String(50), nullable=False)

    # NULL applies to every division
    division_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    party_type: Mapped[str | None] = mapped_column(String(20), nullable=True)

    status: Mapped[str] = mapped_column(
        String(10),
        default=RuleStatus.ACTIVE.value,
        nullable=False,
    )

    lines: Mapped[list["AccountingRuleLine"]] = relationship(
        back_populates="rule",
        cascade="all, delete-orphan",
        order_by="AccountingRuleLine.line_number",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<AccountingRule {self.name!r} {self.triggering_action} status={self.status}>"

    @property
    def is_active(self) -> bool:
        return self.status == RuleStatus.ACTIVE.value


class AccountingRuleLine(TrackedBase):
    """
    One debit/credit pairing inside a rule.

    Guarantees:
        - amount_source holds a label parsed by AmountSource.from_label at
          resolution time; unknown labels are a resolution error, not zero.
        - subledger_side, when set, picks which leg the subledger entry
          mirrors for lines carrying both account codes.
    """

    __tablename__ = "accounting_rule_lines"

    __table_args__ = (
        UniqueConstraint("rule_id", "line_number", name="uq_rule_line_number"),
        Index("idx_rule_line_rule", "rule_id"),
    )

    rule_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounting_rules.id"),
        nullable=False,
    )

    line_number: Mapped[int] = mapped_column(Integer, nullable=False)

    debit_account_code: Mapped[str | None] = mapped_column(String(50), nullable=True)

    credit_account_code: Mapped[str | None] = mapped_column(String(50), nullable=True)

    amount_source: Mapped[str] = mapped_column(String(100), nullable=False)

    track_subledger: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    subledger_side: Mapped[str | None] = mapped_column(String(10), nullable=True)

    rule: Mapped["AccountingRule"] = relationship(back_populates="lines")

    def __repr__(self) -> str:
        return (
            f"<AccountingRuleLine {self.line_number} "
            f"Dr={self.debit_account_code} Cr={self.credit_account_code} "
            f"{self.amount_source!r}>"
        )
