"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the immutable data structures that flow through the posting
    pipeline: PostingDocument and DocumentTotals (input), TaxBreakdown
    (derived), RuleSpec / RuleLineSpec (configuration snapshot), and
    JournalDraft / JournalLineDraft (builder output, persistence boundary).

Architecture position:
    Engine > Domain -- pure functional core, zero I/O.
    from_model() class methods exist as boundary converters but are only
    invoked from the service layer (never from domain logic).

Invariants enforced:
    - Monetary fields are Decimal; floats are rejected by to_decimal().
    - JournalLineDraft carries exactly one side and a positive amount.

Data flow:
    PostingDocument -> TaxBreakdown -> (RuleSpec) -> JournalDraft -> JournalHeader
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID

from posting_engine.db.types import ZERO, to_decimal
from posting_engine.domain.types import (
    DocumentStatus,
    LineSide,
    RuleStatus,
    TransactionCategory,
)

if TYPE_CHECKING:
    from posting_engine.models.rule import AccountingRule, AccountingRuleLine
    from posting_engine.models.tax_breakdown import TaxBreakdownRow


@dataclass(frozen=True)
class TaxableLine:
    """One document line as the tax breakdown sees it."""

    taxable_amount: Decimal
    gst_percentage: Decimal

    def __post_init__(self) -> None:
        object.__setattr__(self, "taxable_amount", to_decimal(self.taxable_amount))
        object.__setattr__(self, "gst_percentage", to_decimal(self.gst_percentage))


@dataclass(frozen=True)
class TaxBreakdown:
    """
    GST split for one tax percentage.

    Guarantees:
        - cgst_amount + sgst_amount + igst_amount == total_gst_amount.
        - Either the CGST/SGST pair or IGST is non-zero, never both.
    """

    gst_percentage: Decimal
    taxable_amount: Decimal
    cgst_percentage: Decimal
    cgst_amount: Decimal
    sgst_percentage: Decimal
    sgst_amount: Decimal
    igst_percentage: Decimal
    igst_amount: Decimal
    total_gst_amount: Decimal

    @property
    def is_same_jurisdiction(self) -> bool:
        return self.igst_percentage == ZERO

    @classmethod
    def from_model(cls, model: TaxBreakdownRow) -> TaxBreakdown:
        return cls(
            gst_percentage=model.gst_percentage,
            taxable_amount=model.taxable_amount,
            cgst_percentage=model.cgst_percentage,
            cgst_amount=model.cgst_amount,
            sgst_percentage=model.sgst_percentage,
            sgst_amount=model.sgst_amount,
            igst_percentage=model.igst_percentage,
            igst_amount=model.igst_amount,
            total_gst_amount=model.total_gst_amount,
        )


@dataclass(frozen=True)
class DocumentTotals:
    """
    Computed totals of a document, the only numbers a rule can post.

    The CGST/SGST/IGST aggregates sum the matching component across the
    breakdown rows; with no breakdown they are zero.
    """

    item_value: Decimal = ZERO
    tax_value: Decimal = ZERO
    document_value: Decimal = ZERO
    breakdown: tuple[TaxBreakdown, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "item_value", to_decimal(self.item_value))
        object.__setattr__(self, "tax_value", to_decimal(self.tax_value))
        object.__setattr__(self, "document_value", to_decimal(self.document_value))
        object.__setattr__(self, "breakdown", tuple(self.breakdown))

    @property
    def cgst_total(self) -> Decimal:
        return sum((row.cgst_amount for row in self.breakdown), ZERO)

    @property
    def sgst_total(self) -> Decimal:
        return sum((row.sgst_amount for row in self.breakdown), ZERO)

    @property
    def igst_total(self) -> Decimal:
        return sum((row.igst_amount for row in self.breakdown), ZERO)

    def with_breakdown(self, breakdown: tuple[TaxBreakdown, ...]) -> DocumentTotals:
        return replace(self, breakdown=tuple(breakdown))


@dataclass(frozen=True)
class PostingDocument:
    """
    The triggering document as handed to the engine.

    Contract:
        Read-only snapshot taken at the status change.  ``status`` is the
        status being entered.  The engine does not validate document-level
        business rules; that happens upstream.
    """

    organization_id: UUID
    document_id: UUID
    category: TransactionCategory
    document_number: str
    document_date: date
    status: DocumentStatus
    totals: DocumentTotals = field(default_factory=DocumentTotals)
    version: int = 1
    division_id: UUID | None = None
    # Invoice type or payment mode
    transaction_type: str | None = None
    party_org_id: UUID | None = None
    party_contact_id: UUID | None = None
    lines: tuple[TaxableLine, ...] = ()
    origin_code: str | None = None
    destination_code: str | None = None
    # Counterparty display name and code, copied onto subledger entries
    party_name: str | None = None
    party_code: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "category", TransactionCategory(self.category))
        object.__setattr__(self, "status", DocumentStatus(self.status))
        object.__setattr__(self, "lines", tuple(self.lines))

    def with_totals(self, totals: DocumentTotals) -> PostingDocument:
        return replace(self, totals=totals)

    def to_snapshot(self) -> dict[str, Any]:
        """JSON-safe form stored on the posting outcome for retries."""

        def _opt(value):
            return str(value) if value is not None else None

        return {
            "organization_id": str(self.organization_id),
            "document_id": str(self.document_id),
            "category": self.category.value,
            "document_number": self.document_number,
            "document_date": self.document_date.isoformat(),
            "status": self.status.value,
            "version": self.version,
            "division_id": _opt(self.division_id),
            "transaction_type": self.transaction_type,
            "party_org_id": _opt(self.party_org_id),
            "party_contact_id": _opt(self.party_contact_id),
            "party_name": self.party_name,
            "party_code": self.party_code,
            "origin_code": self.origin_code,
            "destination_code": self.destination_code,
            "totals": {
                "item_value": str(self.totals.item_value),
                "tax_value": str(self.totals.tax_value),
                "document_value": str(self.totals.document_value),
                "breakdown": [
                    {f.name: str(getattr(row, f.name)) for f in fields(TaxBreakdown)}
                    for row in self.totals.breakdown
                ],
            },
            "lines": [
                {
                    "taxable_amount": str(line.taxable_amount),
                    "gst_percentage": str(line.gst_percentage),
                }
                for line in self.lines
            ],
        }

    @classmethod
    def from_snapshot(cls, data: dict[str, Any]) -> PostingDocument:
        def _uuid(value):
            return UUID(value) if value else None

        totals = data.get("totals") or {}
        return cls(
            organization_id=UUID(data["organization_id"]),
            document_id=UUID(data["document_id"]),
            category=TransactionCategory(data["category"]),
            document_number=data["document_number"],
            document_date=date.fromisoformat(data["document_date"]),
            status=DocumentStatus(data["status"]),
            version=data.get("version", 1),
            division_id=_uuid(data.get("division_id")),
            transaction_type=data.get("transaction_type"),
            party_org_id=_uuid(data.get("party_org_id")),
            party_contact_id=_uuid(data.get("party_contact_id")),
            party_name=data.get("party_name"),
            party_code=data.get("party_code"),
            origin_code=data.get("origin_code"),
            destination_code=data.get("destination_code"),
            totals=DocumentTotals(
                item_value=Decimal(totals.get("item_value", "0")),
                tax_value=Decimal(totals.get("tax_value", "0")),
                document_value=Decimal(totals.get("document_value", "0")),
                breakdown=tuple(
                    TaxBreakdown(**{name: Decimal(value) for name, value in row.items()})
                    for row in totals.get("breakdown", ())
                ),
            ),
            lines=tuple(
                TaxableLine(
                    taxable_amount=Decimal(line["taxable_amount"]),
                    gst_percentage=Decimal(line["gst_percentage"]),
                )
                for line in data.get("lines", ())
            ),
        )


@dataclass(frozen=True)
class RuleLineSpec:
    """Immutable snapshot of one accounting rule line."""

    line_number: int
    amount_source: str
    debit_account_code: str | None = None
    credit_account_code: str | None = None
    track_subledger: bool = False
    subledger_side: LineSide | None = None

    @classmethod
    def from_model(cls, model: AccountingRuleLine) -> RuleLineSpec:
        return cls(
            line_number=model.line_number,
            amount_source=model.amount_source,
            debit_account_code=model.debit_account_code,
            credit_account_code=model.credit_account_code,
            track_subledger=bool(model.track_subledger),
            subledger_side=LineSide(model.subledger_side) if model.subledger_side else None,
        )


@dataclass(frozen=True)
class RuleSpec:
    """
    Immutable snapshot of an accounting rule.

    ``triggering_action`` keeps the stored label; matching parses it, so a
    rule with an unreadable label simply never matches.
    """

    rule_id: UUID
    organization_id: UUID
    name: str
    category: TransactionCategory
    triggering_action: str
    lines: tuple[RuleLineSpec, ...]
    transaction_reference: str = ""
    transaction_type: str | None = None
    division_id: UUID | None = None
    status: RuleStatus = RuleStatus.ACTIVE
    party_type: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status == RuleStatus.ACTIVE

    @property
    def ordered_lines(self) -> tuple[RuleLineSpec, ...]:
        return tuple(sorted(self.lines, key=lambda line: line.line_number))

    @classmethod
    def from_model(cls, model: AccountingRule) -> RuleSpec:
        return cls(
            rule_id=model.id,
            organization_id=model.organization_id,
            name=model.name,
            category=TransactionCategory(model.transaction_category),
            triggering_action=model.triggering_action,
            lines=tuple(
                RuleLineSpec.from_model(line)
                for line in sorted(model.lines, key=lambda line: line.line_number)
            ),
            transaction_reference=model.transaction_reference,
            transaction_type=model.transaction_type,
            division_id=model.division_id,
            status=RuleStatus(model.status),
            party_type=model.party_type,
        )


@dataclass(frozen=True)
class JournalLineDraft:
    """
    One journal line before persistence.

    Guarantees:
        - amount is positive.
        - rule_line_number points back at the rule line that produced it.
    """

    line_number: int
    account_code: str
    side: LineSide
    amount: Decimal
    narration: str
    rule_line_number: int
    track_subledger: bool = False

    def __post_init__(self) -> None:
        if self.amount <= ZERO:
            raise ValueError(f"Journal line amount must be positive: {self.amount}")

    @property
    def debit_amount(self) -> Decimal | None:
        return self.amount if self.side == LineSide.DEBIT else None

    @property
    def credit_amount(self) -> Decimal | None:
        return self.amount if self.side == LineSide.CREDIT else None


@dataclass(frozen=True)
class SkippedLine:
    """A rule line that produced no journal lines, and why."""

    rule_line_number: int
    reason_code: str
    detail: str = ""


@dataclass(frozen=True)
class JournalDraft:
    """Journal header plus lines, ready for JournalPostingService.create_journal."""

    organization_id: UUID
    journal_date: date
    transaction_type: str
    transaction_reference: str
    lines: tuple[JournalLineDraft, ...]
    rule_id: UUID | None = None
    rule_name: str | None = None
    source_document_id: UUID | None = None
    triggering_action: str | None = None
    idempotency_key: str | None = None
    description: str | None = None
    skipped: tuple[SkippedLine, ...] = ()

    @property
    def total_debits(self) -> Decimal:
        return sum((line.amount for line in self.lines if line.side == LineSide.DEBIT), ZERO)

    @property
    def total_credits(self) -> Decimal:
        return sum((line.amount for line in self.lines if line.side == LineSide.CREDIT), ZERO)

    @property
    def is_balanced(self) -> bool:
        return self.total_debits == self.total_credits

    @property
    def is_empty(self) -> bool:
        return not self.lines
