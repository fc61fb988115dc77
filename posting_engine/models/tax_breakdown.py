"""
Module: posting_engine.models.tax_breakdown
Responsibility: ORM persistence for the GST breakdown stored alongside a
    document version.
Architecture position: Engine > Models.  May import from db/ only.

Invariants enforced:
    - One row per (document_id, document_version, gst_percentage).
    - cgst_amount + sgst_amount + igst_amount == total_gst_amount.
    - Rows for a document version are never rewritten; a new document
      version gets new rows.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import Index, Integer, Numeric, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from posting_engine.db.base import TrackedBase, UUIDString


class TaxBreakdownRow(TrackedBase):
    """Derived GST split for one tax percentage of one document version."""

    __tablename__ = "tax_breakdown_rows"

    __table_args__ = (
        UniqueConstraint(
            "document_id",
            "document_version",
            "gst_percentage",
            name="uq_breakdown_document_rate",
        ),
        Index("idx_breakdown_document", "organization_id", "document_id"),
    )

    organization_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    document_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    document_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    gst_percentage: Mapped[Decimal] = mapped_column(Numeric(9, 4), nullable=False)

    taxable_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    cgst_percentage: Mapped[Decimal] = mapped_column(Numeric(9, 4), nullable=False)
    cgst_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    sgst_percentage: Mapped[Decimal] = mapped_column(Numeric(9, 4), nullable=False)
    sgst_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    igst_percentage: Mapped[Decimal] = mapped_column(Numeric(9, 4), nullable=False)
    igst_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    total_gst_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<TaxBreakdownRow {self.document_id} v{self.document_version} "
            f"{self.gst_percentage}% total={self.total_gst_amount}>"
        )
