"""
TaxBreakdownStore -- persist the GST breakdown alongside a document version.

Responsibility:
    Computes (via domain.tax_breakdown) and stores breakdown rows keyed by
    (document_id, document_version).  Re-computing a stored version returns
    the stored rows untouched.

Invariants enforced:
    - Rows are write-once per document version (immutability listener on
      TaxBreakdownRow plus the unique constraint).
"""

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import select

from posting_engine.domain.dtos import PostingDocument, TaxBreakdown
from posting_engine.domain.tax_breakdown import calculate_tax_breakdown
from posting_engine.logging_config import get_logger
from posting_engine.models.tax_breakdown import TaxBreakdownRow
from posting_engine.services.base import BaseService

logger = get_logger("services.tax_breakdown")


class TaxBreakdownStore(BaseService[TaxBreakdownRow]):

    def get(self, document_id: UUID, document_version: int = 1) -> tuple[TaxBreakdown, ...]:
        rows = self.session.scalars(
            select(TaxBreakdownRow)
            .where(
                TaxBreakdownRow.document_id == document_id,
                TaxBreakdownRow.document_version == document_version,
            )
            .order_by(TaxBreakdownRow.gst_percentage)
        )
        return tuple(TaxBreakdown.from_model(row) for row in rows)

    def store(
        self,
        organization_id: UUID,
        document_id: UUID,
        document_version: int,
        breakdown: Iterable[TaxBreakdown],
        actor_id: UUID,
    ) -> tuple[TaxBreakdown, ...]:
        """
        Persist rows for a document version unless it already has rows.

        Returns:
            The rows now stored for the version.
        """
        existing = self.get(document_id, document_version)
        if existing:
            logger.debug(
                "tax_breakdown_already_stored",
                extra={
                    "document_id": str(document_id),
                    "document_version": document_version,
                    "row_count": len(existing),
                },
            )
            return existing

        breakdown = tuple(breakdown)
        for row in breakdown:
            self.session.add(
                TaxBreakdownRow(
                    organization_id=organization_id,
                    document_id=document_id,
                    document_version=document_version,
                    gst_percentage=row.gst_percentage,
                    taxable_amount=row.taxable_amount,
                    cgst_percentage=row.cgst_percentage,
                    cgst_amount=row.cgst_amount,
                    sgst_percentage=row.sgst_percentage,
                    sgst_amount=row.sgst_amount,
                    igst_percentage=row.igst_percentage,
                    igst_amount=row.igst_amount,
                    total_gst_amount=row.total_gst_amount,
                    created_by_id=actor_id,
                )
            )
        self.session.flush()

        logger.info(
            "tax_breakdown_stored",
            extra={
                "document_id": str(document_id),
                "document_version": document_version,
                "row_count": len(breakdown),
            },
        )
        return breakdown

    def compute_and_store(
        self, document: PostingDocument, actor_id: UUID
    ) -> tuple[TaxBreakdown, ...]:
        """
        Breakdown for the document's current version.

        A document without taxable lines keeps whatever breakdown its
        totals already carry (computed upstream for an earlier status).
        """
        if document.lines:
            breakdown = calculate_tax_breakdown(
                document.lines, document.origin_code, document.destination_code
            )
        else:
            breakdown = document.totals.breakdown
        return self.store(
            document.organization_id,
            document.document_id,
            document.version,
            breakdown,
            actor_id,
        )
