"""TaxBreakdownStore: persistence per document version."""

from decimal import Decimal

import pytest
from sqlalchemy import func, select

from posting_engine.domain.dtos import DocumentTotals
from posting_engine.domain.tax_breakdown import calculate_tax_breakdown
from posting_engine.exceptions import ImmutabilityViolationError
from posting_engine.models.tax_breakdown import TaxBreakdownRow


def _row_count(session) -> int:
    return session.scalar(select(func.count()).select_from(TaxBreakdownRow))


class TestComputeAndStore:

    def test_stores_one_row_per_rate(
        self, session, tax_breakdown_store, invoice_factory, test_actor_id
    ):
        invoice = invoice_factory()

        rows = tax_breakdown_store.compute_and_store(invoice, test_actor_id)

        assert len(rows) == 1
        assert rows[0].cgst_amount == Decimal("135")
        assert _row_count(session) == 1
        assert tax_breakdown_store.get(invoice.document_id) == rows

    def test_recompute_of_same_version_returns_stored_rows(
        self, session, tax_breakdown_store, invoice_factory, test_actor_id
    ):
        invoice = invoice_factory()
        first = tax_breakdown_store.compute_and_store(invoice, test_actor_id)

        # Same version, different destination: the stored rows win
        changed = invoice_factory(document_id=invoice.document_id, destination_code="29")
        second = tax_breakdown_store.compute_and_store(changed, test_actor_id)

        assert [r.cgst_amount for r in second] == [r.cgst_amount for r in first]
        assert _row_count(session) == 1

    def test_new_version_gets_new_rows(
        self, session, tax_breakdown_store, invoice_factory, test_actor_id
    ):
        invoice = invoice_factory()
        tax_breakdown_store.compute_and_store(invoice, test_actor_id)

        revised = invoice_factory(
            document_id=invoice.document_id, destination_code="29", version=2
        )
        rows = tax_breakdown_store.compute_and_store(revised, test_actor_id)

        assert rows[0].igst_amount == Decimal("270")
        assert _row_count(session) == 2
        assert tax_breakdown_store.get(invoice.document_id, 1)[0].cgst_amount == Decimal("135")

    def test_document_without_lines_keeps_supplied_breakdown(
        self, tax_breakdown_store, invoice_factory, test_actor_id
    ):
        invoice = invoice_factory()
        breakdown = calculate_tax_breakdown(invoice.lines, "27", "29")
        without_lines = invoice_factory(lines=()).with_totals(
            DocumentTotals(document_value=Decimal("1770"), breakdown=breakdown)
        )

        rows = tax_breakdown_store.compute_and_store(without_lines, test_actor_id)

        assert rows == breakdown

    def test_rows_are_immutable(self, session, tax_breakdown_store, invoice_factory, test_actor_id):
        invoice = invoice_factory()
        tax_breakdown_store.compute_and_store(invoice, test_actor_id)
        row = session.scalars(select(TaxBreakdownRow)).one()

        row.total_gst_amount = Decimal("1")

        with pytest.raises(ImmutabilityViolationError):
            session.flush()
