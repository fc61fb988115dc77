"""DTO contracts, idempotency keys, and the deterministic clock."""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from posting_engine.domain.clock import DeterministicClock
from posting_engine.domain.dtos import (
    DocumentTotals,
    JournalLineDraft,
    PostingDocument,
    TaxableLine,
)
from posting_engine.domain.tax_breakdown import calculate_tax_breakdown
from posting_engine.domain.types import (
    DocumentStatus,
    LineSide,
    TransactionCategory,
    TriggeringAction,
)
from posting_engine.exceptions import UnknownTriggeringActionError
from posting_engine.utils.idempotency import document_idempotency_key, journal_idempotency_key


class TestPostingDocumentSnapshot:

    def test_snapshot_restores_the_posting_inputs(self, invoice_factory):
        invoice = invoice_factory(
            division_id=uuid4(),
            transaction_type="Export",
            party_contact_id=uuid4(),
            party_name="Acme Traders",
            party_code="ACME-01",
            version=3,
        )

        restored = PostingDocument.from_snapshot(invoice.to_snapshot())

        assert restored == invoice

    def test_snapshot_keeps_breakdown(self, invoice_factory):
        invoice = invoice_factory()
        breakdown = calculate_tax_breakdown(invoice.lines, "27", "29")
        with_breakdown = invoice.with_totals(invoice.totals.with_breakdown(breakdown))

        restored = PostingDocument.from_snapshot(with_breakdown.to_snapshot())

        assert restored.totals.breakdown == breakdown
        assert restored.totals.igst_total == Decimal("270")
        assert restored.totals.document_value == Decimal("1770")

    def test_snapshot_without_breakdown_key(self, invoice_factory):
        snapshot = invoice_factory().to_snapshot()
        del snapshot["totals"]["breakdown"]

        restored = PostingDocument.from_snapshot(snapshot)

        assert restored.totals.breakdown == ()

    def test_string_enums_coerced(self):
        document = PostingDocument(
            organization_id=uuid4(),
            document_id=uuid4(),
            category="Payment",
            document_number="PAY-9",
            document_date=date(2024, 5, 1),
            status="Created",
        )

        assert document.category is TransactionCategory.PAYMENT
        assert document.status is DocumentStatus.CREATED


class TestDocumentTotals:

    def test_component_totals_sum_breakdown_rows(self):
        breakdown = calculate_tax_breakdown(
            [TaxableLine(Decimal("100"), Decimal("18")), TaxableLine(Decimal("100"), Decimal("5"))],
            "27",
            "29",
        )
        totals = DocumentTotals(tax_value=Decimal("23"), breakdown=breakdown)

        assert totals.igst_total == Decimal("23")
        assert totals.cgst_total == Decimal("0")
        assert totals.sgst_total == Decimal("0")

    def test_float_rejected(self):
        with pytest.raises(TypeError):
            DocumentTotals(document_value=10.5)


class TestJournalLineDraft:

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-1")])
    def test_non_positive_amount_rejected(self, amount):
        with pytest.raises(ValueError):
            JournalLineDraft(1, "1200", LineSide.DEBIT, amount, "n", 1)

    def test_side_accessors(self):
        line = JournalLineDraft(2, "4000", LineSide.CREDIT, Decimal("5"), "n", 1)

        assert line.credit_amount == Decimal("5")
        assert line.debit_amount is None


class TestIdempotencyKeys:

    def test_key_shapes(self):
        org, doc, rule = uuid4(), uuid4(), uuid4()

        document_key = document_idempotency_key(org, doc, TriggeringAction.INVOICE_APPROVED)
        journal_key = journal_idempotency_key(org, doc, "invoice approved", rule)

        assert document_key == f"{org}:{doc}:Invoice Approved"
        assert journal_key == f"{document_key}:{rule}"

    def test_unknown_action_rejected(self):
        with pytest.raises(UnknownTriggeringActionError):
            document_idempotency_key(uuid4(), uuid4(), "Invoice Paid")


class TestDeterministicClock:

    def test_fixed_until_advanced(self):
        start = datetime(2024, 1, 31, 23, 59, 59, tzinfo=timezone.utc)
        clock = DeterministicClock(start)

        assert clock.now() == clock.now() == start
        assert clock.tick() == datetime(2024, 2, 1, 0, 0, 0, tzinfo=timezone.utc)
        assert clock.today() == date(2024, 2, 1)

    def test_set_time_resets_offset(self):
        clock = DeterministicClock()
        clock.advance(60)
        target = datetime(2025, 1, 1, tzinfo=timezone.utc)

        clock.set_time(target)

        assert clock.now() == target
