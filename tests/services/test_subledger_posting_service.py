"""
SubledgerPostingService tests.

Tests cover:
- Exactly one positive amount per entry
- Journal must exist and be Posted
- Mirrored journal line must belong to the journal and agree on side and amount
- Back-reference from the journal line, set once
- Entries are write-once
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from posting_engine.domain.journal_builder import build_journal_draft
from posting_engine.domain.types import TriggeringAction
from posting_engine.exceptions import (
    ImmutabilityViolationError,
    InvalidSubledgerAmountError,
    JournalLineMismatchError,
    JournalNotFoundError,
    JournalNotPostedError,
)

ACTION = TriggeringAction.INVOICE_APPROVED


@pytest.fixture
def draft_journal(journal_service, rule_spec_factory, invoice_factory, test_actor_id):
    draft = build_journal_draft(rule_spec_factory(), invoice_factory(), ACTION)
    return journal_service.create_journal(draft, test_actor_id)


@pytest.fixture
def posted_journal(journal_service, draft_journal, test_actor_id):
    return journal_service.post_journal(draft_journal.id, test_actor_id)


@pytest.fixture
def create_entry(subledger_service, party_org_id, test_actor_id):
    def _create(journal, debit_amount=None, credit_amount=None, **kwargs):
        return subledger_service.create_entry(
            journal_id=journal.id,
            party_org_id=party_org_id,
            party_contact_id=None,
            debit_amount=debit_amount,
            credit_amount=credit_amount,
            source_reference="INV-001",
            category="Invoice",
            action=ACTION,
            actor_id=test_actor_id,
            **kwargs,
        )

    return _create


class TestAmounts:

    @pytest.mark.parametrize(
        "debit, credit",
        [
            (Decimal("10"), Decimal("10")),
            (None, None),
            (Decimal("0"), None),
            (None, Decimal("-5")),
        ],
    )
    def test_exactly_one_positive_amount(self, posted_journal, create_entry, debit, credit):
        with pytest.raises(InvalidSubledgerAmountError):
            create_entry(posted_journal, debit_amount=debit, credit_amount=credit)


class TestJournalOwnership:

    def test_unknown_journal(self, subledger_service, party_org_id, test_actor_id):
        with pytest.raises(JournalNotFoundError):
            subledger_service.create_entry(
                journal_id=uuid4(),
                party_org_id=party_org_id,
                party_contact_id=None,
                debit_amount=Decimal("1"),
                credit_amount=None,
                source_reference="X",
                category="Invoice",
                action=ACTION,
                actor_id=test_actor_id,
            )

    def test_draft_journal_rejected(self, draft_journal, create_entry):
        with pytest.raises(JournalNotPostedError) as exc_info:
            create_entry(draft_journal, debit_amount=Decimal("1770"))

        assert exc_info.value.status == "Draft"

    def test_entry_without_line_defaults_to_journal_date(self, posted_journal, create_entry):
        entry = create_entry(posted_journal, credit_amount=Decimal("25"))

        assert entry.journal_id == posted_journal.id
        assert entry.journal_line_id is None
        assert entry.transaction_date == posted_journal.journal_date
        assert entry.signed_amount == Decimal("-25")
        assert entry.organization_id == posted_journal.organization_id
        assert entry.triggering_action == "Invoice Approved"
        assert entry.party_name is None
        assert entry.party_code is None

    def test_party_name_and_code_stored(self, posted_journal, create_entry):
        entry = create_entry(
            posted_journal,
            debit_amount=Decimal("40"),
            party_name="Acme Traders",
            party_code="ACME-01",
        )

        assert (entry.party_name, entry.party_code) == ("Acme Traders", "ACME-01")


class TestLineMirroring:

    def test_links_line_back_to_entry(self, posted_journal, create_entry, test_actor_id):
        debit_line = posted_journal.lines[0]

        entry = create_entry(
            posted_journal,
            debit_amount=debit_line.debit_amount,
            journal_line_id=debit_line.id,
            transaction_date=date(2024, 4, 2),
        )

        assert entry.journal_line_id == debit_line.id
        assert entry.transaction_date == date(2024, 4, 2)
        assert debit_line.subledger_entry_id == entry.id
        assert debit_line.updated_by_id == test_actor_id

    def test_side_mismatch(self, posted_journal, create_entry):
        credit_line = posted_journal.lines[1]

        with pytest.raises(JournalLineMismatchError):
            create_entry(
                posted_journal, debit_amount=Decimal("1770"), journal_line_id=credit_line.id
            )

    def test_amount_mismatch(self, posted_journal, create_entry):
        debit_line = posted_journal.lines[0]

        with pytest.raises(JournalLineMismatchError) as exc_info:
            create_entry(
                posted_journal, debit_amount=Decimal("1000"), journal_line_id=debit_line.id
            )

        assert "amount" in exc_info.value.reason

    def test_foreign_line(self, posted_journal, create_entry):
        with pytest.raises(JournalLineMismatchError):
            create_entry(posted_journal, debit_amount=Decimal("1770"), journal_line_id=uuid4())

    def test_line_mirrored_once(self, posted_journal, create_entry):
        debit_line = posted_journal.lines[0]
        create_entry(
            posted_journal, debit_amount=Decimal("1770"), journal_line_id=debit_line.id
        )

        with pytest.raises(JournalLineMismatchError):
            create_entry(
                posted_journal, debit_amount=Decimal("1770"), journal_line_id=debit_line.id
            )


class TestImmutability:

    def test_entry_cannot_be_edited(self, session, posted_journal, create_entry):
        entry = create_entry(posted_journal, debit_amount=Decimal("1770"))

        entry.source_reference = "INV-999"

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_entry_cannot_be_deleted(self, session, posted_journal, create_entry):
        entry = create_entry(posted_journal, debit_amount=Decimal("1770"))

        session.delete(entry)

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_line_link_cannot_be_repointed(self, session, posted_journal, create_entry):
        debit_line = posted_journal.lines[0]
        create_entry(
            posted_journal, debit_amount=Decimal("1770"), journal_line_id=debit_line.id
        )

        debit_line.subledger_entry_id = uuid4()

        with pytest.raises(ImmutabilityViolationError):
            session.flush()
