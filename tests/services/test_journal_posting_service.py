"""
JournalPostingService tests.

Tests cover:
- Create persists a Draft header with all lines
- Draft -> Posted -> Reversed, and every other transition rejected
- Balance re-check at post time
- Idempotency key collisions
- Immutability of posted journals and their lines
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from posting_engine.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from posting_engine.domain.dtos import JournalDraft, JournalLineDraft
from posting_engine.domain.journal_builder import build_journal_draft
from posting_engine.domain.types import JournalStatus, LineSide, TriggeringAction
from posting_engine.exceptions import (
    DuplicateJournalError,
    ImmutabilityViolationError,
    InvalidJournalTransitionError,
    JournalNotFoundError,
    UnbalancedJournalError,
)
from posting_engine.models.journal import JournalHeader, JournalLine


@pytest.fixture
def draft(rule_spec_factory, invoice_factory) -> JournalDraft:
    return build_journal_draft(
        rule_spec_factory(), invoice_factory(), TriggeringAction.INVOICE_APPROVED
    )


@pytest.fixture
def posted_journal(journal_service, draft, test_actor_id) -> JournalHeader:
    journal = journal_service.create_journal(draft, test_actor_id)
    return journal_service.post_journal(journal.id, test_actor_id)


class TestCreateJournal:

    def test_creates_draft_with_lines(self, session, journal_service, draft, test_actor_id):
        journal = journal_service.create_journal(draft, test_actor_id)

        assert journal.status == JournalStatus.DRAFT.value
        assert journal.idempotency_key == draft.idempotency_key
        assert journal.transaction_reference == "INV-001"
        assert journal.created_by_id == test_actor_id
        assert [(l.line_number, l.account_code, l.side) for l in journal.lines] == [
            (1, "1200", LineSide.DEBIT),
            (2, "4000", LineSide.CREDIT),
        ]
        assert session.scalar(select(func.count()).select_from(JournalLine)) == 2

    def test_duplicate_key_rejected_with_existing_id(self, journal_service, draft, test_actor_id):
        first = journal_service.create_journal(draft, test_actor_id)

        with pytest.raises(DuplicateJournalError) as exc_info:
            journal_service.create_journal(draft, test_actor_id)

        assert exc_info.value.journal_id == str(first.id)
        assert exc_info.value.idempotency_key == draft.idempotency_key

    def test_lookup_by_idempotency_key(self, journal_service, draft, test_actor_id):
        journal = journal_service.create_journal(draft, test_actor_id)

        assert journal_service.get_by_idempotency_key(draft.idempotency_key) is journal
        assert journal_service.get_by_idempotency_key("missing") is None


class TestPostJournal:

    def test_post_sets_status_and_timestamp(
        self, journal_service, draft, test_actor_id, deterministic_clock
    ):
        journal = journal_service.create_journal(draft, test_actor_id)

        posted = journal_service.post_journal(journal.id, test_actor_id)

        assert posted.is_posted
        assert posted.posted_at == deterministic_clock.now()
        assert posted.updated_by_id == test_actor_id
        assert posted.total_debits == posted.total_credits == Decimal("1770.00")

    def test_post_twice_rejected(self, journal_service, posted_journal, test_actor_id):
        with pytest.raises(InvalidJournalTransitionError) as exc_info:
            journal_service.post_journal(posted_journal.id, test_actor_id)

        assert exc_info.value.current_status == "Posted"
        assert exc_info.value.target_status == "Posted"

    def test_unbalanced_draft_cannot_post(self, journal_service, invoice_factory, test_actor_id):
        invoice = invoice_factory()
        draft = JournalDraft(
            organization_id=invoice.organization_id,
            journal_date=invoice.document_date,
            transaction_type="Invoice",
            transaction_reference="INV-001",
            lines=(
                JournalLineDraft(1, "1200", LineSide.DEBIT, Decimal("100"), "n", 1),
                JournalLineDraft(2, "4000", LineSide.CREDIT, Decimal("90"), "n", 1),
            ),
            idempotency_key="manual-unbalanced",
        )
        journal = journal_service.create_journal(draft, test_actor_id)

        with pytest.raises(UnbalancedJournalError):
            journal_service.post_journal(journal.id, test_actor_id)

        assert journal.is_draft

    def test_unknown_journal(self, journal_service, test_actor_id):
        with pytest.raises(JournalNotFoundError):
            journal_service.post_journal(uuid4(), test_actor_id)


class TestReverseJournal:

    def test_reverse_posted(
        self, journal_service, posted_journal, test_actor_id, deterministic_clock
    ):
        deterministic_clock.advance(3600)

        reversed_journal = journal_service.reverse_journal(posted_journal.id, test_actor_id)

        assert reversed_journal.is_reversed
        assert reversed_journal.reversed_at == deterministic_clock.now()
        # Status flag only: no counter-entry lines
        assert len(reversed_journal.lines) == 2

    def test_reverse_draft_rejected(self, journal_service, draft, test_actor_id):
        journal = journal_service.create_journal(draft, test_actor_id)

        with pytest.raises(InvalidJournalTransitionError):
            journal_service.reverse_journal(journal.id, test_actor_id)

    def test_reverse_twice_rejected(self, journal_service, posted_journal, test_actor_id):
        journal_service.reverse_journal(posted_journal.id, test_actor_id)

        with pytest.raises(InvalidJournalTransitionError):
            journal_service.reverse_journal(posted_journal.id, test_actor_id)

    def test_reversed_journal_cannot_be_posted(
        self, journal_service, posted_journal, test_actor_id
    ):
        journal_service.reverse_journal(posted_journal.id, test_actor_id)

        with pytest.raises(InvalidJournalTransitionError):
            journal_service.post_journal(posted_journal.id, test_actor_id)


class TestImmutability:

    def test_posted_header_field_edit_blocked(self, session, posted_journal):
        posted_journal.description = "rewritten"

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()

        assert exc_info.value.entity_type == "JournalHeader"

    def test_posted_journal_cannot_return_to_draft(self, session, posted_journal):
        posted_journal.status = JournalStatus.DRAFT.value

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_posted_line_amount_edit_blocked(self, session, posted_journal):
        posted_journal.lines[0].debit_amount = Decimal("1")

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()

        assert exc_info.value.entity_type == "JournalLine"

    def test_posted_journal_delete_blocked(self, session, posted_journal):
        session.delete(posted_journal)

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_reversed_journal_frozen(self, session, journal_service, posted_journal, test_actor_id):
        journal_service.reverse_journal(posted_journal.id, test_actor_id)

        posted_journal.status = JournalStatus.POSTED.value

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_draft_may_be_edited(self, session, journal_service, draft, test_actor_id):
        journal = journal_service.create_journal(draft, test_actor_id)

        journal.description = "corrected narration"
        session.flush()

        assert journal.description == "corrected narration"

    def test_listeners_can_be_lifted_for_repair(self, session, posted_journal):
        unregister_immutability_listeners()
        try:
            posted_journal.description = "repair"
            session.flush()
        finally:
            register_immutability_listeners()

        assert posted_journal.description == "repair"
