"""
Pytest fixtures for the posting engine test suite.

Provides:
- In-memory SQLite sessions (fresh schema per test)
- Deterministic clock and stable actor / organization ids
- Rule and document factories
- Captured structured logs

Every test gets its own ``sqlite://`` engine, so tests that let the
orchestrator commit cannot leak rows into each other.
"""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session, sessionmaker

from posting_engine.config import EngineConfig, FailurePolicy
from posting_engine.db.engine import build_engine, create_tables
from posting_engine.db.immutability import register_immutability_listeners
from posting_engine.domain.clock import DeterministicClock
from posting_engine.domain.dtos import (
    DocumentTotals,
    PostingDocument,
    RuleLineSpec,
    RuleSpec,
    TaxableLine,
)
from posting_engine.domain.types import DocumentStatus, TransactionCategory, TriggeringAction
from posting_engine.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from posting_engine.services.journal_posting_service import JournalPostingService
from posting_engine.services.outcome_recorder import OutcomeRecorder
from posting_engine.services.rule_service import RuleService, StaticRuleSource
from posting_engine.services.status_transition_orchestrator import StatusTransitionOrchestrator
from posting_engine.services.subledger_posting_service import SubledgerPostingService
from posting_engine.services.tax_breakdown_store import TaxBreakdownStore

TEST_ACTOR_ID = UUID("00000000-0000-0000-0000-000000000001")
TEST_ORG_ID = UUID("00000000-0000-0000-0000-0000000000a1")
TEST_PARTY_ORG_ID = UUID("00000000-0000-0000-0000-0000000000b2")

REFERENCE_LINES = (
    TaxableLine(Decimal("1000"), Decimal("18")),
    TaxableLine(Decimal("500"), Decimal("18")),
)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture posting_engine logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, orchestrator_factory):
            orchestrator_factory().on_status_change(...)
            logs = captured_logs()
            assert any(r["message"] == "status_transition_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("posting_engine")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture(scope="function")
def engine():
    """Fresh in-memory database with every table created."""
    eng = build_engine("sqlite://")
    create_tables(eng)
    register_immutability_listeners()
    yield eng
    eng.dispose()


@pytest.fixture(scope="function")
def session(engine) -> Generator[Session, None, None]:
    """Provide a database session for testing."""
    factory = sessionmaker(bind=engine, expire_on_commit=False)
    sess = factory()
    yield sess
    sess.close()


# =============================================================================
# Identity and clock fixtures
# =============================================================================


@pytest.fixture
def test_actor_id() -> UUID:
    """Provide a consistent test actor ID."""
    return TEST_ACTOR_ID


@pytest.fixture
def org_id() -> UUID:
    return TEST_ORG_ID


@pytest.fixture
def party_org_id() -> UUID:
    return TEST_PARTY_ORG_ID


@pytest.fixture
def deterministic_clock():
    """Provide a deterministic clock for testing."""
    return DeterministicClock()


# =============================================================================
# Service fixtures
# =============================================================================


@pytest.fixture
def rule_service(session, deterministic_clock):
    return RuleService(session, deterministic_clock)


@pytest.fixture
def journal_service(session, deterministic_clock):
    return JournalPostingService(session, deterministic_clock)


@pytest.fixture
def subledger_service(session, deterministic_clock):
    return SubledgerPostingService(session, deterministic_clock)


@pytest.fixture
def outcome_recorder(session, deterministic_clock):
    return OutcomeRecorder(session, deterministic_clock)


@pytest.fixture
def tax_breakdown_store(session, deterministic_clock):
    return TaxBreakdownStore(session, deterministic_clock)


@pytest.fixture
def orchestrator_factory(session, deterministic_clock):
    """
    Build a StatusTransitionOrchestrator on the test session.

    With ``rules`` the orchestrator reads from a StaticRuleSource; without,
    it reads rules persisted through RuleService.
    """

    def _build(
        rules=None,
        failure_policy: FailurePolicy = FailurePolicy.RECORD_FOR_RETRY,
        max_retries: int = 3,
        **kwargs,
    ) -> StatusTransitionOrchestrator:
        config = EngineConfig(failure_policy=failure_policy, max_retries=max_retries)
        rule_source = StaticRuleSource(rules) if rules is not None else None
        return StatusTransitionOrchestrator(
            session,
            config=config,
            clock=deterministic_clock,
            rule_source=rule_source,
            **kwargs,
        )

    return _build


# =============================================================================
# Rule and document factories
# =============================================================================


def make_rule_spec(
    organization_id: UUID = TEST_ORG_ID,
    name: str = "Invoice revenue",
    category: TransactionCategory = TransactionCategory.INVOICE,
    triggering_action: str = TriggeringAction.INVOICE_APPROVED.value,
    lines=None,
    **kwargs,
) -> RuleSpec:
    """In-memory rule; defaults to Dr 1200 / Cr 4000 on the document value."""
    if lines is None:
        lines = (RuleLineSpec(1, "Total document value", "1200", "4000"),)
    return RuleSpec(
        rule_id=uuid4(),
        organization_id=organization_id,
        name=name,
        category=category,
        triggering_action=triggering_action,
        lines=tuple(lines),
        **kwargs,
    )


@pytest.fixture
def rule_spec_factory():
    return make_rule_spec


@pytest.fixture
def create_rule(rule_service, test_actor_id):
    """Persist a rule through RuleService and return its RuleSpec."""

    def _create(
        name: str = "Invoice revenue",
        category: TransactionCategory = TransactionCategory.INVOICE,
        triggering_action: str = TriggeringAction.INVOICE_APPROVED.value,
        lines=None,
        organization_id: UUID = TEST_ORG_ID,
        **kwargs,
    ) -> RuleSpec:
        if lines is None:
            lines = (RuleLineSpec(1, "Total document value", "1200", "4000"),)
        return rule_service.create_rule(
            organization_id=organization_id,
            name=name,
            category=category,
            triggering_action=triggering_action,
            lines=tuple(lines),
            actor_id=test_actor_id,
            **kwargs,
        )

    return _create


def make_invoice(
    organization_id: UUID = TEST_ORG_ID,
    document_id: UUID | None = None,
    document_number: str = "INV-001",
    status: DocumentStatus = DocumentStatus.APPROVED,
    destination_code: str | None = "27",
    party_org_id: UUID | None = TEST_PARTY_ORG_ID,
    document_date: date = date(2024, 4, 1),
    lines=None,
    **kwargs,
) -> PostingDocument:
    """
    The reference invoice: 1000 + 500 taxable at 18%, total 1770.

    Origin code 27; destination 27 gives the CGST/SGST split, anything
    else IGST.
    """
    return PostingDocument(
        organization_id=organization_id,
        document_id=document_id or uuid4(),
        category=TransactionCategory.INVOICE,
        document_number=document_number,
        document_date=document_date,
        status=status,
        totals=DocumentTotals(
            item_value=Decimal("1500"),
            tax_value=Decimal("270"),
            document_value=Decimal("1770"),
        ),
        party_org_id=party_org_id,
        lines=REFERENCE_LINES if lines is None else lines,
        origin_code="27",
        destination_code=destination_code,
        **kwargs,
    )


def make_payment(
    organization_id: UUID = TEST_ORG_ID,
    document_id: UUID | None = None,
    document_number: str = "PAY-001",
    amount: Decimal = Decimal("500"),
    status: DocumentStatus = DocumentStatus.APPROVED,
    party_org_id: UUID | None = TEST_PARTY_ORG_ID,
    document_date: date = date(2024, 4, 15),
    **kwargs,
) -> PostingDocument:
    return PostingDocument(
        organization_id=organization_id,
        document_id=document_id or uuid4(),
        category=TransactionCategory.PAYMENT,
        document_number=document_number,
        document_date=document_date,
        status=status,
        totals=DocumentTotals(item_value=amount, document_value=amount),
        party_org_id=party_org_id,
        **kwargs,
    )


@pytest.fixture
def invoice_factory():
    return make_invoice


@pytest.fixture
def payment_factory():
    return make_payment
