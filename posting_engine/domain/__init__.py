"""
Pure domain layer.

DTOs, vocabulary enums, and the posting algorithms (tax breakdown, rule
matching, amount resolution, journal building, document lifecycles).  No
ORM, no database, no wall-clock time.
"""

from posting_engine.domain.amount_resolver import resolve_amount
from posting_engine.domain.clock import Clock, DeterministicClock, SystemClock
from posting_engine.domain.dtos import (
    DocumentTotals,
    JournalDraft,
    JournalLineDraft,
    PostingDocument,
    RuleLineSpec,
    RuleSpec,
    SkippedLine,
    TaxableLine,
    TaxBreakdown,
)
from posting_engine.domain.journal_builder import build_journal_draft, check_balance
from posting_engine.domain.lifecycle import triggering_action_for, validate_transition
from posting_engine.domain.rule_matcher import match_rules
from posting_engine.domain.tax_breakdown import calculate_tax_breakdown
from posting_engine.domain.types import (
    AmountSource,
    DocumentStatus,
    JournalStatus,
    LineSide,
    PartyType,
    RuleStatus,
    TransactionCategory,
    TriggeringAction,
)

__all__ = [
    "AmountSource",
    "Clock",
    "DeterministicClock",
    "DocumentStatus",
    "DocumentTotals",
    "JournalDraft",
    "JournalLineDraft",
    "JournalStatus",
    "LineSide",
    "PartyType",
    "PostingDocument",
    "RuleLineSpec",
    "RuleSpec",
    "RuleStatus",
    "SkippedLine",
    "SystemClock",
    "TaxableLine",
    "TaxBreakdown",
    "TransactionCategory",
    "TriggeringAction",
    "build_journal_draft",
    "calculate_tax_breakdown",
    "check_balance",
    "match_rules",
    "resolve_amount",
    "triggering_action_for",
    "validate_transition",
]
