"""ORM models for the posting engine."""

from posting_engine.models.journal import JournalHeader, JournalLine
from posting_engine.models.posting_outcome import (
    VALID_TRANSITIONS,
    OutcomeStatus,
    PostingOutcome,
)
from posting_engine.models.rule import AccountingRule, AccountingRuleLine
from posting_engine.models.subledger import SubledgerEntry
from posting_engine.models.tax_breakdown import TaxBreakdownRow

__all__ = [
    "AccountingRule",
    "AccountingRuleLine",
    "JournalHeader",
    "JournalLine",
    "SubledgerEntry",
    "TaxBreakdownRow",
    "PostingOutcome",
    "OutcomeStatus",
    "VALID_TRANSITIONS",
]
