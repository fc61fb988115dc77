"""Imperative shell: services that write, and the orchestrator that sequences them."""

from posting_engine.services.journal_posting_service import JournalPostingService
from posting_engine.services.outcome_recorder import OutcomeRecorder
from posting_engine.services.rule_service import RuleService, RuleSource, StaticRuleSource
from posting_engine.services.status_transition_orchestrator import (
    RulePostingResult,
    RulePostingStatus,
    StatusTransitionOrchestrator,
    TransitionResult,
    TransitionStatus,
)
from posting_engine.services.subledger_posting_service import SubledgerPostingService
from posting_engine.services.tax_breakdown_store import TaxBreakdownStore

__all__ = [
    "JournalPostingService",
    "OutcomeRecorder",
    "RulePostingResult",
    "RulePostingStatus",
    "RuleService",
    "RuleSource",
    "StaticRuleSource",
    "StatusTransitionOrchestrator",
    "SubledgerPostingService",
    "TaxBreakdownStore",
    "TransitionResult",
    "TransitionStatus",
]
