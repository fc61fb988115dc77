"""
StatusTransitionOrchestrator -- entry point for document status changes.

Responsibility:
    Sequences everything a document lifecycle event owes the ledger:

        validate transition -> claim idempotency key -> tax breakdown
        -> match rules -> per rule: build, balance-check, create + post
        journal, subledger entries -> record outcome -> failure policy

Architecture position:
    Engine > Services -- owns the transaction boundary.  By default it
    commits on completion and rolls back on unexpected errors.  Set
    auto_commit=False to leave commit/rollback to the caller.

Invariants enforced:
    - Exactly-once: a second call for the same (organization, document,
      action) returns DUPLICATE without posting.  Journals carry their own
      per-rule idempotency key, so a retry only posts what is missing.
    - Balance: an unbalanced rule persists nothing and is FAILED with
      UNBALANCED_JOURNAL.
    - Isolation between rules: each rule's journal runs in its own
      savepoint, each subledger entry in another.  A failed rule leaves
      earlier rules posted and later rules still run.
    - A tax breakdown or rule loading failure ends the event FAILED with
      its claim kept, so it stays retryable instead of vanishing on rollback.
    - A tracked line whose subledger side has no account fails its rule
      with SUBLEDGER_SIDE_MISMATCH rather than going unmirrored.

Failure modes:
    - InvalidDocumentTransitionError: status change not in the lifecycle.
    - PostingBlockedError: posting failed under FailurePolicy.BLOCK_TRANSITION
      (raised after the outcome is committed).
    - OutcomeNotFoundError / RetryNotAllowedError from retry() and abandon().

Audit relevance:
    Every event ends in exactly one PostingOutcome row with per-rule results.
    Failures needing attention are logged as ``posting_needs_attention`` at
    ERROR and stay visible through pending() until retried or abandoned.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from posting_engine.config import EngineConfig, FailurePolicy
from posting_engine.domain.clock import Clock, SystemClock
from posting_engine.domain.dtos import (
    DocumentTotals,
    PostingDocument,
    RuleSpec,
    SkippedLine,
    TaxBreakdown,
)
from posting_engine.domain.journal_builder import build_journal_draft, check_balance
from posting_engine.domain.lifecycle import triggering_action_for, validate_transition
from posting_engine.domain.rule_matcher import match_rules
from posting_engine.domain.types import DocumentStatus, LineSide, TriggeringAction
from posting_engine.exceptions import (
    EmptyJournalError,
    PostingBlockedError,
    PostingEngineError,
    UnbalancedJournalError,
)
from posting_engine.logging_config import LogContext, get_logger
from posting_engine.models.journal import JournalHeader
from posting_engine.models.posting_outcome import OutcomeStatus, PostingOutcome
from posting_engine.services.journal_posting_service import JournalPostingService
from posting_engine.services.outcome_recorder import OutcomeRecorder
from posting_engine.services.rule_service import RuleService, RuleSource
from posting_engine.services.subledger_posting_service import SubledgerPostingService
from posting_engine.services.tax_breakdown_store import TaxBreakdownStore
from posting_engine.utils.idempotency import document_idempotency_key

logger = get_logger("services.status_transition")


class RulePostingStatus(str, Enum):
    POSTED = "posted"
    ALREADY_POSTED = "already_posted"
    SKIPPED = "skipped"
    FAILED = "failed"


class TransitionStatus(str, Enum):
    """Overall result of one status change."""

    NO_TRIGGER = "no_trigger"  # Target status posts nothing
    DUPLICATE = "duplicate"    # Event already claimed
    NO_RULES = "no_rules"      # No rule matched
    SKIPPED = "skipped"        # Rules matched, none produced a journal
    POSTED = "posted"          # Every matched rule posted (or was already posted)
    PARTIAL = "partial"        # Some rules posted, some failed
    FAILED = "failed"          # Rules failed, none posted


_OUTCOME_FOR_TRANSITION: dict[TransitionStatus, OutcomeStatus] = {
    TransitionStatus.NO_RULES: OutcomeStatus.NON_POSTING,
    TransitionStatus.SKIPPED: OutcomeStatus.NON_POSTING,
    TransitionStatus.POSTED: OutcomeStatus.POSTED,
    TransitionStatus.PARTIAL: OutcomeStatus.PARTIAL,
    TransitionStatus.FAILED: OutcomeStatus.FAILED,
}


@dataclass(frozen=True)
class RulePostingResult:
    """What happened to one matched rule."""

    rule_id: UUID
    rule_name: str
    status: RulePostingStatus
    journal_id: UUID | None = None
    subledger_entry_ids: tuple[UUID, ...] = ()
    reason_code: str | None = None
    message: str | None = None
    skipped_lines: tuple[SkippedLine, ...] = ()

    @classmethod
    def posted(
        cls,
        rule: RuleSpec,
        journal_id: UUID,
        subledger_entry_ids: tuple[UUID, ...],
        skipped_lines: tuple[SkippedLine, ...] = (),
    ) -> RulePostingResult:
        return cls(
            rule.rule_id, rule.name, RulePostingStatus.POSTED,
            journal_id=journal_id,
            subledger_entry_ids=subledger_entry_ids,
            skipped_lines=skipped_lines,
        )

    @classmethod
    def already_posted(
        cls,
        rule: RuleSpec,
        journal_id: UUID,
        subledger_entry_ids: tuple[UUID, ...] = (),
    ) -> RulePostingResult:
        return cls(
            rule.rule_id, rule.name, RulePostingStatus.ALREADY_POSTED,
            journal_id=journal_id,
            subledger_entry_ids=subledger_entry_ids,
        )

    @classmethod
    def skipped(
        cls, rule: RuleSpec, reason_code: str, skipped_lines: tuple[SkippedLine, ...] = ()
    ) -> RulePostingResult:
        return cls(
            rule.rule_id, rule.name, RulePostingStatus.SKIPPED,
            reason_code=reason_code,
            skipped_lines=skipped_lines,
        )

    @classmethod
    def failed(
        cls,
        rule: RuleSpec,
        reason_code: str,
        message: str,
        journal_id: UUID | None = None,
        subledger_entry_ids: tuple[UUID, ...] = (),
    ) -> RulePostingResult:
        return cls(
            rule.rule_id, rule.name, RulePostingStatus.FAILED,
            journal_id=journal_id,
            subledger_entry_ids=subledger_entry_ids,
            reason_code=reason_code,
            message=message,
        )

    @property
    def is_posted(self) -> bool:
        return self.status in (RulePostingStatus.POSTED, RulePostingStatus.ALREADY_POSTED)

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_id": str(self.rule_id),
            "rule_name": self.rule_name,
            "status": self.status.value,
            "journal_id": str(self.journal_id) if self.journal_id else None,
            "subledger_entry_ids": [str(i) for i in self.subledger_entry_ids],
            "reason_code": self.reason_code,
            "message": self.message,
            "skipped_lines": [
                {"rule_line_number": s.rule_line_number, "reason_code": s.reason_code}
                for s in self.skipped_lines
            ],
        }


@dataclass(frozen=True)
class TransitionResult:
    """Result of on_status_change() or retry()."""

    status: TransitionStatus
    document_id: UUID
    action: TriggeringAction | None = None
    idempotency_key: str | None = None
    rule_results: tuple[RulePostingResult, ...] = ()
    breakdown: tuple[TaxBreakdown, ...] = ()
    needs_posting: bool = False
    message: str | None = None

    @classmethod
    def no_trigger(cls, document: PostingDocument) -> TransitionResult:
        return cls(TransitionStatus.NO_TRIGGER, document.document_id)

    @classmethod
    def duplicate(
        cls, document: PostingDocument, action: TriggeringAction, outcome: PostingOutcome
    ) -> TransitionResult:
        return cls(
            TransitionStatus.DUPLICATE,
            document.document_id,
            action=action,
            idempotency_key=outcome.idempotency_key,
            message=f"already {outcome.status}",
        )

    @property
    def is_success(self) -> bool:
        return self.status not in (TransitionStatus.PARTIAL, TransitionStatus.FAILED)

    @property
    def journal_ids(self) -> tuple[UUID, ...]:
        return tuple(r.journal_id for r in self.rule_results if r.journal_id)

    @property
    def failed_rules(self) -> tuple[RulePostingResult, ...]:
        return tuple(r for r in self.rule_results if r.status == RulePostingStatus.FAILED)


class StatusTransitionOrchestrator:
    """
    Drives posting for document status changes.

    Collaborators are injected; any left out are built on ``session``.
    """

    def __init__(
        self,
        session: Session,
        config: EngineConfig | None = None,
        clock: Clock | None = None,
        rule_source: RuleSource | None = None,
        journal_service: JournalPostingService | None = None,
        subledger_service: SubledgerPostingService | None = None,
        outcome_recorder: OutcomeRecorder | None = None,
        tax_breakdown_store: TaxBreakdownStore | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._config = config or EngineConfig()
        self._clock = clock or SystemClock()
        self._auto_commit = auto_commit

        self._rule_source = rule_source or RuleService(session, self._clock)
        self._journals = journal_service or JournalPostingService(session, self._clock)
        self._subledger = subledger_service or SubledgerPostingService(session, self._clock)
        self._outcomes = outcome_recorder or OutcomeRecorder(session, self._clock)
        self._breakdowns = tax_breakdown_store or TaxBreakdownStore(session, self._clock)

    @property
    def config(self) -> EngineConfig:
        return self._config

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def on_status_change(
        self,
        document: PostingDocument,
        previous_status: DocumentStatus | None,
        actor_id: UUID,
    ) -> TransitionResult:
        """
        Post whatever the document's new status owes the ledger.

        ``document.status`` is the status being entered.

        Raises:
            InvalidDocumentTransitionError: If the change is illegal.
            PostingBlockedError: Under BLOCK_TRANSITION, when a rule failed.
        """
        validate_transition(document.category, previous_status, document.status)

        action = triggering_action_for(document.category, document.status)
        if action is None:
            logger.debug(
                "status_change_no_trigger",
                extra={
                    "document_id": str(document.document_id),
                    "category": document.category.value,
                    "status": document.status.value,
                },
            )
            return TransitionResult.no_trigger(document)

        with LogContext.bind(
            correlation_id=str(uuid4()),
            organization_id=str(document.organization_id),
            document_id=str(document.document_id),
            actor_id=str(actor_id),
        ):
            logger.info(
                "status_transition_started",
                extra={
                    "category": document.category.value,
                    "document_number": document.document_number,
                    "from_status": previous_status.value if previous_status else None,
                    "to_status": document.status.value,
                    "triggering_action": action.value,
                },
            )
            t0 = time.monotonic()

            try:
                outcome, claimed = self._outcomes.claim(document, action, actor_id)
                if not claimed:
                    result = TransitionResult.duplicate(document, action, outcome)
                else:
                    result = self._run(document, action, actor_id, outcome)

                if self._auto_commit:
                    self._session.commit()
            except Exception:
                if self._auto_commit:
                    self._session.rollback()
                logger.error(
                    "status_transition_failed",
                    extra={"duration_ms": round((time.monotonic() - t0) * 1000, 2)},
                    exc_info=True,
                )
                raise

            logger.info(
                "status_transition_completed",
                extra={
                    "status": result.status.value,
                    "journal_count": len(result.journal_ids),
                    "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                },
            )

        if not result.is_success and self._config.failure_policy == FailurePolicy.BLOCK_TRANSITION:
            raise PostingBlockedError(
                result.idempotency_key,
                tuple(r.rule_name for r in result.failed_rules),
            )
        return result

    def retry(
        self,
        organization_id: UUID,
        document_id: UUID,
        action: TriggeringAction | str,
        actor_id: UUID,
    ) -> TransitionResult:
        """
        Re-run a FAILED or PARTIAL event from its stored document snapshot.

        Rules whose journal already exists report ALREADY_POSTED; only the
        missing journals (and missing subledger entries) are posted.

        Raises:
            OutcomeNotFoundError, RetryNotAllowedError.
        """
        action = TriggeringAction.from_label(action)
        key = document_idempotency_key(organization_id, document_id, action)

        with LogContext.bind(
            correlation_id=str(uuid4()),
            organization_id=str(organization_id),
            document_id=str(document_id),
            actor_id=str(actor_id),
        ):
            try:
                outcome = self._outcomes.transition_to_retrying(key, self._config.max_retries)
                document = PostingDocument.from_snapshot(outcome.document_snapshot)
                logger.info(
                    "posting_retry_started",
                    extra={"idempotency_key": key, "retry_count": outcome.retry_count},
                )
                result = self._run(document, action, actor_id, outcome)

                if self._auto_commit:
                    self._session.commit()
            except Exception:
                if self._auto_commit:
                    self._session.rollback()
                logger.error("posting_retry_failed", extra={"idempotency_key": key}, exc_info=True)
                raise

            logger.info(
                "posting_retry_completed",
                extra={"idempotency_key": key, "status": result.status.value},
            )
        return result

    def abandon(
        self,
        organization_id: UUID,
        document_id: UUID,
        action: TriggeringAction | str,
        reason: str,
    ) -> PostingOutcome:
        """Give up on a FAILED or PARTIAL event permanently."""
        key = document_idempotency_key(organization_id, document_id, action)
        try:
            outcome = self._outcomes.transition_to_abandoned(key, reason)
            if self._auto_commit:
                self._session.commit()
        except Exception:
            if self._auto_commit:
                self._session.rollback()
            raise
        return outcome

    def pending(self, organization_id: UUID | None = None, limit: int = 100) -> list[PostingOutcome]:
        """Events still owing journals to the ledger."""
        return self._outcomes.pending(organization_id, limit)

    # ------------------------------------------------------------------
    # Sequence
    # ------------------------------------------------------------------

    def _run(
        self,
        document: PostingDocument,
        action: TriggeringAction,
        actor_id: UUID,
        outcome: PostingOutcome,
    ) -> TransitionResult:
        breakdown: tuple[TaxBreakdown, ...] = ()
        totals = document.totals
        try:
            with self._session.begin_nested():
                if self._config.computes_tax_breakdown(document.category):
                    breakdown = self._breakdowns.compute_and_store(document, actor_id)
                    totals = totals.with_breakdown(breakdown)

                rules = match_rules(
                    self._rule_source.rules_for_organization(
                        document.organization_id, document.category
                    ),
                    document.category,
                    action,
                    transaction_type=document.transaction_type,
                    division_id=document.division_id,
                )
        except (PostingEngineError, SQLAlchemyError, ValueError) as exc:
            return self._fail_preparation(document, action, outcome, exc)

        results = tuple(
            self._post_rule(rule, document, totals, action, actor_id) for rule in rules
        )
        status = self._summarize(results)

        failed = [r for r in results if r.status == RulePostingStatus.FAILED]
        needs_posting = bool(failed) and self._config.failure_policy != FailurePolicy.LOG_ONLY
        if failed:
            log = logger.error if needs_posting else logger.warning
            log(
                "posting_needs_attention" if needs_posting else "posting_failed_logged",
                extra={
                    "idempotency_key": outcome.idempotency_key,
                    "failure_policy": self._config.failure_policy.value,
                    "failed_rules": [r.rule_name for r in failed],
                    "reason_codes": [r.reason_code for r in failed],
                },
            )

        self._outcomes.finish(
            outcome,
            _OUTCOME_FOR_TRANSITION[status],
            journal_ids=[str(r.journal_id) for r in results if r.journal_id],
            rule_results=[r.to_dict() for r in results],
            needs_posting=needs_posting,
            failure_code=failed[0].reason_code if failed else None,
            failure_message="; ".join(f"{r.rule_name}: {r.message}" for r in failed) or None,
        )

        return TransitionResult(
            status=status,
            document_id=document.document_id,
            action=action,
            idempotency_key=outcome.idempotency_key,
            rule_results=results,
            breakdown=breakdown,
            needs_posting=needs_posting,
        )

    def _fail_preparation(
        self,
        document: PostingDocument,
        action: TriggeringAction,
        outcome: PostingOutcome,
        exc: Exception,
    ) -> TransitionResult:
        """Record the event as FAILED when breakdown or rule loading broke."""
        code = _reason_code(exc)
        needs_posting = self._config.failure_policy != FailurePolicy.LOG_ONLY
        logger.error(
            "posting_preparation_failed",
            extra={
                "idempotency_key": outcome.idempotency_key,
                "failure_policy": self._config.failure_policy.value,
                "reason_code": code,
            },
            exc_info=True,
        )
        self._outcomes.finish(
            outcome,
            OutcomeStatus.FAILED,
            journal_ids=[],
            rule_results=[],
            needs_posting=needs_posting,
            failure_code=code,
            failure_message=str(exc),
        )
        return TransitionResult(
            status=TransitionStatus.FAILED,
            document_id=document.document_id,
            action=action,
            idempotency_key=outcome.idempotency_key,
            needs_posting=needs_posting,
            message=str(exc),
        )

    @staticmethod
    def _summarize(results: tuple[RulePostingResult, ...]) -> TransitionStatus:
        if not results:
            return TransitionStatus.NO_RULES
        any_failed = any(r.status == RulePostingStatus.FAILED for r in results)
        any_posted = any(r.is_posted for r in results)
        if any_failed:
            return TransitionStatus.PARTIAL if any_posted else TransitionStatus.FAILED
        if any_posted:
            return TransitionStatus.POSTED
        return TransitionStatus.SKIPPED

    def _post_rule(
        self,
        rule: RuleSpec,
        document: PostingDocument,
        totals: DocumentTotals,
        action: TriggeringAction,
        actor_id: UUID,
    ) -> RulePostingResult:
        draft = build_journal_draft(
            rule, document, action, totals, self._config.amount_decimal_places
        )

        try:
            check_balance(draft)
        except EmptyJournalError as exc:
            logger.info(
                "rule_skipped",
                extra={
                    "rule_id": str(rule.rule_id),
                    "rule_name": rule.name,
                    "reason_code": exc.code,
                    "skipped_lines": [s.reason_code for s in draft.skipped],
                },
            )
            return RulePostingResult.skipped(rule, exc.code, draft.skipped)
        except UnbalancedJournalError as exc:
            logger.warning(
                "rule_unbalanced",
                extra={
                    "rule_id": str(rule.rule_id),
                    "rule_name": rule.name,
                    "debits": exc.debits,
                    "credits": exc.credits,
                },
            )
            return RulePostingResult.failed(rule, exc.code, str(exc))

        existing = self._journals.get_by_idempotency_key(draft.idempotency_key)
        if existing is not None:
            return self._resume_existing(rule, existing, document, action, actor_id)

        try:
            with self._session.begin_nested():
                journal = self._journals.create_journal(draft, actor_id)
                self._journals.post_journal(journal.id, actor_id)
        except (PostingEngineError, SQLAlchemyError) as exc:
            code = _reason_code(exc)
            logger.error(
                "rule_journal_failed",
                extra={"rule_id": str(rule.rule_id), "rule_name": rule.name, "reason_code": code},
                exc_info=True,
            )
            return RulePostingResult.failed(rule, code, str(exc))

        entry_ids, failure = self._post_subledger(rule, journal, document, action, actor_id)
        if failure is not None:
            return RulePostingResult.failed(
                rule, failure[0], failure[1],
                journal_id=journal.id, subledger_entry_ids=entry_ids,
            )
        return RulePostingResult.posted(rule, journal.id, entry_ids, draft.skipped)

    def _resume_existing(
        self,
        rule: RuleSpec,
        journal: JournalHeader,
        document: PostingDocument,
        action: TriggeringAction,
        actor_id: UUID,
    ) -> RulePostingResult:
        logger.info(
            "rule_journal_already_posted",
            extra={"rule_id": str(rule.rule_id), "journal_id": str(journal.id)},
        )
        if not journal.is_posted:
            return RulePostingResult.already_posted(rule, journal.id)
        entry_ids, failure = self._post_subledger(rule, journal, document, action, actor_id)
        if failure is not None:
            return RulePostingResult.failed(
                rule, failure[0], failure[1],
                journal_id=journal.id, subledger_entry_ids=entry_ids,
            )
        return RulePostingResult.already_posted(rule, journal.id, entry_ids)

    def _post_subledger(
        self,
        rule: RuleSpec,
        journal: JournalHeader,
        document: PostingDocument,
        action: TriggeringAction,
        actor_id: UUID,
    ) -> tuple[tuple[UUID, ...], tuple[str, str] | None]:
        """
        Create the missing subledger entries for the rule's flagged lines.

        Returns:
            (created entry ids, first failure as (code, message) or None).
        """
        lines_by_number = {line.line_number: line for line in journal.lines}
        entry_ids: list[UUID] = []
        failure: tuple[str, str] | None = None

        for position, rule_line in enumerate(rule.ordered_lines, start=1):
            if not rule_line.track_subledger:
                continue
            side = _subledger_side(rule_line.subledger_side, rule_line.debit_account_code,
                                   rule_line.credit_account_code)
            account = (
                rule_line.debit_account_code if side == LineSide.DEBIT
                else rule_line.credit_account_code
            )
            if not account:
                logger.warning(
                    "subledger_side_mismatch",
                    extra={
                        "rule_id": str(rule.rule_id),
                        "journal_id": str(journal.id),
                        "rule_line_number": rule_line.line_number,
                        "side": side.value,
                    },
                )
                failure = failure or (
                    "SUBLEDGER_SIDE_MISMATCH",
                    f"rule line {rule_line.line_number} tracks the {side.value} side "
                    "but has no account there",
                )
                continue
            line_number = 2 * position - 1 if side == LineSide.DEBIT else 2 * position
            line = lines_by_number.get(line_number)
            if line is None or line.subledger_entry_id is not None:
                # Zero amount, or already mirrored by an earlier attempt
                continue

            if document.party_org_id is None:
                logger.warning(
                    "subledger_party_missing",
                    extra={"rule_id": str(rule.rule_id), "journal_id": str(journal.id)},
                )
                failure = failure or (
                    "MISSING_PARTY", f"line {line_number} needs a counterparty organization"
                )
                continue

            try:
                with self._session.begin_nested():
                    entry = self._subledger.create_entry(
                        journal_id=journal.id,
                        party_org_id=document.party_org_id,
                        party_contact_id=document.party_contact_id,
                        debit_amount=line.debit_amount,
                        credit_amount=line.credit_amount,
                        source_reference=document.document_number,
                        category=document.category,
                        action=action,
                        actor_id=actor_id,
                        journal_line_id=line.id,
                        transaction_date=document.document_date,
                        party_name=document.party_name,
                        party_code=document.party_code,
                    )
            except (PostingEngineError, SQLAlchemyError) as exc:
                code = _reason_code(exc)
                logger.error(
                    "subledger_entry_failed",
                    extra={
                        "rule_id": str(rule.rule_id),
                        "journal_id": str(journal.id),
                        "journal_line_number": line_number,
                        "reason_code": code,
                    },
                    exc_info=True,
                )
                failure = failure or (code, str(exc))
                continue
            entry_ids.append(entry.id)

        return tuple(entry_ids), failure


def _subledger_side(
    configured: LineSide | None,
    debit_account_code: str | None,
    credit_account_code: str | None,
) -> LineSide:
    if configured is not None:
        return LineSide(configured)
    if credit_account_code and not debit_account_code:
        return LineSide.CREDIT
    return LineSide.DEBIT


def _reason_code(exc: Exception) -> str:
    if isinstance(exc, PostingEngineError):
        return exc.code
    if isinstance(exc, SQLAlchemyError):
        return "PERSISTENCE_ERROR"
    return "INVALID_DATA"
