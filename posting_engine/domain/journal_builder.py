"""
JournalLineBuilder -- turn one matched rule into a journal draft.

Responsibility:
    For the rule line at position n (1-based, ordered by line_number):
      - resolve its amount; zero, negative, or unresolved -> no lines
      - debit account set  -> line 2n-1, debit
      - credit account set -> line 2n, credit
    Narration names the rule, the document, and the triggering event.

Architecture position:
    Engine > Domain -- pure apart from logging.

Invariants enforced:
    - The builder does NOT enforce rule-level balance.  A rule line may
      carry one leg only; balance is a property of the whole journal and is
      checked by check_balance() before anything is persisted.
    - Resolved amounts pass through round_money() exactly once.

Failure modes:
    - An unknown amount-source label skips only its rule line (recorded in
      JournalDraft.skipped, logged as a warning).
    - check_balance raises EmptyJournalError / UnbalancedJournalError.
"""

from decimal import Decimal

from posting_engine.db.types import ZERO, round_money
from posting_engine.domain.amount_resolver import resolve_amount
from posting_engine.domain.dtos import (
    DocumentTotals,
    JournalDraft,
    JournalLineDraft,
    PostingDocument,
    RuleSpec,
    SkippedLine,
)
from posting_engine.domain.types import LineSide, TriggeringAction
from posting_engine.exceptions import (
    EmptyJournalError,
    UnbalancedJournalError,
    UnknownAmountSourceError,
)
from posting_engine.logging_config import get_logger
from posting_engine.utils.idempotency import journal_idempotency_key

logger = get_logger("domain.journal_builder")


def build_narration(rule: RuleSpec, document: PostingDocument, action: TriggeringAction) -> str:
    return f"{rule.name} - {document.category.value} {document.document_number} - {action.value}"


def build_journal_draft(
    rule: RuleSpec,
    document: PostingDocument,
    action: TriggeringAction | str,
    totals: DocumentTotals | None = None,
    decimal_places: int = 2,
) -> JournalDraft:
    """
    Build the journal draft for one rule.

    Args:
        totals: Totals to resolve against; defaults to ``document.totals``.
            The orchestrator passes totals carrying the fresh tax breakdown.
        decimal_places: Precision posted amounts are rounded to.
    """
    action = TriggeringAction.from_label(action)
    totals = totals if totals is not None else document.totals
    narration = build_narration(rule, document, action)

    lines: list[JournalLineDraft] = []
    skipped: list[SkippedLine] = []

    for position, rule_line in enumerate(rule.ordered_lines, start=1):
        try:
            raw_amount = resolve_amount(totals, rule_line.amount_source)
        except UnknownAmountSourceError as exc:
            logger.warning(
                "amount_source_unresolved",
                extra={
                    "rule_id": str(rule.rule_id),
                    "rule_line_number": rule_line.line_number,
                    "amount_source": exc.label,
                },
            )
            skipped.append(SkippedLine(rule_line.line_number, exc.code, str(exc)))
            continue

        amount = round_money(raw_amount, decimal_places)
        if amount == ZERO:
            skipped.append(SkippedLine(rule_line.line_number, "ZERO_AMOUNT"))
            continue
        if amount < ZERO:
            logger.warning(
                "negative_amount_skipped",
                extra={
                    "rule_id": str(rule.rule_id),
                    "rule_line_number": rule_line.line_number,
                    "amount": amount,
                },
            )
            skipped.append(SkippedLine(rule_line.line_number, "NEGATIVE_AMOUNT", str(amount)))
            continue
        if not rule_line.debit_account_code and not rule_line.credit_account_code:
            skipped.append(SkippedLine(rule_line.line_number, "NO_ACCOUNT"))
            continue

        if rule_line.debit_account_code:
            lines.append(
                JournalLineDraft(
                    line_number=2 * position - 1,
                    account_code=rule_line.debit_account_code,
                    side=LineSide.DEBIT,
                    amount=amount,
                    narration=narration,
                    rule_line_number=rule_line.line_number,
                    track_subledger=rule_line.track_subledger,
                )
            )
        if rule_line.credit_account_code:
            lines.append(
                JournalLineDraft(
                    line_number=2 * position,
                    account_code=rule_line.credit_account_code,
                    side=LineSide.CREDIT,
                    amount=amount,
                    narration=narration,
                    rule_line_number=rule_line.line_number,
                    track_subledger=rule_line.track_subledger,
                )
            )

    return JournalDraft(
        organization_id=document.organization_id,
        journal_date=document.document_date,
        transaction_type=document.category.value,
        transaction_reference=document.document_number,
        lines=tuple(lines),
        rule_id=rule.rule_id,
        rule_name=rule.name,
        source_document_id=document.document_id,
        triggering_action=action.value,
        idempotency_key=journal_idempotency_key(
            document.organization_id, document.document_id, action, rule.rule_id,
        ),
        description=narration,
        skipped=tuple(skipped),
    )


def check_balance(draft: JournalDraft) -> Decimal:
    """
    Verify the draft can be posted.

    Returns:
        The balanced total (sum of debits).

    Raises:
        EmptyJournalError: If no line survived resolution.
        UnbalancedJournalError: If debits != credits.
    """
    if draft.is_empty:
        raise EmptyJournalError(draft.rule_name or draft.transaction_reference)
    debits = draft.total_debits
    credits = draft.total_credits
    if debits != credits:
        raise UnbalancedJournalError(debits, credits, reference=draft.transaction_reference)
    return debits
