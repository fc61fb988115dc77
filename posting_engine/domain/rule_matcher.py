"""
AccountingRuleMatcher -- select the rules a lifecycle event fires.

Responsibility:
    Filters an organization's rules down to those that apply to one
    document event.  All matches fire independently; there is no priority
    and no first-match-wins.

Architecture position:
    Engine > Domain -- pure apart from logging.

Matching:
    rule.status == Active
    AND rule.category == category
    AND rule's action fires on the same (category, status) trigger as the
        requested action (so legacy "Payment Processed" rules fire with
        "Payment Approved")
    AND (rule.transaction_type is unset OR equals transaction_type)
    AND (rule.division_id is unset OR equals division_id)

    Results are ordered by rule name, then id, so postings are reproducible.
    No match is a configuration gap, logged and returned empty.
"""

from collections.abc import Iterable
from uuid import UUID

from posting_engine.domain.dtos import RuleSpec
from posting_engine.domain.types import TransactionCategory, TriggeringAction
from posting_engine.exceptions import UnknownTriggeringActionError
from posting_engine.logging_config import get_logger

logger = get_logger("domain.rule_matcher")


def _fires_on(rule: RuleSpec, action: TriggeringAction) -> bool:
    try:
        rule_action = TriggeringAction.from_label(rule.triggering_action)
    except UnknownTriggeringActionError:
        logger.warning(
            "rule_action_unrecognized",
            extra={
                "rule_id": str(rule.rule_id),
                "rule_name": rule.name,
                "triggering_action": rule.triggering_action,
            },
        )
        return False
    return rule_action.trigger == action.trigger


def match_rules(
    rules: Iterable[RuleSpec],
    category: TransactionCategory,
    action: TriggeringAction | str,
    transaction_type: str | None = None,
    division_id: UUID | None = None,
) -> tuple[RuleSpec, ...]:
    """
    Return every rule that fires for this event.

    Raises:
        UnknownTriggeringActionError: If ``action`` itself is not a known label.
    """
    action = TriggeringAction.from_label(action)
    category = TransactionCategory(category)

    matched = [
        rule
        for rule in rules
        if rule.is_active
        and rule.category == category
        and (rule.transaction_type is None or rule.transaction_type == transaction_type)
        and (rule.division_id is None or rule.division_id == division_id)
        and _fires_on(rule, action)
    ]
    matched.sort(key=lambda rule: (rule.name, str(rule.rule_id)))

    if not matched:
        logger.info(
            "no_matching_rules",
            extra={
                "category": category.value,
                "triggering_action": action.value,
                "transaction_type": transaction_type,
                "division_id": str(division_id) if division_id else None,
            },
        )
    else:
        logger.debug(
            "rules_matched",
            extra={
                "triggering_action": action.value,
                "rule_count": len(matched),
                "rule_ids": [str(rule.rule_id) for rule in matched],
            },
        )

    return tuple(matched)
