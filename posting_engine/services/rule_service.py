"""
RuleService -- accounting rule configuration and the RuleSource port.

Responsibility:
    Validates and persists accounting rules, toggles their status, and
    serves immutable RuleSpec snapshots to the orchestrator.

Architecture position:
    Engine > Services -- imperative shell.  The orchestrator depends only on
    the RuleSource protocol; RuleService is the database-backed
    implementation and StaticRuleSource the in-memory one.

Invariants enforced:
    - A stored rule has a name, at least one line, unique line numbers,
      at least one account code per line, a parseable amount source per
      line, a subledger side that names a side with an account, and a
      triggering action belonging to its category.
    - A stored row that no longer parses is logged and left out of
      list_rules rather than failing the whole organization.

Failure modes:
    - InvalidRuleError on any of the above.
"""

from collections.abc import Iterable, Sequence
from typing import Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy import select

from posting_engine.domain.dtos import RuleLineSpec, RuleSpec
from posting_engine.domain.types import (
    AmountSource,
    LineSide,
    PartyType,
    RuleStatus,
    TransactionCategory,
    TriggeringAction,
)
from posting_engine.exceptions import (
    InvalidRuleError,
    UnknownAmountSourceError,
    UnknownTriggeringActionError,
)
from posting_engine.logging_config import get_logger
from posting_engine.models.rule import AccountingRule, AccountingRuleLine
from posting_engine.services.base import BaseService

logger = get_logger("services.rule")


@runtime_checkable
class RuleSource(Protocol):
    """Protocol for loading the rules an organization has configured."""

    def rules_for_organization(
        self,
        organization_id: UUID,
        category: TransactionCategory | None = None,
    ) -> tuple[RuleSpec, ...]:
        """Return the organization's rules (any status), optionally by category."""
        ...


class StaticRuleSource:
    """RuleSource over a fixed collection of RuleSpecs."""

    def __init__(self, rules: Iterable[RuleSpec] = ()):
        self._rules = tuple(rules)

    def rules_for_organization(
        self,
        organization_id: UUID,
        category: TransactionCategory | None = None,
    ) -> tuple[RuleSpec, ...]:
        return tuple(
            rule
            for rule in self._rules
            if rule.organization_id == organization_id
            and (category is None or rule.category == category)
        )


class RuleService(BaseService[AccountingRule]):
    """Database-backed rule configuration; also a RuleSource."""

    def create_rule(
        self,
        organization_id: UUID,
        name: str,
        category: TransactionCategory | str,
        triggering_action: TriggeringAction | str,
        lines: Sequence[RuleLineSpec],
        actor_id: UUID,
        transaction_reference: str = "",
        transaction_type: str | None = None,
        division_id: UUID | None = None,
        party_type: PartyType | str | None = None,
        status: RuleStatus = RuleStatus.ACTIVE,
    ) -> RuleSpec:
        """
        Validate and persist a rule with its lines.

        Raises:
            InvalidRuleError: If the definition cannot post.
        """
        category, action = self._validate(name, category, triggering_action, lines)
        if party_type is not None:
            try:
                party_type = PartyType(party_type)
            except ValueError:
                raise InvalidRuleError(name, f"unknown party type {party_type!r}") from None

        rule = AccountingRule(
            organization_id=organization_id,
            name=name.strip(),
            transaction_category=category.value,
            transaction_reference=transaction_reference or category.value,
            transaction_type=transaction_type,
            triggering_action=action.value,
            division_id=division_id,
            party_type=party_type.value if party_type else None,
            status=RuleStatus(status).value,
            created_by_id=actor_id,
        )
        for line in lines:
            rule.lines.append(
                AccountingRuleLine(
                    line_number=line.line_number,
                    debit_account_code=line.debit_account_code,
                    credit_account_code=line.credit_account_code,
                    amount_source=line.amount_source,
                    track_subledger=line.track_subledger,
                    subledger_side=(
                        LineSide(line.subledger_side).value if line.subledger_side else None
                    ),
                    created_by_id=actor_id,
                )
            )
        self.session.add(rule)
        self.session.flush()

        logger.info(
            "rule_created",
            extra={
                "rule_id": str(rule.id),
                "rule_name": rule.name,
                "category": category.value,
                "triggering_action": action.value,
                "line_count": len(lines),
            },
        )
        return RuleSpec.from_model(rule)

    def set_status(self, rule_id: UUID, status: RuleStatus, actor_id: UUID) -> RuleSpec:
        rule = self.session.get(AccountingRule, rule_id)
        if rule is None:
            raise InvalidRuleError(str(rule_id), "rule not found")
        rule.status = RuleStatus(status).value
        rule.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "rule_status_changed",
            extra={"rule_id": str(rule_id), "status": rule.status},
        )
        return RuleSpec.from_model(rule)

    def list_rules(
        self,
        organization_id: UUID,
        category: TransactionCategory | None = None,
        active_only: bool = False,
    ) -> tuple[RuleSpec, ...]:
        stmt = select(AccountingRule).where(AccountingRule.organization_id == organization_id)
        if category is not None:
            stmt = stmt.where(
                AccountingRule.transaction_category == TransactionCategory(category).value
            )
        if active_only:
            stmt = stmt.where(AccountingRule.status == RuleStatus.ACTIVE.value)
        stmt = stmt.order_by(AccountingRule.name, AccountingRule.id)
        specs: list[RuleSpec] = []
        for rule in self.session.scalars(stmt):
            try:
                specs.append(RuleSpec.from_model(rule))
            except ValueError as exc:
                # Rows written outside create_rule may hold values no enum accepts
                logger.warning(
                    "rule_unreadable",
                    extra={"rule_id": str(rule.id), "rule_name": rule.name, "error": str(exc)},
                )
        return tuple(specs)

    def rules_for_organization(
        self,
        organization_id: UUID,
        category: TransactionCategory | None = None,
    ) -> tuple[RuleSpec, ...]:
        return self.list_rules(organization_id, category)

    @staticmethod
    def _validate(
        name: str,
        category: TransactionCategory | str,
        triggering_action: TriggeringAction | str,
        lines: Sequence[RuleLineSpec],
    ) -> tuple[TransactionCategory, TriggeringAction]:
        if not name or not name.strip():
            raise InvalidRuleError(str(name), "name is required")
        try:
            category = TransactionCategory(category)
        except ValueError:
            raise InvalidRuleError(name, f"unknown category {category!r}") from None
        try:
            action = TriggeringAction.from_label(triggering_action)
        except UnknownTriggeringActionError as exc:
            raise InvalidRuleError(name, str(exc)) from exc
        if action.trigger[0] != category:
            raise InvalidRuleError(
                name, f"action {action.value!r} does not belong to category {category.value}"
            )
        if not lines:
            raise InvalidRuleError(name, "at least one line is required")

        seen: set[int] = set()
        for line in lines:
            if line.line_number in seen:
                raise InvalidRuleError(name, f"duplicate line number {line.line_number}")
            seen.add(line.line_number)
            if not line.debit_account_code and not line.credit_account_code:
                raise InvalidRuleError(
                    name, f"line {line.line_number} has neither debit nor credit account"
                )
            try:
                AmountSource.from_label(line.amount_source)
            except UnknownAmountSourceError as exc:
                raise InvalidRuleError(name, f"line {line.line_number}: {exc}") from exc
            if line.subledger_side is not None:
                try:
                    side = LineSide(line.subledger_side)
                except ValueError:
                    raise InvalidRuleError(
                        name, f"line {line.line_number}: bad subledger side"
                    ) from None
                account = (
                    line.debit_account_code if side == LineSide.DEBIT else line.credit_account_code
                )
                if not account:
                    raise InvalidRuleError(
                        name,
                        f"line {line.line_number}: subledger side {side.value} has no account",
                    )
        return category, action
