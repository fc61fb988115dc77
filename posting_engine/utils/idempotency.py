"""
Idempotency key helpers.

Two keys guard against double posting:

    document key  org:document:action        -- one PostingOutcome per event
    journal key   org:document:action:rule   -- one journal per rule per event

Keys embed the enum value of the action, so labels differing only in case or
surrounding whitespace share a key.
"""

from uuid import UUID

from posting_engine.domain.types import TriggeringAction


def document_idempotency_key(
    organization_id: UUID,
    document_id: UUID,
    action: TriggeringAction | str,
) -> str:
    action = TriggeringAction.from_label(action)
    return f"{organization_id}:{document_id}:{action.value}"


def journal_idempotency_key(
    organization_id: UUID,
    document_id: UUID,
    action: TriggeringAction | str,
    rule_id: UUID,
) -> str:
    return f"{document_idempotency_key(organization_id, document_id, action)}:{rule_id}"
