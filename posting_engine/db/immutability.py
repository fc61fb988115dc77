"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

Posted journals and the subledger entries derived from them are the
financial record.  They cannot be edited, only reversed (journals) or left
alone (subledger entries).  These listeners catch modifications made
through SQLAlchemy before any SQL reaches the database.

    session.flush()
         |
         v
    [before_update event] --> _check_*_immutability() --> ImmutabilityViolationError
         |                                                        ^
         v                                                        |
    [before_delete event] --> _check_*_delete() -----------------+
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity           | When Immutable               | What may still change
-----------------|------------------------------|-----------------------------------
JournalHeader    | After status = Posted        | status Posted -> Reversed, reversed_at
JournalLine      | When parent is Posted        | subledger_entry_id, once (None -> id)
SubledgerEntry   | ALWAYS (from creation)       | nothing
TaxBreakdownRow  | ALWAYS (from creation)       | nothing

updated_at / updated_by_id are audit metadata and may change everywhere.

===============================================================================
USAGE
===============================================================================

Called once at startup, after the models are imported:

    from posting_engine.db.immutability import register_immutability_listeners
    register_immutability_listeners()

Tests that must deliberately violate the rules call
unregister_immutability_listeners() and register again afterwards.

===============================================================================
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from posting_engine.domain.types import JournalStatus
from posting_engine.exceptions import ImmutabilityViolationError
from posting_engine.logging_config import get_logger

logger = get_logger("db.immutability")

AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})

JOURNAL_HEADER_MUTABLE_AFTER_POST = AUDIT_FIELDS | {"status", "reversed_at"}

JOURNAL_LINE_MUTABLE_AFTER_POST = AUDIT_FIELDS | {"subledger_entry_id"}

_FINALIZED_JOURNAL_STATUSES = frozenset({
    JournalStatus.POSTED.value,
    JournalStatus.REVERSED.value,
})


def _blocked(entity_type: str, entity_id, operation: str, reason: str, field=None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            "field": field,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _changed_fields(target, allowed: frozenset[str]) -> list[str]:
    insp = inspect(target)
    return [
        attr.key
        for attr in insp.mapper.column_attrs
        if attr.key not in allowed and insp.attrs[attr.key].history.has_changes()
    ]


def _status_before_update(target) -> str:
    """Status as persisted before the pending flush."""
    history = get_history(target, "status")
    if history.deleted:
        return history.deleted[0]
    return target.status


def _check_journal_header_immutability(mapper, connection, target):
    """
    Block edits to a journal once it has been posted.

    Draft -> Posted is the posting itself and is allowed.  From Posted,
    only the Posted -> Reversed status flip (with reversed_at) is allowed.
    Reversed journals are frozen entirely.
    """
    previous = _status_before_update(target)

    if previous == JournalStatus.DRAFT.value:
        return

    if previous == JournalStatus.REVERSED.value:
        changed = _changed_fields(target, AUDIT_FIELDS)
        if changed:
            _blocked(
                "JournalHeader", target.id, "UPDATE",
                f"Cannot modify field '{changed[0]}' on reversed journal",
                field=changed[0],
            )
        return

    if target.status not in (JournalStatus.POSTED.value, JournalStatus.REVERSED.value):
        _blocked(
            "JournalHeader", target.id, "UPDATE",
            f"Posted journal cannot move to {target.status}",
            field="status",
        )

    changed = _changed_fields(target, JOURNAL_HEADER_MUTABLE_AFTER_POST)
    if changed:
        _blocked(
            "JournalHeader", target.id, "UPDATE",
            f"Cannot modify field '{changed[0]}' on posted journal",
            field=changed[0],
        )


def _check_journal_header_delete(mapper, connection, target):
    if target.status in _FINALIZED_JOURNAL_STATUSES:
        _blocked(
            "JournalHeader", target.id, "DELETE",
            "Posted journals cannot be deleted",
        )


def _check_journal_line_immutability(mapper, connection, target):
    """
    Block edits to lines of a posted journal.

    The subledger back-reference is linked after posting, so
    subledger_entry_id may be set once; every other field is frozen.
    """
    journal = target.journal
    if journal is None or _status_before_update(journal) not in _FINALIZED_JOURNAL_STATUSES:
        return

    changed = _changed_fields(target, JOURNAL_LINE_MUTABLE_AFTER_POST)
    if changed:
        _blocked(
            "JournalLine", target.id, "UPDATE",
            f"Cannot modify field '{changed[0]}' on a line of a posted journal",
            field=changed[0],
        )

    link_history = get_history(target, "subledger_entry_id")
    if link_history.deleted and link_history.deleted[0] is not None:
        _blocked(
            "JournalLine", target.id, "UPDATE",
            "Subledger link on a posted journal line is already set",
            field="subledger_entry_id",
        )


def _check_journal_line_delete(mapper, connection, target):
    journal = target.journal
    if journal is not None and journal.status in _FINALIZED_JOURNAL_STATUSES:
        _blocked(
            "JournalLine", target.id, "DELETE",
            "Lines of a posted journal cannot be deleted",
        )


def _check_subledger_entry_immutability(mapper, connection, target):
    changed = _changed_fields(target, AUDIT_FIELDS)
    if changed:
        _blocked(
            "SubledgerEntry", target.id, "UPDATE",
            f"Cannot modify field '{changed[0]}' on subledger entry",
            field=changed[0],
        )


def _check_subledger_entry_delete(mapper, connection, target):
    _blocked(
        "SubledgerEntry", target.id, "DELETE",
        "Subledger entries cannot be deleted",
    )


def _check_tax_breakdown_immutability(mapper, connection, target):
    changed = _changed_fields(target, AUDIT_FIELDS)
    if changed:
        _blocked(
            "TaxBreakdownRow", target.id, "UPDATE",
            f"Cannot modify field '{changed[0]}' on tax breakdown row",
            field=changed[0],
        )


def _listeners():
    from posting_engine.models.journal import JournalHeader, JournalLine
    from posting_engine.models.subledger import SubledgerEntry
    from posting_engine.models.tax_breakdown import TaxBreakdownRow

    return (
        (JournalHeader, "before_update", _check_journal_header_immutability),
        (JournalHeader, "before_delete", _check_journal_header_delete),
        (JournalLine, "before_update", _check_journal_line_immutability),
        (JournalLine, "before_delete", _check_journal_line_delete),
        (SubledgerEntry, "before_update", _check_subledger_entry_immutability),
        (SubledgerEntry, "before_delete", _check_subledger_entry_delete),
        (TaxBreakdownRow, "before_update", _check_tax_breakdown_immutability),
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Safe to call more than once.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that deliberately violate the rules.
    """
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
