"""
Document lifecycles -- which status changes are legal, and which post.

Each document kind has its own state machine over DocumentStatus.  ``None``
as the previous status means the document is being created.

    Invoice:  (new) -> Draft -> Awaiting Approval -> Approved | Rejected
              (new) -> Created -> Approved | Rejected
    Payment:  (new) -> Created -> Approved | Rejected
    PO:       (new) -> Created -> Received

Entering a status that has a canonical TriggeringAction starts posting;
every other legal change is a no-op for the ledger.
"""

from posting_engine.domain.types import DocumentStatus, TransactionCategory, TriggeringAction
from posting_engine.exceptions import InvalidDocumentTransitionError

_S = DocumentStatus

DOCUMENT_TRANSITIONS: dict[
    TransactionCategory, dict[DocumentStatus | None, frozenset[DocumentStatus]]
] = {
    TransactionCategory.INVOICE: {
        None: frozenset({_S.DRAFT, _S.CREATED}),
        _S.DRAFT: frozenset({_S.AWAITING_APPROVAL}),
        _S.CREATED: frozenset({_S.APPROVED, _S.REJECTED}),
        _S.AWAITING_APPROVAL: frozenset({_S.APPROVED, _S.REJECTED}),
        _S.APPROVED: frozenset(),
        _S.REJECTED: frozenset(),
    },
    TransactionCategory.PAYMENT: {
        None: frozenset({_S.CREATED}),
        _S.CREATED: frozenset({_S.APPROVED, _S.REJECTED}),
        _S.APPROVED: frozenset(),
        _S.REJECTED: frozenset(),
    },
    TransactionCategory.PURCHASE_ORDER: {
        None: frozenset({_S.CREATED}),
        _S.CREATED: frozenset({_S.RECEIVED}),
        _S.RECEIVED: frozenset(),
    },
}


def validate_transition(
    category: TransactionCategory,
    from_status: DocumentStatus | None,
    to_status: DocumentStatus,
) -> None:
    """
    Raises:
        InvalidDocumentTransitionError: If the change is not in the lifecycle.
    """
    category = TransactionCategory(category)
    from_status = DocumentStatus(from_status) if from_status is not None else None
    to_status = DocumentStatus(to_status)

    allowed = DOCUMENT_TRANSITIONS[category].get(from_status, frozenset())
    if to_status not in allowed:
        raise InvalidDocumentTransitionError(
            category.value,
            from_status.value if from_status is not None else None,
            to_status.value,
        )


def triggering_action_for(
    category: TransactionCategory,
    to_status: DocumentStatus,
) -> TriggeringAction | None:
    """Action fired by entering ``to_status``, or None when nothing posts."""
    return TriggeringAction.for_transition(
        TransactionCategory(category), DocumentStatus(to_status)
    )
