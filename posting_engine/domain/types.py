"""
Domain vocabulary: transaction categories, triggering actions, amount
sources, and the status enums shared by models and services.

Pure module -- no I/O, no SQLAlchemy.
"""

from enum import Enum

from posting_engine.exceptions import UnknownAmountSourceError, UnknownTriggeringActionError


class TransactionCategory(str, Enum):
    """Business document family an accounting rule listens to."""

    INVOICE = "Invoice"
    PURCHASE_ORDER = "PO"
    PAYMENT = "Payment"


class DocumentStatus(str, Enum):
    """Business states of the documents that trigger postings."""

    DRAFT = "Draft"
    CREATED = "Created"
    AWAITING_APPROVAL = "Awaiting Approval"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    RECEIVED = "Received"


class TriggeringAction(str, Enum):
    """Lifecycle event a rule fires on, stored by its display label."""

    INVOICE_APPROVED = "Invoice Approved"
    PO_CREATED = "PO Created"
    PO_RECEIVED = "Purchase order receive"
    PAYMENT_CREATED = "Payment Created"
    PAYMENT_APPROVED = "Payment Approved"
    # Legacy label kept by older rules; fires with PAYMENT_APPROVED
    PAYMENT_PROCESSED = "Payment Processed"

    @property
    def trigger(self) -> tuple[TransactionCategory, DocumentStatus]:
        """The (category, entered status) pair this action fires on."""
        return ACTION_TRIGGERS[self]

    @classmethod
    def from_label(cls, label: "str | TriggeringAction") -> "TriggeringAction":
        if isinstance(label, cls):
            return label
        normalized = str(label).strip().lower()
        for action in cls:
            if action.value.lower() == normalized:
                return action
        raise UnknownTriggeringActionError(str(label))

    @classmethod
    def for_transition(
        cls, category: TransactionCategory, status: DocumentStatus
    ) -> "TriggeringAction | None":
        """Canonical action for a document entering ``status``, if any."""
        return CANONICAL_ACTIONS.get((category, status))


ACTION_TRIGGERS: dict[TriggeringAction, tuple[TransactionCategory, DocumentStatus]] = {
    TriggeringAction.INVOICE_APPROVED: (TransactionCategory.INVOICE, DocumentStatus.APPROVED),
    TriggeringAction.PO_CREATED: (TransactionCategory.PURCHASE_ORDER, DocumentStatus.CREATED),
    TriggeringAction.PO_RECEIVED: (TransactionCategory.PURCHASE_ORDER, DocumentStatus.RECEIVED),
    TriggeringAction.PAYMENT_CREATED: (TransactionCategory.PAYMENT, DocumentStatus.CREATED),
    TriggeringAction.PAYMENT_APPROVED: (TransactionCategory.PAYMENT, DocumentStatus.APPROVED),
    TriggeringAction.PAYMENT_PROCESSED: (TransactionCategory.PAYMENT, DocumentStatus.APPROVED),
}

CANONICAL_ACTIONS: dict[tuple[TransactionCategory, DocumentStatus], TriggeringAction] = {
    (TransactionCategory.INVOICE, DocumentStatus.APPROVED): TriggeringAction.INVOICE_APPROVED,
    (TransactionCategory.PURCHASE_ORDER, DocumentStatus.CREATED): TriggeringAction.PO_CREATED,
    (TransactionCategory.PURCHASE_ORDER, DocumentStatus.RECEIVED): TriggeringAction.PO_RECEIVED,
    (TransactionCategory.PAYMENT, DocumentStatus.CREATED): TriggeringAction.PAYMENT_CREATED,
    (TransactionCategory.PAYMENT, DocumentStatus.APPROVED): TriggeringAction.PAYMENT_APPROVED,
}


class AmountSource(str, Enum):
    """
    Closed set of quantities a rule line can post.

    The value is the canonical label persisted on rule lines.  Labels used
    by older rule forms are accepted through ``from_label``.
    """

    ITEM_VALUE = "Total item value"
    TAX_VALUE = "Total GST value"
    DOCUMENT_VALUE = "Total document value"
    CGST_TOTAL = "Total CGST"
    SGST_TOTAL = "Total SGST"
    IGST_TOTAL = "Total IGST"

    @classmethod
    def from_label(cls, label: "str | AmountSource") -> "AmountSource":
        """
        Parse a stored label.

        Raises:
            UnknownAmountSourceError: If the label names no known quantity.
        """
        if isinstance(label, cls):
            return label
        if label is None:
            raise UnknownAmountSourceError(str(label))
        normalized = " ".join(str(label).split()).lower()
        try:
            return _AMOUNT_SOURCE_ALIASES[normalized]
        except KeyError:
            raise UnknownAmountSourceError(str(label)) from None


_AMOUNT_SOURCE_ALIASES: dict[str, AmountSource] = {
    **{source.value.lower(): source for source in AmountSource},
    "item total price": AmountSource.ITEM_VALUE,
    "sum of line": AmountSource.ITEM_VALUE,
    "total item cost": AmountSource.ITEM_VALUE,
    "total tax value": AmountSource.TAX_VALUE,
    "total invoice value": AmountSource.DOCUMENT_VALUE,
    "total invoice amount": AmountSource.DOCUMENT_VALUE,
    "total po value": AmountSource.DOCUMENT_VALUE,
    "payment amount": AmountSource.DOCUMENT_VALUE,
    "payment value": AmountSource.DOCUMENT_VALUE,
    "total amount": AmountSource.DOCUMENT_VALUE,
    "amount": AmountSource.DOCUMENT_VALUE,
    "total po cgst": AmountSource.CGST_TOTAL,
    "total po sgst": AmountSource.SGST_TOTAL,
    "total po igst": AmountSource.IGST_TOTAL,
}


class RuleStatus(str, Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"


class PartyType(str, Enum):
    BILL_TO = "Bill To"
    REMIT_TO = "Remit To"


class JournalStatus(str, Enum):
    """Lifecycle status of a journal.

    Transitions are one-way: DRAFT -> POSTED -> REVERSED.
    """

    DRAFT = "Draft"
    POSTED = "Posted"
    REVERSED = "Reversed"


class LineSide(str, Enum):
    """Which leg of the entry a line or subledger entry sits on."""

    DEBIT = "debit"
    CREDIT = "credit"
