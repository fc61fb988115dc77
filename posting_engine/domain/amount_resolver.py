"""
AmountResolver -- map a rule line's amount source to a document amount.

The mapping is exhaustive over AmountSource.  An unrecognized label raises
UnknownAmountSourceError rather than resolving to zero; the journal builder
catches it and skips only that rule line.
"""

from collections.abc import Callable
from decimal import Decimal

from posting_engine.domain.dtos import DocumentTotals
from posting_engine.domain.types import AmountSource

_RESOLVERS: dict[AmountSource, Callable[[DocumentTotals], Decimal]] = {
    AmountSource.ITEM_VALUE: lambda totals: totals.item_value,
    AmountSource.TAX_VALUE: lambda totals: totals.tax_value,
    AmountSource.DOCUMENT_VALUE: lambda totals: totals.document_value,
    AmountSource.CGST_TOTAL: lambda totals: totals.cgst_total,
    AmountSource.SGST_TOTAL: lambda totals: totals.sgst_total,
    AmountSource.IGST_TOTAL: lambda totals: totals.igst_total,
}


def resolve_amount(totals: DocumentTotals, source: AmountSource | str) -> Decimal:
    """
    Resolve ``source`` against the document's computed totals.

    Raises:
        UnknownAmountSourceError: If ``source`` is not a known label.
    """
    return _RESOLVERS[AmountSource.from_label(source)](totals)
