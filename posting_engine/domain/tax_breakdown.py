"""
TaxBreakdownCalculator -- GST split per tax percentage.

Responsibility:
    Groups a document's taxable lines by GST percentage and splits each
    group's tax into the same-jurisdiction pair (CGST + SGST, each at half
    the rate) or the cross-jurisdiction single charge (IGST, full rate).

Architecture position:
    Engine > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - cgst + sgst + igst == total for every row.  The SGST half is computed
      as ``total - cgst`` so the identity holds exactly without rounding.
    - A row is same-jurisdiction XOR cross-jurisdiction.
    - Groups whose percentage is zero produce no row.

Jurisdiction rule:
    Codes are compared after stripping whitespace.  Equal codes mean
    same-jurisdiction.  A missing or blank code on either side cannot prove
    the supply is intra-state, so it is treated as cross-jurisdiction.
"""

from collections.abc import Iterable
from decimal import Decimal

from posting_engine.db.types import ZERO
from posting_engine.domain.dtos import TaxableLine, TaxBreakdown

HUNDRED = Decimal("100")
TWO = Decimal("2")


def _normalize_code(code: str | None) -> str | None:
    if code is None:
        return None
    stripped = str(code).strip()
    return stripped or None


def is_same_jurisdiction(origin_code: str | None, destination_code: str | None) -> bool:
    origin = _normalize_code(origin_code)
    destination = _normalize_code(destination_code)
    return origin is not None and origin == destination


def calculate_tax_breakdown(
    lines: Iterable[TaxableLine],
    origin_code: str | None,
    destination_code: str | None,
) -> tuple[TaxBreakdown, ...]:
    """
    Compute one breakdown row per distinct non-zero GST percentage.

    Per-line tax is ``taxable * pct / 100``; a group's taxable amount and
    tax are the sums over its lines.  No rounding is applied here.

    Returns:
        Rows in ascending percentage order.
    """
    taxable_by_pct: dict[Decimal, Decimal] = {}
    tax_by_pct: dict[Decimal, Decimal] = {}

    for line in lines:
        # 18 and 18.00 hash alike, so they share a group
        pct = line.gst_percentage
        if pct == ZERO:
            continue
        taxable_by_pct[pct] = taxable_by_pct.get(pct, ZERO) + line.taxable_amount
        tax_by_pct[pct] = tax_by_pct.get(pct, ZERO) + line.taxable_amount * pct / HUNDRED

    same = is_same_jurisdiction(origin_code, destination_code)

    rows = []
    for pct in sorted(taxable_by_pct):
        total = tax_by_pct[pct]
        if same:
            cgst = total / TWO
            rows.append(
                TaxBreakdown(
                    gst_percentage=pct,
                    taxable_amount=taxable_by_pct[pct],
                    cgst_percentage=pct / TWO,
                    cgst_amount=cgst,
                    sgst_percentage=pct / TWO,
                    sgst_amount=total - cgst,
                    igst_percentage=ZERO,
                    igst_amount=ZERO,
                    total_gst_amount=total,
                )
            )
        else:
            rows.append(
                TaxBreakdown(
                    gst_percentage=pct,
                    taxable_amount=taxable_by_pct[pct],
                    cgst_percentage=ZERO,
                    cgst_amount=ZERO,
                    sgst_percentage=ZERO,
                    sgst_amount=ZERO,
                    igst_percentage=pct,
                    igst_amount=total,
                    total_gst_amount=total,
                )
            )

    return tuple(rows)
