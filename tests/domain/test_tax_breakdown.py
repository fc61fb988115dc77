"""
Tax breakdown calculator tests.

Tests cover:
- Same-jurisdiction split (CGST/SGST halves) and cross-jurisdiction IGST
- Missing and blank jurisdiction codes
- Grouping by percentage, zero-rate exclusion, ascending order
- Component sum invariant (property-based)
"""

from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from posting_engine.db.types import ZERO
from posting_engine.domain.dtos import TaxableLine
from posting_engine.domain.tax_breakdown import calculate_tax_breakdown, is_same_jurisdiction

REFERENCE_LINES = (
    TaxableLine(Decimal("1000"), Decimal("18")),
    TaxableLine(Decimal("500"), Decimal("18")),
)


class TestJurisdictionRegimes:

    def test_same_jurisdiction_splits_into_halves(self):
        rows = calculate_tax_breakdown(REFERENCE_LINES, "27", "27")

        assert len(rows) == 1
        row = rows[0]
        assert row.gst_percentage == Decimal("18")
        assert row.taxable_amount == Decimal("1500")
        assert row.cgst_percentage == Decimal("9")
        assert row.sgst_percentage == Decimal("9")
        assert row.cgst_amount == Decimal("135")
        assert row.sgst_amount == Decimal("135")
        assert row.igst_percentage == ZERO
        assert row.igst_amount == ZERO
        assert row.total_gst_amount == Decimal("270")
        assert row.is_same_jurisdiction

    def test_cross_jurisdiction_charges_igst(self):
        rows = calculate_tax_breakdown(REFERENCE_LINES, "27", "29")

        assert len(rows) == 1
        row = rows[0]
        assert row.cgst_amount == ZERO
        assert row.sgst_amount == ZERO
        assert row.igst_percentage == Decimal("18")
        assert row.igst_amount == Decimal("270")
        assert row.total_gst_amount == Decimal("270")
        assert not row.is_same_jurisdiction

    @pytest.mark.parametrize(
        "origin, destination",
        [
            ("27", None),
            (None, "27"),
            (None, None),
            ("27", ""),
            ("   ", "   "),
        ],
    )
    def test_missing_code_is_cross_jurisdiction(self, origin, destination):
        rows = calculate_tax_breakdown(REFERENCE_LINES, origin, destination)

        assert rows[0].igst_amount == Decimal("270")
        assert rows[0].cgst_amount == ZERO

    def test_codes_compared_after_strip(self):
        assert is_same_jurisdiction(" 27 ", "27")
        rows = calculate_tax_breakdown(REFERENCE_LINES, " 27", "27 ")
        assert rows[0].cgst_amount == Decimal("135")


class TestGrouping:

    def test_rows_ordered_by_ascending_percentage(self):
        lines = [
            TaxableLine(Decimal("100"), Decimal("18")),
            TaxableLine(Decimal("200"), Decimal("5")),
            TaxableLine(Decimal("300"), Decimal("12")),
            TaxableLine(Decimal("50"), Decimal("5")),
        ]

        rows = calculate_tax_breakdown(lines, "27", "29")

        assert [r.gst_percentage for r in rows] == [Decimal("5"), Decimal("12"), Decimal("18")]
        five = rows[0]
        assert five.taxable_amount == Decimal("250")
        assert five.total_gst_amount == Decimal("12.5")

    def test_zero_rate_lines_produce_no_row(self):
        lines = [
            TaxableLine(Decimal("400"), Decimal("0")),
            TaxableLine(Decimal("100"), Decimal("12")),
        ]

        rows = calculate_tax_breakdown(lines, "27", "27")

        assert [r.gst_percentage for r in rows] == [Decimal("12")]
        assert rows[0].taxable_amount == Decimal("100")

    def test_only_zero_rate_lines_produce_empty_breakdown(self):
        assert calculate_tax_breakdown([TaxableLine(Decimal("400"), ZERO)], "27", "27") == ()

    def test_no_lines_produce_empty_breakdown(self):
        assert calculate_tax_breakdown([], "27", "27") == ()

    def test_equal_rates_with_different_scale_share_a_row(self):
        lines = [
            TaxableLine(Decimal("100"), Decimal("18")),
            TaxableLine(Decimal("100"), Decimal("18.00")),
        ]

        rows = calculate_tax_breakdown(lines, "27", "27")

        assert len(rows) == 1
        assert rows[0].taxable_amount == Decimal("200")
        assert rows[0].total_gst_amount == Decimal("36")

    def test_no_rounding_applied(self):
        rows = calculate_tax_breakdown([TaxableLine(Decimal("10.01"), Decimal("5"))], "27", "27")

        row = rows[0]
        assert row.total_gst_amount == Decimal("0.5005")
        assert row.cgst_amount + row.sgst_amount == Decimal("0.5005")

    def test_float_amounts_rejected(self):
        with pytest.raises(TypeError):
            TaxableLine(100.0, Decimal("18"))


# =========================================================================
# Property-based invariants
# =========================================================================

_amounts = st.decimals(
    min_value=Decimal("0"),
    max_value=Decimal("1000000"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)
_rates = st.sampled_from(
    [Decimal("0"), Decimal("0.25"), Decimal("3"), Decimal("5"), Decimal("12"),
     Decimal("18"), Decimal("28")]
)
_lines = st.lists(
    st.builds(TaxableLine, taxable_amount=_amounts, gst_percentage=_rates),
    max_size=20,
)


class TestBreakdownProperties:

    @given(lines=_lines, same=st.booleans())
    @settings(max_examples=200)
    def test_components_sum_to_total(self, lines, same):
        destination = "27" if same else "29"

        for row in calculate_tax_breakdown(lines, "27", destination):
            assert row.cgst_amount + row.sgst_amount + row.igst_amount == row.total_gst_amount

    @given(lines=_lines, same=st.booleans())
    @settings(max_examples=200)
    def test_regimes_are_exclusive(self, lines, same):
        destination = "27" if same else "29"

        for row in calculate_tax_breakdown(lines, "27", destination):
            if same:
                assert row.igst_percentage == ZERO and row.igst_amount == ZERO
                assert row.cgst_percentage == row.gst_percentage / 2
            else:
                assert row.cgst_percentage == ZERO and row.sgst_percentage == ZERO
                assert row.igst_percentage == row.gst_percentage

    @given(lines=_lines)
    @settings(max_examples=200)
    def test_total_tax_matches_line_tax(self, lines):
        expected = sum(
            (line.taxable_amount * line.gst_percentage / 100 for line in lines),
            ZERO,
        )

        rows = calculate_tax_breakdown(lines, "27", "27")

        assert sum((r.total_gst_amount for r in rows), ZERO) == expected
        assert all(r.gst_percentage != ZERO for r in rows)
