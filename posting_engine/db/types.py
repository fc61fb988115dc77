"""
Module: posting_engine.db.types
Responsibility: Decimal coercion and the single sanctioned rounding
    function for monetary values.
Architecture position: Engine > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats anywhere.  Monetary amounts are Decimal with explicit precision.
    - round_money() is the ONLY rounding function applied to posted amounts.
"""

from decimal import ROUND_HALF_UP, Decimal

# Column precision: Numeric(38, 9)
MONEY_DECIMAL_PLACES = 9
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")


def to_decimal(value: Decimal | int | str | None) -> Decimal:
    """
    Coerce an input amount to Decimal.

    None becomes zero.  Floats are rejected: their binary representation
    would leak into posted amounts.

    Raises:
        TypeError: If value is a float.
    """
    if value is None:
        return ZERO
    if isinstance(value, float):
        raise TypeError(f"Monetary amounts must not be float: {value!r}")
    if isinstance(value, Decimal):
        return value
    return Decimal(value)


def round_money(
    value: Decimal,
    decimal_places: int = 2,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to specified decimal places.

    This is the ONLY sanctioned rounding function for posted amounts.
    """
    quantize_str = "0." + "0" * decimal_places if decimal_places > 0 else "1"
    return value.quantize(Decimal(quantize_str), rounding=rounding)
