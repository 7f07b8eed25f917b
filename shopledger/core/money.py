"""Decimal helpers.

All amounts are carried as ``Decimal`` at full precision; ``round_money`` is
the only place values are quantized, and it is called at presentation
boundaries and where a formula explicitly rounds (fee breakdown).
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

ZERO = Decimal("0")
CENT = Decimal("0.01")


def to_decimal(value: object, default: Decimal = ZERO) -> Decimal:
    """Coerce a stored/numeric value to Decimal (None -> default).

    Floats go through ``str`` so that 0.85 becomes Decimal("0.85"), not the
    binary expansion.
    """
    if value is None:
        return default
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    try:
        return Decimal(value)  # type: ignore[arg-type]
    except (InvalidOperation, TypeError, ValueError):
        return default


def round_money(value: Decimal, places: int = 2) -> Decimal:
    """Round half-up to ``places`` decimal places."""
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)
