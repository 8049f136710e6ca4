"""Decimal helpers shared by the rate, yield and tax layers.

CRITICAL: All monetary values and rates use Decimal. Never use float for
balances, rates or taxes. Rounding is half-up, matching how amounts are
shown to users.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")

# Largest monetary input accepted from callers (one trillion)
MAX_AMOUNT = Decimal("1000000000000")

_CENTS = Decimal("0.01")
_MICROS = Decimal("0.000001")


def round2(value: Decimal) -> Decimal:
    """Round to 2 decimal places (monetary amounts)."""
    return value.quantize(_CENTS, rounding=ROUND_HALF_UP)


def round6(value: Decimal) -> Decimal:
    """Round to 6 decimal places (rate percentages)."""
    return value.quantize(_MICROS, rounding=ROUND_HALF_UP)


def to_decimal(value: object, default: Decimal | None = None) -> Decimal | None:
    """Parse numbers and numeric strings (comma or dot separator) into Decimal.

    Returns ``default`` for None, empty strings and anything non-numeric,
    including NaN and infinities.
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, Decimal):
        parsed = value
    else:
        text = str(value).strip().replace(",", ".")
        if not text:
            return default
        try:
            parsed = Decimal(text)
        except InvalidOperation:
            return default
    if not parsed.is_finite():
        return default
    return parsed
