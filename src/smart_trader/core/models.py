"""Core value helpers shared across the smart trader.

Money and probabilities are ``Decimal`` everywhere; these constants and
helpers keep rounding rules in one place.
"""

from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal
from enum import Enum

ZERO = Decimal(0)
ONE = Decimal(1)
CENT = Decimal("0.01")


class BetSide(Enum):
    """Direction of an advisory recommendation on a binary market."""

    YES = "YES"
    NO = "NO"
    SKIP = "SKIP"

    @property
    def outcome_index(self) -> int:
        """Return the outcome index bought for this side (0 for YES, 1 for NO)."""
        return 1 if self is BetSide.NO else 0


def floor_cents(value: Decimal) -> Decimal:
    """Round a dollar amount down to whole cents.

    Args:
        value: Amount in USD.

    Returns:
        The amount truncated to two decimal places.

    """
    return value.quantize(CENT, rounding=ROUND_DOWN)


def round_cents(value: Decimal) -> Decimal:
    """Round a dollar amount to the nearest cent, half up."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_decimal(value: object, default: Decimal = ZERO) -> Decimal:
    """Convert a loosely typed value to ``Decimal``.

    Floats go through ``str`` so ``0.1`` stays ``Decimal("0.1")``.
    Unparsable or empty values return ``default``.

    Args:
        value: String, int, float, Decimal or None.
        default: Value returned when conversion fails.

    Returns:
        The converted decimal.

    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, Decimal):
        return value
    text = str(value).strip()
    if not text:
        return default
    try:
        result = Decimal(text)
    except ArithmeticError:
        return default
    if not result.is_finite():
        return default
    return result
