"""Fixed-point helpers for quantity, cost and margin arithmetic.

Every stock quantity and monetary value in the ledger goes through these
helpers before it is persisted. Binary floats are rejected outright.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional, Union

from ordaro.core.config import settings

DecimalLike = Union[Decimal, int, str]

ZERO = Decimal("0")


def to_decimal(value: DecimalLike) -> Decimal:
    """Convert an int/str/Decimal to Decimal. Floats are not accepted."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(f"Refusing to build a ledger decimal from {type(value).__name__}")
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"Invalid decimal value: {value!r}") from e


def _exponent(places: int) -> Decimal:
    return Decimal(1).scaleb(-places)


def quantize_qty(value: DecimalLike) -> Decimal:
    return to_decimal(value).quantize(_exponent(settings.quantity_scale), rounding=ROUND_HALF_UP)


def quantize_cost(value: DecimalLike) -> Decimal:
    return to_decimal(value).quantize(_exponent(settings.cost_scale), rounding=ROUND_HALF_UP)


def quantize_margin(value: DecimalLike) -> Decimal:
    return to_decimal(value).quantize(_exponent(settings.margin_scale), rounding=ROUND_HALF_UP)


def optional_cost(value: Optional[DecimalLike]) -> Optional[Decimal]:
    """Quantize a nullable cost, keeping None as None."""
    if value is None:
        return None
    return quantize_cost(value)
