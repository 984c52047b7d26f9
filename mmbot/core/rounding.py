"""
Decimal helpers for price/size arithmetic.

Exchange precision rules belong to the gateway; these only cover the
engine's own step quantization and tolerant parsing.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_DOWN
from typing import Any


def to_decimal(value: Any) -> Decimal:
    """Convert via str() so floats keep their printed value (0.1 -> Decimal('0.1'))."""
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"not a decimal: {value!r}") from exc


def quantize_step(value: Decimal, step: Decimal) -> Decimal:
    """Round down to a multiple of step."""
    if step <= 0:
        return value
    return (value / step).to_integral_value(rounding=ROUND_DOWN) * step


def quantize_places(value: Decimal, places: int) -> Decimal:
    """Round down to a fixed number of decimal places."""
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_DOWN)
