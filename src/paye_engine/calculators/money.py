"""Monetary helpers.

Rounding:
- ZAR to 2 decimals (cents), ROUND_HALF_UP
- Intermediate steps are never rounded; round once on the way out
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Any

ZERO = Decimal("0")
CENTS = Decimal("0.01")


def to_decimal(value: Any) -> Decimal:
    """Coerce ints, strings and floats to Decimal without binary float noise."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(amount: Decimal) -> Decimal:
    """Round amount to the currency's minor unit."""
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def canonical_decimal(amount: Decimal) -> str:
    """Stable string form, so that 0.18 and 0.180 hash identically."""
    normalized = amount.normalize()
    if normalized == 0:
        return "0"
    return format(normalized, "f")
