#!/usr/bin/env python3
"""
Decimal Precision Utilities for STX Amounts
Enforces consistent Decimal usage for every STX <-> microSTX conversion
"""

import logging
from decimal import Decimal, ROUND_DOWN, InvalidOperation
from typing import Union

logger = logging.getLogger(__name__)

MICRO_STX_PER_STX = 1_000_000
STX_PRECISION = Decimal("0.000001")

# 1 billion STX in microSTX
MAX_AMOUNT_MICRO_STX = 1_000_000_000 * MICRO_STX_PER_STX


def to_decimal(value: Union[str, int, float, Decimal]) -> Decimal:
    """Convert a numeric value to Decimal via str() to avoid float artifacts"""
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Not a numeric amount: {value!r}") from e


def stx_to_micro_stx(stx: Union[str, int, float, Decimal]) -> int:
    """Convert STX to integer microSTX (truncated at 6 decimals, never more than entered)"""
    amount = to_decimal(stx).quantize(STX_PRECISION, rounding=ROUND_DOWN)
    return int(amount * MICRO_STX_PER_STX)


def micro_stx_to_stx(micro_stx: Union[int, str, Decimal]) -> Decimal:
    """Convert microSTX to STX; exact for integer input"""
    return (to_decimal(micro_stx) / MICRO_STX_PER_STX).quantize(STX_PRECISION)


def format_stx(micro_stx: int) -> str:
    """Format microSTX for display, e.g. 5000000 -> '5.000000 STX'"""
    return f"{micro_stx_to_stx(micro_stx):.6f} STX"


def format_stx_amount(amount: Decimal) -> str:
    """Compact display of a user-entered STX amount, e.g. Decimal('5') -> '5'"""
    normalized = to_decimal(amount).normalize()
    text = format(normalized, "f")
    return text
