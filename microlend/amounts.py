"""
amounts.py - Fixed-Point Amount Text

Loan amounts are integers in the asset's smallest unit. With the default
7 decimal places, 1 whole unit = 10_000_000 smallest units.

    format_amount(12_345_678)  -> "1.2345678"
    parse_amount("1.2345678")  -> 12_345_678
    parse_amount("0.00000001") -> 0          # extra precision truncated
"""

from __future__ import annotations
from decimal import Decimal, InvalidOperation, ROUND_DOWN, localcontext
from typing import Union


AMOUNT_DECIMALS = 7


def format_amount(amount: int, decimals: int = AMOUNT_DECIMALS) -> str:
    """
    Render an integer amount as fixed-point text with exactly `decimals` places.

    Raises:
        ValueError: If amount is not an int or decimals is negative
    """
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError(f"amount must be int, got {type(amount).__name__}")
    if decimals < 0:
        raise ValueError(f"decimals must be non-negative, got {decimals}")

    sign = "-" if amount < 0 else ""
    whole, fraction = divmod(abs(amount), 10 ** decimals)
    if decimals == 0:
        return f"{sign}{whole}"
    return f"{sign}{whole}.{fraction:0{decimals}d}"


def parse_amount(text: Union[str, int, Decimal], decimals: int = AMOUNT_DECIMALS) -> int:
    """
    Convert fixed-point text to an integer amount, truncating toward zero.

    Raises:
        ValueError: If text is malformed or not finite
    """
    if decimals < 0:
        raise ValueError(f"decimals must be non-negative, got {decimals}")
    if isinstance(text, str):
        text = text.strip()
    try:
        value = Decimal(text)
    except (InvalidOperation, TypeError, ValueError):
        raise ValueError(f"invalid amount: {text!r}")
    if not value.is_finite():
        raise ValueError(f"amount must be finite, got {text!r}")

    # Wide enough for the full i128 range
    with localcontext() as ctx:
        ctx.prec = 80
        scaled = value.scaleb(decimals).to_integral_value(rounding=ROUND_DOWN)
    return int(scaled)
