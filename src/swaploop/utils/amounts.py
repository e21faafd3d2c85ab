"""Conversions between human-readable token amounts and smallest units.

Amounts are handled as Decimal or str end to end; nothing here goes
through float or a rounding Decimal context.
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Union

Amount = Union[Decimal, str, int]

_FRACTION_DIGITS = re.compile(r"^\d*")
_FIXED_POINT = re.compile(r"^\d+(\.\d*)?$")


def normalize_decimal_string(value: Amount, decimals: int) -> str:
    """Normalize an amount to a fixed-point string with at most `decimals` places.

    Scientific notation is expanded first. Fractional digits beyond the
    token's precision are truncated, never rounded, so the resulting amount
    can never exceed the balance it was read from.
    """
    text = str(value).strip()

    if "e" in text.lower():
        try:
            expanded = Decimal(text)
        except InvalidOperation as e:
            raise ValueError(f"Invalid numeric value: {value}") from e
        if not expanded.is_finite():
            raise ValueError(f"Invalid numeric value: {value}")
        text = format(expanded, "f")

    if "." not in text:
        return text

    int_part, frac_raw = text.split(".", 1)
    int_part = int_part or "0"
    if decimals <= 0:
        return int_part

    frac_part = _FRACTION_DIGITS.match(frac_raw).group(0)
    if not frac_part:
        return int_part
    return f"{int_part}.{frac_part[:decimals]}"


def to_units(amount_human: Amount, decimals: int) -> int:
    """Convert a human amount to an integer number of smallest units."""
    safe = normalize_decimal_string(amount_human, decimals)
    if not _FIXED_POINT.match(safe):
        raise ValueError(f"Invalid amount: {amount_human}")

    int_part, _, frac_part = safe.partition(".")
    return int(int_part + frac_part.ljust(decimals, "0"))


def from_units(amount_units: int, decimals: int) -> Decimal:
    """Convert smallest units to an exact human Decimal."""
    return Decimal(f"{int(amount_units)}e-{decimals}")
