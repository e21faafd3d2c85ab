"""Utility modules for swaploop."""

from swaploop.utils.amounts import from_units, normalize_decimal_string, to_units

__all__ = ["from_units", "normalize_decimal_string", "to_units"]
