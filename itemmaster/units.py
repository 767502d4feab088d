"""Quantity formatting and lenient quantity parsing."""

from __future__ import annotations

import math

# Common fractions typed into the quantity field
_FRACTION_MAP: dict[str, float] = {
    "1/2": 0.5,
    "1/3": 1 / 3,
    "2/3": 2 / 3,
    "1/4": 0.25,
    "3/4": 0.75,
    "半": 0.5,
}


def format_quantity(quantity: float) -> str:
    """Format a quantity with at most two decimals.

    Integral values drop the decimal point entirely ("3", not "3.00"),
    and no grouping separators are used ("12000", not "12,000").
    """
    text = f"{quantity:.2f}".rstrip("0").rstrip(".")
    if text == "-0":
        return "0"
    return text


def parse_quantity(text: str | None) -> float | None:
    """Parse a quantity string such as "2", "0.5", "1/2" or "半".

    Returns:
        The non-negative amount, or ``None`` if the text is not a number.
    """
    if text is None:
        return None
    s = text.strip()
    if not s:
        return None

    if s in _FRACTION_MAP:
        return _FRACTION_MAP[s]

    if "/" in s:
        parts = s.split("/")
        if len(parts) != 2:
            return None
        try:
            value = float(parts[0]) / float(parts[1])
        except (ValueError, ZeroDivisionError):
            return None
    else:
        try:
            value = float(s)
        except ValueError:
            return None

    if not math.isfinite(value) or value < 0:
        return None
    return value
