"""USD/CNY conversion and money formatting."""

from __future__ import annotations

import math

from .models import DEFAULT_EXCHANGE_RATE, Currency

_SYMBOLS = ("$", "¥", "￥")


def convert(
    amount: float | None,
    from_currency: Currency | str,
    to_currency: Currency | str,
    rate: float | None = None,
) -> float:
    """Convert an amount between USD and CNY.

    Args:
        amount: Original amount; ``None`` converts to 0.
        from_currency: Source currency code.
        to_currency: Target currency code.
        rate: 1 USD = ``rate`` CNY. Defaults to ``DEFAULT_EXCHANGE_RATE``.

    Returns:
        The converted amount. Pairs outside USD/CNY and non-positive rates
        return the amount unchanged.
    """
    if amount is None:
        return 0.0
    if from_currency == to_currency:
        return amount

    current_rate = DEFAULT_EXCHANGE_RATE if rate is None else rate
    if current_rate <= 0:
        return amount

    if from_currency == Currency.USD and to_currency == Currency.CNY:
        return amount * current_rate
    if from_currency == Currency.CNY and to_currency == Currency.USD:
        return amount / current_rate
    return amount


def to_usd(amount: float | None, currency: Currency | str, rate: float | None = None) -> float:
    """Normalized (USD) price used for store-side ordering."""
    return convert(amount, currency, Currency.USD, rate)


def format_amount(amount: float, currency_code: Currency | str) -> str:
    """Format as symbol + two decimals, e.g. ``$100.00`` or ``¥700.00``."""
    try:
        symbol = Currency(currency_code).symbol
    except ValueError:
        symbol = "$"
    return f"{symbol}{amount:.2f}"


def parse_amount(text: str | None) -> float | None:
    """Parse a user-entered price string.

    Accepts a leading currency symbol and thousands separators. Anything
    else that is not a finite number yields ``None``.
    """
    if text is None:
        return None
    s = text.strip()
    for symbol in _SYMBOLS:
        if s.startswith(symbol):
            s = s[len(symbol):].strip()
            break
    s = s.replace(",", "")
    if not s:
        return None
    try:
        value = float(s)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return value
