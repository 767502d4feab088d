"""User-editable display settings backed by SQLite."""

from __future__ import annotations

import logging
import math
import sqlite3
from pathlib import Path

from ..models import Currency, DisplaySettings
from .schema import ensure_schema

logger = logging.getLogger(__name__)

_CURRENCY_KEY = "display_currency"
_RATE_KEY = "usd_to_cny_rate"


class SettingsDB:
    """Persists the display currency and the USD→CNY exchange rate."""

    def __init__(self, db_path: str | Path = "~/.config/itemmaster/items.db") -> None:
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = ensure_schema(self._db_path)
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _get(self, key: str) -> str | None:
        row = self._get_conn().execute(
            "SELECT value FROM settings WHERE key = ?", (key,)
        ).fetchone()
        return row["value"] if row else None

    def _put(self, key: str, value: str) -> None:
        conn = self._get_conn()
        conn.execute(
            """INSERT INTO settings (key, value) VALUES (?, ?)
               ON CONFLICT(key) DO UPDATE SET value=excluded.value""",
            (key, value),
        )
        conn.commit()

    def set_display_currency(self, currency: Currency | str) -> Currency:
        """Store the display currency. Unknown codes raise ``ValueError``."""
        currency = Currency(currency)
        self._put(_CURRENCY_KEY, currency.value)
        logger.info("显示币种: %s", currency.value)
        return currency

    def set_exchange_rate(self, rate: float) -> float:
        """Store the USD→CNY rate.

        Raises:
            ValueError: If the rate is not a positive finite number; the
                stored rate is left unchanged.
        """
        rate = float(rate)
        if not math.isfinite(rate) or rate <= 0:
            raise ValueError(f"汇率必须为正数: {rate}")
        self._put(_RATE_KEY, repr(rate))
        logger.info("汇率: 1 USD = %s CNY", rate)
        return rate

    def display_settings(self, defaults: DisplaySettings | None = None) -> DisplaySettings:
        """Stored settings, falling back to ``defaults`` for unset keys."""
        defaults = defaults or DisplaySettings()
        currency = defaults.currency
        rate = defaults.exchange_rate

        stored_currency = self._get(_CURRENCY_KEY)
        if stored_currency is not None:
            try:
                currency = Currency(stored_currency)
            except ValueError:
                logger.warning("忽略无效的币种设置: %s", stored_currency)

        stored_rate = self._get(_RATE_KEY)
        if stored_rate is not None:
            try:
                value = float(stored_rate)
            except ValueError:
                value = 0.0
            if math.isfinite(value) and value > 0:
                rate = value
            else:
                logger.warning("忽略无效的汇率设置: %s", stored_rate)

        return DisplaySettings(currency=currency, exchange_rate=rate)
