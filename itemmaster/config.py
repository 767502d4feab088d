"""TOML configuration loader."""

from __future__ import annotations

import math
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

from .models import DEFAULT_EXCHANGE_RATE, EXPIRY_WARNING_DAYS, Currency, DisplaySettings

if sys.version_info >= (3, 11):
    import tomllib
else:
    try:
        import tomli as tomllib
    except ImportError:
        tomllib = None  # type: ignore[assignment]


@dataclass
class DisplayConfig:
    currency: str = "USD"
    exchange_rate: float = DEFAULT_EXCHANGE_RATE  # 1 USD = N CNY
    expiry_warning_days: int = EXPIRY_WARNING_DAYS


@dataclass
class StorageConfig:
    db_path: str = "~/.config/itemmaster/items.db"
    image_dir: str = "~/.config/itemmaster/images"


@dataclass
class OpenAIScannerConfig:
    api_key: str = ""
    model: str = "gpt-4o"
    endpoint: str = "https://api.openai.com/v1/chat/completions"
    timeout: float = 60.0


@dataclass
class ClaudeScannerConfig:
    api_key: str = ""
    model: str = "claude-sonnet-4-5-20250929"


@dataclass
class ScannerConfig:
    backend: str = "openai"
    openai: OpenAIScannerConfig = field(default_factory=OpenAIScannerConfig)
    claude: ClaudeScannerConfig = field(default_factory=ClaudeScannerConfig)


@dataclass
class RemindersConfig:
    enabled: bool = False
    schedule: str = "0 9 * * *"  # cron: daily 09:00


@dataclass
class AppConfig:
    display: DisplayConfig = field(default_factory=DisplayConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    scanner: ScannerConfig = field(default_factory=ScannerConfig)
    reminders: RemindersConfig = field(default_factory=RemindersConfig)

    def display_defaults(self) -> DisplaySettings:
        """Display settings from the file, before user overrides in the database."""
        return DisplaySettings(
            currency=Currency(self.display.currency),
            exchange_rate=self.display.exchange_rate,
        )


def load_config(path: str | Path | None = None) -> AppConfig:
    """Load configuration from a TOML file.

    Falls back to defaults if no path is given or the file doesn't exist.
    API keys can be overridden via environment variables.

    Raises:
        ValueError: If the display currency is unknown or the exchange
            rate is not positive.
    """
    raw: dict = {}

    if path is not None:
        p = Path(path).expanduser()
        if p.exists():
            if tomllib is None:
                raise ImportError(
                    "tomli is required on Python < 3.11: pip install tomli"
                )
            with open(p, "rb") as f:
                raw = tomllib.load(f)

    dsp = raw.get("display", {})
    sto = raw.get("storage", {})
    scn = raw.get("scanner", {})
    rem = raw.get("reminders", {})

    openai_cfg = scn.get("openai", {})
    claude_cfg = scn.get("claude", {})

    # Resolve API keys: config file → environment variable
    openai_api_key = openai_cfg.get("api_key", "") or os.environ.get(
        "OPENAI_API_KEY", ""
    )
    claude_api_key = claude_cfg.get("api_key", "") or os.environ.get(
        "ANTHROPIC_API_KEY", ""
    )

    currency = dsp.get("currency", "USD")
    try:
        Currency(currency)
    except ValueError:
        raise ValueError(f"无效的币种: {currency!r}  (USD / CNY)") from None
    exchange_rate = float(dsp.get("exchange_rate", DEFAULT_EXCHANGE_RATE))
    if not math.isfinite(exchange_rate) or exchange_rate <= 0:
        raise ValueError(f"汇率必须为正数: {exchange_rate}")

    return AppConfig(
        display=DisplayConfig(
            currency=currency,
            exchange_rate=exchange_rate,
            expiry_warning_days=dsp.get("expiry_warning_days", EXPIRY_WARNING_DAYS),
        ),
        storage=StorageConfig(
            db_path=sto.get("db_path", "~/.config/itemmaster/items.db"),
            image_dir=sto.get("image_dir", "~/.config/itemmaster/images"),
        ),
        scanner=ScannerConfig(
            backend=scn.get("backend", "openai"),
            openai=OpenAIScannerConfig(
                api_key=openai_api_key,
                model=openai_cfg.get("model", "gpt-4o"),
                endpoint=openai_cfg.get(
                    "endpoint", "https://api.openai.com/v1/chat/completions"
                ),
                timeout=openai_cfg.get("timeout", 60.0),
            ),
            claude=ClaudeScannerConfig(
                api_key=claude_api_key,
                model=claude_cfg.get("model", "claude-sonnet-4-5-20250929"),
            ),
        ),
        reminders=RemindersConfig(
            enabled=rem.get("enabled", False),
            schedule=rem.get("schedule", "0 9 * * *"),
        ),
    )
