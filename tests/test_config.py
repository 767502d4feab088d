"""Tests for config loading."""

import pytest

from itemmaster.config import AppConfig, load_config
from itemmaster.models import Currency


@pytest.fixture(autouse=True)
def _no_api_keys(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)


def test_load_config_defaults():
    """Loading with no path returns all defaults."""
    config = load_config()
    assert isinstance(config, AppConfig)
    assert config.display.currency == "USD"
    assert config.display.exchange_rate == 7.0
    assert config.display.expiry_warning_days == 7
    assert config.storage.db_path == "~/.config/itemmaster/items.db"
    assert config.scanner.backend == "openai"
    assert config.scanner.openai.model == "gpt-4o"
    assert config.scanner.openai.api_key == ""
    assert config.reminders.enabled is False
    assert config.reminders.schedule == "0 9 * * *"


def test_load_config_nonexistent_file():
    config = load_config("/nonexistent/path.toml")
    assert config.display.currency == "USD"


def test_load_config_from_toml(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text(
        """\
[display]
currency = "CNY"
exchange_rate = 7.25
expiry_warning_days = 3

[storage]
db_path = "/var/items/items.db"
image_dir = "/var/items/images"

[scanner]
backend = "claude"

[scanner.claude]
api_key = "test-key-123"
model = "claude-test"

[scanner.openai]
endpoint = "http://localhost:8080/v1/chat/completions"
timeout = 10.0

[reminders]
enabled = true
schedule = "30 8 * * 1"
""",
        encoding="utf-8",
    )

    config = load_config(path)
    assert config.display.currency == "CNY"
    assert config.display.exchange_rate == 7.25
    assert config.display.expiry_warning_days == 3
    assert config.storage.db_path == "/var/items/items.db"
    assert config.storage.image_dir == "/var/items/images"
    assert config.scanner.backend == "claude"
    assert config.scanner.claude.api_key == "test-key-123"
    assert config.scanner.claude.model == "claude-test"
    assert config.scanner.openai.endpoint == "http://localhost:8080/v1/chat/completions"
    assert config.scanner.openai.timeout == 10.0
    assert config.reminders.enabled is True
    assert config.reminders.schedule == "30 8 * * 1"


def test_api_keys_from_environment(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "env-openai")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "env-anthropic")
    config = load_config()
    assert config.scanner.openai.api_key == "env-openai"
    assert config.scanner.claude.api_key == "env-anthropic"


def test_file_key_wins_over_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "env-anthropic")
    path = tmp_path / "config.toml"
    path.write_text('[scanner.claude]\napi_key = "file-key"\n', encoding="utf-8")
    assert load_config(path).scanner.claude.api_key == "file-key"


def test_invalid_currency_rejected(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text('[display]\ncurrency = "EUR"\n', encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(path)


@pytest.mark.parametrize("rate", ["0", "-1.5"])
def test_invalid_exchange_rate_rejected(tmp_path, rate):
    path = tmp_path / "config.toml"
    path.write_text(f"[display]\nexchange_rate = {rate}\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(path)


def test_display_defaults(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text('[display]\ncurrency = "CNY"\nexchange_rate = 6.5\n', encoding="utf-8")
    defaults = load_config(path).display_defaults()
    assert defaults.currency is Currency.CNY
    assert defaults.exchange_rate == 6.5
