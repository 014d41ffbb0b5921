import pytest

from alphafx_engine.config import DEFAULT_SYMBOLS, default_config, load_config
from alphafx_engine.errors import InvalidParameter

ENV_KEYS = ("AUTO_TRADING_ENABLED", "MAX_TRADING_VOLUME", "EXCHANGE_RATE_API_KEY", "EXCHANGE_RATE_API_URL", "TRADING_SYMBOLS")


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def _write(tmp_path, text):
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return str(path)


def test_defaults():
    cfg = default_config()
    assert cfg.trading.symbols == DEFAULT_SYMBOLS
    assert cfg.trading.auto_trading is False
    assert cfg.trading.default_quantity == 10000
    assert cfg.risk.max_trading_volume == 10_000_000.0
    assert cfg.strategy.sma_params() == {"short_period": 10, "long_period": 20, "lookback": 50}
    assert cfg.provider.type == "mock"


def test_load_yaml_overrides(tmp_path):
    path = _write(tmp_path, """
app:
  log_level: DEBUG
strategy:
  rsi_period: 7
  rsi_oversold: 25
trading:
  auto_trading: true
  symbols: [EUR/USD, USD/JPY]
risk:
  max_trading_volume: 250000
""")
    cfg = load_config(path)
    assert cfg.app.log_level == "DEBUG"
    assert cfg.strategy.rsi_params() == {"period": 7, "overbought": 70.0, "oversold": 25, "lookback": 50}
    assert cfg.trading.auto_trading is True
    assert cfg.trading.symbols == ["EUR/USD", "USD/JPY"]
    assert cfg.risk.max_trading_volume == 250000
    assert cfg.strategy.bollinger_period == 20


def test_empty_file_gives_defaults(tmp_path):
    cfg = load_config(_write(tmp_path, ""))
    assert cfg.trading.symbols == DEFAULT_SYMBOLS


def test_env_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv("AUTO_TRADING_ENABLED", "true")
    monkeypatch.setenv("MAX_TRADING_VOLUME", "500000")
    monkeypatch.setenv("EXCHANGE_RATE_API_KEY", "k-123")
    monkeypatch.setenv("TRADING_SYMBOLS", "GBP/USD, AUD/USD")
    cfg = load_config(_write(tmp_path, "trading:\n  auto_trading: false\n"))
    assert cfg.trading.auto_trading is True
    assert cfg.risk.max_trading_volume == 500000.0
    assert cfg.provider.api_key == "k-123"
    assert cfg.trading.symbols == ["GBP/USD", "AUD/USD"]


def test_invalid_values_rejected(tmp_path):
    with pytest.raises(InvalidParameter):
        load_config(_write(tmp_path, "strategy:\n  rsi_period: 0\n"))
    with pytest.raises(InvalidParameter):
        load_config(_write(tmp_path, "risk:\n  max_trading_volume: -1\n"))
    with pytest.raises(InvalidParameter):
        load_config(_write(tmp_path, "risk:\n  position_size_fraction: 1.5\n"))
