from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional
import os
import yaml

from .errors import InvalidParameter


def _env_override(value: Any, env_key: str) -> Any:
    env_val = os.getenv(env_key)
    if env_val is None:
        return value
    # basic parsing
    if isinstance(value, bool):
        return env_val.strip().lower() in ("1", "true", "yes", "y", "on")
    if isinstance(value, int):
        try:
            return int(env_val)
        except ValueError:
            return value
    if isinstance(value, float):
        try:
            return float(env_val)
        except ValueError:
            return value
    return env_val


DEFAULT_SYMBOLS = ["EUR/USD", "GBP/USD", "USD/JPY", "AUD/USD", "USD/CAD"]


@dataclass
class AppConfig:
    name: str = "AlphaFx Engine"
    log_level: str = "INFO"


@dataclass
class StrategyConfig:
    sma_short_period: int = 10
    sma_long_period: int = 20
    rsi_period: int = 14
    rsi_overbought: float = 70.0
    rsi_oversold: float = 30.0
    bollinger_period: int = 20
    bollinger_std_dev: float = 2.0
    signal_lookback: int = 50  # samples read from history per evaluation

    def sma_params(self) -> Dict[str, Any]:
        return {
            "short_period": self.sma_short_period,
            "long_period": self.sma_long_period,
            "lookback": self.signal_lookback,
        }

    def rsi_params(self) -> Dict[str, Any]:
        return {
            "period": self.rsi_period,
            "overbought": self.rsi_overbought,
            "oversold": self.rsi_oversold,
            "lookback": self.signal_lookback,
        }

    def bollinger_params(self) -> Dict[str, Any]:
        return {
            "period": self.bollinger_period,
            "std_dev": self.bollinger_std_dev,
            "lookback": self.signal_lookback,
        }


@dataclass
class RiskConfig:
    max_trading_volume: float = 10_000_000.0
    position_size_fraction: float = 0.10


@dataclass
class TradingConfig:
    auto_trading: bool = False
    symbols: List[str] = None
    default_quantity: int = 10000
    live_confidence_threshold: float = 0.6
    backtest_confidence_threshold: float = 0.5
    history_capacity: int = 200
    min_lookback: int = 20
    price_interval_s: float = 5.0
    signal_interval_s: float = 10.0
    session_interval_s: float = 60.0


@dataclass
class ProviderConfig:
    type: str = "mock"  # mock | exchange_rate
    url: str = "https://api.exchangerate-api.com/v4/latest"
    api_key: str = ""
    timeout_s: int = 10
    spread: float = 0.0002
    seed: Optional[int] = None


@dataclass
class Config:
    app: AppConfig
    strategy: StrategyConfig
    risk: RiskConfig
    trading: TradingConfig
    provider: ProviderConfig

    def validate(self) -> "Config":
        errs = []
        for name in ("sma_short_period", "sma_long_period", "rsi_period", "bollinger_period", "signal_lookback"):
            if int(getattr(self.strategy, name)) <= 0:
                errs.append(f"strategy.{name} must be > 0")
        if self.strategy.bollinger_std_dev <= 0:
            errs.append("strategy.bollinger_std_dev must be > 0")
        if self.risk.max_trading_volume <= 0:
            errs.append("risk.max_trading_volume must be > 0")
        if not (0 < self.risk.position_size_fraction <= 1):
            errs.append("risk.position_size_fraction must be in (0, 1]")
        for name in ("default_quantity", "history_capacity", "min_lookback"):
            if int(getattr(self.trading, name)) <= 0:
                errs.append(f"trading.{name} must be > 0")
        if errs:
            raise InvalidParameter("Invalid config: " + "; ".join(errs))
        return self


def _apply_env(cfg: Config) -> Config:
    # env overrides (useful on servers)
    cfg.trading.auto_trading = _env_override(cfg.trading.auto_trading, "AUTO_TRADING_ENABLED")
    cfg.risk.max_trading_volume = _env_override(float(cfg.risk.max_trading_volume), "MAX_TRADING_VOLUME")
    cfg.provider.api_key = _env_override(cfg.provider.api_key, "EXCHANGE_RATE_API_KEY")
    cfg.provider.url = _env_override(cfg.provider.url, "EXCHANGE_RATE_API_URL")

    if cfg.trading.symbols is None:
        cfg.trading.symbols = list(DEFAULT_SYMBOLS)

    # Allow TRADING_SYMBOLS="EUR/USD,GBP/USD"
    sym_env = os.getenv("TRADING_SYMBOLS")
    if sym_env:
        cfg.trading.symbols = [x.strip() for x in sym_env.split(",") if x.strip()]
    return cfg


def default_config() -> Config:
    cfg = Config(
        app=AppConfig(),
        strategy=StrategyConfig(),
        risk=RiskConfig(),
        trading=TradingConfig(),
        provider=ProviderConfig(),
    )
    return _apply_env(cfg).validate()


def load_config(path: str) -> Config:
    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    cfg = Config(
        app=AppConfig(**raw.get("app", {})),
        strategy=StrategyConfig(**raw.get("strategy", {})),
        risk=RiskConfig(**raw.get("risk", {})),
        trading=TradingConfig(**raw.get("trading", {})),
        provider=ProviderConfig(**raw.get("provider", {})),
    )
    return _apply_env(cfg).validate()
