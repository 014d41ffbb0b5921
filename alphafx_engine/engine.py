from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from .backtest import run_backtest
from .config import Config, default_config
from .consensus import combined_signal
from .indicator_cache import IndicatorCache
from .models import Authorization, BacktestResult, PriceSample, TradeIntent
from .price_store import DEFAULT_RECENT, PriceHistoryStore
from .risk import RiskGate
from .strategies import COMBINED, GENERATORS, resolve_algorithm
from .trader import AutoTrader, SessionMonitor

log = logging.getLogger("engine")

DEFAULT_ALGORITHMS = ("sma", "rsi", "bollinger", "combined")


class TradingEngine:
    """Single entry point for hosts: price ingestion, signal evaluation, backtests and trade gating.

    All mutation goes through one re-entrant lock so a host may call in from
    several threads.
    """

    def __init__(self, cfg: Optional[Config] = None, *, listener=None) -> None:
        self.cfg = cfg or default_config()
        self.lock = threading.RLock()
        self.store = PriceHistoryStore(self.cfg.trading.history_capacity)
        self.cache = IndicatorCache()
        self.gate = RiskGate(self.cfg.risk.max_trading_volume)
        self.trader = AutoTrader(
            self.store,
            self.cache,
            self.gate,
            self.cfg.trading.symbols or [],
            strategy_cfg=self.cfg.strategy,
            default_quantity=self.cfg.trading.default_quantity,
            confidence_threshold=self.cfg.trading.live_confidence_threshold,
            enabled=self.cfg.trading.auto_trading,
            interval_s=self.cfg.trading.signal_interval_s,
            listener=listener,
        )
        self.session_monitor = SessionMonitor(self.trader, self.cfg.trading.session_interval_s)

    def ingest(self, symbol: str, price: float, timestamp: Optional[datetime] = None) -> bool:
        with self.lock:
            return self.store.add_sample(symbol, price, timestamp)

    def ingest_quotes(self, quotes: Iterable[Any]) -> int:
        """Feed provider quotes (anything with symbol/price/timestamp). Returns how many were accepted."""
        accepted = 0
        with self.lock:
            for q in quotes:
                if self.store.add_sample(q.symbol, q.price, q.timestamp):
                    accepted += 1
        return accepted

    def price_history(self, symbol: str, n: int = DEFAULT_RECENT) -> List[PriceSample]:
        with self.lock:
            return self.store.recent(symbol, n)

    def indicators(self, symbol: str) -> Dict[str, float]:
        with self.lock:
            return self.cache.snapshot(symbol)

    def evaluate(self, symbol: str, algorithms: Sequence[str] = DEFAULT_ALGORITHMS) -> Dict[str, Any]:
        params = {
            "sma": self.cfg.strategy.sma_params(),
            "rsi": self.cfg.strategy.rsi_params(),
            "bollinger": self.cfg.strategy.bollinger_params(),
        }
        signals: Dict[str, Any] = {}
        with self.lock:
            for name in algorithms:
                algo = resolve_algorithm(name)
                if algo == COMBINED:
                    signals[algo] = combined_signal(symbol, self.store, self.cache, self.cfg.strategy)
                else:
                    signals[algo] = GENERATORS[algo](symbol, self.store, self.cache, **params[algo])
            return {
                "signals": signals,
                "indicators": self.cache.snapshot(symbol),
                "data_points": self.store.size(symbol),
            }

    def run_backtest(
        self,
        algorithm: str,
        symbol: str,
        series: Sequence[Any],
        initial_capital: float = 10000.0,
        params: Optional[Mapping[str, Any]] = None,
    ) -> BacktestResult:
        # private store per run; no lock needed
        return run_backtest(
            algorithm,
            symbol,
            series,
            initial_capital,
            params,
            strategy_cfg=self.cfg.strategy,
            confidence_threshold=self.cfg.trading.backtest_confidence_threshold,
            position_fraction=self.cfg.risk.position_size_fraction,
            min_lookback=self.cfg.trading.min_lookback,
            history_capacity=self.cfg.trading.history_capacity,
        )

    def authorize_and_record_trade(self, intent: TradeIntent) -> Authorization:
        """Gate a manually submitted trade. Allowed trades go into the session ledger and can stop auto-trading at the cap."""
        with self.lock:
            auth = self.gate.authorize(intent)
            if auth.allowed:
                trade = self.trader.execute(intent)
                log.info("manual_trade id=%s symbol=%s action=%s qty=%d price=%s", trade.trade_id, intent.symbol, intent.action, intent.quantity, intent.price)
            return auth

    def tickers(self):
        return [_Locked(self, self.trader), _Locked(self, self.session_monitor)]


class _Locked:
    """Runs a ticker under the engine lock."""

    def __init__(self, engine: TradingEngine, inner) -> None:
        self.engine = engine
        self.inner = inner
        self.name = inner.name
        self.interval_s = inner.interval_s

    def tick(self, now: Optional[datetime] = None):
        with self.engine.lock:
            return self.inner.tick(now)
