from __future__ import annotations

from typing import Optional

from .config import StrategyConfig
from .indicator_cache import IndicatorCache
from .models import BUY, HOLD, SELL, CombinedSignal
from .price_store import PriceHistoryStore
from .strategies import bollinger_strategy, rsi_strategy, sma_crossover

MAJORITY = 2


def combined_signal(
    symbol: str,
    store: PriceHistoryStore,
    cache: IndicatorCache,
    strategy_cfg: Optional[StrategyConfig] = None,
) -> CombinedSignal:
    """Majority vote over the SMA, RSI and Bollinger generators; 2 of 3 agreeing is required to act."""
    cfg = strategy_cfg or StrategyConfig()
    components = {
        "sma": sma_crossover(symbol, store, cache, **cfg.sma_params()),
        "rsi": rsi_strategy(symbol, store, cache, **cfg.rsi_params()),
        "bollinger": bollinger_strategy(symbol, store, cache, **cfg.bollinger_params()),
    }
    signals = list(components.values())
    buys = [s for s in signals if s.verdict == BUY]
    sells = [s for s in signals if s.verdict == SELL]

    if len(buys) >= MAJORITY:
        return CombinedSignal(BUY, len(buys) / 3.0, tuple(s.reason for s in buys), components)
    if len(sells) >= MAJORITY:
        return CombinedSignal(SELL, len(sells) / 3.0, tuple(s.reason for s in sells), components)
    return CombinedSignal(HOLD, 0.0, (), components)
