from __future__ import annotations

import math
from typing import Any, Dict, Mapping, Optional

from .errors import InvalidParameter, require_positive
from .indicator_cache import IndicatorCache
from .indicators import bollinger_bands, rsi, sma
from .models import BUY, HOLD, SELL, Signal
from .price_store import DEFAULT_RECENT, PriceHistoryStore


def clamp_confidence(raw: Optional[float]) -> float:
    """Bound a raw confidence score to [0, 1]. Non-finite scores count as no confidence."""
    if raw is None or not math.isfinite(raw):
        return 0.0
    return min(1.0, max(0.0, raw))


def _ratio(num: float, den: float) -> float:
    return num / den if den != 0 else 0.0


def _hold(reason: str, **metadata: float) -> Signal:
    return Signal(verdict=HOLD, reason=reason, confidence=0.0, metadata=dict(metadata))


def _action(verdict: str, reason: str, raw_confidence: float, **metadata: float) -> Signal:
    meta = dict(metadata)
    meta["raw_confidence"] = raw_confidence
    return Signal(verdict=verdict, reason=reason, confidence=clamp_confidence(raw_confidence), metadata=meta)


def sma_crossover(
    symbol: str,
    store: PriceHistoryStore,
    cache: IndicatorCache,
    *,
    short_period: int = 10,
    long_period: int = 20,
    lookback: int = DEFAULT_RECENT,
) -> Signal:
    require_positive("short_period", short_period)
    require_positive("long_period", long_period)
    prices = store.prices(symbol, max(lookback, long_period + 1))
    if len(prices) < long_period:
        return _hold("Insufficient data")

    short_sma = sma(prices, short_period)
    long_sma = sma(prices, long_period)
    if len(short_sma) < 2 or len(long_sma) < 2:
        return _hold("Insufficient SMA data")

    cur_short, prev_short = short_sma[-1], short_sma[-2]
    cur_long, prev_long = long_sma[-1], long_sma[-2]
    cache.update(symbol, {"SMA_SHORT": cur_short, "SMA_LONG": cur_long})

    raw = _ratio(abs(cur_short - cur_long), cur_long)
    if prev_short <= prev_long and cur_short > cur_long:
        return _action(BUY, "Bullish SMA crossover", raw, short_sma=cur_short, long_sma=cur_long)
    if prev_short >= prev_long and cur_short < cur_long:
        return _action(SELL, "Bearish SMA crossover", raw, short_sma=cur_short, long_sma=cur_long)
    return _hold("No crossover detected", short_sma=cur_short, long_sma=cur_long)


def rsi_strategy(
    symbol: str,
    store: PriceHistoryStore,
    cache: IndicatorCache,
    *,
    period: int = 14,
    overbought: float = 70.0,
    oversold: float = 30.0,
    lookback: int = DEFAULT_RECENT,
) -> Signal:
    require_positive("period", period)
    prices = store.prices(symbol, max(lookback, period + 1))
    if len(prices) < period + 1:
        return _hold("Insufficient data for RSI")

    values = rsi(prices, period)
    if not values:
        return _hold("RSI calculation failed")

    current = values[-1]
    cache.put(symbol, "RSI", current)

    if current > overbought:
        return _action(SELL, "RSI overbought", _ratio(current - overbought, overbought), rsi=current, threshold=overbought)
    if current < oversold:
        return _action(BUY, "RSI oversold", _ratio(oversold - current, oversold), rsi=current, threshold=oversold)
    return _hold("RSI in neutral zone", rsi=current)


def bollinger_strategy(
    symbol: str,
    store: PriceHistoryStore,
    cache: IndicatorCache,
    *,
    period: int = 20,
    std_dev: float = 2.0,
    lookback: int = DEFAULT_RECENT,
) -> Signal:
    require_positive("period", period)
    prices = store.prices(symbol, max(lookback, period))
    if len(prices) < period:
        return _hold("Insufficient data for Bollinger Bands")

    bands = bollinger_bands(prices, period, std_dev)
    if not bands:
        return _hold("Bollinger Bands calculation failed")

    band = bands[-1]
    price = prices[-1]
    cache.update(symbol, {"BB_UPPER": band.upper, "BB_MIDDLE": band.middle, "BB_LOWER": band.lower})

    meta = dict(price=price, upper_band=band.upper, middle_band=band.middle, lower_band=band.lower)
    if price >= band.upper:
        return _action(SELL, "Price at upper Bollinger Band", _ratio(price - band.upper, band.upper), **meta)
    if price <= band.lower:
        return _action(BUY, "Price at lower Bollinger Band", _ratio(band.lower - price, band.lower), **meta)
    return _hold("Price within Bollinger Bands", **meta)


SMA = "sma"
RSI = "rsi"
BOLLINGER = "bollinger"
COMBINED = "combined"

ALGORITHMS: Dict[str, str] = {
    "sma": SMA,
    "sma_crossover": SMA,
    "rsi": RSI,
    "bollinger": BOLLINGER,
    "bollinger_bands": BOLLINGER,
    "combined": COMBINED,
}

GENERATORS = {
    SMA: sma_crossover,
    RSI: rsi_strategy,
    BOLLINGER: bollinger_strategy,
}

_ACCEPTED_PARAMS = {
    SMA: ("short_period", "long_period", "lookback"),
    RSI: ("period", "overbought", "oversold", "lookback"),
    BOLLINGER: ("period", "std_dev", "lookback"),
    COMBINED: (),
}

_PARAM_ALIASES = {
    "shortPeriod": "short_period",
    "longPeriod": "long_period",
    "stdDev": "std_dev",
}


def resolve_algorithm(name: str) -> str:
    key = (name or "").strip().lower()
    if key not in ALGORITHMS:
        raise InvalidParameter(f"Unknown algorithm: {name!r} (expected one of {sorted(ALGORITHMS)})")
    return ALGORITHMS[key]


def normalize_params(algorithm: str, params: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Map camelCase keys to keyword names and keep only what the algorithm accepts. None values are dropped."""
    algo = resolve_algorithm(algorithm)
    allowed = _ACCEPTED_PARAMS[algo]
    out: Dict[str, Any] = {}
    for k, v in (params or {}).items():
        key = _PARAM_ALIASES.get(k, k)
        if key in allowed and v is not None:
            out[key] = v
    return out
