"""Historical replay of a signal generator (or the consensus) with single-lot position handling.

The replay feeds each sample into a private price store before asking for a
signal, so no state is shared with a live engine and runs are re-entrant.
Risk figures are simplified: the Sharpe ratio is mean/stdev of per-trade pnl without annualization, and a
closing leg's pnl is measured against the previous sample's price rather than
the entry cost.
"""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from .config import StrategyConfig
from .consensus import combined_signal
from .errors import InvalidParameter, require_positive
from .indicator_cache import IndicatorCache
from .models import (
    BUY,
    LONG,
    SELL,
    BacktestResult,
    PerformanceMetrics,
    Position,
    PriceSample,
    Trade,
)
from .price_store import DEFAULT_CAPACITY, PriceHistoryStore
from .risk import DEFAULT_POSITION_FRACTION, position_size
from .strategies import COMBINED, GENERATORS, normalize_params, resolve_algorithm

log = logging.getLogger("backtest")

MIN_LOOKBACK = 20
BACKTEST_CONFIDENCE_THRESHOLD = 0.5

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _coerce_series(series: Sequence[Any]) -> List[PriceSample]:
    out: List[PriceSample] = []
    for i, item in enumerate(series):
        if isinstance(item, PriceSample):
            out.append(item)
        elif isinstance(item, (tuple, list)):
            out.append(PriceSample(price=float(item[0]), timestamp=item[1]))
        else:
            # bare prices get one-second spaced timestamps
            out.append(PriceSample(price=float(item), timestamp=_EPOCH + timedelta(seconds=i)))
    return out


def _stats(values: Sequence[float]) -> Tuple[float, float]:
    if not values:
        return 0.0, 0.0
    mean = sum(values) / len(values)
    var = sum((v - mean) ** 2 for v in values) / len(values)
    return mean, math.sqrt(var)


def sharpe_ratio(pnls: Sequence[float]) -> float:
    mean, sd = _stats(pnls)
    return mean / sd if sd > 0 else 0.0


def performance_metrics(trades: Sequence[Trade]) -> PerformanceMetrics:
    """Aggregate a trade ledger. Legs without pnl (opening BUYs) count as trades but not as wins or losses."""
    if not trades:
        return PerformanceMetrics()

    pnls = [t.pnl for t in trades if t.pnl is not None]
    wins = [p for p in pnls if p > 0]
    losses = [p for p in pnls if p < 0]

    total_wins = sum(wins)
    total_losses = abs(sum(losses))

    # drawdown of the cumulative pnl curve
    peak = 0.0
    running = 0.0
    max_dd = 0.0
    for p in pnls:
        running += p
        peak = max(peak, running)
        max_dd = max(max_dd, peak - running)

    return PerformanceMetrics(
        total_trades=len(trades),
        winning_trades=len(wins),
        losing_trades=len(losses),
        win_rate=round(len(wins) / len(trades) * 100.0, 2),
        total_return=round(sum(pnls), 2),
        average_win=round(total_wins / len(wins), 2) if wins else 0.0,
        average_loss=round(total_losses / len(losses), 2) if losses else 0.0,
        profit_factor=round(total_wins / total_losses, 2) if total_losses > 0 else 0.0,
        sharpe_ratio=round(sharpe_ratio(pnls), 2),
        max_drawdown=round(max_dd, 2),
    )


def _validate_periods(kwargs: Mapping[str, Any]) -> None:
    for key in ("short_period", "long_period", "period", "lookback"):
        if key in kwargs:
            require_positive(key, kwargs[key])


def run_backtest(
    algorithm: str,
    symbol: str,
    series: Sequence[Any],
    initial_capital: float = 10000.0,
    params: Optional[Mapping[str, Any]] = None,
    *,
    strategy_cfg: Optional[StrategyConfig] = None,
    confidence_threshold: float = BACKTEST_CONFIDENCE_THRESHOLD,
    position_fraction: float = DEFAULT_POSITION_FRACTION,
    min_lookback: int = MIN_LOOKBACK,
    history_capacity: int = DEFAULT_CAPACITY,
) -> BacktestResult:
    algo = resolve_algorithm(algorithm)
    samples = _coerce_series(series)
    if not samples:
        raise InvalidParameter("backtest series is empty")
    require_positive("initial_capital", initial_capital)
    require_positive("min_lookback", min_lookback)

    kwargs = normalize_params(algo, params)
    _validate_periods(kwargs)
    cfg = strategy_cfg or StrategyConfig()

    store = PriceHistoryStore(history_capacity)
    cache = IndicatorCache()

    def _signal():
        if algo == COMBINED:
            return combined_signal(symbol, store, cache, cfg)
        return GENERATORS[algo](symbol, store, cache, **kwargs)

    start = min(int(min_lookback), len(samples))
    for s in samples[:start]:
        store.add_sample(symbol, s.price, s.timestamp)

    capital = float(initial_capital)
    position = Position()
    trades: List[Trade] = []
    peak_equity = capital
    max_drawdown = 0.0

    for i in range(start, len(samples)):
        sample = samples[i]
        prev_price = samples[i - 1].price
        store.add_sample(symbol, sample.price, sample.timestamp)

        sig = _signal()
        if sig.actionable and sig.confidence > confidence_threshold:
            if sig.verdict == BUY and position.is_flat:
                qty = position_size(capital, sample.price, position_fraction)
                cost = qty * sample.price
                if qty > 0 and cost <= capital:
                    capital -= cost
                    position = Position(state=LONG, quantity=qty, entry_price=sample.price)
                    trades.append(Trade(
                        symbol=symbol,
                        action=BUY,
                        quantity=qty,
                        price=sample.price,
                        timestamp=sample.timestamp,
                        capital=capital + position.market_value(sample.price),
                        algorithm=algo,
                        reason=_reason(sig),
                    ))
            elif sig.verdict == SELL and not position.is_flat:
                capital, trade = _close(symbol, position, sample, prev_price, capital, algo, _reason(sig))
                trades.append(trade)
                position = Position()

        equity = capital + position.market_value(sample.price)
        peak_equity = max(peak_equity, equity)
        if peak_equity > 0:
            max_drawdown = max(max_drawdown, (peak_equity - equity) / peak_equity)

    if not position.is_flat:
        last = samples[-1]
        prev_price = samples[-2].price if len(samples) > 1 else last.price
        capital, trade = _close(symbol, position, last, prev_price, capital, algo, "Forced liquidation at end of series")
        trades.append(trade)
        position = Position()

    metrics = replace(performance_metrics(trades), max_drawdown=round(max_drawdown * 100.0, 2))
    total_return_pct = (capital - initial_capital) / initial_capital * 100.0
    log.info(
        "backtest_done algorithm=%s symbol=%s samples=%d trades=%d final_capital=%.2f return_pct=%.2f",
        algo,
        symbol,
        len(samples),
        len(trades),
        capital,
        total_return_pct,
    )
    return BacktestResult(
        algorithm=algo,
        symbol=symbol,
        initial_capital=float(initial_capital),
        final_capital=capital,
        total_return_pct=round(total_return_pct, 2),
        trades=tuple(trades),
        metrics=metrics,
        parameters=dict(kwargs),
    )


def _reason(sig) -> str:
    if hasattr(sig, "reasons"):
        return "; ".join(sig.reasons)
    return sig.reason


def _close(
    symbol: str,
    position: Position,
    sample: PriceSample,
    prev_price: float,
    capital: float,
    algo: str,
    reason: str,
) -> Tuple[float, Trade]:
    proceeds = position.quantity * sample.price
    capital += proceeds
    log.debug(
        "position_closed symbol=%s qty=%d entry=%s exit=%s reason=%s",
        symbol,
        position.quantity,
        position.entry_price,
        sample.price,
        reason,
    )
    trade = Trade(
        symbol=symbol,
        action=SELL,
        quantity=position.quantity,
        price=sample.price,
        timestamp=sample.timestamp,
        pnl=proceeds - position.quantity * prev_price,
        capital=capital,
        algorithm=algo,
        reason=reason,
    )
    return capital, trade
