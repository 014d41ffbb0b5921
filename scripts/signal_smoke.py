from __future__ import annotations

from datetime import datetime, timedelta, timezone

from alphafx_engine.backtest import run_backtest
from alphafx_engine.consensus import combined_signal
from alphafx_engine.formatters import format_backtest, format_signal
from alphafx_engine.indicator_cache import IndicatorCache
from alphafx_engine.price_store import PriceHistoryStore
from alphafx_engine.strategies import bollinger_strategy, rsi_strategy, sma_crossover

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def zigzag(start: float, step: float, legs=(-1, 1, -1, 1), leg_len: int = 30):
    """Alternating monotone runs, enough to swing RSI between its extremes."""
    prices = []
    p = start
    for direction in legs:
        for _ in range(leg_len):
            prices.append(round(p, 5))
            p += direction * step
    return prices


def run_case(name: str, prices):
    store = PriceHistoryStore()
    cache = IndicatorCache()
    for i, p in enumerate(prices):
        store.add_sample(name, p, T0 + timedelta(minutes=i))
    for sig in (
        sma_crossover(name, store, cache),
        rsi_strategy(name, store, cache),
        bollinger_strategy(name, store, cache),
        combined_signal(name, store, cache),
    ):
        print(format_signal(name, sig))
    print("indicators:", cache.snapshot(name))


def main():
    run_case("drop", [1.0] * 30 + [0.9])
    run_case("spike", [1.0] * 30 + [1.1])
    run_case("flat", [1.0850] * 40)

    series = [(p, T0 + timedelta(days=i)) for i, p in enumerate(zigzag(1.2650, 0.0005))]
    for algo in ("sma", "rsi", "bollinger", "combined"):
        print()
        print(format_backtest(run_backtest(algo, "GBP/USD", series, 10000)))


if __name__ == "__main__":
    main()
