from datetime import datetime, timedelta, timezone

import pytest

from alphafx_engine.backtest import performance_metrics, run_backtest
from alphafx_engine.errors import InvalidParameter
from alphafx_engine.models import BUY, SELL, PriceSample, Trade

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _series(prices):
    return [PriceSample(price=p, timestamp=T0 + timedelta(days=i)) for i, p in enumerate(prices)]


def _zigzag(start=1.2650, step=0.0005, legs=(-1, 1, -1, 1), leg_len=30):
    prices = []
    p = start
    for direction in legs:
        for _ in range(leg_len):
            prices.append(round(p, 5))
            p += direction * step
    return prices


def _trade(pnl, action=SELL):
    return Trade(symbol="EUR/USD", action=action, quantity=100, price=1.0, timestamp=T0, pnl=pnl)


def _assert_single_lot(trades):
    actions = [t.action for t in trades]
    assert actions[::2] == [BUY] * len(actions[::2])
    assert actions[1::2] == [SELL] * len(actions[1::2])
    assert len(actions) % 2 == 0


def test_gbp_usd_rsi_backtest():
    prices = _zigzag()
    result = run_backtest("rsi", "GBP/USD", _series(prices), 10000)

    assert result.algorithm == "rsi"
    assert result.metrics.total_trades >= 1
    assert len(result.trades) == 2

    buy, sell = result.trades
    assert buy.action == BUY
    assert buy.price == pytest.approx(1.2550)
    assert buy.quantity == 796
    assert buy.reason == "RSI oversold"

    # RSI sell confidence tops out at 30/70, so the position is only closed at the end
    assert sell.action == SELL
    assert sell.reason == "Forced liquidation at end of series"
    assert sell.price == prices[-1]
    assert sell.pnl == pytest.approx(796 * (prices[-1] - prices[-2]))


def test_forced_liquidation_settles_capital():
    prices = _zigzag()
    result = run_backtest("rsi", "GBP/USD", _series(prices), 10000)
    buy = result.trades[0]
    expected = 10000 - buy.quantity * buy.price + buy.quantity * prices[-1]
    assert result.final_capital == pytest.approx(expected)
    assert result.total_return_pct == round((expected - 10000) / 10000 * 100, 2)
    assert result.trades[-1].capital == pytest.approx(expected)
    assert result.metrics.winning_trades == 1
    assert result.metrics.win_rate == 50.0
    assert result.metrics.max_drawdown >= 0.0


def test_backtest_is_deterministic():
    series = _series(_zigzag())
    a = run_backtest("combined", "GBP/USD", series, 10000)
    b = run_backtest("combined", "GBP/USD", series, 10000)
    assert a == b


@pytest.mark.parametrize("algorithm", ["sma", "rsi", "bollinger", "combined"])
def test_single_lot_ledger(algorithm):
    prices = _zigzag(legs=(-1, 1, -1, 1, -1, 1), leg_len=25)
    result = run_backtest(algorithm, "EUR/USD", _series(prices), 10000)
    _assert_single_lot(result.trades)


def test_bollinger_skips_buy_while_long():
    prices = [100.0] * 25 + [20.0] * 5
    result = run_backtest("bollinger", "USD/JPY", _series(prices), 10000)

    assert [t.action for t in result.trades] == [BUY, SELL]
    assert result.trades[0].quantity == 50
    assert result.trades[0].timestamp == T0 + timedelta(days=25)
    assert result.trades[1].pnl == pytest.approx(0.0)
    assert result.final_capital == pytest.approx(10000.0)
    assert result.total_return_pct == 0.0


def test_max_drawdown_comes_from_the_equity_curve():
    # 50 units bought at 20, marked at 10: equity 10,000 -> 9,500
    prices = [100.0] * 25 + [20.0, 10.0]
    result = run_backtest("bollinger", "USD/JPY", _series(prices), 10000)

    assert [t.action for t in result.trades] == [BUY, SELL]
    assert result.trades[1].pnl == pytest.approx(-500.0)
    assert result.final_capital == pytest.approx(9500.0)
    assert result.total_return_pct == -5.0
    assert result.metrics.max_drawdown == 5.0
    assert performance_metrics(result.trades).max_drawdown == 500.0


def test_short_series_makes_no_trades():
    result = run_backtest("sma", "EUR/USD", _series([1.0850] * 10), 5000)
    assert result.trades == ()
    assert result.final_capital == 5000.0
    assert result.metrics.total_trades == 0


def test_accepts_price_timestamp_pairs_and_aliases():
    pairs = [(p, T0 + timedelta(hours=i)) for i, p in enumerate(_zigzag())]
    result = run_backtest("sma_crossover", "GBP/USD", pairs, 10000, {"shortPeriod": 5, "longPeriod": 10})
    assert result.algorithm == "sma"
    assert result.parameters == {"short_period": 5, "long_period": 10}


def test_invalid_inputs_raise():
    with pytest.raises(InvalidParameter):
        run_backtest("rsi", "EUR/USD", [], 10000)
    with pytest.raises(InvalidParameter):
        run_backtest("rsi", "EUR/USD", _series([1.0] * 30), 0)
    with pytest.raises(InvalidParameter):
        run_backtest("ichimoku", "EUR/USD", _series([1.0] * 30), 10000)
    with pytest.raises(InvalidParameter):
        run_backtest("rsi", "EUR/USD", _series([1.0] * 30), 10000, {"period": 0})


def test_performance_metrics():
    trades = [
        _trade(None, BUY), _trade(10.0),
        _trade(None, BUY), _trade(-5.0),
        _trade(None, BUY), _trade(20.0),
    ]
    m = performance_metrics(trades)
    assert m.total_trades == 6
    assert m.winning_trades == 2
    assert m.losing_trades == 1
    assert m.win_rate == 33.33
    assert m.total_return == 25.0
    assert m.average_win == 15.0
    assert m.average_loss == 5.0
    assert m.profit_factor == 6.0
    assert m.sharpe_ratio == 0.81
    assert m.max_drawdown == 5.0


def test_performance_metrics_degenerate():
    m = performance_metrics([])
    assert m.total_trades == 0
    assert m.sharpe_ratio == 0.0

    m = performance_metrics([_trade(None, BUY), _trade(3.0)])
    assert m.profit_factor == 0.0
    assert m.sharpe_ratio == 0.0
    assert m.average_loss == 0.0
