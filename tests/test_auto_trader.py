from datetime import datetime, timedelta, timezone

import pytest

from alphafx_engine.indicator_cache import IndicatorCache
from alphafx_engine.models import ACTIVE, BUY, STOPPED, Notification, Trade, TradeIntent
from alphafx_engine.price_store import PriceHistoryStore
from alphafx_engine.risk import RiskGate
from alphafx_engine.trader import SYSTEM, TRADE_EXECUTED, AutoTrader, SessionMonitor

T0 = datetime(2024, 1, 2, 9, 0, tzinfo=timezone.utc)


def _store(prices, symbol="EUR/USD"):
    store = PriceHistoryStore()
    for i, p in enumerate(prices):
        store.add_sample(symbol, p, T0 + timedelta(seconds=5 * i))
    return store


def _trader(max_volume=15_000, prices=None, enabled=True, **kw):
    # flat then a drop: consensus BUY at 2/3 confidence
    store = _store(prices if prices is not None else [1.0] * 30 + [0.9])
    gate = RiskGate(max_volume)
    return AutoTrader(store, IndicatorCache(), gate, ["EUR/USD", "GBP/USD"], enabled=enabled, **kw)


def test_trades_then_stops_on_volume_cap():
    trader = _trader(max_volume=15_000)
    now = T0 + timedelta(minutes=10)

    first = trader.tick(now)
    assert len(first) == 1
    trade = first[0]
    assert (trade.symbol, trade.action, trade.quantity, trade.price) == ("EUR/USD", BUY, 10000, 0.9)
    assert trade.algorithm == "COMBINED"
    assert trade.trade_id
    assert trader.status == ACTIVE
    assert trader.gate.cumulative_notional == pytest.approx(9000.0)

    # same signal again, but 18,000 would exceed the cap
    assert trader.tick(now) == []
    assert trader.status == STOPPED

    assert trader.tick(now) == []
    assert trader.gate.trade_count == 1

    notes = trader.drain_notifications()
    assert [n.type for n in notes] == [TRADE_EXECUTED, SYSTEM]
    assert notes[0].message == "BUY 10,000 EUR/USD at 0.9"
    assert notes[1].title == "Auto Trading Stopped"
    assert notes[1].message == "Trading volume limit of 15,000 reached"
    assert trader.drain_notifications() == []
    assert trader.drain_trades() == [trade]
    assert trader.drain_trades() == []


def test_stops_after_trade_that_reaches_cap():
    trader = _trader(max_volume=9_000)
    executed = trader.tick(T0)
    assert len(executed) == 1
    assert trader.gate.limit_reached
    assert trader.status == STOPPED
    notes = trader.drain_notifications()
    assert [n.type for n in notes] == [TRADE_EXECUTED, SYSTEM]


def test_disabled_trader_does_nothing():
    trader = _trader(enabled=False)
    assert trader.status == STOPPED
    assert trader.tick(T0) == []
    assert trader.drain_notifications() == []


def test_hold_and_low_confidence_are_skipped():
    assert _trader(prices=[1.0] * 31).tick(T0) == []
    assert _trader(confidence_threshold=0.7).tick(T0) == []


def test_start_session_resets_gate_and_stats():
    trader = _trader(max_volume=9_000)
    trader.tick(T0)
    old_id = trader.session.session_id
    session = trader.start_session(T0 + timedelta(hours=1))
    assert session.session_id != old_id
    assert session.status == ACTIVE
    assert trader.gate.cumulative_notional == 0.0
    assert trader.ledger == []
    assert len(trader.tick(T0 + timedelta(hours=1))) == 1


def test_listener_receives_trades_and_notifications():
    seen = []
    trader = _trader(max_volume=9_000, listener=seen.append)
    trader.tick(T0)
    assert [type(x) for x in seen] == [Trade, Notification, Notification]


def test_session_monitor_rolls_up_and_enforces_stop():
    trader = _trader(max_volume=15_000)
    monitor = SessionMonitor(trader, interval_s=60)
    trader.tick(T0)

    session = monitor.tick(T0)
    assert session.total_trades == 1
    assert session.total_volume == pytest.approx(9000.0)
    assert session.total_pnl == 0.0
    assert trader.status == ACTIVE

    trader.ledger.append(Trade(symbol="GBP/USD", action=BUY, quantity=10000, price=1.0, timestamp=T0, pnl=12.5))
    session = monitor.tick(T0)
    assert session.total_volume == pytest.approx(19000.0)
    assert session.total_pnl == 12.5
    assert trader.status == STOPPED
    assert trader.drain_notifications()[-1].type == SYSTEM


def test_session_monitor_stops_when_gate_filled_outside_ledger():
    trader = _trader(max_volume=15_000)
    monitor = SessionMonitor(trader, interval_s=60)
    trader.gate.record(TradeIntent(symbol="EUR/USD", action=BUY, quantity=10000, price=1.5, timestamp=T0))

    session = monitor.tick(T0)
    assert session.total_trades == 0
    assert trader.status == STOPPED
    assert trader.drain_notifications()[-1].message == "Trading volume limit of 15,000 reached"
