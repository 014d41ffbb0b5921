from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, List, Optional, Protocol, Sequence

from .config import StrategyConfig
from .consensus import combined_signal
from .formatters import format_trade, format_volume_limit
from .indicator_cache import IndicatorCache
from .models import ACTIVE, STOPPED, Notification, Trade, TradeIntent, TradingSession
from .price_store import PriceHistoryStore
from .risk import RiskGate

log = logging.getLogger("trader")

TRADE_EXECUTED = "TRADE_EXECUTED"
SYSTEM = "SYSTEM"
AUTO_TRADING_STOPPED = "Auto Trading Stopped"
COMBINED_ALGORITHM = "COMBINED"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Ticker(Protocol):
    """Something driven by an external clock every `interval_s` seconds."""

    name: str
    interval_s: float

    def tick(self, now: datetime) -> None:
        ...


class AutoTrader:
    """Turns confident consensus signals into gated trades for a fixed symbol list.

    The trader only ever moves ACTIVE -> STOPPED by itself. A new session
    (fresh gate and stats) is begun with `start_session`.
    """

    name = "auto_trader"

    def __init__(
        self,
        store: PriceHistoryStore,
        cache: IndicatorCache,
        gate: RiskGate,
        symbols: Sequence[str],
        *,
        strategy_cfg: Optional[StrategyConfig] = None,
        default_quantity: int = 10000,
        confidence_threshold: float = 0.6,
        enabled: bool = False,
        interval_s: float = 10.0,
        listener: Optional[Callable[[object], None]] = None,
    ) -> None:
        self.store = store
        self.cache = cache
        self.gate = gate
        self.symbols = list(symbols)
        self.strategy_cfg = strategy_cfg or StrategyConfig()
        self.default_quantity = int(default_quantity)
        self.confidence_threshold = float(confidence_threshold)
        self.interval_s = float(interval_s)
        self.listener = listener

        self.ledger: List[Trade] = []
        self._trade_outbox: List[Trade] = []
        self._notification_outbox: List[Notification] = []
        self.session = TradingSession(session_id=str(uuid.uuid4()), start_time=_utcnow(), status=ACTIVE if enabled else STOPPED)

    @property
    def status(self) -> str:
        return self.session.status

    @property
    def active(self) -> bool:
        return self.session.status == ACTIVE

    def start_session(self, now: Optional[datetime] = None) -> TradingSession:
        self.gate.reset()
        self.ledger = []
        self.session = TradingSession(session_id=str(uuid.uuid4()), start_time=now or _utcnow())
        log.info("session_start id=%s symbols=%s", self.session.session_id, ",".join(self.symbols))
        return self.session

    def stop(self, message: str, now: Optional[datetime] = None) -> None:
        if not self.active:
            return
        self.session.status = STOPPED
        log.warning("auto_trading_stopped session=%s reason=%s", self.session.session_id, message)
        self._emit_notification(Notification(type=SYSTEM, title=AUTO_TRADING_STOPPED, message=message, timestamp=now or _utcnow()))

    def tick(self, now: Optional[datetime] = None) -> List[Trade]:
        if not self.active:
            return []
        now = now or _utcnow()
        executed: List[Trade] = []

        for symbol in self.symbols:
            latest = self.store.latest(symbol)
            if latest is None:
                continue
            sig = combined_signal(symbol, self.store, self.cache, self.strategy_cfg)
            if not sig.actionable or sig.confidence <= self.confidence_threshold:
                continue

            intent = TradeIntent(
                symbol=symbol,
                action=sig.verdict,
                quantity=self.default_quantity,
                price=latest.price,
                timestamp=now,
                algorithm=COMBINED_ALGORITHM,
                confidence=sig.confidence,
                reasons=sig.reasons,
            )
            auth = self.gate.authorize(intent)
            if not auth.allowed:
                self.stop(format_volume_limit(self.gate.max_volume), now)
                break

            executed.append(self.execute(intent, now))
            if not self.active:
                break

        return executed

    def execute(self, intent: TradeIntent, now: Optional[datetime] = None) -> Trade:
        """Record an authorized intent as a trade. Automatic and manual trades share this path; reaching the volume cap stops the session."""
        trade = Trade(
            symbol=intent.symbol,
            action=intent.action,
            quantity=intent.quantity,
            price=intent.price,
            timestamp=intent.timestamp,
            algorithm=intent.algorithm,
            reason="; ".join(intent.reasons),
            trade_id=str(uuid.uuid4()),
        )
        self.gate.record(trade)
        self.ledger.append(trade)
        self.session.total_trades += 1
        self.session.total_volume += trade.notional
        log.info(
            "trade_executed id=%s symbol=%s action=%s qty=%d price=%s confidence=%.2f",
            trade.trade_id,
            trade.symbol,
            trade.action,
            trade.quantity,
            trade.price,
            intent.confidence,
        )
        self._trade_outbox.append(trade)
        if self.listener is not None:
            self.listener(trade)
        self._emit_notification(Notification(
            type=TRADE_EXECUTED,
            title="Trade Executed",
            message=format_trade(trade),
            timestamp=trade.timestamp,
            symbol=trade.symbol,
        ))
        if self.gate.limit_reached:
            self.stop(format_volume_limit(self.gate.max_volume), now)
        return trade

    def _emit_notification(self, note: Notification) -> None:
        self._notification_outbox.append(note)
        if self.listener is not None:
            self.listener(note)

    def drain_trades(self) -> List[Trade]:
        out, self._trade_outbox = self._trade_outbox, []
        return out

    def drain_notifications(self) -> List[Notification]:
        out, self._notification_outbox = self._notification_outbox, []
        return out


class SessionMonitor:
    """Periodically rolls the trader's ledger up into its session and enforces the volume stop."""

    name = "session_monitor"

    def __init__(self, trader: AutoTrader, interval_s: float = 60.0) -> None:
        self.trader = trader
        self.interval_s = float(interval_s)

    def tick(self, now: Optional[datetime] = None) -> TradingSession:
        session = self.trader.session
        ledger = self.trader.ledger
        session.total_trades = len(ledger)
        session.total_volume = sum(t.notional for t in ledger)
        session.total_pnl = sum(t.pnl for t in ledger if t.pnl is not None)

        max_volume = self.trader.gate.max_volume
        if self.trader.active and (self.trader.gate.limit_reached or session.total_volume >= max_volume):
            self.trader.stop(format_volume_limit(max_volume), now)

        log.info(
            "session id=%s status=%s trades=%d volume=%.2f pnl=%.2f",
            session.session_id,
            session.status,
            session.total_trades,
            session.total_volume,
            session.total_pnl,
        )
        return session
