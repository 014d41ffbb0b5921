from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional, Tuple


BUY = "BUY"
SELL = "SELL"
HOLD = "HOLD"

FLAT = "FLAT"
LONG = "LONG"

ACTIVE = "ACTIVE"
STOPPED = "STOPPED"


@dataclass(frozen=True)
class PriceSample:
    price: float
    timestamp: datetime


@dataclass(frozen=True)
class Signal:
    verdict: str  # BUY, SELL or HOLD
    reason: str
    confidence: float = 0.0
    metadata: Dict[str, float] = field(default_factory=dict)

    @property
    def actionable(self) -> bool:
        return self.verdict != HOLD


@dataclass(frozen=True)
class CombinedSignal:
    verdict: str
    confidence: float
    reasons: Tuple[str, ...]
    components: Dict[str, Signal]

    @property
    def actionable(self) -> bool:
        return self.verdict != HOLD


@dataclass(frozen=True)
class TradeIntent:
    symbol: str
    action: str  # BUY or SELL
    quantity: int
    price: float
    timestamp: datetime
    algorithm: str = "MANUAL"
    confidence: float = 0.0
    reasons: Tuple[str, ...] = ()

    @property
    def notional(self) -> float:
        return self.quantity * self.price


@dataclass(frozen=True)
class Trade:
    symbol: str
    action: str
    quantity: int
    price: float
    timestamp: datetime
    pnl: Optional[float] = None
    capital: Optional[float] = None  # equity after the leg (backtests)
    algorithm: str = "MANUAL"
    reason: str = ""
    trade_id: Optional[str] = None

    @property
    def notional(self) -> float:
        return self.quantity * self.price


@dataclass(frozen=True)
class Authorization:
    allowed: bool
    reason: Optional[str] = None


@dataclass(frozen=True)
class Position:
    """Single-lot position: FLAT with no quantity, or LONG with quantity > 0."""

    state: str = FLAT
    quantity: int = 0
    entry_price: float = 0.0

    def __post_init__(self):
        if self.state == FLAT and self.quantity != 0:
            raise ValueError("FLAT position cannot hold quantity")
        if self.state == LONG and self.quantity <= 0:
            raise ValueError("LONG position needs a positive quantity")

    @property
    def is_flat(self) -> bool:
        return self.state == FLAT

    def market_value(self, price: float) -> float:
        return self.quantity * price


@dataclass(frozen=True)
class PerformanceMetrics:
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    win_rate: float = 0.0
    total_return: float = 0.0
    average_win: float = 0.0
    average_loss: float = 0.0
    profit_factor: float = 0.0
    sharpe_ratio: float = 0.0  # simplified: mean/stdev of trade pnl, not annualized
    max_drawdown: float = 0.0


@dataclass(frozen=True)
class BacktestResult:
    algorithm: str
    symbol: str
    initial_capital: float
    final_capital: float
    total_return_pct: float
    trades: Tuple[Trade, ...]
    metrics: PerformanceMetrics
    parameters: Dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class Notification:
    type: str  # TRADE_EXECUTED or SYSTEM
    title: str
    message: str
    timestamp: datetime
    symbol: Optional[str] = None


@dataclass
class TradingSession:
    session_id: str
    start_time: datetime
    status: str = ACTIVE
    total_trades: int = 0
    total_volume: float = 0.0
    total_pnl: float = 0.0
