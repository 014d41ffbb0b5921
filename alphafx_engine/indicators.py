from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional, Sequence
import math

from .errors import require_positive


@dataclass(frozen=True)
class Band:
    upper: float
    middle: float
    lower: float


def ema_next(prev_ema: Optional[float], x: float, length: int) -> float:
    if length <= 1:
        return x
    alpha = 2.0 / (length + 1.0)
    return x if prev_ema is None else (alpha * x + (1.0 - alpha) * prev_ema)


def rma_next(prev: float, x: float, length: int) -> float:
    """Wilder's smoothing step."""
    return (prev * (length - 1) + x) / float(length)


def stdev_population(values: Sequence[float]) -> float:
    n = len(values)
    if n == 0:
        return 0.0
    mean = sum(values) / n
    return math.sqrt(sum((v - mean) ** 2 for v in values) / n)


def sma(values: Sequence[float], period: int) -> List[float]:
    """Trailing simple moving average, one value per index from period-1 on."""
    require_positive("period", period)
    if len(values) < period:
        return []
    return [sum(values[i - period + 1:i + 1]) / period for i in range(period - 1, len(values))]


def ema(values: Sequence[float], period: int) -> List[float]:
    require_positive("period", period)
    out: List[float] = []
    prev: Optional[float] = None
    for v in values:
        prev = ema_next(prev, v, period)
        out.append(prev)
    return out


def _rsi_value(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        # flat window has no momentum either way
        return 50.0 if avg_gain == 0 else 100.0
    rs = avg_gain / avg_loss
    return 100.0 - (100.0 / (1.0 + rs))


def rsi(values: Sequence[float], period: int = 14) -> List[float]:
    """Wilder RSI. First averages are simple means over the first `period` changes."""
    require_positive("period", period)
    if len(values) < period + 1:
        return []

    gains: List[float] = []
    losses: List[float] = []
    for i in range(1, len(values)):
        ch = values[i] - values[i - 1]
        gains.append(ch if ch > 0 else 0.0)
        losses.append(-ch if ch < 0 else 0.0)

    avg_gain = sum(gains[:period]) / period
    avg_loss = sum(losses[:period]) / period
    out = [_rsi_value(avg_gain, avg_loss)]
    for i in range(period, len(gains)):
        avg_gain = rma_next(avg_gain, gains[i], period)
        avg_loss = rma_next(avg_loss, losses[i], period)
        out.append(_rsi_value(avg_gain, avg_loss))
    return out


def bollinger_bands(values: Sequence[float], period: int = 20, std_dev: float = 2.0) -> List[Band]:
    require_positive("period", period)
    if len(values) < period:
        return []
    out: List[Band] = []
    for i in range(period - 1, len(values)):
        window = values[i - period + 1:i + 1]
        middle = sum(window) / period
        dev = stdev_population(window) * std_dev
        out.append(Band(upper=middle + dev, middle=middle, lower=middle - dev))
    return out
