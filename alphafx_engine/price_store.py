from __future__ import annotations

import logging
from collections import deque
from datetime import datetime, timezone
from typing import Deque, Dict, List, Optional

from .errors import require_positive
from .models import PriceSample

log = logging.getLogger("price_store")

DEFAULT_CAPACITY = 200
DEFAULT_RECENT = 50


class PriceHistoryStore:
    """Bounded per-symbol price history. Oldest samples are evicted once a symbol is at capacity."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        require_positive("capacity", capacity)
        self.capacity = int(capacity)
        self._series: Dict[str, Deque[PriceSample]] = {}

    def add_sample(self, symbol: str, price: float, timestamp: Optional[datetime] = None) -> bool:
        ts = timestamp or datetime.now(timezone.utc)
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        series = self._series.get(symbol)
        if series is None:
            series = self._series[symbol] = deque(maxlen=self.capacity)
        if series and ts < series[-1].timestamp:
            log.debug("sample_out_of_order symbol=%s ts=%s last=%s", symbol, ts, series[-1].timestamp)
            return False
        series.append(PriceSample(price=float(price), timestamp=ts))
        return True

    def recent(self, symbol: str, n: int = DEFAULT_RECENT) -> List[PriceSample]:
        series = self._series.get(symbol)
        if not series or n <= 0:
            return []
        if n >= len(series):
            return list(series)
        return list(series)[-n:]

    def prices(self, symbol: str, n: int = DEFAULT_RECENT) -> List[float]:
        return [s.price for s in self.recent(symbol, n)]

    def latest(self, symbol: str) -> Optional[PriceSample]:
        series = self._series.get(symbol)
        return series[-1] if series else None

    def size(self, symbol: str) -> int:
        return len(self._series.get(symbol, ()))

    def symbols(self) -> List[str]:
        return list(self._series.keys())
