"""Trading volume gate and position sizing."""

from __future__ import annotations

import logging
import math

from .errors import require_positive
from .models import Authorization

log = logging.getLogger("risk")

VOLUME_EXCEEDED = "Maximum trading volume exceeded"
DEFAULT_MAX_VOLUME = 10_000_000.0
DEFAULT_POSITION_FRACTION = 0.10


def position_size(capital: float, price: float, fraction: float = DEFAULT_POSITION_FRACTION) -> int:
    """Whole units bought by committing `fraction` of capital at `price`."""
    if price <= 0 or capital <= 0:
        return 0
    return int(math.floor(capital * fraction / price))


class RiskGate:
    """Tracks executed notional for one trading session against a volume cap.

    `authorize` never changes state. Callers `record` a trade only once it was
    actually executed, so a failed execution needs no rollback here.
    """

    def __init__(self, max_volume: float = DEFAULT_MAX_VOLUME) -> None:
        require_positive("max_volume", max_volume)
        self.max_volume = float(max_volume)
        self.cumulative_notional = 0.0
        self.trade_count = 0
        self._limit_logged = False

    @property
    def limit_reached(self) -> bool:
        return self.cumulative_notional >= self.max_volume

    @property
    def remaining(self) -> float:
        return max(0.0, self.max_volume - self.cumulative_notional)

    def authorize(self, trade) -> Authorization:
        notional = trade.quantity * trade.price
        if self.limit_reached or self.cumulative_notional + notional > self.max_volume:
            if not self._limit_logged:
                log.warning(
                    "volume_limit symbol=%s notional=%.2f cumulative=%.2f max=%.2f",
                    trade.symbol,
                    notional,
                    self.cumulative_notional,
                    self.max_volume,
                )
                self._limit_logged = True
            return Authorization(allowed=False, reason=VOLUME_EXCEEDED)
        return Authorization(allowed=True)

    def record(self, trade) -> None:
        self.cumulative_notional += trade.quantity * trade.price
        self.trade_count += 1
        log.debug("volume_recorded cumulative=%.2f max=%.2f trades=%d", self.cumulative_notional, self.max_volume, self.trade_count)

    def reset(self) -> None:
        self.cumulative_notional = 0.0
        self.trade_count = 0
        self._limit_logged = False
        log.info("volume_reset max=%.2f", self.max_volume)
