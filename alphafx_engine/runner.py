from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional

from .config import Config
from .engine import TradingEngine
from .formatters import format_signal
from .models import Trade
from .providers.rates import build_provider

log = logging.getLogger("runner")


class EngineRunner:
    """Drives a TradingEngine from the clock: price fetches, auto-trading ticks and session roll-ups.

    Tick bodies are synchronous; only the quote fetch and the sleeps await.
    A failed fetch or tick is logged and retried on the next interval.
    """

    def __init__(self, cfg: Config, *, engine: Optional[TradingEngine] = None, provider=None):
        self.cfg = cfg
        self.engine = engine or TradingEngine(cfg)
        self.provider = provider or build_provider(cfg.provider)
        self.symbols = list(cfg.trading.symbols or [])
        self._stopping = False

    def stop(self) -> None:
        self._stopping = True

    async def fetch_prices(self) -> int:
        try:
            quotes = await self.provider.fetch_quotes(self.symbols)
        except Exception as e:
            log.warning("price_fetch_failed symbols=%d err=%s", len(self.symbols), e)
            return 0
        n = self.engine.ingest_quotes(quotes)
        log.debug("prices_ingested count=%d", n)
        return n

    def _publish(self) -> List[Trade]:
        trades = self.engine.trader.drain_trades()
        for note in self.engine.trader.drain_notifications():
            log.info("notification type=%s title=%s message=%s", note.type, note.title, note.message)
        return trades

    async def run_once(self, now: Optional[datetime] = None) -> List[Trade]:
        """One full cycle: fetch prices, run every ticker, publish what they emitted."""
        now = now or datetime.now(timezone.utc)
        await self.fetch_prices()
        for ticker in self.engine.tickers():
            try:
                ticker.tick(now)
            except Exception as e:
                log.warning("tick_failed ticker=%s err=%s", ticker.name, e)
        return self._publish()

    async def _every(self, name: str, interval_s: float, fn: Callable[[], Awaitable[None]]) -> None:
        while not self._stopping:
            try:
                await fn()
            except Exception as e:
                log.warning("loop_failed loop=%s err=%s", name, e)
            await asyncio.sleep(interval_s)

    def _ticker_step(self, ticker) -> Callable[[], Awaitable[None]]:
        async def _step() -> None:
            ticker.tick(datetime.now(timezone.utc))
            self._publish()
        return _step

    async def _fetch_step(self) -> None:
        await self.fetch_prices()

    def log_signals(self) -> None:
        for symbol in self.symbols:
            sig = self.engine.evaluate(symbol, ("combined",))["signals"]["combined"]
            log.info("signal %s", format_signal(symbol, sig))

    async def run_forever(self, max_ticks: Optional[int] = None) -> None:
        if not self.symbols:
            raise ValueError("No symbols configured.")
        log.info(
            "runner_start symbols=%s auto_trading=%s session=%s",
            ",".join(self.symbols),
            self.engine.trader.active,
            self.engine.trader.session.session_id,
        )

        if max_ticks is not None:
            for i in range(int(max_ticks)):
                if self._stopping:
                    break
                await self.run_once()
                self.log_signals()
                if i + 1 < int(max_ticks):
                    await asyncio.sleep(self.cfg.trading.price_interval_s)
            return

        loops = [self._every("prices", self.cfg.trading.price_interval_s, self._fetch_step)]
        for ticker in self.engine.tickers():
            loops.append(self._every(ticker.name, ticker.interval_s, self._ticker_step(ticker)))
        await asyncio.gather(*loops)
