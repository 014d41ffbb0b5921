from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence

import aiohttp

from ..errors import InvalidParameter
from ..models import PriceSample

log = logging.getLogger("rates")

BASE_PRICES: Dict[str, float] = {
    "EUR/USD": 1.0850,
    "GBP/USD": 1.2650,
    "USD/JPY": 149.50,
    "AUD/USD": 0.6580,
    "USD/CAD": 1.3650,
    "USD/CHF": 0.8750,
    "NZD/USD": 0.6120,
    "EUR/GBP": 0.8580,
}

DEFAULT_SPREAD = 0.0002  # 2 pips
MAX_FLUCTUATION = 0.001


@dataclass(frozen=True)
class Quote:
    symbol: str
    bid: float
    ask: float
    price: float
    timestamp: datetime
    source: str


def _quote(symbol: str, rate: float, spread: float, ts: datetime, source: str) -> Quote:
    return Quote(
        symbol=symbol,
        bid=round(rate - spread / 2, 5),
        ask=round(rate + spread / 2, 5),
        price=round(rate, 5),
        timestamp=ts,
        source=source,
    )


class MockRateProvider:
    """Base prices with a small random fluctuation on every fetch."""

    source = "mock-data"

    def __init__(self, *, spread: float = DEFAULT_SPREAD, seed: Optional[int] = None, base_prices: Optional[Dict[str, float]] = None):
        self.spread = spread
        self.base_prices = dict(base_prices or BASE_PRICES)
        self._rng = random.Random(seed)

    async def fetch_quotes(self, symbols: Optional[Sequence[str]] = None) -> List[Quote]:
        ts = datetime.now(timezone.utc)
        out: List[Quote] = []
        for symbol in symbols or list(self.base_prices):
            base = self.base_prices.get(symbol)
            if base is None:
                log.debug("mock_unknown_symbol symbol=%s", symbol)
                continue
            fluctuation = (self._rng.random() - 0.5) * MAX_FLUCTUATION
            out.append(_quote(symbol, base * (1 + fluctuation), self.spread, ts, self.source))
        return out

    async def close(self) -> None:
        return None


def pair_rate(symbol: str, rates: Dict[str, float], base_currency: str = "USD") -> Optional[float]:
    """Rate for BASE/QUOTE given a table of `base_currency` -> X rates (direct, inverse or cross)."""
    try:
        base, quote = symbol.split("/")
    except ValueError:
        return None
    if base == base_currency:
        return rates.get(quote)
    if quote == base_currency:
        r = rates.get(base)
        return 1.0 / r if r else None
    r_base = rates.get(base)
    r_quote = rates.get(quote)
    if not r_base or r_quote is None:
        return None
    return r_quote / r_base


class ExchangeRateProvider:
    """Latest rates from an exchangerate-api style endpoint: GET {url}/{base} -> {"base", "date", "rates"}."""

    source = "exchange-rate-api"

    def __init__(
        self,
        url: str = "https://api.exchangerate-api.com/v4/latest",
        *,
        api_key: str = "",
        base_currency: str = "USD",
        spread: float = DEFAULT_SPREAD,
        timeout_s: int = 10,
        max_retries: int = 3,
        backoff_s: float = 0.8,
    ):
        self.url = url.rstrip("/")
        self.api_key = api_key
        self.base_currency = base_currency
        self.spread = spread
        self.timeout_s = timeout_s
        self.max_retries = max_retries
        self.backoff_s = backoff_s
        self._session: Optional[aiohttp.ClientSession] = None

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout_s))
        return self._session

    async def fetch_rates(self) -> Dict:
        url = f"{self.url}/{self.base_currency}"
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        sess = await self._get_session()

        backoff = float(self.backoff_s)
        last_err: Optional[BaseException] = None
        data = None
        for attempt in range(1, int(self.max_retries) + 1):
            try:
                async with sess.get(url, headers=headers) as resp:
                    if resp.status == 429:
                        retry_after = resp.headers.get("Retry-After")
                        sleep_s = float(retry_after) if (retry_after and retry_after.isdigit()) else backoff
                        log.warning("rates_rate_limited status=%s sleep=%.1fs", resp.status, sleep_s)
                        await asyncio.sleep(sleep_s)
                        backoff = min(backoff * 2.0, 20.0)
                        continue
                    if resp.status != 200:
                        txt = await resp.text()
                        raise RuntimeError(f"Exchange rate request failed: {resp.status} {txt[:500]}")
                    data = await resp.json(content_type=None)
                last_err = None
                break
            except (asyncio.TimeoutError, aiohttp.ClientError) as e:
                last_err = e
                if attempt >= int(self.max_retries):
                    break
                log.warning(
                    "rates_timeout_or_client_err attempt=%d/%d backoff=%.1fs err=%s",
                    attempt,
                    self.max_retries,
                    backoff,
                    e,
                )
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2.0, 20.0)

        if last_err is not None:
            raise last_err
        if data is None:
            raise RuntimeError(f"Exchange rate API still rate limited after {self.max_retries} attempts")
        if not isinstance(data, dict) or not isinstance(data.get("rates"), dict):
            raise RuntimeError("Invalid response format from exchange rate API")
        return data

    async def fetch_quotes(self, symbols: Optional[Sequence[str]] = None) -> List[Quote]:
        data = await self.fetch_rates()
        rates = data["rates"]
        base = data.get("base") or self.base_currency
        ts = datetime.now(timezone.utc)

        out: List[Quote] = []
        for symbol in symbols or list(BASE_PRICES):
            rate = pair_rate(symbol, rates, base)
            if rate is None:
                log.warning("rate_missing symbol=%s base=%s", symbol, base)
                continue
            out.append(_quote(symbol, rate, self.spread, ts, self.source))
        return out


def synthetic_history(
    symbol: str,
    start: datetime,
    days: int,
    seed: Optional[int] = None,
) -> List[PriceSample]:
    """Daily random walk (up to +/-0.5% a day) from the pair's base price."""
    rng = random.Random(seed)
    price = BASE_PRICES.get(symbol, 1.0)
    out: List[PriceSample] = []
    for i in range(int(days)):
        price *= 1 + (rng.random() - 0.5) * 0.01
        out.append(PriceSample(price=round(price, 5), timestamp=start + timedelta(days=i)))
    return out


def build_provider(cfg):
    """Provider for a `ProviderConfig`."""
    kind = (cfg.type or "mock").strip().lower()
    if kind == "mock":
        return MockRateProvider(spread=cfg.spread, seed=cfg.seed)
    if kind == "exchange_rate":
        return ExchangeRateProvider(cfg.url, api_key=cfg.api_key, spread=cfg.spread, timeout_s=cfg.timeout_s)
    raise InvalidParameter(f"Unknown provider type: {cfg.type}")
