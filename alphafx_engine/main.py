from __future__ import annotations

import argparse
import asyncio
import csv
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from .config import default_config, load_config
from .engine import TradingEngine
from .errors import InvalidParameter
from .formatters import backtest_to_dict, format_backtest
from .models import PriceSample
from .providers.rates import synthetic_history
from .runner import EngineRunner


def _setup_logging(level: str) -> None:
    lvl = getattr(logging, (level or "INFO").upper(), logging.INFO)
    logging.basicConfig(
        level=lvl,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


def _parse_value(raw: str) -> Any:
    for cast in (int, float):
        try:
            return cast(raw)
        except ValueError:
            continue
    return raw


def parse_params(pairs: Optional[List[str]]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for item in pairs or []:
        if "=" not in item:
            raise InvalidParameter(f"Expected key=value, got {item!r}")
        k, v = item.split("=", 1)
        out[k.strip()] = _parse_value(v.strip())
    return out


def read_csv_series(path: str) -> List[PriceSample]:
    """CSV with `timestamp` (ISO 8601) and `price` columns."""
    out: List[PriceSample] = []
    with open(path, "r", encoding="utf-8", newline="") as f:
        for row in csv.DictReader(f):
            ts = datetime.fromisoformat(row["timestamp"].strip())
            if ts.tzinfo is None:
                ts = ts.replace(tzinfo=timezone.utc)
            out.append(PriceSample(price=float(row["price"]), timestamp=ts))
    return out


def _cmd_run(cfg, args) -> int:
    runner = EngineRunner(cfg)
    if args.auto_trading:
        runner.engine.trader.start_session()

    async def _run() -> None:
        try:
            await runner.run_forever(max_ticks=args.ticks)
        finally:
            # Close shared REST session cleanly.
            try:
                await runner.provider.close()
            except Exception as e:
                logging.getLogger("main").debug("provider_close_failed err=%s", e)

    asyncio.run(_run())
    return 0


def _cmd_backtest(cfg, args) -> int:
    if args.csv:
        series = read_csv_series(args.csv)
    else:
        start = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0) - timedelta(days=args.days)
        series = synthetic_history(args.symbol, start, args.days, seed=args.seed)

    engine = TradingEngine(cfg)
    result = engine.run_backtest(args.algorithm, args.symbol, series, args.capital, parse_params(args.param))
    print(format_backtest(result))
    if args.json:
        print(json.dumps(backtest_to_dict(result), indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", help="Path to YAML config (defaults are used when omitted)")

    p = argparse.ArgumentParser(description="AlphaFx Engine - FX signals, backtests and gated auto-trading")
    sub = p.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", parents=[common], help="Fetch prices and run the auto-trading loop")
    run.add_argument("--ticks", type=int, default=None, help="Stop after N cycles")
    run.add_argument("--auto-trading", action="store_true", help="Start an auto-trading session immediately")

    bt = sub.add_parser("backtest", parents=[common], help="Replay a price series through an algorithm")
    bt.add_argument("--algorithm", required=True, help="sma | rsi | bollinger | combined")
    bt.add_argument("--symbol", required=True)
    src = bt.add_mutually_exclusive_group(required=True)
    src.add_argument("--csv", help="CSV file with timestamp,price columns")
    src.add_argument("--days", type=int, help="Generate N days of synthetic history")
    bt.add_argument("--seed", type=int, default=None)
    bt.add_argument("--capital", type=float, default=10000.0)
    bt.add_argument("--param", action="append", help="Algorithm parameter, key=value (repeatable)")
    bt.add_argument("--json", action="store_true", help="Also print the result as JSON")
    return p


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    cfg = load_config(args.config) if args.config else default_config()
    _setup_logging(cfg.app.log_level)

    try:
        if args.command == "backtest":
            return _cmd_backtest(cfg, args)
        return _cmd_run(cfg, args)
    except KeyboardInterrupt:
        return 0
    except InvalidParameter as e:
        logging.getLogger("main").error("invalid_parameter err=%s", e)
        return 2
    except Exception as e:
        logging.getLogger("main").exception("fatal err=%s", e)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
