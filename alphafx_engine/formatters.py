from __future__ import annotations

from dataclasses import asdict
from datetime import datetime
from typing import Any, Dict, Optional, Union

from .models import BacktestResult, CombinedSignal, Signal, Trade


def _fmt_price(val: Optional[float]) -> str:
    if val is None:
        return "-"
    return f"{val:g}"


def _fmt_ts(ts: Optional[datetime]) -> str:
    if ts is None:
        return "-"
    return ts.strftime("%Y-%m-%d %H:%M:%S")


def format_trade(trade: Trade) -> str:
    """`BUY 10,000 EUR/USD at 1.085`"""
    return f"{trade.action} {trade.quantity:,} {trade.symbol} at {_fmt_price(trade.price)}"


def format_volume_limit(max_volume: float) -> str:
    return f"Trading volume limit of {max_volume:,.0f} reached"


def format_signal(symbol: str, signal: Union[Signal, CombinedSignal]) -> str:
    if isinstance(signal, CombinedSignal):
        reason = "; ".join(signal.reasons) or "No consensus"
    else:
        reason = signal.reason
    return f"{symbol} {signal.verdict} ({signal.confidence:.2f}) {reason}"


def format_backtest(result: BacktestResult) -> str:
    m = result.metrics
    lines = [
        f"Backtest {result.algorithm.upper()} | {result.symbol}",
        f"Capital: {result.initial_capital:,.2f} -> {result.final_capital:,.2f} ({result.total_return_pct:+.2f}%)",
        f"Trades: {m.total_trades} | Wins: {m.winning_trades} | Losses: {m.losing_trades} | Win rate: {m.win_rate:.2f}%",
        f"PnL: {m.total_return:+.2f} | Avg win: {m.average_win:.2f} | Avg loss: {m.average_loss:.2f} | PF: {m.profit_factor:.2f}",
        f"Sharpe: {m.sharpe_ratio:.2f} | Max drawdown: {m.max_drawdown:.2f}%",
    ]
    if result.parameters:
        params = ", ".join(f"{k}={v}" for k, v in sorted(result.parameters.items()))
        lines.append(f"Params: {params}")
    for t in result.trades:
        pnl = "" if t.pnl is None else f" pnl={t.pnl:+.2f}"
        lines.append(f"  {_fmt_ts(t.timestamp)} {format_trade(t)}{pnl}  [{t.reason}]")
    return "\n".join(lines)


def backtest_to_dict(result: BacktestResult) -> Dict[str, Any]:
    """JSON-ready view of a backtest (timestamps as ISO strings)."""
    trades = []
    for t in result.trades:
        row = asdict(t)
        row["timestamp"] = t.timestamp.isoformat() if isinstance(t.timestamp, datetime) else t.timestamp
        trades.append(row)
    return {
        "algorithm": result.algorithm,
        "symbol": result.symbol,
        "initialCapital": result.initial_capital,
        "finalCapital": round(result.final_capital, 2),
        "totalReturn": result.total_return_pct,
        "parameters": dict(result.parameters),
        "metrics": asdict(result.metrics),
        "trades": trades,
    }
