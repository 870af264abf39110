"""
Performance metrics calculations.

This module provides helpers to compute common performance statistics
from a trade log and an equity curve.  These metrics are used both for
backtesting reports and for summarising live trading sessions.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from datetime import date, time
from typing import Dict, List, Sequence
import math
import pandas as pd

from ..execution.models import EquityPoint, TradeRecord


TRADING_DAYS_PER_YEAR = 252

# (name, start inclusive, end exclusive) in exchange local time
PERIODS = (
    ('Market Open', time(9, 30), time(11, 0)),
    ('Mid-Day', time(11, 0), time(15, 0)),
    ('Market Close', time(15, 0), time(16, 0)),
)


@dataclass(frozen=True)
class PeriodStats:
    period: str
    trades: int
    win_rate: float
    average_pnl: float
    total_pnl: float


@dataclass(frozen=True)
class DailyStats:
    day: date
    trades: int
    wins: int
    pnl: float


def sharpe_ratio(returns: Sequence[float]) -> float:
    """Annualised Sharpe ratio using the population standard deviation.

    Returns 0 for fewer than two observations or zero dispersion.
    """
    if len(returns) < 2:
        return 0.0
    mean_ret = sum(returns) / len(returns)
    variance = sum((r - mean_ret) ** 2 for r in returns) / len(returns)
    std_dev = math.sqrt(variance)
    if std_dev == 0:
        return 0.0
    return mean_ret / std_dev * math.sqrt(TRADING_DAYS_PER_YEAR)


def max_drawdown(equity: Sequence[float]) -> float:
    """Largest peak-to-trough decline as a fraction of the running peak."""
    peak = None
    worst = 0.0
    for value in equity:
        if peak is None or value > peak:
            peak = value
        if peak and peak > 0:
            worst = max(worst, (peak - value) / peak)
    return worst


def win_rate(trades: Sequence[TradeRecord]) -> float:
    if not trades:
        return 0.0
    return sum(1 for t in trades if t.profit_loss > 0) / len(trades)


def _local(ts: pd.Timestamp, tz: str) -> pd.Timestamp:
    if ts.tzinfo is None:
        ts = ts.tz_localize("UTC")
    return ts.tz_convert(tz)


def daily_breakdown(trades: Sequence[TradeRecord], tz: str = "America/New_York") -> List[DailyStats]:
    """Trades, wins and P/L per local exit date, in date order."""
    days: "OrderedDict[date, List[TradeRecord]]" = OrderedDict()
    for t in sorted(trades, key=lambda t: t.exit_time):
        days.setdefault(_local(t.exit_time, tz).date(), []).append(t)
    return [
        DailyStats(
            day=d,
            trades=len(ts),
            wins=sum(1 for t in ts if t.profit_loss > 0),
            pnl=sum(t.profit_loss for t in ts),
        )
        for d, ts in days.items()
    ]


def daily_returns(trades: Sequence[TradeRecord], starting_capital: float, tz: str = "America/New_York") -> List[float]:
    """Daily P/L divided by the equity at the start of that day."""
    equity = starting_capital
    returns: List[float] = []
    for day in daily_breakdown(trades, tz):
        if equity > 0:
            returns.append(day.pnl / equity)
        equity += day.pnl
    return returns


def period_breakdown(trades: Sequence[TradeRecord], tz: str = "America/New_York") -> List[PeriodStats]:
    """Bucket trades by entry time of day; trades outside the session are ignored."""
    out: List[PeriodStats] = []
    for name, start, end in PERIODS:
        bucket = [t for t in trades if start <= _local(t.entry_time, tz).time() < end]
        total = sum(t.profit_loss for t in bucket)
        out.append(
            PeriodStats(
                period=name,
                trades=len(bucket),
                win_rate=win_rate(bucket),
                average_pnl=total / len(bucket) if bucket else 0.0,
                total_pnl=total,
            )
        )
    return out


def compute_metrics(trades: Sequence[TradeRecord], equity_curve: Sequence[EquityPoint], tz: str = "America/New_York") -> Dict[str, float]:
    """Compute a set of summary statistics.

    Parameters
    ----------
    trades : list of TradeRecord
        Completed trades, net of costs.
    equity_curve : list of EquityPoint
        Starting equity followed by the equity after each trade.

    Returns
    -------
    dict
        Dictionary of performance metrics.
    """
    if not equity_curve:
        return {
            'starting_capital': 0.0,
            'ending_capital': 0.0,
            'total_return': 0.0,
            'max_drawdown': 0.0,
            'sharpe': 0.0,
            'win_rate': 0.0,
            'profit_factor': 0.0,
            'avg_trade': 0.0,
            'total_fees': 0.0,
            'num_trades': 0,
        }

    starting_equity = equity_curve[0].equity
    ending_equity = equity_curve[-1].equity
    total_return = (ending_equity - starting_equity) / starting_equity if starting_equity else 0.0

    wins = [t.profit_loss for t in trades if t.profit_loss > 0]
    losses = [t.profit_loss for t in trades if t.profit_loss < 0]
    gross_loss = -sum(losses)
    profit_factor = sum(wins) / gross_loss if gross_loss > 0 else 0.0

    return {
        'starting_capital': starting_equity,
        'ending_capital': ending_equity,
        'total_return': total_return,
        'max_drawdown': max_drawdown([p.equity for p in equity_curve]),
        'sharpe': sharpe_ratio(daily_returns(trades, starting_equity, tz)),
        'win_rate': win_rate(trades),
        'profit_factor': profit_factor,
        'avg_trade': sum(t.profit_loss for t in trades) / len(trades) if trades else 0.0,
        'total_fees': sum(t.fees for t in trades),
        'num_trades': len(trades),
    }
