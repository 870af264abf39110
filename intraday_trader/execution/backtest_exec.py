"""
Backtest execution engine.

This module contains the `BacktestReplayer` class which replays a
historical bar array through the same `IntradayTrader` used by the
live loop.  "Time" is the bar's own timestamp, so session rollover,
entry cutoff and liquidation checks see exactly what the live loop
would have seen.  Fills happen at the bar close with the configured
cost fraction charged on entry and exit.

Bars must be sorted by timestamp in ascending order; the replayer does
not re-sort them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional
import logging

from ..config.schema import Config
from ..reporting.metrics import (
    DailyStats,
    PeriodStats,
    compute_metrics,
    daily_breakdown,
    period_breakdown,
)
from ..strategy.base import SignalSource
from ..utils.market_calendar import MarketCalendar
from .models import Bar, EquityPoint, Position, TradeRecord, bar_duration
from .risk import RiskController
from .tracker import PositionTracker
from .trader import IntradayTrader


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BacktestResult:
    """Outcome of one replay run."""
    symbol: str
    trade_log: List[TradeRecord]
    starting_capital: float
    ending_capital: float
    sharpe_ratio: float
    max_drawdown: float
    win_rate: float
    equity_curve: List[EquityPoint] = field(default_factory=list)
    open_position: Optional[Position] = None
    periods: List[PeriodStats] = field(default_factory=list)
    daily: List[DailyStats] = field(default_factory=list)
    timezone: str = "America/New_York"


class BacktestReplayer:
    """Replay historical bars through the live decision logic."""

    def __init__(self, config: Config, signal_source: SignalSource, calendar: Optional[MarketCalendar] = None) -> None:
        self.config = config
        self.signal_source = signal_source
        self.calendar = calendar or MarketCalendar.from_config(config.session)
        self.risk = RiskController(config.risk)

    def run(self, bars: List[Bar], starting_capital: Optional[float] = None) -> BacktestResult:
        """Execute the backtest.

        Parameters
        ----------
        bars : list of Bar
            Historical bars in ascending timestamp order.
        starting_capital : float, optional
            Defaults to ``config.backtest.starting_capital``.

        Returns
        -------
        BacktestResult
            Trade log, equity curve and summary statistics.

        Raises
        ------
        ValueError
            If `bars` is empty.
        """
        if not bars:
            raise ValueError("cannot run a backtest over an empty bar array")
        capital = float(starting_capital if starting_capital is not None else self.config.backtest.starting_capital)
        symbol = self.config.ticker
        tracker = PositionTracker(symbol, capital, cost_pct=self.config.risk.cost_pct)
        trader = IntradayTrader(
            symbol,
            self.calendar,
            self.risk,
            tracker,
            self.signal_source,
            equity_fn=lambda: tracker.capital,
            bar_duration=bar_duration(self.config.data.multiplier, self.config.data.granularity),
        )
        window = self.config.data.history_bars
        equity_curve = [EquityPoint(timestamp=bars[0].time, equity=capital)]

        for idx, bar in enumerate(bars):
            history = bars[max(0, idx - window):idx]
            step = trader.on_bar(bar, history)
            if step.closed is not None:
                equity_curve.append(EquityPoint(timestamp=step.closed.exit_time, equity=tracker.capital))

        if tracker.is_open:
            logger.info(
                "End of data reached with an open %s position of %d %s; left open",
                tracker.position.side.value,
                tracker.position.quantity,
                symbol,
            )

        tz = self.calendar.timezone
        trades = list(tracker.trade_log)
        metrics = compute_metrics(trades, equity_curve, tz)
        return BacktestResult(
            symbol=symbol,
            trade_log=trades,
            starting_capital=capital,
            ending_capital=tracker.capital,
            sharpe_ratio=metrics['sharpe'],
            max_drawdown=metrics['max_drawdown'],
            win_rate=metrics['win_rate'],
            equity_curve=equity_curve,
            open_position=tracker.position,
            periods=period_breakdown(trades, tz),
            daily=daily_breakdown(trades, tz),
            timezone=tz,
        )
