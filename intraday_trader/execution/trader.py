"""
Per-bar trading decisions shared by the live and backtest engines.

`IntradayTrader.on_bar()` is the single place where entries and exits
are decided.  Both the live loop and the backtest replayer hand it
completed bars, and every decision is taken at the bar's close time
(`bar.time + bar_duration`), which is also when the fill happens at the
bar's close price.  Neither driver's clock enters the decision, so the
same bars always produce the same trades.

End-of-day liquidation happens on the last bar that completes before
the liquidation deadline: once the next bar could not close before
`liquidate_by`, the position is flattened and no new entry is taken.

When a broker is attached, orders are sent before the tracker is
updated so a rejected order leaves the recorded state untouched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence
import pandas as pd

from ..strategy.base import SignalSource
from ..strategy.indicators import average_true_range
from ..utils.market_calendar import MarketCalendar, MarketPhase
from .broker import Brokerage
from .models import Bar, DailySession, ExitReason, Side, Signal, TradeRecord
from .risk import RiskController
from .tracker import PositionTracker


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepResult:
    """What happened on one bar."""
    phase: MarketPhase
    signal: Optional[Signal] = None
    opened: bool = False
    closed: Optional[TradeRecord] = None
    entries_blocked: bool = False


class IntradayTrader:
    """Apply calendar, risk and position rules to one bar at a time."""

    def __init__(
        self,
        symbol: str,
        calendar: MarketCalendar,
        risk: RiskController,
        tracker: PositionTracker,
        signal_source: SignalSource,
        equity_fn: Callable[[], float],
        broker: Optional[Brokerage] = None,
        bar_duration: pd.Timedelta = pd.Timedelta(minutes=5),
    ) -> None:
        self.symbol = symbol
        self.calendar = calendar
        self.risk = risk
        self.tracker = tracker
        self.signal_source = signal_source
        self.equity_fn = equity_fn
        self.broker = broker
        self.bar_duration = bar_duration

    @property
    def session(self) -> Optional[DailySession]:
        return self.tracker.session

    def close_time(self, bar: Bar) -> pd.Timestamp:
        return bar.time + self.bar_duration

    def roll_session(self, now: pd.Timestamp) -> bool:
        """Start a new DailySession when the local date of `now` changes."""
        day = self.calendar.to_local(now).date()
        session = self.tracker.session
        if session is not None and session.date == day:
            return False
        balance = float(self.equity_fn())
        self.tracker.roll_session(day, balance)
        logger.info("New trading session %s, starting balance %.2f", day, balance)
        return True

    def entries_blocked(self) -> bool:
        """True when the daily loss cap or the trade cap has been hit."""
        session = self.tracker.session
        if session is None:
            return False
        return (
            self.risk.daily_loss_breached(session.cumulative_pnl, session.starting_balance)
            or self.risk.trade_cap_reached(session.trade_count)
        )

    def liquidation_due(self, now: pd.Timestamp) -> bool:
        """True when a bar closing at `now` is the last one before the deadline."""
        following_close = self.calendar.to_local(now + self.bar_duration)
        return following_close.time() >= self.calendar.liquidate_time

    def on_bar(self, bar: Bar, history: Sequence[Bar]) -> StepResult:
        """Process the completed `bar`; `history` excludes `bar`."""
        now = self.close_time(bar)
        phase = self.calendar.phase(bar.time)
        if self.tracker.is_open and self._opened_before_today(now):
            # Missed the previous session's liquidation (gap in data or downtime)
            record = self.force_close(now, bar.close, ExitReason.MARKET_CLOSED)
            self.roll_session(now)
            return StepResult(phase=phase, closed=record, entries_blocked=self.entries_blocked())
        self.roll_session(now)

        if phase not in (MarketPhase.OPEN, MarketPhase.LIQUIDATION):
            record = self.force_close(now, bar.close, ExitReason.MARKET_CLOSED) if self.tracker.is_open else None
            return StepResult(phase=phase, closed=record, entries_blocked=self.entries_blocked())

        atr = average_true_range(list(history[-self.risk.config.atr_period:]) + [bar], self.risk.config.atr_period)
        if self.tracker.is_open:
            return self._manage_open_position(now, phase, bar, history, atr)
        return self._consider_entry(now, phase, bar, history, atr)

    def _manage_open_position(self, now, phase, bar: Bar, history, atr: float) -> StepResult:
        position = self.tracker.position
        local = self.calendar.to_local(now)
        decision = self.risk.should_exit(
            position.side,
            bar.close,
            position.entry_price,
            position.stop_price,
            self.calendar.to_local(now + self.bar_duration).time(),
            self.calendar.liquidate_time,
        )
        if decision.exit:
            record = self._close(now, bar.close, decision.reason)
            return StepResult(phase=phase, closed=record, entries_blocked=self.entries_blocked())

        signal = self.signal_source.generate_signal(bar, history)
        if signal is position.side.contrary_signal:
            record = self._close(now, bar.close, ExitReason.CONTRARY_SIGNAL)
            return StepResult(phase=phase, signal=signal, closed=record, entries_blocked=self.entries_blocked())

        self.tracker.tighten_stop(self.risk.trailing_stop(position.stop_price, bar.close, atr, position.side))
        logger.debug(
            "%s | HOLDING %s %d @ %.2f, last %.2f, stop %.2f",
            local.strftime('%H:%M:%S'),
            position.side.value,
            position.quantity,
            position.entry_price,
            bar.close,
            position.stop_price,
        )
        return StepResult(phase=phase, signal=signal, entries_blocked=self.entries_blocked())

    def _consider_entry(self, now, phase, bar: Bar, history, atr: float) -> StepResult:
        if not self.calendar.entries_allowed(now) or self.liquidation_due(now):
            return StepResult(phase=phase)
        if self.entries_blocked():
            return StepResult(phase=phase, entries_blocked=True)

        signal = self.signal_source.generate_signal(bar, history)
        if signal is Signal.BUY:
            side = Side.LONG
        elif signal is Signal.SELL and self.risk.config.allow_short:
            side = Side.SHORT
        else:
            return StepResult(phase=phase, signal=signal)

        quantity = self.risk.position_size(self.tracker.session.equity, atr, bar.close)
        if quantity <= 0:
            logger.debug("Signal %s ignored: position size is zero (ATR %.4f, price %.2f)", signal.value, atr, bar.close)
            return StepResult(phase=phase, signal=signal)

        if self.broker is not None:
            self.broker.submit_market_order(self.symbol, quantity, side is Side.LONG)
        stop = self.risk.initial_stop(bar.close, side, atr)
        self.tracker.open(side, now, bar.close, quantity, stop)
        logger.info(
            "%s | OPEN  | %-5s | %5d shares @ %.2f | stop %.2f",
            self.calendar.to_local(now).strftime('%Y-%m-%d %H:%M:%S'),
            side.value.upper(),
            quantity,
            bar.close,
            stop,
        )
        return StepResult(phase=phase, signal=signal, opened=True)

    def _opened_before_today(self, now: pd.Timestamp) -> bool:
        entry_day = self.calendar.to_local(self.tracker.position.entry_time).date()
        return entry_day < self.calendar.to_local(now).date()

    def force_close(self, now: pd.Timestamp, price: float, reason: ExitReason) -> Optional[TradeRecord]:
        """Close the open position regardless of P/L, if there is one."""
        if not self.tracker.is_open:
            return None
        return self._close(now, price, reason)

    def _close(self, now: pd.Timestamp, price: float, reason: ExitReason) -> TradeRecord:
        if self.broker is not None:
            self.broker.close_position(self.symbol)
        record = self.tracker.close(now, price, reason)
        logger.info(
            "%s | CLOSE | %-5s | %5d shares @ %.2f | P/L %.2f | %s",
            self.calendar.to_local(now).strftime('%Y-%m-%d %H:%M:%S'),
            record.side.value.upper(),
            record.quantity,
            record.exit_price,
            record.profit_loss,
            reason.value,
        )
        return record
