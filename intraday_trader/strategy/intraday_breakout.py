"""
Intraday range breakout strategy implementation.

This strategy tracks the highest high and lowest low of the current
trading day and signals `Buy` or `Sell` when the current bar's high or
low breaks those levels.  It never signals both directions at once and
honours the regular session window of the market calendar.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Optional, Sequence

from ..execution.models import Bar, Signal
from ..utils.market_calendar import MarketCalendar, MarketPhase
from .base import SignalSource


@dataclass
class IntradayLevels:
    """Intraday high/low levels for one local date."""
    high: Optional[float] = None
    low: Optional[float] = None
    current_date: Optional[date] = None


class DayRangeBreakoutStrategy(SignalSource):
    """Generate signals when price escapes the day's range so far."""

    name = "day_range_breakout"

    def __init__(self, calendar: MarketCalendar, session_only: bool = True) -> None:
        self.calendar = calendar
        self.session_only = session_only

    def levels(self, current_bar: Bar, historical_bars: Sequence[Bar]) -> IntradayLevels:
        """Compute the day's high and low from the bars preceding `current_bar`."""
        local_date = self.calendar.to_local(current_bar.time).date()
        state = IntradayLevels(current_date=local_date)
        # Walk backwards until the previous day is reached
        for bar in reversed(historical_bars):
            if self.calendar.to_local(bar.time).date() != local_date:
                break
            if state.high is None or bar.high > state.high:
                state.high = bar.high
            if state.low is None or bar.low < state.low:
                state.low = bar.low
        return state

    def generate_signal(self, current_bar: Bar, historical_bars: Sequence[Bar]) -> Signal:
        if self.session_only and self.calendar.phase(current_bar.time) is not MarketPhase.OPEN:
            return Signal.HOLD
        state = self.levels(current_bar, historical_bars)
        long_signal = state.high is not None and current_bar.high > state.high
        short_signal = state.low is not None and current_bar.low < state.low
        # Skip if both triggers
        if long_signal and not short_signal:
            return Signal.BUY
        if short_signal and not long_signal:
            return Signal.SELL
        return Signal.HOLD

    def get_parameters(self) -> Dict[str, Any]:
        return {'session_only': self.session_only}

    def set_parameters(self, parameters: Dict[str, Any]) -> None:
        if 'session_only' in parameters:
            self.session_only = bool(parameters['session_only'])
