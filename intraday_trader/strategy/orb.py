"""
Opening range breakout (ORB) strategy.

The first `orb_minutes` of the session define a range.  After it has
formed, a bar breaking above the range high signals `Buy` and a bar
breaking below the range low signals `Sell`; whether a `Sell` opens a
short is up to `risk.allow_short`.  Two filters guard the entry:

- RSI over today's closes must not be in overbought (for longs) or
  oversold (for shorts) territory.
- The breakout bar's volume must exceed `min_volume_multiplier` times
  the average volume of today's earlier bars.

No signals are produced before the range has formed or in the last
five minutes of the session.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict, Sequence

from ..execution.models import Bar, Signal
from ..utils.market_calendar import MarketCalendar
from .base import SignalSource
from .indicators import rsi


logger = logging.getLogger(__name__)


class OpeningRangeBreakoutStrategy(SignalSource):
    """ORB with RSI and volume confirmation."""

    name = "orb"

    def __init__(self, calendar: MarketCalendar) -> None:
        self.calendar = calendar
        self.orb_minutes = 15
        self.bar_minutes = 5
        self.rsi_period = 14
        self.rsi_overbought = 80.0
        self.rsi_oversold = 20.0
        self.volume_ma_period = 20
        self.min_volume_multiplier = 1.2

    def initialize(self) -> None:
        if self.rsi_period < 1 or self.volume_ma_period < 1:
            raise ValueError("Invalid indicator periods")
        if self.bar_minutes < 1 or self.orb_minutes < self.bar_minutes:
            raise ValueError("orb_minutes must cover at least one bar")
        if not 0 <= self.rsi_oversold < self.rsi_overbought <= 100:
            raise ValueError("RSI thresholds must satisfy 0 <= oversold < overbought <= 100")
        if self.min_volume_multiplier < 0:
            raise ValueError("min_volume_multiplier must be >= 0")

    def generate_signal(self, current_bar: Bar, historical_bars: Sequence[Bar]) -> Signal:
        if len(historical_bars) < max(self.rsi_period, self.volume_ma_period):
            logger.debug("Hold: insufficient history (%d bars)", len(historical_bars))
            return Signal.HOLD

        local = self.calendar.to_local(current_bar.time)
        window = self.calendar.session_window(local.date())
        orb_end = window.open + timedelta(minutes=self.orb_minutes)
        if local < orb_end or local > window.close - timedelta(minutes=5):
            return Signal.HOLD

        todays = [
            b for b in historical_bars
            if window.open <= self.calendar.to_local(b.time) < window.close
        ]
        bars_in_orb = self.orb_minutes // self.bar_minutes
        if len(todays) < bars_in_orb:
            return Signal.HOLD

        orb_bars = todays[:bars_in_orb]
        orb_high = max(b.high for b in orb_bars)
        orb_low = min(b.low for b in orb_bars)

        closes = [b.close for b in todays] + [current_bar.close]
        strength = rsi(closes, self.rsi_period)

        recent = [b.volume for b in todays[-self.volume_ma_period:]]
        volume_ma = sum(recent) / len(recent)
        if current_bar.volume < self.min_volume_multiplier * volume_ma:
            logger.debug("Hold: low breakout volume (%s < %s * %.1f)", current_bar.volume, self.min_volume_multiplier, volume_ma)
            return Signal.HOLD

        if current_bar.high > orb_high and strength < self.rsi_overbought:
            logger.debug("Buy: breakout %.2f > %.2f, RSI %.2f", current_bar.high, orb_high, strength)
            return Signal.BUY
        if current_bar.low < orb_low and strength > self.rsi_oversold:
            logger.debug("Sell: breakdown %.2f < %.2f, RSI %.2f", current_bar.low, orb_low, strength)
            return Signal.SELL
        return Signal.HOLD

    def get_parameters(self) -> Dict[str, Any]:
        return {
            'orb_minutes': self.orb_minutes,
            'bar_minutes': self.bar_minutes,
            'rsi_period': self.rsi_period,
            'rsi_overbought': self.rsi_overbought,
            'rsi_oversold': self.rsi_oversold,
            'volume_ma_period': self.volume_ma_period,
            'min_volume_multiplier': self.min_volume_multiplier,
        }

    def set_parameters(self, parameters: Dict[str, Any]) -> None:
        casts = {
            'orb_minutes': int,
            'bar_minutes': int,
            'rsi_period': int,
            'rsi_overbought': float,
            'rsi_oversold': float,
            'volume_ma_period': int,
            'min_volume_multiplier': float,
        }
        for key, value in parameters.items():
            if key not in casts:
                raise ValueError(f"Unknown ORB parameter: {key}")
            setattr(self, key, casts[key](value))
