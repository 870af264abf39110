"""
US equity market calendar.

This module centralises holiday, timezone and trading session handling.
Both the live loop and the backtest replayer ask the same
`MarketCalendar` whether a timestamp falls on a trading day and which
phase of the session it belongs to, so their decisions cannot drift
apart.
"""

from __future__ import annotations

import calendar as _calendar
from dataclasses import dataclass
from datetime import date, time, timedelta
from enum import Enum
from functools import lru_cache
from typing import FrozenSet
import pandas as pd

from ..config.schema import ConfigError, SessionConfig, parse_clock


class MarketPhase(Enum):
    NON_TRADING_DAY = "non_trading_day"
    PRE_OPEN = "pre_open"
    OPEN = "open"
    LIQUIDATION = "liquidation"
    POST_CLOSE = "post_close"


@dataclass(frozen=True)
class SessionWindow:
    """Timezone-aware session boundaries for one date."""
    open: pd.Timestamp
    close: pd.Timestamp
    liquidate_by: pd.Timestamp


def nth_weekday(year: int, month: int, weekday: int, n: int) -> date:
    """Return the `n`-th `weekday` (Monday=0) of a month; `n=-1` is the last one."""
    if n > 0:
        first = date(year, month, 1)
        offset = (weekday - first.weekday()) % 7
        return first + timedelta(days=offset + 7 * (n - 1))
    last = date(year, month, _calendar.monthrange(year, month)[1])
    offset = (last.weekday() - weekday) % 7
    return last - timedelta(days=offset)


def _observed(day: date) -> date:
    if day.weekday() == 5:
        return day - timedelta(days=1)
    if day.weekday() == 6:
        return day + timedelta(days=1)
    return day


@lru_cache(maxsize=None)
def us_market_holidays(year: int) -> FrozenSet[date]:
    """Observed US market holidays for `year`.

    Saturday holidays are observed on the preceding Friday and Sunday
    holidays on the following Monday.  An observed New Year's Day can
    therefore land on December 31 of the previous year.
    """
    rules = [
        date(year, 1, 1),
        nth_weekday(year, 1, 0, 3),    # Martin Luther King Jr. Day
        nth_weekday(year, 2, 0, 3),    # Presidents' Day
        nth_weekday(year, 5, 0, -1),   # Memorial Day
        date(year, 6, 19),
        date(year, 7, 4),
        nth_weekday(year, 9, 0, 1),    # Labor Day
        nth_weekday(year, 11, 3, 4),   # Thanksgiving
        date(year, 12, 25),
    ]
    return frozenset(_observed(d) for d in rules)


def _to_time(value: str) -> time:
    hour, minute, second = parse_clock(value)
    return time(hour, minute, second)


class MarketCalendar:
    """Trading-day and session-window resolution for one exchange timezone."""

    def __init__(
        self,
        timezone: str = "America/New_York",
        open_time: str = "09:30",
        close_time: str = "16:00",
        liquidate_by: str = "15:59:55",
        entry_cutoff_minutes: float = 2.0,
    ) -> None:
        self.timezone = timezone
        self.open_time = _to_time(open_time)
        self.close_time = _to_time(close_time)
        self.liquidate_time = _to_time(liquidate_by)
        if not (self.open_time < self.liquidate_time < self.close_time):
            raise ConfigError("liquidation deadline must fall strictly inside the session")
        self.entry_cutoff = timedelta(minutes=entry_cutoff_minutes)

    @classmethod
    def from_config(cls, session: SessionConfig) -> "MarketCalendar":
        return cls(
            timezone=session.timezone,
            open_time=session.open,
            close_time=session.close,
            liquidate_by=session.liquidate_by,
            entry_cutoff_minutes=session.entry_cutoff_minutes,
        )

    def to_local(self, ts: pd.Timestamp) -> pd.Timestamp:
        """Convert `ts` to the exchange timezone; naive values are taken as UTC."""
        if not isinstance(ts, pd.Timestamp):
            ts = pd.Timestamp(ts)
        if ts.tzinfo is None:
            ts = ts.tz_localize("UTC")
        return ts.tz_convert(self.timezone)

    def holidays(self, year: int) -> FrozenSet[date]:
        return us_market_holidays(year)

    def is_trading_day(self, day: date) -> bool:
        if day.weekday() >= 5:
            return False
        return day not in us_market_holidays(day.year) and day not in us_market_holidays(day.year + 1)

    def session_window(self, day: date) -> SessionWindow:
        def at(t: time) -> pd.Timestamp:
            return pd.Timestamp.combine(day, t).tz_localize(self.timezone)

        return SessionWindow(open=at(self.open_time), close=at(self.close_time), liquidate_by=at(self.liquidate_time))

    def phase(self, ts: pd.Timestamp) -> MarketPhase:
        local = self.to_local(ts)
        if not self.is_trading_day(local.date()):
            return MarketPhase.NON_TRADING_DAY
        now = local.time()
        if now < self.open_time:
            return MarketPhase.PRE_OPEN
        if now >= self.close_time:
            return MarketPhase.POST_CLOSE
        if now >= self.liquidate_time:
            return MarketPhase.LIQUIDATION
        return MarketPhase.OPEN

    def entries_allowed(self, ts: pd.Timestamp) -> bool:
        """True while the session is open and the entry cutoff has not been reached."""
        if self.phase(ts) is not MarketPhase.OPEN:
            return False
        local = self.to_local(ts)
        return local < self.session_window(local.date()).liquidate_by - self.entry_cutoff

    def next_open(self, ts: pd.Timestamp) -> pd.Timestamp:
        """Return the first session open strictly after `ts`."""
        local = self.to_local(ts)
        day = local.date()
        if self.is_trading_day(day) and local < self.session_window(day).open:
            return self.session_window(day).open
        day += timedelta(days=1)
        while not self.is_trading_day(day):
            day += timedelta(days=1)
        return self.session_window(day).open
