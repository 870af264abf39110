"""
Bar, signal, position and trade models.

These dataclasses represent the objects passed between the data feeds,
the signal sources and the execution engines.  Keeping them in a
separate module improves readability and makes unit testing easier.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Iterable, List
import pandas as pd


class Signal(Enum):
    """Decision produced by a signal source for one bar."""
    BUY = "Buy"
    SELL = "Sell"
    HOLD = "Hold"

    @classmethod
    def parse(cls, value: str) -> "Signal":
        for member in cls:
            if member.value.lower() == str(value).strip().lower():
                return member
        raise ValueError(f"Unknown signal: {value!r}")


class Side(Enum):
    LONG = "long"
    SHORT = "short"

    @property
    def sign(self) -> int:
        return 1 if self is Side.LONG else -1

    @property
    def contrary_signal(self) -> Signal:
        """The signal that closes a position on this side."""
        return Signal.SELL if self is Side.LONG else Signal.BUY


class ExitReason(Enum):
    END_OF_DAY = "end_of_day"
    STOP_LOSS = "stop_loss"
    TRAILING_STOP = "trailing_stop"
    TAKE_PROFIT = "take_profit"
    CONTRARY_SIGNAL = "contrary_signal"
    MARKET_CLOSED = "market_closed"


@dataclass(frozen=True)
class Bar:
    """One OHLCV bar.  `timestamp_ms` is the bar start in epoch milliseconds (UTC)."""
    open: float
    high: float
    low: float
    close: float
    volume: float
    transactions: int
    vwap: float
    timestamp_ms: int

    @property
    def time(self) -> pd.Timestamp:
        return pd.Timestamp(self.timestamp_ms, unit="ms", tz="UTC")


@dataclass
class Position:
    """Represents the open position on a given symbol."""
    symbol: str
    side: Side
    entry_time: pd.Timestamp
    entry_price: float
    quantity: int
    stop_price: float  # trailing stop, only ever tightened


@dataclass(frozen=True)
class TradeRecord:
    """Represents a completed round trip.  `profit_loss` is net of `fees`."""
    symbol: str
    side: Side
    entry_time: pd.Timestamp
    exit_time: pd.Timestamp
    entry_price: float
    exit_price: float
    quantity: int
    profit_loss: float
    fees: float
    reason: ExitReason


@dataclass
class DailySession:
    """Per-date risk budget bookkeeping."""
    date: date
    starting_balance: float
    cumulative_pnl: float = 0.0
    trade_count: int = 0

    @property
    def equity(self) -> float:
        return self.starting_balance + self.cumulative_pnl


@dataclass(frozen=True)
class EquityPoint:
    """Represents the account equity at a given timestamp."""
    timestamp: pd.Timestamp
    equity: float


_GRANULARITY_UNITS = {
    'minute': pd.Timedelta(minutes=1),
    'hour': pd.Timedelta(hours=1),
    'day': pd.Timedelta(days=1),
}


def bar_duration(multiplier: int = 5, granularity: str = "minute") -> pd.Timedelta:
    """Length of one bar, e.g. five minutes for ``(5, "minute")``."""
    unit = _GRANULARITY_UNITS.get(granularity.lower())
    if unit is None:
        raise ValueError(f"Unsupported granularity: {granularity}")
    return unit * multiplier


BAR_COLUMNS = ['timestamp', 'open', 'high', 'low', 'close', 'volume', 'transactions', 'vwap']


def bars_to_frame(bars: Iterable[Bar]) -> pd.DataFrame:
    """Convert bars to a DataFrame with a `timestamp` column in epoch ms."""
    rows = [
        {
            'timestamp': b.timestamp_ms,
            'open': b.open,
            'high': b.high,
            'low': b.low,
            'close': b.close,
            'volume': b.volume,
            'transactions': b.transactions,
            'vwap': b.vwap,
        }
        for b in bars
    ]
    return pd.DataFrame(rows, columns=BAR_COLUMNS)


def frame_to_bars(df: pd.DataFrame) -> List[Bar]:
    """Convert a DataFrame produced by `bars_to_frame` back into bars.

    Missing `transactions` or `vwap` columns default to 0 and the close
    price respectively.
    """
    if df.empty:
        return []
    transactions = df['transactions'] if 'transactions' in df.columns else pd.Series(0, index=df.index)
    vwap = df['vwap'] if 'vwap' in df.columns else df['close']
    return [
        Bar(
            open=float(o),
            high=float(h),
            low=float(lo),
            close=float(c),
            volume=float(v),
            transactions=int(n),
            vwap=float(vw),
            timestamp_ms=int(t),
        )
        for t, o, h, lo, c, v, n, vw in zip(
            df['timestamp'], df['open'], df['high'], df['low'], df['close'],
            df['volume'], transactions, vwap,
        )
    ]
