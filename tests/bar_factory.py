"""Helpers that build bars in exchange local time for the tests."""

import os
import sys

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import pandas as pd

from intraday_trader.execution.models import Bar

TZ = "America/New_York"
DAY = "2024-03-05"  # a regular Tuesday


def local_ts(day: str, clock: str) -> pd.Timestamp:
    return pd.Timestamp(f"{day} {clock}", tz=TZ)


def to_ms(ts: pd.Timestamp) -> int:
    return ts.value // 1_000_000


def make_bar(ts: pd.Timestamp, close: float, high: float = None, low: float = None, volume: float = 1000.0, open_: float = None) -> Bar:
    high = close + 0.5 if high is None else high
    low = close - 0.5 if low is None else low
    return Bar(
        open=close if open_ is None else open_,
        high=high,
        low=low,
        close=close,
        volume=volume,
        transactions=10,
        vwap=close,
        timestamp_ms=to_ms(ts),
    )


def session_bars(day: str = DAY, closes=None, count: int = 78, start: str = "09:30", step_minutes: int = 5):
    """`count` consecutive bars from `start`; flat at 100 unless `closes` is given."""
    if closes is None:
        closes = [100.0] * count
    first = local_ts(day, start)
    return [make_bar(first + pd.Timedelta(minutes=step_minutes * i), c) for i, c in enumerate(closes)]
