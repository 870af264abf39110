"""Market data provider interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List
import pandas as pd

from ..execution.models import Bar


class MarketDataProvider(ABC):

    @abstractmethod
    def get_historical_bars(self, ticker: str, start: pd.Timestamp, end: pd.Timestamp, granularity: str) -> List[Bar]:
        """Bars between `start` and `end`, ascending by timestamp."""

    @abstractmethod
    def get_latest_bars(self, ticker: str) -> List[Bar]:
        """Drain bars completed since the previous call (may be empty)."""
