"""
Alpaca market data feed.

This module wraps the `alpaca-trade-api` package to fetch historical
bars for backtests and warm-up, and to stream real-time minute bars
for paper and live trading.  If the package is not installed the feed
raises a clear exception when connecting.  Users can skip installing it
when running backtests from cached CSV files.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, List, Optional
import pandas as pd

from ..config.schema import AlpacaConfig
from ..execution.models import Bar
from .base import MarketDataProvider
from .realtime import RealtimeBarBuffer


logger = logging.getLogger(__name__)


def _timestamp_ms(value: Any) -> int:
    ts = pd.Timestamp(value)
    if ts.tzinfo is None:
        ts = ts.tz_localize("UTC")
    return ts.value // 1_000_000


class AlpacaDataFeed(MarketDataProvider):
    """Historical and streaming bars from Alpaca."""

    def __init__(self, config: AlpacaConfig, multiplier: int = 5, stream_feed: str = "iex") -> None:
        self.config = config
        self.multiplier = multiplier
        self.stream_feed = stream_feed
        self.buffer = RealtimeBarBuffer(multiplier=multiplier)
        self._rest: Any = None
        self._stream: Any = None
        self._stream_thread: Optional[threading.Thread] = None

    def connect(self) -> None:
        """Create the REST client.

        Raises
        ------
        RuntimeError
            If the alpaca-trade-api package is not installed.
        """
        try:
            import alpaca_trade_api as tradeapi  # type: ignore
        except ImportError as exc:
            raise RuntimeError(
                "alpaca-trade-api package is not installed.  Install it with 'pip install alpaca-trade-api' to download market data."
            ) from exc
        key_id, secret = self.config.credentials()
        self._rest = tradeapi.REST(key_id, secret, base_url=self.config.base_url, api_version='v2')

    def _timeframe(self, granularity: str) -> Any:
        """Map a granularity string to an Alpaca `TimeFrame`."""
        from alpaca_trade_api.rest import TimeFrame, TimeFrameUnit  # type: ignore

        unit_map = {
            'minute': TimeFrameUnit.Minute,
            'hour': TimeFrameUnit.Hour,
            'day': TimeFrameUnit.Day,
        }
        unit = unit_map.get(granularity.lower())
        if unit is None:
            raise ValueError(f"Unsupported granularity for Alpaca: {granularity}")
        return TimeFrame(self.multiplier, unit)

    def get_historical_bars(self, ticker: str, start: pd.Timestamp, end: pd.Timestamp, granularity: str = "minute") -> List[Bar]:
        if self._rest is None:
            raise RuntimeError("AlpacaDataFeed is not connected.  Call connect() before requesting data.")
        df = self._rest.get_bars(
            ticker,
            self._timeframe(granularity),
            pd.Timestamp(start).isoformat(),
            pd.Timestamp(end).isoformat(),
            adjustment='raw',
        ).df
        if df is None or df.empty:
            return []
        df = df.sort_index()
        bars = [
            Bar(
                open=float(row.open),
                high=float(row.high),
                low=float(row.low),
                close=float(row.close),
                volume=float(row.volume),
                transactions=int(getattr(row, 'trade_count', 0) or 0),
                vwap=float(getattr(row, 'vwap', row.close)),
                timestamp_ms=_timestamp_ms(ts),
            )
            for ts, row in zip(df.index, df.itertuples(index=False))
        ]
        logger.info("Fetched %d bars for %s between %s and %s", len(bars), ticker, start, end)
        return bars

    def start_stream(self, ticker: str) -> None:
        """Subscribe to minute bars and buffer them from a background thread."""
        from alpaca_trade_api.stream import Stream  # type: ignore

        key_id, secret = self.config.credentials()
        self._stream = Stream(key_id, secret, base_url=self.config.base_url, data_feed=self.stream_feed)

        async def on_bar(raw: Any) -> None:
            self.buffer.put(
                Bar(
                    open=float(raw.open),
                    high=float(raw.high),
                    low=float(raw.low),
                    close=float(raw.close),
                    volume=float(raw.volume),
                    transactions=int(getattr(raw, 'trade_count', 0) or 0),
                    vwap=float(getattr(raw, 'vwap', raw.close) or raw.close),
                    timestamp_ms=_timestamp_ms(raw.timestamp),
                )
            )

        self._stream.subscribe_bars(on_bar, ticker)
        self._stream_thread = threading.Thread(target=self._stream.run, name=f"alpaca-stream-{ticker}", daemon=True)
        self._stream_thread.start()
        logger.info("Streaming minute bars for %s (%s feed)", ticker, self.stream_feed)

    def get_latest_bars(self, ticker: str) -> List[Bar]:
        return self.buffer.drain()

    def shutdown(self) -> None:
        """Stop the stream if it was started."""
        if self._stream is not None:
            self._stream.stop()
            self._stream = None
        if self._stream_thread is not None:
            self._stream_thread.join(timeout=5)
            self._stream_thread = None
