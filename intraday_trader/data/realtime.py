"""
Real-time bar buffering.

A background stream thread pushes raw (one-minute) bars into
`RealtimeBarBuffer`; the trading loop drains it and receives coarser
bars built from `multiplier` consecutive raw bars.  Aggregation is
order sensitive: the first raw bar sets the open and the timestamp, the
last sets the close, highs and lows are tracked and volume and
transaction counts are summed.  Raw bars that do not yet fill a group
stay pending until the next drain.
"""

from __future__ import annotations

import logging
import queue
import threading
from typing import List, Sequence

from ..execution.models import Bar


logger = logging.getLogger(__name__)


def aggregate_bars(raw: Sequence[Bar]) -> Bar:
    """Combine consecutive raw bars into one."""
    if not raw:
        raise ValueError("cannot aggregate an empty group of bars")
    volume = sum(b.volume for b in raw)
    if volume > 0:
        vwap = sum(b.vwap * b.volume for b in raw) / volume
    else:
        vwap = raw[-1].close
    return Bar(
        open=raw[0].open,
        high=max(b.high for b in raw),
        low=min(b.low for b in raw),
        close=raw[-1].close,
        volume=volume,
        transactions=sum(b.transactions for b in raw),
        vwap=vwap,
        timestamp_ms=raw[0].timestamp_ms,
    )


class RealtimeBarBuffer:
    """Bounded, thread-safe FIFO of raw bars with group aggregation."""

    def __init__(self, multiplier: int = 5, maxsize: int = 1000) -> None:
        if multiplier < 1:
            raise ValueError("multiplier must be >= 1")
        self.multiplier = multiplier
        self._queue: "queue.Queue[Bar]" = queue.Queue(maxsize=maxsize)
        self._pending: List[Bar] = []
        self._drain_lock = threading.Lock()
        self.dropped = 0

    def put(self, bar: Bar) -> None:
        """Producer side.  When full, the oldest raw bar is discarded."""
        while True:
            try:
                self._queue.put_nowait(bar)
                return
            except queue.Full:
                try:
                    self._queue.get_nowait()
                    self.dropped += 1
                    logger.warning("Real-time buffer full, dropped oldest raw bar")
                except queue.Empty:
                    pass

    def qsize(self) -> int:
        return self._queue.qsize()

    def drain(self) -> List[Bar]:
        """Consumer side: return all complete aggregated bars in arrival order."""
        with self._drain_lock:
            while True:
                try:
                    self._pending.append(self._queue.get_nowait())
                except queue.Empty:
                    break
            complete = len(self._pending) - len(self._pending) % self.multiplier
            groups = [self._pending[i:i + self.multiplier] for i in range(0, complete, self.multiplier)]
            self._pending = self._pending[complete:]
        return [aggregate_bars(g) for g in groups]

    @property
    def pending(self) -> int:
        return len(self._pending)
