"""
Replay of precomputed signals.

A classifier trained offline can export its predicted labels as a CSV
with columns ``timestamp`` (bar start, epoch milliseconds) and
``signal`` (``Buy``, ``Sell`` or ``Hold``).  This source looks the
current bar up by timestamp and returns `Hold` for unknown bars.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Sequence
import pandas as pd

from ..execution.models import Bar, Signal
from .base import SignalSource


class PrecomputedSignalSource(SignalSource):

    name = "precomputed"

    def __init__(self, signals: Mapping[int, Signal]) -> None:
        self.signals: Dict[int, Signal] = dict(signals)
        self.path = ""

    @classmethod
    def from_csv(cls, path: str) -> "PrecomputedSignalSource":
        df = pd.read_csv(path)
        missing = {'timestamp', 'signal'} - set(df.columns)
        if missing:
            raise ValueError(f"Signal file {path} is missing columns: {sorted(missing)}")
        source = cls({int(t): Signal.parse(s) for t, s in zip(df['timestamp'], df['signal'])})
        source.path = path
        return source

    def generate_signal(self, current_bar: Bar, historical_bars: Sequence[Bar]) -> Signal:
        return self.signals.get(current_bar.timestamp_ms, Signal.HOLD)

    def get_parameters(self) -> Dict[str, Any]:
        return {'signals_path': self.path, 'count': len(self.signals)}

    def set_parameters(self, parameters: Dict[str, Any]) -> None:
        if 'signals_path' in parameters:
            loaded = self.from_csv(str(parameters['signals_path']))
            self.signals = loaded.signals
            self.path = loaded.path
