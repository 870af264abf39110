"""
CSV bar cache.

This module provides a class to load and save historical bars as CSV
files so backtests can be re-run without hitting the data vendor.  The
expected schema is:

```
timestamp,open,high,low,close,volume,transactions,vwap
```

`timestamp` is the bar start either as epoch milliseconds or as an ISO
timestamp (naive values are taken as UTC).  `transactions` and `vwap`
are optional.
"""

from __future__ import annotations

from pathlib import Path
from typing import List
import pandas as pd

from ..execution.models import Bar, bars_to_frame, frame_to_bars


class CSVDataLoader:
    """Load and save OHLCV bars for backtesting.

    Parameters
    ----------
    csv_dir : str
        Directory where the CSV files are located.
    """

    def __init__(self, csv_dir: str) -> None:
        self.csv_dir = Path(csv_dir)

    def path_for(self, symbol: str, multiplier: int = 5, granularity: str = "minute") -> Path:
        return self.csv_dir / f"{symbol}_{multiplier}_{granularity}.csv"

    def exists(self, symbol: str, multiplier: int = 5, granularity: str = "minute") -> bool:
        return self.path_for(symbol, multiplier, granularity).exists()

    def load(self, symbol: str, multiplier: int = 5, granularity: str = "minute") -> List[Bar]:
        file_path = self.path_for(symbol, multiplier, granularity)
        if not file_path.exists():
            raise FileNotFoundError(f"CSV file not found for symbol {symbol}: {file_path}")

        df = pd.read_csv(file_path)
        required = ['timestamp', 'open', 'high', 'low', 'close', 'volume']
        missing = [c for c in required if c not in df.columns]
        if missing:
            raise ValueError(
                f"Unrecognized CSV format for {symbol}. Missing columns: {missing}. "
                f"Found columns: {list(df.columns)}"
            )

        if not pd.api.types.is_numeric_dtype(df['timestamp']):
            ts = pd.to_datetime(df['timestamp'], utc=True, errors='coerce')
            if ts.isna().any():
                bad = df['timestamp'][ts.isna()].head(5).tolist()
                raise ValueError(f"Could not parse timestamps for {symbol}. Examples: {bad}")
            df['timestamp'] = (ts - pd.Timestamp(0, tz='UTC')) // pd.Timedelta(milliseconds=1)

        # Sorting happens here, at the ingestion boundary; engines assume ascending input
        df = df.sort_values('timestamp', kind='mergesort').drop_duplicates('timestamp', keep='last')
        return frame_to_bars(df)

    def save(self, symbol: str, bars: List[Bar], multiplier: int = 5, granularity: str = "minute") -> Path:
        file_path = self.path_for(symbol, multiplier, granularity)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        bars_to_frame(bars).to_csv(file_path, index=False)
        return file_path
