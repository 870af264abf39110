import os
import sys
import tempfile

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)
if CURRENT_DIR not in sys.path:
    sys.path.insert(0, CURRENT_DIR)

from bar_factory import DAY, session_bars, to_ms
from intraday_trader.data.csv_data import CSVDataLoader

import pandas as pd
import unittest


class TestCSVDataLoader(unittest.TestCase):
    def test_save_then_load(self) -> None:
        bars = session_bars(DAY, count=5)
        with tempfile.TemporaryDirectory() as tmp:
            loader = CSVDataLoader(tmp)
            path = loader.save("QQQ", bars)
            self.assertEqual(os.path.basename(path), "QQQ_5_minute.csv")
            self.assertTrue(loader.exists("QQQ"))
            self.assertEqual(loader.load("QQQ"), bars)

    def test_iso_timestamps_sorted_and_deduplicated(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            pd.DataFrame({
                'timestamp': ['2024-03-05T14:35:00Z', '2024-03-05T14:30:00Z', '2024-03-05T14:35:00Z'],
                'open': [1.0, 2.0, 3.0],
                'high': [1.0, 2.0, 3.0],
                'low': [1.0, 2.0, 3.0],
                'close': [1.0, 2.0, 3.0],
                'volume': [10, 20, 30],
            }).to_csv(os.path.join(tmp, 'QQQ_5_minute.csv'), index=False)
            bars = CSVDataLoader(tmp).load("QQQ")
        self.assertEqual([b.timestamp_ms for b in bars], [
            to_ms(pd.Timestamp('2024-03-05 14:30', tz='UTC')),
            to_ms(pd.Timestamp('2024-03-05 14:35', tz='UTC')),
        ])
        # the last duplicate wins; missing vwap falls back to the close
        self.assertEqual(bars[1].close, 3.0)
        self.assertEqual(bars[1].vwap, 3.0)
        self.assertEqual(bars[1].transactions, 0)

    def test_missing_columns(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            pd.DataFrame({'timestamp': [1], 'close': [1.0]}).to_csv(os.path.join(tmp, 'QQQ_5_minute.csv'), index=False)
            with self.assertRaises(ValueError):
                CSVDataLoader(tmp).load("QQQ")
            with self.assertRaises(FileNotFoundError):
                CSVDataLoader(tmp).load("SPY")


if __name__ == '__main__':
    unittest.main()
