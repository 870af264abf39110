import os
import sys
from datetime import date

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from intraday_trader.execution.models import ExitReason, Side
from intraday_trader.execution.tracker import PositionTracker, round_trip_pnl

import pandas as pd
import unittest

T0 = pd.Timestamp("2024-03-05 10:00", tz="America/New_York")
T1 = pd.Timestamp("2024-03-05 11:00", tz="America/New_York")


class TestRoundTrip(unittest.TestCase):
    def test_costs_charged_on_both_fills(self) -> None:
        pnl, fees = round_trip_pnl(Side.LONG, 100.0, 100.0, 500, 0.0005)
        self.assertAlmostEqual(fees, 50.0)
        self.assertAlmostEqual(pnl, -50.0)

    def test_cost_symmetry_between_sides(self) -> None:
        long_pnl, _ = round_trip_pnl(Side.LONG, 100.0, 102.0, 100, 0.001)
        short_pnl, _ = round_trip_pnl(Side.SHORT, 102.0, 100.0, 100, 0.001)
        self.assertAlmostEqual(long_pnl, short_pnl)
        self.assertAlmostEqual(long_pnl, 200.0 - 0.001 * (10_000 + 10_200))


class TestPositionTracker(unittest.TestCase):
    def setUp(self) -> None:
        self.tracker = PositionTracker("QQQ", 100_000, cost_pct=0.0)
        self.tracker.roll_session(date(2024, 3, 5), 100_000)

    def test_open_close_updates_session(self) -> None:
        self.tracker.open(Side.LONG, T0, 100.0, 10, 98.0)
        self.assertTrue(self.tracker.is_open)
        record = self.tracker.close(T1, 101.0, ExitReason.TAKE_PROFIT)
        self.assertFalse(self.tracker.is_open)
        self.assertAlmostEqual(record.profit_loss, 10.0)
        self.assertEqual(self.tracker.session.trade_count, 1)
        self.assertAlmostEqual(self.tracker.session.cumulative_pnl, 10.0)
        self.assertAlmostEqual(self.tracker.capital, 100_010.0)
        self.assertEqual(self.tracker.trade_log, [record])

    def test_single_position_invariant(self) -> None:
        self.tracker.open(Side.LONG, T0, 100.0, 10, 98.0)
        with self.assertRaises(ValueError):
            self.tracker.open(Side.SHORT, T0, 100.0, 10, 102.0)

    def test_rejects_zero_quantity(self) -> None:
        with self.assertRaises(ValueError):
            self.tracker.open(Side.LONG, T0, 100.0, 0, 98.0)

    def test_close_requires_position_and_ordered_times(self) -> None:
        with self.assertRaises(ValueError):
            self.tracker.close(T1, 100.0, ExitReason.STOP_LOSS)
        self.tracker.open(Side.LONG, T1, 100.0, 10, 98.0)
        with self.assertRaises(ValueError):
            self.tracker.close(T0, 100.0, ExitReason.STOP_LOSS)

    def test_tighten_stop(self) -> None:
        self.tracker.open(Side.SHORT, T0, 100.0, 10, 102.0)
        self.tracker.tighten_stop(101.0)
        self.assertEqual(self.tracker.position.stop_price, 101.0)
        self.tracker.tighten_stop(None)
        self.assertEqual(self.tracker.position.stop_price, 101.0)

    def test_roll_session_resets_counters(self) -> None:
        self.tracker.open(Side.LONG, T0, 100.0, 10, 98.0)
        self.tracker.close(T1, 99.0, ExitReason.STOP_LOSS)
        session = self.tracker.roll_session(date(2024, 3, 6), self.tracker.capital)
        self.assertEqual(session.trade_count, 0)
        self.assertEqual(session.cumulative_pnl, 0.0)
        self.assertAlmostEqual(session.starting_balance, 99_990.0)


if __name__ == '__main__':
    unittest.main()
