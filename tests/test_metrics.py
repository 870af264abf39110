import math
import os
import sys

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from intraday_trader.execution.models import EquityPoint, ExitReason, Side, TradeRecord
from intraday_trader.reporting.metrics import (
    compute_metrics,
    daily_breakdown,
    daily_returns,
    max_drawdown,
    period_breakdown,
    sharpe_ratio,
    win_rate,
)

import pandas as pd
import unittest


def _trade(entry: str, exit_: str, pnl: float) -> TradeRecord:
    return TradeRecord(
        symbol="QQQ",
        side=Side.LONG,
        entry_time=pd.Timestamp(entry, tz="America/New_York"),
        exit_time=pd.Timestamp(exit_, tz="America/New_York"),
        entry_price=100.0,
        exit_price=100.0,
        quantity=10,
        profit_loss=pnl,
        fees=1.0,
        reason=ExitReason.TAKE_PROFIT,
    )


class TestStatistics(unittest.TestCase):
    def test_sharpe_uses_population_stdev(self) -> None:
        # mean 0.01, population stdev 0.01
        self.assertAlmostEqual(sharpe_ratio([0.0, 0.02]), math.sqrt(252))

    def test_sharpe_degenerate_cases(self) -> None:
        self.assertEqual(sharpe_ratio([0.05]), 0.0)
        self.assertEqual(sharpe_ratio([0.01, 0.01, 0.01]), 0.0)

    def test_max_drawdown(self) -> None:
        self.assertAlmostEqual(max_drawdown([100, 120, 90, 130, 117]), 0.25)
        self.assertEqual(max_drawdown([]), 0.0)

    def test_win_rate(self) -> None:
        trades = [_trade("2024-03-05 10:00", "2024-03-05 10:30", p) for p in (10, -5, 0, 3)]
        self.assertEqual(win_rate(trades), 0.5)
        self.assertEqual(win_rate([]), 0.0)


class TestBreakdowns(unittest.TestCase):
    def setUp(self) -> None:
        self.trades = [
            _trade("2024-03-05 09:35", "2024-03-05 10:00", 100.0),
            _trade("2024-03-05 10:59", "2024-03-05 11:30", -40.0),
            _trade("2024-03-05 11:00", "2024-03-05 12:00", 20.0),
            _trade("2024-03-06 15:10", "2024-03-06 15:50", -30.0),
        ]

    def test_period_buckets_by_entry_time(self) -> None:
        periods = {p.period: p for p in period_breakdown(self.trades)}
        self.assertEqual(periods['Market Open'].trades, 2)
        self.assertAlmostEqual(periods['Market Open'].total_pnl, 60.0)
        self.assertAlmostEqual(periods['Market Open'].average_pnl, 30.0)
        self.assertAlmostEqual(periods['Market Open'].win_rate, 0.5)
        self.assertEqual(periods['Mid-Day'].trades, 1)
        self.assertEqual(periods['Market Close'].trades, 1)
        self.assertEqual(periods['Market Close'].win_rate, 0.0)

    def test_daily_breakdown_and_returns(self) -> None:
        days = daily_breakdown(self.trades)
        self.assertEqual([d.trades for d in days], [3, 1])
        self.assertAlmostEqual(days[0].pnl, 80.0)
        returns = daily_returns(self.trades, 1000.0)
        self.assertAlmostEqual(returns[0], 0.08)
        self.assertAlmostEqual(returns[1], -30.0 / 1080.0)

    def test_compute_metrics(self) -> None:
        curve = [EquityPoint(pd.Timestamp("2024-03-05 09:30", tz="UTC"), 1000.0)]
        equity = 1000.0
        for t in self.trades:
            equity += t.profit_loss
            curve.append(EquityPoint(t.exit_time, equity))
        metrics = compute_metrics(self.trades, curve)
        self.assertEqual(metrics['num_trades'], 4)
        self.assertAlmostEqual(metrics['ending_capital'], 1050.0)
        self.assertAlmostEqual(metrics['total_return'], 0.05)
        self.assertAlmostEqual(metrics['profit_factor'], 120.0 / 70.0)
        self.assertAlmostEqual(metrics['total_fees'], 4.0)

    def test_empty_metrics(self) -> None:
        self.assertEqual(compute_metrics([], [])['num_trades'], 0)


if __name__ == '__main__':
    unittest.main()
