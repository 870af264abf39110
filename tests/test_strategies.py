import os
import sys
import tempfile

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)
if CURRENT_DIR not in sys.path:
    sys.path.insert(0, CURRENT_DIR)

from bar_factory import local_ts, make_bar, to_ms
from intraday_trader.config.schema import ConfigError, StrategyConfig
from intraday_trader.execution.models import Signal
from intraday_trader.strategy.factory import create_strategy
from intraday_trader.strategy.indicators import average_true_range, rsi
from intraday_trader.strategy.orb import OpeningRangeBreakoutStrategy
from intraday_trader.strategy.precomputed import PrecomputedSignalSource
from intraday_trader.utils.market_calendar import MarketCalendar

import pandas as pd
import unittest


def _morning(day: str = "2024-03-05", count: int = 24):
    """Range-bound bars from the open with closes alternating 100 / 100.2."""
    start = local_ts(day, "09:30")
    return [
        make_bar(start + pd.Timedelta(minutes=5 * i), 100.0 + 0.2 * (i % 2), high=100.5, low=99.5)
        for i in range(count)
    ]


class TestIndicators(unittest.TestCase):
    def test_rsi_defaults_to_neutral(self) -> None:
        self.assertEqual(rsi([1.0, 2.0], 14), 50.0)

    def test_atr_of_constant_range(self) -> None:
        bars = _morning(count=30)
        self.assertAlmostEqual(average_true_range(bars, 14), 1.0)

    def test_atr_without_bars(self) -> None:
        self.assertEqual(average_true_range([], 14), 0.0)


class TestOpeningRangeBreakout(unittest.TestCase):
    def setUp(self) -> None:
        self.strategy = OpeningRangeBreakoutStrategy(MarketCalendar())
        self.history = _morning()
        self.at = local_ts("2024-03-05", "11:30")

    def test_breakout_with_volume_buys(self) -> None:
        bar = make_bar(self.at, 101.0, high=101.5, low=100.5, volume=2000)
        self.assertIs(self.strategy.generate_signal(bar, self.history), Signal.BUY)

    def test_low_volume_holds(self) -> None:
        bar = make_bar(self.at, 101.0, high=101.5, low=100.5, volume=1100)
        self.assertIs(self.strategy.generate_signal(bar, self.history), Signal.HOLD)

    def test_breakdown_sells(self) -> None:
        bar = make_bar(self.at, 99.2, high=99.6, low=99.0, volume=2000)
        self.assertIs(self.strategy.generate_signal(bar, self.history), Signal.SELL)

    def test_no_signal_while_range_forms(self) -> None:
        history = _morning("2024-03-04")
        bar = make_bar(local_ts("2024-03-05", "09:40"), 105.0, high=106.0, volume=5000)
        self.assertIs(self.strategy.generate_signal(bar, history), Signal.HOLD)

    def test_insufficient_history_holds(self) -> None:
        bar = make_bar(self.at, 101.0, high=101.5, volume=2000)
        self.assertIs(self.strategy.generate_signal(bar, self.history[:5]), Signal.HOLD)

    def test_short_switch_is_not_a_strategy_parameter(self) -> None:
        with self.assertRaises(ValueError):
            self.strategy.set_parameters({'enable_shorts': True})
        self.assertNotIn('enable_shorts', self.strategy.get_parameters())

    def test_parameter_validation(self) -> None:
        with self.assertRaises(ValueError):
            self.strategy.set_parameters({'unknown': 1})
        self.strategy.set_parameters({'rsi_oversold': 90})
        with self.assertRaises(ValueError):
            self.strategy.initialize()


class TestPrecomputed(unittest.TestCase):
    def test_lookup_by_timestamp(self) -> None:
        ts = local_ts("2024-03-05", "10:00")
        source = PrecomputedSignalSource({to_ms(ts): Signal.SELL})
        self.assertIs(source.generate_signal(make_bar(ts, 100.0), []), Signal.SELL)
        other = make_bar(ts + pd.Timedelta(minutes=5), 100.0)
        self.assertIs(source.generate_signal(other, []), Signal.HOLD)

    def test_from_csv(self) -> None:
        ts = to_ms(local_ts("2024-03-05", "10:00"))
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, 'signals.csv')
            pd.DataFrame({'timestamp': [ts], 'signal': ['buy']}).to_csv(path, index=False)
            source = PrecomputedSignalSource.from_csv(path)
        self.assertEqual(source.signals, {ts: Signal.BUY})


class TestFactory(unittest.TestCase):
    def test_builds_named_strategies(self) -> None:
        cal = MarketCalendar()
        self.assertEqual(create_strategy(StrategyConfig(name='orb'), cal).name, 'orb')
        self.assertEqual(create_strategy(StrategyConfig(name='day_range_breakout'), cal).name, 'day_range_breakout')

    def test_errors_become_config_errors(self) -> None:
        cal = MarketCalendar()
        with self.assertRaises(ConfigError):
            create_strategy(StrategyConfig(name='nope'), cal)
        with self.assertRaises(ConfigError):
            create_strategy(StrategyConfig(name='orb', params={'rsi_period': 0}), cal)
        with self.assertRaises(ConfigError):
            create_strategy(StrategyConfig(name='precomputed'), cal)


if __name__ == '__main__':
    unittest.main()
