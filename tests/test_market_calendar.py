import os
import sys
from datetime import date

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from intraday_trader.config.schema import ConfigError
from intraday_trader.utils.market_calendar import MarketCalendar, MarketPhase, nth_weekday, us_market_holidays

import pandas as pd
import unittest


class TestHolidays(unittest.TestCase):
    def test_juneteenth_on_saturday_observed_friday(self) -> None:
        self.assertIn(date(2027, 6, 18), us_market_holidays(2027))
        self.assertNotIn(date(2027, 6, 19), us_market_holidays(2027))

    def test_juneteenth_on_sunday_observed_monday(self) -> None:
        self.assertIn(date(2022, 6, 20), us_market_holidays(2022))

    def test_nth_weekday_rules(self) -> None:
        self.assertEqual(nth_weekday(2024, 1, 0, 3), date(2024, 1, 15))   # MLK day
        self.assertEqual(nth_weekday(2024, 5, 0, -1), date(2024, 5, 27))  # Memorial Day
        self.assertEqual(nth_weekday(2024, 11, 3, 4), date(2024, 11, 28))  # Thanksgiving
        self.assertEqual(nth_weekday(2024, 9, 0, 1), date(2024, 9, 2))    # Labor Day

    def test_trading_days(self) -> None:
        cal = MarketCalendar()
        self.assertTrue(cal.is_trading_day(date(2024, 3, 5)))
        self.assertFalse(cal.is_trading_day(date(2024, 3, 9)))   # Saturday
        self.assertFalse(cal.is_trading_day(date(2024, 7, 4)))
        self.assertFalse(cal.is_trading_day(date(2024, 12, 25)))
        # New Year's Day 2022 fell on a Saturday and was observed on Dec 31 2021
        self.assertFalse(cal.is_trading_day(date(2021, 12, 31)))


class TestSessionWindow(unittest.TestCase):
    def test_window_and_phases(self) -> None:
        cal = MarketCalendar(liquidate_by="15:45")
        window = cal.session_window(date(2024, 3, 5))
        self.assertEqual(window.open, pd.Timestamp("2024-03-05 09:30", tz="America/New_York"))
        self.assertEqual(window.liquidate_by, pd.Timestamp("2024-03-05 15:45", tz="America/New_York"))

        def at(clock: str) -> MarketPhase:
            return cal.phase(pd.Timestamp(f"2024-03-05 {clock}", tz="America/New_York"))

        self.assertIs(at("09:29"), MarketPhase.PRE_OPEN)
        self.assertIs(at("09:30"), MarketPhase.OPEN)
        self.assertIs(at("15:45"), MarketPhase.LIQUIDATION)
        self.assertIs(at("16:00"), MarketPhase.POST_CLOSE)
        self.assertIs(cal.phase(pd.Timestamp("2024-03-09 12:00", tz="America/New_York")), MarketPhase.NON_TRADING_DAY)

    def test_utc_input_is_converted(self) -> None:
        cal = MarketCalendar()
        # 14:30 UTC is 09:30 EST
        self.assertIs(cal.phase(pd.Timestamp("2024-03-05 14:30", tz="UTC")), MarketPhase.OPEN)

    def test_entry_cutoff(self) -> None:
        cal = MarketCalendar(liquidate_by="15:45", entry_cutoff_minutes=2)
        self.assertTrue(cal.entries_allowed(pd.Timestamp("2024-03-05 15:42", tz="America/New_York")))
        self.assertFalse(cal.entries_allowed(pd.Timestamp("2024-03-05 15:43", tz="America/New_York")))

    def test_next_open_skips_weekend(self) -> None:
        cal = MarketCalendar()
        friday_evening = pd.Timestamp("2024-03-08 17:00", tz="America/New_York")
        self.assertEqual(cal.next_open(friday_evening), pd.Timestamp("2024-03-11 09:30", tz="America/New_York"))

    def test_liquidation_outside_session_rejected(self) -> None:
        with self.assertRaises(ConfigError):
            MarketCalendar(liquidate_by="16:00")


if __name__ == '__main__':
    unittest.main()
