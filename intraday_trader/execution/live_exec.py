"""
Live and paper execution loop.

`ExecutionController` polls the market data provider, feeds every new
bar to the shared `IntradayTrader` and sleeps between iterations.  The
loop is single threaded: each iteration runs to completion before the
next one starts.  Only `stop()` ends it; an exception inside an
iteration is logged and followed by a fixed cooldown.

Sleeps go through `threading.Event.wait` so `stop()` interrupts them
immediately.  The clock and the wait function can be injected, which
lets tests drive the loop without real time passing.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Deque, List, Optional
import pandas as pd

from ..config.schema import PollingConfig
from ..data.base import MarketDataProvider
from ..reporting.metrics import compute_metrics
from ..utils.market_calendar import MarketPhase
from .models import Bar, EquityPoint, ExitReason, TradeRecord
from .trader import IntradayTrader


logger = logging.getLogger(__name__)


class IterationStatus(Enum):
    OK = "ok"
    NO_DATA = "no_data"
    MARKET_CLOSED = "market_closed"
    NON_TRADING_DAY = "non_trading_day"
    CAPPED = "capped"
    ERROR = "error"


@dataclass
class IterationOutcome:
    """Result of one loop iteration and how long to sleep afterwards."""
    status: IterationStatus
    sleep_seconds: float
    trades: List[TradeRecord] = field(default_factory=list)


def _utc_now() -> pd.Timestamp:
    return pd.Timestamp.now(tz="UTC")


class ExecutionController:
    """Run an `IntradayTrader` against a live data feed.

    Parameters
    ----------
    trader : IntradayTrader
        Decision logic, usually wired to a `Brokerage`.
    provider : MarketDataProvider
        Source of historical (warm-up) and real-time bars.
    polling : PollingConfig
        Sleep intervals.
    history_bars : int
        Length of the rolling window handed to the signal source.
    clock : callable, optional
        Returns the current time as a tz-aware timestamp.
    wait : callable, optional
        Sleeps for the given number of seconds and returns True if the
        loop should stop.  Defaults to the stop event's `wait`.
    """

    def __init__(
        self,
        trader: IntradayTrader,
        provider: MarketDataProvider,
        polling: PollingConfig,
        history_bars: int = 200,
        clock: Optional[Callable[[], pd.Timestamp]] = None,
        wait: Optional[Callable[[float], bool]] = None,
    ) -> None:
        self.trader = trader
        self.provider = provider
        self.polling = polling
        self.history: Deque[Bar] = deque(maxlen=history_bars)
        self.clock = clock or _utc_now
        self.stop_event = threading.Event()
        self._wait = wait or self.stop_event.wait
        self.last_bar: Optional[Bar] = None
        self.iterations = 0

    @property
    def symbol(self) -> str:
        return self.trader.symbol

    def stop(self) -> None:
        """Request the loop to end; interrupts a pending sleep."""
        self.stop_event.set()

    def warm_up(self, lookback: pd.Timedelta = pd.Timedelta(days=5), granularity: str = "minute") -> int:
        """Seed the rolling history with recent historical bars."""
        end = self.clock()
        try:
            bars = self.provider.get_historical_bars(self.symbol, end - lookback, end, granularity)
        except Exception:
            logger.exception("Could not load warm-up history for %s", self.symbol)
            return 0
        for bar in bars:
            self._remember(bar)
        logger.info("Warm-up loaded %d bars for %s", len(bars), self.symbol)
        return len(bars)

    def _remember(self, bar: Bar) -> None:
        self.history.append(bar)
        self.last_bar = bar

    def _is_new(self, bar: Bar) -> bool:
        return self.last_bar is None or bar.timestamp_ms > self.last_bar.timestamp_ms

    def run_iteration(self) -> IterationOutcome:
        """Run one iteration; exceptions become an ERROR outcome."""
        self.iterations += 1
        try:
            return self._iterate()
        except Exception:
            logger.exception("Iteration %d failed; cooling down for %.0fs", self.iterations, self.polling.error_cooldown_seconds)
            return IterationOutcome(IterationStatus.ERROR, self.polling.error_cooldown_seconds)

    def _iterate(self) -> IterationOutcome:
        now = self.clock()
        calendar = self.trader.calendar
        phase = calendar.phase(now)
        trades: List[TradeRecord] = []

        bars = [b for b in self.provider.get_latest_bars(self.symbol) if self._is_new(b)]
        for bar in bars:
            step = self.trader.on_bar(bar, list(self.history))
            if step.closed is not None:
                trades.append(step.closed)
            self._remember(bar)

        if not bars:
            self.trader.roll_session(now)

        if phase is MarketPhase.NON_TRADING_DAY:
            trades.extend(self._failsafe_close(now))
            delay = min(self.polling.non_trading_day_poll_seconds, self._seconds_until(calendar.next_open(now), now))
            logger.debug("%s is not a trading day, sleeping %.0fs", calendar.to_local(now).date(), delay)
            return IterationOutcome(IterationStatus.NON_TRADING_DAY, max(delay, 1.0), trades)

        if phase in (MarketPhase.PRE_OPEN, MarketPhase.POST_CLOSE):
            trades.extend(self._failsafe_close(now))
            delay = min(self.polling.closed_poll_seconds, self._seconds_until(calendar.next_open(now), now))
            return IterationOutcome(IterationStatus.MARKET_CLOSED, max(delay, 1.0), trades)

        window = calendar.session_window(calendar.to_local(now).date())
        if phase is MarketPhase.LIQUIDATION:
            if self.trader.tracker.is_open and not bars and self.last_bar is not None:
                record = self.trader.force_close(now, self.last_bar.close, ExitReason.END_OF_DAY)
                if record is not None:
                    trades.append(record)
            delay = min(self.polling.poll_seconds, self._seconds_until(window.close, now))
            return IterationOutcome(IterationStatus.OK, max(delay, 1.0), trades)

        if not bars:
            return IterationOutcome(IterationStatus.NO_DATA, self.polling.no_data_backoff_seconds, trades)

        status = IterationStatus.OK
        delay = self.polling.poll_seconds
        if self.trader.entries_blocked() and not self.trader.tracker.is_open:
            status = IterationStatus.CAPPED
            delay *= self.polling.capped_backoff_multiplier
        until_deadline = self._seconds_until(window.liquidate_by, now)
        if until_deadline > 0:
            # wake at, or just after, the liquidation deadline
            delay = min(delay, until_deadline + 0.1)
        return IterationOutcome(status, delay, trades)

    def _failsafe_close(self, now: pd.Timestamp) -> List[TradeRecord]:
        """Flatten anything still open outside the session."""
        closed: List[TradeRecord] = []
        if self.trader.tracker.is_open:
            price = self.last_bar.close if self.last_bar is not None else self.trader.tracker.position.entry_price
            logger.warning("Market closed with an open position on %s, forcing exit", self.symbol)
            record = self.trader.force_close(now, price, ExitReason.MARKET_CLOSED)
            if record is not None:
                closed.append(record)
            # the broker close may still be pending; checked again next iteration
            return closed
        broker = self.trader.broker
        if broker is not None:
            stray = broker.get_open_position(self.symbol)
            if stray is not None:
                logger.warning(
                    "Broker reports an untracked %s position of %d %s, closing it",
                    stray.side.value,
                    stray.quantity,
                    self.symbol,
                )
                broker.close_position(self.symbol)
        return closed

    @staticmethod
    def _seconds_until(target: pd.Timestamp, now: pd.Timestamp) -> float:
        return (target - now).total_seconds()

    def run(self) -> List[TradeRecord]:
        """Main loop for paper/live trading.

        Runs until `stop()` is called and returns the trade log.
        """
        logger.info("Starting execution loop for %s", self.symbol)
        while not self.stop_event.is_set():
            outcome = self.run_iteration()
            if self.stop_event.is_set():
                break
            logger.debug("Iteration %d: %s, sleeping %.1fs", self.iterations, outcome.status.value, outcome.sleep_seconds)
            if self._wait(outcome.sleep_seconds):
                break
        self.log_summary()
        return self.trader.tracker.trade_log

    def log_summary(self) -> None:
        tracker = self.trader.tracker
        start = tracker.trade_log[0].entry_time if tracker.trade_log else self.clock()
        curve = [EquityPoint(timestamp=start, equity=tracker.starting_capital)]
        equity = tracker.starting_capital
        for trade in tracker.trade_log:
            equity += trade.profit_loss
            curve.append(EquityPoint(timestamp=trade.exit_time, equity=equity))
        metrics = compute_metrics(tracker.trade_log, curve, self.trader.calendar.timezone)
        logger.info(
            "Execution loop stopped after %d iterations: %d trades, P/L %.2f, win rate %.1f%%",
            self.iterations,
            metrics['num_trades'],
            tracker.realized_pnl,
            metrics['win_rate'] * 100,
        )
