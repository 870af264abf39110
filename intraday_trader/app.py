"""
Application entry point.

This module defines a simple command‑line interface for running the
trading program in different modes (backtest, paper, live).  It
leverages the modules under `intraday_trader/` to load configuration,
replay historical bars, trade through Alpaca and generate reports.
"""

from __future__ import annotations

import argparse
import logging
import os
from datetime import datetime
from typing import List, Optional
import pandas as pd

from .config.schema import Config, ConfigError, load_config, validate_config
from .data.alpaca_data import AlpacaDataFeed
from .data.csv_data import CSVDataLoader
from .execution.backtest_exec import BacktestReplayer
from .execution.broker import AlpacaBroker
from .execution.live_exec import ExecutionController
from .execution.models import Bar, bar_duration
from .execution.risk import RiskController
from .execution.tracker import PositionTracker
from .execution.trader import IntradayTrader
from .reporting.report import generate_backtest_report, log_backtest_summary
from .strategy.factory import STRATEGY_NAMES, create_strategy
from .utils.market_calendar import MarketCalendar


logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool, log_dir: Optional[str] = "logs") -> None:
    """Configure logging for the application.

    Besides the console, each run writes to its own
    ``trading_log_<timestamp>.log`` file under `log_dir`.
    """
    level = logging.DEBUG if verbose else logging.INFO
    fmt = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'
    datefmt = '%Y-%m-%d %H:%M:%S'
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        stamp = datetime.now().strftime('%Y-%m-%d_%H-%M-%S')
        handlers.append(logging.FileHandler(os.path.join(log_dir, f'trading_log_{stamp}.log'), encoding='utf-8'))
    logging.basicConfig(level=level, format=fmt, datefmt=datefmt, handlers=handlers)


def _in_range(bars: List[Bar], calendar: MarketCalendar, start: str, end: str) -> List[Bar]:
    """Keep bars whose local date lies within [start, end]."""
    first = pd.Timestamp(start).date()
    last = pd.Timestamp(end).date()
    return [b for b in bars if first <= calendar.to_local(b.time).date() <= last]


def load_backtest_bars(config: Config, calendar: MarketCalendar) -> List[Bar]:
    """Read cached bars, downloading and caching them from Alpaca if needed."""
    loader = CSVDataLoader(config.data.csv_dir)
    d = config.data
    if loader.exists(config.ticker, d.multiplier, d.granularity):
        bars = loader.load(config.ticker, d.multiplier, d.granularity)
        logger.info("Loaded %d cached bars from %s", len(bars), loader.path_for(config.ticker, d.multiplier, d.granularity))
    else:
        feed = AlpacaDataFeed(config.alpaca, d.multiplier, d.stream_feed)
        feed.connect()
        start = pd.Timestamp(config.backtest.start).tz_localize(calendar.timezone)
        end = pd.Timestamp(config.backtest.end).tz_localize(calendar.timezone) + pd.Timedelta(days=1)
        bars = feed.get_historical_bars(config.ticker, start, end, d.granularity)
        path = loader.save(config.ticker, bars, d.multiplier, d.granularity)
        logger.info("Cached %d bars to %s", len(bars), path)
    return _in_range(bars, calendar, config.backtest.start, config.backtest.end)


def run_backtest(config: Config, out_dir: str) -> None:
    calendar = MarketCalendar.from_config(config.session)
    strategy = create_strategy(config.strategy, calendar)
    bars = load_backtest_bars(config, calendar)
    logger.info("Running backtest of %s on %s with %d bars...", strategy.name, config.ticker, len(bars))
    result = BacktestReplayer(config, strategy, calendar).run(bars)
    log_backtest_summary(result)
    generate_backtest_report(result, out_dir=out_dir)
    logger.info("Backtest complete. Results saved to the '%s' directory.", out_dir)


def run_trading(config: Config) -> None:
    """Trade through Alpaca until interrupted with Ctrl+C."""
    calendar = MarketCalendar.from_config(config.session)
    strategy = create_strategy(config.strategy, calendar)
    config.alpaca.paper = config.mode == 'paper'

    broker = AlpacaBroker(config.alpaca)
    feed = AlpacaDataFeed(config.alpaca, config.data.multiplier, config.data.stream_feed)
    broker.connect()
    feed.connect()

    tracker = PositionTracker(config.ticker, broker.get_equity(), cost_pct=config.risk.cost_pct)
    trader = IntradayTrader(
        config.ticker,
        calendar,
        RiskController(config.risk),
        tracker,
        strategy,
        equity_fn=broker.get_equity,
        broker=broker,
        bar_duration=bar_duration(config.data.multiplier, config.data.granularity),
    )
    controller = ExecutionController(trader, feed, config.polling, history_bars=config.data.history_bars)
    controller.warm_up(granularity=config.data.granularity)
    feed.start_stream(config.ticker)
    logger.info("Starting %s trading of %s with strategy %s", config.mode, config.ticker, strategy.name)
    try:
        controller.run()
    except KeyboardInterrupt:
        logger.info("Shutting down execution loop...")
        controller.stop()
        controller.log_summary()
    finally:
        feed.shutdown()


def main(argv: Optional[List[str]] = None) -> None:
    """Parse command‑line arguments and dispatch to the appropriate mode."""
    parser = argparse.ArgumentParser(description="Intraday Equity Trading Program")
    parser.add_argument('mode', choices=['backtest', 'paper', 'live'], help="Operating mode")
    parser.add_argument('--config', default='config.yaml', help="Path to configuration YAML file")
    parser.add_argument('-v', '--verbose', action='store_true', help="Enable debug logging")
    parser.add_argument('--out', default='results', help="Output directory for backtest reports")
    parser.add_argument('--log-dir', default='logs', help="Directory for per-run log files")
    args = parser.parse_args(argv)

    _setup_logging(args.verbose, args.log_dir)

    try:
        config = load_config(args.config)
        # Override mode from CLI if provided
        config.mode = args.mode
        validate_config(config, STRATEGY_NAMES)
        if args.mode == 'backtest':
            run_backtest(config, args.out)
        else:
            run_trading(config)
    except ConfigError as exc:
        parser.exit(2, f"Configuration error: {exc}\n")


if __name__ == '__main__':
    main()
