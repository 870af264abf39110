"""Build the configured signal source."""

from __future__ import annotations

from ..config.schema import ConfigError, StrategyConfig
from ..utils.market_calendar import MarketCalendar
from .base import SignalSource
from .intraday_breakout import DayRangeBreakoutStrategy
from .orb import OpeningRangeBreakoutStrategy
from .precomputed import PrecomputedSignalSource


STRATEGY_NAMES = {'orb', 'day_range_breakout', 'precomputed'}


def create_strategy(config: StrategyConfig, calendar: MarketCalendar) -> SignalSource:
    """Instantiate, parameterise and validate the strategy named in `config`.

    Raises
    ------
    ConfigError
        For an unknown name or invalid parameters.
    """
    if config.name == 'orb':
        strategy: SignalSource = OpeningRangeBreakoutStrategy(calendar)
    elif config.name == 'day_range_breakout':
        strategy = DayRangeBreakoutStrategy(calendar)
    elif config.name == 'precomputed':
        if 'signals_path' not in config.params:
            raise ConfigError("strategy.params.signals_path is required for the precomputed strategy")
        strategy = PrecomputedSignalSource({})
    else:
        raise ConfigError(f"Unknown strategy: {config.name}")

    try:
        strategy.set_parameters(config.params)
        strategy.initialize()
    except (ValueError, TypeError, OSError) as exc:
        raise ConfigError(f"Invalid parameters for strategy {config.name}: {exc}") from exc
    return strategy
