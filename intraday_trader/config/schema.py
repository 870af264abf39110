"""
Configuration schema and loader.

This module defines dataclasses that mirror the expected structure of
the YAML configuration file (`config.yaml`).  A helper function
`load_config()` reads a YAML file from disk and returns an instance
of `Config` populated with reasonable defaults for any missing
fields.

Configuration mistakes are fatal: `validate_config()` is called once at
startup and raises `ConfigError` before any trading loop begins.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Optional
import yaml


class ConfigError(ValueError):
    """Raised when the configuration contains invalid values."""


@dataclass
class SessionConfig:
    """Defines the regular trading session for each day.

    Attributes
    ----------
    timezone : str
        IANA timezone in which the session times are expressed.
    open, close : str
        Session open and close in `HH:MM` or `HH:MM:SS` 24‑hour format.
    liquidate_by : str
        Deadline after which any open position is force-closed.  Must be
        strictly before `close`.
    entry_cutoff_minutes : float
        No new positions are opened this many minutes before
        `liquidate_by`.
    """

    timezone: str = "America/New_York"
    open: str = "09:30"
    close: str = "16:00"
    liquidate_by: str = "15:59:55"
    entry_cutoff_minutes: float = 2.0


@dataclass
class RiskConfig:
    """Position sizing and exit parameters.

    Attributes
    ----------
    take_profit_pct, stop_loss_pct : float
        Exit thresholds as a fraction of the entry price.
    risk_per_trade_pct : float
        Fraction of equity risked per trade (distance to the initial stop).
    max_position_pct : float
        Cap on position notional as a fraction of equity.
    stop_multiplier : float
        ATR multiple used for the initial and trailing stop.
    daily_loss_cap : float
        Negative fraction of the day's starting balance; once the day's
        realized P/L reaches it no new entries are taken.
    max_trades_per_day : int
        Maximum number of round trips per trading date.
    cost_pct : float
        Slippage and commission charged on the notional of each fill.
    allow_short : bool
        Whether `Sell` signals may open short positions.
    atr_period : int
        Lookback used for the ATR that drives sizing and stops.
    """

    take_profit_pct: float = 0.02
    stop_loss_pct: float = 0.01
    risk_per_trade_pct: float = 0.01
    max_position_pct: float = 0.5
    stop_multiplier: float = 2.0
    daily_loss_cap: float = -0.02
    max_trades_per_day: int = 10
    cost_pct: float = 0.0005
    allow_short: bool = False
    atr_period: int = 14


@dataclass
class PollingConfig:
    """Sleep intervals (seconds) used by the live loop."""

    poll_seconds: float = 300.0
    closed_poll_seconds: float = 60.0
    non_trading_day_poll_seconds: float = 3600.0
    no_data_backoff_seconds: float = 5.0
    error_cooldown_seconds: float = 30.0
    capped_backoff_multiplier: float = 3.0


@dataclass
class StrategyConfig:
    """Signal source selection.

    `name` is one of ``orb``, ``day_range_breakout`` or ``precomputed``;
    `params` is passed to the strategy's `set_parameters()`.
    """

    name: str = "orb"
    params: Dict[str, Any] = field(default_factory=dict)


@dataclass
class DataConfig:
    """Data source configuration.

    Attributes
    ----------
    csv_dir : str
        Directory used to cache historical bars.
    granularity : str
        Bar unit: ``minute``, ``hour`` or ``day``.
    multiplier : int
        Number of units per bar (5 with ``minute`` gives 5‑minute bars).
    history_bars : int
        Length of the rolling history window handed to the signal source.
    stream_feed : str
        Alpaca real-time feed (``iex`` or ``sip``).
    """

    csv_dir: str = "data"
    granularity: str = "minute"
    multiplier: int = 5
    history_bars: int = 200
    stream_feed: str = "iex"


@dataclass
class AlpacaConfig:
    """Credentials for the Alpaca brokerage and market data APIs.

    Empty credentials are read from ``APCA_API_KEY_ID`` and
    ``APCA_API_SECRET_KEY`` at connection time.
    """

    key_id: str = ""
    secret_key: str = ""
    paper: bool = True

    @property
    def base_url(self) -> str:
        return "https://paper-api.alpaca.markets" if self.paper else "https://api.alpaca.markets"

    def credentials(self) -> tuple:
        key_id = self.key_id or os.environ.get("APCA_API_KEY_ID", "")
        secret = self.secret_key or os.environ.get("APCA_API_SECRET_KEY", "")
        return key_id, secret


@dataclass
class BacktestConfig:
    """Backtest date range and starting capital."""

    start: str = "2024-01-02"
    end: str = "2024-12-31"
    starting_capital: float = 100_000.0


@dataclass
class Config:
    """Root configuration for the trading program."""

    ticker: str = "QQQ"
    mode: str = "backtest"
    session: SessionConfig = field(default_factory=SessionConfig)
    risk: RiskConfig = field(default_factory=RiskConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    strategy: StrategyConfig = field(default_factory=StrategyConfig)
    data: DataConfig = field(default_factory=DataConfig)
    alpaca: AlpacaConfig = field(default_factory=AlpacaConfig)
    backtest: BacktestConfig = field(default_factory=BacktestConfig)


def _merge_dict(defaults: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge two dictionaries.

    The values in `override` take precedence over those in `defaults`.
    This helper is used when loading YAML into nested dataclasses.
    """
    result: Dict[str, Any] = defaults.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _merge_dict(result[key], value)
        else:
            result[key] = value
    return result


def load_config(path: str) -> Config:
    """Load and validate a configuration file from the given YAML path.

    Parameters
    ----------
    path : str
        Path to the YAML file.

    Returns
    -------
    Config
        A populated configuration object.  Missing fields are filled with
        the defaults defined in the dataclasses.

    Raises
    ------
    ConfigError
        If a section is malformed or a value is out of range.
    """
    with open(path, "r", encoding="utf-8") as fh:
        raw: Dict[str, Any] = yaml.safe_load(fh) or {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Top level of {path} must be a mapping")

    merged = _merge_dict(asdict(Config()), raw)

    try:
        cfg = Config(
            ticker=str(merged['ticker']).upper(),
            mode=str(merged['mode']).lower(),
            session=SessionConfig(**merged['session']),
            risk=RiskConfig(**merged['risk']),
            polling=PollingConfig(**merged['polling']),
            strategy=StrategyConfig(
                name=str(merged['strategy'].get('name', 'orb')),
                params=dict(merged['strategy'].get('params') or {}),
            ),
            data=DataConfig(**merged['data']),
            alpaca=AlpacaConfig(**merged['alpaca']),
            backtest=BacktestConfig(**merged['backtest']),
        )
    except TypeError as exc:
        # Unknown keys inside a section
        raise ConfigError(f"Invalid configuration in {path}: {exc}") from exc

    validate_config(cfg)
    return cfg


def parse_clock(value: str) -> tuple:
    """Split an `HH:MM[:SS]` string into an (hour, minute, second) tuple."""
    parts = value.strip().split(":")
    if len(parts) not in (2, 3):
        raise ConfigError(f"Invalid time of day: {value!r}")
    try:
        numbers = [int(p) for p in parts] + [0] * (3 - len(parts))
    except ValueError as exc:
        raise ConfigError(f"Invalid time of day: {value!r}") from exc
    hour, minute, second = numbers
    if not (0 <= hour < 24 and 0 <= minute < 60 and 0 <= second < 60):
        raise ConfigError(f"Invalid time of day: {value!r}")
    return hour, minute, second


def _require(condition: bool, message: str) -> None:
    if not condition:
        raise ConfigError(message)


def validate_config(cfg: Config, known_strategies: Optional[set] = None) -> None:
    """Check ranges and cross-field constraints of a configuration."""
    _require(bool(cfg.ticker), "ticker must not be empty")
    _require(cfg.mode in ('backtest', 'paper', 'live'), f"Unknown mode: {cfg.mode}")

    s = cfg.session
    open_t, close_t, liq_t = parse_clock(s.open), parse_clock(s.close), parse_clock(s.liquidate_by)
    _require(open_t < close_t, "session.open must be before session.close")
    _require(open_t < liq_t < close_t, "session.liquidate_by must fall strictly inside the session")
    _require(s.entry_cutoff_minutes >= 0, "session.entry_cutoff_minutes must be >= 0")

    r = cfg.risk
    _require(r.take_profit_pct > 0, "risk.take_profit_pct must be positive")
    _require(r.stop_loss_pct > 0, "risk.stop_loss_pct must be positive")
    _require(0 < r.risk_per_trade_pct <= 1, "risk.risk_per_trade_pct must be in (0, 1]")
    _require(0 < r.max_position_pct <= 1, "risk.max_position_pct must be in (0, 1]")
    _require(r.stop_multiplier > 0, "risk.stop_multiplier must be positive")
    _require(-1 < r.daily_loss_cap < 0, "risk.daily_loss_cap must be a negative fraction")
    _require(r.max_trades_per_day >= 1, "risk.max_trades_per_day must be >= 1")
    _require(0 <= r.cost_pct < 0.01, "risk.cost_pct must be in [0, 0.01)")
    _require(r.atr_period >= 1, "risk.atr_period must be >= 1")

    p = cfg.polling
    _require(5 <= p.poll_seconds <= 300, "polling.poll_seconds must be between 5 and 300")
    _require(p.closed_poll_seconds >= 1, "polling.closed_poll_seconds must be >= 1")
    _require(p.non_trading_day_poll_seconds >= 1, "polling.non_trading_day_poll_seconds must be >= 1")
    _require(p.no_data_backoff_seconds > 0, "polling.no_data_backoff_seconds must be positive")
    _require(p.error_cooldown_seconds > 0, "polling.error_cooldown_seconds must be positive")
    _require(p.capped_backoff_multiplier >= 1, "polling.capped_backoff_multiplier must be >= 1")

    d = cfg.data
    _require(d.granularity in ('minute', 'hour', 'day'), f"Unsupported granularity: {d.granularity}")
    _require(d.multiplier >= 1, "data.multiplier must be >= 1")
    _require(d.history_bars >= 2, "data.history_bars must be >= 2")

    if known_strategies is not None:
        _require(cfg.strategy.name in known_strategies, f"Unknown strategy: {cfg.strategy.name}")

    _require(cfg.backtest.starting_capital > 0, "backtest.starting_capital must be positive")
