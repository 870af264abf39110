"""
Risk controls shared by the live and backtest engines.

Every rule lives in a module-level pure function so the two drivers
cannot diverge numerically.  `RiskController` binds those functions to
a `RiskConfig` for convenience.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import time
from typing import Optional

from ..config.schema import RiskConfig
from .models import ExitReason, Side


@dataclass(frozen=True)
class ExitDecision:
    exit: bool
    reason: Optional[ExitReason] = None


HOLD_POSITION = ExitDecision(False)


def position_size(
    equity: float,
    atr: float,
    price: float,
    max_position_pct: float,
    risk_per_trade_pct: float,
    stop_multiplier: float,
) -> int:
    """Number of shares to trade; 0 means "no trade".

    Risk-based size is ``floor(equity * risk_per_trade_pct / (atr * stop_multiplier))``,
    capped at ``floor(equity * max_position_pct / price)``.
    """
    if equity <= 0 or atr <= 0 or price <= 0 or stop_multiplier <= 0:
        return 0
    by_risk = math.floor(equity * risk_per_trade_pct / (atr * stop_multiplier))
    by_notional = math.floor(equity * max_position_pct / price)
    return max(0, min(by_risk, by_notional))


def daily_loss_breached(daily_pnl: float, starting_balance: float, cap: float) -> bool:
    """True once ``daily_pnl / starting_balance <= cap`` (cap is negative)."""
    if starting_balance <= 0:
        return True
    return daily_pnl / starting_balance <= cap


def pnl_pct(side: Side, current_price: float, entry_price: float) -> float:
    if entry_price <= 0:
        return 0.0
    if side is Side.LONG:
        return (current_price - entry_price) / entry_price
    return (entry_price - current_price) / entry_price


def initial_stop(entry_price: float, side: Side, atr: float, stop_multiplier: float) -> float:
    return entry_price - side.sign * atr * stop_multiplier


def trailing_stop(current_stop: Optional[float], current_price: float, atr: float, side: Side, stop_multiplier: float) -> Optional[float]:
    """Tighten the stop toward `current_price`; it never loosens.

    A non-positive ATR leaves the stop unchanged.
    """
    if atr <= 0:
        return current_stop
    candidate = current_price - side.sign * atr * stop_multiplier
    if current_stop is None:
        return candidate
    if side is Side.LONG:
        return max(current_stop, candidate)
    return min(current_stop, candidate)


def should_exit(
    side: Side,
    current_price: float,
    entry_price: float,
    take_profit_pct: float,
    stop_loss_pct: float,
    trailing: Optional[float],
    time_of_day: time,
    liquidate_by: time,
) -> ExitDecision:
    """Evaluate the exit rules in precedence order.

    End-of-day > stop-loss > trailing-stop > take-profit.  The first rule
    that fires wins.  Contrary signals are checked by the caller.
    """
    if time_of_day >= liquidate_by:
        return ExitDecision(True, ExitReason.END_OF_DAY)
    change = pnl_pct(side, current_price, entry_price)
    if change <= -stop_loss_pct:
        return ExitDecision(True, ExitReason.STOP_LOSS)
    if trailing is not None:
        breached = current_price <= trailing if side is Side.LONG else current_price >= trailing
        if breached:
            return ExitDecision(True, ExitReason.TRAILING_STOP)
    if change >= take_profit_pct:
        return ExitDecision(True, ExitReason.TAKE_PROFIT)
    return HOLD_POSITION


class RiskController:
    """The risk rules above, parameterised by a `RiskConfig`."""

    def __init__(self, config: RiskConfig) -> None:
        self.config = config

    def position_size(self, equity: float, atr: float, price: float) -> int:
        c = self.config
        return position_size(equity, atr, price, c.max_position_pct, c.risk_per_trade_pct, c.stop_multiplier)

    def daily_loss_breached(self, daily_pnl: float, starting_balance: float) -> bool:
        return daily_loss_breached(daily_pnl, starting_balance, self.config.daily_loss_cap)

    def trade_cap_reached(self, trade_count: int) -> bool:
        return trade_count >= self.config.max_trades_per_day

    def initial_stop(self, entry_price: float, side: Side, atr: float) -> float:
        return initial_stop(entry_price, side, atr, self.config.stop_multiplier)

    def trailing_stop(self, current_stop: Optional[float], current_price: float, atr: float, side: Side) -> Optional[float]:
        return trailing_stop(current_stop, current_price, atr, side, self.config.stop_multiplier)

    def should_exit(
        self,
        side: Side,
        current_price: float,
        entry_price: float,
        trailing: Optional[float],
        time_of_day: time,
        liquidate_by: time,
    ) -> ExitDecision:
        c = self.config
        return should_exit(side, current_price, entry_price, c.take_profit_pct, c.stop_loss_pct, trailing, time_of_day, liquidate_by)
