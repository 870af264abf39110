"""
Single-position lifecycle and daily session bookkeeping.

`PositionTracker` is the only owner of the open position, the trade log
and the current `DailySession`.  It has two states, flat and open, and
every transition goes through `open()` or `close()`.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import List, Optional
import pandas as pd

from .models import DailySession, ExitReason, Position, Side, TradeRecord


logger = logging.getLogger(__name__)


def round_trip_pnl(side: Side, entry_price: float, exit_price: float, quantity: int, cost_pct: float) -> tuple:
    """Return ``(net_pnl, fees)`` for a round trip.

    Costs are a fraction of notional charged on both the entry and the
    exit fill.
    """
    gross = (exit_price - entry_price) * quantity * side.sign
    fees = cost_pct * (entry_price * quantity + exit_price * quantity)
    return gross - fees, fees


class PositionTracker:
    """Tracks at most one open position for `symbol`."""

    def __init__(self, symbol: str, starting_capital: float, cost_pct: float = 0.0005) -> None:
        self.symbol = symbol
        self.starting_capital = starting_capital
        self.cost_pct = cost_pct
        self.position: Optional[Position] = None
        self.trade_log: List[TradeRecord] = []
        self.session: Optional[DailySession] = None
        self.realized_pnl = 0.0

    @property
    def is_open(self) -> bool:
        return self.position is not None

    @property
    def capital(self) -> float:
        """Starting capital plus all realized P/L."""
        return self.starting_capital + self.realized_pnl

    def roll_session(self, day: date, starting_balance: float) -> DailySession:
        if self.session is not None:
            logger.info(
                "Session %s closed: P/L %.2f over %d trade(s)",
                self.session.date,
                self.session.cumulative_pnl,
                self.session.trade_count,
            )
        self.session = DailySession(date=day, starting_balance=starting_balance)
        return self.session

    def open(self, side: Side, entry_time: pd.Timestamp, entry_price: float, quantity: int, stop_price: float) -> Position:
        if self.position is not None:
            raise ValueError(f"{self.symbol}: a position is already open")
        if quantity <= 0:
            raise ValueError(f"{self.symbol}: quantity must be positive, got {quantity}")
        self.position = Position(
            symbol=self.symbol,
            side=side,
            entry_time=entry_time,
            entry_price=entry_price,
            quantity=quantity,
            stop_price=stop_price,
        )
        return self.position

    def tighten_stop(self, stop_price: Optional[float]) -> None:
        if self.position is None or stop_price is None:
            return
        self.position.stop_price = stop_price

    def close(self, exit_time: pd.Timestamp, exit_price: float, reason: ExitReason) -> TradeRecord:
        position = self.position
        if position is None:
            raise ValueError(f"{self.symbol}: no open position to close")
        if exit_time < position.entry_time:
            raise ValueError(f"{self.symbol}: exit time {exit_time} precedes entry time {position.entry_time}")
        pnl, fees = round_trip_pnl(position.side, position.entry_price, exit_price, position.quantity, self.cost_pct)
        record = TradeRecord(
            symbol=self.symbol,
            side=position.side,
            entry_time=position.entry_time,
            exit_time=exit_time,
            entry_price=position.entry_price,
            exit_price=exit_price,
            quantity=position.quantity,
            profit_loss=pnl,
            fees=fees,
            reason=reason,
        )
        self.trade_log.append(record)
        self.realized_pnl += pnl
        if self.session is not None:
            self.session.cumulative_pnl += pnl
            self.session.trade_count += 1
        self.position = None
        return record
