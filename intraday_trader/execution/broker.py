"""
Brokerage interface and the Alpaca implementation.

The engines only need four operations from a broker: account equity,
the current position, market order submission and position closing.
`AlpacaBroker` implements them with the ``alpaca-trade-api`` SDK.  The
SDK is imported when `connect()` is called so that backtests do not
require it.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

from ..config.schema import AlpacaConfig
from .models import Side


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BrokerPosition:
    """Position as reported by the broker."""
    symbol: str
    side: Side
    quantity: int
    avg_entry_price: float


class Brokerage(ABC):

    @abstractmethod
    def get_equity(self) -> float:
        ...

    @abstractmethod
    def get_open_position(self, ticker: str) -> Optional[BrokerPosition]:
        """Return the open position for `ticker` or `None` when flat."""

    @abstractmethod
    def submit_market_order(self, ticker: str, quantity: int, is_buy: bool) -> None:
        ...

    @abstractmethod
    def close_position(self, ticker: str) -> None:
        ...


class AlpacaBroker(Brokerage):
    """Trade through the Alpaca REST API (paper or live endpoint)."""

    def __init__(self, config: AlpacaConfig) -> None:
        self.config = config
        self._api: Any = None

    def connect(self) -> None:
        """Create the REST client.

        Raises
        ------
        RuntimeError
            If the alpaca-trade-api package is not installed or no
            credentials are configured.
        """
        try:
            import alpaca_trade_api as tradeapi  # type: ignore
        except ImportError as exc:
            raise RuntimeError(
                "alpaca-trade-api package is not installed.  Install it with 'pip install alpaca-trade-api' to use paper or live trading."
            ) from exc
        key_id, secret = self.config.credentials()
        if not key_id or not secret:
            raise RuntimeError("Alpaca credentials are missing (alpaca.key_id / alpaca.secret_key or APCA_API_* variables)")
        self._api = tradeapi.REST(key_id, secret, base_url=self.config.base_url, api_version='v2')
        logger.info("Connected to Alpaca (%s)", self.config.base_url)

    @property
    def api(self) -> Any:
        if self._api is None:
            raise RuntimeError("AlpacaBroker is not connected.  Call connect() first.")
        return self._api

    def get_equity(self) -> float:
        return float(self.api.get_account().equity)

    def get_open_position(self, ticker: str) -> Optional[BrokerPosition]:
        from alpaca_trade_api.rest import APIError  # type: ignore

        try:
            pos = self.api.get_position(ticker)
        except APIError as exc:
            # 404 means flat
            if getattr(exc, 'status_code', None) == 404:
                return None
            raise
        return BrokerPosition(
            symbol=pos.symbol,
            side=Side.LONG if pos.side == 'long' else Side.SHORT,
            quantity=abs(int(float(pos.qty))),
            avg_entry_price=float(pos.avg_entry_price),
        )

    def submit_market_order(self, ticker: str, quantity: int, is_buy: bool) -> None:
        logger.info("Submitting market %s order for %d %s", 'buy' if is_buy else 'sell', quantity, ticker)
        self.api.submit_order(
            symbol=ticker,
            qty=quantity,
            side='buy' if is_buy else 'sell',
            type='market',
            time_in_force='day',
        )

    def close_position(self, ticker: str) -> None:
        logger.info("Closing position for %s", ticker)
        self.api.close_position(ticker)
