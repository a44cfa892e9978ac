"""Exchange capability interface consumed by the trading core.

Concrete integrations (BitmexRest, test stubs) implement every method; all of
them are network round trips and report transport failures as
AdapterTransportError.
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from ema_trader.models.candle_models import Balance, Candle, OrderStatus, Position
from ema_trader.utils.orders_enum import OrderSide, OrderType


class ExchangeAdapter(ABC):
    @abstractmethod
    async def initialize(self) -> None:
        """Connect and load market metadata. Raises InitError."""

    @abstractmethod
    async def get_current_price(self, symbol: str) -> float:
        pass

    @abstractmethod
    async def fetch_candles(self, symbol: str, interval: str, count: int) -> List[Candle]:
        """Most recent closed candles, oldest first."""

    @abstractmethod
    async def fetch_balance(self) -> Balance:
        pass

    @abstractmethod
    async def fetch_positions(self, symbol: str) -> List[Position]:
        pass

    @abstractmethod
    async def create_order(
        self,
        symbol: str,
        order_type: OrderType,
        side: OrderSide,
        quantity: float,
        price: Optional[float] = None,
        trigger_price: Optional[float] = None,
        reduce_only: bool = False,
        client_order_id: Optional[str] = None,
    ) -> str:
        """Place an order and return the exchange order id."""

    @abstractmethod
    async def fetch_orders(self, symbol: str) -> List[OrderStatus]:
        """Open and recent orders for the symbol."""

    @abstractmethod
    async def cancel_order(self, order_id: str, symbol: str) -> None:
        pass

    @abstractmethod
    async def cancel_all_orders(self, symbol: str) -> None:
        pass

    @abstractmethod
    async def set_leverage(self, symbol: str, leverage: int) -> None:
        pass

    async def close(self) -> None:
        """Release network resources."""


__all__ = ["ExchangeAdapter"]
