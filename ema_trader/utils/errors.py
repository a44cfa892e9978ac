"""Error taxonomy shared by the adapter, engine and execution layers."""
from typing import List, Optional


class TradingError(Exception):
    """Base class for every error raised by the trader."""


class InitError(TradingError):
    """Exchange adapter setup failed; the strategy cannot start."""


class InsufficientData(TradingError):
    """Not enough closed candles for a converged EMA."""

    def __init__(self, period: int, required: int, available: int):
        self.period = period
        self.required = required
        self.available = available
        super().__init__(f"EMA({period}) needs {required} closes, got {available}")


class RiskLimitExceeded(TradingError):
    """Entry blocked by the risk gate."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class OrderPlacementError(TradingError):
    """One or more bracket legs could not be placed.

    ``unhedged`` is set when the entry filled but an exit leg is missing.
    ``rollback_failed`` is set when the cleanup of such a bracket also failed,
    leaving an unmanaged position on the exchange.
    """

    def __init__(
        self,
        message: str,
        placed_order_ids: Optional[List[str]] = None,
        unhedged: bool = False,
        rollback_failed: bool = False,
    ):
        self.placed_order_ids = list(placed_order_ids or [])
        self.unhedged = unhedged
        self.rollback_failed = rollback_failed
        super().__init__(message)


class OrderNotFound(TradingError):
    def __init__(self, order_id: str, symbol: str):
        self.order_id = order_id
        self.symbol = symbol
        super().__init__(f"Order {order_id} not found for {symbol}")


class AdapterTransportError(TradingError):
    """Network, auth or exchange-side failure reported by the adapter."""


__all__ = [
    "TradingError",
    "InitError",
    "InsufficientData",
    "RiskLimitExceeded",
    "OrderPlacementError",
    "OrderNotFound",
    "AdapterTransportError",
]
