from enum import Enum

class PositionSide(Enum):
    LONG = "long"
    SHORT = "short"

    @property
    def entry_side(self) -> "OrderSide":
        return OrderSide.BUY if self is PositionSide.LONG else OrderSide.SELL

    @property
    def exit_side(self) -> "OrderSide":
        return OrderSide.SELL if self is PositionSide.LONG else OrderSide.BUY

class OrderSide(Enum):
    BUY = "buy"
    SELL = "sell"

class OrderType(Enum):
    MARKET = "market"
    LIMIT = "limit"
    STOP = "stop"  # stop-market, triggered at trigger_price

class OrderState(Enum):
    OPEN = "open"
    PARTIALLY_FILLED = "partially_filled"
    FILLED = "filled"
    CANCELED = "canceled"
    REJECTED = "rejected"
    EXPIRED = "expired"
    UNKNOWN = "unknown"

class CrossSignal(Enum):
    GOLDEN_CROSS = "golden_cross"
    DEATH_CROSS = "death_cross"
    NONE = "none"
