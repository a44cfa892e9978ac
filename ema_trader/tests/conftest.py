from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest

from ema_trader.models.candle_models import Balance, Candle, OrderStatus, Position
from ema_trader.providers.exchange import ExchangeAdapter
from ema_trader.utils.errors import AdapterTransportError
from ema_trader.utils.logging_config import EventLog
from ema_trader.utils.orders_enum import OrderState

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_candles(closes, start=T0, step=timedelta(minutes=5)) -> List[Candle]:
    return [
        Candle(timestamp=start + i * step, open=c, high=c, low=c, close=c, volume=1.0)
        for i, c in enumerate(closes)
    ]


class StubExchange(ExchangeAdapter):
    """In-memory exchange; records every call.

    ``fail_on`` maps a client order id suffix (entry/tp/sl/rb) to an error the
    matching create_order call raises. ``fill_entries`` makes a successful
    entry order show up as an open position.
    """

    def __init__(self, price=50000.0, closes=None, equity=1.0, fill_entries=False):
        self.price = price
        self.closes = list(closes or [])
        self.equity = equity
        self.fill_entries = fill_entries
        self.positions: List[Position] = []
        self.orders: List[OrderStatus] = []
        self.created = []
        self.cancelled = []
        self.cancel_all_calls = []
        self.leverage_calls = []
        self.fail_on = {}
        self.cancel_error: Optional[Exception] = None
        self.initialized = False
        self.closed = False
        self._next_id = 0

    async def initialize(self):
        self.initialized = True

    async def get_current_price(self, symbol):
        return self.price

    async def fetch_candles(self, symbol, interval, count):
        return make_candles(self.closes)[-count:]

    async def fetch_balance(self):
        return Balance(total={"BTC": self.equity}, used={"BTC": 0.0}, free={"BTC": self.equity})

    async def fetch_positions(self, symbol):
        return list(self.positions)

    async def create_order(self, symbol, order_type, side, quantity, price=None, trigger_price=None,
                           reduce_only=False, client_order_id=None):
        suffix = (client_order_id or "").rsplit("-", 1)[-1]
        if suffix in self.fail_on:
            raise self.fail_on[suffix]
        self._next_id += 1
        order_id = f"ord-{self._next_id}"
        self.created.append({
            "id": order_id,
            "symbol": symbol,
            "type": order_type,
            "side": side,
            "quantity": quantity,
            "price": price,
            "trigger_price": trigger_price,
            "reduce_only": reduce_only,
            "client_order_id": client_order_id,
        })
        self.orders.append(OrderStatus(
            id=order_id,
            status=OrderState.FILLED if price is None and trigger_price is None else OrderState.OPEN,
            side=side.value,
            type=order_type.value,
            price=price,
            amount=quantity,
            filled=quantity if price is None and trigger_price is None else 0.0,
            remaining=0.0 if price is None and trigger_price is None else quantity,
            timestamp=None,
            client_order_id=client_order_id,
        ))
        if self.fill_entries and suffix == "entry":
            self.positions = [Position(side="long" if side.value == "buy" else "short",
                                       size=quantity, entry_price=self.price, unrealized_pnl=0.0)]
        return order_id

    async def fetch_orders(self, symbol):
        return list(self.orders)

    async def cancel_order(self, order_id, symbol):
        if self.cancel_error is not None:
            raise self.cancel_error
        self.cancelled.append(order_id)

    async def cancel_all_orders(self, symbol):
        self.cancel_all_calls.append(symbol)

    async def set_leverage(self, symbol, leverage):
        self.leverage_calls.append((symbol, leverage))

    async def close(self):
        self.closed = True


def transport_error(msg="boom"):
    return AdapterTransportError(msg)


@pytest.fixture
def event_log():
    return EventLog("test")


@pytest.fixture
def stub_exchange():
    return StubExchange()


class FakeNotifier:
    def __init__(self):
        self.brackets = []
        self.alerts = []
        self.closed = False

    async def notify_bracket(self, bracket):
        self.brackets.append(bracket)

    async def notify_alert(self, subject, detail):
        self.alerts.append((subject, detail))

    async def close(self):
        self.closed = True


class FakeFeed:
    """Feed that never delivers on its own; tests push bars via the service."""

    def __init__(self):
        self._running = False
        self.closed = False

    @property
    def running(self):
        return self._running

    async def run_forever(self, on_candle):
        import asyncio
        self._running = True
        await asyncio.Event().wait()

    async def close(self):
        self._running = False
        self.closed = True
