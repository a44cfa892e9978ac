import ccxt.async_support as ccxt
import pytest

from ema_trader.providers.broker_rest import BitmexRest
from ema_trader.utils.errors import AdapterTransportError, InitError, OrderNotFound
from ema_trader.utils.logging_config import EventLog
from ema_trader.utils.orders_enum import OrderSide, OrderState, OrderType


class FakeCcxt:
    def __init__(self):
        self.orders = []
        self.cancel_error = None
        self.load_error = None
        self.markets = {}

    async def load_markets(self):
        if self.load_error:
            raise self.load_error
        return self.markets

    async def create_order(self, symbol, type, side, amount, price=None, params=None):
        self.orders.append((symbol, type, side, amount, price, params))
        return {"id": f"id-{len(self.orders)}"}

    async def fetch_ohlcv(self, symbol, timeframe, limit=None):
        return [[1704067500000, 2, 2, 2, 2, 1], [1704067200000, 1, 1, 1, 1, 1]]

    async def fetch_ticker(self, symbol):
        return {"last": None}

    async def cancel_order(self, order_id, symbol):
        if self.cancel_error:
            raise self.cancel_error

    async def close(self):
        pass


@pytest.fixture
def adapter():
    rest = BitmexRest("key", "secret", EventLog("test"))
    rest.exchange = FakeCcxt()
    return rest


@pytest.mark.asyncio
async def test_stop_order_params(adapter):
    order_id = await adapter.create_order(
        "XBTUSD", OrderType.STOP, OrderSide.SELL, 10, trigger_price=49700.0, reduce_only=True,
        client_order_id="abc-sl",
    )
    assert order_id == "id-1"
    symbol, type_, side, amount, price, params = adapter.exchange.orders[0]
    assert (symbol, type_, side, amount, price) == ("XBTUSD", "stop", "sell", 10, None)
    assert params == {"stopPx": 49700.0, "reduceOnly": True, "clientOrderId": "abc-sl"}


@pytest.mark.asyncio
async def test_market_entry_has_no_extra_params(adapter):
    await adapter.create_order("XBTUSD", OrderType.MARKET, OrderSide.BUY, 10)
    assert adapter.exchange.orders[0][5] == {}


@pytest.mark.asyncio
async def test_initialize_failure_raises_init_error(adapter):
    adapter.exchange.load_error = ccxt.AuthenticationError("invalid key")
    with pytest.raises(InitError):
        await adapter.initialize()


@pytest.mark.asyncio
async def test_cancel_order_error_mapping(adapter):
    adapter.exchange.cancel_error = ccxt.OrderNotFound("gone")
    with pytest.raises(OrderNotFound):
        await adapter.cancel_order("x", "XBTUSD")
    adapter.exchange.cancel_error = ccxt.NetworkError("timeout")
    with pytest.raises(AdapterTransportError):
        await adapter.cancel_order("x", "XBTUSD")


@pytest.mark.asyncio
async def test_fetch_candles_oldest_first(adapter):
    candles = await adapter.fetch_candles("XBTUSD", "5m", 2)
    assert [c.close for c in candles] == [1.0, 2.0]


@pytest.mark.asyncio
async def test_missing_last_price_is_transport_error(adapter):
    with pytest.raises(AdapterTransportError):
        await adapter.get_current_price("XBTUSD")


def test_parse_order_prefers_exchange_status():
    status = BitmexRest._parse_order({
        "id": "o1", "status": "open", "side": "buy", "type": "limit", "price": 50900,
        "amount": 10, "filled": 4, "remaining": 6, "info": {"ordStatus": "PartiallyFilled"},
        "clientOrderId": "b-tp",
    })
    assert status.status is OrderState.PARTIALLY_FILLED
    assert status.client_order_id == "b-tp"


def test_parse_order_falls_back_to_unified_status():
    status = BitmexRest._parse_order({"id": "o2", "status": "closed", "amount": 10, "triggerPrice": 49700})
    assert status.status is OrderState.FILLED
    assert status.price == 49700
    assert BitmexRest._parse_order({"id": "o3", "status": "weird"}).status is OrderState.UNKNOWN
