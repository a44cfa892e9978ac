import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import ccxt.async_support as ccxt

from ema_trader.models.candle_models import Balance, Candle, OrderStatus, Position
from ema_trader.providers.exchange import ExchangeAdapter
from ema_trader.utils.errors import AdapterTransportError, InitError, OrderNotFound
from ema_trader.utils.logging_config import EventLog
from ema_trader.utils.orders_enum import OrderSide, OrderState, OrderType

# BitMEX ordStatus values; ccxt's unified status folds PartiallyFilled into "open".
_BITMEX_ORD_STATUS = {
    "New": OrderState.OPEN,
    "PartiallyFilled": OrderState.PARTIALLY_FILLED,
    "Filled": OrderState.FILLED,
    "Canceled": OrderState.CANCELED,
    "Rejected": OrderState.REJECTED,
    "Expired": OrderState.EXPIRED,
}

_UNIFIED_STATUS = {
    "open": OrderState.OPEN,
    "closed": OrderState.FILLED,
    "canceled": OrderState.CANCELED,
    "rejected": OrderState.REJECTED,
    "expired": OrderState.EXPIRED,
}


def _to_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value) if value is not None else default
    except (TypeError, ValueError):
        return default


class BitmexRest(ExchangeAdapter):
    """BitMEX derivatives REST integration built on ccxt's asyncio client."""

    component = "BitmexRest"

    def __init__(self, api_key: str, api_secret: str, event_log: EventLog, test: bool = True, timeout_ms: int = 10000):
        self.api_key = api_key
        self.api_secret = api_secret
        self.test = test
        self.log = event_log
        self.exchange = ccxt.bitmex({
            "apiKey": api_key,
            "secret": api_secret,
            "enableRateLimit": True,
            "timeout": timeout_ms,
        })
        if test:
            self.exchange.set_sandbox_mode(True)
        self._markets_loaded = False

    async def initialize(self) -> None:
        try:
            await self.exchange.load_markets()
        except ccxt.BaseError as e:
            self.log.record(logging.ERROR, self.component, f"Initialization failed: {e}")
            raise InitError(f"BitMEX initialization failed: {e}") from e
        self._markets_loaded = True
        self.log.record(logging.INFO, self.component, f"Markets loaded ({len(self.exchange.markets)}) sandbox={self.test}")

    async def get_current_price(self, symbol: str) -> float:
        ticker = await self._call("fetch_ticker", self.exchange.fetch_ticker, self._resolve(symbol))
        price = _to_float(ticker.get("last"))
        if price <= 0:
            raise AdapterTransportError(f"No last price in ticker for {symbol}: {ticker}")
        return price

    async def fetch_candles(self, symbol: str, interval: str, count: int) -> List[Candle]:
        rows = await self._call(
            "fetch_ohlcv", self.exchange.fetch_ohlcv, self._resolve(symbol), interval, limit=count
        )
        candles = [
            Candle(
                timestamp=datetime.fromtimestamp(row[0] / 1000.0, tz=timezone.utc),
                open=_to_float(row[1]),
                high=_to_float(row[2]),
                low=_to_float(row[3]),
                close=_to_float(row[4]),
                volume=_to_float(row[5]),
            )
            for row in rows or []
        ]
        candles.sort(key=lambda c: c.timestamp)
        return candles[-count:]

    async def fetch_balance(self) -> Balance:
        raw = await self._call("fetch_balance", self.exchange.fetch_balance)

        def _wallet(key: str) -> Dict[str, float]:
            return {asset: _to_float(amount) for asset, amount in (raw.get(key) or {}).items()}

        return Balance(total=_wallet("total"), used=_wallet("used"), free=_wallet("free"))

    async def fetch_positions(self, symbol: str) -> List[Position]:
        raw = await self._call("fetch_positions", self.exchange.fetch_positions, [self._resolve(symbol)])
        return [
            Position(
                side=p.get("side") or "",
                size=_to_float(p.get("contracts")),
                entry_price=_to_float(p.get("entryPrice")),
                unrealized_pnl=_to_float(p.get("unrealizedPnl")),
            )
            for p in raw or []
        ]

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
        params: Dict[str, Any] = {}
        if trigger_price is not None:
            params["stopPx"] = trigger_price
        if reduce_only:
            params["reduceOnly"] = True
        if client_order_id:
            params["clientOrderId"] = client_order_id
        order = await self._call(
            "create_order",
            self.exchange.create_order,
            self._resolve(symbol),
            order_type.value,
            side.value,
            quantity,
            price,
            params,
        )
        order_id = order.get("id") if isinstance(order, dict) else None
        if not order_id:
            raise AdapterTransportError(f"Order response without id: {order}")
        return str(order_id)

    async def fetch_orders(self, symbol: str) -> List[OrderStatus]:
        raw = await self._call("fetch_orders", self.exchange.fetch_orders, self._resolve(symbol))
        return [self._parse_order(o) for o in raw or []]

    async def cancel_order(self, order_id: str, symbol: str) -> None:
        try:
            await self.exchange.cancel_order(order_id, self._resolve(symbol))
        except ccxt.OrderNotFound as e:
            raise OrderNotFound(order_id, symbol) from e
        except ccxt.BaseError as e:
            raise AdapterTransportError(f"cancel_order {order_id} failed: {e}") from e

    async def cancel_all_orders(self, symbol: str) -> None:
        await self._call("cancel_all_orders", self.exchange.cancel_all_orders, self._resolve(symbol))

    async def set_leverage(self, symbol: str, leverage: int) -> None:
        market_symbol = self._resolve(symbol)
        await self._call("set_margin_mode", self.exchange.set_margin_mode, "cross", market_symbol)
        await self._call("set_leverage", self.exchange.set_leverage, leverage, market_symbol)
        self.log.record(logging.INFO, self.component, f"Leverage set to {leverage}x (cross) for {symbol}")

    async def close(self) -> None:
        await self.exchange.close()

    async def _call(self, what: str, fn, *args, **kwargs):
        try:
            return await fn(*args, **kwargs)
        except ccxt.BaseError as e:
            self.log.record(logging.ERROR, self.component, f"{what} failed: {type(e).__name__}: {e}")
            raise AdapterTransportError(f"{what} failed: {e}") from e

    def _resolve(self, symbol: str) -> str:
        """Map an exchange id such as XBTUSD to ccxt's unified symbol once markets are loaded."""
        if not self._markets_loaded:
            return symbol
        try:
            return self.exchange.market(symbol)["symbol"]
        except ccxt.BaseError:
            return symbol

    @staticmethod
    def _parse_order(order: Dict[str, Any]) -> OrderStatus:
        info = order.get("info") or {}
        state = _BITMEX_ORD_STATUS.get(info.get("ordStatus"))
        if state is None:
            state = _UNIFIED_STATUS.get(order.get("status"), OrderState.UNKNOWN)
        return OrderStatus(
            id=str(order.get("id")),
            status=state,
            side=order.get("side") or "",
            type=order.get("type") or "",
            price=order.get("price") if order.get("price") is not None else order.get("triggerPrice"),
            amount=_to_float(order.get("amount")),
            filled=_to_float(order.get("filled")),
            remaining=_to_float(order.get("remaining")),
            timestamp=order.get("timestamp"),
            client_order_id=order.get("clientOrderId"),
        )
