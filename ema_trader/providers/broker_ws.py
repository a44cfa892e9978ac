import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

import websockets

from ema_trader.models.candle_models import Candle
from ema_trader.providers.reconnect import FixedDelayReconnect, ReconnectPolicy
from ema_trader.services.metrics import feed_reconnects_counter
from ema_trader.utils.logging_config import EventLog

LIVE_WS_URL = "wss://www.bitmex.com/realtime"
TESTNET_WS_URL = "wss://testnet.bitmex.com/realtime"

CandleCallback = Callable[[Candle], Awaitable[None]]


def _parse_ts(value: Any) -> datetime:
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def parse_trade_bin(message: Dict[str, Any], table: str, symbol: str) -> List[Candle]:
    """Closed candles carried by a tradeBin ``insert`` message, oldest first.

    Anything else (subscription acks, partials, other tables or symbols) yields
    no candles.
    """
    if message.get("table") != table or message.get("action") != "insert":
        return []
    candles = []
    for row in message.get("data") or []:
        if row.get("symbol") not in (None, symbol):
            continue
        candles.append(Candle(
            timestamp=_parse_ts(row["timestamp"]),
            open=float(row["open"]),
            high=float(row["high"]),
            low=float(row["low"]),
            close=float(row["close"]),
            volume=float(row.get("volume") or 0),
        ))
    candles.sort(key=lambda c: c.timestamp)
    return candles


class BitmexWS:
    """BitMEX realtime subscription delivering one Candle per closed bar.

    Reconnects whenever the socket closes or errors, waiting for the delay the
    reconnect policy hands out. Message and callback errors are logged here and
    never reach the caller.
    """

    component = "BitmexWS"

    def __init__(
        self,
        symbol: str,
        interval: str,
        event_log: EventLog,
        test: bool = True,
        reconnect: Optional[ReconnectPolicy] = None,
        warn_after: int = 12,
        connect=websockets.connect,
    ):
        self.symbol = symbol
        self.interval = interval
        self.log = event_log
        self.url = TESTNET_WS_URL if test else LIVE_WS_URL
        self.reconnect = reconnect or FixedDelayReconnect(5.0)
        self.warn_after = warn_after
        self._connect = connect
        self._ws = None
        self._running = False

    @property
    def table(self) -> str:
        return f"tradeBin{self.interval}"

    @property
    def running(self) -> bool:
        return self._running

    def subscription_message(self) -> Dict[str, Any]:
        return {"op": "subscribe", "args": [f"{self.table}:{self.symbol}"]}

    async def run_forever(self, on_candle: CandleCallback) -> None:
        self._running = True
        while self._running:
            try:
                async with self._connect(self.url, ping_interval=30, ping_timeout=10, close_timeout=5) as ws:
                    self._ws = ws
                    await ws.send(json.dumps(self.subscription_message()))
                    self.log.record(logging.INFO, self.component, f"Connected to {self.url}, subscribing {self.table}:{self.symbol}")
                    async for raw in ws:
                        await self._handle_message(raw, on_candle)
            except websockets.ConnectionClosed as e:
                self.log.record(logging.WARNING, self.component, f"WebSocket connection closed: {e}")
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.log.record(logging.ERROR, self.component, f"WebSocket error: {type(e).__name__}: {e}")
            finally:
                self._ws = None

            if not self._running:
                break
            delay = self.reconnect.next_delay()
            feed_reconnects_counter.inc()
            if self.reconnect.attempts >= self.warn_after:
                self.log.record(
                    logging.WARNING,
                    self.component,
                    f"{self.reconnect.attempts} consecutive reconnects without a bar; feed may be in a retry storm",
                )
            self.log.record(logging.INFO, self.component, f"Reconnecting in {delay:.1f}s (attempt {self.reconnect.attempts})")
            await asyncio.sleep(delay)
        self.log.record(logging.INFO, self.component, "Feed loop stopped")

    async def close(self) -> None:
        self._running = False
        ws = self._ws
        if ws is not None:
            try:
                await ws.close()
            except Exception as e:
                self.log.record(logging.WARNING, self.component, f"Error during WebSocket close: {e}")

    async def _handle_message(self, raw, on_candle: CandleCallback) -> None:
        try:
            message = json.loads(raw)
        except (TypeError, ValueError) as e:
            self.log.record(logging.WARNING, self.component, f"Unparsable message ({e}): {raw!r:.200}")
            return
        if not isinstance(message, dict):
            return
        if "error" in message:
            self.log.record(logging.ERROR, self.component, f"Exchange error message: {message.get('error')}")
            return
        if "subscribe" in message:
            self.log.record(logging.INFO, self.component, f"Subscription {message.get('subscribe')} success={message.get('success')}")
            return

        try:
            candles = parse_trade_bin(message, self.table, self.symbol)
        except (KeyError, TypeError, ValueError) as e:
            self.log.record(logging.WARNING, self.component, f"Malformed {self.table} row ({e}): {message!r:.200}")
            return
        for candle in candles:
            # a closed bar proves the link is healthy
            self.reconnect.reset()
            self.log.record(
                logging.INFO,
                self.component,
                f"New bar {candle.timestamp.isoformat()} open={candle.open} high={candle.high} "
                f"low={candle.low} close={candle.close} volume={candle.volume}",
            )
            try:
                await on_candle(candle)
            except Exception as e:
                self.log.record(logging.ERROR, self.component, f"Candle handler failed: {e}", exc_info=True)
