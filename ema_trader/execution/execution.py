import logging
import math
import uuid
from typing import List, Optional, Tuple

from ema_trader.models.candle_models import Bracket, OrderStatus, Position
from ema_trader.providers.exchange import ExchangeAdapter
from ema_trader.services.risk_manager import RiskManager
from ema_trader.utils.errors import OrderNotFound, OrderPlacementError, TradingError
from ema_trader.utils.logging_config import EventLog
from ema_trader.utils.orders_enum import OrderSide, OrderType, PositionSide


def round_to_tick(price: float, tick: float = 1.0) -> float:
    """Nearest multiple of ``tick``, halves rounded up."""
    if tick <= 0:
        return price
    return math.floor(price / tick + 0.5) * tick


class BracketOrderManager:
    """Places and tracks entry + take-profit + stop-loss triples.

    Long (buy entry): target = price + profit_target, stop = price - stop_loss.
    Short (sell entry): target = price - profit_target, stop = price + stop_loss.
    Both exits sit on the opposite side, for the entry quantity, reduce-only.
    """

    component = "BracketOrderManager"

    def __init__(
        self,
        exchange: ExchangeAdapter,
        risk_manager: RiskManager,
        symbol: str,
        quantity: float,
        profit_target: float,
        stop_loss: float,
        event_log: EventLog,
        price_tick: float = 1.0,
    ):
        self.exchange = exchange
        self.risk_manager = risk_manager
        self.symbol = symbol
        self.quantity = quantity
        self.profit_target = profit_target
        self.stop_loss = stop_loss
        self.price_tick = price_tick
        self.log = event_log

    def bracket_prices(self, side: PositionSide, price: float) -> Tuple[float, float]:
        if side is PositionSide.LONG:
            target = price + self.profit_target
            stop = price - self.stop_loss
        else:
            target = price - self.profit_target
            stop = price + self.stop_loss
        return round_to_tick(target, self.price_tick), round_to_tick(stop, self.price_tick)

    async def open_position(self, side: PositionSide) -> Bracket:
        await self.risk_manager.check_risk_control()

        price = await self.exchange.get_current_price(self.symbol)
        bracket_id = uuid.uuid4().hex[:16]
        self.log.record(logging.INFO, self.component, f"Opening {side.value} bracket {bracket_id} {self.symbol} qty={self.quantity} at ~{price}")

        try:
            entry_id = await self.exchange.create_order(
                self.symbol,
                OrderType.MARKET,
                side.entry_side,
                self.quantity,
                client_order_id=f"{bracket_id}-entry",
            )
        except TradingError as e:
            self.log.record(logging.ERROR, self.component, f"Entry order failed for bracket {bracket_id}: {e}")
            raise OrderPlacementError(f"Entry order failed for {self.symbol}: {e}") from e
        self.log.record(logging.INFO, self.component, f"Entry order placed id={entry_id} side={side.entry_side.value}")

        target, stop = self.bracket_prices(side, price)
        exit_side = side.exit_side
        placed_exits: List[str] = []
        try:
            tp_id = await self.exchange.create_order(
                self.symbol,
                OrderType.LIMIT,
                exit_side,
                self.quantity,
                price=target,
                reduce_only=True,
                client_order_id=f"{bracket_id}-tp",
            )
            placed_exits.append(tp_id)
            self.log.record(logging.INFO, self.component, f"Take-profit placed id={tp_id} price={target}")

            sl_id = await self.exchange.create_order(
                self.symbol,
                OrderType.STOP,
                exit_side,
                self.quantity,
                trigger_price=stop,
                reduce_only=True,
                client_order_id=f"{bracket_id}-sl",
            )
            self.log.record(logging.INFO, self.component, f"Stop-loss placed id={sl_id} trigger={stop}")
        except TradingError as e:
            self.log.record(
                logging.CRITICAL,
                self.component,
                f"UNHEDGED POSITION: bracket {bracket_id} entry {entry_id} filled but exit placement failed "
                f"({e}); target={target} stop={stop} placed_exits={placed_exits}",
            )
            rolled_back = await self._rollback(bracket_id, side, placed_exits)
            raise OrderPlacementError(
                f"Bracket {bracket_id} incomplete for {self.symbol}: {e}"
                + ("" if rolled_back else "; rollback failed, position unmanaged"),
                placed_order_ids=[entry_id] + placed_exits,
                unhedged=True,
                rollback_failed=not rolled_back,
            ) from e

        return Bracket(
            bracket_id=bracket_id,
            symbol=self.symbol,
            side=side,
            quantity=self.quantity,
            entry_order_id=entry_id,
            take_profit_order_id=tp_id,
            stop_loss_order_id=sl_id,
            entry_price=price,
            target_price=target,
            stop_price=stop,
        )

    async def _rollback(self, bracket_id: str, side: PositionSide, placed_exits: List[str]) -> bool:
        """Cancel placed exits and flatten the entry; False if any step failed."""
        ok = True
        for order_id in placed_exits:
            try:
                await self.exchange.cancel_order(order_id, self.symbol)
                self.log.record(logging.WARNING, self.component, f"Rollback cancelled order {order_id}")
            except TradingError as e:
                ok = False
                self.log.record(logging.ERROR, self.component, f"Rollback could not cancel {order_id}: {e}")
        try:
            flatten_id = await self.exchange.create_order(
                self.symbol,
                OrderType.MARKET,
                side.exit_side,
                self.quantity,
                reduce_only=True,
                client_order_id=f"{bracket_id}-rb",
            )
            self.log.record(logging.WARNING, self.component, f"Rollback flattened entry with order {flatten_id}")
        except TradingError as e:
            ok = False
            self.log.record(
                logging.CRITICAL,
                self.component,
                f"ROLLBACK FAILED for bracket {bracket_id}: could not flatten {side.value} {self.quantity} {self.symbol}: {e}",
            )
        return ok

    async def get_order_status(self, order_id: str) -> OrderStatus:
        # no lookup-by-id on every exchange, scan the symbol's orders instead
        orders = await self.exchange.fetch_orders(self.symbol)
        for order in orders:
            if order.id == order_id:
                return order
        self.log.record(logging.WARNING, self.component, f"Order {order_id} not found among {len(orders)} orders")
        raise OrderNotFound(order_id, self.symbol)

    async def get_positions(self) -> List[Position]:
        positions = await self.exchange.fetch_positions(self.symbol)
        return [p for p in positions if p.size != 0]

    async def close_position(self) -> Optional[str]:
        """Flatten the open position with a reduce-only market order."""
        positions = await self.get_positions()
        if not positions:
            self.log.record(logging.INFO, self.component, f"No position to close for {self.symbol}")
            return None
        position = positions[0]
        side = OrderSide.SELL if position.side == PositionSide.LONG.value else OrderSide.BUY
        order_id = await self.exchange.create_order(
            self.symbol,
            OrderType.MARKET,
            side,
            abs(position.size),
            reduce_only=True,
        )
        self.log.record(logging.INFO, self.component, f"Closed {position.side} {abs(position.size)} {self.symbol} with order {order_id}")
        return order_id

    async def cancel_all_orders(self) -> None:
        await self.exchange.cancel_all_orders(self.symbol)
        self.log.record(logging.INFO, self.component, f"All orders cancelled for {self.symbol}")
