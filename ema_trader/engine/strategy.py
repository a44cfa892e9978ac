import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set

from ema_trader.engine.crossover import detect_crossover
from ema_trader.engine.ema import EMAEngine
from ema_trader.execution.execution import BracketOrderManager
from ema_trader.models.candle_models import Bracket, Candle, OrderStatus
from ema_trader.providers.exchange import ExchangeAdapter
from ema_trader.services.metrics import (brackets_counter, evaluation_latency, placement_failures_counter,
                                         risk_rejections_counter, signals_counter)
from ema_trader.services.notifier import Notifier
from ema_trader.utils.errors import (AdapterTransportError, InsufficientData, OrderNotFound, OrderPlacementError,
                                     RiskLimitExceeded)
from ema_trader.utils.logging_config import EventLog
from ema_trader.utils.orders_enum import CrossSignal, PositionSide


class EmaCrossStrategy:
    """Price vs fast/slow EMA crossover, one evaluation per closed candle.

    GoldenCross opens a long bracket, DeathCross a short one. Evaluations are
    serialized so two close candle events cannot both pass the risk gate
    before either has placed its entry.
    """

    component = "EmaCrossStrategy"

    def __init__(
        self,
        exchange: ExchangeAdapter,
        bracket_manager: BracketOrderManager,
        ema_engine: EMAEngine,
        event_log: EventLog,
        symbol: str,
        interval: str,
        fast_period: int,
        slow_period: int,
        settle_delay: float = 5.0,
        notifier: Optional[Notifier] = None,
    ):
        self.exchange = exchange
        self.bracket_manager = bracket_manager
        self.ema_engine = ema_engine
        self.log = event_log
        self.symbol = symbol
        self.interval = interval
        self.fast_period = fast_period
        self.slow_period = slow_period
        self.settle_delay = settle_delay
        self.notifier = notifier

        self.active_bracket: Optional[Bracket] = None
        self.last_evaluation: Optional[Dict[str, Any]] = None
        self.order_statuses: Dict[str, OrderStatus] = {}
        self._lock = asyncio.Lock()
        self._status_tasks: Set[asyncio.Task] = set()

    def required_candles(self) -> int:
        return max(self.fast_period, self.slow_period) * self.ema_engine.factor + 1

    async def execute(self, candle: Optional[Candle] = None) -> Optional[Bracket]:
        async with self._lock:
            with evaluation_latency.time():
                return await self._evaluate(candle)

    async def _evaluate(self, candle: Optional[Candle]) -> Optional[Bracket]:
        bar_ts = candle.timestamp.isoformat() if candle else "n/a"
        self.log.record(logging.INFO, self.component, f"Evaluating {self.symbol} {self.interval} bar={bar_ts}")

        balance = await self.exchange.fetch_balance()
        self.log.record(logging.INFO, self.component, f"Balance: {balance.to_dict()}")
        self.bracket_manager.risk_manager.observe(balance)

        price = await self.exchange.get_current_price(self.symbol)
        candles = await self.exchange.fetch_candles(self.symbol, self.interval, self.required_candles())
        closes = [c.close for c in candles]
        try:
            ema = self.ema_engine.snapshot(closes, self.fast_period, self.slow_period)
        except InsufficientData as e:
            self.log.record(logging.WARNING, self.component, f"Skipping bar {bar_ts}: {e}")
            return None
        previous_price = closes[-2]

        self.log.record(
            logging.INFO,
            self.component,
            f"price={price} ema_fast={ema.fast:.4f} ema_slow={ema.slow:.4f} previous_price={previous_price} "
            f"previous_ema_fast={ema.prev_fast:.4f} previous_ema_slow={ema.prev_slow:.4f}",
        )
        self.log.record(
            logging.DEBUG,
            self.component,
            f"golden: price>fast={price > ema.fast} prev<=prev_fast={previous_price <= ema.prev_fast} "
            f"price>slow={price > ema.slow} | death: price<fast={price < ema.fast} "
            f"prev>=prev_fast={previous_price >= ema.prev_fast} price<slow={price < ema.slow}",
        )

        signal = detect_crossover(price, previous_price, ema.fast, ema.slow, ema.prev_fast, ema.prev_slow)
        self.last_evaluation = {
            "bar": bar_ts,
            "price": price,
            "previous_price": previous_price,
            "ema_fast": ema.fast,
            "ema_slow": ema.slow,
            "previous_ema_fast": ema.prev_fast,
            "previous_ema_slow": ema.prev_slow,
            "signal": signal.value,
        }
        self.log.record(logging.INFO, self.component, f"Signal: {signal.value}")

        bracket = None
        if signal is not CrossSignal.NONE:
            signals_counter.labels(signal=signal.value).inc()
            side = PositionSide.LONG if signal is CrossSignal.GOLDEN_CROSS else PositionSide.SHORT
            bracket = await self._enter(side, price, ema)

        await self._report_positions(bracket)
        return bracket

    async def _enter(self, side: PositionSide, price: float, ema) -> Optional[Bracket]:
        try:
            bracket = await self.bracket_manager.open_position(side)
        except RiskLimitExceeded as e:
            risk_rejections_counter.inc()
            self.log.record(logging.WARNING, self.component, f"{side.value} entry blocked: {e.reason}")
            return None
        except OrderPlacementError as e:
            placement_failures_counter.labels(unhedged=str(e.unhedged).lower()).inc()
            level = logging.CRITICAL if e.unhedged else logging.ERROR
            self.log.record(
                level,
                self.component,
                f"{side.value} bracket failed for {self.symbol} at price={price} ema_fast={ema.fast:.4f} "
                f"ema_slow={ema.slow:.4f}: {e} placed={e.placed_order_ids} rollback_failed={e.rollback_failed}",
            )
            if self.notifier and e.unhedged:
                await self.notifier.notify_alert(
                    "Unhedged position after bracket failure",
                    {
                        "symbol": self.symbol,
                        "side": side.value,
                        "price": price,
                        "placed_order_ids": e.placed_order_ids,
                        "rollback_failed": e.rollback_failed,
                        "error": str(e),
                    },
                )
            raise

        brackets_counter.labels(side=side.value).inc()
        self.active_bracket = bracket
        self.log.record(logging.INFO, self.component, f"Bracket {bracket.bracket_id} order ids: {bracket.order_ids()}")
        if self.notifier:
            await self.notifier.notify_bracket(bracket)
        self._schedule_status_check(bracket)
        return bracket

    def _schedule_status_check(self, bracket: Bracket) -> None:
        task = asyncio.get_running_loop().create_task(self._check_bracket_status(bracket))
        self._status_tasks.add(task)
        task.add_done_callback(self._status_tasks.discard)

    async def _check_bracket_status(self, bracket: Bracket) -> None:
        await asyncio.sleep(self.settle_delay)
        for label, order_id in bracket.order_ids().items():
            try:
                status = await self.bracket_manager.get_order_status(order_id)
            except OrderNotFound as e:
                self.log.record(logging.WARNING, self.component, f"{label} order status unavailable: {e}")
                continue
            except AdapterTransportError as e:
                self.log.record(logging.ERROR, self.component, f"{label} order {order_id} status query failed: {e}")
                continue
            except Exception as e:
                self.log.record(
                    logging.ERROR, self.component, f"{label} order {order_id} status check failed: {e}", exc_info=True
                )
                continue
            self.order_statuses[order_id] = status
            self.log.record(
                logging.INFO,
                self.component,
                f"Bracket {bracket.bracket_id} {label} order {order_id} status={status.status.value} "
                f"filled={status.filled}/{status.amount}",
            )

    async def _report_positions(self, new_bracket: Optional[Bracket]) -> None:
        positions = await self.bracket_manager.get_positions()
        if positions:
            for p in positions:
                self.log.record(
                    logging.INFO,
                    self.component,
                    f"Position side={p.side} size={p.size} entry={p.entry_price} unrealized_pnl={p.unrealized_pnl}",
                )
            return
        self.log.record(logging.INFO, self.component, f"No open position for {self.symbol}")
        # a bracket placed in this pass may not show up in positions yet
        active = self.active_bracket
        if active is not None and active.is_active and active is not new_bracket:
            active.resolved_at = datetime.now(timezone.utc)
            self.log.record(logging.INFO, self.component, f"Bracket {active.bracket_id} resolved: position flat")

    async def wait_for_status_checks(self) -> None:
        if self._status_tasks:
            await asyncio.gather(*list(self._status_tasks))

    async def shutdown(self) -> None:
        for task in list(self._status_tasks):
            task.cancel()
        if self._status_tasks:
            await asyncio.gather(*list(self._status_tasks), return_exceptions=True)
