import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from ema_trader.config import Settings
from ema_trader.engine.ema import EMAEngine
from ema_trader.engine.strategy import EmaCrossStrategy
from ema_trader.execution.execution import BracketOrderManager
from ema_trader.models.candle_models import Candle
from ema_trader.providers.broker_rest import BitmexRest
from ema_trader.providers.broker_ws import BitmexWS
from ema_trader.providers.exchange import ExchangeAdapter
from ema_trader.providers.reconnect import build_reconnect_policy
from ema_trader.services.metrics import candles_counter
from ema_trader.services.notifier import Notifier
from ema_trader.services.risk_manager import RiskLimits, RiskManager
from ema_trader.utils.errors import AdapterTransportError, TradingError
from ema_trader.utils.logging_config import EventLog


class EmaCrossService:
    """Wires the exchange adapter, candle feed and strategy for one symbol.

    Closed candles from the feed are queued in arrival order and evaluated by a
    single worker task. A failed evaluation is logged and the service keeps
    listening; only adapter initialization failures stop ``start()``.
    """

    component = "EmaCrossService"

    def __init__(
        self,
        config: Settings,
        event_log: EventLog,
        exchange: Optional[ExchangeAdapter] = None,
        feed: Optional[BitmexWS] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.config = config
        self.log = event_log
        self.exchange = exchange or BitmexRest(
            config.BITMEX_API_KEY,
            config.BITMEX_API_SECRET,
            event_log,
            test=config.TEST,
            timeout_ms=config.EXCHANGE_TIMEOUT_MS,
        )
        self.feed = feed or BitmexWS(
            config.SYMBOL,
            config.INTERVAL,
            event_log,
            test=config.TEST,
            reconnect=build_reconnect_policy(
                config.RECONNECT_STRATEGY, config.RECONNECT_DELAY_SEC, config.RECONNECT_MAX_DELAY_SEC
            ),
            warn_after=config.RECONNECT_WARN_AFTER,
        )
        self.notifier = notifier or Notifier(event_log, config.NOTIFIER_WEBHOOK)
        self.limits = RiskLimits(
            max_daily_loss=config.MAX_DAILY_LOSS,
            max_positions=config.MAX_POSITIONS,
            risk_per_trade=config.RISK_PER_TRADE,
        )
        self.risk_manager = RiskManager(
            self.exchange, config.SYMBOL, self.limits, event_log, settle_currency=config.SETTLE_CURRENCY
        )
        self.bracket_manager = BracketOrderManager(
            self.exchange,
            self.risk_manager,
            config.SYMBOL,
            config.QTY,
            config.PROFIT_TARGET,
            config.STOP_LOSS,
            event_log,
            price_tick=config.PRICE_TICK,
        )
        self.strategy = EmaCrossStrategy(
            self.exchange,
            self.bracket_manager,
            EMAEngine(factor=config.FACTOR),
            event_log,
            config.SYMBOL,
            config.INTERVAL,
            config.FAST_PERIOD,
            config.SLOW_PERIOD,
            settle_delay=config.SETTLE_DELAY_SEC,
            notifier=self.notifier,
        )
        self._queue: "asyncio.Queue[Candle]" = asyncio.Queue()
        self._worker_task: Optional[asyncio.Task] = None
        self._feed_task: Optional[asyncio.Task] = None
        self._running = False
        self.last_candle_ts: Optional[datetime] = None
        self.candles_processed = 0
        self.candles_dropped = 0
        self.evaluation_errors = 0

    @property
    def running(self) -> bool:
        return self._running

    async def start(self):
        if self._running:
            self.log.record(logging.INFO, self.component, "Service already running")
            return
        await self.exchange.initialize()
        if self.config.SET_LEVERAGE_ON_START:
            await self.exchange.set_leverage(self.config.SYMBOL, self.config.LEVERAGE)
        try:
            self.risk_manager.observe(await self.exchange.fetch_balance())
        except AdapterTransportError as e:
            self.log.record(logging.WARNING, self.component, f"Opening balance unavailable, baseline deferred: {e}")
        loop = asyncio.get_running_loop()
        self._worker_task = loop.create_task(self._worker())
        self._feed_task = loop.create_task(self.feed.run_forever(self.on_candle))
        self._running = True
        self.log.record(
            logging.INFO,
            self.component,
            f"Service started symbol={self.config.SYMBOL} interval={self.config.INTERVAL} "
            f"fast={self.config.FAST_PERIOD} slow={self.config.SLOW_PERIOD} factor={self.config.FACTOR} "
            f"sandbox={self.config.TEST}",
        )

    async def stop(self):
        if not self._running:
            return
        await self.feed.close()
        for task in (self._feed_task, self._worker_task):
            if task is not None:
                task.cancel()
        await asyncio.gather(
            *(t for t in (self._feed_task, self._worker_task) if t is not None), return_exceptions=True
        )
        self._feed_task = None
        self._worker_task = None
        await self.strategy.shutdown()
        await self.exchange.close()
        self._running = False
        self.log.record(logging.INFO, self.component, "Service stopped")

    async def close(self):
        """Final teardown; the service cannot be restarted afterwards."""
        await self.stop()
        await self.notifier.close()

    async def on_candle(self, candle: Candle):
        if self.last_candle_ts is not None and candle.timestamp <= self.last_candle_ts:
            self.candles_dropped += 1
            self.log.record(
                logging.WARNING,
                self.component,
                f"Dropping bar {candle.timestamp.isoformat()}: not newer than {self.last_candle_ts.isoformat()}",
            )
            return
        self.last_candle_ts = candle.timestamp
        await self._queue.put(candle)

    async def dispatch(self, candle: Candle):
        candles_counter.inc()
        try:
            await self.strategy.execute(candle)
        except TradingError as e:
            self.evaluation_errors += 1
            self.log.record(
                logging.ERROR,
                self.component,
                f"Evaluation of bar {candle.timestamp.isoformat()} failed ({type(e).__name__}): {e}",
            )
        except Exception as e:
            self.evaluation_errors += 1
            self.log.record(
                logging.ERROR,
                self.component,
                f"Unexpected error evaluating bar {candle.timestamp.isoformat()}: {e}",
                exc_info=True,
            )
        else:
            self.candles_processed += 1

    async def _worker(self):
        while True:
            candle = await self._queue.get()
            try:
                await self.dispatch(candle)
            finally:
                self._queue.task_done()

    def status(self) -> Dict[str, Any]:
        bracket = self.strategy.active_bracket
        return {
            'running': self._running,
            'symbol': self.config.SYMBOL,
            'interval': self.config.INTERVAL,
            'sandbox': self.config.TEST,
            'feed_connected': self.feed.running,
            'last_candle_ts': self.last_candle_ts.isoformat() if self.last_candle_ts else None,
            'candles_processed': self.candles_processed,
            'candles_dropped': self.candles_dropped,
            'evaluation_errors': self.evaluation_errors,
            'queued_candles': self._queue.qsize(),
            'last_evaluation': self.strategy.last_evaluation,
            'active_bracket': bracket.to_dict() if bracket else None,
            'risk_limits': {
                'max_daily_loss': self.limits.max_daily_loss,
                'max_positions': self.limits.max_positions,
                'risk_per_trade': self.limits.risk_per_trade,
            },
        }
