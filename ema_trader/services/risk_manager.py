import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Callable, List, Optional

from ema_trader.models.candle_models import Balance, Position
from ema_trader.providers.exchange import ExchangeAdapter
from ema_trader.utils.errors import RiskLimitExceeded
from ema_trader.utils.logging_config import EventLog


@dataclass(frozen=True)
class RiskLimits:
    max_daily_loss: float
    max_positions: int
    risk_per_trade: float


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RiskManager:
    """Pre-entry gate on daily P&L and open position count.

    Every check queries the exchange afresh. Daily P&L is the change in the
    settle-currency equity since the first observation of the current UTC day
    (every evaluated bar reports its balance through ``observe``);
    BitMEX reports equity as margin balance, so the figure already covers
    realized and unrealized P&L. The baseline lives in memory only.
    """

    component = "RiskManager"

    def __init__(
        self,
        exchange: ExchangeAdapter,
        symbol: str,
        limits: RiskLimits,
        event_log: EventLog,
        settle_currency: str = "BTC",
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.exchange = exchange
        self.symbol = symbol
        self.limits = limits
        self.log = event_log
        self.settle_currency = settle_currency
        self.clock = clock
        self._day: Optional[date] = None
        self._day_open_equity: Optional[float] = None

    async def check_risk_control(self) -> bool:
        balance = await self.exchange.fetch_balance()
        positions = await self.exchange.fetch_positions(self.symbol)

        daily_pnl = self.calculate_daily_pnl(balance)
        if abs(daily_pnl) > self.limits.max_daily_loss:
            reason = (
                f"Daily P&L {daily_pnl:.8f} {self.settle_currency} exceeds limit "
                f"{self.limits.max_daily_loss} for {self.symbol}"
            )
            self.log.record(logging.WARNING, self.component, f"Risk check failed: {reason}")
            raise RiskLimitExceeded(reason)

        open_positions = self.open_positions(positions)
        if len(open_positions) >= self.limits.max_positions:
            reason = (
                f"Open positions {len(open_positions)} reached limit "
                f"{self.limits.max_positions} for {self.symbol}"
            )
            self.log.record(logging.WARNING, self.component, f"Risk check failed: {reason}")
            raise RiskLimitExceeded(reason)

        self.log.record(
            logging.DEBUG,
            self.component,
            f"Risk check passed daily_pnl={daily_pnl:.8f} open_positions={len(open_positions)} "
            f"risk_per_trade={self.limits.risk_per_trade}",
        )
        return True

    def observe(self, balance: Balance) -> float:
        """Record a balance seen outside an entry attempt so the day baseline is set early."""
        return self.calculate_daily_pnl(balance)

    def calculate_daily_pnl(self, balance: Balance) -> float:
        equity = float(balance.total.get(self.settle_currency, 0.0) or 0.0)
        today = self.clock().date()
        if self._day != today or self._day_open_equity is None:
            self._day = today
            self._day_open_equity = equity
            self.log.record(logging.INFO, self.component, f"Day {today} opening equity {equity} {self.settle_currency}")
        return equity - self._day_open_equity

    @staticmethod
    def open_positions(positions: List[Position]) -> List[Position]:
        return [p for p in positions if p.size != 0]
