"""
Data models for the trading system.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional

from ema_trader.utils.orders_enum import OrderState, PositionSide


@dataclass(frozen=True)
class Candle:
	"""A closed price bar."""
	timestamp: datetime
	open: float
	high: float
	low: float
	close: float
	volume: float

	def to_dict(self):
		return {
			"timestamp": self.timestamp.isoformat(),
			"open": self.open,
			"high": self.high,
			"low": self.low,
			"close": self.close,
			"volume": self.volume
		}


@dataclass(frozen=True)
class Position:
	"""Open position as reported by the exchange."""
	side: str
	size: float
	entry_price: float
	unrealized_pnl: float

	def to_dict(self):
		return {
			"side": self.side,
			"size": self.size,
			"entry_price": self.entry_price,
			"unrealized_pnl": self.unrealized_pnl
		}


@dataclass(frozen=True)
class Balance:
	"""Per-asset wallet amounts."""
	total: Dict[str, float] = field(default_factory=dict)
	used: Dict[str, float] = field(default_factory=dict)
	free: Dict[str, float] = field(default_factory=dict)

	def to_dict(self):
		return {"total": dict(self.total), "used": dict(self.used), "free": dict(self.free)}


@dataclass(frozen=True)
class OrderStatus:
	"""Order record; state is whatever the exchange last reported."""
	id: str
	status: OrderState
	side: str
	type: str
	price: Optional[float]
	amount: float
	filled: float
	remaining: float
	timestamp: Optional[int]
	client_order_id: Optional[str] = None

	def to_dict(self):
		return {
			"id": self.id,
			"status": self.status.value,
			"side": self.side,
			"type": self.type,
			"price": self.price,
			"amount": self.amount,
			"filled": self.filled,
			"remaining": self.remaining,
			"timestamp": self.timestamp,
			"client_order_id": self.client_order_id
		}


@dataclass
class Bracket:
	"""Entry order plus its take-profit and stop-loss exits.

	The bracket has no terminal order state of its own; it is resolved once a
	position query reports the symbol flat (see ``resolved_at``).
	"""
	bracket_id: str
	symbol: str
	side: PositionSide
	quantity: float
	entry_order_id: str
	take_profit_order_id: str
	stop_loss_order_id: str
	entry_price: float
	target_price: float
	stop_price: float
	created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
	resolved_at: Optional[datetime] = None

	@property
	def is_active(self) -> bool:
		return self.resolved_at is None

	def order_ids(self) -> Dict[str, str]:
		return {
			"entry": self.entry_order_id,
			"take_profit": self.take_profit_order_id,
			"stop_loss": self.stop_loss_order_id
		}

	def to_dict(self):
		return {
			"bracket_id": self.bracket_id,
			"symbol": self.symbol,
			"side": self.side.value,
			"quantity": self.quantity,
			"order_ids": self.order_ids(),
			"entry_price": self.entry_price,
			"target_price": self.target_price,
			"stop_price": self.stop_price,
			"created_at": self.created_at.isoformat(),
			"resolved_at": self.resolved_at.isoformat() if self.resolved_at else None
		}
