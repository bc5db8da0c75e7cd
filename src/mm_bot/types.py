from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Literal, Optional


EventType = Literal[
    "EXTERNAL_PRICE",      # feed top-of-book tick
    "ORDER_SUBMIT",        # our orders (intent)
    "ORDER_ACK",           # venue ack
    "ORDER_FILL",          # fills/partials
    "ORDER_CANCEL",        # cancels (single or all)
    "CONNECTION",          # connect/disconnect/reconnect
    "MODE_CHANGE",         # risk mode transitions
    "ENGINE_ERROR",        # recorded last-error
]

Side = Literal["buy", "sell"]
OrderStatus = Literal["pending", "open", "filled", "cancelled"]


@dataclass(frozen=True)
class Event:
    ts_ms: int
    type: EventType
    payload: Dict[str, Any]


@dataclass(frozen=True)
class Tick:
    ts_ms: int
    bid: float
    ask: float

    @property
    def mid(self) -> float:
        return (self.bid + self.ask) / 2.0

    def is_valid(self) -> bool:
        """Both sides positive and finite, not crossed, midpoint positive."""
        for px in (self.bid, self.ask):
            if not math.isfinite(px) or px <= 0:
                return False
        if self.ask < self.bid:
            return False
        mid = self.mid
        return math.isfinite(mid) and mid > 0


@dataclass(frozen=True)
class MarketData:
    """Published fair-price update (one per accepted tick)."""

    symbol: str
    fair_price: float
    bid: float
    ask: float
    spread: float
    ts_ms: int


@dataclass
class Order:
    id: str
    symbol: str
    side: Side
    price: float
    size: float
    reduce_only: bool = False
    status: OrderStatus = "open"
    ts_ms: int = 0
    order_type: str = "limit"


@dataclass
class Position:
    symbol: str
    # signed, base units (positive = long)
    size: float
    entry_price: float = 0.0
    mark_price: float = 0.0
    unrealized_pnl: float = 0.0
    realized_pnl: float = 0.0
    leverage: float = 1.0
    liquidation_price: float = 0.0


class RiskMode(str, Enum):
    NORMAL = "normal"
    CLOSE_ONLY = "close_only"


class RunState(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


@dataclass(frozen=True)
class BotStatus:
    is_running: bool
    run_state: RunState
    exchange: str
    symbol: str
    position: Optional[Position]
    active_orders: tuple[Order, ...]
    market_data: Optional[MarketData]
    mode: Optional[RiskMode]
    total_pnl: float
    trades_count: int
    uptime_ms: int
    last_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isRunning": self.is_running,
            "runState": self.run_state.value,
            "exchange": self.exchange,
            "symbol": self.symbol,
            "position": asdict(self.position) if self.position is not None else None,
            "activeOrders": [asdict(o) for o in self.active_orders],
            "marketData": asdict(self.market_data) if self.market_data is not None else None,
            "mode": self.mode.value if self.mode is not None else None,
            "totalPnl": self.total_pnl,
            "tradesCount": self.trades_count,
            "uptimeMs": self.uptime_ms,
            "lastError": self.last_error,
        }
