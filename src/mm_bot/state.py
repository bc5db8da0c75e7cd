from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from .types import MarketData, Order, Position, RiskMode


@dataclass
class BotState:
    # last venue snapshot (cache, refreshed every iteration)
    position: Optional[Position] = None

    # resident orders as last seen on the venue plus any we placed since
    orders: List[Order] = field(default_factory=list)

    # last published fair price
    market_data: Optional[MarketData] = None

    # last evaluated risk mode (None until the first quoting pass)
    mode: Optional[RiskMode] = None

    trades_count: int = 0

    # realized pnl accumulated from fill events that carry it
    realized_pnl: float = 0.0

    last_error: Optional[str] = None

    # monotonic seconds at RUNNING, None while stopped
    started_at: Optional[float] = None

    def record_error(self, message: str) -> None:
        self.last_error = message

    def clear_orders(self) -> None:
        self.orders = []
