from __future__ import annotations

"""Paper venue.

In-memory TradingVenue used for dry runs and tests. Naive fill model:
- a BUY resting at price >= current best ask fills,
- a SELL resting at price <= current best bid fills,
- otherwise the order rests until the book moves through it.

Fills are complete (no partials). If no best bid/ask is known, nothing fills.
"""

import asyncio
from collections import Counter
from dataclasses import dataclass
from typing import Dict, List, Optional, Set

from ..errors import VenueError
from ..types import Event, Order, Position, Side, Tick
from .base import EventSink, TradingVenue, now_ms


@dataclass
class PaperConfig:
    fill_on_cross: bool = True
    leverage: float = 1.0
    # simulated round-trip latency per call
    latency_sec: float = 0.0


class PaperVenue(TradingVenue):
    name = "paper"

    def __init__(self, cfg: Optional[PaperConfig] = None):
        self.cfg = cfg or PaperConfig()
        self.best_bid: Optional[float] = None
        self.best_ask: Optional[float] = None
        self.orders: Dict[str, Order] = {}
        self.positions: Dict[str, Position] = {}
        self.calls: Counter = Counter()
        # method names that raise VenueError (failure injection)
        self.fail_on: Set[str] = set()
        self.initialized = False
        self._on_event: Optional[EventSink] = None
        self._next_id = 1

    async def _call(self, method: str) -> None:
        self.calls[method] += 1
        if self.cfg.latency_sec > 0:
            await asyncio.sleep(self.cfg.latency_sec)
        if method in self.fail_on:
            raise VenueError(f"paper: injected failure in {method}")

    def _emit(self, typ: str, payload: dict) -> None:
        if self._on_event is not None:
            self._on_event(Event(ts_ms=now_ms(), type=typ, payload=payload))

    async def initialize(self) -> None:
        await self._call("initialize")
        self.initialized = True

    async def subscribe(self, on_event: EventSink) -> None:
        await self._call("subscribe")
        self._on_event = on_event

    async def unsubscribe(self) -> None:
        self.calls["unsubscribe"] += 1
        self._on_event = None

    async def close(self) -> None:
        self.calls["close"] += 1
        self.initialized = False

    async def place_order(self, symbol: str, side: Side, price: float, size: float, reduce_only: bool = False) -> Order:
        await self._call("place_order")

        if reduce_only:
            pos = self.positions.get(symbol)
            held = pos.size if pos is not None else 0.0
            closable = held if side == "sell" else -held
            if closable <= 0:
                raise VenueError(f"paper: reduce-only {side} would not reduce position {held}")
            size = min(size, closable)

        oid = f"paper:{self._next_id}"
        self._next_id += 1
        order = Order(
            id=oid,
            symbol=symbol,
            side=side,
            price=price,
            size=size,
            reduce_only=reduce_only,
            status="open",
            ts_ms=now_ms(),
        )
        self.orders[oid] = order

        if self.cfg.fill_on_cross and self._crossed(order):
            self._fill(order)
        return order

    async def cancel_order(self, order_id: str) -> bool:
        await self._call("cancel_order")
        order = self.orders.pop(order_id, None)
        if order is None:
            return False
        order.status = "cancelled"
        return True

    async def cancel_all_orders(self, symbol: str) -> bool:
        await self._call("cancel_all_orders")
        for oid in [oid for oid, o in self.orders.items() if o.symbol == symbol]:
            self.orders.pop(oid).status = "cancelled"
        return True

    async def get_position(self, symbol: str) -> Optional[Position]:
        await self._call("get_position")
        pos = self.positions.get(symbol)
        if pos is None or pos.size == 0:
            return None
        return Position(**vars(pos))

    async def get_open_orders(self, symbol: str) -> List[Order]:
        await self._call("get_open_orders")
        return [Order(**vars(o)) for o in self.orders.values() if o.symbol == symbol]

    def on_marketdata(self, tick: Tick) -> None:
        """Move the simulated book; fill any resting order it crosses."""
        if not tick.is_valid():
            return
        self.best_bid = tick.bid
        self.best_ask = tick.ask
        for pos in self.positions.values():
            pos.mark_price = tick.mid
            pos.unrealized_pnl = (pos.mark_price - pos.entry_price) * pos.size
        if not self.cfg.fill_on_cross:
            return
        for order in [o for o in self.orders.values() if self._crossed(o)]:
            self._fill(order)

    def _crossed(self, order: Order) -> bool:
        if self.best_bid is None or self.best_ask is None:
            return False
        if order.side == "buy":
            return order.price >= self.best_ask
        return order.price <= self.best_bid

    def _fill(self, order: Order) -> None:
        self.orders.pop(order.id, None)
        order.status = "filled"
        realized = self._apply_fill(order.symbol, order.side, order.price, order.size)
        self._emit(
            "ORDER_FILL",
            {
                "order_id": order.id,
                "side": order.side,
                "price": order.price,
                "qty": order.size,
                "realized_pnl": realized,
            },
        )

    def _apply_fill(self, symbol: str, side: Side, price: float, qty: float) -> float:
        pos = self.positions.setdefault(symbol, Position(symbol=symbol, size=0.0, leverage=self.cfg.leverage))
        delta = qty if side == "buy" else -qty
        realized = 0.0

        if pos.size == 0 or (pos.size > 0) == (delta > 0):
            new_size = pos.size + delta
            pos.entry_price = (pos.entry_price * abs(pos.size) + price * abs(delta)) / abs(new_size)
            pos.size = new_size
        else:
            closed = min(abs(delta), abs(pos.size))
            direction = 1.0 if pos.size > 0 else -1.0
            realized = closed * (price - pos.entry_price) * direction
            new_size = pos.size + delta
            if abs(new_size) < 1e-12:
                new_size = 0.0
                pos.entry_price = 0.0
            elif (new_size > 0) != (pos.size > 0):
                pos.entry_price = price
            pos.size = new_size

        pos.realized_pnl += realized
        pos.mark_price = price
        pos.unrealized_pnl = (pos.mark_price - pos.entry_price) * pos.size
        return realized
