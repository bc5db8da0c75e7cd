from __future__ import annotations

"""Uniform trading-venue interface.

The engine only talks to venues through this class. Signing, REST/stream
formats and asset indexing stay inside each implementation. Failures are
raised as VenueError.
"""

import abc
import time
from typing import Callable, List, Optional

from ..types import Event, Order, Position, Side, Tick

EventSink = Callable[[Event], None]


def now_ms() -> int:
    return int(time.time() * 1000)


class TradingVenue(abc.ABC):
    name: str = "venue"

    @abc.abstractmethod
    async def initialize(self) -> None:
        ...

    @abc.abstractmethod
    async def place_order(self, symbol: str, side: Side, price: float, size: float, reduce_only: bool = False) -> Order:
        ...

    @abc.abstractmethod
    async def cancel_order(self, order_id: str) -> bool:
        ...

    @abc.abstractmethod
    async def cancel_all_orders(self, symbol: str) -> bool:
        ...

    @abc.abstractmethod
    async def get_position(self, symbol: str) -> Optional[Position]:
        ...

    @abc.abstractmethod
    async def get_open_orders(self, symbol: str) -> List[Order]:
        ...

    async def subscribe(self, on_event: EventSink) -> None:
        """Stream account events (ORDER_FILL, CONNECTION). Default: none."""

    async def unsubscribe(self) -> None:
        pass

    async def close(self) -> None:
        pass

    def on_marketdata(self, tick: Tick) -> None:
        """Price-feed tick, for venues that simulate a book. Default: ignored."""
