from __future__ import annotations

"""Kalshi venue connector.

Implements:
- Orders and snapshots via REST v2 (portfolio/orders, portfolio/positions)
- Fills via the authenticated WS v2 `fill` channel

Quotes are on the YES side of one market. Prices cross the interface as
probabilities (0..1) and are sent to Kalshi in cents; sizes are whole
contracts.

Defaults to demo for safety.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..collectors.kalshi_ws import KalshiWsConfig, run_kalshi_ws, ws_host_for_env
from ..errors import VenueError
from ..types import Event, Order, Position, Side
from .base import EventSink, TradingVenue, now_ms
from .kalshi_auth import KalshiKey
from .kalshi_rest import KalshiRest, KalshiRestConfig

logger = logging.getLogger(__name__)

ORDERS_PATH = "/trade-api/v2/portfolio/orders"
POSITIONS_PATH = "/trade-api/v2/portfolio/positions"
BALANCE_PATH = "/trade-api/v2/portfolio/balance"


@dataclass(frozen=True)
class KalshiConfig:
    env: str = "demo"  # demo|prod
    rest_timeout_sec: float = 20.0
    reconnect_backoff_sec: float = 5.0


def to_cents(price: float) -> int:
    return max(1, min(99, int(round(price * 100))))


def to_contracts(size: float) -> int:
    count = int(round(size))
    if count < 1:
        raise VenueError(f"Kalshi: order size {size} rounds to zero contracts")
    return count


def parse_order(raw: Dict[str, Any], symbol: str) -> Order:
    cents = raw.get("yes_price")
    if cents is None and raw.get("yes_price_dollars") is not None:
        price = float(raw["yes_price_dollars"])
    else:
        price = float(cents or 0) / 100.0
    remaining = raw.get("remaining_count")
    status = str(raw.get("status") or "resting")
    return Order(
        id=str(raw.get("order_id")),
        symbol=raw.get("ticker") or symbol,
        side="buy" if raw.get("action") == "buy" else "sell",
        price=price,
        size=float(remaining if remaining is not None else raw.get("count", 0)),
        reduce_only=bool(raw.get("reduce_only", False)),
        status="open" if status in ("resting", "pending") else "cancelled" if status == "canceled" else "filled",
        ts_ms=now_ms(),
    )


def parse_position(raw: Dict[str, Any], symbol: str) -> Optional[Position]:
    size = float(raw.get("position") or 0)
    if size == 0:
        return None
    exposure = float(raw.get("market_exposure") or 0) / 100.0
    return Position(
        symbol=symbol,
        size=size,
        entry_price=exposure / abs(size),
        realized_pnl=float(raw.get("realized_pnl") or 0) / 100.0,
    )


class KalshiVenue(TradingVenue):
    name = "kalshi"

    def __init__(self, cfg: KalshiConfig, key: KalshiKey):
        self.cfg = cfg
        self.key = key
        self.rest = KalshiRest(KalshiRestConfig(env=cfg.env, timeout_sec=cfg.rest_timeout_sec), key)
        self.ws_cfg = KalshiWsConfig(
            ws_host=ws_host_for_env(cfg.env),
            channels=("fill",),
            reconnect_backoff_sec=cfg.reconnect_backoff_sec,
        )
        self._stop = asyncio.Event()
        self._fills_task: Optional[asyncio.Task] = None

    async def initialize(self) -> None:
        """Authenticated balance call: proves the key works before quoting."""
        bal = await asyncio.to_thread(self.rest.get, BALANCE_PATH)
        logger.info("Kalshi venue initialized (%s), balance=%s", self.cfg.env, bal.get("balance"))

    async def place_order(self, symbol: str, side: Side, price: float, size: float, reduce_only: bool = False) -> Order:
        body: Dict[str, Any] = {
            "ticker": symbol,
            "client_order_id": str(uuid.uuid4()),
            "action": side,
            "side": "yes",
            "type": "limit",
            "count": to_contracts(size),
            "yes_price": to_cents(price),
        }
        if reduce_only:
            body["reduce_only"] = True
        data = await asyncio.to_thread(self.rest.post, ORDERS_PATH, body)
        raw = data.get("order") or data
        if not raw.get("order_id"):
            raise VenueError(f"Missing order id in response: {data}")
        order = parse_order({**body, **raw}, symbol)
        order.reduce_only = reduce_only
        return order

    async def cancel_order(self, order_id: str) -> bool:
        await asyncio.to_thread(self.rest.delete, f"{ORDERS_PATH}/{order_id}")
        return True

    async def cancel_all_orders(self, symbol: str) -> bool:
        orders = await self.get_open_orders(symbol)
        ok = True
        for o in orders:
            try:
                await self.cancel_order(o.id)
            except VenueError as e:
                logger.warning("Kalshi cancel %s failed: %s", o.id, e)
                ok = False
        if not ok:
            raise VenueError(f"Kalshi: not all orders for {symbol} were cancelled")
        return True

    async def get_position(self, symbol: str) -> Optional[Position]:
        data = await asyncio.to_thread(self.rest.get, POSITIONS_PATH, {"ticker": symbol})
        for raw in data.get("market_positions") or []:
            if raw.get("ticker") == symbol:
                return parse_position(raw, symbol)
        return None

    async def get_open_orders(self, symbol: str) -> List[Order]:
        data = await asyncio.to_thread(self.rest.get, ORDERS_PATH, {"ticker": symbol, "status": "resting"})
        return [parse_order(raw, symbol) for raw in data.get("orders") or []]

    async def subscribe(self, on_event: EventSink) -> None:
        if self._fills_task is not None and not self._fills_task.done():
            raise RuntimeError("kalshi: fills already subscribed")

        def _on_raw(raw: dict) -> None:
            payload = raw.get("payload") or {}
            if raw.get("type") == "KALSHI_WS_ERROR":
                on_event(Event(ts_ms=int(raw["ts_ms"]), type="CONNECTION", payload={"status": "error", **payload}))
                return
            if payload.get("type") != "fill":
                return
            msg = payload.get("msg") or {}
            on_event(Event(
                ts_ms=int(raw["ts_ms"]),
                type="ORDER_FILL",
                payload={
                    "order_id": msg.get("order_id"),
                    "side": msg.get("action"),
                    "price": float(msg.get("yes_price") or 0) / 100.0,
                    "qty": float(msg.get("count") or 0),
                    "symbol": msg.get("market_ticker"),
                },
            ))

        self._stop = asyncio.Event()
        self._fills_task = asyncio.create_task(run_kalshi_ws(self.ws_cfg, self.key, _on_raw, self._stop))

    async def unsubscribe(self) -> None:
        self._stop.set()
        task, self._fills_task = self._fills_task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
