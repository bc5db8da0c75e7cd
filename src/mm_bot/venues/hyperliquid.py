from __future__ import annotations

"""Hyperliquid perps venue.

Built on the official hyperliquid-python-sdk: `Info` for snapshots, `Exchange`
for signed order actions (wallet from eth-account). The SDK is blocking, so
every call runs in a worker thread; its websocket callbacks arrive on the SDK
thread and are handed back to the event loop.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import eth_account
from hyperliquid.exchange import Exchange
from hyperliquid.info import Info
from hyperliquid.utils import constants

from ..errors import VenueError
from ..types import Event, Order, Position, Side
from .base import EventSink, TradingVenue, now_ms

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HyperliquidConfig:
    testnet: bool = False
    # when trading for a vault/sub-account through an API wallet
    account_address: Optional[str] = None

    @property
    def base_url(self) -> str:
        return constants.TESTNET_API_URL if self.testnet else constants.MAINNET_API_URL


def round_price(px: float, sz_decimals: int) -> float:
    # 5 significant figures, at most (6 - szDecimals) decimals for perps
    return round(float(f"{px:.5g}"), max(0, 6 - sz_decimals))


def round_size(sz: float, sz_decimals: int) -> float:
    return round(sz, sz_decimals)


def check_order_response(resp: Dict[str, Any]) -> Dict[str, Any]:
    """Return the first order status, raising VenueError on any rejection."""
    if not isinstance(resp, dict) or resp.get("status") != "ok":
        raise VenueError(f"Hyperliquid API error: {resp}")
    statuses = (((resp.get("response") or {}).get("data") or {}).get("statuses")) or []
    if not statuses:
        raise VenueError(f"Hyperliquid: empty order statuses: {resp}")
    status = statuses[0]
    if isinstance(status, dict) and status.get("error"):
        raise VenueError(f"Hyperliquid order error: {status['error']}")
    return status


def parse_position(asset_position: Dict[str, Any]) -> Optional[Position]:
    p = asset_position.get("position") or {}
    size = float(p.get("szi") or 0)
    if size == 0:
        return None
    value = float(p.get("positionValue") or 0)
    return Position(
        symbol=p.get("coin"),
        size=size,
        entry_price=float(p.get("entryPx") or 0),
        mark_price=value / abs(size),
        unrealized_pnl=float(p.get("unrealizedPnl") or 0),
        leverage=float((p.get("leverage") or {}).get("value") or 1),
        liquidation_price=float(p.get("liquidationPx") or 0),
    )


def parse_open_order(raw: Dict[str, Any]) -> Order:
    return Order(
        id=str(raw["oid"]),
        symbol=raw["coin"],
        side="buy" if raw.get("side") == "B" else "sell",
        price=float(raw["limitPx"]),
        size=float(raw["sz"]),
        reduce_only=bool(raw.get("reduceOnly", False)),
        status="open",
        ts_ms=int(raw.get("timestamp") or now_ms()),
    )


class HyperliquidVenue(TradingVenue):
    name = "hyperliquid"

    def __init__(self, cfg: HyperliquidConfig, private_key: str):
        self.cfg = cfg
        self.wallet = eth_account.Account.from_key(private_key)
        self.address = cfg.account_address or self.wallet.address
        self.info: Optional[Info] = None
        self.exchange: Optional[Exchange] = None
        self.sz_decimals: Dict[str, int] = {}
        self._order_coins: Dict[str, str] = {}
        self._ws_info: Optional[Info] = None
        self._subscription_id: Optional[int] = None

    def _require(self) -> tuple[Info, Exchange]:
        if self.info is None or self.exchange is None:
            raise VenueError("Hyperliquid venue not initialized")
        return self.info, self.exchange

    async def initialize(self) -> None:
        def _init() -> tuple[Info, Exchange, Dict[str, int]]:
            info = Info(self.cfg.base_url, skip_ws=True)
            exchange = Exchange(self.wallet, self.cfg.base_url, account_address=self.cfg.account_address)
            meta = info.meta()
            decimals = {a["name"]: int(a["szDecimals"]) for a in meta.get("universe", [])}
            return info, exchange, decimals

        try:
            self.info, self.exchange, self.sz_decimals = await asyncio.to_thread(_init)
        except VenueError:
            raise
        except Exception as e:
            raise VenueError(f"Hyperliquid init failed: {e!r}") from e
        logger.info("Hyperliquid venue initialized, address=%s assets=%d", self.address, len(self.sz_decimals))

    async def _run(self, fn, *args, **kwargs):
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except VenueError:
            raise
        except Exception as e:
            raise VenueError(f"Hyperliquid {getattr(fn, '__name__', 'call')} failed: {e!r}") from e

    async def place_order(self, symbol: str, side: Side, price: float, size: float, reduce_only: bool = False) -> Order:
        _, exchange = self._require()
        if symbol not in self.sz_decimals:
            raise VenueError(f"Hyperliquid: unknown asset {symbol}")
        decimals = self.sz_decimals[symbol]
        px = round_price(price, decimals)
        sz = round_size(size, decimals)
        if sz <= 0:
            raise VenueError(f"Hyperliquid: size {size} rounds to zero at {decimals} decimals")

        resp = await self._run(
            exchange.order, symbol, side == "buy", sz, px, {"limit": {"tif": "Gtc"}}, reduce_only=reduce_only
        )
        status = check_order_response(resp)
        if "resting" in status:
            oid, state = str(status["resting"]["oid"]), "open"
        elif "filled" in status:
            oid, state = str(status["filled"]["oid"]), "filled"
        else:
            raise VenueError(f"Hyperliquid: unexpected order status {status}")

        self._order_coins[oid] = symbol
        return Order(id=oid, symbol=symbol, side=side, price=px, size=sz, reduce_only=reduce_only, status=state, ts_ms=now_ms())

    async def cancel_order(self, order_id: str) -> bool:
        _, exchange = self._require()
        coin = self._order_coins.get(order_id)
        if coin is None:
            raise VenueError(f"Hyperliquid: unknown order {order_id}")
        resp = await self._run(exchange.cancel, coin, int(order_id))
        check_order_response(resp)
        self._order_coins.pop(order_id, None)
        return True

    async def cancel_all_orders(self, symbol: str) -> bool:
        _, exchange = self._require()
        orders = await self.get_open_orders(symbol)
        if not orders:
            return True
        resp = await self._run(exchange.bulk_cancel, [{"coin": symbol, "oid": int(o.id)} for o in orders])
        if not isinstance(resp, dict) or resp.get("status") != "ok":
            raise VenueError(f"Hyperliquid cancel-all failed: {resp}")
        for o in orders:
            self._order_coins.pop(o.id, None)
        return True

    async def get_position(self, symbol: str) -> Optional[Position]:
        info, _ = self._require()
        state = await self._run(info.user_state, self.address)
        for ap in state.get("assetPositions") or []:
            if (ap.get("position") or {}).get("coin") == symbol:
                return parse_position(ap)
        return None

    async def get_open_orders(self, symbol: str) -> List[Order]:
        info, _ = self._require()
        raw = await self._run(info.frontend_open_orders, self.address)
        orders = [parse_open_order(o) for o in raw if o.get("coin") == symbol]
        for o in orders:
            self._order_coins[o.id] = symbol
        return orders

    async def subscribe(self, on_event: EventSink) -> None:
        if self._ws_info is not None:
            raise RuntimeError("hyperliquid: fills already subscribed")
        loop = asyncio.get_running_loop()

        def _on_msg(msg: Dict[str, Any]) -> None:
            data = msg.get("data") or {}
            if data.get("isSnapshot"):
                return
            for fill in data.get("fills") or []:
                ev = Event(
                    ts_ms=int(fill.get("time") or now_ms()),
                    type="ORDER_FILL",
                    payload={
                        "order_id": str(fill.get("oid")),
                        "symbol": fill.get("coin"),
                        "side": "buy" if fill.get("side") == "B" else "sell",
                        "price": float(fill.get("px") or 0),
                        "qty": float(fill.get("sz") or 0),
                        "realized_pnl": float(fill.get("closedPnl") or 0),
                    },
                )
                loop.call_soon_threadsafe(on_event, ev)

        def _connect() -> tuple[Info, int]:
            ws_info = Info(self.cfg.base_url, skip_ws=False)
            sub_id = ws_info.subscribe({"type": "userFills", "user": self.address}, _on_msg)
            return ws_info, sub_id

        self._ws_info, self._subscription_id = await self._run(_connect)

    async def unsubscribe(self) -> None:
        ws_info, self._ws_info = self._ws_info, None
        if ws_info is None:
            return

        def _disconnect() -> None:
            if self._subscription_id is not None:
                ws_info.unsubscribe({"type": "userFills", "user": self.address}, self._subscription_id)
            ws_info.disconnect_websocket()

        try:
            await asyncio.to_thread(_disconnect)
        except Exception as e:
            logger.warning("Hyperliquid websocket disconnect failed: %s", e)
        self._subscription_id = None
