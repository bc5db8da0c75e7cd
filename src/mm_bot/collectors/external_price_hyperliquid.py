from __future__ import annotations

"""Hyperliquid L2 book feed.

Subscribes to the public l2Book channel and takes the top level of each side:
  {"channel": "l2Book", "data": {"coin": "BTC", "levels": [[{"px": "..", ...}], [{"px": ..}]], "time": ...}}
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Optional

import websockets

from ..scheduler import sleep_or_stop
from ..types import Tick
from .base import PriceFeed, TickSink, now_ms

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HyperliquidFeedConfig:
    coin: str = "BTC"
    url: str = "wss://api.hyperliquid.xyz/ws"
    reconnect_backoff_sec: float = 5.0


def subscribe_frame(coin: str) -> dict:
    return {"method": "subscribe", "subscription": {"type": "l2Book", "coin": coin}}


def parse_l2_book(msg: str | bytes) -> Optional[Tick]:
    try:
        obj = json.loads(msg)
    except json.JSONDecodeError:
        return None
    if not isinstance(obj, dict) or obj.get("channel") != "l2Book":
        return None
    book = obj.get("data") or {}
    try:
        bids, asks = book["levels"][0], book["levels"][1]
        bid = float(bids[0]["px"]) if bids else 0.0
        ask = float(asks[0]["px"]) if asks else 0.0
    except (KeyError, IndexError, TypeError, ValueError):
        return None
    ts = book.get("time")
    return Tick(ts_ms=int(ts) if isinstance(ts, (int, float)) else now_ms(), bid=bid, ask=ask)


class HyperliquidBookFeed(PriceFeed):
    name = "hyperliquid"

    def __init__(self, cfg: HyperliquidFeedConfig):
        super().__init__()
        self.cfg = cfg

    async def _run(self, on_tick: TickSink, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            try:
                async with websockets.connect(self.cfg.url, ping_interval=20, ping_timeout=20) as ws:
                    self.connects += 1
                    await ws.send(json.dumps(subscribe_frame(self.cfg.coin)))
                    logger.info("Hyperliquid WebSocket connected, l2Book %s", self.cfg.coin)
                    async for msg in ws:
                        tick = parse_l2_book(msg)
                        if tick is not None:
                            on_tick(tick)
                logger.info("Hyperliquid WebSocket closed, reconnecting...")
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning("Hyperliquid WebSocket error: %s", e)

            if await sleep_or_stop(stop_event, self.cfg.reconnect_backoff_sec):
                return
