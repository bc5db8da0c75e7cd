from __future__ import annotations

"""Binance futures top-of-book feed.

Uses the bookTicker stream (very high update rate):
- wss://fstream.binance.com/ws/btcusdt@bookTicker

Message example:
{
  "u": 400900217,
  "s": "BTCUSDT",
  "b": "50208.69000000",
  "B": "0.36900000",
  "a": "50208.70000000",
  "A": "0.17800000"
}
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
class BinanceConfig:
    symbol: str = "BTC"  # base asset; quoted against USDT
    stream: str = "bookTicker"
    url: str = "wss://fstream.binance.com/ws"
    reconnect_backoff_sec: float = 5.0

    @property
    def pair(self) -> str:
        return f"{self.symbol}USDT".lower()

    @property
    def ws_url(self) -> str:
        return f"{self.url}/{self.pair}@{self.stream}"


def parse_book_ticker(msg: str | bytes) -> Optional[Tick]:
    """Return a Tick, or None if the message has no usable bid/ask."""
    try:
        data = json.loads(msg)
        bid = float(data["b"])
        ask = float(data["a"])
    except (ValueError, TypeError, KeyError):
        return None
    return Tick(ts_ms=now_ms(), bid=bid, ask=ask)


class BinanceBookTickerFeed(PriceFeed):
    name = "binance"

    def __init__(self, cfg: BinanceConfig):
        super().__init__()
        self.cfg = cfg

    async def _run(self, on_tick: TickSink, stop_event: asyncio.Event) -> None:
        url = self.cfg.ws_url
        while not stop_event.is_set():
            try:
                async with websockets.connect(url, ping_interval=20, ping_timeout=20) as ws:
                    self.connects += 1
                    logger.info("Binance WebSocket connected: %s", url)
                    async for msg in ws:
                        tick = parse_book_ticker(msg)
                        if tick is None:
                            logger.debug("Unparseable Binance message: %r", msg)
                            continue
                        on_tick(tick)
                logger.info("Binance WebSocket closed, reconnecting...")
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning("Binance WebSocket error: %s", e)

            if await sleep_or_stop(stop_event, self.cfg.reconnect_backoff_sec):
                return
