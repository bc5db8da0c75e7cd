from __future__ import annotations

"""Kalshi ticker feed.

Top of book for one market from the WS v2 `ticker` channel. Kalshi quotes
YES prices in cents; ticks are published as probabilities (cents / 100) so
they line up with the prices KalshiVenue accepts.
"""

import asyncio
from dataclasses import dataclass, replace
from typing import Any, Optional

from ..types import Tick
from ..venues.kalshi_auth import KalshiKey
from .base import PriceFeed, TickSink, now_ms
from .kalshi_ws import KalshiWsConfig, run_kalshi_ws


@dataclass(frozen=True)
class KalshiTickerConfig:
    market_ticker: str
    ws: KalshiWsConfig = KalshiWsConfig()


def _price(msg: dict, cents_key: str, dollars_key: str) -> Optional[float]:
    if msg.get(dollars_key) is not None:
        return float(msg[dollars_key])
    if msg.get(cents_key) is not None:
        return float(msg[cents_key]) / 100.0
    return None


def parse_ticker(raw: dict[str, Any], market_ticker: str) -> Optional[Tick]:
    payload = raw.get("payload") or {}
    if raw.get("type") != "KALSHI_WS" or payload.get("type") != "ticker":
        return None
    msg = payload.get("msg") or {}
    if msg.get("market_ticker") != market_ticker:
        return None
    try:
        bid = _price(msg, "yes_bid", "yes_bid_dollars")
        ask = _price(msg, "yes_ask", "yes_ask_dollars")
    except (TypeError, ValueError):
        return None
    if bid is None or ask is None:
        return None
    ts = msg.get("ts")
    # ticker ts is epoch seconds
    ts_ms = int(ts) * 1000 if isinstance(ts, (int, float)) else int(raw.get("ts_ms") or now_ms())
    return Tick(ts_ms=ts_ms, bid=bid, ask=ask)


class KalshiTickerFeed(PriceFeed):
    name = "kalshi"

    def __init__(self, cfg: KalshiTickerConfig, key: Optional[KalshiKey] = None):
        super().__init__()
        self.cfg = cfg
        self.key = key
        self.ws_cfg = replace(cfg.ws, channels=("ticker",), market_tickers=(cfg.market_ticker,))

    async def _run(self, on_tick: TickSink, stop_event: asyncio.Event) -> None:
        def _on_raw(raw: dict) -> None:
            if raw.get("type") == "KALSHI_WS":
                payload = raw.get("payload") or {}
                if payload.get("type") == "subscribed":
                    self.connects += 1
            tick = parse_ticker(raw, self.cfg.market_ticker)
            if tick is not None:
                on_tick(tick)

        await run_kalshi_ws(self.ws_cfg, self.key, _on_raw, stop_event)
