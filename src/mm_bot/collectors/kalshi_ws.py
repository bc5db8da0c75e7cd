from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

import websockets

from ..scheduler import sleep_or_stop
from ..venues.kalshi_auth import WS_PATH, KalshiKey, ws_auth_headers

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KalshiWsConfig:
    ws_host: str = "demo-api.kalshi.co"  # see WS_HOSTS
    ws_path: str = WS_PATH
    use_tls: bool = True

    # subscriptions
    channels: tuple[str, ...] = ("ticker",)
    market_tickers: tuple[str, ...] = ()

    # ops
    ping_interval_sec: float = 20.0  # client-side keepalive (server also pings)
    reconnect_backoff_sec: float = 5.0


WS_HOSTS = {"demo": "demo-api.kalshi.co", "prod": "api.elections.kalshi.com"}


def ws_host_for_env(env: str) -> str:
    try:
        return WS_HOSTS[env]
    except KeyError:
        raise ValueError(f"Unknown env: {env}") from None


def _ws_url(cfg: KalshiWsConfig) -> str:
    scheme = "wss" if cfg.use_tls else "ws"
    return f"{scheme}://{cfg.ws_host}{cfg.ws_path}"


def _subscribe_frame(cfg: KalshiWsConfig) -> dict:
    # AsyncAPI indicates `cmd` + `params`.
    params: dict = {"channels": list(cfg.channels)}
    if cfg.market_tickers:
        params["market_tickers"] = list(cfg.market_tickers)
    return {"id": 1, "cmd": "subscribe", "params": params}


async def run_kalshi_ws(
    cfg: KalshiWsConfig,
    key: Optional[KalshiKey],
    emit: Callable[[dict], None],
    stop_event: asyncio.Event,
) -> None:
    """Connect to Kalshi WS v2, subscribe, and emit raw JSON messages until stopped.

    Emits dicts shaped like:
      {"ts_ms":..., "type":"KALSHI_WS", "payload": {...raw...}}
    and {"type": "KALSHI_WS_ERROR", ...} on each disconnect. Reconnects after a
    fixed backoff; the sleep ends early when stop_event is set.
    """

    url = _ws_url(cfg)

    while not stop_event.is_set():
        headers = ws_auth_headers(key, ws_path=cfg.ws_path) if key is not None else {}

        try:
            # websockets>=14 uses additional_headers (extra_headers was removed)
            async with websockets.connect(
                url,
                additional_headers=headers,
                ping_interval=cfg.ping_interval_sec,
                ping_timeout=cfg.ping_interval_sec,
                close_timeout=5,
                max_queue=1000,
            ) as ws:
                await ws.send(json.dumps(_subscribe_frame(cfg), separators=(",", ":")))
                logger.info("Kalshi WS connected: %s channels=%s", url, cfg.channels)

                async for msg in ws:
                    if stop_event.is_set():
                        return
                    try:
                        obj = json.loads(msg)
                    except json.JSONDecodeError:
                        obj = {"raw": msg}
                    emit({"ts_ms": int(time.time() * 1000), "type": "KALSHI_WS", "payload": obj})

            logger.info("Kalshi WS closed, reconnecting in %.1fs", cfg.reconnect_backoff_sec)

        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("Kalshi WS error (%s), reconnecting in %.1fs", e, cfg.reconnect_backoff_sec)
            emit({
                "ts_ms": int(time.time() * 1000),
                "type": "KALSHI_WS_ERROR",
                "payload": {"error": repr(e), "url": url},
            })

        if await sleep_or_stop(stop_event, cfg.reconnect_backoff_sec):
            return
