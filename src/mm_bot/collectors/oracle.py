from __future__ import annotations

"""Price oracle selection.

Maps a BotConfig.price_oracle tag to a feed. Add an oracle by registering a
builder here.
"""

from typing import Callable, Dict, Mapping, Optional

from ..config import BotConfig
from ..errors import ConfigError
from ..venues.kalshi_auth import KalshiKey
from .base import PriceFeed
from .external_price_binance import BinanceBookTickerFeed, BinanceConfig
from .external_price_hyperliquid import HyperliquidBookFeed, HyperliquidFeedConfig
from .kalshi_ticker import KalshiTickerConfig, KalshiTickerFeed
from .kalshi_ws import KalshiWsConfig, ws_host_for_env

FeedBuilder = Callable[[BotConfig, Mapping[str, str]], PriceFeed]


def _binance(cfg: BotConfig, creds: Mapping[str, str]) -> PriceFeed:
    return BinanceBookTickerFeed(BinanceConfig(symbol=cfg.symbol, reconnect_backoff_sec=cfg.reconnect_backoff_sec))


def _hyperliquid(cfg: BotConfig, creds: Mapping[str, str]) -> PriceFeed:
    return HyperliquidBookFeed(HyperliquidFeedConfig(coin=cfg.symbol, reconnect_backoff_sec=cfg.reconnect_backoff_sec))


def _kalshi(cfg: BotConfig, creds: Mapping[str, str]) -> PriceFeed:
    key: Optional[KalshiKey] = None
    if creds.get("KALSHI_ACCESS_KEY_ID") and creds.get("KALSHI_PRIVATE_KEY_PATH"):
        key = KalshiKey(creds["KALSHI_ACCESS_KEY_ID"], creds["KALSHI_PRIVATE_KEY_PATH"])
    ws = KalshiWsConfig(
        ws_host=ws_host_for_env(creds.get("KALSHI_ENV", "demo")),
        reconnect_backoff_sec=cfg.reconnect_backoff_sec,
    )
    return KalshiTickerFeed(KalshiTickerConfig(market_ticker=cfg.symbol, ws=ws), key=key)


FEEDS: Dict[str, FeedBuilder] = {
    "binance": _binance,
    "hyperliquid": _hyperliquid,
    "kalshi": _kalshi,
}


def make_feed(cfg: BotConfig, creds: Optional[Mapping[str, str]] = None) -> PriceFeed:
    try:
        builder = FEEDS[cfg.price_oracle]
    except KeyError:
        raise ConfigError(f"Unknown price oracle: {cfg.price_oracle}") from None
    return builder(cfg, creds or {})
