from __future__ import annotations

"""Venue selection.

Maps BotConfig.exchange to a TradingVenue. Credentials come from a mapping
(normally os.environ) and are only ever handed to the venue constructor.
"""

from typing import Callable, Dict, Mapping

from ..config import BotConfig
from ..errors import ConfigError
from .base import TradingVenue
from .hyperliquid import HyperliquidConfig, HyperliquidVenue
from .kalshi import KalshiConfig, KalshiVenue
from .kalshi_auth import KalshiKey
from .paper import PaperVenue

VenueBuilder = Callable[[BotConfig, Mapping[str, str]], TradingVenue]


def _required(creds: Mapping[str, str], *names: str) -> str:
    for name in names:
        v = creds.get(name)
        if v:
            return v
    raise ConfigError(f"Missing credential: {' or '.join(names)}")


def kalshi_key_from(creds: Mapping[str, str]) -> KalshiKey:
    return KalshiKey(
        access_key_id=_required(creds, "KALSHI_ACCESS_KEY_ID"),
        private_key_path=_required(creds, "KALSHI_PRIVATE_KEY_PATH"),
    )


def _paper(cfg: BotConfig, creds: Mapping[str, str]) -> TradingVenue:
    return PaperVenue()


def _hyperliquid(cfg: BotConfig, creds: Mapping[str, str]) -> TradingVenue:
    hl_cfg = HyperliquidConfig(
        testnet=creds.get("HL_TESTNET", "").lower() == "true",
        account_address=creds.get("HL_ACCOUNT_ADDRESS") or None,
    )
    return HyperliquidVenue(hl_cfg, private_key=_required(creds, "HL_PRIVATE_KEY", "EVM_PRIVATE_KEY"))


def _kalshi(cfg: BotConfig, creds: Mapping[str, str]) -> TradingVenue:
    k_cfg = KalshiConfig(
        env=creds.get("KALSHI_ENV", "demo"),
        rest_timeout_sec=cfg.call_timeout_sec,
        reconnect_backoff_sec=cfg.reconnect_backoff_sec,
    )
    return KalshiVenue(k_cfg, kalshi_key_from(creds))


VENUES: Dict[str, VenueBuilder] = {
    "paper": _paper,
    "hyperliquid": _hyperliquid,
    "kalshi": _kalshi,
}


def make_venue(cfg: BotConfig, creds: Mapping[str, str]) -> TradingVenue:
    try:
        builder = VENUES[cfg.exchange]
    except KeyError:
        raise ConfigError(f"Unknown exchange: {cfg.exchange}") from None
    return builder(cfg, creds)
