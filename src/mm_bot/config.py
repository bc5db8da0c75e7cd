from __future__ import annotations

"""Bot configuration.

BotConfig is an immutable snapshot taken at start. Validation happens at
construction time so the engine never sees a half-specified sizing mode.
Credentials are not part of it; they go straight to venue constructors.
"""

import math
import os
from dataclasses import dataclass, fields
from typing import Any, Mapping, Optional, Literal, get_args

from .errors import ConfigError


Exchange = Literal["paper", "hyperliquid", "kalshi"]
PriceOracle = Literal["binance", "hyperliquid", "kalshi"]

EXCHANGES: tuple[str, ...] = get_args(Exchange)
PRICE_ORACLES: tuple[str, ...] = get_args(PriceOracle)


@dataclass(frozen=True)
class BotConfig:
    symbol: str
    exchange: Exchange = "paper"
    price_oracle: PriceOracle = "binance"

    spread_bps: float = 10.0

    # base-currency sizing
    order_size: float = 0.001
    max_position: float = 1.0
    close_threshold: float = 0.8  # ratio of max_position

    # USD notional sizing (all three required when use_usd_sizing)
    order_size_usd: Optional[float] = None
    max_position_usd: Optional[float] = None
    close_threshold_usd: Optional[float] = None
    use_usd_sizing: bool = False

    # ops
    loop_interval_sec: float = 1.0
    call_timeout_sec: float = 10.0
    reconnect_backoff_sec: float = 5.0
    enable_logging: bool = False

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        if not self.symbol:
            raise ConfigError("symbol is required")
        if self.exchange not in EXCHANGES:
            raise ConfigError(f"Unknown exchange: {self.exchange!r} (expected one of {EXCHANGES})")
        if self.price_oracle not in PRICE_ORACLES:
            raise ConfigError(f"Unknown price oracle: {self.price_oracle!r} (expected one of {PRICE_ORACLES})")

        _require_positive("spread_bps", self.spread_bps)
        _require_positive("order_size", self.order_size)
        _require_positive("max_position", self.max_position)
        _require_positive("loop_interval_sec", self.loop_interval_sec)
        _require_positive("call_timeout_sec", self.call_timeout_sec)
        _require_positive("reconnect_backoff_sec", self.reconnect_backoff_sec)
        if not (0.0 < self.close_threshold <= 1.0):
            raise ConfigError(f"close_threshold must be a ratio in (0, 1], got {self.close_threshold}")

        if self.use_usd_sizing:
            missing = [
                name
                for name in ("order_size_usd", "max_position_usd", "close_threshold_usd")
                if getattr(self, name) is None
            ]
            if missing:
                raise ConfigError(f"use_usd_sizing requires: {', '.join(missing)}")
        for name in ("order_size_usd", "max_position_usd", "close_threshold_usd"):
            value = getattr(self, name)
            if value is not None:
                _require_positive(name, value)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "BotConfig":
        """Build from a plain dict, ignoring unknown keys.

        Any USD field present turns USD sizing on unless use_usd_sizing is given.
        """
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in known and v is not None}
        if "use_usd_sizing" not in kwargs:
            kwargs["use_usd_sizing"] = any(
                kwargs.get(k) is not None for k in ("order_size_usd", "max_position_usd", "close_threshold_usd")
            )
        return cls(**kwargs)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "BotConfig":
        return cls.from_mapping(env_mapping(os.environ if environ is None else environ))


def env_mapping(env: Mapping[str, str]) -> dict[str, Any]:
    """Read the EXCHANGE/SYMBOL/... variables into from_mapping() keys.

    Unset variables map to None so callers can layer overrides on top.
    """

    def _f(name: str) -> Optional[float]:
        raw = env.get(name)
        if raw is None or raw == "":
            return None
        try:
            return float(raw)
        except ValueError:
            raise ConfigError(f"{name} must be a number, got {raw!r}") from None

    data: dict[str, Any] = {
        "exchange": env.get("EXCHANGE") or None,
        "symbol": env.get("SYMBOL", "BTC"),
        "price_oracle": env.get("PRICE_ORACLE") or None,
        "spread_bps": _f("SPREAD_BPS"),
        "order_size": _f("ORDER_SIZE"),
        "order_size_usd": _f("ORDER_SIZE_USD"),
        "max_position": _f("MAX_POSITION"),
        "max_position_usd": _f("MAX_POSITION_USD"),
        "close_threshold": _f("CLOSE_THRESHOLD"),
        "close_threshold_usd": _f("CLOSE_THRESHOLD_USD"),
        "enable_logging": env.get("ENABLE_LOGGING", "").lower() == "true",
    }
    if env.get("USE_USD_SIZING", "").lower() == "true":
        data["use_usd_sizing"] = True
    return data


def _require_positive(name: str, value: float) -> None:
    if not isinstance(value, (int, float)) or not math.isfinite(value) or value <= 0:
        raise ConfigError(f"{name} must be a positive number, got {value!r}")
