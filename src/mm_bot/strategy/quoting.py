from __future__ import annotations

"""Two-sided quoting around the fair price.

Bid/ask sit half the configured spread either side of fair. Resting orders
further than one full spread width from fair are stale; the engine then
cancels everything and re-quotes.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional

from ..config import BotConfig
from ..types import Order, Position, RiskMode, Side
from . import risk


@dataclass(frozen=True)
class QuoteIntent:
    side: Side
    price: float
    size: float
    reduce_only: bool = False


def half_spread(fair_price: float, spread_bps: float) -> float:
    return fair_price * spread_bps / 20000.0


def quote_prices(fair_price: float, spread_bps: float) -> tuple[float, float]:
    h = half_spread(fair_price, spread_bps)
    return fair_price - h, fair_price + h


def order_size(config: BotConfig, fair_price: float) -> float:
    if config.use_usd_sizing:
        return config.order_size_usd / fair_price
    return config.order_size


def max_price_deviation(fair_price: float, spread_bps: float) -> float:
    return 2.0 * half_spread(fair_price, spread_bps)


def is_stale(order: Order, fair_price: float, spread_bps: float) -> bool:
    return abs(order.price - fair_price) > max_price_deviation(fair_price, spread_bps)


def stale_orders(orders: Iterable[Order], fair_price: float, spread_bps: float) -> List[Order]:
    return [o for o in orders if is_stale(o, fair_price, spread_bps)]


def plan_quotes(
    position: Optional[Position],
    config: BotConfig,
    fair_price: float,
    mode: RiskMode,
) -> List[QuoteIntent]:
    """Return the bid/ask intents the risk evaluator permits.

    In close-only mode the surviving side is flagged reduce-only.
    """
    bid, ask = quote_prices(fair_price, config.spread_bps)
    size = order_size(config, fair_price)
    reduce_only = mode is RiskMode.CLOSE_ONLY

    intents: List[QuoteIntent] = []
    for side, price in (("buy", bid), ("sell", ask)):
        if risk.permit(position, config, fair_price, side, size):
            intents.append(QuoteIntent(side=side, price=price, size=size, reduce_only=reduce_only))
    return intents
