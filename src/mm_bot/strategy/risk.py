from __future__ import annotations

"""Risk evaluator: position + limits -> RiskMode, and per-order permits.

Everything here is a pure function of its arguments. Limits configured in
USD are converted to base units at the given fair price.
"""

from typing import Optional

from ..config import BotConfig
from ..types import Position, RiskMode, Side

# fraction of max position notional that, lost unrealized, trips close-only
LOSS_TRIP_RATIO = 0.10


def _size(position: Optional[Position]) -> float:
    return position.size if position is not None else 0.0


def signed_size(side: Side, size: float) -> float:
    return size if side == "buy" else -size


def max_position_base(config: BotConfig, fair_price: float) -> float:
    if config.use_usd_sizing:
        return config.max_position_usd / fair_price
    return config.max_position


def close_threshold_base(config: BotConfig, fair_price: float) -> float:
    if config.use_usd_sizing:
        return config.close_threshold_usd / fair_price
    return config.max_position * config.close_threshold


def loss_limit(config: BotConfig, fair_price: float) -> float:
    # Uses the base max_position field in both sizing modes.
    return config.max_position * fair_price * LOSS_TRIP_RATIO


def evaluate(position: Optional[Position], config: BotConfig, fair_price: float) -> RiskMode:
    size = _size(position)
    if size == 0.0:
        return RiskMode.NORMAL

    if abs(size) >= close_threshold_base(config, fair_price):
        return RiskMode.CLOSE_ONLY

    if position.unrealized_pnl < -loss_limit(config, fair_price):
        return RiskMode.CLOSE_ONLY

    return RiskMode.NORMAL


def reduces_position(position: Optional[Position], side: Side) -> bool:
    size = _size(position)
    if size > 0:
        return side == "sell"
    if size < 0:
        return side == "buy"
    return False


def permit(
    position: Optional[Position],
    config: BotConfig,
    fair_price: float,
    side: Side,
    size: float,
) -> bool:
    if evaluate(position, config, fair_price) is RiskMode.CLOSE_ONLY:
        return reduces_position(position, side)

    new_size = _size(position) + signed_size(side, size)
    return abs(new_size) <= max_position_base(config, fair_price)
