from __future__ import annotations

"""Fair-price estimator.

Smooths the top-of-book midpoint with two EMAs (periods 12 and 26) and
publishes the short EMA as the fair price. The long EMA is kept for a
trend signal only.

State survives feed reconnects; only reset() (a subscription from empty)
clears it.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from ..types import MarketData, Tick

logger = logging.getLogger(__name__)

SHORT_PERIOD = 12
LONG_PERIOD = 26


def ema_multiplier(period: int) -> float:
    return 2.0 / (period + 1)


@dataclass
class FairPriceState:
    short_ema: float = 0.0
    long_ema: float = 0.0
    initialized: bool = False


class FairPriceEstimator:
    def __init__(self, symbol: str, short_period: int = SHORT_PERIOD, long_period: int = LONG_PERIOD):
        self.symbol = symbol
        self.short_period = short_period
        self.long_period = long_period
        self.state = FairPriceState()
        self.latest_mid: Optional[float] = None
        self.accepted = 0
        self.rejected = 0

    @property
    def fair_price(self) -> Optional[float]:
        return self.state.short_ema if self.state.initialized else None

    @property
    def long_ema(self) -> Optional[float]:
        return self.state.long_ema if self.state.initialized else None

    @property
    def trend(self) -> Optional[float]:
        """Short minus long EMA; positive when price is rising."""
        if not self.state.initialized:
            return None
        return self.state.short_ema - self.state.long_ema

    def reset(self) -> None:
        self.state = FairPriceState()
        self.latest_mid = None

    def on_tick(self, tick: Tick) -> Optional[MarketData]:
        if not tick.is_valid():
            self.rejected += 1
            logger.warning("Invalid price data for %s, dropping tick: bid=%r ask=%r", self.symbol, tick.bid, tick.ask)
            return None

        price = tick.mid
        self._update(price)
        self.latest_mid = price
        self.accepted += 1

        return MarketData(
            symbol=self.symbol,
            fair_price=self.state.short_ema,
            bid=tick.bid,
            ask=tick.ask,
            spread=tick.ask - tick.bid,
            ts_ms=tick.ts_ms,
        )

    def _update(self, price: float) -> None:
        st = self.state
        if not st.initialized:
            # seed both on the first tick, no warm-up
            st.short_ema = price
            st.long_ema = price
            st.initialized = True
            return
        st.short_ema = st.short_ema + ema_multiplier(self.short_period) * (price - st.short_ema)
        st.long_ema = st.long_ema + ema_multiplier(self.long_period) * (price - st.long_ema)
