"""Shared fixtures: config, paper venue and a hand-driven price feed."""

import asyncio
from typing import List, Optional

import pytest

from mm_bot.collectors.base import PriceFeed, TickSink
from mm_bot.config import BotConfig
from mm_bot.types import Event, Tick
from mm_bot.venues.paper import PaperConfig, PaperVenue


class FakeFeed(PriceFeed):
    """Feed whose ticks are pushed by the test instead of read from a socket."""

    name = "fake"

    def __init__(self, fail_subscribe: bool = False) -> None:
        super().__init__()
        self.on_tick: Optional[TickSink] = None
        self.fail_subscribe = fail_subscribe
        self.unsubscribes = 0

    async def subscribe(self, on_tick: TickSink) -> None:
        if self.fail_subscribe:
            raise ConnectionError("fake feed refused")
        await super().subscribe(on_tick)
        self.on_tick = on_tick

    async def unsubscribe(self) -> None:
        self.unsubscribes += 1
        await super().unsubscribe()

    async def _run(self, on_tick: TickSink, stop_event: asyncio.Event) -> None:
        self.connects += 1
        await stop_event.wait()

    def push(self, bid: float, ask: float, ts_ms: int = 0) -> None:
        assert self.on_tick is not None, "feed not subscribed"
        self.on_tick(Tick(ts_ms=ts_ms, bid=bid, ask=ask))


class RecordingVenue(PaperVenue):
    """PaperVenue that also keeps the order of venue calls."""

    def __init__(self, cfg: Optional[PaperConfig] = None) -> None:
        super().__init__(cfg)
        self.call_log: List[str] = []

    async def _call(self, method: str) -> None:
        self.call_log.append(method)
        await super()._call(method)


@pytest.fixture
def cfg() -> BotConfig:
    return BotConfig(symbol="BTC", spread_bps=10.0, order_size=0.001, max_position=1.0, close_threshold=0.8)


@pytest.fixture
def venue() -> RecordingVenue:
    return RecordingVenue()


@pytest.fixture
def resting_venue() -> RecordingVenue:
    """Orders rest however far the book moves."""
    return RecordingVenue(PaperConfig(fill_on_cross=False))


@pytest.fixture
def feed() -> FakeFeed:
    return FakeFeed()


@pytest.fixture
def events() -> List[Event]:
    return []
