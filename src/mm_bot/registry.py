from __future__ import annotations

"""Control surface: start/stop/status bots by id.

One engine per bot id. Starting a present id, or stopping/querying an absent
one, raises. A bot whose start fails is never registered.
"""

import asyncio
import logging
from typing import Callable, Dict, List, Mapping, Optional

from .collectors.base import PriceFeed
from .collectors.oracle import make_feed
from .config import BotConfig
from .engine import EventSink, QuotingEngine
from .errors import BotAlreadyRunning, BotNotFound
from .types import BotStatus
from .venues.base import TradingVenue
from .venues.factory import make_venue

logger = logging.getLogger(__name__)

VenueFactory = Callable[[BotConfig], TradingVenue]
FeedFactory = Callable[[BotConfig], PriceFeed]


class BotRegistry:
    def __init__(
        self,
        venue_factory: Optional[VenueFactory] = None,
        feed_factory: Optional[FeedFactory] = None,
        credentials: Optional[Mapping[str, str]] = None,
    ):
        self._creds: Mapping[str, str] = credentials or {}
        self.venue_factory = venue_factory or (lambda cfg: make_venue(cfg, self._creds))
        self.feed_factory = feed_factory or (lambda cfg: make_feed(cfg, self._creds))
        self._bots: Dict[str, QuotingEngine] = {}
        # held while a start/stop for any id is in flight so a duplicate
        # start cannot slip in between the membership check and insertion
        self._lock = asyncio.Lock()

    def __contains__(self, bot_id: str) -> bool:
        return bot_id in self._bots

    def list(self) -> List[str]:
        return sorted(self._bots)

    def get(self, bot_id: str) -> QuotingEngine:
        try:
            return self._bots[bot_id]
        except KeyError:
            raise BotNotFound(bot_id) from None

    async def start(
        self,
        bot_id: str,
        config: BotConfig,
        venue: Optional[TradingVenue] = None,
        feed: Optional[PriceFeed] = None,
        emit: Optional[EventSink] = None,
    ) -> BotStatus:
        async with self._lock:
            if bot_id in self._bots:
                raise BotAlreadyRunning(bot_id)
            engine = QuotingEngine(
                config,
                venue if venue is not None else self.venue_factory(config),
                feed if feed is not None else self.feed_factory(config),
                emit=emit,
            )
            await engine.start()
            self._bots[bot_id] = engine
        logger.info("Bot %s started", bot_id)
        return engine.status()

    async def stop(self, bot_id: str) -> BotStatus:
        async with self._lock:
            engine = self.get(bot_id)
            try:
                await engine.stop()
            finally:
                self._bots.pop(bot_id, None)
        logger.info("Bot %s stopped", bot_id)
        return engine.status()

    def status(self, bot_id: str) -> BotStatus:
        return self.get(bot_id).status()

    async def stop_all(self) -> None:
        for bot_id in self.list():
            try:
                await self.stop(bot_id)
            except BotNotFound:
                continue
