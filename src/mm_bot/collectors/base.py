from __future__ import annotations

"""Price feed interface.

A feed owns a single background reader task. subscribe() starts it,
unsubscribe() stops it; reconnects happen inside the task so a feed never
holds more than one live subscription.
"""

import abc
import asyncio
import logging
import time
from typing import Callable, Optional

from ..types import Tick

logger = logging.getLogger(__name__)

TickSink = Callable[[Tick], None]


def now_ms() -> int:
    return int(time.time() * 1000)


class PriceFeed(abc.ABC):
    name: str = "feed"

    def __init__(self) -> None:
        self._task: Optional[asyncio.Task] = None
        self._stop = asyncio.Event()
        self.connects = 0

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    async def subscribe(self, on_tick: TickSink) -> None:
        if self.active:
            raise RuntimeError(f"{self.name}: already subscribed")
        self._stop = asyncio.Event()
        self._task = asyncio.create_task(self._run(on_tick, self._stop), name=f"feed:{self.name}")

    async def unsubscribe(self) -> None:
        self._stop.set()
        task = self._task
        self._task = None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    @abc.abstractmethod
    async def _run(self, on_tick: TickSink, stop_event: asyncio.Event) -> None:
        """Read until stop_event is set, reconnecting on disconnect."""
