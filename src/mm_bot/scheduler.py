from __future__ import annotations

"""Periodic task with a cancellation token.

Replaces bare timers: whoever owns a PeriodicTask can stop it and know that
no callback fires afterwards, including during a backoff sleep.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


async def sleep_or_stop(stop_event: asyncio.Event, seconds: float) -> bool:
    """Sleep up to `seconds`; return True if stop_event fired first."""
    if stop_event.is_set():
        return True
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        return False
    return True


class PeriodicTask:
    def __init__(self, name: str, interval_sec: float, fn: Callable[[], Awaitable[None]]):
        self.name = name
        self.interval_sec = interval_sec
        self.fn = fn
        self.stop_event = asyncio.Event()
        self.runs = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            raise RuntimeError(f"{self.name} already started")
        self.stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name=self.name)

    async def _run(self) -> None:
        while not self.stop_event.is_set():
            try:
                await self.fn()
            except asyncio.CancelledError:
                raise
            except Exception:
                # the callback owns its error reporting; keep ticking
                logger.exception("%s: iteration failed", self.name)
            self.runs += 1
            if await sleep_or_stop(self.stop_event, self.interval_sec):
                return

    async def stop(self, grace_sec: float = 0.0) -> None:
        """Signal stop, let an in-flight iteration run up to grace_sec, then cancel it.

        Cancelling an await does not stop work already handed to a thread, so
        owners whose iterations place orders pass a grace period.
        """
        self.stop_event.set()
        task = self._task
        self._task = None
        if task is None or task.done():
            return
        if grace_sec > 0:
            await asyncio.wait({task}, timeout=grace_sec)
            if task.done():
                return
            logger.warning("%s: iteration still running after %.1fs, cancelling", self.name, grace_sec)
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
