from __future__ import annotations

"""Quoting engine.

Owns the control loop for one bot: keeps a two-sided quote around the fair
price on one venue, subject to the risk evaluator.

Run states: STOPPED -> STARTING -> RUNNING -> STOPPING -> STOPPED.

Each iteration:
1. refresh position/open-order snapshots (on failure keep the previous ones),
2. skip if no fair price has been published yet,
3. evaluate the risk mode,
4. if any resting order drifted more than one spread width from fair,
   cancel all orders for the symbol,
5. with no resting orders left, place the permitted bid/ask.

Failures are recorded as last_error; only stop() ends the loop. stop()
lets a remote call already in flight complete, starts no new one, then
cancels every order for the symbol, once, before releasing the venue and
feed.

Feed callbacks and the loop share one asyncio event loop. Tick handling
never awaits, so an iteration never sees a half-applied EMA update.
"""

import asyncio
import dataclasses
import logging
import time
from typing import Any, Awaitable, Callable, List, Optional

from .collectors.base import PriceFeed
from .config import BotConfig
from .errors import EngineStateError, RemoteCallError, StartupError
from .scheduler import PeriodicTask
from .state import BotState
from .strategy import quoting, risk
from .strategy.fair_price import FairPriceEstimator
from .types import BotStatus, Event, RiskMode, RunState, Tick
from .venues.base import TradingVenue, now_ms

logger = logging.getLogger(__name__)

EventSink = Callable[[Event], None]

# slack on top of call_timeout_sec for the in-flight iteration at stop
STOP_GRACE_MARGIN_SEC = 1.0


class QuotingEngine:
    def __init__(
        self,
        config: BotConfig,
        venue: TradingVenue,
        feed: PriceFeed,
        emit: Optional[EventSink] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.venue = venue
        self.feed = feed
        self.emit = emit
        self.clock = clock
        self.estimator = FairPriceEstimator(config.symbol)
        self.state = BotState()
        self.run_state = RunState.STOPPED
        # raw ticks go to venue.on_marketdata, then to these, after the estimator
        self.tick_listeners: List[Callable[[Tick], None]] = []
        self._loop: Optional[PeriodicTask] = None
        self._stopping = False

    # ---- lifecycle -----------------------------------------------------

    async def start(self) -> None:
        if self.run_state is not RunState.STOPPED:
            raise EngineStateError(f"cannot start from {self.run_state.value}")

        logger.info("Starting market maker: %s", self.config)
        self.run_state = RunState.STARTING
        self._stopping = False
        self.state = BotState()
        self.estimator.reset()

        try:
            await self._remote("initialize", self.venue.initialize())
            await self._remote("venue subscribe", self.venue.subscribe(self.on_venue_event))
            await self._remote("feed subscribe", self.feed.subscribe(self.on_tick))
        except Exception as e:
            self.state.record_error(str(e))
            logger.error("Failed to start market maker for %s: %s", self.config.symbol, e)
            await self._release()
            self.run_state = RunState.STOPPED
            raise StartupError(f"failed to start {self.config.symbol} on {self.venue.name}: {e}") from e

        self.state.started_at = self.clock()
        self.run_state = RunState.RUNNING
        self._loop = PeriodicTask(f"engine:{self.config.symbol}", self.config.loop_interval_sec, self.iterate)
        self._loop.start()
        logger.info("Market maker started: %s on %s", self.config.symbol, self.venue.name)

    async def stop(self) -> None:
        if self.run_state is not RunState.RUNNING:
            raise EngineStateError(f"cannot stop from {self.run_state.value}")

        logger.info("Stopping market maker: %s", self.config.symbol)
        self.run_state = RunState.STOPPING
        self._stopping = True
        loop, self._loop = self._loop, None
        try:
            if loop is not None:
                await loop.stop(grace_sec=self.config.call_timeout_sec + STOP_GRACE_MARGIN_SEC)
        finally:
            await self._cancel_all_on_stop()
            await self._release()
            self.state.started_at = None
            self.run_state = RunState.STOPPED
            logger.info("Market maker stopped: %s", self.config.symbol)

    async def _cancel_all_on_stop(self) -> None:
        try:
            await self._remote("cancel_all_orders", self.venue.cancel_all_orders(self.config.symbol))
        except RemoteCallError as e:
            self._record_error(f"error cancelling orders on stop: {e}")
            return
        self.state.clear_orders()
        self._emit("ORDER_CANCEL", {"scope": "all", "reason": "stop"})

    async def _release(self) -> None:
        for what, fn in (
            ("feed unsubscribe", self.feed.unsubscribe),
            ("venue unsubscribe", self.venue.unsubscribe),
            ("venue close", self.venue.close),
        ):
            try:
                await self._remote(what, fn())
            except RemoteCallError as e:
                logger.warning("%s failed: %s", what, e)

    # ---- callbacks -----------------------------------------------------

    def on_tick(self, tick: Tick) -> None:
        update = self.estimator.on_tick(tick)
        if update is not None:
            self.state.market_data = update
            if self.config.enable_logging:
                logger.info("Price update: %s fair=%.6f spread=%.6f", update.symbol, update.fair_price, update.spread)
        for listener in (self.venue.on_marketdata, *self.tick_listeners):
            try:
                listener(tick)
            except Exception:
                # keep listener errors out of the feed reader
                logger.exception("%s: tick listener failed", self.config.symbol)

    def on_venue_event(self, ev: Event) -> None:
        self._emit_event(ev)
        if ev.type != "ORDER_FILL":
            return
        self.state.trades_count += 1
        pnl = ev.payload.get("realized_pnl")
        if pnl:
            self.state.realized_pnl += float(pnl)
        oid = ev.payload.get("order_id")
        if oid is not None:
            self.state.orders = [o for o in self.state.orders if o.id != str(oid)]
        if self.config.enable_logging:
            logger.info("Order filled: %s", ev.payload)

    # ---- control loop --------------------------------------------------

    async def iterate(self) -> None:
        await self._refresh_snapshots()
        if self._stopping:
            return

        md = self.state.market_data
        if md is None:
            logger.debug("No fair price yet for %s, skipping quote update", self.config.symbol)
            return
        fair = md.fair_price

        mode = risk.evaluate(self.state.position, self.config, fair)
        if mode is not self.state.mode:
            if self.state.mode is not None or mode is RiskMode.CLOSE_ONLY:
                logger.warning("Risk mode %s -> %s for %s", self.state.mode, mode.value, self.config.symbol)
                self._emit("MODE_CHANGE", {"from": self.state.mode.value if self.state.mode else None, "to": mode.value})
            self.state.mode = mode

        if self.state.orders:
            stale = quoting.stale_orders(self.state.orders, fair, self.config.spread_bps)
            if stale:
                logger.info(
                    "%d of %d orders stale vs fair %.6f, cancelling all",
                    len(stale), len(self.state.orders), fair,
                )
                try:
                    await self._remote("cancel_all_orders", self.venue.cancel_all_orders(self.config.symbol))
                except RemoteCallError as e:
                    self._record_error(str(e))
                    return
                self.state.clear_orders()
                self._emit("ORDER_CANCEL", {"scope": "all", "reason": "stale", "fair_price": fair})

        if not self.state.orders and not self._stopping:
            await self._place_quotes(fair, mode)

    async def _refresh_snapshots(self) -> None:
        symbol = self.config.symbol
        try:
            self.state.position = await self._remote("get_position", self.venue.get_position(symbol))
        except RemoteCallError as e:
            self._record_error(str(e))
        if self._stopping:
            return
        try:
            self.state.orders = list(await self._remote("get_open_orders", self.venue.get_open_orders(symbol)))
        except RemoteCallError as e:
            self._record_error(str(e))

    async def _place_quotes(self, fair: float, mode: RiskMode) -> None:
        intents = quoting.plan_quotes(self.state.position, self.config, fair, mode)
        if not intents:
            logger.debug("No quote permitted for %s in %s mode", self.config.symbol, mode.value)
            return

        for intent in intents:
            if self._stopping:
                logger.info("Stop requested, not placing %s for %s", intent.side, self.config.symbol)
                return
            self._emit("ORDER_SUBMIT", dataclasses.asdict(intent))
            try:
                order = await self._remote(
                    f"place_order {intent.side}",
                    self.venue.place_order(self.config.symbol, intent.side, intent.price, intent.size, intent.reduce_only),
                )
            except RemoteCallError as e:
                self._record_error(str(e))
                continue
            if order.status == "open":
                self.state.orders.append(order)
            self._emit("ORDER_ACK", {"order_id": order.id, "side": order.side, "price": order.price, "size": order.size})

        log = logger.info if self.config.enable_logging else logger.debug
        bid, ask = quoting.quote_prices(fair, self.config.spread_bps)
        log(
            "Quotes placed for %s: bid=%.6f ask=%.6f size=%.6f notional=%.2f mode=%s",
            self.config.symbol, bid, ask, intents[0].size, intents[0].size * fair, mode.value,
        )

    # ---- helpers -------------------------------------------------------

    async def _remote(self, what: str, call: Awaitable[Any]) -> Any:
        """Await a venue/feed call with the per-call timeout."""
        try:
            return await asyncio.wait_for(call, timeout=self.config.call_timeout_sec)
        except asyncio.TimeoutError:
            raise RemoteCallError(f"{what} timed out after {self.config.call_timeout_sec}s") from None
        except RemoteCallError:
            raise
        except Exception as e:
            raise RemoteCallError(f"{what} failed: {e}") from e

    def _record_error(self, message: str) -> None:
        self.state.record_error(message)
        logger.warning("%s: %s", self.config.symbol, message)
        self._emit("ENGINE_ERROR", {"error": message})

    def _emit(self, typ: str, payload: dict) -> None:
        self._emit_event(Event(ts_ms=now_ms(), type=typ, payload={"symbol": self.config.symbol, **payload}))

    def _emit_event(self, ev: Event) -> None:
        if self.emit is not None:
            self.emit(ev)

    # ---- status --------------------------------------------------------

    def status(self) -> BotStatus:
        st = self.state
        running = self.run_state is RunState.RUNNING
        uptime_ms = int((self.clock() - st.started_at) * 1000) if running and st.started_at is not None else 0
        position = dataclasses.replace(st.position) if st.position is not None else None
        unrealized = position.unrealized_pnl if position is not None else 0.0
        return BotStatus(
            is_running=running,
            run_state=self.run_state,
            exchange=self.config.exchange,
            symbol=self.config.symbol,
            position=position,
            active_orders=tuple(dataclasses.replace(o) for o in st.orders),
            market_data=st.market_data,
            mode=st.mode,
            total_pnl=st.realized_pnl + unrealized,
            trades_count=st.trades_count,
            uptime_ms=uptime_ms,
            last_error=st.last_error,
        )
