"""Tests for the quoting engine control loop and run-state machine.

The loop is driven by calling iterate() directly; lifecycle tests start the
engine with a long interval so only the first iteration runs.
"""

import asyncio
import dataclasses
import time
from typing import Dict, List

import pytest

from conftest import FakeFeed
from mm_bot.engine import QuotingEngine
from mm_bot.errors import EngineStateError, StartupError
from mm_bot.types import Order, Position, RiskMode, RunState, Side, Tick
from mm_bot.venues.paper import PaperConfig, PaperVenue


@pytest.fixture
def slow_cfg(cfg):
    return dataclasses.replace(cfg, loop_interval_sec=3600.0)


def test_no_fair_price_skips_quoting(cfg, venue, feed):
    engine = QuotingEngine(cfg, venue, feed)
    asyncio.run(engine.iterate())

    assert venue.call_log == ["get_position", "get_open_orders"]
    assert venue.orders == {}
    assert engine.state.mode is None


def test_first_iteration_places_both_sides(cfg, venue, feed, events):
    engine = QuotingEngine(cfg, venue, feed, emit=events.append)
    engine.on_tick(Tick(ts_ms=1, bid=49999.0, ask=50001.0))
    asyncio.run(engine.iterate())

    prices = sorted(o.price for o in venue.orders.values())
    assert prices == pytest.approx([49975.0, 50025.0])
    assert len(engine.state.orders) == 2
    assert engine.state.mode is RiskMode.NORMAL
    assert [e.type for e in events] == ["ORDER_SUBMIT", "ORDER_ACK", "ORDER_SUBMIT", "ORDER_ACK"]


def test_stale_quotes_cancel_all_before_requote(cfg, resting_venue, feed):
    venue = resting_venue
    engine = QuotingEngine(cfg, venue, feed)

    async def scenario():
        engine.on_tick(Tick(ts_ms=1, bid=49999.0, ask=50001.0))
        await engine.iterate()
        venue.call_log.clear()
        # fair moves to ~50030.8, the 49975 bid is now more than one spread away
        engine.on_tick(Tick(ts_ms=2, bid=50199.0, ask=50201.0))
        await engine.iterate()

    asyncio.run(scenario())

    assert venue.call_log == [
        "get_position",
        "get_open_orders",
        "cancel_all_orders",
        "place_order",
        "place_order",
    ]
    fair = engine.estimator.fair_price
    prices = sorted(o.price for o in venue.orders.values())
    assert prices == pytest.approx([fair - fair * 10 / 20000, fair + fair * 10 / 20000])


def test_fresh_quotes_are_left_alone(cfg, venue, feed):
    engine = QuotingEngine(cfg, venue, feed)

    async def scenario():
        engine.on_tick(Tick(ts_ms=1, bid=49999.0, ask=50001.0))
        await engine.iterate()
        venue.call_log.clear()
        engine.on_tick(Tick(ts_ms=2, bid=50009.0, ask=50011.0))
        await engine.iterate()

    asyncio.run(scenario())

    assert venue.call_log == ["get_position", "get_open_orders"]
    assert len(venue.orders) == 2


def test_snapshot_failure_keeps_previous_and_records_error(cfg, venue, feed, events):
    engine = QuotingEngine(cfg, venue, feed, emit=events.append)
    engine.state.position = Position(symbol="BTC", size=0.3)
    venue.fail_on = {"get_position"}

    asyncio.run(engine.iterate())

    assert engine.state.position.size == 0.3
    assert "get_position" in engine.state.last_error
    assert events[-1].type == "ENGINE_ERROR"


def test_placement_failure_is_recorded_and_loop_continues(cfg, venue, feed):
    engine = QuotingEngine(cfg, venue, feed)
    engine.on_tick(Tick(ts_ms=1, bid=49999.0, ask=50001.0))
    venue.fail_on = {"place_order"}

    asyncio.run(engine.iterate())

    assert venue.calls["place_order"] == 2
    assert "place_order" in engine.state.last_error
    assert engine.state.orders == []

    venue.fail_on = set()
    asyncio.run(engine.iterate())
    assert len(engine.state.orders) == 2


def test_stale_cancel_failure_skips_requote(cfg, resting_venue, feed):
    venue = resting_venue
    engine = QuotingEngine(cfg, venue, feed)

    async def scenario():
        engine.on_tick(Tick(ts_ms=1, bid=49999.0, ask=50001.0))
        await engine.iterate()
        venue.fail_on = {"cancel_all_orders"}
        engine.on_tick(Tick(ts_ms=2, bid=50199.0, ask=50201.0))
        await engine.iterate()

    asyncio.run(scenario())

    assert venue.calls["place_order"] == 2
    assert "cancel_all_orders" in engine.state.last_error


def test_remote_call_timeout_is_recorded(cfg, feed):
    slow_venue = PaperVenue(PaperConfig(latency_sec=1.0))
    engine = QuotingEngine(dataclasses.replace(cfg, call_timeout_sec=0.05), slow_venue, feed)

    asyncio.run(engine.iterate())

    assert "timed out" in engine.state.last_error


def test_close_only_quotes_reducing_side_with_reduce_only(cfg, venue, feed, events):
    venue.positions["BTC"] = Position(symbol="BTC", size=0.9, entry_price=50000.0)
    engine = QuotingEngine(cfg, venue, feed, emit=events.append)
    engine.on_tick(Tick(ts_ms=1, bid=49999.0, ask=50001.0))

    asyncio.run(engine.iterate())

    assert engine.state.mode is RiskMode.CLOSE_ONLY
    orders = list(venue.orders.values())
    assert len(orders) == 1
    assert orders[0].side == "sell"
    assert orders[0].reduce_only
    mode_changes = [e for e in events if e.type == "MODE_CHANGE"]
    assert mode_changes[0].payload["to"] == "close_only"


def test_fills_count_trades_and_drop_cached_order(cfg, venue, feed):
    engine = QuotingEngine(cfg, venue, feed)

    async def scenario():
        await venue.subscribe(engine.on_venue_event)
        engine.on_tick(Tick(ts_ms=1, bid=49999.0, ask=50001.0))
        await engine.iterate()
        # book moves through the 50025 ask
        engine.on_tick(Tick(ts_ms=2, bid=50030.0, ask=50031.0))
        await engine.iterate()

    asyncio.run(scenario())

    assert engine.state.trades_count == 1
    assert engine.state.position.size == pytest.approx(-0.001)
    assert engine.status().trades_count == 1


def test_status_is_a_detached_projection(cfg, venue, feed):
    engine = QuotingEngine(cfg, venue, feed)
    engine.on_tick(Tick(ts_ms=1, bid=49999.0, ask=50001.0))
    asyncio.run(engine.iterate())

    st = engine.status()
    assert not st.is_running
    assert st.run_state is RunState.STOPPED
    assert st.uptime_ms == 0
    assert len(st.active_orders) == 2
    assert st.market_data.fair_price == 50000.0

    st.active_orders[0].price = 1.0
    assert all(o.price != 1.0 for o in engine.state.orders)

    d = st.to_dict()
    assert d["isRunning"] is False
    assert d["runState"] == "stopped"
    assert d["mode"] == "normal"
    assert len(d["activeOrders"]) == 2


def test_start_then_stop_cancels_all_exactly_once(slow_cfg, venue, feed, events):
    engine = QuotingEngine(slow_cfg, venue, feed, emit=events.append)

    async def scenario():
        await engine.start()
        assert engine.run_state is RunState.RUNNING
        feed.push(49999.0, 50001.0)
        await asyncio.sleep(0.05)
        running = engine.status()
        await engine.stop()
        return running

    running = asyncio.run(scenario())

    assert running.is_running
    assert len(running.active_orders) == 2
    assert venue.calls["cancel_all_orders"] == 1
    assert venue.orders == {}
    assert engine.run_state is RunState.STOPPED
    assert not feed.active
    assert feed.unsubscribes == 1
    assert venue.calls["close"] == 1
    assert events[-1].type == "ORDER_CANCEL"
    assert events[-1].payload["reason"] == "stop"


def test_stop_cancels_even_after_placement_failures(slow_cfg, venue, feed):
    engine = QuotingEngine(slow_cfg, venue, feed)
    venue.fail_on = {"place_order"}

    async def scenario():
        await engine.start()
        feed.push(49999.0, 50001.0)
        await asyncio.sleep(0.05)
        await engine.stop()

    asyncio.run(scenario())

    assert venue.calls["place_order"] == 2
    assert venue.calls["cancel_all_orders"] == 1
    assert engine.run_state is RunState.STOPPED


def test_stop_completes_when_cancel_fails(slow_cfg, venue, feed):
    engine = QuotingEngine(slow_cfg, venue, feed)
    venue.fail_on = {"cancel_all_orders"}

    async def scenario():
        await engine.start()
        await engine.stop()

    asyncio.run(scenario())

    assert engine.run_state is RunState.STOPPED
    assert "cancelling orders on stop" in engine.state.last_error
    assert not feed.active


def test_startup_failure_releases_and_stays_stopped(slow_cfg, venue, feed):
    engine = QuotingEngine(slow_cfg, venue, feed)
    venue.fail_on = {"initialize"}

    with pytest.raises(StartupError):
        asyncio.run(engine.start())

    assert engine.run_state is RunState.STOPPED
    assert engine.status().last_error is not None
    assert venue.calls["close"] == 1
    assert not feed.active


def test_feed_subscribe_failure_is_startup_error(slow_cfg, venue):
    feed = FakeFeed(fail_subscribe=True)
    engine = QuotingEngine(slow_cfg, venue, feed)

    with pytest.raises(StartupError) as exc:
        asyncio.run(engine.start())

    assert "feed subscribe" in str(exc.value)
    assert venue.calls["unsubscribe"] == 1
    assert engine.run_state is RunState.STOPPED


def test_invalid_transitions_raise(slow_cfg, venue, feed):
    engine = QuotingEngine(slow_cfg, venue, feed)

    async def scenario():
        with pytest.raises(EngineStateError):
            await engine.stop()
        await engine.start()
        with pytest.raises(EngineStateError):
            await engine.start()
        await engine.stop()

    asyncio.run(scenario())


def test_restart_reseeds_fair_price(slow_cfg, venue, feed):
    engine = QuotingEngine(slow_cfg, venue, feed)

    async def scenario():
        await engine.start()
        feed.push(99.0, 101.0)
        await engine.stop()
        await engine.start()
        assert engine.estimator.fair_price is None
        feed.push(199.0, 201.0)
        await engine.stop()

    asyncio.run(scenario())

    assert engine.state.market_data.fair_price == 200.0


class ThreadedPlaceVenue(PaperVenue):
    """Places orders from a worker thread, like the blocking live clients.

    The order lands in `resting` when the thread finishes, whether or not the
    awaiting task is still there.
    """

    def __init__(self, place_delay_sec: float) -> None:
        super().__init__()
        self.place_delay_sec = place_delay_sec
        self.resting: Dict[str, Order] = {}

    def _place_blocking(self, symbol: str, side: Side, price: float, size: float, reduce_only: bool) -> Order:
        time.sleep(self.place_delay_sec)
        order = Order(id=f"t:{side}", symbol=symbol, side=side, price=price, size=size, reduce_only=reduce_only)
        self.resting[order.id] = order
        return order

    async def place_order(self, symbol, side, price, size, reduce_only=False):
        self.calls["place_order"] += 1
        return await asyncio.to_thread(self._place_blocking, symbol, side, price, size, reduce_only)

    async def get_open_orders(self, symbol: str) -> List[Order]:
        await self._call("get_open_orders")
        return [dataclasses.replace(o) for o in self.resting.values() if o.symbol == symbol]

    async def cancel_all_orders(self, symbol: str) -> bool:
        await self._call("cancel_all_orders")
        self.resting = {k: o for k, o in self.resting.items() if o.symbol != symbol}
        return True


def test_stop_waits_for_threaded_placement_before_cancel_all(slow_cfg, feed):
    venue = ThreadedPlaceVenue(place_delay_sec=0.3)
    engine = QuotingEngine(slow_cfg, venue, feed)

    async def scenario():
        await engine.start()
        feed.push(49999.0, 50001.0)
        await asyncio.sleep(0.1)
        await engine.stop()
        # a placement thread that outlived stop() would land here
        await asyncio.sleep(0.4)

    asyncio.run(scenario())

    assert venue.calls["cancel_all_orders"] == 1
    assert venue.calls["place_order"] == 1
    assert venue.resting == {}
    assert engine.run_state is RunState.STOPPED


def test_stop_during_slow_iteration_cancels_once(slow_cfg, feed, events):
    venue = PaperVenue(PaperConfig(latency_sec=0.2))
    engine = QuotingEngine(slow_cfg, venue, feed, emit=events.append)

    async def scenario():
        await engine.start()
        feed.push(49999.0, 50001.0)
        # iteration: get_position, get_open_orders, then the bid from 0.4s to 0.6s
        await asyncio.sleep(0.5)
        t0 = time.monotonic()
        await engine.stop()
        return time.monotonic() - t0

    took = asyncio.run(scenario())

    assert took < slow_cfg.loop_interval_sec
    assert venue.calls["place_order"] == 1
    assert venue.calls["cancel_all_orders"] == 1
    assert venue.orders == {}
    assert engine.state.orders == []
    types = [e.type for e in events]
    assert types.count("ORDER_ACK") == 1
    assert types[-1] == "ORDER_CANCEL"


def test_failing_tick_listener_is_contained(cfg, venue, feed):
    engine = QuotingEngine(cfg, venue, feed)
    seen: List[Tick] = []

    def broken(tick: Tick) -> None:
        raise RuntimeError("listener bug")

    engine.tick_listeners.extend([broken, seen.append])
    engine.on_tick(Tick(ts_ms=1, bid=99.0, ask=101.0))

    assert engine.state.market_data.fair_price == 100.0
    assert len(seen) == 1
    assert venue.best_bid == 99.0
