"""Tests for the bot registry (start/stop/status by id)."""

import asyncio
import dataclasses

import pytest

from conftest import FakeFeed
from mm_bot.collectors.external_price_binance import BinanceBookTickerFeed
from mm_bot.errors import BotAlreadyRunning, BotNotFound, StartupError
from mm_bot.registry import BotRegistry
from mm_bot.venues.paper import PaperVenue


@pytest.fixture
def slow_cfg(cfg):
    return dataclasses.replace(cfg, loop_interval_sec=3600.0)


def _registry() -> BotRegistry:
    return BotRegistry(venue_factory=lambda c: PaperVenue(), feed_factory=lambda c: FakeFeed())


def test_start_status_stop(slow_cfg):
    async def scenario():
        reg = _registry()
        started = await reg.start("btc", slow_cfg)
        assert "btc" in reg
        assert reg.list() == ["btc"]
        assert reg.status("btc").is_running
        stopped = await reg.stop("btc")
        return reg, started, stopped

    reg, started, stopped = asyncio.run(scenario())

    assert started.is_running
    assert started.symbol == "BTC"
    assert not stopped.is_running
    assert "btc" not in reg


def test_duplicate_start_rejected(slow_cfg):
    async def scenario():
        reg = _registry()
        await reg.start("btc", slow_cfg)
        try:
            with pytest.raises(BotAlreadyRunning) as exc:
                await reg.start("btc", slow_cfg)
            assert str(exc.value) == "Bot already running: btc"
        finally:
            await reg.stop_all()

    asyncio.run(scenario())


def test_unknown_id_raises_not_found():
    reg = _registry()
    with pytest.raises(BotNotFound):
        reg.status("nope")
    with pytest.raises(BotNotFound):
        asyncio.run(reg.stop("nope"))


def test_failed_start_is_not_registered(slow_cfg):
    venue = PaperVenue()
    venue.fail_on = {"initialize"}

    async def scenario():
        reg = _registry()
        with pytest.raises(StartupError):
            await reg.start("btc", slow_cfg, venue=venue)
        return reg

    reg = asyncio.run(scenario())
    assert "btc" not in reg
    assert reg.list() == []


def test_stop_all(slow_cfg):
    async def scenario():
        reg = _registry()
        await reg.start("a", slow_cfg)
        await reg.start("b", dataclasses.replace(slow_cfg, symbol="ETH"))
        await reg.stop_all()
        return reg

    assert asyncio.run(scenario()).list() == []


def test_default_factories_follow_config(cfg):
    reg = BotRegistry(credentials={})
    assert isinstance(reg.venue_factory(cfg), PaperVenue)
    assert isinstance(reg.feed_factory(cfg), BinanceBookTickerFeed)


def test_paper_bot_fills_when_feed_crosses_its_quote(slow_cfg):
    feed = FakeFeed()

    async def scenario():
        reg = BotRegistry(feed_factory=lambda c: feed)
        await reg.start("btc", slow_cfg)
        feed.push(49999.0, 50001.0)
        await asyncio.sleep(0.05)
        quoted = reg.status("btc")
        # book moves through the 50025 ask
        feed.push(50030.0, 50031.0)
        engine = reg.get("btc")
        position = await engine.venue.get_position("BTC")
        filled = reg.status("btc")
        await reg.stop("btc")
        return quoted, filled, position

    quoted, filled, position = asyncio.run(scenario())

    assert len(quoted.active_orders) == 2
    assert filled.trades_count == 1
    assert len(filled.active_orders) == 1
    assert position.size == pytest.approx(-0.001)
