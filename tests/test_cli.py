"""Tests for CLI config resolution and status formatting."""

import argparse

import pytest

from mm_bot import cli
from mm_bot.errors import ConfigError
from mm_bot.types import BotStatus, MarketData, Position, RiskMode, RunState


def _args(argv):
    ap = argparse.ArgumentParser()
    cli._add_config_args(ap)
    return ap.parse_args(argv)


def test_flags_override_environment():
    env = {"EXCHANGE": "hyperliquid", "SYMBOL": "ETH", "SPREAD_BPS": "20"}
    cfg = cli.config_from_args(_args(["--symbol", "SOL", "--spread", "5", "--interval", "2"]), environ=env)
    assert cfg.exchange == "hyperliquid"
    assert cfg.symbol == "SOL"
    assert cfg.spread_bps == 5.0
    assert cfg.loop_interval_sec == 2.0
    assert not cfg.use_usd_sizing


def test_usd_flag_enables_usd_sizing():
    env = {"MAX_POSITION_USD": "500", "CLOSE_THRESHOLD_USD": "400"}
    cfg = cli.config_from_args(_args(["--size-usd", "50"]), environ=env)
    assert cfg.use_usd_sizing
    assert cfg.order_size_usd == 50.0


def test_usd_flag_without_limits_is_config_error():
    with pytest.raises(ConfigError):
        cli.config_from_args(_args(["--size-usd", "50"]), environ={})


def test_logging_flag():
    assert cli.config_from_args(_args(["--logging"]), environ={}).enable_logging


def test_unknown_exchange_rejected_by_parser():
    with pytest.raises(SystemExit):
        _args(["--exchange", "ftx"])


def test_format_status():
    st = BotStatus(
        is_running=True,
        run_state=RunState.RUNNING,
        exchange="paper",
        symbol="BTC",
        position=Position(symbol="BTC", size=0.25),
        active_orders=(),
        market_data=MarketData(symbol="BTC", fair_price=50000.0, bid=49999.0, ask=50001.0, spread=2.0, ts_ms=1),
        mode=RiskMode.NORMAL,
        total_pnl=1.5,
        trades_count=3,
        uptime_ms=12_345,
        last_error="place_order timed out",
    )
    line = cli.format_status(st)
    assert line.startswith("[paper:BTC] running fair=50000.000000 pos=+0.250000")
    assert "trades=3" in line
    assert "uptime=12s" in line
    assert "last_error='place_order timed out'" in line
