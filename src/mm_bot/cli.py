from __future__ import annotations

"""Command-line runners.

mm-bot:        run one quoting engine until SIGINT/SIGTERM.
mm-bot-check:  read a few ticks from the price oracle and print the venue's
               position and open orders.

Config resolution: defaults < environment (.env.local, then .env) < flags.
Any *_USD flag or variable switches to USD sizing.

Env vars (credentials):
- HL_PRIVATE_KEY / EVM_PRIVATE_KEY, HL_ACCOUNT_ADDRESS, HL_TESTNET
- KALSHI_ACCESS_KEY_ID, KALSHI_PRIVATE_KEY_PATH, KALSHI_ENV

Example:
  mm-bot --exchange paper --symbol ETH --oracle binance --spread 8 --size-usd 50 \\
      --max-position-usd 500 --close-threshold-usd 400 --record data/events.jsonl
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
import time
from typing import Dict, List, Optional

from dotenv import load_dotenv

from .collectors.oracle import make_feed
from .config import EXCHANGES, PRICE_ORACLES, BotConfig, env_mapping
from .engine import QuotingEngine
from .errors import ConfigError, StartupError
from .io.recorder import JsonlRecorder
from .scheduler import sleep_or_stop
from .types import BotStatus, Tick
from .venues.factory import make_venue

logger = logging.getLogger(__name__)

# flag dest -> BotConfig field
_FLAG_FIELDS = {
    "exchange": "exchange",
    "symbol": "symbol",
    "oracle": "price_oracle",
    "spread": "spread_bps",
    "size": "order_size",
    "size_usd": "order_size_usd",
    "max_position": "max_position",
    "max_position_usd": "max_position_usd",
    "close_threshold": "close_threshold",
    "close_threshold_usd": "close_threshold_usd",
    "interval": "loop_interval_sec",
}


def load_env_files() -> None:
    # .env.local wins because load_dotenv never overrides an existing variable
    load_dotenv(".env.local")
    load_dotenv()


def _add_config_args(ap: argparse.ArgumentParser) -> None:
    ap.add_argument("--exchange", choices=EXCHANGES, help="trading venue (env EXCHANGE, default paper)")
    ap.add_argument("--symbol", help="asset symbol / market ticker (env SYMBOL, default BTC)")
    ap.add_argument("--oracle", choices=PRICE_ORACLES, help="price oracle (env PRICE_ORACLE, default binance)")
    ap.add_argument("--spread", type=float, help="total spread in basis points (env SPREAD_BPS)")
    ap.add_argument("--size", type=float, help="order size in base units (env ORDER_SIZE)")
    ap.add_argument("--size-usd", type=float, help="order size in USD (env ORDER_SIZE_USD)")
    ap.add_argument("--max-position", type=float, help="max position in base units (env MAX_POSITION)")
    ap.add_argument("--max-position-usd", type=float, help="max position in USD (env MAX_POSITION_USD)")
    ap.add_argument("--close-threshold", type=float, help="close-only ratio of max position (env CLOSE_THRESHOLD)")
    ap.add_argument("--close-threshold-usd", type=float, help="close-only threshold in USD (env CLOSE_THRESHOLD_USD)")
    ap.add_argument("--interval", type=float, help="seconds between quote updates (default 1.0)")
    ap.add_argument("--logging", action="store_true", help="log price updates, fills and quotes (env ENABLE_LOGGING)")
    ap.add_argument("--log-level", default="INFO")


def config_from_args(args: argparse.Namespace, environ: Optional[Dict[str, str]] = None) -> BotConfig:
    data = env_mapping(os.environ if environ is None else environ)
    for dest, field_name in _FLAG_FIELDS.items():
        value = getattr(args, dest, None)
        if value is not None:
            data[field_name] = value
    if any(getattr(args, k, None) is not None for k in ("size_usd", "max_position_usd", "close_threshold_usd")):
        data["use_usd_sizing"] = True
    if getattr(args, "logging", False):
        data["enable_logging"] = True
    return BotConfig.from_mapping(data)


def format_status(st: BotStatus) -> str:
    md = st.market_data
    pos = st.position
    fair = f"{md.fair_price:.6f}" if md is not None else "-"
    size = f"{pos.size:+.6f}" if pos is not None else "0"
    mode = st.mode.value if st.mode is not None else "-"
    line = (
        f"[{st.exchange}:{st.symbol}] {st.run_state.value} fair={fair} pos={size} "
        f"orders={len(st.active_orders)} mode={mode} trades={st.trades_count} "
        f"pnl={st.total_pnl:.4f} uptime={st.uptime_ms // 1000}s"
    )
    if st.last_error:
        line += f" last_error={st.last_error!r}"
    return line


def _install_stop_handlers(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Windows: KeyboardInterrupt still reaches asyncio.run
            pass


async def run_bot(cfg: BotConfig, creds: Dict[str, str], record: Optional[str], status_every: float) -> int:
    venue = make_venue(cfg, creds)
    feed = make_feed(cfg, creds)
    recorder = JsonlRecorder(record) if record else None

    engine = QuotingEngine(cfg, venue, feed, emit=recorder)

    stop = asyncio.Event()
    _install_stop_handlers(stop)

    try:
        await engine.start()
    except StartupError as e:
        print(f"startup failed: {e}", file=sys.stderr)
        if recorder is not None:
            recorder.close()
        return 1

    print(f"running {cfg.symbol} on {venue.name} (oracle={cfg.price_oracle}); Ctrl-C to stop", flush=True)
    try:
        while not await sleep_or_stop(stop, status_every):
            print(format_status(engine.status()), flush=True)
    finally:
        print("stopping: cancelling all orders", flush=True)
        await engine.stop()
        print(format_status(engine.status()), flush=True)
        if recorder is not None:
            recorder.close()
            print(f"wrote {recorder.written} events to {recorder.path}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    load_env_files()

    ap = argparse.ArgumentParser(prog="mm-bot", description="Two-sided quoting bot around an EMA fair price")
    _add_config_args(ap)
    ap.add_argument("--record", default="", help="append engine events to this JSONL file")
    ap.add_argument("--status-every", type=float, default=10.0, help="seconds between status lines")
    args = ap.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        cfg = config_from_args(args)
    except ConfigError as e:
        raise SystemExit(f"invalid config: {e}")

    creds = dict(os.environ)
    try:
        return asyncio.run(run_bot(cfg, creds, args.record or None, args.status_every))
    except ConfigError as e:
        raise SystemExit(str(e))
    except KeyboardInterrupt:
        return 130


async def check_connection(cfg: BotConfig, creds: Dict[str, str], ticks: int, timeout_sec: float) -> int:
    feed = make_feed(cfg, creds)
    got: List[Tick] = []
    done = asyncio.Event()

    def on_tick(t: Tick) -> None:
        got.append(t)
        print("TICK", f"bid={t.bid} ask={t.ask} mid={t.mid:.6f} ts_ms={t.ts_ms}", flush=True)
        if len(got) >= ticks:
            done.set()

    t0 = time.monotonic()
    await feed.subscribe(on_tick)
    try:
        await asyncio.wait_for(done.wait(), timeout=timeout_sec)
    except asyncio.TimeoutError:
        print(f"feed: only {len(got)}/{ticks} ticks in {timeout_sec}s", file=sys.stderr)
    finally:
        await feed.unsubscribe()
    print(f"feed {cfg.price_oracle}: {len(got)} ticks in {time.monotonic() - t0:.1f}s (reconnects={feed.connects})")

    venue = make_venue(cfg, creds)
    rc = 0 if got else 1
    try:
        await asyncio.wait_for(venue.initialize(), timeout=cfg.call_timeout_sec)
        pos = await asyncio.wait_for(venue.get_position(cfg.symbol), timeout=cfg.call_timeout_sec)
        orders = await asyncio.wait_for(venue.get_open_orders(cfg.symbol), timeout=cfg.call_timeout_sec)
    except Exception as e:
        print(f"venue {venue.name}: FAILED {type(e).__name__}: {e}", file=sys.stderr)
        return 1
    finally:
        await venue.close()

    print(f"venue {venue.name}: position={pos}")
    print(f"venue {venue.name}: {len(orders)} open orders")
    for o in orders:
        print("  ", o.id, o.side, o.price, o.size, "reduce_only" if o.reduce_only else "")
    return rc


def check_main(argv: Optional[List[str]] = None) -> int:
    load_env_files()

    ap = argparse.ArgumentParser(prog="mm-bot-check", description="Check price feed and venue connectivity")
    _add_config_args(ap)
    ap.add_argument("--ticks", type=int, default=3)
    ap.add_argument("--timeout", type=float, default=30.0)
    args = ap.parse_args(argv)

    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))

    try:
        cfg = config_from_args(args)
    except ConfigError as e:
        raise SystemExit(f"invalid config: {e}")
    try:
        return asyncio.run(check_connection(cfg, dict(os.environ), args.ticks, args.timeout))
    except ConfigError as e:
        raise SystemExit(str(e))


if __name__ == "__main__":
    raise SystemExit(main())
