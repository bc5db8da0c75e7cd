#!/usr/bin/env python3

"""Price feed + venue connectivity check (same as the mm-bot-check entry point).

Example:
  ./scripts/check_connection.py --exchange kalshi --oracle kalshi --symbol KXBTC15M-26FEB18-1700 --ticks 3
"""

from __future__ import annotations

import sys
from pathlib import Path

# Allow running as script
sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from mm_bot.cli import check_main


if __name__ == "__main__":
    raise SystemExit(check_main())
