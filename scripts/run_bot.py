#!/usr/bin/env python3

"""Run the quoting bot from a source checkout (same as the mm-bot entry point).

Example:
  ./scripts/run_bot.py --exchange paper --symbol BTC --oracle binance --spread 10 --size 0.001
"""

from __future__ import annotations

import sys
from pathlib import Path

# Allow running as script
sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from mm_bot.cli import main


if __name__ == "__main__":
    raise SystemExit(main())
