from __future__ import annotations

import json
from pathlib import Path
from typing import IO, Optional

from ..types import Event


def event_to_json(ev: Event) -> str:
    return json.dumps({"ts_ms": ev.ts_ms, "type": ev.type, "payload": ev.payload}, ensure_ascii=False, default=str)


class JsonlRecorder:
    """Append-only JSONL sink for engine events.

    One Event per line, flushed per write so a crash loses at most the
    line being written. Usable directly as an engine `emit` callback.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._fh: Optional[IO[str]] = None
        self.written = 0

    def __call__(self, ev: Event) -> None:
        self.append(ev)

    def append(self, ev: Event) -> None:
        if self._fh is None:
            self._fh = self.path.open("a", encoding="utf-8")
        self._fh.write(event_to_json(ev) + "\n")
        self._fh.flush()
        self.written += 1

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None


def read_jsonl(path: str | Path) -> list[Event]:
    p = Path(path)
    out: list[Event] = []
    if not p.exists():
        return out
    with p.open("r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            obj = json.loads(line)
            out.append(Event(ts_ms=int(obj["ts_ms"]), type=obj["type"], payload=obj.get("payload") or {}))
    return out
