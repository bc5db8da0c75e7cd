from __future__ import annotations

"""Minimal JSON-over-HTTP helper.

Stdlib urllib only. Calls are blocking; async callers run them in a thread.
"""

import json
import urllib.error
import urllib.parse
import urllib.request
from typing import Any, Dict, Optional

from ..errors import VenueError


class HttpError(VenueError):
    def __init__(self, status: int, body: str, service: str = "HTTP"):
        super().__init__(f"{service} HTTP {status}: {body[:500]}")
        self.status = status
        self.body = body


def request_json(
    *,
    base_url: str,
    method: str,
    path: str,
    headers: Optional[Dict[str, str]] = None,
    params: Optional[Dict[str, Any]] = None,
    body: Optional[Any] = None,
    timeout_sec: float = 20.0,
    service: str = "HTTP",
) -> Any:
    url = base_url + path
    if params:
        url += "?" + urllib.parse.urlencode({k: str(v) for k, v in params.items()})

    hdrs: Dict[str, str] = {"Accept": "application/json"}
    data: Optional[bytes] = None
    if body is not None:
        hdrs["Content-Type"] = "application/json"
        data = json.dumps(body, separators=(",", ":")).encode("utf-8")
    if headers:
        hdrs.update(headers)

    req = urllib.request.Request(url, method=method.upper(), headers=hdrs, data=data)

    try:
        with urllib.request.urlopen(req, timeout=timeout_sec) as resp:
            raw = resp.read().decode("utf-8", errors="replace")
            return json.loads(raw) if raw else {}
    except urllib.error.HTTPError as e:
        raw = e.read().decode("utf-8", errors="replace")
        raise HttpError(e.code, raw, service=service) from None
    except (urllib.error.URLError, TimeoutError, json.JSONDecodeError) as e:
        raise VenueError(f"{service} {method.upper()} {path} failed: {e!r}") from e
