from __future__ import annotations

"""Kalshi trade-api v2 REST client (blocking).

Hosts:
- prod: https://api.elections.kalshi.com
- demo: https://demo-api.kalshi.co
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .http import HttpError, request_json
from .kalshi_auth import KalshiKey

REST_HOSTS = {
    "demo": "https://demo-api.kalshi.co",
    "prod": "https://api.elections.kalshi.com",
}


@dataclass(frozen=True)
class KalshiRestConfig:
    env: str = "demo"  # demo|prod
    timeout_sec: float = 20.0

    @property
    def base_url(self) -> str:
        try:
            return REST_HOSTS[self.env]
        except KeyError:
            raise ValueError(f"Unknown env: {self.env}") from None


class KalshiRestError(HttpError):
    def __init__(self, status: int, body: str):
        super().__init__(status, body, service="Kalshi REST")


class KalshiRest:
    """Signs and sends one request per call; no session state."""

    def __init__(self, cfg: KalshiRestConfig, key: Optional[KalshiKey]):
        self.cfg = cfg
        self.key = key

    def request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        try:
            return request_json(
                base_url=self.cfg.base_url,
                method=method,
                path=path,
                headers=self.key.headers(method, path) if self.key is not None else None,
                params=params,
                body=body,
                timeout_sec=self.cfg.timeout_sec,
                service="Kalshi REST",
            )
        except HttpError as e:
            raise KalshiRestError(e.status, e.body) from None

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self.request("GET", path, params=params)

    def post(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        return self.request("POST", path, body=body)

    def delete(self, path: str) -> Dict[str, Any]:
        return self.request("DELETE", path)
