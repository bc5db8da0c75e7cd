from __future__ import annotations

"""Kalshi API-key request signing.

Authenticated REST calls and the WS handshake carry three headers. The
signature is RSA-PSS/SHA256 (salt = digest length) over
`timestamp_ms + METHOD + path`, query string excluded, base64 encoded.
"""

import base64
import functools
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from ..errors import ConfigError

WS_PATH = "/trade-api/ws/v2"

_PSS = padding.PSS(mgf=padding.MGF1(hashes.SHA256()), salt_length=padding.PSS.DIGEST_LENGTH)


@functools.lru_cache(maxsize=8)
def _load_rsa_key(path: str) -> rsa.RSAPrivateKey:
    try:
        key = serialization.load_pem_private_key(Path(path).expanduser().read_bytes(), password=None)
    except (OSError, ValueError) as e:
        raise ConfigError(f"Cannot load Kalshi private key {path}: {e}") from e
    if not isinstance(key, rsa.RSAPrivateKey):
        raise ConfigError(f"Kalshi private key {path} is not an RSA key")
    return key


@dataclass(frozen=True)
class KalshiKey:
    access_key_id: str  # sent as KALSHI-ACCESS-KEY
    private_key_path: str  # PEM, loaded lazily and cached per path

    def sign(self, message: str) -> str:
        sig = _load_rsa_key(self.private_key_path).sign(message.encode("utf-8"), _PSS, hashes.SHA256())
        return base64.b64encode(sig).decode("ascii")

    def headers(self, method: str, path: str, ts_ms: Optional[int] = None) -> Dict[str, str]:
        ts = str(ts_ms if ts_ms is not None else int(time.time() * 1000))
        return {
            "KALSHI-ACCESS-KEY": self.access_key_id,
            "KALSHI-ACCESS-SIGNATURE": self.sign(ts + method.upper() + path.split("?", 1)[0]),
            "KALSHI-ACCESS-TIMESTAMP": ts,
        }


def ws_auth_headers(key: KalshiKey, ws_path: str = WS_PATH) -> Dict[str, str]:
    """Handshake headers: the upgrade request is signed as a GET of ws_path."""
    return key.headers("GET", ws_path)
