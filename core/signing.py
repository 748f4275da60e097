"""
Request Signing

Per-exchange request and message signatures. Every signer is pure: given the
same credentials, request and clock reading it produces the same output.
Tests pin the clock by passing `clock=lambda: 1700000000000`.

Schemes:
    Aster (Binance-style):
        params + timestamp, keys sorted, k=encodeURIComponent(v) joined by '&'
        signature = HMAC-SHA256(secret, query) hex, appended as &signature=
        header X-MBX-APIKEY

    MEXC contract:
        signature = HMAC-SHA256(secret, apiKey + requestTimeMs + payload) hex
        payload = sorted query (GET) or compact JSON body (POST)
        headers ApiKey, Request-Time, Signature, Recv-Window

    Kraken Futures REST:
        digest  = SHA256(query + body(POST only) + nonce + path without "/derivatives")
        Authent = base64(HMAC-SHA512(base64decode(secret), digest))
        headers APIKey, Nonce, Authent

    Kraken Futures WebSocket challenge:
        base64(HMAC-SHA512(base64decode(secret), SHA256(challenge)))

    MEXC WebSocket login:
        signature = HMAC-SHA256(secret, apiKey + reqTime) hex

Usage:
    signer = AsterSigner(api_key, api_secret)
    auth = signer.sign(SignableRequest(method="GET", path="/fapi/v2/positionRisk"))
    # auth.headers, auth.query_string, auth.body
"""

import base64
import binascii
import hashlib
import hmac
import json
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
from urllib.parse import quote, urlencode

from pydantic import BaseModel, Field

from core.errors import InvalidSecretEncoding
from core.utils.time import Clock, now_ms

# Characters encodeURIComponent leaves untouched besides alphanumerics
URI_COMPONENT_SAFE = "-_.!~*'()"

KRAKEN_GATEWAY_PREFIX = "/derivatives"


# ============================================
# Request / Result Models
# ============================================

class SignableRequest(BaseModel):
    """A REST call before authentication is attached."""

    method: str = "GET"
    path: str
    params: Dict[str, Any] = Field(default_factory=dict)
    body: Optional[Dict[str, Any]] = None


class AuthMaterial(BaseModel):
    """Everything the RequestClient needs to send a signed call."""

    headers: Dict[str, str] = Field(default_factory=dict)
    query_string: str = ""
    body: Optional[str] = None


# ============================================
# Primitives
# ============================================

def hmac_sha256_hex(secret: str, message: str) -> str:
    """HMAC-SHA256 of message keyed with the raw secret, hex encoded."""
    return hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def build_sorted_query(params: Dict[str, Any]) -> str:
    """
    Serialize params as k=v pairs sorted by key.

    None values are dropped. Values are percent-encoded the way
    JavaScript's encodeURIComponent does it.

    Example:
        >>> build_sorted_query({"symbol": "BTC USDT", "limit": 5, "x": None})
        'limit=5&symbol=BTC%20USDT'
    """
    pairs = []
    for key in sorted(params):
        value = params[key]
        if value is None:
            continue
        pairs.append(f"{key}={quote(_stringify(value), safe=URI_COMPONENT_SAFE)}")
    return "&".join(pairs)


def decode_secret(secret: str, exchange: str = "kraken") -> bytes:
    """
    Decode a base64 API secret.

    Raises:
        InvalidSecretEncoding: If the secret is empty or not valid base64
    """
    cleaned = (secret or "").strip()
    if not cleaned:
        raise InvalidSecretEncoding(exchange, "secret is empty")
    try:
        return base64.b64decode(cleaned, validate=True)
    except (binascii.Error, ValueError):
        raise InvalidSecretEncoding(exchange)


def sign_challenge(api_secret: str, challenge: str, exchange: str = "kraken") -> str:
    """
    Sign a Kraken Futures WebSocket challenge.

    Raises:
        InvalidSecretEncoding: If the secret is not valid base64
    """
    key = decode_secret(api_secret, exchange)
    digest = hashlib.sha256(challenge.encode("utf-8")).digest()
    return base64.b64encode(hmac.new(key, digest, hashlib.sha512).digest()).decode("ascii")


def mexc_login_signature(api_key: str, api_secret: str, request_time: str) -> str:
    """Signature for the MEXC WebSocket login message."""
    return hmac_sha256_hex(api_secret, f"{api_key}{request_time}")


# ============================================
# Signers
# ============================================

class RequestSigner(ABC):
    """
    Base class for per-exchange signers.

    Attributes:
        exchange: Exchange identifier used in errors and logs
        clock: Callable returning epoch milliseconds
    """

    exchange: str

    def __init__(self, api_key: str, api_secret: str, clock: Clock = now_ms):
        self.api_key = api_key
        self._api_secret = api_secret
        self.clock = clock

    @abstractmethod
    def sign(self, request: SignableRequest) -> AuthMaterial:
        """Attach authentication to a request."""
        ...


class AsterSigner(RequestSigner):
    """Binance-style query signing used by Aster futures."""

    exchange = "aster"

    def sign(self, request: SignableRequest) -> AuthMaterial:
        params = dict(request.params)
        params["timestamp"] = self.clock()
        query = build_sorted_query(params)
        signature = hmac_sha256_hex(self._api_secret, query)
        return AuthMaterial(
            headers={"X-MBX-APIKEY": self.api_key},
            query_string=f"{query}&signature={signature}"
        )


class MexcSigner(RequestSigner):
    """MEXC contract API signing (key + time + payload)."""

    exchange = "mexc"

    def __init__(self, api_key: str, api_secret: str, clock: Clock = now_ms, recv_window: int = 60_000):
        super().__init__(api_key, api_secret, clock)
        self.recv_window = recv_window

    def sign(self, request: SignableRequest) -> AuthMaterial:
        request_time = str(self.clock())
        headers = {
            "ApiKey": self.api_key,
            "Request-Time": request_time,
            "Recv-Window": str(self.recv_window),
        }

        if request.method.upper() == "POST":
            body = {k: v for k, v in (request.body or {}).items() if v is not None}
            payload = json.dumps(body, separators=(",", ":"))
            headers["Content-Type"] = "application/json"
            query_string = build_sorted_query(request.params)
            body_text = payload
        else:
            payload = build_sorted_query(request.params)
            query_string = payload
            body_text = None

        headers["Signature"] = hmac_sha256_hex(self._api_secret, f"{self.api_key}{request_time}{payload}")
        return AuthMaterial(headers=headers, query_string=query_string, body=body_text)


class KrakenFuturesSigner(RequestSigner):
    """Kraken Futures REST Authent signing."""

    exchange = "kraken"

    def sign(self, request: SignableRequest) -> AuthMaterial:
        key = decode_secret(self._api_secret, self.exchange)
        nonce = str(self.clock())

        query = urlencode({k: _stringify(v) for k, v in request.params.items() if v is not None})
        body = ""
        if request.method.upper() == "POST" and request.body:
            body = urlencode({k: _stringify(v) for k, v in request.body.items() if v is not None})

        endpoint_path = request.path
        if endpoint_path.startswith(KRAKEN_GATEWAY_PREFIX):
            endpoint_path = endpoint_path[len(KRAKEN_GATEWAY_PREFIX):]

        digest = hashlib.sha256(f"{query}{body}{nonce}{endpoint_path}".encode("utf-8")).digest()
        authent = base64.b64encode(hmac.new(key, digest, hashlib.sha512).digest()).decode("ascii")

        return AuthMaterial(
            headers={
                "APIKey": self.api_key,
                "Nonce": nonce,
                "Authent": authent,
                "Content-Type": "application/x-www-form-urlencoded",
            },
            query_string=query,
            body=body or None
        )
