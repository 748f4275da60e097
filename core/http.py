"""
Signed REST Request Client

One signed HTTP call with a timeout and strict error classification.

    2xx + JSON body      -> parsed payload
    non-2xx              -> ExchangeApiError(status, body text)
    2xx + invalid JSON   -> ExchangeApiError(status, body text)
    no response at all   -> TransportError (DNS, TLS, reset, timeout)

The client never retries and never caches. Retrying a TransportError is the
caller's decision.

Usage:
    async with aiohttp.ClientSession() as session:
        client = RequestClient("aster", settings.aster_base_url, session)
        data = await client.request("GET", "/fapi/v2/positionRisk", query_string=qs, headers=h)
"""

import asyncio
import json
import time
from typing import Any, Dict, Optional

import aiohttp

from core.config import settings
from core.errors import ExchangeApiError, TransportError
from core.logging import get_logger, log_api_request, log_api_response


class RequestClient:
    """
    Thin wrapper over an aiohttp session bound to one exchange base URL.

    Attributes:
        exchange: Exchange identifier for errors and logs
        base_url: Scheme + host (no trailing slash)
        session: Shared aiohttp ClientSession (owned by the caller)
        timeout: Total request timeout in seconds
    """

    def __init__(
        self,
        exchange: str,
        base_url: str,
        session: aiohttp.ClientSession,
        timeout: Optional[float] = None
    ):
        self.exchange = exchange
        self.base_url = base_url.rstrip("/")
        self.session = session
        self.timeout = timeout if timeout is not None else settings.request_timeout
        self.logger = get_logger(__name__)

    def build_url(self, path: str, query_string: str = "") -> str:
        url = f"{self.base_url}{path}"
        if query_string:
            url = f"{url}?{query_string}"
        return url

    async def request(
        self,
        method: str,
        path: str,
        query_string: str = "",
        body: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None
    ) -> Any:
        """
        Send one request and return the parsed JSON payload.

        The query string is passed pre-encoded because signatures are
        computed over its exact bytes.

        Raises:
            ExchangeApiError: Non-2xx status or unparseable body
            TransportError: No HTTP response was received
        """
        url = self.build_url(path, query_string)
        log_api_request(self.exchange, method.upper(), path)
        started = time.monotonic()

        try:
            async with self.session.request(
                method.upper(),
                url,
                data=body,
                headers=headers or {},
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as resp:
                text = await resp.text()
                status = resp.status
        except asyncio.TimeoutError:
            raise TransportError(self.exchange, f"timeout after {self.timeout}s on {path}")
        except aiohttp.ClientError as e:
            raise TransportError(self.exchange, f"{type(e).__name__} on {path}: {e}")

        log_api_response(self.exchange, path, status, time.monotonic() - started)

        if not 200 <= status < 300:
            raise ExchangeApiError(self.exchange, status, text)

        if not text.strip():
            return None

        try:
            return json.loads(text)
        except json.JSONDecodeError:
            raise ExchangeApiError(
                self.exchange,
                status,
                text,
                message=f"{self.exchange}: invalid JSON from {path}: {text[:200]}"
            )


# ============================================
# Base for Per-Exchange API Clients
# ============================================

class ExchangeAPIClient:
    """
    Session management shared by every exchange API client.

    A client uses the session handed to it (the aggregator's shared session)
    or opens its own for the lifetime of the `async with` block.

    Example:
        >>> async with AsterAPIClient(credentials) as client:
        ...     raw = await client.get_position_risk()
    """

    exchange: str

    def __init__(
        self,
        base_url: str,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: Optional[float] = None
    ):
        self.base_url = base_url
        self.session = session
        self.timeout = timeout
        self._owns_session = session is None
        self.http: Optional[RequestClient] = None
        self.logger = get_logger(f"exchanges.{self.exchange}.api_client")

    async def __aenter__(self):
        if self.session is None:
            self.session = aiohttp.ClientSession()
            self.logger.debug(f"{self.__class__.__name__} session created")
        self.http = RequestClient(self.exchange, self.base_url, self.session, self.timeout)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._owns_session and self.session is not None:
            await self.session.close()
            self.session = None
            self.logger.debug(f"{self.__class__.__name__} session closed")

    def _require_http(self) -> RequestClient:
        if self.http is None:
            raise RuntimeError("Client session not initialized. Use 'async with' statement.")
        return self.http
