"""
Kraken Futures REST API Client

Signed, read-only access to a Kraken Futures account.

API Documentation:
    https://docs.kraken.com/api/docs/guides/futures-rest/

Endpoints used (all under /derivatives/api/v3):
    GET /openpositions
    GET /accounts
    GET /openorders

Signing strips the "/derivatives" gateway prefix from the path before
hashing; the request itself goes to the full path.

Usage:
    async with KrakenFuturesAPIClient(credentials) as client:
        positions = await client.get_open_positions()
"""

import json
from typing import Any, Dict, Optional

import aiohttp

from core.config import settings
from core.errors import ExchangeApiError
from core.http import ExchangeAPIClient
from core.schemas import ExchangeCredentials
from core.signing import KrakenFuturesSigner, SignableRequest
from core.utils.time import Clock, now_ms

API_PREFIX = "/derivatives/api/v3"


class KrakenFuturesAPIClient(ExchangeAPIClient):
    """
    Async client for the Kraken Futures private REST API.

    Kraken can answer HTTP 200 with {"result": "error", "error": "..."};
    such bodies are raised as ExchangeApiError like any non-2xx response.
    """

    exchange = "kraken"

    def __init__(
        self,
        credentials: ExchangeCredentials,
        session: Optional[aiohttp.ClientSession] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        clock: Clock = now_ms
    ):
        super().__init__(base_url or settings.kraken_futures_base_url, session, timeout)
        self.signer = KrakenFuturesSigner(credentials.api_key, credentials.api_secret, clock=clock)

    async def _get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Sign and send a GET to API_PREFIX + endpoint."""
        http = self._require_http()
        path = f"{API_PREFIX}{endpoint}"
        auth = self.signer.sign(SignableRequest(method="GET", path=path, params=params or {}))
        data = await http.request("GET", path, query_string=auth.query_string, headers=auth.headers)

        if isinstance(data, dict) and data.get("result") == "error":
            raise ExchangeApiError(self.exchange, 200, json.dumps(data))
        return data

    async def get_open_positions(self) -> Any:
        return await self._get("/openpositions")

    async def get_accounts(self) -> Any:
        return await self._get("/accounts")

    async def get_open_orders(self) -> Any:
        return await self._get("/openorders")
