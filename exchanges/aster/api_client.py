"""
Aster Futures REST API Client

Signed, read-only access to an Aster futures account.

API Documentation:
    https://github.com/asterdex/api-docs

Endpoints used:
    GET /fapi/v2/positionRisk   open positions (one row per symbol/side)
    GET /fapi/v1/openOrders     resting orders
    GET /fapi/v2/account        wallet, margin and open-order margin totals

Usage:
    async with AsterAPIClient(credentials) as client:
        positions = await client.get_position_risk()
"""

from typing import Any, Dict, Optional

import aiohttp

from core.config import settings
from core.http import ExchangeAPIClient
from core.schemas import ExchangeCredentials
from core.signing import AsterSigner, SignableRequest
from core.utils.time import Clock, now_ms


class AsterAPIClient(ExchangeAPIClient):
    """
    Async client for the Aster futures private REST API.

    Every call is a signed GET: the signature covers the sorted query
    including a millisecond timestamp, and the key travels in X-MBX-APIKEY.
    """

    exchange = "aster"

    def __init__(
        self,
        credentials: ExchangeCredentials,
        session: Optional[aiohttp.ClientSession] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        clock: Clock = now_ms
    ):
        super().__init__(base_url or settings.aster_base_url, session, timeout)
        self.signer = AsterSigner(credentials.api_key, credentials.api_secret, clock=clock)

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Sign and send a GET request."""
        http = self._require_http()
        auth = self.signer.sign(SignableRequest(method="GET", path=path, params=params or {}))
        headers = dict(auth.headers, **{"Content-Type": "application/json"})
        return await http.request("GET", path, query_string=auth.query_string, headers=headers)

    async def get_position_risk(self) -> Any:
        return await self._get("/fapi/v2/positionRisk")

    async def get_open_orders(self) -> Any:
        return await self._get("/fapi/v1/openOrders")

    async def get_account(self) -> Any:
        return await self._get("/fapi/v2/account")
