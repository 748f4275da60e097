"""
MEXC Contract REST API Client

API Documentation:
    https://mexcdevelop.github.io/apidocs/contract_v1_en/

Endpoints used:
    GET  /api/v1/contract/detail                              public, contract sizes
    GET  /api/v1/private/position/open_positions
    GET  /api/v1/private/order/list/open_orders
    GET  /api/v1/private/account/assets
    GET  /api/v1/private/account/asset/analysis/today_pnl
    POST /api/v1/private/account/asset/analysis/v3
    POST /api/v1/private/account/asset/analysis/recent/v3

MEXC answers HTTP 200 with {"success": false, "code": ..., "message": ...}
on rejected requests; those are raised as ExchangeApiError.

Usage:
    async with MexcAPIClient(credentials) as client:
        positions = await client.get_open_positions()
"""

import json
from typing import Any, Dict, Optional

import aiohttp

from core.config import settings
from core.errors import ExchangeApiError
from core.http import ExchangeAPIClient
from core.schemas import ExchangeCredentials
from core.signing import MexcSigner, SignableRequest, build_sorted_query
from core.utils.time import Clock, now_ms

YEAR_MS = 365 * 24 * 60 * 60 * 1000


class MexcAPIClient(ExchangeAPIClient):
    """Async client for the MEXC contract REST API."""

    exchange = "mexc"

    def __init__(
        self,
        credentials: ExchangeCredentials,
        session: Optional[aiohttp.ClientSession] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        clock: Clock = now_ms,
        recv_window: Optional[int] = None
    ):
        super().__init__(base_url or settings.mexc_base_url, session, timeout)
        self.clock = clock
        self.signer = MexcSigner(
            credentials.api_key,
            credentials.api_secret,
            clock=clock,
            recv_window=recv_window or settings.mexc_recv_window
        )

    def _check_envelope(self, data: Any) -> Any:
        if isinstance(data, dict) and data.get("success") is False:
            raise ExchangeApiError(self.exchange, 200, json.dumps(data))
        return data

    async def _public_get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        http = self._require_http()
        data = await http.request("GET", path, query_string=build_sorted_query(params or {}))
        return self._check_envelope(data)

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Signed GET; the signature covers the sorted query string."""
        http = self._require_http()
        auth = self.signer.sign(SignableRequest(method="GET", path=path, params=params or {}))
        data = await http.request("GET", path, query_string=auth.query_string, headers=auth.headers)
        return self._check_envelope(data)

    async def _post(self, path: str, body: Dict[str, Any]) -> Any:
        """Signed POST; the signature covers the compact JSON body."""
        http = self._require_http()
        auth = self.signer.sign(SignableRequest(method="POST", path=path, body=body))
        data = await http.request("POST", path, body=auth.body, headers=auth.headers)
        return self._check_envelope(data)

    # ============================================
    # Account State
    # ============================================

    async def get_contract_details(self) -> Any:
        return await self._public_get("/api/v1/contract/detail")

    async def get_open_positions(self) -> Any:
        return await self._get("/api/v1/private/position/open_positions")

    async def get_open_orders(self) -> Any:
        return await self._get("/api/v1/private/order/list/open_orders")

    async def get_assets(self) -> Any:
        return await self._get("/api/v1/private/account/assets")

    # ============================================
    # Performance (PnL analysis)
    # ============================================

    async def get_today_pnl(self) -> Any:
        return await self._get(
            "/api/v1/private/account/asset/analysis/today_pnl",
            {"reverse": 1, "includeUnrealisedPnl": 1}
        )

    async def get_pnl_analysis(self) -> Any:
        end_time = self.clock()
        return await self._post(
            "/api/v1/private/account/asset/analysis/v3",
            {"startTime": end_time - YEAR_MS, "endTime": end_time, "reverse": 1, "includeUnrealisedPnl": 1}
        )

    async def get_recent_pnl(self) -> Any:
        return await self._post(
            "/api/v1/private/account/asset/analysis/recent/v3",
            {"reverse": 1, "includeUnrealisedPnl": 1}
        )
