"""
Hyperliquid Info API Client

Hyperliquid account data is public per wallet address: every call is an
unsigned POST to /info with a JSON body naming the query type.

API Documentation:
    https://hyperliquid.gitbook.io/hyperliquid-docs/for-developers/api/info-endpoint

Queries used:
    {"type": "perpDexs"}                                   perp dex list
    {"type": "meta", "dex": "xyz"}                         dex universe
    {"type": "clearinghouseState", "user": addr, "dex"?}   positions and margin
    {"type": "openOrders", "user": addr, "dex"?}           resting orders

Usage:
    async with HyperliquidAPIClient(wallet_address) as client:
        state = await client.get_clearinghouse_state("")
"""

import json
from typing import Any, Dict, Optional

import aiohttp

from core.config import settings
from core.http import ExchangeAPIClient

INFO_PATH = "/info"


class HyperliquidAPIClient(ExchangeAPIClient):
    """Async client for the Hyperliquid info endpoint."""

    exchange = "hyperliquid"

    def __init__(
        self,
        wallet_address: str,
        session: Optional[aiohttp.ClientSession] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None
    ):
        super().__init__(base_url or settings.hyperliquid_base_url, session, timeout)
        self.wallet_address = wallet_address

    async def _post(self, payload: Dict[str, Any]) -> Any:
        """POST a query to /info and return the parsed response."""
        http = self._require_http()
        return await http.request(
            "POST",
            INFO_PATH,
            body=json.dumps(payload),
            headers={"Content-Type": "application/json"}
        )

    @staticmethod
    def _with_dex(payload: Dict[str, Any], dex: str) -> Dict[str, Any]:
        if dex:
            payload["dex"] = dex
        return payload

    async def get_perp_dexs(self) -> Any:
        return await self._post({"type": "perpDexs"})

    async def get_meta(self, dex: str = "") -> Any:
        return await self._post(self._with_dex({"type": "meta"}, dex))

    async def get_clearinghouse_state(self, dex: str = "") -> Any:
        return await self._post(self._with_dex(
            {"type": "clearinghouseState", "user": self.wallet_address}, dex
        ))

    async def get_open_orders(self, dex: str = "") -> Any:
        return await self._post(self._with_dex(
            {"type": "openOrders", "user": self.wallet_address}, dex
        ))
