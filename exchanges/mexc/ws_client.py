"""
MEXC Positions Stream Client

Authenticated contract WebSocket streaming personal position updates.

Handshake:
    1. send {"subscribe": false, "method": "login",
             "param": {"apiKey": ..., "reqTime": ..., "signature": HMAC-SHA256(secret, apiKey + reqTime)}}
       ("subscribe": false turns off the default personal pushes)
    2. receive {"channel": "rs.login", "data": "success"} -> SUBSCRIBED
    3. send {"method": "personal.filter", "param": {"filters": [{"filter": "position"}]}}
    4. {"method": "ping"} every mexc_ws_keepalive_interval seconds

Reconnect and publication rules live in core.stream_client.

WebSocket Documentation:
    https://mexcdevelop.github.io/apidocs/contract_v1_en/#websocket-api
"""

from typing import Any, Dict, List, Optional, Tuple

from core.config import settings
from core.schemas import ExchangeCredentials
from core.signing import mexc_login_signature
from core.stream_client import StreamClient
from core.stream_state import Effect, StreamSession
from exchanges.mexc.stream_state import apply_message


class MexcStreamClient(StreamClient):
    """MEXC personal position pushes."""

    exchange = "mexc"

    def __init__(
        self,
        credentials: ExchangeCredentials,
        contract_sizes: Optional[Dict[str, float]] = None,
        url: Optional[str] = None,
        keepalive_interval: Optional[float] = None,
        **kwargs: Any
    ):
        """
        Args:
            credentials: MEXC api_key and api_secret
            contract_sizes: {symbol: contractSize}; without it sizes stay in contracts
            url: Override settings.mexc_ws_url
            keepalive_interval: Override settings.mexc_ws_keepalive_interval
        """
        if keepalive_interval is None:
            keepalive_interval = settings.mexc_ws_keepalive_interval
        super().__init__(url or settings.mexc_ws_url, keepalive_interval=keepalive_interval, **kwargs)
        self.credentials = credentials
        self.contract_sizes = dict(contract_sizes or {})

    async def _open(self) -> None:
        request_time = str(self.clock())
        await self._send({
            "subscribe": False,
            "method": "login",
            "param": {
                "apiKey": self.credentials.api_key,
                "reqTime": request_time,
                "signature": mexc_login_signature(self.credentials.api_key, self.credentials.api_secret, request_time),
            },
        })

    def _reduce(
        self,
        session: StreamSession,
        message: Dict[str, Any],
        now: int
    ) -> Tuple[StreamSession, List[Effect]]:
        return apply_message(session, message, now, self.contract_sizes)

    async def _subscribe(self) -> None:
        await self._send({"method": "personal.filter", "param": {"filters": [{"filter": "position"}]}})

    async def _keepalive(self) -> None:
        await self._send({"method": "ping"})
