"""
Kraken Futures Live Stream Client

Persistent authenticated WebSocket session for the open_positions and
balances feeds.

Handshake:
    1. send {"event": "challenge", "api_key": ...}
    2. receive {"event": "challenge", "message": <uuid>}
    3. sign the challenge and send one subscribe per required feed
    4. SUBSCRIBED once every feed is acknowledged, then a keep-alive ping
       every ws_keepalive_interval seconds (the server drops idle sockets
       after 60 s)

Reconnect and publication rules live in core.stream_client.

WebSocket Documentation:
    https://docs.futures.kraken.com/#websocket-api

Usage:
    client = LiveStreamClient(credentials)
    unsubscribe = client.on_state(lambda state: print(state.balances.total_balance))
    await client.connect()
    ...
    await client.disconnect()
"""

from typing import Any, Dict, List, Optional, Tuple

from core.config import settings
from core.schemas import ExchangeCredentials
from core.signing import sign_challenge
from core.stream_client import StreamClient
from core.stream_state import Effect, StreamSession
from exchanges.kraken.stream_state import REQUIRED_FEEDS, apply_message

EXCHANGE = "kraken"


class LiveStreamClient(StreamClient):
    """
    Kraken Futures private feeds.

    The secret is decoded when the first challenge arrives; an unusable
    secret ends the session in ERROR without a reconnect.
    """

    exchange = EXCHANGE

    def __init__(self, credentials: ExchangeCredentials, url: Optional[str] = None, **kwargs: Any):
        """
        Args:
            credentials: Kraken api_key and base64 api_secret
            url: Override settings.kraken_futures_ws_url
            **kwargs: Clock, connect factory and timing overrides for StreamClient
        """
        super().__init__(url or settings.kraken_futures_ws_url, **kwargs)
        self.credentials = credentials

    async def _open(self) -> None:
        await self._send({"event": "challenge", "api_key": self.credentials.api_key})

    def _reduce(
        self,
        session: StreamSession,
        message: Dict[str, Any],
        now: int
    ) -> Tuple[StreamSession, List[Effect]]:
        return apply_message(session, message, now)

    async def _subscribe(self) -> None:
        challenge = self._session.challenge
        signed = sign_challenge(self.credentials.api_secret, challenge, EXCHANGE)
        for feed in REQUIRED_FEEDS:
            await self._send({
                "event": "subscribe",
                "feed": feed,
                "api_key": self.credentials.api_key,
                "original_challenge": challenge,
                "signed_challenge": signed,
            })
        self.logger.debug(f"Subscribe sent for {', '.join(REQUIRED_FEEDS)}")
