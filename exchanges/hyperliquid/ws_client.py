"""
Hyperliquid Positions Stream Client

Streams clearinghouseState for one wallet (optionally one perp dex) and
keeps mark prices current with one activeAssetCtx subscription per open
coin. No credentials beyond the wallet address are needed.

Handshake:
    1. send {"method": "subscribe", "subscription": {"type": "clearinghouseState", "user": ...}}
    2. SUBSCRIBED on the subscription ack or the first clearinghouseState push
    3. {"method": "ping"} every ws_keepalive_interval seconds (idle sockets
       are closed after 60 s)

Reconnect and publication rules live in core.stream_client.

WebSocket Documentation:
    https://hyperliquid.gitbook.io/hyperliquid-docs/for-developers/api/websocket
"""

from typing import Any, Dict, List, Optional, Set, Tuple

from core.config import settings
from core.schemas import ConnectionStatus
from core.stream_client import StreamClient
from core.stream_state import Effect, StreamSession
from exchanges.hyperliquid.stream_state import apply_message


class HyperliquidStreamClient(StreamClient):
    """Hyperliquid clearinghouseState positions with live mark prices."""

    exchange = "hyperliquid"

    def __init__(self, wallet_address: str, dex: Optional[str] = None, url: Optional[str] = None, **kwargs: Any):
        """
        Args:
            wallet_address: Account to stream
            dex: Perp dex name; None streams the default dex
            url: Override settings.hyperliquid_ws_url
        """
        super().__init__(url or settings.hyperliquid_ws_url, **kwargs)
        self.wallet_address = wallet_address
        self.dex = dex
        self._mark_coins: Set[str] = set()

    async def _open(self) -> None:
        self._mark_coins = set()
        subscription: Dict[str, Any] = {"type": "clearinghouseState", "user": self.wallet_address}
        if self.dex:
            subscription["dex"] = self.dex
        await self._send({"method": "subscribe", "subscription": subscription})

    def _reduce(
        self,
        session: StreamSession,
        message: Dict[str, Any],
        now: int
    ) -> Tuple[StreamSession, List[Effect]]:
        return apply_message(session, message, now)

    async def _keepalive(self) -> None:
        await self._send({"method": "ping"})

    async def _after_message(self) -> None:
        """Follow the open set with activeAssetCtx subscriptions."""
        if self._ws is None or self.state.status != ConnectionStatus.SUBSCRIBED:
            return

        open_coins = {position.instrument for position in self.state.positions}
        for coin in sorted(open_coins - self._mark_coins):
            await self._send({"method": "subscribe", "subscription": {"type": "activeAssetCtx", "coin": coin}})
            self._mark_coins.add(coin)
        for coin in sorted(self._mark_coins - open_coins):
            await self._send({"method": "unsubscribe", "subscription": {"type": "activeAssetCtx", "coin": coin}})
            self._mark_coins.discard(coin)
