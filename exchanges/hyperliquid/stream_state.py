"""
Hyperliquid Live Stream State

Reducer for the public clearinghouseState stream of one wallet:

    apply_message(session, message, now_ms) -> (session, effects)

Every clearinghouseState push carries the full position set, so it is
authoritative for which coins are open (listed coins merge field by field,
missing coins are dropped). activeAssetCtx pushes only update the mark price
of a coin that is already open.

Message examples:
    {"channel": "subscriptionResponse",
     "data": {"method": "subscribe", "subscription": {"type": "clearinghouseState", "user": "0x..."}}}
    {"channel": "clearinghouseState",
     "data": {"user": "0x...", "clearinghouseState": {"assetPositions": [
        {"type": "oneWay", "position": {"coin": "BTC", "szi": "0.5", "entryPx": "43000.0",
         "unrealizedPnl": "12.5", "marginUsed": "2150.0", "liquidationPx": "38000.0",
         "leverage": {"type": "cross", "value": 10}}}]}}}
    {"channel": "activeAssetCtx", "data": {"coin": "BTC", "ctx": {"markPx": "43100.0"}}}
    {"channel": "error", "data": "Invalid subscription"}
"""

from typing import Any, Dict, List, Optional, Tuple

from core.normalize import get_path, resolve_raw, to_number, under_key
from core.schemas import ConnectionStatus
from core.stream_state import Effect, StreamSession, merge_positions, set_mark_price, with_error, with_state

ASSET_POSITION_SHAPES = [under_key("clearinghouseState.assetPositions"), under_key("assetPositions")]

POSITION_FIELDS = {
    "balance": ["szi"],
    "entry_price": ["entryPx"],
    "pnl": ["unrealizedPnl"],
    "initial_margin": ["marginUsed"],
    "effective_leverage": ["leverage.value", "leverage"],
    "liquidation_price": ["liquidationPx"],
}


def to_stream_entry(raw: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """assetPositions[].position -> StreamPosition field names. Coins keep their case."""
    coin = raw.get("coin")
    if not isinstance(coin, str) or not coin:
        return None
    entry: Dict[str, Any] = {"instrument": coin}
    for field, chain in POSITION_FIELDS.items():
        entry[field] = resolve_raw(raw, chain)
    return entry


def _asset_positions(data: Any) -> Optional[List[Dict[str, Any]]]:
    for matcher in ASSET_POSITION_SHAPES:
        items = matcher(data)
        if items is not None:
            return [item["position"] if isinstance(item.get("position"), dict) else item for item in items]
    return None


def _mark_subscribed(session: StreamSession) -> Tuple[StreamSession, List[Effect]]:
    if session.state.status == ConnectionStatus.SUBSCRIBED:
        return session, []
    return with_state(session, status=ConnectionStatus.SUBSCRIBED, error=None), [Effect.START_KEEPALIVE]


def apply_message(
    session: StreamSession,
    message: Dict[str, Any],
    now_ms: int
) -> Tuple[StreamSession, List[Effect]]:
    """Fold one decoded message into the session (never mutated)."""
    if not isinstance(message, dict):
        return session, []

    channel = message.get("channel")
    data = message.get("data")

    if channel == "error":
        return with_error(session, str(data) if data else "Unknown error"), []

    if channel == "subscriptionResponse":
        if get_path(data, "subscription.type") == "clearinghouseState":
            return _mark_subscribed(session)
        return session, []

    if channel == "clearinghouseState":
        raw_positions = _asset_positions(data)
        update: Dict[str, Any] = {"last_update_ts": now_ms}
        if raw_positions is not None:
            entries = [entry for entry in map(to_stream_entry, raw_positions) if entry is not None]
            update["positions"] = merge_positions(session.state.positions, entries)
        return _mark_subscribed(with_state(session, **update))

    if channel == "activeAssetCtx":
        coin = get_path(data, "coin") or message.get("coin")
        mark_price = to_number(get_path(data, "ctx.markPx"))
        if isinstance(coin, str) and mark_price is not None and mark_price > 0:
            positions = set_mark_price(session.state.positions, coin, mark_price)
            return with_state(session, positions=positions, last_update_ts=now_ms), []
        return session, []

    return session, []
