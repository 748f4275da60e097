"""
MEXC Live Stream State

Reducer for the personal position stream of the contract WebSocket:

    apply_message(session, message, now_ms, contract_sizes=None) -> (session, effects)

MEXC pushes one position per message, so each push is an upsert keyed by
positionId. A push with holdVol 0 (or state 3, closed) removes the position.
holdVol is in contracts and is scaled to base units when the contract size
is known, exactly as the REST normalizer does.

Message examples:
    {"channel": "rs.login", "data": "success", "ts": 1700000000000}
    {"channel": "push.personal.position", "data": {
        "positionId": 1, "symbol": "BTC_USDT", "holdVol": 120, "positionType": 1,
        "holdAvgPrice": 42000.5, "liquidatePrice": 30000, "im": 25.3, "leverage": 20, "state": 1}}
    {"channel": "pong", "data": 1700000000000}
"""

from typing import Any, Dict, List, Optional, Tuple

from core.normalize import infer_side, resolve_raw, resolve_text, scale_contract_volume, to_number
from core.schemas import ConnectionStatus, PositionSide
from core.stream_state import Effect, StreamSession, upsert_position, with_error, with_state
from exchanges.mexc.normalizer import POSITION_TYPES

LOGIN_CHANNEL = "rs.login"
POSITION_CHANNEL = "push.personal.position"
ERROR_CHANNEL = "rs.error"

CLOSED_STATE = 3

POSITION_FIELDS = {
    "entry_price": ["holdAvgPrice", "openAvgPrice"],
    "liquidation_price": ["liquidatePrice"],
    "initial_margin": ["im"],
    "pnl": ["pnl", "unrealized"],
    "effective_leverage": ["leverage"],
}


def _signed_balance(raw: Dict[str, Any], contract_sizes: Dict[str, float], symbol: str) -> Optional[float]:
    if to_number(raw.get("state")) == CLOSED_STATE:
        return 0.0

    volume = to_number(raw.get("holdVol"))
    if volume is None:
        return None
    size = scale_contract_volume(abs(volume), contract_sizes.get(symbol))

    type_code = to_number(raw.get("positionType"))
    explicit = POSITION_TYPES.get(int(type_code)) if type_code is not None else None
    return -size if infer_side(explicit, volume) == PositionSide.SHORT else size


def to_stream_entry(raw: Dict[str, Any], contract_sizes: Optional[Dict[str, float]] = None) -> Optional[Dict[str, Any]]:
    """push.personal.position data -> StreamPosition field names."""
    symbol = resolve_text(raw, ["symbol"])
    if not symbol:
        return None

    entry: Dict[str, Any] = {
        "instrument": symbol,
        "position_id": resolve_text(raw, ["positionId"]),
        "balance": _signed_balance(raw, contract_sizes or {}, symbol),
    }
    for field, chain in POSITION_FIELDS.items():
        entry[field] = resolve_raw(raw, chain)
    return entry


def _login_succeeded(message: Dict[str, Any]) -> bool:
    return message.get("data") == "success" or message.get("code") == 0


def apply_message(
    session: StreamSession,
    message: Dict[str, Any],
    now_ms: int,
    contract_sizes: Optional[Dict[str, float]] = None
) -> Tuple[StreamSession, List[Effect]]:
    """
    Fold one decoded message into the session (never mutated).

    A successful login moves straight to SUBSCRIBED and requests the position
    filter plus the keep-alive.
    """
    if not isinstance(message, dict):
        return session, []

    channel = message.get("channel")

    if channel == LOGIN_CHANNEL:
        if not _login_succeeded(message):
            error = message.get("msg") or message.get("data") or "MEXC login failed"
            return with_error(session, str(error)), []
        if session.state.status == ConnectionStatus.SUBSCRIBED:
            return session, []
        return with_state(session, status=ConnectionStatus.SUBSCRIBED, error=None), [
            Effect.SUBSCRIBE,
            Effect.START_KEEPALIVE,
        ]

    if channel == ERROR_CHANNEL:
        return with_error(session, str(message.get("data") or "Unknown error")), []

    if channel == POSITION_CHANNEL:
        data = message.get("data")
        entry = to_stream_entry(data, contract_sizes) if isinstance(data, dict) else None
        if entry is None:
            return session, []
        positions = upsert_position(session.state.positions, entry)
        return with_state(session, positions=positions, last_update_ts=now_ms), []

    return session, []
