"""
Kraken Futures Live Stream State

Reducer for the authenticated open_positions and balances feeds:

    apply_message(session, message, now_ms) -> (session, effects)

Merge Rules (on top of core.stream_state):
    - open_positions is authoritative for which instruments are open:
      instruments missing from the list are dropped, listed instruments
      merge field by field
    - total_balance is re-derived after every message

Kraken Futures feed message examples:
    {"event": "challenge", "message": "226aee50-88fc-4618-a42a-34f7709570b2"}
    {"event": "subscribed", "feed": "open_positions"}
    {"feed": "open_positions", "positions": [{"instrument": "PF_XBTUSD", "balance": 0.5, ...}]}
    {"feed": "balances", "data": {"currency": "USD", "portfolio_value": 1020.5, ...}}
"""

from typing import Any, Dict, List, Optional, Tuple

from core.schemas import ConnectionStatus, StreamBalances
from core.stream_state import (
    Effect,
    StreamSession,
    merge_numbers,
    merge_positions,
    with_error,
    with_state,
)

REQUIRED_FEEDS = ("open_positions", "balances")

BALANCE_FEEDS = {"balances", "balances_snapshot"}

BALANCE_NUMBER_FIELDS = (
    "balance",
    "portfolio_value",
    "collateral_value",
    "available",
    "initial_margin",
    "maintenance_margin",
    "pnl",
    "unrealized_funding",
    "total_unrealized",
    "margin_equity",
)

# First non-None wins
TOTAL_BALANCE_CHAIN = ("portfolio_value", "margin_equity", "collateral_value", "balance")


# ============================================
# Balances
# ============================================

def derive_total_balance(balances: StreamBalances) -> Optional[float]:
    for field in TOTAL_BALANCE_CHAIN:
        value = getattr(balances, field)
        if value is not None:
            return value
    return None


def merge_balances(previous: StreamBalances, raw: Dict[str, Any]) -> StreamBalances:
    """
    Overlay one balances message onto the previous balances.

    Example:
        >>> prev = StreamBalances(portfolio_value=100.0)
        >>> merge_balances(prev, {}) == prev
        True
    """
    values = merge_numbers(previous.model_dump(), raw, BALANCE_NUMBER_FIELDS)

    currency = raw.get("currency")
    if isinstance(currency, str) and currency.strip():
        values["currency"] = currency.strip()

    merged = StreamBalances(**values)
    return merged.model_copy(update={"total_balance": derive_total_balance(merged)})


# ============================================
# Reducer
# ============================================

def _error_text(message: Dict[str, Any]) -> str:
    error = message.get("error") or message.get("message")
    return str(error) if error else "Unknown error"


def apply_message(
    session: StreamSession,
    message: Dict[str, Any],
    now_ms: int
) -> Tuple[StreamSession, List[Effect]]:
    """
    Fold one decoded feed message into the session.

    Args:
        session: Current session (never mutated)
        message: Decoded JSON message
        now_ms: Receive time, epoch milliseconds

    Returns:
        (next session, effects to perform in order)
    """
    if not isinstance(message, dict):
        return session, []

    state = session.state
    event = message.get("event")
    feed = message.get("feed")

    if event == "challenge" and message.get("message"):
        next_session = with_state(session, status=ConnectionStatus.CHALLENGED, error=None)
        return next_session.model_copy(update={
            "challenge": str(message["message"]),
            "subscribed_feeds": frozenset(),
        }), [Effect.SUBSCRIBE]

    if event == "subscribed":
        feeds = session.subscribed_feeds | {feed} if feed else session.subscribed_feeds
        next_session = session.model_copy(update={"subscribed_feeds": frozenset(feeds)})
        if state.status != ConnectionStatus.SUBSCRIBED and all(f in feeds for f in REQUIRED_FEEDS):
            return with_state(next_session, status=ConnectionStatus.SUBSCRIBED), [Effect.START_KEEPALIVE]
        return next_session, []

    if event == "error" or message.get("error"):
        return with_error(session, _error_text(message)), []

    if feed == "open_positions":
        raw_positions = message.get("positions")
        update: Dict[str, Any] = {"last_update_ts": now_ms}
        if isinstance(raw_positions, list):
            update["positions"] = merge_positions(state.positions, raw_positions)
        return with_state(session, **update), []

    if feed in BALANCE_FEEDS:
        raw = message.get("data")
        if not isinstance(raw, dict):
            raw = message
        return with_state(session, balances=merge_balances(state.balances, raw), last_update_ts=now_ms), []

    return session, []
