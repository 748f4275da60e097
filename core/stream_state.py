"""
Live Stream State Primitives

Building blocks for the per-exchange stream reducers. Every reducer has the
same shape:

    apply_message(session, message, now_ms) -> (session, effects)

No I/O happens in a reducer. It returns the next session and a list of
effects (send the subscribes, start the keep-alive) that the socket owner
performs. Sessions and states are frozen models, so a published state can be
handed to any number of subscribers.

Merge Rules:
    - A field that is present and parseable overwrites the previous value
    - A field that is absent or unparseable keeps the previous value
    - A position whose merged balance is zero or dust is dropped
"""

from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from core.normalize import is_dust, to_number
from core.schemas import ConnectionState, ConnectionStatus, StreamPosition

POSITION_NUMBER_FIELDS = (
    "balance",
    "entry_price",
    "mark_price",
    "pnl",
    "initial_margin",
    "maintenance_margin",
    "initial_margin_with_orders",
    "effective_leverage",
    "liquidation_price",
)


class Effect(str, Enum):
    """Side effects requested by a reducer."""

    SUBSCRIBE = "subscribe"
    START_KEEPALIVE = "start_keepalive"


class StreamSession(BaseModel):
    """Reducer input and output: published state plus handshake bookkeeping."""

    model_config = ConfigDict(frozen=True)

    state: ConnectionState = Field(default_factory=ConnectionState)
    challenge: Optional[str] = None
    subscribed_feeds: FrozenSet[str] = frozenset()


def with_state(session: StreamSession, **update: Any) -> StreamSession:
    """Copy of session whose state has update applied."""
    return session.model_copy(update={"state": session.state.model_copy(update=update)})


def with_error(session: StreamSession, error: str) -> StreamSession:
    return with_state(session, status=ConnectionStatus.ERROR, error=error)


# ============================================
# Field Merging
# ============================================

def merge_numbers(previous: Dict[str, Any], raw: Dict[str, Any], fields: Iterable[str]) -> Dict[str, Any]:
    """
    Overlay the parseable numeric fields of raw onto previous.

    Example:
        >>> merge_numbers({"pnl": 1.0}, {"pnl": "oops", "balance": "2"}, ["pnl", "balance"])
        {'pnl': 1.0, 'balance': 2.0}
    """
    merged = dict(previous)
    for field in fields:
        if field not in raw:
            continue
        number = to_number(raw[field])
        if number is not None:
            merged[field] = number
    return merged


def merge_position(previous: Optional[StreamPosition], raw: Dict[str, Any]) -> StreamPosition:
    """Merge one raw entry (already keyed by StreamPosition field names) onto previous."""
    base = previous.model_dump() if previous is not None else {"instrument": raw["instrument"]}
    values = merge_numbers(base, raw, POSITION_NUMBER_FIELDS)
    if raw.get("position_id") is not None:
        values["position_id"] = str(raw["position_id"])
    return StreamPosition(**values)


def _instrument(raw: Any) -> Optional[str]:
    if not isinstance(raw, dict):
        return None
    instrument = raw.get("instrument")
    return instrument if isinstance(instrument, str) and instrument else None


def merge_positions(previous: List[StreamPosition], raw_positions: List[Any]) -> List[StreamPosition]:
    """
    Replace the open set with the instruments in raw_positions.

    Instruments already known keep any field the new entry omits. Instruments
    missing from raw_positions are dropped.
    """
    known = {position.instrument: position for position in previous}
    merged: List[StreamPosition] = []

    for raw in raw_positions:
        instrument = _instrument(raw)
        if instrument is None:
            continue
        position = merge_position(known.get(instrument), raw)
        if is_dust(position.balance):
            continue
        merged.append(position)

    return merged


def upsert_position(previous: List[StreamPosition], raw: Dict[str, Any]) -> List[StreamPosition]:
    """
    Apply a single-position update, keyed by position_id (else instrument).

    The rest of the open set is untouched. A position whose merged balance is
    dust is removed.
    """
    instrument = _instrument(raw)
    if instrument is None:
        return list(previous)

    key = str(raw["position_id"]) if raw.get("position_id") is not None else None

    def matches(position: StreamPosition) -> bool:
        if key is not None:
            return position.position_id == key
        return position.instrument == instrument

    existing = next((position for position in previous if matches(position)), None)
    updated = merge_position(existing, raw)
    keep = not is_dust(updated.balance)

    if existing is None:
        return list(previous) + ([updated] if keep else [])

    result = []
    for position in previous:
        if position is existing:
            if keep:
                result.append(updated)
        else:
            result.append(position)
    return result


def set_mark_price(previous: List[StreamPosition], instrument: str, mark_price: float) -> List[StreamPosition]:
    return [
        position.model_copy(update={"mark_price": mark_price}) if position.instrument == instrument else position
        for position in previous
    ]
