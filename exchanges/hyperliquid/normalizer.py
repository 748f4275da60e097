"""
Hyperliquid Response Normalization

Hyperliquid splits perpetuals across "perp dexs": the default dex ("") plus
builder-deployed dexs, each with its own clearinghouse state. Payload
layouts have shifted over time, so dex lists and meta universes are read
through ordered shape tables.

perpDexs variants:
    [null, {"name": "xyz"}, ...]
    [null, [{"name": "xyz"}, ...]]
    [{"name": "xyz"}, ...]

meta variants:
    [[{"name": "BTC"}, ...], marginTables]
    [{"universe": [...]}, ...]
    {"universe": [...]}

clearinghouseState:
    {"assetPositions": [{"position": {"coin", "szi", "marginUsed", ...}}],
     "marginSummary": {"accountValue", "totalMarginUsed"}, "withdrawable"}
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple

from core.normalize import (
    discover_shape,
    get_path,
    infer_side,
    is_dust,
    nested_wrapper,
    resolve_number,
    resolve_raw,
    resolve_text,
    top_level_list,
    under_key,
)
from core.schemas import EquityEntry, MarginEntry, OpenOrder, Position

PLATFORM = "hyperliquid"
SETTLEMENT_ASSET = "USDC"
DEFAULT_DEX = ""

# ============================================
# Shape Tables
# ============================================

PERP_DEX_SHAPES = [nested_wrapper, top_level_list]
ASSET_POSITION_SHAPES = [under_key("assetPositions"), under_key("clearinghouseState.assetPositions")]
ORDER_SHAPES = [top_level_list, under_key("orders")]


def _meta_tuple(payload: Any) -> Optional[List[Any]]:
    if isinstance(payload, list) and payload and isinstance(payload[0], list):
        return payload[0]
    return None


def _meta_wrapped(payload: Any) -> Optional[List[Any]]:
    if isinstance(payload, list) and payload and isinstance(get_path(payload[0], "universe"), list):
        return payload[0]["universe"]
    return None


def _meta_object(payload: Any) -> Optional[List[Any]]:
    universe = get_path(payload, "universe")
    return universe if isinstance(universe, list) else None


UNIVERSE_SHAPES = [_meta_tuple, _meta_wrapped, _meta_object]

# ============================================
# Field Chains
# ============================================

UNIVERSE_SYMBOL = ["name", "coin", "token", "symbol"]

POSITION_FIELDS = {
    "size": ["szi", "size"],
    "ticker": ["coin", "name"],
    "leverage": ["leverage.value"],
    "margin": ["marginUsed"],
    "pnl": ["unrealizedPnl"],
}

STATE_FIELDS = {
    "withdrawable": [
        "withdrawable",
        "marginSummary.withdrawable",
        "clearinghouseState.marginSummary.withdrawable",
    ],
    "total_margin_used": [
        "clearinghouseState.userState.marginSummary.totalMarginUsed",
        "clearinghouseState.marginSummary.totalMarginUsed",
        "marginSummary.totalMarginUsed",
        "marginSummary.marginUsed",
    ],
    "account_value": [
        "marginSummary.accountValue",
        "clearinghouseState.marginSummary.accountValue",
    ],
}

ORDER_FIELDS = {
    "id": ["oid"],
    "ticker": ["coin"],
    "side": ["side"],
    "type": ["orderType"],
    "price": ["limitPx", "triggerPx"],
    "size": ["sz", "origSz"],
}

ORDER_SIDES = {"B": "BUY", "A": "SELL"}


# ============================================
# Discovery
# ============================================

def parse_perp_dexs(payload: Any) -> List[str]:
    """Dex names with the default dex first and duplicates removed."""
    names = [DEFAULT_DEX]
    for raw in discover_shape(payload, PERP_DEX_SHAPES, PLATFORM, "perp_dexs"):
        name = raw.get("name")
        if isinstance(name, str) and name and name not in names:
            names.append(name)
    return names


def parse_universe_symbols(payload: Any) -> List[str]:
    """Symbols listed by a meta payload. Entries may be strings or objects."""
    universe = None
    for matcher in UNIVERSE_SHAPES:
        universe = matcher(payload)
        if universe is not None:
            break
    if universe is None:
        return []

    symbols = []
    for entry in universe:
        if isinstance(entry, str):
            symbols.append(entry)
        elif isinstance(entry, dict):
            symbol = resolve_text(entry, UNIVERSE_SYMBOL)
            if symbol:
                symbols.append(symbol)
    return symbols


def universe_matches(symbols: Sequence[str], markers: Sequence[str]) -> bool:
    """True when any symbol contains any marker (case-insensitive)."""
    upper = [s.upper() for s in symbols]
    return any(marker.upper() in symbol for marker in markers for symbol in upper)


# ============================================
# Clearinghouse State
# ============================================

def _asset_positions(state: Any) -> List[Dict[str, Any]]:
    entries = discover_shape(state, ASSET_POSITION_SHAPES, PLATFORM, "positions")
    return [entry.get("position") if isinstance(entry.get("position"), dict) else entry for entry in entries]


def _dex_label(dex: str) -> str:
    return dex or "default"


def normalize_positions(state: Any, dex: str = DEFAULT_DEX) -> List[Position]:
    """clearinghouseState -> positions for one dex, dust removed."""
    positions = []
    for raw in _asset_positions(state):
        size = resolve_number(raw, POSITION_FIELDS["size"], default=None)
        if is_dust(size):
            continue
        ticker = resolve_text(raw, POSITION_FIELDS["ticker"])
        if not ticker:
            continue

        positions.append(Position(
            id=f"{PLATFORM}-pos-{ticker}-{_dex_label(dex)}",
            ticker=ticker,
            size=size,
            margin_usd=resolve_number(raw, POSITION_FIELDS["margin"]),
            unrealized_pnl_usd=resolve_number(raw, POSITION_FIELDS["pnl"]),
            leverage=resolve_number(raw, POSITION_FIELDS["leverage"], default=None),
            side=infer_side(None, size),
            platform=PLATFORM
        ))
    return positions


def position_margin_sum(state: Any) -> float:
    return sum(resolve_number(raw, POSITION_FIELDS["margin"]) for raw in _asset_positions(state))


def locked_margin(state: Any) -> float:
    """Margin used beyond what open positions hold, i.e. reserved by orders."""
    total_used = resolve_number(state, STATE_FIELDS["total_margin_used"])
    return max(0.0, total_used - position_margin_sum(state))


def summarize_margins(states: Sequence[Tuple[str, Any]]) -> Tuple[List[MarginEntry], List[MarginEntry], List[EquityEntry]]:
    """
    Sum available, locked margin and equity across dex states.

    Returns:
        (available, locked, equity). Margins are always one entry each;
        equity is omitted when the summed account value is not positive.
    """
    available = sum(resolve_number(state, STATE_FIELDS["withdrawable"]) for _, state in states)
    locked = sum(locked_margin(state) for _, state in states)
    account_value = sum(resolve_number(state, STATE_FIELDS["account_value"]) for _, state in states)

    available_entries = [MarginEntry(
        id=f"{PLATFORM}-available-margin-{SETTLEMENT_ASSET}",
        asset=SETTLEMENT_ASSET,
        amount_usd=available,
        platform=PLATFORM
    )]
    locked_entries = [MarginEntry(
        id=f"{PLATFORM}-locked-margin-{SETTLEMENT_ASSET}",
        asset=SETTLEMENT_ASSET,
        amount_usd=locked,
        platform=PLATFORM
    )]
    equity_entries = []
    if account_value > 0:
        equity_entries.append(EquityEntry(
            id=f"{PLATFORM}-account-equity",
            asset=SETTLEMENT_ASSET,
            amount_usd=account_value,
            platform=PLATFORM
        ))
    return available_entries, locked_entries, equity_entries


# ============================================
# Open Orders
# ============================================

def normalize_orders(payload: Any, dex: str = DEFAULT_DEX) -> List[OpenOrder]:
    """openOrders -> orders. Hyperliquid reports no per-order margin."""
    orders = []
    for index, raw in enumerate(discover_shape(payload, ORDER_SHAPES, PLATFORM, "orders")):
        ticker = resolve_text(raw, ORDER_FIELDS["ticker"], default="")
        raw_side = resolve_text(raw, ORDER_FIELDS["side"], default="")
        side = ORDER_SIDES.get(raw_side.upper(), raw_side.upper() or "UNKNOWN")
        order_type = resolve_text(raw, ORDER_FIELDS["type"], default="LIMIT").upper()
        price = resolve_number(raw, ORDER_FIELDS["price"], default=None)
        size = resolve_raw(raw, ORDER_FIELDS["size"])

        name = f"{ticker} {side} {order_type}"
        if size is not None:
            name = f"{name} {size}"
        if price:
            name = f"{name} @ {price:g}"

        order_id = resolve_text(raw, ORDER_FIELDS["id"], default=f"{_dex_label(dex)}-{index}")
        orders.append(OpenOrder(
            id=f"{PLATFORM}-order-{order_id}",
            display_name=name,
            ticker=ticker or None,
            margin_usd=None,
            platform=PLATFORM
        ))
    return orders
