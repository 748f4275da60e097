"""
MEXC Contract Response Normalization

MEXC wraps every payload as {"success": true, "code": 0, "data": ...}.
Position and order volumes are in contracts, not base asset: one contract of
BTC_USDT is 0.0001 BTC. Sizes are converted with the contractSize from the
public contract detail endpoint.

open_positions entry:
    {"positionId": 123, "symbol": "BTC_USDT", "positionType": 1, "holdVol": 120,
     "im": 25.3, "leverage": 20, "holdAvgPrice": 42000.5}

account/assets entry:
    {"currency": "USDT", "equity": 1000.5, "availableBalance": 900.0,
     "frozenBalance": 20.0, "positionMargin": 80.5, "unrealized": 1.2}
"""

from typing import Any, Dict, List, Optional

from core.normalize import (
    discover_shape,
    get_path,
    infer_side,
    is_dust,
    nested_wrapper,
    resolve_number,
    resolve_raw,
    resolve_text,
    scale_contract_volume,
    to_number,
    top_level_list,
    under_key,
)
from core.schemas import EquityEntry, MarginEntry, OpenOrder, PnlWindows, Position, PositionSide

PLATFORM = "mexc"
SETTLEMENT_ASSET = "USDT"

# positionType: 1 long, 2 short
POSITION_TYPES = {1: "long", 2: "short"}

# order side: 1 open long, 2 close short, 3 open short, 4 close long
ORDER_SIDES = {
    "1": "OPEN LONG",
    "2": "CLOSE SHORT",
    "3": "OPEN SHORT",
    "4": "CLOSE LONG",
    "BUY": "BUY",
    "SELL": "SELL",
}

# ============================================
# Shape Tables
# ============================================

POSITION_SHAPES = [
    under_key("data"), under_key("data.positions"), under_key("positions"), top_level_list, nested_wrapper,
]
ORDER_SHAPES = [under_key("data"), under_key("data.resultList"), under_key("data.orders"), under_key("orders"), top_level_list, nested_wrapper]
CONTRACT_SHAPES = [under_key("data"), top_level_list]
ASSET_SHAPES = [under_key("data"), top_level_list]

# ============================================
# Field Chains
# ============================================

POSITION_FIELDS = {
    "id": ["positionId", "id"],
    "ticker": ["symbol", "contractCode", "contract", "market"],
    "type": ["positionType", "posSide", "side"],
    "volume": ["holdVol", "vol", "positionVol", "size"],
    "margin": ["im", "margin", "positionMargin"],
    "pnl": ["pnl", "unRealizedPnl", "unrealizedPnl"],
    "leverage": ["leverage"],
}

ORDER_FIELDS = {
    "id": ["orderId", "id"],
    "ticker": ["symbol", "contractCode", "contract", "market"],
    "side": ["side", "direction", "tradeType", "orderSide"],
    "price": ["price", "limitPrice", "orderPrice"],
    "volume": ["vol", "volume", "quantity", "qty"],
    "margin": ["orderMargin", "usedMargin"],
}

CONTRACT_FIELDS = {
    "symbol": ["symbol"],
    "contract_size": ["contractSize"],
}

SUMMARY_EQUITY = ["equity", "accountEquity", "totalEquity", "totalBalance", "balance"]

ASSET_FIELDS = {
    "currency": ["currency", "asset", "symbol"],
    "equity": ["equity", "totalBalance", "balance"],
    "wallet": ["walletBalance", "availableBalance"],
    "unrealized": ["unrealized", "unRealized"],
    "available": ["availableBalance", "available"],
    "locked": ["frozenBalance", "frozen"],
}

PERFORMANCE_FIELDS = {
    "today": ["data.todayPnl"],
    "7d": ["data.recentPnl"],
    "30d": ["data.recentPnl30"],
    "90d": ["data.recentPnl90"],
}


# ============================================
# Contract Metadata
# ============================================

def parse_contract_sizes(payload: Any) -> Dict[str, float]:
    """contract/detail -> {symbol: contractSize}."""
    if isinstance(get_path(payload, "data"), dict):
        rows = [payload["data"]]
    else:
        rows = discover_shape(payload, CONTRACT_SHAPES, PLATFORM, "contracts")

    sizes = {}
    for row in rows:
        symbol = resolve_text(row, CONTRACT_FIELDS["symbol"])
        size = resolve_number(row, CONTRACT_FIELDS["contract_size"], default=None)
        if symbol and size:
            sizes[symbol] = size
    return sizes


# ============================================
# Positions
# ============================================

def normalize_positions(payload: Any, contract_sizes: Optional[Dict[str, float]] = None) -> List[Position]:
    """
    open_positions -> positions.

    holdVol is converted to base-asset units when the symbol's contract size
    is known; otherwise it stays in contracts. The side comes from
    positionType, falling back to the sign of holdVol.
    """
    contract_sizes = contract_sizes or {}
    positions = []
    for index, raw in enumerate(discover_shape(payload, POSITION_SHAPES, PLATFORM, "positions")):
        ticker = resolve_text(raw, POSITION_FIELDS["ticker"], default="UNKNOWN")
        volume = resolve_number(raw, POSITION_FIELDS["volume"], default=None)
        size = scale_contract_volume(abs(volume) if volume is not None else None, contract_sizes.get(ticker))
        if is_dust(size):
            continue

        raw_type = resolve_raw(raw, POSITION_FIELDS["type"])
        type_code = to_number(raw_type)
        explicit = POSITION_TYPES.get(int(type_code)) if type_code is not None else raw_type
        side = infer_side(explicit, volume)
        if side == PositionSide.SHORT:
            size = -size

        position_id = resolve_text(raw, POSITION_FIELDS["id"], default=str(index))
        positions.append(Position(
            id=f"{PLATFORM}-pos-{position_id}",
            ticker=ticker,
            size=size,
            margin_usd=resolve_number(raw, POSITION_FIELDS["margin"]),
            unrealized_pnl_usd=resolve_number(raw, POSITION_FIELDS["pnl"]),
            leverage=resolve_number(raw, POSITION_FIELDS["leverage"], default=None),
            side=side,
            platform=PLATFORM
        ))
    return positions


# ============================================
# Orders
# ============================================

def _order_side(raw: Dict[str, Any]) -> str:
    value = resolve_raw(raw, ORDER_FIELDS["side"])
    if value is None:
        return "UNKNOWN"
    key = str(int(value)) if isinstance(value, (int, float)) and not isinstance(value, bool) else str(value).upper()
    return ORDER_SIDES.get(key, key)


def normalize_orders(payload: Any, contract_sizes: Optional[Dict[str, float]] = None) -> List[OpenOrder]:
    """
    open_orders -> orders.

    margin_usd comes from orderMargin/usedMargin when MEXC reports it and is
    None otherwise.
    """
    contract_sizes = contract_sizes or {}
    orders = []
    for index, raw in enumerate(discover_shape(payload, ORDER_SHAPES, PLATFORM, "orders")):
        ticker = resolve_text(raw, ORDER_FIELDS["ticker"], default="UNKNOWN")
        price = resolve_number(raw, ORDER_FIELDS["price"], default=None)
        volume = scale_contract_volume(resolve_number(raw, ORDER_FIELDS["volume"], default=None), contract_sizes.get(ticker))

        name = f"{ticker} {_order_side(raw)}"
        if volume is not None:
            name = f"{name} {volume:g}"
        if price:
            name = f"{name} @ {price:g}"

        order_id = resolve_text(raw, ORDER_FIELDS["id"], default=str(index))
        orders.append(OpenOrder(
            id=f"{PLATFORM}-order-{order_id}",
            display_name=name,
            ticker=ticker,
            margin_usd=resolve_number(raw, ORDER_FIELDS["margin"], default=None),
            platform=PLATFORM
        ))
    return orders


# ============================================
# Account Assets
# ============================================

def _settlement_row(payload: Any) -> Optional[Dict[str, Any]]:
    data = get_path(payload, "data")
    if isinstance(data, dict):
        return data
    rows = discover_shape(payload, ASSET_SHAPES, PLATFORM, "assets")
    for row in rows:
        if resolve_text(row, ASSET_FIELDS["currency"]) == SETTLEMENT_ASSET:
            return row
    return rows[0] if rows else None


def normalize_equity(payload: Any) -> List[EquityEntry]:
    """
    Account equity.

    Summary fields on a dict payload win. For a list of assets the USDT row
    (or the first row) is used, falling back to wallet + unrealized.
    """
    data = get_path(payload, "data")
    value = None
    asset = SETTLEMENT_ASSET

    if isinstance(data, dict):
        value = resolve_number(data, SUMMARY_EQUITY, default=None)
    else:
        row = _settlement_row(payload)
        if row is not None:
            asset = resolve_text(row, ASSET_FIELDS["currency"], default=SETTLEMENT_ASSET)
            value = resolve_number(row, ASSET_FIELDS["equity"], default=None)
            if value is None:
                value = resolve_number(row, ASSET_FIELDS["wallet"]) + resolve_number(row, ASSET_FIELDS["unrealized"])

    if value is None:
        return []
    return [EquityEntry(id=f"{PLATFORM}-account-equity", asset=asset, amount_usd=value, platform=PLATFORM)]


def _margin_entry(payload: Any, field: str, label: str) -> List[MarginEntry]:
    row = _settlement_row(payload)
    if row is None:
        return []
    value = resolve_number(row, ASSET_FIELDS[field], default=None)
    if value is None:
        return []
    asset = resolve_text(row, ASSET_FIELDS["currency"], default=SETTLEMENT_ASSET)
    return [MarginEntry(id=f"{PLATFORM}-{label}-{asset}", asset=asset, amount_usd=value, platform=PLATFORM)]


def normalize_available_margin(payload: Any) -> List[MarginEntry]:
    return _margin_entry(payload, "available", "available-margin")


def normalize_locked_margin(payload: Any) -> List[MarginEntry]:
    return _margin_entry(payload, "locked", "locked-margin")


# ============================================
# Performance
# ============================================

def normalize_performance(today: Any, analysis: Any, recent: Any) -> PnlWindows:
    """today_pnl + analysis/v3 + recent/v3 -> PnlWindows. Missing windows stay None."""
    return PnlWindows(
        platform=PLATFORM,
        pnl_24h_usd=resolve_number(today, PERFORMANCE_FIELDS["today"], default=None),
        pnl_7d_usd=resolve_number(analysis, PERFORMANCE_FIELDS["7d"], default=None),
        pnl_30d_usd=resolve_number(analysis, PERFORMANCE_FIELDS["30d"], default=None),
        pnl_90d_usd=resolve_number(recent, PERFORMANCE_FIELDS["90d"], default=None),
    )
