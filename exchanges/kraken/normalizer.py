"""
Kraken Futures Response Normalization

Kraken Futures wraps payloads inconsistently ({"result": "success", ...},
sometimes with a "data" member) and account layouts differ per account
type (cash, single-collateral, multi-collateral "flex"). Everything is read
through the tables below.

/openpositions:
    {"result": "success", "openPositions": [
        {"side": "long", "symbol": "PF_XBTUSD", "price": 43000.0, "size": 0.01, ...}]}

/accounts:
    {"result": "success", "accounts": {
        "flex": {"type": "multiCollateralMarginAccount", "availableMargin": 950.0,
                 "initialMargin": 50.0, "initialMarginWithOrders": 70.0,
                 "portfolioValue": 1000.0, ...}}}

/openorders:
    {"result": "success", "openOrders": [
        {"order_id": "...", "symbol": "PF_XBTUSD", "side": "buy",
         "orderType": "lmt", "limitPrice": 40000.0, "unfilledSize": 0.01}]}
"""

from typing import Any, Dict, List

from core.normalize import (
    discover_shape,
    first_list_where,
    infer_side,
    is_dust,
    keyed_values,
    nested_wrapper,
    resolve_number,
    resolve_raw,
    resolve_text,
    top_level_list,
    under_key,
)
from core.schemas import EquityEntry, MarginEntry, OpenOrder, Position, PositionSide

PLATFORM = "kraken"
DEFAULT_ASSET = "USD"

# ============================================
# Field Chains
# ============================================

POSITION_FIELDS = {
    "size": ["size", "qty", "quantity", "amount"],
    "ticker": ["symbol", "instrument", "futures", "type", "ticker", "pair"],
    "side": ["side", "direction"],
    "margin": ["initialMargin", "margin", "initial_margin", "marginUsed", "collateral", "marginBalance"],
    "pnl": [
        "unrealizedPnl", "unrealized_pnl", "pnl", "profitLoss",
        "unrealizedProfit", "unrealized_profit", "profit",
    ],
    "leverage": ["leverage", "effectiveLeverage"],
}

ACCOUNT_FIELDS = {
    "asset": ["currency", "asset", "collateralCurrency"],
    "available": [
        "available", "availableBalance", "freeMargin", "marginAvailable",
        "availableMargin", "auxiliary.af", "balance",
    ],
    "locked": ["openOrderInitialMargin", "reserved", "orderMargin", "marginReserved"],
    "initial_margin_with_orders": [
        "initialMarginWithOrders", "initial_margin_with_orders", "marginWithOrders",
        "marginRequirements.imo",
    ],
    "initial_margin": ["initialMargin", "initial_margin", "margin", "marginRequirements.im"],
    "equity": ["portfolioValue", "marginEquity", "auxiliary.pv", "equity", "totalEquity"],
}

SUMMARY_EQUITY = ["equity", "totalEquity", "balance"]

ORDER_FIELDS = {
    "id": ["order_id", "orderId", "id", "cliOrdId"],
    "ticker": ["symbol", "instrument"],
    "side": ["side", "direction"],
    "type": ["orderType", "type"],
    "price": ["limitPrice", "price", "stopPrice"],
    "size": ["unfilledSize", "size", "quantity", "qty"],
}


def _looks_like_position(item: Dict[str, Any]) -> bool:
    has_symbol = any(k in item for k in ("symbol", "instrument", "futures", "type"))
    has_size = any(k in item for k in ("size", "qty", "quantity"))
    return has_symbol or has_size


# ============================================
# Shape Tables
# ============================================

POSITION_SHAPES = [
    top_level_list,
    nested_wrapper,
    under_key("openPositions"),
    under_key("positions"),
    under_key("data"),
    first_list_where(_looks_like_position),
]

ACCOUNT_SHAPES = [
    under_key("accounts"),
    keyed_values("accounts"),
    top_level_list,
]

ASSET_SHAPES = [keyed_values("assets")]

ORDER_SHAPES = [
    top_level_list,
    nested_wrapper,
    under_key("openOrders"),
    under_key("orders"),
    under_key("data"),
]


def unwrap_envelope(payload: Any) -> Any:
    """{"result": "success", "data": X} and {"data": X} both become X."""
    if isinstance(payload, dict):
        data = payload.get("data")
        if payload.get("result") == "success" and data:
            return data
        if data:
            return data
    return payload


# ============================================
# Positions
# ============================================

def normalize_positions(payload: Any) -> List[Position]:
    """openpositions -> positions. Kraken reports unsigned sizes plus a side."""
    positions = []
    raw_positions = discover_shape(unwrap_envelope(payload), POSITION_SHAPES, PLATFORM, "positions")
    for index, raw in enumerate(raw_positions):
        size = resolve_number(raw, POSITION_FIELDS["size"], default=None)
        if is_dust(size):
            continue
        ticker = resolve_text(raw, POSITION_FIELDS["ticker"])
        if not ticker:
            continue

        side = infer_side(resolve_text(raw, POSITION_FIELDS["side"]), size)
        if side == PositionSide.SHORT and size > 0:
            size = -size

        positions.append(Position(
            id=f"{PLATFORM}-pos-{ticker}-{index}",
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
# Accounts
# ============================================

def _account_rows(payload: Any) -> List[Dict[str, Any]]:
    data = unwrap_envelope(payload)
    rows = discover_shape(data, ACCOUNT_SHAPES, PLATFORM, "accounts")
    for matcher in ASSET_SHAPES:
        assets = matcher(data)
        if assets:
            rows = rows + [dict(row, asset=row.get("asset") or row["_name"]) for row in assets]
    return rows


def _asset(row: Dict[str, Any]) -> str:
    return resolve_text(row, ACCOUNT_FIELDS["asset"], default=DEFAULT_ASSET)


def _row_label(row: Dict[str, Any]) -> str:
    return row.get("_name") or _asset(row)


def normalize_available_margin(payload: Any) -> List[MarginEntry]:
    """Positive available balance per account or asset."""
    entries = []
    for row in _account_rows(payload):
        value = resolve_number(row, ACCOUNT_FIELDS["available"])
        if value > 0:
            entries.append(MarginEntry(
                id=f"{PLATFORM}-margin-{_row_label(row)}",
                asset=_asset(row),
                amount_usd=value,
                platform=PLATFORM
            ))
    return entries


def normalize_locked_margin(payload: Any) -> List[MarginEntry]:
    """
    Margin reserved by open orders.

    Explicit per-account fields win. Otherwise the total is derived as
    initialMarginWithOrders - initialMargin summed over accounts.
    """
    rows = _account_rows(payload)
    entries = []
    for row in rows:
        value = resolve_number(row, ACCOUNT_FIELDS["locked"])
        if value > 0:
            entries.append(MarginEntry(
                id=f"{PLATFORM}-locked-{_row_label(row)}",
                asset=_asset(row),
                amount_usd=value,
                platform=PLATFORM
            ))
    if entries or not rows:
        return entries

    total = 0.0
    for row in rows:
        with_orders = resolve_number(row, ACCOUNT_FIELDS["initial_margin_with_orders"])
        initial = resolve_number(row, ACCOUNT_FIELDS["initial_margin"])
        total += max(0.0, with_orders - initial)

    if total <= 0:
        return []
    return [MarginEntry(id=f"{PLATFORM}-locked-total", asset=_asset(rows[0]), amount_usd=total, platform=PLATFORM)]


def normalize_equity(payload: Any) -> List[EquityEntry]:
    """Account-level equity when reported, else positive equity per account."""
    data = unwrap_envelope(payload)
    if isinstance(data, dict):
        summary = resolve_number(data, SUMMARY_EQUITY, default=None)
        if summary is not None and summary > 0:
            return [EquityEntry(id=f"{PLATFORM}-account-equity", asset=DEFAULT_ASSET, amount_usd=summary, platform=PLATFORM)]

    entries = []
    for row in _account_rows(payload):
        value = resolve_number(row, ACCOUNT_FIELDS["equity"], default=None)
        if value is not None and value > 0:
            entries.append(EquityEntry(
                id=f"{PLATFORM}-equity-{_row_label(row)}",
                asset=_asset(row),
                amount_usd=value,
                platform=PLATFORM
            ))
    return entries


# ============================================
# Orders
# ============================================

def normalize_orders(payload: Any) -> List[OpenOrder]:
    """openorders -> orders. Kraken reports no per-order margin."""
    orders = []
    raw_orders = discover_shape(unwrap_envelope(payload), ORDER_SHAPES, PLATFORM, "orders")
    for index, raw in enumerate(raw_orders):
        ticker = resolve_text(raw, ORDER_FIELDS["ticker"], default="")
        side = resolve_text(raw, ORDER_FIELDS["side"], default="unknown").upper()
        order_type = resolve_text(raw, ORDER_FIELDS["type"], default="unknown").upper()
        price = resolve_number(raw, ORDER_FIELDS["price"], default=None)
        size = resolve_raw(raw, ORDER_FIELDS["size"])

        name = f"{ticker} {side} {order_type}"
        if size is not None:
            name = f"{name} {size}"
        if price:
            name = f"{name} @ {price:g}"

        order_id = resolve_text(raw, ORDER_FIELDS["id"], default=str(index))
        orders.append(OpenOrder(
            id=f"{PLATFORM}-order-{order_id}",
            display_name=name,
            ticker=ticker or None,
            margin_usd=None,
            platform=PLATFORM
        ))
    return orders
