"""
Aster Response Normalization

Aster futures follows the Binance USD-M payload layout, so shapes are flat
arrays and field names are mostly stable. The chains below still go through
the shared resolver so every venue is audited the same way.

Raw positionRisk entry:
    {"symbol": "BTCUSDT", "positionAmt": "0.250", "isolatedMargin": "0",
     "initialMargin": "1250.0", "unRealizedProfit": "42.5", "leverage": "10",
     "positionSide": "BOTH", "updateTime": 1700000000000}
"""

from typing import Any, Dict, List

from core.normalize import (
    discover_shape,
    infer_side,
    is_dust,
    nested_wrapper,
    resolve_number,
    resolve_positive,
    resolve_text,
    top_level_list,
    under_key,
)
from core.schemas import EquityEntry, MarginEntry, OpenOrder, Position

PLATFORM = "aster"
SETTLEMENT_ASSET = "USDT"

# ============================================
# Shape Tables
# ============================================

POSITION_SHAPES = [top_level_list, nested_wrapper, under_key("positions"), under_key("data")]
ORDER_SHAPES = [top_level_list, nested_wrapper, under_key("orders"), under_key("data")]

# ============================================
# Field Chains
# ============================================

POSITION_FIELDS = {
    "ticker": ["symbol"],
    "size": ["positionAmt"],
    # isolatedMargin is "0" on cross positions, hence resolve_positive
    "margin": ["isolatedMargin", "initialMargin", "positionInitialMargin"],
    "pnl": ["unRealizedProfit", "unrealizedProfit"],
    "leverage": ["leverage"],
    "side": ["positionSide"],
}

ORDER_FIELDS = {
    "id": ["orderId", "clientOrderId"],
    "ticker": ["symbol"],
    "side": ["side"],
    "type": ["type", "origType"],
    "price": ["price"],
    "stop_price": ["stopPrice"],
}

ACCOUNT_FIELDS = {
    "equity": ["totalWalletBalance", "totalMarginBalance", "availableBalance"],
    "available": ["availableBalance", "maxWithdrawAmount"],
    "locked": ["totalOpenOrderInitialMargin"],
}


def normalize_positions(payload: Any) -> List[Position]:
    """positionRisk payload -> positions, dust removed."""
    positions = []
    for raw in discover_shape(payload, POSITION_SHAPES, PLATFORM, "positions"):
        size = resolve_number(raw, POSITION_FIELDS["size"], default=None)
        if is_dust(size):
            continue

        ticker = resolve_text(raw, POSITION_FIELDS["ticker"], default="")
        explicit_side = resolve_text(raw, POSITION_FIELDS["side"])
        side = infer_side(explicit_side, size)

        positions.append(Position(
            id=f"{PLATFORM}-pos-{ticker}-{(explicit_side or 'BOTH').upper()}",
            ticker=ticker,
            size=size,
            margin_usd=resolve_positive(raw, POSITION_FIELDS["margin"]) or 0.0,
            unrealized_pnl_usd=resolve_number(raw, POSITION_FIELDS["pnl"]),
            leverage=resolve_number(raw, POSITION_FIELDS["leverage"], default=None),
            side=side,
            platform=PLATFORM
        ))
    return positions


def _display_name(raw: Dict[str, Any]) -> str:
    ticker = resolve_text(raw, ORDER_FIELDS["ticker"], default="")
    side = resolve_text(raw, ORDER_FIELDS["side"], default="UNKNOWN")
    order_type = resolve_text(raw, ORDER_FIELDS["type"], default="UNKNOWN")
    price = resolve_positive(raw, ORDER_FIELDS["price"]) or resolve_positive(raw, ORDER_FIELDS["stop_price"])
    price_str = f" @ {price:g}" if price else ""
    return f"{ticker} {side} {order_type}{price_str}"


def normalize_orders(payload: Any) -> List[OpenOrder]:
    """
    openOrders payload -> orders.

    Aster does not report per-order margin, so margin_usd is always None.
    """
    orders = []
    for index, raw in enumerate(discover_shape(payload, ORDER_SHAPES, PLATFORM, "orders")):
        order_id = resolve_text(raw, ORDER_FIELDS["id"], default=str(index))
        orders.append(OpenOrder(
            id=f"{PLATFORM}-order-{order_id}",
            display_name=_display_name(raw),
            ticker=resolve_text(raw, ORDER_FIELDS["ticker"]),
            margin_usd=None,
            platform=PLATFORM
        ))
    return orders


def normalize_equity(account: Any) -> List[EquityEntry]:
    """First present value of the equity chain, emitted only when positive."""
    if not isinstance(account, dict):
        return []
    value = resolve_number(account, ACCOUNT_FIELDS["equity"], default=None)
    if value is None or value <= 0:
        return []
    return [EquityEntry(id=f"{PLATFORM}-account-equity", asset=SETTLEMENT_ASSET, amount_usd=value, platform=PLATFORM)]


def normalize_available_margin(account: Any) -> List[MarginEntry]:
    if not isinstance(account, dict):
        return []
    value = resolve_number(account, ACCOUNT_FIELDS["available"], default=None)
    if value is None:
        return []
    return [MarginEntry(id=f"{PLATFORM}-available-margin", asset=SETTLEMENT_ASSET, amount_usd=value, platform=PLATFORM)]


def normalize_locked_margin(account: Any) -> List[MarginEntry]:
    if not isinstance(account, dict):
        return []
    value = resolve_number(account, ACCOUNT_FIELDS["locked"], default=None)
    if value is None:
        return []
    return [MarginEntry(id=f"{PLATFORM}-locked-margin", asset=SETTLEMENT_ASSET, amount_usd=value, platform=PLATFORM)]
