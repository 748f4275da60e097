"""
Normalized Data Schemas

This module defines Pydantic models for perpetual-futures account state.
These schemas provide a unified, exchange-agnostic data format.

Key Principle:
    Aster, Hyperliquid, Kraken Futures and MEXC all name the same things
    differently. Everything they return is normalized into these models so a
    downstream net-worth calculator can treat every venue the same way.

Models:
    - ExchangeCredentials: Per-call credentials (never stored)
    - Position / OpenOrder: Account exposure
    - MarginEntry / EquityEntry: Available, locked margin and account equity
    - PerpetualsSnapshot: One exchange's (or the merged) account state
    - ExchangeFailure / AggregateResult: Multi-exchange fan-out outcome
    - PnlWindows: MEXC realized/unrealized PnL over fixed windows
    - StreamPosition / StreamBalances / ConnectionState: live stream state (Kraken, Hyperliquid, MEXC)

All entities returned to callers are value objects: they are built fresh per
call and nothing in the framework keeps a reference to them.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional
from pydantic import BaseModel, Field, field_validator, ConfigDict

from core.utils.time import current_utc_datetime


# ============================================
# Enumerations
# ============================================

class PositionSide(str, Enum):
    """Direction of a position."""

    LONG = "long"
    SHORT = "short"
    UNKNOWN = "unknown"


class ConnectionStatus(str, Enum):
    """Lifecycle of a live stream session."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CHALLENGED = "challenged"
    SUBSCRIBED = "subscribed"
    ERROR = "error"


# ============================================
# Credentials
# ============================================

class ExchangeCredentials(BaseModel):
    """
    Credentials for one exchange.

    Immutable. Connectors borrow them for the duration of a single call and
    never store them. The secret is excluded from repr and serialization.

    Attributes:
        exchange: Exchange identifier (aster, hyperliquid, kraken, mexc)
        api_key: API key (empty for Hyperliquid)
        api_secret: API secret (base64 for Kraken Futures)
        wallet_address: On-chain address (Hyperliquid only)
    """

    model_config = ConfigDict(frozen=True)

    exchange: str = Field(..., description="Exchange identifier (lowercase)")
    api_key: str = Field(default="", description="API key")
    api_secret: str = Field(default="", repr=False, exclude=True, description="API secret")
    wallet_address: Optional[str] = Field(default=None, description="Wallet address (Hyperliquid)")

    @field_validator('exchange')
    @classmethod
    def validate_exchange(cls, v: str) -> str:
        """Ensure exchange is lowercase"""
        return v.strip().lower()


# ============================================
# Account Entities
# ============================================

class Position(BaseModel):
    """
    Open perpetual position.

    Attributes:
        id: Deterministic identifier, unique within one snapshot
        ticker: Exchange symbol (e.g., "BTCUSDT", "PF_XBTUSD", "BTC")
        size: Signed base-asset size (contracts already scaled where needed)
        margin_usd: Margin allocated to the position
        unrealized_pnl_usd: Unrealized profit/loss
        leverage: Leverage if reported, otherwise None
        side: LONG / SHORT / UNKNOWN
        platform: Source exchange

    Notes:
        - |size| is always >= 1e-4; dust positions are dropped during normalization
    """

    id: str
    ticker: str
    size: float = Field(default=0.0, description="Signed position size in base units")
    margin_usd: float = Field(default=0.0, description="Margin allocated to the position")
    unrealized_pnl_usd: float = Field(default=0.0, description="Unrealized PnL")
    leverage: Optional[float] = Field(default=None, description="Leverage, None when not reported")
    side: PositionSide = PositionSide.UNKNOWN
    platform: str

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "aster-pos-BTCUSDT-LONG",
                "ticker": "BTCUSDT",
                "size": 0.25,
                "margin_usd": 1250.0,
                "unrealized_pnl_usd": 42.5,
                "leverage": 10.0,
                "side": "long",
                "platform": "aster"
            }
        }
    )


class OpenOrder(BaseModel):
    """
    Resting order.

    margin_usd is None when the exchange does not report reserved margin for
    the order. 0.0 means the exchange explicitly reports no reserved margin.
    The two must never be collapsed.
    """

    id: str
    display_name: str
    ticker: Optional[str] = None
    margin_usd: Optional[float] = Field(default=None, description="Reserved margin, None when unknown")
    platform: str


class MarginEntry(BaseModel):
    """Available or locked margin in one asset."""

    id: str
    asset: str
    amount_usd: float
    platform: str


class EquityEntry(BaseModel):
    """Account equity in one asset."""

    id: str
    asset: str
    amount_usd: float
    platform: str


# ============================================
# Failures and Snapshots
# ============================================

class ExchangeFailure(BaseModel):
    """
    Serializable record of a failed exchange or failed category.

    Attributes:
        exchange: Exchange that failed
        category: Failed category (positions, orders, ...) or None for the whole exchange
        kind: Error kind (exchange_api_error, transport_error, ...)
        message: Human-readable message
        status: HTTP status for exchange_api_error
    """

    exchange: str
    category: Optional[str] = None
    kind: str
    message: str
    status: Optional[int] = None

    @classmethod
    def from_exception(cls, exchange: str, error: Exception, category: Optional[str] = None) -> "ExchangeFailure":
        """Build a failure record from any raised exception."""
        return cls(
            exchange=exchange,
            category=category,
            kind=getattr(error, "kind", type(error).__name__),
            message=str(error),
            status=getattr(error, "status", None)
        )


class PerpetualsSnapshot(BaseModel):
    """
    Normalized account state for one exchange, or several merged.

    Built fresh on every call, never cached. category_errors lists optional
    categories that failed; their lists are empty in this snapshot.
    """

    positions: List[Position] = Field(default_factory=list)
    open_orders: List[OpenOrder] = Field(default_factory=list)
    available_margin: List[MarginEntry] = Field(default_factory=list)
    locked_margin: List[MarginEntry] = Field(default_factory=list)
    equity: List[EquityEntry] = Field(default_factory=list)
    category_errors: List[ExchangeFailure] = Field(default_factory=list)

    def merge(self, other: "PerpetualsSnapshot") -> "PerpetualsSnapshot":
        """Concatenate two snapshots. No de-duplication."""
        return PerpetualsSnapshot(
            positions=self.positions + other.positions,
            open_orders=self.open_orders + other.open_orders,
            available_margin=self.available_margin + other.available_margin,
            locked_margin=self.locked_margin + other.locked_margin,
            equity=self.equity + other.equity,
            category_errors=self.category_errors + other.category_errors
        )


class AggregateResult(BaseModel):
    """
    Outcome of a multi-exchange fan-out.

    Exchanges that succeeded are in snapshots; exchanges that failed are in
    failures. One never hides the other.
    """

    snapshots: Dict[str, PerpetualsSnapshot] = Field(default_factory=dict)
    failures: List[ExchangeFailure] = Field(default_factory=list)
    fetched_at: datetime = Field(default_factory=current_utc_datetime)

    def merged(self) -> PerpetualsSnapshot:
        """All successful snapshots concatenated in registry order."""
        result = PerpetualsSnapshot()
        for snapshot in self.snapshots.values():
            result = result.merge(snapshot)
        return result


class PnlWindows(BaseModel):
    """PnL over fixed windows. A window the exchange did not report stays None."""

    platform: str
    pnl_24h_usd: Optional[float] = None
    pnl_7d_usd: Optional[float] = None
    pnl_30d_usd: Optional[float] = None
    pnl_90d_usd: Optional[float] = None


# ============================================
# Live Stream State
# ============================================

class StreamPosition(BaseModel):
    """
    One open position from a live stream.

    instrument is the exchange symbol (PF_XBTUSD, BTC, BTC_USDT). balance is
    signed. position_id is set only by feeds that report one (MEXC), where
    two positions on the same symbol can coexist.
    """

    model_config = ConfigDict(frozen=True)

    instrument: str
    position_id: Optional[str] = None
    balance: Optional[float] = None
    entry_price: Optional[float] = None
    mark_price: Optional[float] = None
    pnl: Optional[float] = None
    initial_margin: Optional[float] = None
    maintenance_margin: Optional[float] = None
    initial_margin_with_orders: Optional[float] = None
    effective_leverage: Optional[float] = None
    liquidation_price: Optional[float] = None


class StreamBalances(BaseModel):
    """
    Latest balances from the Kraken Futures balances feed.

    total_balance is derived, never read from the wire: it is recomputed
    after every merged message from a fixed fallback chain.
    """

    model_config = ConfigDict(frozen=True)

    currency: Optional[str] = None
    balance: Optional[float] = None
    portfolio_value: Optional[float] = None
    collateral_value: Optional[float] = None
    available: Optional[float] = None
    initial_margin: Optional[float] = None
    maintenance_margin: Optional[float] = None
    pnl: Optional[float] = None
    unrealized_funding: Optional[float] = None
    total_unrealized: Optional[float] = None
    margin_equity: Optional[float] = None
    total_balance: Optional[float] = None


class ConnectionState(BaseModel):
    """Snapshot of a live stream session as published to subscribers."""

    model_config = ConfigDict(frozen=True)

    status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    last_update_ts: Optional[int] = Field(default=None, description="Last merged message, epoch ms")
    positions: List[StreamPosition] = Field(default_factory=list)
    balances: StreamBalances = Field(default_factory=StreamBalances)
    error: Optional[str] = None
