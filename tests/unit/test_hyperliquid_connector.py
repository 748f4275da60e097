"""
Unit Tests for the Hyperliquid Connector

HyperliquidAPIClient._post is replaced by a router over the info request
"type" and "dex" fields.

Run with:
    pytest tests/unit/test_hyperliquid_connector.py -v
"""

from unittest.mock import MagicMock

import pytest

from core.errors import ExchangeApiError, MissingCredentialsError, TransportError
from core.schemas import ExchangeCredentials, PositionSide
from exchanges.hyperliquid import HyperliquidConnector, HyperliquidStreamClient, normalizer
from exchanges.hyperliquid.api_client import HyperliquidAPIClient

WALLET = "0x0000000000000000000000000000000000000abc"
CREDENTIALS = ExchangeCredentials(exchange="hyperliquid", wallet_address=WALLET)

DEFAULT_STATE = {
    "assetPositions": [
        {"type": "oneWay", "position": {
            "coin": "BTC", "szi": "0.5", "marginUsed": "2000", "unrealizedPnl": "120.5",
            "leverage": {"type": "cross", "value": 10},
        }},
        {"type": "oneWay", "position": {"coin": "ETH", "szi": "-3", "marginUsed": "500", "unrealizedPnl": "-20"}},
        {"type": "oneWay", "position": {"coin": "DUST", "szi": "0.00001", "marginUsed": "0"}},
    ],
    "marginSummary": {"accountValue": "10000", "totalMarginUsed": "2600"},
    "withdrawable": "7400",
}

SILVER_STATE = {
    "assetPositions": [{"position": {"coin": "xyz:SILVER", "szi": "10", "marginUsed": "300", "unrealizedPnl": "5"}}],
    "marginSummary": {"accountValue": "1000", "totalMarginUsed": "300"},
    "withdrawable": "700",
}

ORDERS = [{"coin": "BTC", "side": "B", "limitPx": "60000", "sz": "0.1", "oid": 77, "orderType": "Limit"}]


def patch_post(monkeypatch, routes):
    """routes: (type, dex) -> payload or Exception"""
    calls = []

    async def mock_post(self, payload):
        key = (payload["type"], payload.get("dex", ""))
        calls.append(key)
        response = routes[key]
        if isinstance(response, Exception):
            raise response
        return response

    monkeypatch.setattr(HyperliquidAPIClient, "_post", mock_post)
    return calls


# ============================================
# Normalizer
# ============================================

class TestHyperliquidDiscovery:
    """Tests for perpDexs and meta parsing"""

    @pytest.mark.parametrize("payload", [
        [None, {"name": "xyz"}, {"name": "abc"}],
        [None, [{"name": "xyz"}, {"name": "abc"}]],
        [{"name": "xyz"}, {"name": "abc"}, {"name": "xyz"}],
    ])
    def test_perp_dex_shapes(self, payload):
        assert normalizer.parse_perp_dexs(payload) == ["", "xyz", "abc"]

    @pytest.mark.parametrize("payload", [
        [[{"name": "xyz:SILVER"}, {"name": "xyz:GOLD"}], []],
        [{"universe": [{"name": "xyz:SILVER"}, {"name": "xyz:GOLD"}]}],
        {"universe": [{"name": "xyz:SILVER"}, "xyz:GOLD"]},
    ])
    def test_universe_shapes(self, payload):
        assert normalizer.parse_universe_symbols(payload) == ["xyz:SILVER", "xyz:GOLD"]

    def test_universe_match_is_case_insensitive(self):
        assert normalizer.universe_matches(["xyz:silver"], ["SILVER"])
        assert not normalizer.universe_matches(["xyz:GOLD"], ["SILVER"])


class TestHyperliquidNormalizer:
    """Tests for clearinghouse state normalization"""

    def test_positions(self):
        positions = normalizer.normalize_positions(DEFAULT_STATE)

        assert [p.ticker for p in positions] == ["BTC", "ETH"]
        assert positions[0].side == PositionSide.LONG
        assert positions[0].leverage == 10.0
        assert positions[0].id == "hyperliquid-pos-BTC-default"
        assert positions[1].side == PositionSide.SHORT
        assert positions[1].size == -3.0

    def test_locked_margin_excludes_position_margin(self):
        assert normalizer.locked_margin(DEFAULT_STATE) == pytest.approx(100.0)

    def test_locked_margin_never_negative(self):
        state = {"assetPositions": [{"position": {"coin": "BTC", "szi": "1", "marginUsed": "50"}}],
                 "marginSummary": {"totalMarginUsed": "10"}}
        assert normalizer.locked_margin(state) == 0.0

    def test_summarize_sums_across_dexs(self):
        available, locked, equity = normalizer.summarize_margins([("", DEFAULT_STATE), ("xyz", SILVER_STATE)])

        assert available[0].amount_usd == pytest.approx(8100.0)
        assert locked[0].amount_usd == pytest.approx(100.0)
        assert equity[0].amount_usd == pytest.approx(11000.0)

    def test_zero_equity_omitted(self):
        _, _, equity = normalizer.summarize_margins([("", {"marginSummary": {"accountValue": "0"}})])
        assert equity == []

    def test_orders(self):
        orders = normalizer.normalize_orders(ORDERS)
        assert orders[0].display_name == "BTC BUY LIMIT 0.1 @ 60000"
        assert orders[0].margin_usd is None
        assert orders[0].id == "hyperliquid-order-77"


# ============================================
# Connector
# ============================================

class TestHyperliquidConnector:
    """Tests for dex discovery and the per-dex pipeline"""

    @pytest.mark.asyncio
    async def test_marker_dex_is_queried(self, monkeypatch):
        calls = patch_post(monkeypatch, {
            ("perpDexs", ""): [None, {"name": "xyz"}, {"name": "abc"}],
            ("meta", "xyz"): {"universe": [{"name": "xyz:SILVER"}]},
            ("meta", "abc"): {"universe": [{"name": "abc:DOGE"}]},
            ("clearinghouseState", ""): DEFAULT_STATE,
            ("clearinghouseState", "xyz"): SILVER_STATE,
            ("openOrders", ""): ORDERS,
            ("openOrders", "xyz"): [],
        })

        connector = HyperliquidConnector(dex_markers=["SILVER"])
        snapshot = await connector.fetch_snapshot(CREDENTIALS, session=MagicMock())

        assert ("clearinghouseState", "abc") not in calls
        assert [p.ticker for p in snapshot.positions] == ["BTC", "ETH", "xyz:SILVER"]
        assert snapshot.positions[2].id == "hyperliquid-pos-xyz:SILVER-xyz"
        assert len(snapshot.open_orders) == 1
        assert snapshot.equity[0].amount_usd == pytest.approx(11000.0)
        assert snapshot.category_errors == []

    @pytest.mark.asyncio
    async def test_perp_dexs_failure_falls_back_to_default(self, monkeypatch):
        patch_post(monkeypatch, {
            ("perpDexs", ""): TransportError("hyperliquid", "timeout"),
            ("clearinghouseState", ""): DEFAULT_STATE,
            ("openOrders", ""): [],
        })

        snapshot = await HyperliquidConnector(dex_markers=["SILVER"]).fetch_snapshot(CREDENTIALS, session=MagicMock())

        assert len(snapshot.positions) == 2
        assert [f.category for f in snapshot.category_errors] == ["perp_dexs"]

    @pytest.mark.asyncio
    async def test_secondary_dex_failure_is_recorded(self, monkeypatch):
        patch_post(monkeypatch, {
            ("perpDexs", ""): [None, {"name": "xyz"}],
            ("meta", "xyz"): {"universe": [{"name": "xyz:SILVER"}]},
            ("clearinghouseState", ""): DEFAULT_STATE,
            ("clearinghouseState", "xyz"): ExchangeApiError("hyperliquid", 500, "boom"),
            ("openOrders", ""): [],
            ("openOrders", "xyz"): [],
        })

        snapshot = await HyperliquidConnector(dex_markers=["SILVER"]).fetch_snapshot(CREDENTIALS, session=MagicMock())

        assert [p.ticker for p in snapshot.positions] == ["BTC", "ETH"]
        assert snapshot.category_errors[0].category == "clearinghouse_state:xyz"

    @pytest.mark.asyncio
    async def test_default_dex_failure_raises(self, monkeypatch):
        patch_post(monkeypatch, {
            ("clearinghouseState", ""): ExchangeApiError("hyperliquid", 422, "bad user"),
            ("openOrders", ""): [],
        })

        with pytest.raises(ExchangeApiError):
            await HyperliquidConnector(dex_markers=[]).fetch_snapshot(CREDENTIALS, session=MagicMock())

    @pytest.mark.asyncio
    async def test_wallet_address_required(self):
        credentials = ExchangeCredentials(exchange="hyperliquid", api_key="ignored")
        with pytest.raises(MissingCredentialsError, match="wallet_address"):
            await HyperliquidConnector().fetch_snapshot(credentials, session=MagicMock())

    def test_stream_client_for_wallet_and_dex(self):
        client = HyperliquidConnector(dex_markers=[]).stream_client(CREDENTIALS, dex="xyz")

        assert isinstance(client, HyperliquidStreamClient)
        assert client.wallet_address == WALLET
        assert client.dex == "xyz"
        assert HyperliquidConnector.capabilities["live_stream"] is True

    def test_stream_client_requires_wallet(self):
        credentials = ExchangeCredentials(exchange="hyperliquid", api_key="ignored")
        with pytest.raises(MissingCredentialsError, match="wallet_address"):
            HyperliquidConnector(dex_markers=[]).stream_client(credentials)
