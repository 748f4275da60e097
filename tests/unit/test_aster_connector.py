"""
Unit Tests for the Aster Connector

HTTP is replaced by monkeypatching AsterAPIClient._get with canned payloads
keyed by endpoint path.

Run with:
    pytest tests/unit/test_aster_connector.py -v
"""

from unittest.mock import MagicMock

import pytest

from core.errors import ExchangeApiError, MissingCredentialsError
from core.schemas import ExchangeCredentials, PositionSide
from exchanges.aster import AsterConnector, normalizer
from exchanges.aster.api_client import AsterAPIClient

CREDENTIALS = ExchangeCredentials(exchange="aster", api_key="key", api_secret="secret")

POSITION_RISK = [
    {
        "symbol": "BTCUSDT", "positionAmt": "0.250", "isolatedMargin": "0",
        "initialMargin": "1250.0", "unRealizedProfit": "42.5", "leverage": "10",
        "positionSide": "BOTH",
    },
    {
        "symbol": "ETHUSDT", "positionAmt": "-2.0", "isolatedMargin": "300.0",
        "unRealizedProfit": "-15", "leverage": "5", "positionSide": "BOTH",
    },
    {"symbol": "DOGEUSDT", "positionAmt": "0.00001", "positionSide": "BOTH"},
]

OPEN_ORDERS = [
    {"orderId": 11, "symbol": "BTCUSDT", "side": "BUY", "type": "LIMIT", "price": "40000", "stopPrice": "0"},
    {"orderId": 12, "symbol": "ETHUSDT", "side": "SELL", "type": "STOP_MARKET", "price": "0", "stopPrice": "2500"},
]

ACCOUNT = {
    "totalWalletBalance": "5000.5",
    "totalMarginBalance": "5042.0",
    "availableBalance": "3200.0",
    "totalOpenOrderInitialMargin": "150.0",
}


def patch_get(monkeypatch, responses):
    """Route AsterAPIClient._get by path; Exception values are raised."""
    calls = []

    async def mock_get(self, path, params=None):
        calls.append(path)
        response = responses[path]
        if isinstance(response, Exception):
            raise response
        return response

    monkeypatch.setattr(AsterAPIClient, "_get", mock_get)
    return calls


# ============================================
# Normalizer
# ============================================

class TestAsterNormalizer:
    """Tests for Aster field chains"""

    def test_positions_drop_dust_and_infer_side(self):
        positions = normalizer.normalize_positions(POSITION_RISK)

        assert [p.ticker for p in positions] == ["BTCUSDT", "ETHUSDT"]
        btc, eth = positions
        assert btc.side == PositionSide.LONG
        assert btc.margin_usd == 1250.0
        assert btc.unrealized_pnl_usd == 42.5
        assert btc.leverage == 10.0
        assert btc.id == "aster-pos-BTCUSDT-BOTH"
        assert eth.side == PositionSide.SHORT
        assert eth.size == -2.0
        assert eth.margin_usd == 300.0

    def test_order_names_and_margin(self):
        orders = normalizer.normalize_orders(OPEN_ORDERS)

        assert orders[0].display_name == "BTCUSDT BUY LIMIT @ 40000"
        assert orders[1].display_name == "ETHUSDT SELL STOP_MARKET @ 2500"
        assert all(order.margin_usd is None for order in orders)

    def test_equity_first_present_value(self):
        equity = normalizer.normalize_equity(ACCOUNT)
        assert len(equity) == 1
        assert equity[0].amount_usd == 5000.5

    def test_equity_falls_through_chain(self):
        equity = normalizer.normalize_equity({"availableBalance": "12"})
        assert equity[0].amount_usd == 12.0

    def test_zero_equity_omitted(self):
        assert normalizer.normalize_equity({"totalWalletBalance": "0"}) == []

    def test_margins_from_account(self):
        assert normalizer.normalize_available_margin(ACCOUNT)[0].amount_usd == 3200.0
        assert normalizer.normalize_locked_margin(ACCOUNT)[0].amount_usd == 150.0

    @pytest.mark.parametrize("payload", [
        {"positions": POSITION_RISK},
        {"data": POSITION_RISK},
        [None, POSITION_RISK],
    ])
    def test_position_shape_variants_agree(self, payload):
        assert normalizer.normalize_positions(payload) == normalizer.normalize_positions(POSITION_RISK)


# ============================================
# Connector
# ============================================

class TestAsterConnector:
    """Tests for the Aster pipeline and partial failure policy"""

    @pytest.mark.asyncio
    async def test_full_snapshot(self, monkeypatch):
        calls = patch_get(monkeypatch, {
            "/fapi/v2/positionRisk": POSITION_RISK,
            "/fapi/v1/openOrders": OPEN_ORDERS,
            "/fapi/v2/account": ACCOUNT,
        })

        snapshot = await AsterConnector().fetch_snapshot(CREDENTIALS, session=MagicMock())

        assert sorted(calls) == ["/fapi/v1/openOrders", "/fapi/v2/account", "/fapi/v2/positionRisk"]
        assert len(snapshot.positions) == 2
        assert len(snapshot.open_orders) == 2
        assert snapshot.equity[0].amount_usd == 5000.5
        assert snapshot.category_errors == []
        assert all(p.platform == "aster" for p in snapshot.positions)

    @pytest.mark.asyncio
    async def test_optional_category_failure_is_recorded(self, monkeypatch):
        patch_get(monkeypatch, {
            "/fapi/v2/positionRisk": POSITION_RISK,
            "/fapi/v1/openOrders": ExchangeApiError("aster", 429, "rate limited"),
            "/fapi/v2/account": ACCOUNT,
        })

        snapshot = await AsterConnector().fetch_snapshot(CREDENTIALS, session=MagicMock())

        assert snapshot.open_orders == []
        assert len(snapshot.positions) == 2
        assert len(snapshot.category_errors) == 1
        failure = snapshot.category_errors[0]
        assert failure.category == "orders"
        assert failure.status == 429
        assert failure.kind == "exchange_api_error"

    @pytest.mark.asyncio
    async def test_required_category_failure_raises(self, monkeypatch):
        patch_get(monkeypatch, {
            "/fapi/v2/positionRisk": ExchangeApiError("aster", 401, '{"code":-2015}'),
            "/fapi/v1/openOrders": OPEN_ORDERS,
            "/fapi/v2/account": ACCOUNT,
        })

        with pytest.raises(ExchangeApiError) as exc_info:
            await AsterConnector().fetch_snapshot(CREDENTIALS, session=MagicMock())
        assert exc_info.value.status == 401

    @pytest.mark.asyncio
    async def test_missing_secret(self):
        credentials = ExchangeCredentials(exchange="aster", api_key="key")
        with pytest.raises(MissingCredentialsError, match="api_secret"):
            await AsterConnector().fetch_snapshot(credentials, session=MagicMock())


class TestAsterAPIClient:
    """Tests for the signed GET wiring"""

    @pytest.mark.asyncio
    async def test_get_sends_signed_query(self):
        client = AsterAPIClient(CREDENTIALS, session=MagicMock(), clock=lambda: 1700000000000)
        async with client:
            captured = {}

            async def mock_request(method, path, query_string="", body=None, headers=None):
                captured.update(method=method, path=path, query_string=query_string, headers=headers)
                return []

            client.http.request = mock_request
            await client.get_position_risk()

        assert captured["path"] == "/fapi/v2/positionRisk"
        assert captured["query_string"].startswith("timestamp=1700000000000&signature=")
        assert captured["headers"]["X-MBX-APIKEY"] == "key"
