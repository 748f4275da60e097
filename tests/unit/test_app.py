"""
Unit Tests for the FastAPI surface

The aggregator dependency is overridden with fake connectors, so the app
never opens a network connection. TestClient is used without its context
manager to skip the lifespan handler.

Run with:
    pytest tests/unit/test_app.py -v
"""

import pytest
from fastapi.testclient import TestClient

from app.main import app, get_aggregator
from core.aggregator import ConnectorAggregator
from core.connector import Connector
from core.errors import ExchangeApiError, InvalidSecretEncoding, TransportError
from core.schemas import EquityEntry, PerpetualsSnapshot, PnlWindows


class StubConnector(Connector):
    def __init__(self, name, snapshot=None, error=None):
        self.name = name
        super().__init__()
        self.snapshot = snapshot
        self.error = error
        self.received = []

    async def fetch_snapshot(self, credentials, session=None):
        self.check_credentials(credentials)
        self.received.append(credentials)
        if self.error is not None:
            raise self.error
        return self.snapshot


class StubMexcConnector(StubConnector):
    capabilities = dict(Connector.capabilities, performance=True)

    async def fetch_performance(self, credentials, session=None):
        self.check_credentials(credentials)
        return PnlWindows(platform="mexc", pnl_24h_usd=1.5, pnl_7d_usd=-2.0)


def equity_snapshot(platform, amount):
    return PerpetualsSnapshot(equity=[
        EquityEntry(id=f"{platform}-account-equity", asset="USD", amount_usd=amount, platform=platform)
    ])


@pytest.fixture
def connectors():
    return {
        "aster": StubConnector("aster", equity_snapshot("aster", 100.0)),
        "kraken": StubConnector("kraken", error=InvalidSecretEncoding("kraken")),
        "mexc": StubMexcConnector("mexc", error=ExchangeApiError("mexc", 500, '{"code":500}')),
        "hyperliquid": StubConnector("hyperliquid", error=TransportError("hyperliquid", "timeout")),
    }


@pytest.fixture
def client(connectors):
    aggregator = ConnectorAggregator(connectors=connectors, session=object())
    app.dependency_overrides[get_aggregator] = lambda: aggregator
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestSystemEndpoints:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_exchanges_with_capabilities(self, client):
        body = client.get("/exchanges").json()
        by_name = {entry["name"]: entry["capabilities"] for entry in body["exchanges"]}
        assert set(by_name) == {"aster", "kraken", "mexc", "hyperliquid"}
        assert by_name["mexc"]["performance"] is True


class TestSnapshotEndpoint:
    """POST /perpetuals/{exchange} and its error mapping"""

    def test_snapshot(self, client, connectors):
        response = client.post("/perpetuals/aster", json={"api_key": "k", "api_secret": "s"})

        assert response.status_code == 200
        assert response.json()["equity"][0]["amount_usd"] == 100.0
        assert connectors["aster"].received[0].exchange == "aster"

    def test_unknown_exchange_404(self, client):
        assert client.post("/perpetuals/ftx", json={}).status_code == 404

    def test_missing_credentials_400(self, client):
        response = client.post("/perpetuals/aster", json={"api_key": "k"})
        assert response.status_code == 400
        assert "api_secret" in response.json()["detail"]

    def test_invalid_secret_400(self, client):
        assert client.post("/perpetuals/kraken", json={"api_key": "k", "api_secret": "s"}).status_code == 400

    def test_exchange_api_error_502(self, client):
        response = client.post("/perpetuals/mexc", json={"api_key": "k", "api_secret": "s"})

        assert response.status_code == 502
        detail = response.json()["detail"]
        assert detail["status"] == 500
        assert detail["body"] == '{"code":500}'

    def test_transport_error_504(self, client):
        response = client.post("/perpetuals/hyperliquid", json={"api_key": "k", "api_secret": "s"})
        assert response.status_code == 504


class TestAggregateEndpoint:
    """POST /perpetuals"""

    def test_partial_results(self, client):
        response = client.post("/perpetuals", json={"exchanges": {
            "aster": {"api_key": "k", "api_secret": "s"},
            "mexc": {"api_key": "k", "api_secret": "s"},
        }})

        assert response.status_code == 200
        body = response.json()
        assert list(body["result"]["snapshots"]) == ["aster"]
        assert body["result"]["failures"][0]["exchange"] == "mexc"
        assert body["result"]["failures"][0]["status"] == 500
        assert body["merged"]["equity"][0]["platform"] == "aster"

    def test_secret_not_echoed(self, client):
        response = client.post("/perpetuals", json={"exchanges": {"aster": {"api_key": "k", "api_secret": "top-secret"}}})
        assert "top-secret" not in response.text


class TestPerformanceEndpoint:
    def test_mexc_performance(self, client):
        response = client.post("/perpetuals/mexc/performance", json={"api_key": "k", "api_secret": "s"})

        assert response.status_code == 200
        assert response.json()["pnl_24h_usd"] == 1.5
        assert response.json()["pnl_90d_usd"] is None
