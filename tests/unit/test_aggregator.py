"""
Unit Tests for the Connector Aggregator and the category runner

Uses in-memory fake connectors, so nothing here touches HTTP.

Run with:
    pytest tests/unit/test_aggregator.py -v
"""

import asyncio
from unittest.mock import MagicMock

import pytest

from core.aggregator import ConnectorAggregator
from core.connector import Connector, run_categories
from core.errors import ExchangeApiError, InvalidSecretEncoding, UnsupportedExchangeError
from core.schemas import EquityEntry, ExchangeCredentials, PerpetualsSnapshot, Position, PositionSide


class FakeConnector(Connector):
    """Returns a fixed snapshot or raises a fixed error"""

    def __init__(self, name, snapshot=None, error=None):
        self.name = name
        super().__init__()
        self.snapshot = snapshot
        self.error = error
        self.sessions = []

    async def fetch_snapshot(self, credentials, session=None):
        self.sessions.append(session)
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return self.snapshot


def snapshot_for(platform, equity):
    return PerpetualsSnapshot(
        positions=[Position(
            id=f"{platform}-pos-BTC", ticker="BTC", size=1.0, margin_usd=10.0,
            unrealized_pnl_usd=0.0, side=PositionSide.LONG, platform=platform
        )],
        equity=[EquityEntry(id=f"{platform}-account-equity", asset="USD", amount_usd=equity, platform=platform)]
    )


def credentials(name):
    return ExchangeCredentials(exchange=name, api_key="k", api_secret="s", wallet_address="0xabc")


@pytest.fixture
def aggregator():
    return ConnectorAggregator(
        connectors={
            "aster": FakeConnector("aster", snapshot_for("aster", 100.0)),
            "hyperliquid": FakeConnector("hyperliquid", snapshot_for("hyperliquid", 200.0)),
            "mexc": FakeConnector("mexc", error=ExchangeApiError("mexc", 500, "internal error")),
        },
        session=MagicMock()
    )


# ============================================
# Aggregation
# ============================================

class TestAggregateAll:
    """Three exchanges, one answering 500"""

    @pytest.mark.asyncio
    async def test_failure_isolated(self, aggregator):
        result = await aggregator.aggregate_all({name: credentials(name) for name in ("aster", "hyperliquid", "mexc")})

        assert set(result.snapshots) == {"aster", "hyperliquid"}
        assert len(result.failures) == 1
        failure = result.failures[0]
        assert failure.exchange == "mexc"
        assert failure.status == 500
        assert failure.kind == "exchange_api_error"

    @pytest.mark.asyncio
    async def test_merged_concatenates_without_dedup(self, aggregator):
        result = await aggregator.aggregate_all({name: credentials(name) for name in ("aster", "hyperliquid")})
        merged = result.merged()

        assert [p.platform for p in merged.positions] == ["aster", "hyperliquid"]
        assert sum(e.amount_usd for e in merged.equity) == 300.0

    @pytest.mark.asyncio
    async def test_unknown_exchange_reported_as_failure(self, aggregator):
        result = await aggregator.aggregate_all({"aster": credentials("aster"), "ftx": credentials("ftx")})

        assert list(result.snapshots) == ["aster"]
        assert result.failures[0].kind == "unsupported_exchange"

    @pytest.mark.asyncio
    async def test_shared_session_passed_to_connectors(self, aggregator):
        await aggregator.fetch_snapshot("aster", credentials("aster"))
        assert aggregator.connectors["aster"].sessions == [aggregator.session]


class TestRegistry:
    """Tests for registry lookups"""

    def test_get_connector_unknown(self, aggregator):
        with pytest.raises(UnsupportedExchangeError):
            aggregator.get_connector("binance")

    def test_lookup_is_case_insensitive(self, aggregator):
        assert aggregator.has_connector("ASTER")
        assert aggregator.get_connector("Aster").name == "aster"

    def test_default_registry(self):
        default = ConnectorAggregator(session=MagicMock())
        assert default.list_exchanges() == ["aster", "hyperliquid", "kraken", "mexc"]
        assert default.get_capabilities("mexc")["performance"] is True
        assert default.get_capabilities("kraken")["live_stream"] is True

    @pytest.mark.asyncio
    async def test_owned_session_lifecycle(self):
        async with ConnectorAggregator(connectors={}) as owned:
            session = owned.session
            assert session is not None
        assert session.closed


# ============================================
# Category Runner
# ============================================

async def _value(value):
    return value


async def _fail(error):
    raise error


class TestRunCategories:
    """Tests for the partial failure policy"""

    @pytest.mark.asyncio
    async def test_all_succeed(self):
        values, failures = await run_categories("x", {"a": _value(1)}, {"b": _value(2)})
        assert values == {"a": 1, "b": 2}
        assert failures == []

    @pytest.mark.asyncio
    async def test_optional_failure_recorded(self):
        values, failures = await run_categories(
            "x", {"a": _value(1)}, {"b": _fail(ExchangeApiError("x", 502, "bad gateway"))}
        )
        assert values == {"a": 1, "b": None}
        assert failures[0].category == "b"
        assert failures[0].status == 502

    @pytest.mark.asyncio
    async def test_required_failure_raises(self):
        with pytest.raises(ExchangeApiError):
            await run_categories("x", {"a": _fail(ExchangeApiError("x", 500, ""))}, {"b": _value(2)})

    @pytest.mark.asyncio
    async def test_invalid_secret_raises_from_optional(self):
        with pytest.raises(InvalidSecretEncoding):
            await run_categories("x", {"a": _value(1)}, {"b": _fail(InvalidSecretEncoding("x"))})
