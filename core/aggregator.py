"""
Connector Aggregator - Registry and Fan-out over Exchange Connectors

The aggregator is the single entry point callers use:

    fetch_snapshot(exchange, credentials)   one exchange, errors propagate
    aggregate_all(credentials_by_exchange)  every exchange concurrently,
                                            failures isolated per exchange

It owns one aiohttp session shared by every connector for its lifetime.
Nothing is cached: every call hits the exchanges again.

Example Usage:
    async with ConnectorAggregator() as aggregator:
        result = await aggregator.aggregate_all({
            "aster": ExchangeCredentials(exchange="aster", api_key=k, api_secret=s),
            "hyperliquid": ExchangeCredentials(exchange="hyperliquid", wallet_address=addr),
        })
        print(result.merged().equity)
        print(result.failures)
"""

import asyncio
from typing import Dict, List, Optional

import aiohttp

from core.connector import Connector
from core.errors import UnsupportedExchangeError
from core.logging import logger
from core.schemas import AggregateResult, ExchangeCredentials, ExchangeFailure, PerpetualsSnapshot
from core.utils.time import Clock, now_ms


class ConnectorAggregator:
    """
    Central registry and fan-out for exchange connectors.

    Attributes:
        connectors: Exchange name -> Connector instance
        session: Shared aiohttp session (None until started)
    """

    def __init__(
        self,
        connectors: Optional[Dict[str, Connector]] = None,
        session: Optional[aiohttp.ClientSession] = None,
        clock: Clock = now_ms
    ):
        """
        Args:
            connectors: Override the default registry (tests inject fakes here)
            session: Externally owned session; the aggregator opens its own when None
            clock: Millisecond clock handed to every default connector
        """
        if connectors is None:
            # Import here to avoid circular imports
            from exchanges.aster import AsterConnector
            from exchanges.hyperliquid import HyperliquidConnector
            from exchanges.kraken import KrakenFuturesConnector
            from exchanges.mexc import MexcConnector

            connectors = {
                "aster": AsterConnector(clock=clock),
                "hyperliquid": HyperliquidConnector(clock=clock),
                "kraken": KrakenFuturesConnector(clock=clock),
                "mexc": MexcConnector(clock=clock),
            }

        self.connectors: Dict[str, Connector] = connectors
        self.session = session
        self._owns_session = session is None

        logger.info(
            f"ConnectorAggregator initialized with {len(self.connectors)} exchange(s): "
            f"{', '.join(self.connectors.keys())}"
        )

    # ============================================
    # Lifecycle
    # ============================================

    async def start(self) -> None:
        if self.session is None:
            self.session = aiohttp.ClientSession()
            self._owns_session = True
            logger.debug("ConnectorAggregator session created")

    async def close(self) -> None:
        if self._owns_session and self.session is not None:
            await self.session.close()
            self.session = None
            logger.debug("ConnectorAggregator session closed")

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    # ============================================
    # Registry
    # ============================================

    def get_connector(self, name: str) -> Connector:
        """
        Raises:
            UnsupportedExchangeError: If the exchange is not registered
        """
        name = name.lower()
        if name not in self.connectors:
            raise UnsupportedExchangeError(name, self.list_exchanges())
        return self.connectors[name]

    def has_connector(self, name: str) -> bool:
        return name.lower() in self.connectors

    def list_exchanges(self) -> List[str]:
        return list(self.connectors.keys())

    def get_capabilities(self, name: str) -> Dict[str, bool]:
        return dict(self.get_connector(name).capabilities)

    # ============================================
    # Fetching
    # ============================================

    async def fetch_snapshot(self, exchange: str, credentials: ExchangeCredentials) -> PerpetualsSnapshot:
        """
        Fetch one exchange's snapshot.

        Raises:
            UnsupportedExchangeError, MissingCredentialsError, InvalidSecretEncoding,
            ExchangeApiError, TransportError
        """
        connector = self.get_connector(exchange)
        return await connector.fetch_snapshot(credentials, session=self.session)

    async def aggregate_all(self, credentials_by_exchange: Dict[str, ExchangeCredentials]) -> AggregateResult:
        """
        Fetch every listed exchange concurrently.

        One exchange failing never blocks another: successes land in
        result.snapshots, failures in result.failures.
        """
        names = [name.lower() for name in credentials_by_exchange]
        results = await asyncio.gather(
            *(self.fetch_snapshot(name, creds) for name, creds in zip(names, credentials_by_exchange.values())),
            return_exceptions=True
        )

        result = AggregateResult()
        for name, outcome in zip(names, results):
            if isinstance(outcome, PerpetualsSnapshot):
                result.snapshots[name] = outcome
            elif isinstance(outcome, Exception):
                logger.error(f"✗ {name} failed: {outcome}")
                result.failures.append(ExchangeFailure.from_exception(name, outcome))
            else:
                raise outcome

        logger.info(
            f"Aggregated {len(result.snapshots)}/{len(names)} exchange(s)"
            + (f", failed: {', '.join(f.exchange for f in result.failures)}" if result.failures else "")
        )
        return result

    def __repr__(self) -> str:
        return f"<ConnectorAggregator(exchanges={self.list_exchanges()})>"
