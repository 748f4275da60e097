"""
MEXC Connector

Pipeline:
    1. contract/detail (discovery)   contract sizes; on failure sizes stay in contracts
    2. concurrently:
         open_positions (required)
         open_orders    (optional)
         assets         (optional)   equity, available and locked margin
    3. positions and orders scaled by contract size

fetch_performance() is a separate call returning PnL windows (24h, 7d, 30d, 90d).

Streaming:
    exchanges/mexc/ws_client.py holds the MexcStreamClient for personal
    position pushes.
"""

from typing import Dict, List, Optional

import aiohttp

from core.connector import Connector, run_categories
from core.errors import ConnectorError
from core.schemas import ExchangeCredentials, ExchangeFailure, PerpetualsSnapshot, PnlWindows
from exchanges.mexc import normalizer
from exchanges.mexc.api_client import MexcAPIClient
from exchanges.mexc.ws_client import MexcStreamClient


class MexcConnector(Connector):
    """MEXC contract account connector."""

    name = "mexc"

    capabilities = dict(Connector.capabilities, performance=True, live_stream=True)

    async def fetch_snapshot(
        self,
        credentials: ExchangeCredentials,
        session: Optional[aiohttp.ClientSession] = None
    ) -> PerpetualsSnapshot:
        self.check_credentials(credentials)
        failures: List[ExchangeFailure] = []

        async with MexcAPIClient(credentials, session=session, clock=self.clock) as client:
            try:
                contract_sizes = normalizer.parse_contract_sizes(await client.get_contract_details())
            except ConnectorError as e:
                self.logger.warning(f"mexc: contract detail unavailable, sizes stay in contracts: {e}")
                failures.append(ExchangeFailure.from_exception(self.name, e, category="contracts"))
                contract_sizes = {}

            values, category_failures = await run_categories(
                self.name,
                required={"positions": client.get_open_positions()},
                optional={
                    "orders": client.get_open_orders(),
                    "assets": client.get_assets(),
                }
            )
        failures.extend(category_failures)

        orders = values.get("orders")
        assets = values.get("assets")
        snapshot = PerpetualsSnapshot(
            positions=normalizer.normalize_positions(values["positions"], contract_sizes),
            open_orders=normalizer.normalize_orders(orders, contract_sizes) if orders is not None else [],
            available_margin=normalizer.normalize_available_margin(assets) if assets is not None else [],
            locked_margin=normalizer.normalize_locked_margin(assets) if assets is not None else [],
            equity=normalizer.normalize_equity(assets) if assets is not None else [],
            category_errors=failures
        )
        self.logger.info(
            f"mexc: {len(snapshot.positions)} positions, {len(snapshot.open_orders)} orders, "
            f"{len(contract_sizes)} contract sizes"
        )
        return snapshot

    async def fetch_performance(
        self,
        credentials: ExchangeCredentials,
        session: Optional[aiohttp.ClientSession] = None
    ) -> PnlWindows:
        """PnL over 24h / 7d / 30d / 90d. Every call is required."""
        self.check_credentials(credentials)

        async with MexcAPIClient(credentials, session=session, clock=self.clock) as client:
            values, _ = await run_categories(
                self.name,
                required={
                    "today": client.get_today_pnl(),
                    "analysis": client.get_pnl_analysis(),
                    "recent": client.get_recent_pnl(),
                }
            )

        return normalizer.normalize_performance(values["today"], values["analysis"], values["recent"])


    def stream_client(
        self,
        credentials: ExchangeCredentials,
        contract_sizes: Optional[Dict[str, float]] = None,
        **kwargs
    ) -> MexcStreamClient:
        """
        Build a MexcStreamClient for personal position pushes.

        Pass the contract sizes from a snapshot run to stream base-unit sizes;
        without them sizes stay in contracts.
        """
        self.check_credentials(credentials)
        return MexcStreamClient(credentials, contract_sizes=contract_sizes, clock=self.clock, **kwargs)


__all__ = ["MexcConnector", "MexcStreamClient"]
