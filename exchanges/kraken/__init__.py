"""
Kraken Futures Connector

REST pipeline:
    openpositions (required) ─┐
    accounts      (optional) ─┼─ concurrent ──► PerpetualsSnapshot
    openorders    (optional) ─┘

The accounts payload feeds available margin, locked margin and equity.

Streaming:
    exchanges/kraken/ws_client.py holds the LiveStreamClient for the
    authenticated open_positions and balances feeds.
"""

from typing import Optional

import aiohttp

from core.connector import Connector, run_categories
from core.schemas import ExchangeCredentials, PerpetualsSnapshot
from exchanges.kraken import normalizer
from exchanges.kraken.api_client import KrakenFuturesAPIClient
from exchanges.kraken.ws_client import LiveStreamClient


class KrakenFuturesConnector(Connector):
    """Kraken Futures account connector."""

    name = "kraken"

    capabilities = dict(Connector.capabilities, live_stream=True)

    async def fetch_snapshot(
        self,
        credentials: ExchangeCredentials,
        session: Optional[aiohttp.ClientSession] = None
    ) -> PerpetualsSnapshot:
        self.check_credentials(credentials)

        async with KrakenFuturesAPIClient(credentials, session=session, clock=self.clock) as client:
            values, failures = await run_categories(
                self.name,
                required={"positions": client.get_open_positions()},
                optional={
                    "accounts": client.get_accounts(),
                    "orders": client.get_open_orders(),
                }
            )

        accounts = values.get("accounts")
        orders = values.get("orders")
        snapshot = PerpetualsSnapshot(
            positions=normalizer.normalize_positions(values["positions"]),
            open_orders=normalizer.normalize_orders(orders) if orders is not None else [],
            available_margin=normalizer.normalize_available_margin(accounts) if accounts is not None else [],
            locked_margin=normalizer.normalize_locked_margin(accounts) if accounts is not None else [],
            equity=normalizer.normalize_equity(accounts) if accounts is not None else [],
            category_errors=failures
        )
        self.logger.info(
            f"kraken: {len(snapshot.positions)} positions, {len(snapshot.open_orders)} orders, "
            f"{len(failures)} category error(s)"
        )
        return snapshot

    def stream_client(self, credentials: ExchangeCredentials, **kwargs) -> LiveStreamClient:
        """
        Build a LiveStreamClient for the private feeds.

        The secret is decoded on the first challenge, so an unusable secret
        surfaces as an ERROR state rather than here.
        """
        self.check_credentials(credentials)
        return LiveStreamClient(credentials, clock=self.clock, **kwargs)


__all__ = ["KrakenFuturesConnector", "LiveStreamClient"]
