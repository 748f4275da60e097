"""
Aster Connector

Pipeline:
    positionRisk (required) ─┐
    openOrders   (optional) ─┼─ concurrent ──► PerpetualsSnapshot
    account      (optional) ─┘

The account payload feeds three categories at once: equity, available
margin and locked (open-order) margin.
"""

from typing import Optional

import aiohttp

from core.connector import Connector, run_categories
from core.schemas import ExchangeCredentials, PerpetualsSnapshot
from exchanges.aster import normalizer
from exchanges.aster.api_client import AsterAPIClient


class AsterConnector(Connector):
    """Aster futures account connector."""

    name = "aster"

    async def fetch_snapshot(
        self,
        credentials: ExchangeCredentials,
        session: Optional[aiohttp.ClientSession] = None
    ) -> PerpetualsSnapshot:
        self.check_credentials(credentials)

        async with AsterAPIClient(credentials, session=session, clock=self.clock) as client:
            values, failures = await run_categories(
                self.name,
                required={"positions": client.get_position_risk()},
                optional={
                    "orders": client.get_open_orders(),
                    "account": client.get_account(),
                }
            )

        account = values.get("account")
        snapshot = PerpetualsSnapshot(
            positions=normalizer.normalize_positions(values["positions"]),
            open_orders=normalizer.normalize_orders(values.get("orders")) if values.get("orders") is not None else [],
            available_margin=normalizer.normalize_available_margin(account),
            locked_margin=normalizer.normalize_locked_margin(account),
            equity=normalizer.normalize_equity(account),
            category_errors=failures
        )
        self.logger.info(
            f"aster: {len(snapshot.positions)} positions, {len(snapshot.open_orders)} orders, "
            f"{len(failures)} category error(s)"
        )
        return snapshot


__all__ = ["AsterConnector"]
