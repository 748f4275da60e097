"""
Hyperliquid Connector

Pipeline:
    1. perpDexs                      discover perp dexs (best-effort)
    2. meta per non-default dex      keep dexs whose universe lists a marker symbol
    3. per selected dex, concurrently:
         clearinghouseState          required for the default dex, optional otherwise
         openOrders                  optional
    4. positions, margins and equity derived from the collected states

Only a wallet address is needed; the info endpoint is unauthenticated.

Streaming:
    exchanges/hyperliquid/ws_client.py holds the HyperliquidStreamClient for
    clearinghouseState positions with activeAssetCtx mark prices.
"""

import asyncio
from typing import List, Optional, Sequence

import aiohttp

from core.config import settings
from core.connector import Connector, run_categories
from core.errors import ConnectorError
from core.schemas import ExchangeCredentials, ExchangeFailure, PerpetualsSnapshot
from exchanges.hyperliquid import normalizer
from exchanges.hyperliquid.api_client import HyperliquidAPIClient
from exchanges.hyperliquid.ws_client import HyperliquidStreamClient


class HyperliquidConnector(Connector):
    """
    Hyperliquid account connector.

    Attributes:
        dex_markers: Symbols that qualify a non-default dex for querying
    """

    name = "hyperliquid"
    required_credentials = ("wallet_address",)

    capabilities = dict(Connector.capabilities, live_stream=True)

    def __init__(self, dex_markers: Optional[Sequence[str]] = None, **kwargs):
        super().__init__(**kwargs)
        self.dex_markers = list(dex_markers) if dex_markers is not None else settings.dex_markers_list

    async def discover_dexs(self, client: HyperliquidAPIClient, failures: List[ExchangeFailure]) -> List[str]:
        """
        Default dex plus every dex whose universe matches a marker.

        Discovery never fails the snapshot: a failed perpDexs call falls back
        to the default dex and is recorded; a failed meta call skips that dex.
        """
        if not self.dex_markers:
            return [normalizer.DEFAULT_DEX]

        try:
            candidates = normalizer.parse_perp_dexs(await client.get_perp_dexs())
        except ConnectorError as e:
            self.logger.warning(f"hyperliquid: perpDexs failed, using default dex only: {e}")
            failures.append(ExchangeFailure.from_exception(self.name, e, category="perp_dexs"))
            return [normalizer.DEFAULT_DEX]

        extra = [dex for dex in candidates if dex != normalizer.DEFAULT_DEX]
        metas = await asyncio.gather(*(client.get_meta(dex) for dex in extra), return_exceptions=True)

        selected = [normalizer.DEFAULT_DEX]
        for dex, meta in zip(extra, metas):
            if isinstance(meta, ConnectorError):
                self.logger.warning(f"hyperliquid: meta for dex '{dex}' failed: {meta}")
                continue
            if isinstance(meta, BaseException):
                raise meta
            if normalizer.universe_matches(normalizer.parse_universe_symbols(meta), self.dex_markers):
                selected.append(dex)

        self.logger.debug(f"hyperliquid: querying dexs {selected}")
        return selected

    async def fetch_snapshot(
        self,
        credentials: ExchangeCredentials,
        session: Optional[aiohttp.ClientSession] = None
    ) -> PerpetualsSnapshot:
        self.check_credentials(credentials)
        failures: List[ExchangeFailure] = []

        async with HyperliquidAPIClient(credentials.wallet_address, session=session) as client:
            dexs = await self.discover_dexs(client, failures)

            optional = {}
            for dex in dexs[1:]:
                optional[f"clearinghouse_state:{dex}"] = client.get_clearinghouse_state(dex)
            for dex in dexs:
                optional[f"orders:{dex}" if dex else "orders"] = client.get_open_orders(dex)

            values, category_failures = await run_categories(
                self.name,
                required={"clearinghouse_state": client.get_clearinghouse_state(normalizer.DEFAULT_DEX)},
                optional=optional
            )
        failures.extend(category_failures)

        states = [(normalizer.DEFAULT_DEX, values["clearinghouse_state"])]
        for dex in dexs[1:]:
            state = values.get(f"clearinghouse_state:{dex}")
            if state is not None:
                states.append((dex, state))

        positions = []
        for dex, state in states:
            positions.extend(normalizer.normalize_positions(state, dex))

        orders = []
        for dex in dexs:
            raw_orders = values.get(f"orders:{dex}" if dex else "orders")
            if raw_orders is not None:
                orders.extend(normalizer.normalize_orders(raw_orders, dex))

        available, locked, equity = normalizer.summarize_margins(states)

        snapshot = PerpetualsSnapshot(
            positions=positions,
            open_orders=orders,
            available_margin=available,
            locked_margin=locked,
            equity=equity,
            category_errors=failures
        )
        self.logger.info(
            f"hyperliquid: {len(states)} dex(s), {len(positions)} positions, {len(orders)} orders"
        )
        return snapshot

    def stream_client(
        self,
        credentials: ExchangeCredentials,
        dex: Optional[str] = None,
        **kwargs
    ) -> HyperliquidStreamClient:
        """Build a HyperliquidStreamClient for one wallet, default dex unless `dex` is given."""
        self.check_credentials(credentials)
        return HyperliquidStreamClient(credentials.wallet_address, dex=dex, clock=self.clock, **kwargs)


__all__ = ["HyperliquidConnector", "HyperliquidStreamClient"]
