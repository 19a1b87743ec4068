"""dYdX v4 adapter - indexer websocket for the book, indexer REST for summary and metadata."""

from __future__ import annotations

import asyncio
import time
from decimal import Decimal
from typing import Awaitable, Callable

import httpx
import structlog

from perpview.config.settings import AggregatorConfig, Settings
from perpview.errors import ConfigError, NotFoundError
from perpview.models.account import OpenOrder, Position
from perpview.models.market import AssetMeta, MarketSummary, VenueTag
from perpview.venues.base import VenueAdapter
from perpview.venues.dydx.feed import Connect, DydxFeed
from perpview.venues.dydx.indexer import IndexerClient
from perpview.venues.dydx.normalize import (
    asset_meta_from_market,
    open_order_from_wire,
    position_from_wire,
    summary_from_market,
    ticker_for,
)
from perpview.venues.gateway import OrderGateway

log = structlog.get_logger(__name__)


class DydxAdapter(VenueAdapter):
    """Symbols map BTC <-> BTC-USD.

    Max leverage is 1 / initialMarginFraction from /perpetualMarkets; markets
    missing from cached metadata fall back to a 20x policy value.
    """

    venue = VenueTag.DYDX
    policy_max_leverage = Decimal("20")

    def __init__(
        self,
        config: AggregatorConfig,
        *,
        settings: Settings | None = None,
        gateway: OrderGateway | None = None,
        client: httpx.AsyncClient | None = None,
        connect: Connect | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        super().__init__(config, gateway=gateway, client=client, sleep=sleep)
        settings = settings or Settings(aggregator={"testnet": config.testnet})
        self.indexer_url = settings.dydx_indexer_url
        self.ws_url = settings.dydx_ws_url
        self.indexer = IndexerClient(self.client, self.indexer_url, retry_attempts=config.retry_attempts)
        self._connect = connect

    def venue_symbol(self, symbol: str) -> str:
        return ticker_for(symbol)

    async def load_metadata(self) -> list[AssetMeta]:
        markets = await self.indexer.perpetual_markets()
        assets = [
            asset_meta_from_market(m) for m in markets.values() if isinstance(m, dict) and m.get("ticker")
        ]
        self._set_assets(assets)
        return assets

    def _make_feed(self, symbol: str) -> DydxFeed:
        return DydxFeed(self, self.ws_url, symbol, connect=self._connect)

    async def _fetch_summary(self, symbol: str) -> MarketSummary:
        market = await self.indexer.perpetual_market(ticker_for(symbol))
        return summary_from_market(symbol, market, updated_ms=int(time.time() * 1000))

    async def get_positions(self, address: str) -> list[Position]:
        if not address:
            raise ConfigError("dYdX address required")
        return [position_from_wire(p) for p in await self.indexer.perpetual_positions(address)]

    async def get_open_orders(self, address: str) -> list[OpenOrder]:
        if not address:
            raise ConfigError("dYdX address required")
        return [open_order_from_wire(o) for o in await self.indexer.open_orders(address)]

    def _validate_order_id(self, order_id: str) -> None:
        parts = order_id.split(":")
        if len(parts) != 4 or not all(p.isdigit() for p in parts):
            raise NotFoundError(
                f"dYdX order id must be clientId:clobPairId:orderFlags:subaccountNumber, got {order_id!r}"
            )
