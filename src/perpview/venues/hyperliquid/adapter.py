"""Hyperliquid adapter - typed l2Book stream for the book, /info for summary and metadata."""

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
from perpview.venues.gateway import OrderGateway
from perpview.venues.hyperliquid.feed import HyperliquidFeed
from perpview.venues.hyperliquid.info import InfoClient
from perpview.venues.hyperliquid.normalize import (
    asset_meta_from_universe,
    open_order_from_wire,
    position_from_wire,
    summary_from_ctx,
)
from perpview.venues.hyperliquid.stream import Connect

log = structlog.get_logger(__name__)


class HyperliquidAdapter(VenueAdapter):
    """Symbols are bare coin names. Max leverage comes from the universe; 50x only if it is missing."""

    venue = VenueTag.HYPERLIQUID
    policy_max_leverage = Decimal("50")

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
        self.api_url = settings.hyperliquid_api_url
        self.ws_url = settings.hyperliquid_ws_url
        self.info = InfoClient(self.client, self.api_url, retry_attempts=config.retry_attempts)
        self._connect = connect

    def venue_symbol(self, symbol: str) -> str:
        return symbol

    async def load_metadata(self) -> list[AssetMeta]:
        universe, _ = await self.info.meta_and_asset_ctxs()
        assets = [asset_meta_from_universe(entry) for entry in universe if entry.get("name")]
        self._set_assets(assets)
        return assets

    def _make_feed(self, symbol: str) -> HyperliquidFeed:
        return HyperliquidFeed(self, self.ws_url, symbol, connect=self._connect)

    async def _fetch_summary(self, symbol: str) -> MarketSummary:
        universe, ctxs = await self.info.meta_and_asset_ctxs()
        for entry, ctx in zip(universe, ctxs):
            if entry.get("name") == symbol:
                return summary_from_ctx(symbol, ctx, updated_ms=int(time.time() * 1000))
        raise NotFoundError(f"Hyperliquid does not list {symbol}")

    async def get_positions(self, address: str) -> list[Position]:
        if not address:
            raise ConfigError("Hyperliquid address required")
        state = await self.info.clearinghouse_state(address)
        positions = [position_from_wire(p) for p in state.get("assetPositions") or []]
        return [p for p in positions if p.size != 0]

    async def get_open_orders(self, address: str) -> list[OpenOrder]:
        if not address:
            raise ConfigError("Hyperliquid address required")
        return [open_order_from_wire(o) for o in await self.info.open_orders(address)]

    def _validate_order_id(self, order_id: str) -> None:
        coin, _, oid = order_id.rpartition(":")
        if not coin or not oid.isdigit():
            raise NotFoundError(f"Hyperliquid order id must be coin:oid, got {order_id!r}")
