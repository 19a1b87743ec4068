"""Aggregator facade - venue registry, fan-out queries and the last-known summary cache."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

import httpx
import structlog

from perpview.config.settings import AggregatorConfig, Settings
from perpview.errors import NotFoundError, NotReadyError, PerpViewError
from perpview.models.account import OpenOrder, Position
from perpview.models.market import LeverageInfo, MarketSummary, VenueTag
from perpview.models.orderbook import OrderBook
from perpview.models.trade import TradeRequest, VenueReceipt
from perpview.venues.base import VenueAdapter
from perpview.venues.dydx.adapter import DydxAdapter
from perpview.venues.gateway import OrderGateway
from perpview.venues.hyperliquid.adapter import HyperliquidAdapter
from perpview.venues.supervisor import SessionStatus

log = structlog.get_logger(__name__)


@dataclass
class VenueView:
    """One venue's column in a comparison cycle."""

    venue: VenueTag
    book: OrderBook
    summary: MarketSummary | None = None
    summary_stale: bool = False
    leverage: LeverageInfo | None = None
    status: SessionStatus | None = None
    error: str | None = None


class Aggregator:
    """Dispatches by VenueTag. Only summary reads fall back to cached values."""

    def __init__(self, config: AggregatorConfig, venues: dict[VenueTag, VenueAdapter]) -> None:
        self.config = config
        self.venues = venues
        self._last_known_summary: dict[tuple[VenueTag, str], MarketSummary] = {}

    @classmethod
    async def create(
        cls,
        config: AggregatorConfig | None = None,
        settings: Settings | None = None,
        *,
        gateway: OrderGateway | None = None,
        clients: dict[VenueTag, httpx.AsyncClient] | None = None,
    ) -> Aggregator:
        """Build both adapters and load their metadata. Fails if either bootstrap fails."""
        if settings is None:
            settings = Settings(aggregator={"testnet": config.testnet} if config else None)
        config = config or settings.aggregator_config()
        clients = clients or {}
        venues: dict[VenueTag, VenueAdapter] = {
            VenueTag.DYDX: DydxAdapter(
                config, settings=settings, gateway=gateway, client=clients.get(VenueTag.DYDX)
            ),
            VenueTag.HYPERLIQUID: HyperliquidAdapter(
                config, settings=settings, gateway=gateway, client=clients.get(VenueTag.HYPERLIQUID)
            ),
        }
        agg = cls(config, venues)
        try:
            await agg.bootstrap()
        except BaseException:
            await agg.aclose()
            raise
        return agg

    async def bootstrap(self) -> None:
        results = await asyncio.gather(
            *(adapter.load_metadata() for adapter in self.venues.values()), return_exceptions=True
        )
        for tag, result in zip(self.venues, results):
            if isinstance(result, BaseException):
                log.error("metadata_bootstrap_failed", venue=tag.value, error=str(result))
                raise result

    def adapter(self, tag: VenueTag) -> VenueAdapter:
        adapter = self.venues.get(tag)
        if adapter is None:
            raise NotFoundError(f"venue {tag} is not configured")
        return adapter

    async def start_all_market_updates(self, symbol: str) -> dict[VenueTag, Exception]:
        """Start every venue on symbol. Failures are logged and returned; the rest still start."""
        failures: dict[VenueTag, Exception] = {}
        for tag, adapter in self.venues.items():
            try:
                await adapter.start_market_updates(symbol)
            except Exception as e:
                log.warning("market_updates_failed", venue=tag.value, symbol=symbol, error=str(e))
                failures[tag] = e
        return failures

    def get_exchange_orderbook(self, tag: VenueTag, symbol: str) -> OrderBook:
        return self.adapter(tag).get_orderbook(symbol)

    async def get_exchange_summary(self, tag: VenueTag, symbol: str) -> MarketSummary:
        summary, _ = await self._summary(tag, symbol)
        return summary

    async def _summary(self, tag: VenueTag, symbol: str) -> tuple[MarketSummary, bool]:
        """Return (summary, stale). Falls back to the last known value, raises if there is none."""
        adapter = self.adapter(tag)
        key = (tag, adapter.resolve_symbol(symbol))
        try:
            summary = await adapter.get_market_summary(symbol)
        except PerpViewError as e:
            cached = self._last_known_summary.get(key)
            if cached is None:
                raise
            log.debug("summary_cache_fallback", venue=tag.value, symbol=key[1], error=str(e))
            return cached, True
        self._last_known_summary[key] = summary
        return summary, False

    async def compare(self, symbol: str) -> list[VenueView]:
        """One display cycle across every venue."""
        return list(await asyncio.gather(*(self._view(tag, symbol) for tag in self.venues)))

    async def _view(self, tag: VenueTag, symbol: str) -> VenueView:
        adapter = self.venues[tag]
        try:
            book = adapter.get_orderbook(symbol)
        except NotReadyError:
            book = OrderBook.empty(tag, adapter.resolve_symbol(symbol))
        view = VenueView(
            venue=tag,
            book=book,
            leverage=adapter.get_leverage_info(symbol),
            status=adapter.session_status(),
        )
        try:
            view.summary, view.summary_stale = await self._summary(tag, symbol)
        except PerpViewError as e:
            view.error = str(e)
        return view

    async def place_trade(self, tag: VenueTag, request: TradeRequest) -> VenueReceipt:
        return await self.adapter(tag).place_order(request)

    async def cancel_order(self, tag: VenueTag, order_id: str) -> None:
        await self.adapter(tag).cancel_order(order_id)

    async def close_position(self, tag: VenueTag, symbol: str, signed_size: Decimal) -> VenueReceipt:
        return await self.adapter(tag).close_position(symbol, signed_size)

    def get_leverage_info(self, tag: VenueTag, symbol: str) -> LeverageInfo:
        return self.adapter(tag).get_leverage_info(symbol)

    async def get_positions(self, tag: VenueTag, address: str) -> list[Position]:
        return await self.adapter(tag).get_positions(address)

    async def get_open_orders(self, tag: VenueTag, address: str) -> list[OpenOrder]:
        return await self.adapter(tag).get_open_orders(address)

    async def aclose(self) -> None:
        """Cancel every supervisor and close HTTP clients."""
        await asyncio.gather(*(adapter.aclose() for adapter in self.venues.values()))
        log.info("aggregator_closed")

    async def __aenter__(self) -> Aggregator:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()
